"""HTTP client the relay uses to reach project instances.

The relay knows only project paths. It looks each one up in the router table
and falls back to the default port when the project is not registered (a
single instance started before the table existed listens there).

Example:
    client = RelayClient(RegistryStore())
    client.ping("/home/me/app")
    client.route({"jsonrpc": "2.0", "id": 1, "method": "tools/call",
                  "params": {"name": "search", "arguments": {"workspace": "/home/me/app"}}})
"""

import logging
from typing import Any

import requests

from project_relay import __version__
from project_relay.framework.errors import RelayRequestError
from project_relay.registry.ports import DEFAULT_PORT
from project_relay.registry.store import RegistryStore
from project_relay.relay.catalog import workspace_of
from project_relay.server.versioning import VERSION_HEADER

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5.0  # seconds
PING_TIMEOUT = 5.0  # seconds


class RelayClient:
    """Resolve project paths to instances and forward JSON-RPC envelopes."""

    def __init__(
        self,
        store: RegistryStore,
        host: str = "127.0.0.1",
        default_port: int = DEFAULT_PORT,
        timeout: float | None = None,
        ping_timeout: float = PING_TIMEOUT,
        client_version: str = __version__,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize relay client.

        Args:
            store: Router table to resolve project paths
            host: Address instances listen on
            default_port: Port used when a project is not registered
            timeout: Read timeout for forwarded calls in seconds, None to wait
                as long as the instance holds the request
            ping_timeout: Timeout for ping and tools-updated requests
            client_version: Version announced in the version header
            session: Optional requests session (for connection reuse)
        """
        self.store = store
        self.host = host
        self.default_port = default_port
        self.timeout = timeout
        self.ping_timeout = ping_timeout
        self.client_version = client_version
        self.session = session or requests.Session()

    def port_for(self, project_path: str | None) -> int:
        """Registered port for ``project_path``, else the default port."""
        if project_path:
            port = self.store.get_port(project_path)
            if port is not None:
                return port
            logger.info("%s not registered, using default port %s", project_path, self.default_port)
        return self.default_port

    def base_url(self, project_path: str | None) -> str:
        return f"http://{self.host}:{self.port_for(project_path)}"

    def _request(self, method: str, url: str, timeout: Any, **kwargs: Any) -> Any:
        headers = {VERSION_HEADER: self.client_version}
        try:
            response = self.session.request(method, url, headers=headers, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            msg = f"Request to {url} failed: {e}"
            raise RelayRequestError(msg, url) from e

        if response.status_code >= 400:  # noqa: PLR2004
            msg = f"Request to {url} failed (status {response.status_code}): {response.text}"
            raise RelayRequestError(msg, url, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            msg = f"Invalid JSON from {url}: {e}"
            raise RelayRequestError(msg, url, status_code=response.status_code) from e

    def ping(self, project_path: str | None = None) -> dict[str, Any]:
        """Liveness check against the instance serving ``project_path``."""
        return self._request("GET", f"{self.base_url(project_path)}/ping", timeout=self.ping_timeout)

    def notify_tools_updated(self, project_path: str | None = None) -> dict[str, Any]:
        return self._request(
            "POST", f"{self.base_url(project_path)}/notify-tools-updated", timeout=self.ping_timeout
        )

    def call(self, project_path: str | None, envelope: dict[str, Any]) -> dict[str, Any]:
        """Send one JSON-RPC envelope to the instance serving ``project_path``.

        Returns:
            The response envelope, or ``{"success": true}`` for notifications

        Raises:
            RelayRequestError: If the instance is unreachable or answers with an HTTP error
        """
        url = f"{self.base_url(project_path)}/"
        logger.debug("Forwarding %s to %s", envelope.get("method"), url)
        return self._request("POST", url, timeout=(CONNECT_TIMEOUT, self.timeout), json=envelope)

    def route(self, envelope: dict[str, Any]) -> dict[str, Any]:
        """Forward ``envelope`` to the instance named by its ``workspace`` argument."""
        return self.call(workspace_of(envelope), envelope)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "RelayClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
