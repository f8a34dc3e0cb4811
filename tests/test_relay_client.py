"""Tests for the relay-side HTTP client."""

from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from project_relay.framework.errors import ErrorCode, RelayRequestError
from project_relay.registry.store import RegistryStore
from project_relay.relay.catalog import with_workspace_property, workspace_of
from project_relay.relay.client import CONNECT_TIMEOUT, PING_TIMEOUT, RelayClient
from project_relay.server.versioning import VERSION_HEADER


def fake_response(status_code: int = 200, body: Any = None, text: str = "") -> MagicMock:
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.text = text
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def session() -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.request.return_value = fake_response(body={"status": "ok"})
    return session


@pytest.fixture
def client(store: RegistryStore, session: MagicMock) -> RelayClient:
    return RelayClient(store, client_version="0.3.0", session=session)


class TestPortResolution:
    """Test project-to-port resolution."""

    def test_registered_project(self, client: RelayClient, store: RegistryStore) -> None:
        """Test a registered project resolves to its port."""
        store.register("/home/me/app", 60123)
        assert client.port_for("/home/me/app/") == 60123  # noqa: PLR2004

    def test_unregistered_falls_back_to_default(self, client: RelayClient) -> None:
        """Test unknown projects use the default port."""
        assert client.port_for("/unknown") == 60100  # noqa: PLR2004
        assert client.port_for(None) == 60100  # noqa: PLR2004


class TestRequests:
    """Test forwarding calls."""

    def test_route_by_workspace_argument(
        self, client: RelayClient, store: RegistryStore, session: MagicMock
    ) -> None:
        """Test tools/call is sent to the instance named by its workspace argument."""
        store.register("/home/me/app", 60123)
        envelope = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/call",
            "params": {"name": "search", "arguments": {"workspace": "/home/me/app"}},
        }
        session.request.return_value = fake_response(body={"jsonrpc": "2.0", "id": 1, "result": {}})

        response = client.route(envelope)

        assert response["id"] == 1
        args, kwargs = session.request.call_args
        assert args == ("POST", "http://127.0.0.1:60123/")
        assert kwargs["json"] == envelope
        assert kwargs["headers"] == {VERSION_HEADER: "0.3.0"}

    def test_ping(self, client: RelayClient, session: MagicMock) -> None:
        """Test ping hits GET /ping on the resolved port."""
        assert client.ping() == {"status": "ok"}
        assert session.request.call_args.args == ("GET", "http://127.0.0.1:60100/ping")

    def test_notify_tools_updated(self, client: RelayClient, session: MagicMock) -> None:
        """Test the tools-updated notification is posted."""
        session.request.return_value = fake_response(body={"success": True})

        assert client.notify_tools_updated() == {"success": True}
        assert session.request.call_args.args == (
            "POST",
            "http://127.0.0.1:60100/notify-tools-updated",
        )

    def test_call_read_timeout_unbounded(self, client: RelayClient, session: MagicMock) -> None:
        """Test forwarded calls bound only the connect phase so held switches can finish."""
        client.call("/home/me/app", {"jsonrpc": "2.0", "id": 1, "method": "tools/call"})

        assert session.request.call_args.kwargs["timeout"] == (CONNECT_TIMEOUT, None)

    def test_call_timeout_configurable(self, store: RegistryStore, session: MagicMock) -> None:
        """Test an explicit timeout becomes the read timeout of forwarded calls."""
        client = RelayClient(store, timeout=120.0, session=session)

        client.call(None, {"jsonrpc": "2.0", "id": 1, "method": "ping"})

        assert session.request.call_args.kwargs["timeout"] == (CONNECT_TIMEOUT, 120.0)

    def test_ping_keeps_short_timeout(self, client: RelayClient, session: MagicMock) -> None:
        """Test liveness checks still give up quickly."""
        client.ping()
        assert session.request.call_args.kwargs["timeout"] == PING_TIMEOUT

        client.notify_tools_updated()
        assert session.request.call_args.kwargs["timeout"] == PING_TIMEOUT

    def test_http_error(self, client: RelayClient, session: MagicMock) -> None:
        """Test an HTTP error status raises RelayRequestError with the status."""
        session.request.return_value = fake_response(500, text="No message handler")

        with pytest.raises(RelayRequestError) as exc_info:
            client.call("/x", {"jsonrpc": "2.0", "id": 1, "method": "ping"})

        assert exc_info.value.status_code == 500  # noqa: PLR2004
        assert exc_info.value.code == ErrorCode.RELAY_REQUEST_ERROR
        assert "No message handler" in exc_info.value.message

    def test_connection_error(self, client: RelayClient, session: MagicMock) -> None:
        """Test an unreachable instance raises RelayRequestError."""
        session.request.side_effect = requests.ConnectionError("refused")

        with pytest.raises(RelayRequestError) as exc_info:
            client.ping("/x")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, requests.ConnectionError)

    def test_invalid_json(self, client: RelayClient, session: MagicMock) -> None:
        """Test a non-JSON body raises RelayRequestError."""
        session.request.return_value = fake_response(body=ValueError("no json"))

        with pytest.raises(RelayRequestError, match="Invalid JSON"):
            client.ping()

    def test_context_manager_closes_session(self, store: RegistryStore, session: MagicMock) -> None:
        """Test leaving the context closes the session."""
        with RelayClient(store, session=session):
            pass
        session.close.assert_called_once()


class TestCatalog:
    """Test catalog helpers."""

    def test_workspace_of(self) -> None:
        """Test the workspace argument is extracted only from tools/call."""
        call = {"method": "tools/call", "params": {"arguments": {"workspace": "/a"}}}
        assert workspace_of(call) == "/a"
        assert workspace_of({"method": "tools/list"}) is None
        assert workspace_of({"method": "tools/call", "params": {"arguments": {}}}) is None

    def test_with_workspace_property_copies(self) -> None:
        """Test the schema helper does not mutate its input."""
        schema = {"type": "object", "properties": {"q": {"type": "string"}}, "required": ["q"]}

        extended = with_workspace_property(schema)

        assert extended["required"] == ["q", "workspace"]
        assert "workspace" not in schema["properties"]
