"""
Duplex HTTP transport for JSON-RPC.

The RPC layer is asynchronous: a request is handed to ``on_message`` and the
matching response arrives later through ``send``. Plain HTTP is synchronous.
This transport bridges the two by holding each HTTP request open until the
response carrying the same ``id`` is sent.

Endpoints (loopback only, no authentication):
- GET  /ping                  - liveness, ``{"status": "ok", "timestamp": ...}``
- POST /notify-tools-updated  - tool list changed, operator is told to reconnect
- POST /                      - one JSON-RPC message per request

Requests with an ``id`` block until answered; there is no timeout, so a
handler that never answers leaves its caller waiting. Notifications (no
``id``) are acknowledged immediately with ``{"success": true}``.

Example:
    transport = DuplexHttpTransport(port, project_path="/home/me/app", store=store)
    transport.on_message = handle
    await transport.start()
    ...
    await transport.close()
"""

import asyncio
import inspect
import logging
import socket
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from project_relay.framework.errors import BindError
from project_relay.registry.store import RegistryStore
from project_relay.server.notices import LoggingNotifier, OperatorNotifier
from project_relay.server.versioning import VERSION_HEADER, VersionGate

logger = logging.getLogger(__name__)

JsonRpcMessage = dict[str, Any]
MessageHandler = Callable[[JsonRpcMessage], Awaitable[None] | None]

_STARTUP_POLL_SECONDS = 0.01


class TransportClosedError(RuntimeError):
    """A held request was abandoned because the transport shut down."""


class DuplexHttpTransport:
    """Serve JSON-RPC over HTTP POST, correlating responses by request id."""

    def __init__(
        self,
        port: int,
        project_path: str | None = None,
        store: RegistryStore | None = None,
        host: str = "127.0.0.1",
        version_gate: VersionGate | None = None,
        notifier: OperatorNotifier | None = None,
    ) -> None:
        self.port = port
        self.host = host
        self.project_path = project_path
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.version_gate = version_gate or VersionGate(notifier=self.notifier)
        self.on_message: MessageHandler | None = None

        self._pending: dict[str | int, asyncio.Future[JsonRpcMessage]] = {}
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self.app = Starlette(
            routes=[
                Route("/ping", self._handle_ping, methods=["GET"]),
                Route("/notify-tools-updated", self._handle_tools_updated, methods=["POST"]),
                Route("/", self._handle_message, methods=["POST"]),
            ]
        )

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def is_running(self) -> bool:
        return self._server is not None and self._server.started

    @property
    def pending_count(self) -> int:
        """Number of HTTP requests currently waiting for a response."""
        return len(self._pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _bind_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            msg = f"Failed to bind to port {self.port}: {e}"
            raise BindError(msg, self.port, self.host) from e
        return sock

    async def start(self) -> None:
        """Bind the port and serve in a background task.

        Raises:
            BindError: If the port cannot be bound
        """
        if self._serve_task is not None:
            msg = "Transport already started"
            raise RuntimeError(msg)

        sock = self._bind_socket()
        # Port 0 asks the OS for any free port
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            log_level="warning",
            access_log=False,  # Requests are logged by the RPC layer
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[sock]))

        while not self._server.started:
            if self._serve_task.done():
                sock.close()
                self._serve_task = None
                msg = f"Failed to bind to port {self.port}: server exited during startup"
                raise BindError(msg, self.port, self.host)
            await asyncio.sleep(_STARTUP_POLL_SECONDS)

        logger.info(
            "Relay transport listening on %s",
            self.url,
            extra={"project": self.project_path, "port": self.port},
        )

    async def close(self) -> None:
        """Stop serving, release the port and unregister from the router table.

        Unregistration is best-effort: failures are logged, never raised.
        """
        for future in self._pending.values():
            if not future.done():
                future.set_exception(TransportClosedError("Transport closed"))

        if self._server is not None and self._serve_task is not None:
            self._server.should_exit = True
            await self._serve_task
            logger.info(
                "Relay transport on port %s stopped",
                self.port,
                extra={"project": self.project_path, "port": self.port},
            )
        self._server = None
        self._serve_task = None

        if self.store is not None and self.project_path:
            try:
                self.store.unregister(self.project_path)
            except Exception as e:
                logger.warning("Failed to unregister %s: %s", self.project_path, e)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    async def send(self, message: JsonRpcMessage) -> None:
        """Deliver an outbound message.

        A response (``id`` plus ``result`` or ``error``) completes the held HTTP
        request with the same id. Anything else has no HTTP channel back to the
        caller and is dropped.
        """
        msg_id = message.get("id")
        if msg_id is None or ("result" not in message and "error" not in message):
            logger.debug("Dropping outbound message without a waiting request: %s", message.get("method"))
            return

        future = self._pending.pop(msg_id, None)
        if future is None or future.done():
            logger.warning("No pending response for ID %s", msg_id, extra={"request_id": msg_id})
            return
        future.set_result(message)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _dispatch(self, message: JsonRpcMessage) -> None:
        handler = self.on_message
        if handler is None:
            msg = "No message handler"
            raise RuntimeError(msg)
        result = handler(message)
        if inspect.isawaitable(result):
            await result

    async def _handle_message(self, request: Request) -> Response:
        if self.on_message is None:
            return PlainTextResponse("No message handler", status_code=500)

        try:
            message = await request.json()
        except ValueError as e:
            logger.warning("Rejected malformed request body: %s", e)
            return PlainTextResponse("Internal Server Error", status_code=500)
        if not isinstance(message, dict):
            logger.warning("Rejected non-object JSON-RPC message")
            return PlainTextResponse("Internal Server Error", status_code=500)

        if message.get("method") == "tools/call":
            self.version_gate.check(request.headers.get(VERSION_HEADER))

        if "id" not in message or message["id"] is None:
            try:
                await self._dispatch(message)
            except Exception as e:
                logger.exception("Error handling notification: %s", e)
                return PlainTextResponse("Internal Server Error", status_code=500)
            return JSONResponse({"success": True})

        msg_id = message["id"]
        future: asyncio.Future[JsonRpcMessage] = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = future
        try:
            await self._dispatch(message)
            response = await future
        except Exception as e:
            logger.exception(
                "Error handling request %s: %s",
                msg_id,
                e,
                extra={"request_id": msg_id, "method": message.get("method")},
            )
            return PlainTextResponse("Internal Server Error", status_code=500)
        finally:
            if self._pending.get(msg_id) is future:
                del self._pending[msg_id]

        return JSONResponse(response)

    async def _handle_ping(self, request: Request) -> Response:
        return JSONResponse(
            {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}
        )

    async def _handle_tools_updated(self, request: Request) -> Response:
        logger.info("Received tools-updated notification")
        self.notifier.info(
            "The relay's tool list changed. Reconnect the client to pick up the new tools."
        )
        return JSONResponse({"success": True})
