"""Tests for the duplex HTTP transport."""

import asyncio
import socket
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from project_relay.framework.errors import BindError, ErrorCode
from project_relay.registry.store import RegistryStore
from project_relay.server.transport import DuplexHttpTransport
from project_relay.server.versioning import VERSION_HEADER, VersionGate
from tests.conftest import RecordingNotifier


def asgi_client(transport: DuplexHttpTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=transport.app), base_url="http://testserver"
    )


def echo_handler(transport: DuplexHttpTransport) -> Any:
    """Handler that answers every request with its own params."""

    async def handle(message: dict[str, Any]) -> None:
        if "id" in message:
            await transport.send(
                {"jsonrpc": "2.0", "id": message["id"], "result": message.get("params", {})}
            )

    return handle


async def wait_for_pending(transport: DuplexHttpTransport, count: int) -> None:
    for _ in range(500):
        if transport.pending_count == count:
            return
        await asyncio.sleep(0.001)
    msg = f"pending_count never reached {count}"
    raise AssertionError(msg)


class TestEndpoints:
    """Test the fixed HTTP endpoints."""

    @pytest.mark.asyncio
    async def test_ping(self) -> None:
        """Test GET /ping reports liveness with a timestamp."""
        transport = DuplexHttpTransport(0)
        async with asgi_client(transport) as client:
            response = await client.get("/ping")

        assert response.status_code == 200  # noqa: PLR2004
        body = response.json()
        assert body["status"] == "ok"
        assert "T" in body["timestamp"]

    @pytest.mark.asyncio
    async def test_notify_tools_updated(self, notifier: RecordingNotifier) -> None:
        """Test the tools-updated notification acknowledges and tells the operator."""
        transport = DuplexHttpTransport(0, notifier=notifier)
        async with asgi_client(transport) as client:
            response = await client.post("/notify-tools-updated")

        assert response.json() == {"success": True}
        assert len(notifier.infos) == 1
        assert "Reconnect" in notifier.infos[0]


class TestMessageHandling:
    """Test POST / request/response correlation."""

    @pytest.mark.asyncio
    async def test_no_handler(self) -> None:
        """Test requests without a handler fail with a plain-text 500."""
        transport = DuplexHttpTransport(0)
        async with asgi_client(transport) as client:
            response = await client.post("/", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})

        assert response.status_code == 500  # noqa: PLR2004
        assert response.text == "No message handler"

    @pytest.mark.asyncio
    async def test_malformed_body(self) -> None:
        """Test an unparseable body fails with a plain-text 500."""
        transport = DuplexHttpTransport(0)
        transport.on_message = echo_handler(transport)
        async with asgi_client(transport) as client:
            response = await client.post(
                "/", content=b"{oops", headers={"content-type": "application/json"}
            )

        assert response.status_code == 500  # noqa: PLR2004
        assert response.text == "Internal Server Error"

    @pytest.mark.asyncio
    async def test_request_returns_matching_response(self) -> None:
        """Test a request with id "7" completes with the handler's response for "7"."""
        transport = DuplexHttpTransport(0)
        transport.on_message = echo_handler(transport)
        async with asgi_client(transport) as client:
            response = await client.post(
                "/", json={"jsonrpc": "2.0", "id": "7", "method": "echo", "params": {"x": 1}}
            )

        assert response.status_code == 200  # noqa: PLR2004
        assert response.json() == {"jsonrpc": "2.0", "id": "7", "result": {"x": 1}}
        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_deferred_response(self) -> None:
        """Test the HTTP response waits for a response sent after the handler returns."""
        transport = DuplexHttpTransport(0)
        received: list[dict[str, Any]] = []
        transport.on_message = received.append

        async with asgi_client(transport) as client:
            request = asyncio.create_task(
                client.post("/", json={"jsonrpc": "2.0", "id": "1", "method": "slow"})
            )
            await wait_for_pending(transport, 1)

            # Unknown ids are dropped without disturbing the held request
            await transport.send({"jsonrpc": "2.0", "id": "other", "result": {}})
            assert transport.pending_count == 1
            assert not request.done()

            await transport.send({"jsonrpc": "2.0", "id": "1", "result": {"done": True}})
            response = await request

        assert received[0]["method"] == "slow"
        assert response.json()["result"] == {"done": True}

    @pytest.mark.asyncio
    async def test_responses_out_of_order(self) -> None:
        """Test two held requests answered in reverse order each get their own body."""
        transport = DuplexHttpTransport(0)
        received: list[dict[str, Any]] = []
        transport.on_message = received.append

        async with asgi_client(transport) as client:
            first = asyncio.create_task(
                client.post("/", json={"jsonrpc": "2.0", "id": 1, "method": "slow"})
            )
            await wait_for_pending(transport, 1)
            second = asyncio.create_task(
                client.post("/", json={"jsonrpc": "2.0", "id": 2, "method": "fast"})
            )
            await wait_for_pending(transport, 2)

            await transport.send({"jsonrpc": "2.0", "id": 2, "result": {"answer": "fast"}})
            second_response = await second
            assert not first.done()
            assert transport.pending_count == 1

            await transport.send({"jsonrpc": "2.0", "id": 1, "result": {"answer": "slow"}})
            first_response = await first

        assert [m["id"] for m in received] == [1, 2]
        assert first_response.json() == {"jsonrpc": "2.0", "id": 1, "result": {"answer": "slow"}}
        assert second_response.json() == {"jsonrpc": "2.0", "id": 2, "result": {"answer": "fast"}}
        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_error_response_completes_request(self) -> None:
        """Test a JSON-RPC error response also completes the held request."""
        transport = DuplexHttpTransport(0)

        async def handle(message: dict[str, Any]) -> None:
            await transport.send(
                {"jsonrpc": "2.0", "id": message["id"], "error": {"code": -32601, "message": "nope"}}
            )

        transport.on_message = handle
        async with asgi_client(transport) as client:
            response = await client.post("/", json={"jsonrpc": "2.0", "id": 3, "method": "x"})

        assert response.json()["error"]["code"] == -32601  # noqa: PLR2004

    @pytest.mark.asyncio
    async def test_notification_acknowledged(self) -> None:
        """Test messages without an id get {"success": true} immediately."""
        transport = DuplexHttpTransport(0)
        received: list[dict[str, Any]] = []
        transport.on_message = received.append

        async with asgi_client(transport) as client:
            response = await client.post(
                "/", json={"jsonrpc": "2.0", "method": "notifications/initialized"}
            )

        assert response.json() == {"success": True}
        assert received == [{"jsonrpc": "2.0", "method": "notifications/initialized"}]

    @pytest.mark.asyncio
    async def test_handler_exception(self) -> None:
        """Test a raising handler yields a plain-text 500 and clears the pending call."""
        transport = DuplexHttpTransport(0)

        async def handle(message: dict[str, Any]) -> None:
            msg = "boom"
            raise RuntimeError(msg)

        transport.on_message = handle
        async with asgi_client(transport) as client:
            response = await client.post("/", json={"jsonrpc": "2.0", "id": 1, "method": "x"})

        assert response.status_code == 500  # noqa: PLR2004
        assert response.text == "Internal Server Error"
        assert transport.pending_count == 0

    @pytest.mark.asyncio
    async def test_send_without_pending_is_dropped(self) -> None:
        """Test outbound responses and notifications with no waiting request are ignored."""
        transport = DuplexHttpTransport(0)

        await transport.send({"jsonrpc": "2.0", "id": 99, "result": {}})
        await transport.send({"jsonrpc": "2.0", "method": "notifications/progress"})

        assert transport.pending_count == 0


class TestVersionGate:
    """Test the advisory version check on tools/call."""

    @pytest.mark.asyncio
    async def test_outdated_caller_warned_but_served(self, notifier: RecordingNotifier) -> None:
        """Test an old relay is warned about once and its call still succeeds."""
        transport = DuplexHttpTransport(0, version_gate=VersionGate("0.0.2", notifier=notifier))
        transport.on_message = echo_handler(transport)
        call = {"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "t"}}

        async with asgi_client(transport) as client:
            first = await client.post("/", json=call, headers={VERSION_HEADER: "0.0.1"})
            second = await client.post("/", json=call, headers={VERSION_HEADER: "0.0.1"})

        assert first.status_code == second.status_code == 200  # noqa: PLR2004
        assert len(notifier.warnings) == 1

    @pytest.mark.asyncio
    async def test_other_methods_not_checked(self, notifier: RecordingNotifier) -> None:
        """Test only tools/call is subject to the version check."""
        transport = DuplexHttpTransport(0, version_gate=VersionGate("0.0.2", notifier=notifier))
        transport.on_message = echo_handler(transport)

        async with asgi_client(transport) as client:
            await client.post("/", json={"jsonrpc": "2.0", "id": 1, "method": "tools/list"})

        assert notifier.warnings == []


class TestLifecycle:
    """Test binding, serving and closing on a real socket."""

    @pytest.mark.asyncio
    async def test_start_serve_close_unregisters(self, store: RegistryStore) -> None:
        """Test a started transport answers over TCP and close() unregisters it."""
        transport = DuplexHttpTransport(0, project_path="/home/me/app", store=store)
        transport.on_message = echo_handler(transport)
        await transport.start()
        store.register("/home/me/app", transport.port)

        try:
            assert transport.is_running
            async with httpx.AsyncClient(base_url=transport.url) as client:
                ping = await client.get("/ping")
                echoed = await client.post(
                    "/", json={"jsonrpc": "2.0", "id": 5, "method": "e", "params": {"a": 2}}
                )
        finally:
            await transport.close()

        assert ping.json()["status"] == "ok"
        assert echoed.json()["result"] == {"a": 2}
        assert not transport.is_running
        assert store.find("/home/me/app") is None

    @pytest.mark.asyncio
    async def test_bind_error(self) -> None:
        """Test a port held by another listener raises BindError."""
        holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        holder.bind(("127.0.0.1", 0))
        holder.listen(1)
        port = holder.getsockname()[1]

        try:
            transport = DuplexHttpTransport(port)
            with pytest.raises(BindError) as exc_info:
                await transport.start()
        finally:
            holder.close()

        assert exc_info.value.port == port
        assert exc_info.value.code == ErrorCode.BIND_ERROR
        assert isinstance(exc_info.value.__cause__, OSError)

    @pytest.mark.asyncio
    async def test_close_survives_unregister_failure(self) -> None:
        """Test unregistration failures during close are logged, not raised."""
        store = MagicMock(spec=RegistryStore)
        store.unregister.side_effect = OSError("disk gone")
        transport = DuplexHttpTransport(0, project_path="/a", store=store)

        await transport.close()

        store.unregister.assert_called_once_with("/a")
