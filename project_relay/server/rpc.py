"""
MCP server for a project instance, carried over the duplex HTTP transport.

The protocol (``initialize``, ``ping``, ``tools/list``, ``tools/call``,
notifications) is served by the ``mcp`` SDK's low-level server. This module
adds what the relay needs on top:

- ``ToolRegistry``: tools declared with pydantic argument models
- project-bound tools: the workspace coordinator confirms (or switches to)
  the requested project before the handler runs; a failed check comes back
  as an ``isError`` tool result carrying the remediation text
- the bridge between :class:`DuplexHttpTransport` and the SDK session's
  read/write streams

Usage:
    server = RpcServer("project-relay", __version__, coordinator=coordinator)
    server.tools.register("search", "Search symbols", search, args_model=SearchArgs)
    await server.connect(transport)
    ...
    await server.detach()
"""

import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp import types
from mcp.server.lowlevel import Server
from mcp.shared.message import SessionMessage
from pydantic import BaseModel, ValidationError

from project_relay.relay.catalog import with_workspace_property

if TYPE_CHECKING:
    from project_relay.server.transport import DuplexHttpTransport, JsonRpcMessage
    from project_relay.workspace.coordinator import WorkspaceCoordinator

logger = logging.getLogger(__name__)

# Messages queued between the HTTP handlers and the SDK session
STREAM_BUFFER_SIZE = 64

ToolHandler = Callable[[Any], Any]


class ToolCallError(Exception):
    """A tool call that cannot run; reported to the caller as an ``isError`` result."""


def _to_content(value: Any) -> list[types.TextContent]:
    if isinstance(value, str):
        text = value
    elif isinstance(value, BaseModel):
        text = value.model_dump_json(indent=2)
    else:
        text = json.dumps(value, indent=2, default=str)
    return [types.TextContent(type="text", text=text)]


def _dump(message: types.JSONRPCMessage) -> dict[str, Any]:
    return message.model_dump(by_alias=True, mode="json", exclude_none=True)


@dataclass
class RegisteredTool:
    """A tool as published by ``tools/list``."""

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler
    args_model: type[BaseModel] | None = None
    requires_workspace: bool = False

    def to_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=self.input_schema,
        )


class ToolRegistry:
    """Name-keyed tool registry. Register during startup only."""

    def __init__(self) -> None:
        self._tools: dict[str, RegisteredTool] = {}

    def register(
        self,
        name: str,
        description: str,
        handler: ToolHandler,
        args_model: type[BaseModel] | None = None,
        input_schema: dict[str, Any] | None = None,
        requires_workspace: bool = False,
    ) -> RegisteredTool:
        """
        Register a tool.

        Args:
            name: Unique tool name
            description: Human-readable description
            handler: Callable receiving the validated arguments (a model
                instance when ``args_model`` is given, otherwise a dict)
            args_model: Pydantic model used to validate arguments and publish the schema
            input_schema: Raw JSON schema, used when no model is given
            requires_workspace: Run the workspace check before the handler

        Returns:
            The registered tool

        Raises:
            ValueError: If the name is already registered
        """
        if name in self._tools:
            msg = f"Tool '{name}' already registered"
            raise ValueError(msg)

        if args_model is not None:
            schema = args_model.model_json_schema()
        else:
            schema = input_schema or {"type": "object", "properties": {}}
        if requires_workspace:
            schema = with_workspace_property(schema)

        tool = RegisteredTool(
            name=name,
            description=description,
            input_schema=schema,
            handler=handler,
            args_model=args_model,
            requires_workspace=requires_workspace,
        )
        self._tools[name] = tool
        logger.debug("Registered tool %s", name)
        return tool

    def get(self, name: str) -> RegisteredTool | None:
        return self._tools.get(name)

    def list_tools(self) -> list[types.Tool]:
        return [tool.to_tool() for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


class RpcServer:
    """MCP server bound to one project, speaking through a duplex transport.

    Attributes:
        server: The SDK low-level server carrying the protocol
        tools: Tools published by this instance
        coordinator: Workspace coordinator for project-bound tools, if any
    """

    def __init__(
        self,
        name: str,
        version: str,
        coordinator: "WorkspaceCoordinator | None" = None,
        tools: ToolRegistry | None = None,
    ) -> None:
        self.name = name
        self.version = version
        self.coordinator = coordinator
        self.tools = tools or ToolRegistry()
        self.server = Server(name, version=version)

        self._transport: DuplexHttpTransport | None = None
        self._inbound: MemoryObjectSendStream[SessionMessage | Exception] | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._register_handlers()

    def _register_handlers(self) -> None:
        @self.server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return self.tools.list_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            return await self.call_tool(name, arguments)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
        """Run a registered tool and return its content blocks.

        Raises:
            ToolCallError: If the tool is unknown, the arguments are invalid or
                the requested project could not be brought into focus
        """
        arguments = arguments or {}
        tool = self.tools.get(name)
        if tool is None:
            msg = f"Tool {name} not found"
            raise ToolCallError(msg)

        if tool.requires_workspace and self.coordinator is not None:
            switch = await self.coordinator.handle_workspace_requirement(arguments.get("workspace"))
            if not switch.success:
                raise ToolCallError(self.coordinator.format_workspace_error(switch))

        call_args: Any = arguments
        if tool.args_model is not None:
            try:
                call_args = tool.args_model.model_validate(arguments)
            except ValidationError as e:
                msg = f"Invalid arguments for tool {name}: {e}"
                raise ToolCallError(msg) from e

        logger.info("Calling tool %s", name, extra={"method": "tools/call"})
        try:
            value = tool.handler(call_args)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            raise

        return _to_content(value)

    # ------------------------------------------------------------------
    # Transport bridge
    # ------------------------------------------------------------------

    async def connect(self, transport: "DuplexHttpTransport") -> None:
        """Attach to ``transport`` and start it.

        Raises:
            BindError: If the transport cannot bind its port
        """
        await self.attach(transport)
        try:
            await transport.start()
        except Exception:
            await self.detach()
            raise

    async def attach(self, transport: "DuplexHttpTransport") -> None:
        """Run an SDK session whose messages flow through ``transport``.

        The transport is not started; :meth:`connect` does both.
        """
        if self._inbound is not None:
            msg = "RPC server is already attached to a transport"
            raise RuntimeError(msg)

        inbound_send, inbound_receive = anyio.create_memory_object_stream[
            SessionMessage | Exception
        ](STREAM_BUFFER_SIZE)
        outbound_send, outbound_receive = anyio.create_memory_object_stream[SessionMessage](
            STREAM_BUFFER_SIZE
        )

        self._transport = transport
        self._inbound = inbound_send
        transport.on_message = self._on_message

        # Every HTTP request stands alone, so no initialize handshake is required
        self._tasks = [
            asyncio.create_task(
                self.server.run(
                    inbound_receive,
                    outbound_send,
                    self.server.create_initialization_options(),
                    stateless=True,
                )
            ),
            asyncio.create_task(self._forward_outbound(outbound_receive, transport)),
        ]
        logger.debug("RPC server %s attached", self.name)

    async def detach(self) -> None:
        """Stop the SDK session and unhook the transport."""
        inbound, self._inbound = self._inbound, None
        if inbound is not None:
            await inbound.aclose()

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._transport is not None:
            self._transport.on_message = None
            self._transport = None

    async def _on_message(self, message: "JsonRpcMessage") -> None:
        if self._inbound is None:
            msg = "RPC server is not attached to a transport"
            raise RuntimeError(msg)

        try:
            parsed = types.JSONRPCMessage.model_validate(message)
        except ValidationError as e:
            logger.warning("Rejected invalid JSON-RPC message: %s", e.errors()[0]["msg"])
            await self._reply_error(message.get("id"), types.INVALID_REQUEST, "Invalid request")
            return

        root = parsed.root
        if isinstance(root, types.JSONRPCRequest):
            try:
                types.ClientRequest.model_validate(_dump(parsed))
            except ValidationError:
                logger.warning("Rejected request %s for method %s", root.id, root.method)
                await self._reply_error(
                    root.id, types.INVALID_PARAMS, f"Invalid request: {root.method}"
                )
                return
        elif isinstance(root, types.JSONRPCNotification):
            try:
                types.ClientNotification.model_validate(_dump(parsed))
            except ValidationError:
                logger.debug("Ignoring notification %s", root.method)
                return

        await self._inbound.send(SessionMessage(parsed))

    async def _reply_error(self, msg_id: Any, code: int, message: str) -> None:
        if msg_id is None or self._transport is None:
            return
        await self._transport.send(
            {"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": message}}
        )

    @staticmethod
    async def _forward_outbound(
        outbound: MemoryObjectReceiveStream[SessionMessage],
        transport: "DuplexHttpTransport",
    ) -> None:
        async with outbound:
            async for session_message in outbound:
                await transport.send(_dump(session_message.message))
