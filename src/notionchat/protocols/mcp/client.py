"""MCPClient — correlates JSON-RPC requests with responses over a stdio transport.

Every request gets a fresh integer id from a counter that only moves
forward.  The id is the sole correlation key: responses may arrive in any
order, and each one fulfils the pending entry that carries its id.  A
pending entry ends in exactly one of three ways (its response arrives, its
timer fires, or the server process goes away) and whichever happens first
removes it, so a late or duplicate response falls through the unknown-id
path and is dropped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Set
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from notionchat.protocols.errors import (
    ConnectionError,
    FatalProcessError,
    HandshakeError,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    ServerExitedError,
    ToolExecutionError,
    TransportClosedError,
)
from notionchat.protocols.mcp.framing import LineBuffer, encode_message
from notionchat.protocols.mcp.models import (
    PROTOCOL_VERSION,
    CallToolResult,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
)
from notionchat.protocols.mcp.transport import DEFAULT_READY_MARKER, StdioTransport
from notionchat.utils.telemetry import ATTR_RPC_ID, ATTR_RPC_METHOD, ATTR_TOOL_ERROR, ATTR_TOOL_NAME, get_tracer

logger = logging.getLogger(__name__)

_tracer = get_tracer(__name__)

DEFAULT_REQUEST_TIMEOUT = 20.0
CLIENT_NAME = "notion-chat-client"
CLIENT_VERSION = "1.0.0"


def default_server_command() -> list[str]:
    """Launch the bundled tool server with the current interpreter."""
    return [sys.executable, "-m", "notionchat.server"]


class ServerRef(BaseModel):
    """How to launch the tool server process."""

    command: list[str] = Field(default_factory=default_server_command)
    env: dict[str, str] | None = None
    ready_marker: str = DEFAULT_READY_MARKER
    shutdown_grace: float = 5.0


@dataclass
class PendingRequest:
    """An outstanding request awaiting its response."""

    id: int
    method: str
    future: asyncio.Future[dict[str, Any]]
    timer: asyncio.TimerHandle


class MCPClient:
    """Async context manager that talks to the tool server subprocess.

    Usage::

        async with MCPClient(ServerRef()) as client:
            tools = await client.list_tools()
            pages = await client.call_tool("get_page_titles_only", {"limit": 3})
    """

    def __init__(
        self,
        server_ref: ServerRef | None = None,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self._ref = server_ref or ServerRef()
        self._request_timeout = request_timeout
        self._transport: StdioTransport | None = None
        self._pending: dict[int, PendingRequest] = {}
        self._buffer = LineBuffer()
        self._last_id = 0
        self._initialized = False
        self._closing = False
        self._exit_error: ServerExitedError | None = None
        self._exited = asyncio.Event()
        self._tools: list[MCPToolDef] | None = None
        self.server_info: dict[str, Any] = {}

    async def __aenter__(self) -> MCPClient:
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.close()

    @property
    def pending_ids(self) -> Set[int]:
        """Correlation ids that are still awaiting a response."""
        return self._pending.keys()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def request_timeout(self) -> float:
        return self._request_timeout

    @property
    def exited(self) -> asyncio.Event:
        """Set when the server process ends without being asked to."""
        return self._exited

    @property
    def exit_error(self) -> ServerExitedError | None:
        return self._exit_error

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Spawn the server and perform the initialize handshake."""
        self._transport = self._create_transport()
        self._closing = False
        self._exit_error = None
        self._exited.clear()
        self._buffer.clear()
        try:
            await self._transport.start(on_data=self.feed, on_exit=self.connection_lost)
        except FatalProcessError:
            raise
        except Exception as exc:
            raise ConnectionError(str(exc)) from exc
        try:
            await self.initialize()
        except BaseException:
            await self.close()
            raise

    async def initialize(self) -> dict[str, Any]:
        """Send the reserved handshake request; no tool calls go out before it resolves."""
        try:
            result = await self.request(
                "initialize",
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {"tools": {}},
                    "clientInfo": {"name": CLIENT_NAME, "version": CLIENT_VERSION},
                },
            )
        except ProtocolError as exc:
            raise HandshakeError(str(exc)) from exc
        self.server_info = dict(result.get("serverInfo", {}))
        self._initialized = True
        logger.info("Handshake complete: %s", self.server_info or "unknown server")
        return result

    async def close(self) -> None:
        """Stop the server; anything still pending is rejected."""
        self._closing = True
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
        self._fail_all(TransportClosedError())
        self._initialized = False

    def _create_transport(self) -> StdioTransport:
        return StdioTransport(
            self._ref.command,
            self._ref.env,
            ready_marker=self._ref.ready_marker,
            shutdown_grace=self._ref.shutdown_grace,
        )

    # ------------------------------------------------------------------
    # Send path
    # ------------------------------------------------------------------

    def _next_id(self) -> int:
        self._last_id += 1
        return self._last_id

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send one request and wait for its correlated result.

        Raises:
            RequestTimeoutError: No response within *timeout* seconds.
            RemoteError: The server answered with an error record.
            ServerExitedError: The server process died.
        """
        if self._exit_error is not None:
            raise self._exit_error
        transport = self._transport
        if transport is None:
            msg = "Client not connected"
            raise RuntimeError(msg)
        if method != "initialize" and not self._initialized:
            msg = f"Cannot send {method!r} before the initialize handshake completes"
            raise ProtocolError(msg)

        effective_timeout = self._request_timeout if timeout is None else timeout
        request_id = self._next_id()
        request = JsonRpcRequest(method=method, id=request_id, params=params or {})

        with _tracer.start_as_current_span("rpc.request") as span:
            span.set_attribute(ATTR_RPC_METHOD, method)
            span.set_attribute(ATTR_RPC_ID, request_id)

            loop = asyncio.get_running_loop()
            future: asyncio.Future[dict[str, Any]] = loop.create_future()
            timer = loop.call_later(effective_timeout, self._expire, request_id, effective_timeout)
            self._pending[request_id] = PendingRequest(request_id, method, future, timer)

            try:
                await transport.write(encode_message(request.model_dump()))
            except ServerExitedError as exc:
                self._forget(request_id)
                raise self._exit_error or exc

            try:
                return await future
            except asyncio.CancelledError:
                self._forget(request_id)
                raise

    # ------------------------------------------------------------------
    # Receive / timeout / exit paths
    # ------------------------------------------------------------------

    def feed(self, chunk: bytes) -> None:
        """Accept a raw chunk of server stdout; complete lines are dispatched."""
        for line in self._buffer.feed(chunk):
            self._handle_line(line)

    def _handle_line(self, line: bytes) -> None:
        try:
            response = JsonRpcResponse.model_validate_json(line)
        except ValidationError:
            logger.debug("Discarding malformed line from server: %r", line[:200])
            return

        if response.id is None:
            logger.debug("Discarding response without id: %s", response.error)
            return
        entry = self._pending.get(response.id)
        if entry is None:
            logger.debug("Discarding response for unknown id %s", response.id)
            return

        entry.timer.cancel()
        del self._pending[response.id]
        if entry.future.done():
            return
        if response.error is not None:
            entry.future.set_exception(RemoteError(response.error.code, response.error.message))
        else:
            entry.future.set_result(response.result or {})

    def _expire(self, request_id: int, timeout: float) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None or entry.future.done():
            return
        logger.warning("Request %s (%s) timed out after %ss", request_id, entry.method, timeout)
        entry.future.set_exception(RequestTimeoutError(entry.method, request_id, timeout))

    def connection_lost(self, returncode: int | None) -> None:
        """Called once by the transport when the server process has ended."""
        if self._closing:
            self._fail_all(TransportClosedError())
            return
        logger.error("Tool server exited unexpectedly (code: %s)", returncode)
        self._exit_error = ServerExitedError(returncode)
        self._initialized = False
        self._fail_all(self._exit_error)
        self._exited.set()

    def _forget(self, request_id: int) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is not None:
            entry.timer.cancel()

    def _fail_all(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(error)

    # ------------------------------------------------------------------
    # Tool layer
    # ------------------------------------------------------------------

    async def list_tools(self, *, refresh: bool = False) -> list[MCPToolDef]:
        """Send ``tools/list`` and cache the descriptors."""
        if self._tools is None or refresh:
            result = await self.request("tools/list")
            raw_tools: list[dict[str, Any]] = result.get("tools", [])
            self._tools = [MCPToolDef.model_validate(raw) for raw in raw_tools]
        return list(self._tools)

    async def function_schemas(self) -> list[dict[str, Any]]:
        """Discovered tools as OpenAI-compatible function schemas."""
        return [self._to_function_schema(tool) for tool in await self.list_tools()]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Send ``tools/call`` and decode the text payload.

        JSON payloads are returned decoded; anything else is returned as text.
        """
        with _tracer.start_as_current_span("tool.call") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            raw = await self.request(
                "tools/call",
                {"name": name, "arguments": arguments or {}},
            )
            result = CallToolResult.model_validate(raw)
            text = result.text
            if result.is_error:
                detail = _error_detail(text)
                span.set_attribute(ATTR_TOOL_ERROR, detail)
                raise ToolExecutionError(name, detail)

        if not result.content:
            return raw
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text

    @staticmethod
    def _to_function_schema(tool_def: MCPToolDef) -> dict[str, Any]:
        """Convert an MCPToolDef to an OpenAI-compatible function schema."""
        return {
            "type": "function",
            "function": {
                "name": tool_def.name,
                "description": tool_def.description,
                "parameters": tool_def.input_schema or {"type": "object", "properties": {}},
            },
        }


def _error_detail(text: str) -> str:
    """Pull the message out of an ``{"error": ...}`` payload when present."""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(payload, dict) and "error" in payload:
        return str(payload["error"])
    return text
