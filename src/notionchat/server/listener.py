"""RPCListener — answers JSON-RPC requests read line by line from a stream.

Each request line produces exactly one response line.  ``tools/call``
requests may complete out of order (every line is dispatched as its own
task), so responses are written under a lock: a record is written and
drained whole before the next one starts.  No exception crosses the
process boundary; failures become error records or error-flagged results.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import sys
from collections.abc import Awaitable, Callable, Mapping
from types import MappingProxyType
from typing import Any

from notionchat import __version__
from notionchat.config import Settings
from notionchat.protocols.mcp.framing import encode_message
from notionchat.protocols.mcp.models import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    PROTOCOL_VERSION,
    CallToolResult,
    JsonRpcResponse,
)
from notionchat.server.executor import ToolExecutor
from notionchat.server.notion import NotionProvider
from notionchat.server.registry import list_tools

logger = logging.getLogger(__name__)

SERVER_NAME = "notion-server"
READY_MESSAGE = "Notion MCP Server started and connected"

# Generous line limit: tools/call payloads can carry long page content.
STREAM_LIMIT = 16 * 1024 * 1024

MethodHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


class InvalidParamsError(Exception):
    """The ``params`` of a request do not have the expected shape."""


class ListenerState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    TERMINATED = "terminated"


class RPCListener:
    """Dispatches ``initialize``, ``tools/list``, ``tools/call`` and ``ping``.

    Usage::

        listener = RPCListener(ToolExecutor(provider))
        reader, writer = await open_stdio_streams()
        await listener.serve(reader, writer)
    """

    def __init__(
        self,
        executor: ToolExecutor,
        *,
        server_name: str = SERVER_NAME,
        server_version: str = __version__,
    ) -> None:
        self._executor = executor
        self._server_name = server_name
        self._server_version = server_version
        self._state = ListenerState.UNINITIALIZED
        self._in_flight = 0
        self._methods: Mapping[str, MethodHandler] = MappingProxyType({
            "initialize": self._initialize,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "ping": self._ping,
        })

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def in_flight(self) -> int:
        """Requests currently being dispatched."""
        return self._in_flight

    @property
    def methods(self) -> Mapping[str, MethodHandler]:
        return self._methods

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Read request lines until EOF, answering each one."""
        write_lock = asyncio.Lock()
        tasks: set[asyncio.Task[None]] = set()

        async def write(record: dict[str, Any]) -> None:
            async with write_lock:
                try:
                    writer.write(encode_message(record))
                    await writer.drain()
                except ConnectionError as exc:
                    logger.warning("Could not write response: %s", exc)

        async def respond(line: bytes) -> None:
            record = await self.handle_line(line)
            if record is not None:
                await write(record)

        while True:
            try:
                line = await reader.readuntil(b"\n")
            except asyncio.IncompleteReadError as exc:
                line = exc.partial
            except asyncio.LimitOverrunError as exc:
                logger.error("Request line rejected: %s", exc)
                await _discard_line(reader, exc.consumed)
                await write(JsonRpcResponse.failure(None, PARSE_ERROR, "Parse error: request line too long").to_wire())
                continue
            if not line:
                break
            if not line.strip():
                continue
            task = asyncio.create_task(respond(line))
            tasks.add(task)
            task.add_done_callback(tasks.discard)

        if tasks:
            await asyncio.gather(*tasks)
        self._state = ListenerState.TERMINATED
        logger.info("Input closed, listener terminated")

    async def handle_line(self, line: bytes | str) -> dict[str, Any] | None:
        """Turn one request line into one response record.

        Returns ``None`` for notifications (requests without an ``id``).
        """
        try:
            data: Any = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return JsonRpcResponse.failure(None, PARSE_ERROR, f"Parse error: {exc}").to_wire()

        if not isinstance(data, dict):
            return JsonRpcResponse.failure(None, INVALID_REQUEST, "Invalid request: not an object").to_wire()

        raw_id = data.get("id")
        request_id = raw_id if isinstance(raw_id, int) and not isinstance(raw_id, bool) else None
        method = data.get("method")
        if not isinstance(method, str):
            return JsonRpcResponse.failure(request_id, INVALID_REQUEST, "Invalid request: missing method").to_wire()
        if "id" not in data:
            logger.debug("Notification received: %s", method)
            return None
        if request_id is None:
            return JsonRpcResponse.failure(None, INVALID_REQUEST, "Invalid request: id must be an integer").to_wire()

        handler = self._methods.get(method)
        if handler is None:
            return JsonRpcResponse.failure(request_id, METHOD_NOT_FOUND, f"Method not found: {method}").to_wire()

        params = data.get("params") or {}
        if not isinstance(params, dict):
            return JsonRpcResponse.failure(request_id, INVALID_PARAMS, "params must be an object").to_wire()

        self._in_flight += 1
        try:
            result = await handler(params)
        except InvalidParamsError as exc:
            return JsonRpcResponse.failure(request_id, INVALID_PARAMS, str(exc)).to_wire()
        except Exception as exc:
            logger.exception("Unhandled error in %s", method)
            return JsonRpcResponse.failure(request_id, INTERNAL_ERROR, f"Internal error: {exc}").to_wire()
        finally:
            self._in_flight -= 1
        return JsonRpcResponse.success(request_id, result).to_wire()

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        client = params.get("clientInfo") or {}
        logger.info("Initialize from %s", client.get("name", "unknown client") if isinstance(client, dict) else client)
        self._state = ListenerState.READY
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": self._server_name, "version": self._server_version},
        }

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [descriptor.to_wire() for descriptor in list_tools()]}

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        name = params.get("name")
        if not isinstance(name, str) or not name:
            msg = "tools/call requires a tool 'name'"
            raise InvalidParamsError(msg)
        arguments = params.get("arguments")
        if arguments is not None and not isinstance(arguments, dict):
            msg = "tools/call 'arguments' must be an object"
            raise InvalidParamsError(msg)

        try:
            output = await self._executor.execute(name, arguments)
        except Exception as exc:
            logger.error("Tool %s error: %s", name, exc)
            text = json.dumps({"error": str(exc)}, ensure_ascii=False)
            return CallToolResult.from_text(text, is_error=True).to_wire()

        text = output if isinstance(output, str) else json.dumps(output, ensure_ascii=False)
        return CallToolResult.from_text(text).to_wire()

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}


async def _discard_line(reader: asyncio.StreamReader, consumed: int) -> None:
    """Drop the rest of an oversized line, up to and including its newline."""
    try:
        while True:
            await reader.readexactly(consumed)
            try:
                await reader.readuntil(b"\n")
                return
            except asyncio.LimitOverrunError as exc:
                consumed = exc.consumed
    except asyncio.IncompleteReadError:
        return


async def open_stdio_streams(
    limit: int = STREAM_LIMIT,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap this process's stdin/stdout as asyncio streams."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


async def run_server(settings: Settings) -> None:
    """Serve the tool catalog on this process's stdin/stdout until EOF.

    Raises:
        ValueError: No Notion token is configured.
    """
    async with NotionProvider(settings.notion) as provider:
        executor = ToolExecutor(
            provider,
            max_page_size=settings.notion.max_page_size,
            preview_length=settings.chat.preview_length,
        )
        listener = RPCListener(executor)
        reader, writer = await open_stdio_streams()
        print(READY_MESSAGE, file=sys.stderr, flush=True)
        try:
            await listener.serve(reader, writer)
        finally:
            writer.close()
