"""Tests for MCPClient correlation, timeouts and process-exit handling."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fakes import FakeTransport

from notionchat.protocols.errors import (
    ConnectionError,
    HandshakeError,
    ProtocolError,
    RemoteError,
    RequestTimeoutError,
    ServerExitedError,
    ServerStartError,
    ToolExecutionError,
    TransportClosedError,
)
from notionchat.protocols.mcp.client import MCPClient, ServerRef, default_server_command
from notionchat.protocols.mcp.framing import encode_message
from notionchat.utils.telemetry import ATTR_TOOL_ERROR


async def _settle() -> None:
    for _ in range(3):
        await asyncio.sleep(0)


async def _answer_next(transport: FakeTransport, result: dict[str, Any]) -> None:
    await _settle()
    transport.respond(transport.last_id(), result)


def _tools_list_result() -> dict[str, Any]:
    return {
        "tools": [
            {
                "name": "search_notion",
                "description": "Search through Notion workspace using keywords",
                "inputSchema": {
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "required": ["query"],
                },
            },
            {"name": "list_all_pages", "description": "List all pages in the workspace", "inputSchema": {}},
        ]
    }


def _text_result(text: str, *, is_error: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


class TestServerRef:
    def test_default_command_runs_bundled_server(self) -> None:
        ref = ServerRef()
        assert ref.command == default_server_command()
        assert ref.command[-2:] == ["-m", "notionchat.server"]


class TestConnect:
    async def test_connect_performs_handshake(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        first = fake_transport.sent[0]
        assert first["method"] == "initialize"
        assert first["id"] == 1
        assert first["params"]["protocolVersion"] == "2024-11-05"
        assert first["params"]["clientInfo"] == {"name": "notion-chat-client", "version": "1.0.0"}
        assert client.initialized
        assert client.server_info["name"] == "notion-server"

    async def test_start_failure_is_wrapped(self) -> None:
        transport = MagicMock()
        transport.start = AsyncMock(side_effect=RuntimeError("spawn failed"))

        with (
            patch.object(MCPClient, "_create_transport", return_value=transport),
            pytest.raises(ConnectionError, match="spawn failed"),
        ):
            await MCPClient().connect()

    async def test_server_start_error_propagates(self) -> None:
        transport = MagicMock()
        transport.start = AsyncMock(side_effect=ServerStartError(["missing-binary"], "not found"))

        with (
            patch.object(MCPClient, "_create_transport", return_value=transport),
            pytest.raises(ServerStartError),
        ):
            await MCPClient().connect()

    async def test_handshake_error_reply(self) -> None:
        transport = FakeTransport(auto_initialize=False)
        with patch.object(MCPClient, "_create_transport", return_value=transport):
            client = MCPClient(request_timeout=1.0)
            task = asyncio.create_task(client.connect())
            await _settle()
            transport.respond_error(1, -32603, "boom")

            with pytest.raises(HandshakeError, match="boom"):
                await task
        assert not client.initialized
        assert transport.closed

    async def test_handshake_timeout_closes_transport(self) -> None:
        transport = FakeTransport(auto_initialize=False)
        with patch.object(MCPClient, "_create_transport", return_value=transport):
            client = MCPClient(request_timeout=0.05)
            with pytest.raises(HandshakeError):
                await client.connect()

        assert transport.closed
        assert not client.pending_ids
        assert not client.exited.is_set()

    async def test_server_exit_during_handshake(self) -> None:
        transport = FakeTransport(auto_initialize=False)
        with patch.object(MCPClient, "_create_transport", return_value=transport):
            client = MCPClient(request_timeout=1.0)
            task = asyncio.create_task(client.connect())
            await _settle()
            transport.exit(1)

            with pytest.raises(HandshakeError):
                await task

    async def test_context_manager_closes_transport(self, fake_transport: FakeTransport) -> None:
        with patch.object(MCPClient, "_create_transport", return_value=fake_transport):
            async with MCPClient() as client:
                assert client.initialized
        assert fake_transport.closed
        assert not client.initialized


class TestRequestGate:
    async def test_request_without_connect_raises(self) -> None:
        with pytest.raises(RuntimeError, match="not connected"):
            await MCPClient().request("tools/list")

    async def test_requests_before_initialize_are_refused(self) -> None:
        transport = FakeTransport(auto_initialize=False)
        client = MCPClient()
        client._transport = transport  # type: ignore[assignment]

        with pytest.raises(ProtocolError, match="initialize"):
            await client.request("tools/list")
        assert transport.sent == []


class TestCorrelation:
    async def test_concurrent_requests_get_distinct_increasing_ids(
        self, client: MCPClient, fake_transport: FakeTransport
    ) -> None:
        tasks = [asyncio.create_task(client.request("ping")) for _ in range(5)]
        await _settle()

        ids = [record["id"] for record in fake_transport.sent[1:]]
        assert ids == [2, 3, 4, 5, 6]
        assert set(client.pending_ids) == set(ids)

        for request_id in reversed(ids):
            fake_transport.respond(request_id, {"echo": request_id})

        results = await asyncio.gather(*tasks)
        assert [result["echo"] for result in results] == ids
        assert not client.pending_ids

    async def test_ids_never_reused_after_completion(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        seen: list[int] = []
        for _ in range(3):
            task = asyncio.create_task(client.request("ping"))
            await _answer_next(fake_transport, {})
            await task
            seen.append(fake_transport.last_id())
        assert seen == sorted(set(seen))

    async def test_duplicate_response_is_discarded(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        task = asyncio.create_task(client.request("ping"))
        await _settle()
        request_id = fake_transport.last_id()

        fake_transport.respond(request_id, {"n": 1})
        fake_transport.respond(request_id, {"n": 2})

        assert await task == {"n": 1}
        assert not client.pending_ids

    async def test_unknown_malformed_and_null_id_lines_are_ignored(
        self, client: MCPClient, fake_transport: FakeTransport
    ) -> None:
        task = asyncio.create_task(client.request("ping"))
        await _settle()

        fake_transport.emit(b"this is not json\n")
        fake_transport.emit(b'{"jsonrpc":"2.0"}\n')
        fake_transport.respond(999, {"stray": True})
        fake_transport.respond_error(None, -32700, "Parse error")
        assert not task.done()
        assert set(client.pending_ids) == {fake_transport.last_id()}

        fake_transport.respond(fake_transport.last_id(), {"ok": True})
        assert await task == {"ok": True}

    async def test_split_line_is_reassembled(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        task = asyncio.create_task(client.request("ping"))
        await _settle()

        data = encode_message({"jsonrpc": "2.0", "id": fake_transport.last_id(), "result": {"title": "회의록"}})
        cut = data.index("회".encode()) + 1
        fake_transport.emit(data[:cut])
        await _settle()
        assert not task.done()

        fake_transport.emit(data[cut:])
        assert await task == {"title": "회의록"}

    async def test_two_records_in_one_chunk(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        first = asyncio.create_task(client.request("ping"))
        second = asyncio.create_task(client.request("ping"))
        await _settle()

        chunk = encode_message({"jsonrpc": "2.0", "id": 3, "result": {"n": 3}}) + encode_message(
            {"jsonrpc": "2.0", "id": 2, "result": {"n": 2}}
        )
        fake_transport.emit(chunk)

        assert await first == {"n": 2}
        assert await second == {"n": 3}

    async def test_error_reply_raises_remote_error(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        task = asyncio.create_task(client.request("resources/list"))
        await _settle()
        fake_transport.respond_error(fake_transport.last_id(), -32601, "Method not found: resources/list")

        with pytest.raises(RemoteError) as exc_info:
            await task
        assert exc_info.value.code == -32601
        assert not client.pending_ids


class TestTimeouts:
    async def test_request_times_out(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        with pytest.raises(RequestTimeoutError) as exc_info:
            await client.request("ping", timeout=0.05)

        assert exc_info.value.method == "ping"
        assert exc_info.value.timeout == 0.05
        assert not client.pending_ids

    async def test_late_reply_after_timeout_is_discarded(
        self, client: MCPClient, fake_transport: FakeTransport
    ) -> None:
        with pytest.raises(RequestTimeoutError):
            await client.request("ping", timeout=0.05)

        fake_transport.respond(fake_transport.last_id(), {"late": True})
        assert not client.pending_ids

        task = asyncio.create_task(client.request("ping"))
        await _answer_next(fake_transport, {"fresh": True})
        assert await task == {"fresh": True}

    async def test_cancelled_caller_drops_pending_entry(
        self, client: MCPClient, fake_transport: FakeTransport
    ) -> None:
        task = asyncio.create_task(client.request("ping"))
        await _settle()
        assert client.pending_ids

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert not client.pending_ids


class TestProcessExit:
    async def test_exit_rejects_every_pending_request(
        self, client: MCPClient, fake_transport: FakeTransport
    ) -> None:
        tasks = [asyncio.create_task(client.request("ping")) for _ in range(3)]
        await _settle()

        fake_transport.exit(1)

        for task in tasks:
            with pytest.raises(ServerExitedError) as exc_info:
                await task
            assert exc_info.value.returncode == 1
        assert not client.pending_ids
        assert not client.initialized
        assert client.exited.is_set()
        assert client.exit_error is not None

    async def test_requests_after_exit_fail_fast(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        fake_transport.exit(137)
        sent_before = len(fake_transport.sent)

        with pytest.raises(ServerExitedError, match="137"):
            await client.request("ping")
        assert len(fake_transport.sent) == sent_before

    async def test_close_rejects_pending_with_transport_closed(
        self, client: MCPClient, fake_transport: FakeTransport
    ) -> None:
        task = asyncio.create_task(client.request("ping"))
        await _settle()

        await client.close()

        with pytest.raises(TransportClosedError):
            await task
        assert fake_transport.closed


class TestToolLayer:
    async def test_list_tools_is_cached(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        task = asyncio.create_task(client.list_tools())
        await _answer_next(fake_transport, _tools_list_result())
        tools = await task

        assert [tool.name for tool in tools] == ["search_notion", "list_all_pages"]
        assert tools[0].input_schema["required"] == ["query"]

        sent_before = len(fake_transport.sent)
        again = await client.list_tools()
        assert [tool.name for tool in again] == ["search_notion", "list_all_pages"]
        assert len(fake_transport.sent) == sent_before

    async def test_function_schemas_follow_discovered_catalog(
        self, client: MCPClient, fake_transport: FakeTransport
    ) -> None:
        task = asyncio.create_task(client.function_schemas())
        await _answer_next(fake_transport, _tools_list_result())
        schemas = await task

        assert schemas[0] == {
            "type": "function",
            "function": {
                "name": "search_notion",
                "description": "Search through Notion workspace using keywords",
                "parameters": {
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "required": ["query"],
                },
            },
        }
        assert schemas[1]["function"]["parameters"] == {"type": "object", "properties": {}}

    async def test_call_tool_decodes_json_payload(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        pages = [{"id": "p1", "title": "Roadmap", "url": "https://www.notion.so/p1"}]
        task = asyncio.create_task(client.call_tool("get_page_titles_only", {"limit": 3}))
        await _answer_next(fake_transport, _text_result(json.dumps(pages)))

        assert await task == pages
        sent = fake_transport.sent[-1]
        assert sent["method"] == "tools/call"
        assert sent["params"] == {"name": "get_page_titles_only", "arguments": {"limit": 3}}

    async def test_call_tool_returns_plain_text(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        task = asyncio.create_task(client.call_tool("get_page_content", {"pageId": "p1"}))
        await _answer_next(fake_transport, _text_result("First line\nSecond line"))

        assert await task == "First line\nSecond line"

    async def test_call_tool_error_result_raises(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        task = asyncio.create_task(client.call_tool("not_a_tool"))
        await _answer_next(fake_transport, _text_result('{"error": "Unknown tool: not_a_tool"}', is_error=True))

        with pytest.raises(ToolExecutionError) as exc_info:
            await task
        assert exc_info.value.name == "not_a_tool"
        assert exc_info.value.detail == "Unknown tool: not_a_tool"

    async def test_call_tool_error_recorded_on_span(self, client: MCPClient, fake_transport: FakeTransport) -> None:
        with patch("notionchat.protocols.mcp.client._tracer") as tracer:
            task = asyncio.create_task(client.call_tool("not_a_tool"))
            await _answer_next(fake_transport, _text_result('{"error": "Unknown tool: not_a_tool"}', is_error=True))
            with pytest.raises(ToolExecutionError):
                await task

        span = tracer.start_as_current_span.return_value.__enter__.return_value
        span.set_attribute.assert_any_call(ATTR_TOOL_ERROR, "Unknown tool: not_a_tool")
