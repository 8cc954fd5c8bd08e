"""Tests for the JSON-RPC and MCP wire models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from notionchat.protocols.mcp.models import (
    METHOD_NOT_FOUND,
    CallToolResult,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
)


class TestJsonRpcRequest:
    def test_defaults(self) -> None:
        request = JsonRpcRequest(method="tools/list", id=7)
        assert request.model_dump() == {"jsonrpc": "2.0", "method": "tools/list", "id": 7, "params": {}}


class TestJsonRpcResponse:
    def test_success_wire_has_no_error_member(self) -> None:
        wire = JsonRpcResponse.success(3, {"tools": []}).to_wire()
        assert wire == {"jsonrpc": "2.0", "id": 3, "result": {"tools": []}}

    def test_failure_wire_has_no_result_member(self) -> None:
        wire = JsonRpcResponse.failure(4, METHOD_NOT_FOUND, "Method not found: x").to_wire()
        assert wire == {
            "jsonrpc": "2.0",
            "id": 4,
            "error": {"code": -32601, "message": "Method not found: x"},
        }

    def test_requires_exactly_one_outcome(self) -> None:
        with pytest.raises(ValidationError):
            JsonRpcResponse(id=1)
        with pytest.raises(ValidationError):
            JsonRpcResponse.model_validate(
                {"id": 1, "result": {}, "error": {"code": -32603, "message": "x"}}
            )

    def test_null_id_allowed_for_unreadable_requests(self) -> None:
        response = JsonRpcResponse.model_validate_json(
            '{"jsonrpc":"2.0","id":null,"error":{"code":-32700,"message":"Parse error"}}'
        )
        assert response.id is None
        assert response.error is not None


class TestMCPToolDef:
    def test_input_schema_alias(self) -> None:
        tool = MCPToolDef.model_validate(
            {"name": "list_all_pages", "description": "List", "inputSchema": {"type": "object"}}
        )
        assert tool.input_schema == {"type": "object"}


class TestCallToolResult:
    def test_success_omits_error_flag(self) -> None:
        assert CallToolResult.from_text("[]").to_wire() == {"content": [{"type": "text", "text": "[]"}]}

    def test_error_flag_on_wire(self) -> None:
        wire = CallToolResult.from_text('{"error": "boom"}', is_error=True).to_wire()
        assert wire["isError"] is True

    def test_parses_wire_shape(self) -> None:
        result = CallToolResult.model_validate(
            {"content": [{"type": "text", "text": "hello"}], "isError": True}
        )
        assert result.is_error
        assert result.text == "hello"
