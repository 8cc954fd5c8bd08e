"""MCP protocol — JSON-RPC over stdio between the chat client and the tool server."""

from notionchat.protocols.mcp.client import MCPClient, PendingRequest, ServerRef
from notionchat.protocols.mcp.framing import LineBuffer, encode_message
from notionchat.protocols.mcp.models import (
    CallToolResult,
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPToolDef,
    TextContent,
)
from notionchat.protocols.mcp.transport import StdioTransport

__all__ = [
    "CallToolResult",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "LineBuffer",
    "MCPClient",
    "MCPToolDef",
    "PendingRequest",
    "ServerRef",
    "StdioTransport",
    "TextContent",
    "encode_message",
]
