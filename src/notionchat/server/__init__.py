"""Tool server — exposes Notion search tools over JSON-RPC on stdio."""

from notionchat.server.executor import ToolExecutor, clamp_limit
from notionchat.server.listener import ListenerState, RPCListener, run_server
from notionchat.server.notion import ContentProvider, NotionProvider
from notionchat.server.registry import TOOLS, ToolDescriptor, get_tool, list_tools

__all__ = [
    "TOOLS",
    "ContentProvider",
    "ListenerState",
    "NotionProvider",
    "RPCListener",
    "ToolDescriptor",
    "ToolExecutor",
    "clamp_limit",
    "get_tool",
    "list_tools",
    "run_server",
]
