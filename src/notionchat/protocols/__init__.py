"""Protocol layer — JSON-RPC over stdio between the chat client and the tool server."""

from notionchat.protocols.errors import (
    ConnectionError,
    FatalProcessError,
    HandshakeError,
    InvalidArgumentsError,
    ProtocolError,
    ProviderError,
    RemoteError,
    RequestTimeoutError,
    ServerExitedError,
    ServerStartError,
    ToolExecutionError,
    ToolNotFoundError,
    TransportClosedError,
)

__all__ = [
    "ConnectionError",
    "FatalProcessError",
    "HandshakeError",
    "InvalidArgumentsError",
    "ProtocolError",
    "ProviderError",
    "RemoteError",
    "RequestTimeoutError",
    "ServerExitedError",
    "ServerStartError",
    "ToolExecutionError",
    "ToolNotFoundError",
    "TransportClosedError",
]
