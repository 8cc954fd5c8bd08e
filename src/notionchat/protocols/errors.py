"""Shared error types for the protocol layer."""


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""


class ConnectionError(ProtocolError):
    """Failed to connect to the tool server."""


class FatalProcessError(ConnectionError):
    """The tool server cannot make further progress; the client must stop."""


class ServerStartError(FatalProcessError):
    """The tool server process could not be spawned."""

    def __init__(self, command: list[str], detail: str = "") -> None:
        self.command = command
        self.detail = detail
        msg = f"Failed to start tool server: {' '.join(command)}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class HandshakeError(FatalProcessError):
    """The ``initialize`` handshake did not complete."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Handshake with tool server failed" + (f": {detail}" if detail else ""))


class ServerExitedError(FatalProcessError):
    """The tool server process terminated during the session."""

    def __init__(self, returncode: int | None) -> None:
        self.returncode = returncode
        super().__init__(f"Tool server exited unexpectedly (code: {returncode})")


class TransportClosedError(ProtocolError):
    """The transport was closed locally while requests were outstanding."""

    def __init__(self) -> None:
        super().__init__("Transport closed")


class RequestTimeoutError(ProtocolError):
    """No response arrived for a request within its timeout window."""

    def __init__(self, method: str, request_id: int, timeout: float) -> None:
        self.method = method
        self.request_id = request_id
        self.timeout = timeout
        super().__init__(f"Request timed out: {method} (id {request_id}) after {timeout}s")


class RemoteError(ProtocolError):
    """The server answered a request with a JSON-RPC error record."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"Remote error {code}: {message}")


class ToolNotFoundError(ProtocolError):
    """Requested tool does not exist in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolExecutionError(ProtocolError):
    """A tool invocation failed at the server side."""

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Tool execution failed: {name}" + (f": {detail}" if detail else ""))


class InvalidArgumentsError(ProtocolError):
    """Tool arguments did not match the tool's input schema."""

    def __init__(self, name: str, detail: str = "") -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"Invalid arguments for {name}" + (f": {detail}" if detail else ""))


class ProviderError(Exception):
    """The content provider failed or returned an unexpected shape."""
