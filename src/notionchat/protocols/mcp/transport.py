"""StdioTransport — spawns the tool server and owns its three pipes.

The transport only moves bytes.  Chunks read from the child's stdout are
handed to ``on_data`` exactly as they arrive; reassembling them into
records is the client's job.  The child's stderr is diagnostic only: it is
logged and watched for an advisory readiness marker, never parsed as
protocol data.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from notionchat.protocols.errors import ServerExitedError, ServerStartError
from notionchat.protocols.mcp.framing import LineBuffer

logger = logging.getLogger(__name__)

DEFAULT_READY_MARKER = "Notion MCP Server started"

_READ_CHUNK_SIZE = 64 * 1024
_MAX_LOGGED_LINE = 2000

DataCallback = Callable[[bytes], None]
ExitCallback = Callable[[int | None], None]


class StdioTransport:
    """Communicates with the tool server via subprocess stdin/stdout.

    Usage::

        transport = StdioTransport([sys.executable, "-m", "notionchat.server"])
        await transport.start(on_data=client.feed, on_exit=client.connection_lost)
        await transport.write(b'{"jsonrpc":"2.0",...}\\n')
        await transport.close()
    """

    def __init__(
        self,
        command: list[str],
        env: dict[str, str] | None = None,
        *,
        ready_marker: str = DEFAULT_READY_MARKER,
        shutdown_grace: float = 5.0,
    ) -> None:
        self._command = command
        self._env = env
        self._ready_marker = ready_marker
        self._shutdown_grace = shutdown_grace
        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._exit_reported = False
        self.ready = asyncio.Event()

    @property
    def command(self) -> list[str]:
        return list(self._command)

    @property
    def returncode(self) -> int | None:
        return self._process.returncode if self._process is not None else None

    def is_alive(self) -> bool:
        """Check if the subprocess is running."""
        return self._process is not None and self._process.returncode is None

    async def start(self, on_data: DataCallback, on_exit: ExitCallback) -> None:
        """Launch the subprocess and start pumping its output streams."""
        logger.info("Starting tool server: %s", " ".join(self._command))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
            )
        except OSError as exc:
            raise ServerStartError(self._command, str(exc)) from exc

        self._exit_reported = False
        self._tasks = [
            asyncio.create_task(self._pump_stdout(on_data, on_exit)),
            asyncio.create_task(self._pump_stderr()),
        ]

    async def write(self, data: bytes) -> None:
        """Write raw bytes to the child's stdin and drain."""
        process = self._process
        if process is None or process.stdin is None:
            msg = "Transport not connected"
            raise RuntimeError(msg)
        try:
            process.stdin.write(data)
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise ServerExitedError(process.returncode) from exc

    async def close(self) -> None:
        """Close stdin, terminate the subprocess and stop the pumps."""
        process = self._process
        if process is None:
            return
        self._process = None

        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self._shutdown_grace)
            except TimeoutError:
                logger.warning("Tool server did not stop within %ss, killing", self._shutdown_grace)
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Tool server stopped")

    async def _pump_stdout(self, on_data: DataCallback, on_exit: ExitCallback) -> None:
        process = self._process
        assert process is not None and process.stdout is not None
        while True:
            chunk = await process.stdout.read(_READ_CHUNK_SIZE)
            if not chunk:
                break
            on_data(chunk)
        returncode = await process.wait()
        self._report_exit(on_exit, returncode)

    async def _pump_stderr(self) -> None:
        # Chunked reads: a diagnostic line of any length must not stop the drain.
        process = self._process
        assert process is not None and process.stderr is not None
        buffer = LineBuffer()
        while True:
            chunk = await process.stderr.read(_READ_CHUNK_SIZE)
            if not chunk:
                break
            for raw in buffer.feed(chunk):
                self._diagnostic(raw)
        if buffer.pending:
            self._diagnostic(buffer.pending)

    def _diagnostic(self, raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").rstrip()
        if not line:
            return
        if self._ready_marker and self._ready_marker in line:
            logger.info("Tool server ready")
            self.ready.set()
        else:
            logger.debug("server: %s", line[:_MAX_LOGGED_LINE])

    def _report_exit(self, on_exit: ExitCallback, returncode: int | None) -> None:
        if self._exit_reported:
            return
        self._exit_reported = True
        on_exit(returncode)
