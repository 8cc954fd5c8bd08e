"""``notionchat chat`` — interactive question loop against the workspace."""

from __future__ import annotations

import asyncio
import contextlib
import os
import sys
import threading
from typing import TYPE_CHECKING

import click

from notionchat.cli_commands._output import console, load_or_exit, print_answer, server_ref
from notionchat.config import Settings
from notionchat.protocols.errors import FatalProcessError, ServerExitedError

if TYPE_CHECKING:
    from notionchat.protocols.mcp.client import MCPClient

EXIT_WORDS = frozenset({"exit", "quit"})


@click.command()
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), default=None, help="Settings YAML file.")
@click.option("--model", "-m", default=None, help="LiteLLM model name, e.g. openai/o3-mini.")
@click.option("--timeout", type=float, default=None, help="Per-request timeout in seconds.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--telemetry", is_flag=True, help="Enable telemetry.")
def chat(
    config: str | None,
    model: str | None,
    timeout: float | None,
    verbose: bool,
    telemetry: bool,
) -> None:
    """Ask questions about your Notion workspace."""
    from notionchat.utils.logs import configure_logging

    settings = load_or_exit(config)
    if model:
        settings.model.model = model
    if timeout:
        settings.rpc.request_timeout = timeout

    configure_logging("DEBUG" if verbose else settings.log_level, use_rich=True)

    if telemetry:
        from notionchat.utils.telemetry import configure_telemetry

        endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
        try:
            configure_telemetry(export_to_console=endpoint is None, otlp_endpoint=endpoint)
        except ImportError as exc:
            console.print(f"[red]Telemetry error:[/red] {exc}")
            sys.exit(1)

    try:
        asyncio.run(_session(settings, config))
    except FatalProcessError as exc:
        console.print(f"[red]Tool server error:[/red] {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\nBye.")


async def _session(settings: Settings, config: str | None) -> None:
    from notionchat.chat.orchestrator import ConversationOrchestrator
    from notionchat.core.interface.client import ModelClient
    from notionchat.protocols.mcp.client import MCPClient

    console.print("Starting tool server...")
    async with MCPClient(server_ref(settings, config), request_timeout=settings.rpc.request_timeout) as client:
        console.print("[green]Tool server ready.[/green]")
        orchestrator = ConversationOrchestrator(ModelClient(settings.model), client, settings.chat)

        console.print(f"Welcome to Notion chat ({settings.model.model}).")
        console.print('Ask anything about your workspace, e.g. "show me 3 page titles only", "recent pages".')
        console.print('Type "exit" or "quit" to leave.\n')

        while True:
            line = await _next_line(client)
            if line is None:
                break
            message = line.strip()
            if message.lower() in EXIT_WORDS:
                break
            if not message:
                continue

            console.print("Thinking...")
            try:
                answer = await orchestrator.answer(message)
            except FatalProcessError:
                raise
            except Exception as exc:
                console.print(f"[red]Error:[/red] {exc}")
                continue
            print_answer(answer)

    console.print("Bye.")


async def _next_line(client: MCPClient) -> str | None:
    """The next line typed by the user, or ``None`` at end of input.

    Raises the server's exit error if the tool server dies while we wait.
    """
    line = _read_line("[bold]Question:[/bold] ")
    exited = asyncio.ensure_future(client.exited.wait())
    try:
        done, _ = await asyncio.wait({line, exited}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        exited.cancel()

    if line not in done:
        line.cancel()
        raise client.exit_error or ServerExitedError(None)
    try:
        return line.result()
    except EOFError:
        return None


def _read_line(prompt: str) -> asyncio.Future[str]:
    # A daemon thread, so a prompt still blocked on stdin never holds up exit.
    loop = asyncio.get_running_loop()
    future: asyncio.Future[str] = loop.create_future()

    def settle(result: str | None, error: BaseException | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result or "")

    def read() -> None:
        try:
            result = console.input(prompt)
        except Exception as exc:
            outcome: tuple[str | None, BaseException | None] = (None, exc)
        else:
            outcome = (result, None)
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(settle, *outcome)

    threading.Thread(target=read, name="chat-input", daemon=True).start()
    return future
