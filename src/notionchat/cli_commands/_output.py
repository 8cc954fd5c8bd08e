"""Shared CLI output formatters and session helpers."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from notionchat.config import ENV_CONFIG, ConfigError, Settings, load_settings
from notionchat.protocols.mcp.client import ServerRef, default_server_command
from notionchat.protocols.mcp.models import MCPToolDef  # noqa: TC001

console = Console()


def load_or_exit(config: str | None) -> Settings:
    """Load settings, printing the error and exiting with status 1 on failure."""
    try:
        return load_settings(Path(config) if config else None)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        sys.exit(1)


def server_ref(settings: Settings, config: str | None = None) -> ServerRef:
    """How to spawn the tool server; the child inherits our environment."""
    env = dict(os.environ)
    if config:
        env[ENV_CONFIG] = str(Path(config).resolve())
    if settings.notion.token:
        env.setdefault("NOTION_TOKEN", settings.notion.token)
    return ServerRef(
        command=settings.rpc.server_command or default_server_command(),
        env=env,
        ready_marker=settings.rpc.ready_marker,
        shutdown_grace=settings.rpc.shutdown_grace,
    )


def print_tools_table(tools: list[MCPToolDef]) -> None:
    """Pretty-print the tool catalog as a table."""
    table = Table(title="Notion Tools")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Description")
    table.add_column("Arguments")

    for tool in tools:
        properties: dict[str, Any] = tool.input_schema.get("properties", {})
        required = set(tool.input_schema.get("required", []))
        arguments = ", ".join(f"{name}*" if name in required else name for name in properties) or "-"
        table.add_row(tool.name, _truncate(tool.description), arguments)

    console.print(table)


def print_payload(payload: Any) -> None:
    """Print a tool payload: JSON structures highlighted, text as-is."""
    if isinstance(payload, (dict, list)):
        console.print_json(json.dumps(payload, ensure_ascii=False, default=str))
    else:
        console.print(str(payload), markup=False, highlight=False)


def print_answer(answer: str) -> None:
    console.print()
    console.rule("Answer")
    console.print(Markdown(answer))
    console.rule()
    console.print()


def _truncate(text: str, max_len: int = 80) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."
