"""``notionchat tools`` — inspect and invoke the tool server's catalog."""

from __future__ import annotations

import asyncio
import json
import sys
from typing import Any

import click

from notionchat.cli_commands._output import console, load_or_exit, print_payload, print_tools_table, server_ref


@click.group()
def tools() -> None:
    """Inspect and invoke Notion tools."""


@tools.command("list")
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), default=None, help="Settings YAML file.")
def list_cmd(config: str | None) -> None:
    """Spawn the tool server and print its tool catalog."""
    from notionchat.protocols.mcp.client import MCPClient
    from notionchat.protocols.mcp.models import MCPToolDef

    settings = load_or_exit(config)

    async def _list() -> list[MCPToolDef]:
        async with MCPClient(server_ref(settings, config), request_timeout=settings.rpc.request_timeout) as client:
            return await client.list_tools()

    try:
        catalog = asyncio.run(_list())
    except Exception as exc:
        console.print(f"[red]Discovery error:[/red] {exc}")
        sys.exit(1)

    if not catalog:
        console.print("[yellow]No tools discovered.[/yellow]")
        return

    print_tools_table(catalog)


@tools.command("call")
@click.argument("name")
@click.option("--args", "raw_args", default="{}", help="Tool arguments as a JSON object.")
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), default=None, help="Settings YAML file.")
def call_cmd(name: str, raw_args: str, config: str | None) -> None:
    """Invoke tool NAME once and print its payload."""
    from notionchat.protocols.errors import FatalProcessError
    from notionchat.protocols.mcp.client import MCPClient

    try:
        arguments: Any = json.loads(raw_args)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid --args:[/red] {exc}")
        sys.exit(2)
    if not isinstance(arguments, dict):
        console.print("[red]Invalid --args:[/red] expected a JSON object")
        sys.exit(2)

    settings = load_or_exit(config)

    async def _call() -> Any:
        async with MCPClient(server_ref(settings, config), request_timeout=settings.rpc.request_timeout) as client:
            return await client.call_tool(name, arguments)

    try:
        payload = asyncio.run(_call())
    except FatalProcessError as exc:
        console.print(f"[red]Tool server error:[/red] {exc}")
        sys.exit(1)
    except Exception as exc:
        console.print(f"[red]Tool error:[/red] {exc}")
        sys.exit(1)

    print_payload(payload)
