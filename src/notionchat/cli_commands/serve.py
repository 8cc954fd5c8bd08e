"""``notionchat serve`` — run the tool server on stdin/stdout."""

from __future__ import annotations

import click


@click.command()
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), default=None, help="Settings YAML file.")
def serve(config: str | None) -> None:
    """Serve the Notion tools over JSON-RPC on stdio.

    Normally spawned by ``notionchat chat``; stdout carries protocol records
    only, diagnostics go to stderr.
    """
    from pathlib import Path

    from notionchat.server.__main__ import main as run

    run(Path(config) if config else None)
