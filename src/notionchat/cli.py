"""notionchat CLI entrypoint."""

from __future__ import annotations

import click

from notionchat import __version__


@click.group()
@click.version_option(version=__version__, prog_name="notionchat")
def main() -> None:
    """notionchat — ask questions about your Notion workspace."""


# Register subcommands
from notionchat.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
