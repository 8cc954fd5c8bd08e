"""``python -m notionchat.server`` — the tool server process spawned by the chat client."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path

from notionchat.config import ENV_CONFIG, ConfigError, load_settings
from notionchat.server.listener import run_server
from notionchat.utils.logs import configure_logging

logger = logging.getLogger("notionchat.server")


def main(config_path: Path | None = None) -> None:
    """Load settings and serve on stdio; exit with status 1 if start-up fails."""
    if config_path is None and os.environ.get(ENV_CONFIG):
        config_path = Path(os.environ[ENV_CONFIG])

    try:
        settings = load_settings(config_path)
    except ConfigError as exc:
        configure_logging()
        logger.error("Server start error: %s", exc)
        sys.exit(1)

    configure_logging(settings.log_level)

    try:
        asyncio.run(run_server(settings))
    except KeyboardInterrupt:
        pass
    except (ValueError, OSError) as exc:
        logger.error("Server start error: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
