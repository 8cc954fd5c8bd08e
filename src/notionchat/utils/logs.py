"""Logging setup shared by the chat client and the tool server.

Both processes log to stderr only: the tool server's stdout carries
protocol records, and the chat client's stdout carries answers.
"""

from __future__ import annotations

import logging
import sys

_NOISY_LOGGERS = ("httpx", "httpcore", "LiteLLM", "litellm")


def configure_logging(level: str = "WARNING", *, use_rich: bool = False) -> None:
    """Route the root logger to stderr at *level*.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        use_rich: Render records with a Rich handler (interactive chat).
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.WARNING

    handler: logging.Handler
    if use_rich:
        from rich.console import Console
        from rich.logging import RichHandler

        handler = RichHandler(console=Console(stderr=True), show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(name)s | %(message)s"))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))
