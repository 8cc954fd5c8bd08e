"""notionchat — chat with a Notion workspace through a stdio JSON-RPC tool server."""

from __future__ import annotations

__version__ = "0.1.0"
