"""Newline-delimited JSON framing shared by the client and the listener.

One record is one line: compact JSON never contains a raw newline, so a
``\\n`` always ends a record.
"""

from __future__ import annotations

import json
from typing import Any


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize *message* as a single UTF-8 line terminated by ``\\n``."""
    return (json.dumps(message, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


class LineBuffer:
    """Reassembles arbitrary byte chunks into complete lines.

    Chunk boundaries may fall anywhere, including inside a multi-byte UTF-8
    sequence; bytes are only decoded by the caller once a line is complete.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """The trailing partial line held back for the next chunk."""
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        """Append *chunk* and return every line it completes."""
        self._buffer.extend(chunk)
        lines: list[bytes] = []
        while True:
            index = self._buffer.find(b"\n")
            if index < 0:
                break
            line = bytes(self._buffer[:index]).rstrip(b"\r")
            del self._buffer[: index + 1]
            if line.strip():
                lines.append(line)
        return lines

    def clear(self) -> None:
        self._buffer.clear()
