"""Text extraction from Notion page and block objects.

Both functions are total: any input, however malformed, yields a string.
"""

from __future__ import annotations

from typing import Any

UNTITLED = "Untitled"


def extract_title(page: Any) -> str:
    """Return the plain text of a page's title property, or ``"Untitled"``."""
    if not isinstance(page, dict):
        return UNTITLED
    properties = page.get("properties")
    if not isinstance(properties, dict):
        return UNTITLED

    for value in properties.values():
        if not isinstance(value, dict) or value.get("type") != "title":
            continue
        fragments = value.get("title")
        if isinstance(fragments, list) and fragments:
            first = fragments[0]
            text = first.get("plain_text") if isinstance(first, dict) else None
            return text if isinstance(text, str) and text else UNTITLED
        return UNTITLED
    return UNTITLED


def extract_block_text(block: Any) -> str:
    """Concatenate the rich-text fragments of a block, or return ``""``."""
    if not isinstance(block, dict):
        return ""
    block_type = block.get("type")
    if not isinstance(block_type, str) or not block_type:
        return ""
    data = block.get(block_type)
    if not isinstance(data, dict):
        return ""

    for key in ("rich_text", "text"):
        fragments = data.get(key)
        if isinstance(fragments, list):
            return "".join(_plain_text(fragment) for fragment in fragments)
    return ""


def _plain_text(fragment: Any) -> str:
    if isinstance(fragment, dict):
        text = fragment.get("plain_text")
        if isinstance(text, str):
            return text
    return ""
