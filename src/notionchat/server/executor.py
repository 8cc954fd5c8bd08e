"""ToolExecutor — runs a named tool against the content provider.

Provider failures never escape a handler: list-style tools degrade to an
empty list and the content tool to a fixed message, and the failure is
logged for operators.  Only an unknown tool name or undecodable arguments
raise, and the listener turns those into an error-flagged result.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from notionchat.protocols.errors import ProviderError
from notionchat.server.extract import extract_block_text, extract_title
from notionchat.server.notion import ContentProvider
from notionchat.server.registry import (
    AllPagesArgs,
    PageContentArgs,
    RecentPagesArgs,
    SearchArgs,
    TitlesArgs,
    ToolArguments,
    get_tool,
)
from notionchat.utils.telemetry import ATTR_TOOL_NAME, get_tracer

logger = logging.getLogger(__name__)

_tracer = get_tracer(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PREVIEW_LENGTH = 200

PREVIEW_BLOCKS = 3
CONTENT_BLOCKS = 100

NO_PREVIEW = "No preview available"
PREVIEW_UNAVAILABLE = "Preview unavailable"
NO_CONTENT = "No content found"
CONTENT_ERROR = "Error retrieving content"

ToolOutput = list[dict[str, Any]] | str
Handler = Callable[[Any], Awaitable[ToolOutput]]


def clamp_limit(limit: int, maximum: int = MAX_PAGE_SIZE) -> int:
    """Clamp a requested count into ``1..maximum``."""
    return min(max(limit, 1), maximum)


def _is_page(item: dict[str, Any]) -> bool:
    return item.get("object") == "page" and "properties" in item


class ToolExecutor:
    """Maps a tool name plus arguments to a handler call.

    Usage::

        executor = ToolExecutor(provider)
        pages = await executor.execute("get_page_titles_only", {"limit": 3})
    """

    def __init__(
        self,
        provider: ContentProvider,
        *,
        max_page_size: int = MAX_PAGE_SIZE,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
    ) -> None:
        self._provider = provider
        self._max_page_size = max_page_size
        self._preview_length = preview_length
        self._handlers: MappingProxyType[str, Handler] = MappingProxyType({
            "search_notion": self._search_notion,
            "list_recent_pages": self._list_recent_pages,
            "get_page_titles_only": self._get_page_titles_only,
            "list_all_pages": self._list_all_pages,
            "get_page_content": self._get_page_content,
        })

    async def execute(self, name: str, arguments: dict[str, Any] | None = None) -> ToolOutput:
        """Decode *arguments* for tool *name* and run its handler.

        Raises:
            ToolNotFoundError: *name* is not a registered tool.
            InvalidArgumentsError: *arguments* do not match the tool's schema.
        """
        with _tracer.start_as_current_span("tool.execute") as span:
            span.set_attribute(ATTR_TOOL_NAME, name)
            descriptor = get_tool(name)
            args: ToolArguments = descriptor.decode(arguments)
            logger.info("Executing %s with %s", name, args.model_dump())
            return await self._handlers[name](args)

    def _page_size(self, limit: int) -> int:
        return clamp_limit(limit, self._max_page_size)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _search_notion(self, args: SearchArgs) -> ToolOutput:
        try:
            pages = await self._provider.search(query=args.query, page_size=self._page_size(args.limit))
        except ProviderError as exc:
            logger.error("Search error: %s", exc)
            return []
        logger.info("Found %d results for %r", len(pages), args.query)

        results: list[dict[str, Any]] = []
        for page in filter(_is_page, pages):
            results.append({
                "id": page.get("id", ""),
                "title": extract_title(page),
                "content": await self._page_preview(str(page.get("id", ""))),
                "url": page.get("url") or "",
                "type": "page",
            })
        return results

    async def _list_recent_pages(self, args: RecentPagesArgs) -> ToolOutput:
        results = await self._timestamped_pages(args.limit, "List recent pages")
        if args.sort == "created_time":
            results.sort(key=lambda item: _timestamp(item["created_time"]), reverse=True)
        return results

    async def _get_page_titles_only(self, args: TitlesArgs) -> ToolOutput:
        try:
            pages = await self._provider.search(query=args.query or None, page_size=self._page_size(args.limit))
        except ProviderError as exc:
            logger.error("Get page titles error: %s", exc)
            return []
        return [
            {"id": page.get("id", ""), "title": extract_title(page), "url": page.get("url") or ""}
            for page in filter(_is_page, pages)
        ]

    async def _list_all_pages(self, args: AllPagesArgs) -> ToolOutput:
        return await self._timestamped_pages(args.limit, "List all pages")

    async def _get_page_content(self, args: PageContentArgs) -> ToolOutput:
        try:
            blocks = await self._provider.list_block_children(args.pageId, page_size=CONTENT_BLOCKS)
        except ProviderError as exc:
            logger.error("Get page content error: %s", exc)
            return CONTENT_ERROR

        lines = [text for text in map(extract_block_text, blocks) if text.strip()]
        return "\n".join(lines).strip() or NO_CONTENT

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _timestamped_pages(self, limit: int, label: str) -> list[dict[str, Any]]:
        """Pages newest-edited first, with both timestamps."""
        try:
            pages = await self._provider.search(page_size=self._page_size(limit), sort_by_last_edited=True)
        except ProviderError as exc:
            logger.error("%s error: %s", label, exc)
            return []
        return [
            {
                "id": page.get("id", ""),
                "title": extract_title(page),
                "created_time": page.get("created_time", ""),
                "last_edited_time": page.get("last_edited_time", ""),
                "url": page.get("url") or "",
            }
            for page in filter(_is_page, pages)
        ]

    async def _page_preview(self, page_id: str) -> str:
        try:
            blocks = await self._provider.list_block_children(page_id, page_size=PREVIEW_BLOCKS)
        except ProviderError as exc:
            logger.warning("Preview for %s unavailable: %s", page_id, exc)
            return PREVIEW_UNAVAILABLE

        preview = ""
        for block in blocks:
            text = extract_block_text(block)
            if text.strip():
                preview += text + " "
                if len(preview) > self._preview_length:
                    break
        return preview.strip() or NO_PREVIEW


def _timestamp(value: Any) -> datetime:
    """Parse a Notion ISO timestamp; unparseable values sort last."""
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
        else:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return datetime.min.replace(tzinfo=UTC)
