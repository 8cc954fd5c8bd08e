"""ConversationOrchestrator — turns one user question into one answer.

The model picks tools from the catalog discovered over the RPC client; the
orchestrator runs every proposed call in order, gathers the results and
composes the answer.  Which composition is used depends on the first tool
the model chose and on keywords in the question.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from notionchat.config import ChatSettings
from notionchat.core.interface.client import ModelClient
from notionchat.core.interface.models import CanonicalMessage, ConversationHistory, ToolCall
from notionchat.protocols.errors import RemoteError, RequestTimeoutError, ToolExecutionError
from notionchat.protocols.mcp.client import MCPClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an assistant for a Notion workspace. Analyse the user's request,
then pick and run the Notion tools that answer it.

Available tools:
- search_notion: search documents by keyword
- list_recent_pages: recently created or edited pages
- get_page_titles_only: page titles only (for listings)
- list_all_pages: every page in the workspace
- get_page_content: the full content of one page

Routing hints:
- "show me 3 titles only" -> get_page_titles_only (limit: 3)
- "recent pages" -> list_recent_pages
- "all pages" -> list_all_pages
- "pages about X" -> search_notion
- "summarise / the content of X" -> search_notion first; the page content is fetched afterwards
"""

NO_RESULTS = "Nothing matching your request was found in the workspace."
NO_ANSWER = "Sorry, I could not process that request."
EMPTY_COMPLETION = "The model returned an empty answer."

_TITLE_TOOLS = frozenset({"get_page_titles_only"})
_LISTING_TOOLS = frozenset({"list_recent_pages", "list_all_pages"})

_RECOVERABLE = (ToolExecutionError, RequestTimeoutError, RemoteError)


class ConversationOrchestrator:
    """Answers questions about a Notion workspace.

    Usage::

        orchestrator = ConversationOrchestrator(model, client, settings.chat)
        answer = await orchestrator.answer("show me 3 page titles only")
    """

    def __init__(self, model: ModelClient, tools: MCPClient, settings: ChatSettings | None = None) -> None:
        self._model = model
        self._tools = tools
        self._settings = settings or ChatSettings()

    async def answer(self, message: str) -> str:
        """Run the tool-selection round-trip and compose the final answer.

        Fatal tool-server errors propagate; failures of individual tool calls
        are logged and skipped.
        """
        history = ConversationHistory(
            messages=[CanonicalMessage.system(SYSTEM_PROMPT), CanonicalMessage.user(message)]
        )
        schemas = await self._tools.function_schemas()
        response = await self._model.generate(history, tools=schemas, tool_choice="auto")

        if not response.tool_calls:
            return response.text or NO_ANSWER

        logger.info("Model selected tool: %s", response.tool_calls[0].name)
        results = await self._run_tool_calls(response.tool_calls)
        logger.info("Collected %d result(s)", len(results))

        if not results:
            return NO_RESULTS
        return await self._compose(message, results, response.tool_calls[0].name)

    async def _run_tool_calls(self, calls: list[ToolCall]) -> list[dict[str, Any]]:
        results: list[dict[str, Any]] = []
        for call in calls:
            logger.info("Running %s with %s", call.name, call.arguments)
            try:
                payload = await self._tools.call_tool(call.name, call.arguments)
            except _RECOVERABLE as exc:
                logger.error("Tool %s failed: %s", call.name, exc)
                continue
            results.extend(_collect(payload))
        return results

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    async def _compose(self, message: str, results: list[dict[str, Any]], tool_used: str) -> str:
        if tool_used in _TITLE_TOOLS or _mentions(message, self._settings.title_keywords):
            return format_titles(results)

        if tool_used in _LISTING_TOOLS:
            return format_listing(results)

        if _mentions(message, self._settings.summary_keywords) and results[0].get("id"):
            return await self._summarise(message, results[0])

        return await self._answer_from_context(message, results)

    async def _summarise(self, message: str, page: dict[str, Any]) -> str:
        title = page.get("title", "Untitled")
        logger.info("Fetching full content of %r", title)
        try:
            content = await self._tools.call_tool("get_page_content", {"pageId": page["id"]})
        except _RECOVERABLE as exc:
            logger.error("Fetching page content failed: %s", exc)
            return f'Could not retrieve the content of "{title}".'

        system = (
            f'The following is the full content of the Notion page "{title}". '
            "Summarise or explain it according to the user's request.\n\n"
            f"Page content:\n{content}"
        )
        summary = await self._model.complete(system, message)
        return f"**{title}** summary:\n\n{summary or EMPTY_COMPLETION}"

    async def _answer_from_context(self, message: str, results: list[dict[str, Any]]) -> str:
        context = build_context(
            results,
            items=self._settings.context_items,
            length=self._settings.context_length,
        )
        system = (
            "Answer the user helpfully using the information found in their "
            f"Notion workspace.\n\nFound information:\n{context}"
        )
        return await self._model.complete(system, message) or EMPTY_COMPLETION


def _collect(payload: Any) -> list[dict[str, Any]]:
    """Normalise a tool payload into result items."""
    if isinstance(payload, list):
        return [item if isinstance(item, dict) else {"content": str(item)} for item in payload]
    if isinstance(payload, dict):
        return [] if "error" in payload else [payload]
    if isinstance(payload, str) and payload:
        return [{"content": payload}]
    return []


def _mentions(message: str, keywords: list[str]) -> bool:
    lowered = message.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


def format_titles(results: list[dict[str, Any]]) -> str:
    lines = [f"{index}. {item.get('title', 'Untitled')}" for index, item in enumerate(results, start=1)]
    return "**Page titles:**\n\n" + "\n".join(lines)


def format_listing(results: list[dict[str, Any]]) -> str:
    lines = [
        f"{index}. **{item.get('title', 'Untitled')}** ({_format_date(item.get('last_edited_time'))})"
        for index, item in enumerate(results, start=1)
    ]
    return "**Pages:**\n\n" + "\n".join(lines)


def build_context(results: list[dict[str, Any]], *, items: int = 3, length: int = 300) -> str:
    """Title plus truncated content of the first *items* results."""
    sections: list[str] = []
    for doc in results[:items]:
        title = doc.get("title", "Untitled")
        content = doc.get("content")
        if content:
            sections.append(f"Title: {title}\nContent: {str(content)[:length]}...\n")
        else:
            sections.append(f"Title: {title}\n")
    return "\n---\n".join(sections)


def _format_date(value: Any) -> str:
    if not isinstance(value, str) or not value:
        return "unknown date"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return value
