"""Tool registry — the five tools the server exposes and how their arguments decode.

The descriptors below are the only definition of the tool catalog.  The
server answers ``tools/list`` from them, and the chat client advertises to
the language model exactly what ``tools/list`` returned, so both sides
always agree on names and schemas.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from notionchat.protocols.errors import InvalidArgumentsError, ToolNotFoundError

# ---------------------------------------------------------------------------
# Argument models: one validated record per tool
# ---------------------------------------------------------------------------


class ToolArguments(BaseModel):
    """Base for per-tool argument records; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)


class PagedArguments(ToolArguments):
    """Arguments with a `limit`; `null` or `0` fall back to the field default."""

    limit: int = 10

    @field_validator("limit", mode="before")
    @classmethod
    def _falsy_limit_uses_default(cls, value: Any) -> Any:
        if value is None or value == 0:
            return cls.model_fields["limit"].default
        return value


class SearchArgs(PagedArguments):
    query: str


class RecentPagesArgs(PagedArguments):
    sort: Literal["created_time", "last_edited_time"] = "last_edited_time"

    @field_validator("sort", mode="before")
    @classmethod
    def _default_sort(cls, value: Any) -> Any:
        return value or "last_edited_time"


class TitlesArgs(PagedArguments):
    query: str | None = None


class AllPagesArgs(PagedArguments):
    limit: int = 20


class PageContentArgs(ToolArguments):
    pageId: str  # noqa: N815


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description and input schema of one tool."""

    name: str
    description: str
    input_schema: dict[str, Any]
    arguments_model: type[ToolArguments]

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }

    def decode(self, arguments: Any) -> ToolArguments:
        """Validate raw ``arguments`` into this tool's typed record."""
        if arguments is None:
            arguments = {}
        try:
            return self.arguments_model.model_validate(arguments)
        except ValidationError as exc:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in exc.errors()
            )
            raise InvalidArgumentsError(self.name, details) from exc


def _limit_property(description: str, default: int) -> dict[str, Any]:
    return {"type": "number", "description": description, "default": default}


TOOLS: tuple[ToolDescriptor, ...] = (
    ToolDescriptor(
        name="search_notion",
        description="Search through Notion workspace using keywords",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query or keywords"},
                "limit": _limit_property("Number of results to return", 10),
            },
            "required": ["query"],
        },
        arguments_model=SearchArgs,
    ),
    ToolDescriptor(
        name="list_recent_pages",
        description="List recently created or updated pages",
        input_schema={
            "type": "object",
            "properties": {
                "limit": _limit_property("Number of pages to return", 10),
                "sort": {
                    "type": "string",
                    "enum": ["created_time", "last_edited_time"],
                    "description": "Sort by created time or last edited time",
                    "default": "last_edited_time",
                },
            },
        },
        arguments_model=RecentPagesArgs,
    ),
    ToolDescriptor(
        name="get_page_titles_only",
        description="Get only titles of pages (useful for listing)",
        input_schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Optional search query to filter pages"},
                "limit": _limit_property("Number of titles to return", 10),
            },
        },
        arguments_model=TitlesArgs,
    ),
    ToolDescriptor(
        name="list_all_pages",
        description="List all pages in the workspace",
        input_schema={
            "type": "object",
            "properties": {
                "limit": _limit_property("Number of pages to return", 20),
            },
        },
        arguments_model=AllPagesArgs,
    ),
    ToolDescriptor(
        name="get_page_content",
        description="Get full content of a specific Notion page",
        input_schema={
            "type": "object",
            "properties": {
                "pageId": {"type": "string", "description": "Notion page ID"},
            },
            "required": ["pageId"],
        },
        arguments_model=PageContentArgs,
    ),
)

_BY_NAME: MappingProxyType[str, ToolDescriptor] = MappingProxyType({t.name: t for t in TOOLS})


def list_tools() -> tuple[ToolDescriptor, ...]:
    """All descriptors, in catalog order."""
    return TOOLS


def get_tool(name: str) -> ToolDescriptor:
    """Look up a descriptor by name.

    Raises:
        ToolNotFoundError: If *name* is not in the catalog.
    """
    descriptor = _BY_NAME.get(name)
    if descriptor is None:
        raise ToolNotFoundError(name)
    return descriptor
