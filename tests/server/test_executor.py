"""Tests for ToolExecutor handlers against an in-memory provider."""

from __future__ import annotations

import pytest
from fakes import FakeProvider, make_block, make_page

from notionchat.protocols.errors import InvalidArgumentsError, ToolNotFoundError
from notionchat.server.executor import (
    CONTENT_ERROR,
    NO_CONTENT,
    NO_PREVIEW,
    PREVIEW_UNAVAILABLE,
    ToolExecutor,
    clamp_limit,
)


def _workspace() -> FakeProvider:
    pages = [
        make_page("p1", "Backend guide", created="2024-01-10T09:00:00.000Z", edited="2024-03-01T09:00:00.000Z"),
        make_page("p2", "Frontend notes", created="2024-02-20T09:00:00.000Z", edited="2024-02-25T09:00:00.000Z"),
        make_page("p3", None, created="2023-12-01T09:00:00.000Z", edited="2024-01-05T09:00:00.000Z"),
    ]
    blocks = {
        "p1": [make_block("Deploy with care."), make_block("Use the staging cluster.", "bulleted_list_item")],
        "p2": [{"type": "divider", "divider": {}}],
    }
    return FakeProvider(pages, blocks)


class TestClampLimit:
    @pytest.mark.parametrize(
        ("requested", "expected"),
        [(500, 100), (100, 100), (3, 3), (1, 1), (0, 1), (-4, 1)],
    )
    def test_clamped_into_range(self, requested: int, expected: int) -> None:
        assert clamp_limit(requested) == expected

    def test_custom_maximum(self) -> None:
        assert clamp_limit(80, maximum=50) == 50


class TestDispatch:
    async def test_unknown_tool_raises(self) -> None:
        with pytest.raises(ToolNotFoundError):
            await ToolExecutor(_workspace()).execute("not_a_tool", {})

    async def test_bad_arguments_raise(self) -> None:
        with pytest.raises(InvalidArgumentsError):
            await ToolExecutor(_workspace()).execute("get_page_content", {})


class TestSearchNotion:
    async def test_results_carry_previews(self) -> None:
        provider = _workspace()
        results = await ToolExecutor(provider).execute("search_notion", {"query": "guide", "limit": 5})

        assert provider.searches[0] == {"query": "guide", "page_size": 5, "sort_by_last_edited": False}
        assert results[0] == {
            "id": "p1",
            "title": "Backend guide",
            "content": "Deploy with care. Use the staging cluster.",
            "url": "https://www.notion.so/p1",
            "type": "page",
        }
        assert results[1]["content"] == NO_PREVIEW
        assert results[2]["title"] == "Untitled"
        assert ("p1", 3) in provider.block_requests

    async def test_preview_stops_once_long_enough(self) -> None:
        provider = FakeProvider(
            [make_page("p1", "Long")],
            {"p1": [make_block("a" * 30), make_block("b" * 30), make_block("c" * 30)]},
        )
        results = await ToolExecutor(provider, preview_length=20).execute("search_notion", {"query": "x"})
        assert results[0]["content"] == "a" * 30

    async def test_preview_failure_is_per_page(self) -> None:
        provider = _workspace()
        provider.fail_blocks = {"p1"}
        results = await ToolExecutor(provider).execute("search_notion", {"query": "x"})

        assert results[0]["content"] == PREVIEW_UNAVAILABLE
        assert results[1]["content"] == NO_PREVIEW

    async def test_limit_clamped_to_max_page_size(self) -> None:
        provider = _workspace()
        await ToolExecutor(provider).execute("search_notion", {"query": "x", "limit": 500})
        assert provider.searches[0]["page_size"] == 100

    async def test_provider_failure_degrades_to_empty_list(self, caplog: pytest.LogCaptureFixture) -> None:
        provider = FakeProvider(fail_search=True)
        assert await ToolExecutor(provider).execute("search_notion", {"query": "x"}) == []
        assert "search unavailable" in caplog.text

    async def test_non_page_items_skipped(self) -> None:
        provider = FakeProvider([{"object": "database", "id": "d1"}, {"object": "page", "id": "bare"}])
        assert await ToolExecutor(provider).execute("search_notion", {"query": "x"}) == []


class TestListRecentPages:
    async def test_newest_edited_first(self) -> None:
        provider = _workspace()
        results = await ToolExecutor(provider).execute("list_recent_pages", {"limit": 2})

        assert provider.searches[0] == {"query": None, "page_size": 2, "sort_by_last_edited": True}
        assert [item["id"] for item in results] == ["p1", "p2"]
        assert set(results[0]) == {"id", "title", "created_time", "last_edited_time", "url"}

    async def test_sort_by_created_time(self) -> None:
        results = await ToolExecutor(_workspace()).execute("list_recent_pages", {"sort": "created_time"})
        assert [item["id"] for item in results] == ["p2", "p1", "p3"]

    async def test_unparseable_created_time_sorts_last(self) -> None:
        provider = _workspace()
        provider.pages[0]["created_time"] = "not a date"
        results = await ToolExecutor(provider).execute("list_recent_pages", {"sort": "created_time"})
        assert results[-1]["id"] == "p1"

    async def test_provider_failure_degrades_to_empty_list(self) -> None:
        assert await ToolExecutor(FakeProvider(fail_search=True)).execute("list_recent_pages", {}) == []


class TestGetPageTitlesOnly:
    async def test_titles_only(self) -> None:
        provider = _workspace()
        results = await ToolExecutor(provider).execute("get_page_titles_only", {"limit": 3})

        assert results == [
            {"id": "p1", "title": "Backend guide", "url": "https://www.notion.so/p1"},
            {"id": "p2", "title": "Frontend notes", "url": "https://www.notion.so/p2"},
            {"id": "p3", "title": "Untitled", "url": "https://www.notion.so/p3"},
        ]
        assert provider.block_requests == []

    async def test_empty_query_not_sent(self) -> None:
        provider = _workspace()
        await ToolExecutor(provider).execute("get_page_titles_only", {"query": ""})
        assert provider.searches[0]["query"] is None

    async def test_query_forwarded(self) -> None:
        provider = _workspace()
        await ToolExecutor(provider).execute("get_page_titles_only", {"query": "backend"})
        assert provider.searches[0]["query"] == "backend"


class TestListAllPages:
    async def test_default_limit_is_twenty(self) -> None:
        provider = _workspace()
        results = await ToolExecutor(provider).execute("list_all_pages", {})

        assert provider.searches[0]["page_size"] == 20
        assert provider.searches[0]["sort_by_last_edited"] is True
        assert len(results) == 3

    async def test_respects_configured_max_page_size(self) -> None:
        provider = _workspace()
        await ToolExecutor(provider, max_page_size=10).execute("list_all_pages", {"limit": 50})
        assert provider.searches[0]["page_size"] == 10


class TestGetPageContent:
    async def test_joined_block_text(self) -> None:
        provider = _workspace()
        content = await ToolExecutor(provider).execute("get_page_content", {"pageId": "p1"})

        assert content == "Deploy with care.\nUse the staging cluster."
        assert provider.block_requests == [("p1", 100)]

    async def test_page_without_text(self) -> None:
        assert await ToolExecutor(_workspace()).execute("get_page_content", {"pageId": "p2"}) == NO_CONTENT

    async def test_provider_failure(self) -> None:
        provider = _workspace()
        provider.fail_blocks = {"p1"}
        assert await ToolExecutor(provider).execute("get_page_content", {"pageId": "p1"}) == CONTENT_ERROR
