"""Content provider — the Notion REST API behind the tool executor.

The executor only depends on the :class:`ContentProvider` protocol, so any
backend exposing "search" and "list children of an item" can stand in for
Notion (the tests use an in-memory fake).
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from notionchat.config import NotionSettings
from notionchat.protocols.errors import ProviderError

logger = logging.getLogger(__name__)


@runtime_checkable
class ContentProvider(Protocol):
    """Searchable, retrievable workspace content addressed by opaque ids."""

    async def search(
        self,
        *,
        query: str | None = None,
        page_size: int,
        sort_by_last_edited: bool = False,
    ) -> list[dict[str, Any]]:
        """Return page objects matching *query* (all pages when ``None``)."""
        ...

    async def list_block_children(self, block_id: str, *, page_size: int) -> list[dict[str, Any]]:
        """Return the child blocks of a page or block."""
        ...


class NotionProvider:
    """Satisfies :class:`ContentProvider` against ``api.notion.com``.

    Usage::

        async with NotionProvider(settings.notion) as provider:
            pages = await provider.search(query="roadmap", page_size=10)
    """

    def __init__(
        self,
        settings: NotionSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not settings.token:
            msg = "A Notion integration token is required (set NOTION_TOKEN)"
            raise ValueError(msg)
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> NotionProvider:
        self._client = httpx.AsyncClient(
            base_url=self._settings.base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {self._settings.token}",
                "Notion-Version": self._settings.api_version,
                "Content-Type": "application/json",
            },
            timeout=self._settings.http_timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *_: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "NotionProvider must be used as an async context manager"
            raise RuntimeError(msg)
        return self._client

    async def search(
        self,
        *,
        query: str | None = None,
        page_size: int,
        sort_by_last_edited: bool = False,
    ) -> list[dict[str, Any]]:
        body: dict[str, Any] = {
            "filter": {"value": "page", "property": "object"},
            "page_size": page_size,
        }
        if query:
            body["query"] = query
        if sort_by_last_edited:
            body["sort"] = {"direction": "descending", "timestamp": "last_edited_time"}

        data = await self._request("POST", "/search", json=body)
        return _results(data)

    async def list_block_children(self, block_id: str, *, page_size: int) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"/blocks/{block_id}/children",
            params={"page_size": page_size},
        )
        return _results(data)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        logger.debug("Notion %s %s", method, path)
        try:
            response = await self._http().request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Notion API {method} {path} failed with {exc.response.status_code}: "
                f"{_api_message(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Notion API {method} {path} failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"Notion API {method} {path} returned invalid JSON") from exc


def _results(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, dict) or not isinstance(data.get("results"), list):
        msg = "Notion API response has no 'results' list"
        raise ProviderError(msg)
    return [item for item in data["results"] if isinstance(item, dict)]


def _api_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(payload, dict) and isinstance(payload.get("message"), str):
        return payload["message"]
    return response.text[:200]
