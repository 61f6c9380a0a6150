"""HttpSearchClient — async client for the search API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from vault_search.search.types import SearchResult

logger = logging.getLogger(__name__)

DEFAULT_PATH = "/api/search.json"


class HttpSearchClient:
    """Posts ``{query, limit}`` to the search API and parses the results.

    Instances are callable with ``(query, limit)`` so they can be handed to
    :class:`~vault_search.session.SearchSession` as its fetch function.
    Cancelling the awaiting task aborts the HTTP request.

    Usage::

        async with HttpSearchClient("http://localhost:8000") as client:
            results = await client.search("postgres", limit=5)
    """

    def __init__(
        self,
        base_url: str,
        path: str = DEFAULT_PATH,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._path = path
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def search(
        self, query: str, limit: int = 10, *, folder: str | None = None
    ) -> list[SearchResult]:
        """Run one search.  Non-2xx responses raise ``httpx.HTTPStatusError``."""
        payload: dict[str, Any] = {"query": query, "limit": limit}
        if folder is not None:
            payload["folder"] = folder
        response = await self._client.post(self._path, json=payload)
        response.raise_for_status()
        body = response.json()
        return [_parse_result(item) for item in body.get("results", [])]

    async def __call__(self, query: str, limit: int) -> list[SearchResult]:
        return await self.search(query, limit)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpSearchClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def _parse_result(item: dict[str, Any]) -> SearchResult:
    return SearchResult(
        id=int(item["id"]),
        slug=str(item["slug"]),
        title=str(item.get("title", "")),
        folder=str(item.get("folder", "")),
        tags=tuple(item.get("tags") or ()),
        distance=float(item["distance"]),
    )
