"""SearchEngine — query-time orchestrator wiring EmbeddingProvider + VectorStore."""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from vault_search.exceptions import (
    ProviderMismatchError,
    ProviderUnavailableError,
    QueryValidationError,
    StoreUnavailableError,
    VaultSearchError,
)
from vault_search.search.filters import eq
from vault_search.search.providers._validation import check_vectors
from vault_search.search.types import ResultGroup, SearchResult

if TYPE_CHECKING:
    from vault_search.search.protocols import EmbeddingProvider, VectorStore

logger = logging.getLogger(__name__)


def group_by_folder(results: list[SearchResult]) -> list[ResultGroup]:
    """Group *results* by folder.

    Groups appear in order of their first result; results keep their
    relative rank inside each group.
    """
    groups: dict[str, list[SearchResult]] = {}
    for result in results:
        groups.setdefault(result.folder, []).append(result)
    return [ResultGroup(folder=folder, results=items) for folder, items in groups.items()]


class SearchEngine:
    """Orchestrates :class:`EmbeddingProvider` and :class:`VectorStore` for queries.

    The engine embeds the query with the same provider the index was built
    with, asks the store for the nearest rows and returns them ranked by
    ascending cosine distance.  It holds no mutable state, so one engine
    can serve concurrent requests.

    Errors reaching callers are always :class:`VaultSearchError` subclasses.
    """

    def __init__(
        self,
        store: VectorStore,
        provider: EmbeddingProvider,
        *,
        min_query_length: int = 2,
        max_limit: int = 50,
        default_limit: int = 10,
    ) -> None:
        if not 1 <= default_limit <= max_limit:
            msg = f"default_limit must be between 1 and max_limit ({max_limit}), got {default_limit}"
            raise ValueError(msg)
        if provider.model_name != store.model_name or provider.dimensions != store.dimension:
            msg = (
                f"Provider {provider.model_name!r} ({provider.dimensions} dims) does not "
                f"match the index ({store.model_name!r}, {store.dimension} dims)"
            )
            raise ProviderMismatchError(msg)
        self._store = store
        self._provider = provider
        self._min_query_length = min_query_length
        self._max_limit = max_limit
        self._default_limit = default_limit

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search(
        self,
        text: str,
        limit: int | None = None,
        *,
        folder: str | None = None,
    ) -> list[SearchResult]:
        """Return the articles nearest to *text*, at most *limit* of them.

        *limit* defaults to the engine's ``default_limit``.
        """
        if not isinstance(text, str):
            msg = f"Query text must be a string, got {type(text).__name__}"
            raise QueryValidationError(msg)
        if limit is None:
            limit = self._default_limit
        if isinstance(limit, bool) or not isinstance(limit, int):
            msg = f"Limit must be an integer, got {type(limit).__name__}"
            raise QueryValidationError(msg)
        if not 1 <= limit <= self._max_limit:
            msg = f"Limit must be between 1 and {self._max_limit}, got {limit}"
            raise QueryValidationError(msg)

        query = text.strip()
        if len(query) < self._min_query_length:
            return []

        vector = await self._embed(query)
        filter_expr = eq("folder", folder) if folder else None
        try:
            return await self._store.nearest(vector, limit, filter=filter_expr)
        except VaultSearchError:
            raise
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Vector store query failed: %s", exc)
            msg = f"Vector store query failed: {type(exc).__name__}"
            raise StoreUnavailableError(msg) from exc

    async def search_grouped(
        self,
        text: str,
        limit: int | None = None,
        *,
        folder: str | None = None,
    ) -> list[ResultGroup]:
        """Like :meth:`search`, with results grouped by folder."""
        return group_by_folder(await self.search(text, limit, folder=folder))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying store and the provider, if it can be closed."""
        await self._store.close()
        close_fn = getattr(self._provider, "close", None)
        if close_fn is not None:
            result = close_fn()
            if inspect.isawaitable(result):
                await result

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def store(self) -> VectorStore:
        """Return the underlying :class:`VectorStore`."""
        return self._store

    @property
    def provider(self) -> EmbeddingProvider:
        """Return the :class:`EmbeddingProvider`."""
        return self._provider

    @property
    def min_query_length(self) -> int:
        return self._min_query_length

    @property
    def max_limit(self) -> int:
        return self._max_limit

    @property
    def default_limit(self) -> int:
        return self._default_limit

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _embed(self, text: str) -> list[float]:
        """Embed the query, handling both sync and async providers."""
        try:
            result = self._provider.embed(text)
            if inspect.isawaitable(result):
                result = await result
        except VaultSearchError:
            raise
        except Exception as exc:
            logger.error("Embedding provider failed: %s", type(exc).__name__)
            msg = f"Embedding provider failed: {type(exc).__name__}"
            raise ProviderUnavailableError(msg) from exc
        return check_vectors(
            [result],
            expected_count=1,
            dimensions=self._store.dimension,
            source=self._provider.model_name,
        )[0]
