"""Search layer protocols — async-first interfaces for embedding and vector storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from vault_search.search.filters import FilterExpression
    from vault_search.search.types import (
        DeleteResult,
        DocumentEntry,
        SearchResult,
        StoredDocument,
        UpsertResult,
    )


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Async-first protocol for text-to-vector embedding.

    Implementations convert text into fixed-dimension float vectors
    suitable for similarity search.  ``embed_batch`` preserves input order.
    """

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string into a vector."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts into vectors."""
        ...

    @property
    def dimensions(self) -> int:
        """Number of dimensions in the embedding vectors."""
        ...

    @property
    def model_name(self) -> str:
        """Name of the embedding model."""
        ...


@runtime_checkable
class VectorStore(Protocol):
    """Async-first protocol for document vector storage and nearest-neighbour lookup.

    A store is pinned to one embedding model and dimension; every stored row
    has an embedding of exactly ``dimension`` floats.
    """

    async def upsert(self, entries: list[DocumentEntry]) -> UpsertResult:
        """Insert or update rows keyed by ``(slug, chunk_index)``.

        The chunk set of every slug present in *entries* is replaced:
        chunks of that slug not in *entries* are removed.
        """
        ...

    async def nearest(
        self,
        vector: list[float],
        limit: int = 10,
        *,
        filter: FilterExpression | None = None,
    ) -> list[SearchResult]:
        """Return at most *limit* articles closest to *vector*.

        Filtering happens before top-k selection.  Results are sorted by
        ascending cosine distance, ties broken by ascending id, and hold
        one entry (the closest chunk) per slug.
        """
        ...

    async def delete(self, slugs: list[str]) -> DeleteResult:
        """Delete every row belonging to *slugs*."""
        ...

    async def fetch(self, slug: str) -> list[StoredDocument]:
        """Return the stored rows of *slug*, ordered by chunk index."""
        ...

    async def count(self) -> int:
        """Return the number of stored rows."""
        ...

    async def slugs(self) -> set[str]:
        """Return every stored slug."""
        ...

    async def content_hashes(self) -> dict[str, str]:
        """Return ``slug -> content_hash`` for every stored article."""
        ...

    async def connect(self) -> None:
        """Open connection / initialize resources and pin the embedding model."""
        ...

    async def reset(self) -> None:
        """Drop every row and re-pin the store to its configured model."""
        ...

    async def close(self) -> None:
        """Release connection / clean up resources."""
        ...

    @property
    def dimension(self) -> int:
        """Embedding dimension of every stored row."""
        ...

    @property
    def model_name(self) -> str:
        """Embedding model the stored vectors were produced with."""
        ...
