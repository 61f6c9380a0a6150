"""Search layer data types — articles, stored rows, results and reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ------------------------------------------------------------------
# Input records
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Article:
    """One article yielded by the content extractor.

    Attributes:
        slug: Unique article identifier, resolves to a URL.
        title: Human-readable title.
        folder: Category used to group results.
        tags: Display tags, order preserved.
        body: Text to embed.
    """

    slug: str
    title: str
    folder: str = ""
    tags: tuple[str, ...] = ()
    body: str = ""


@dataclass(frozen=True, slots=True)
class DocumentEntry:
    """A row ready for the vector store, keyed by ``(slug, chunk_index)``.

    Attributes:
        slug: Parent article slug.
        title: Article title.
        folder: Article folder.
        tags: Article tags.
        body: The embedded text (whole article or one chunk of it).
        embedding: Embedding vector.
        chunk_index: Position of this chunk in the article (0 when unchunked).
        content_hash: Hash of the whole article, for change detection.
    """

    slug: str
    title: str
    folder: str
    tags: tuple[str, ...]
    body: str
    embedding: list[float]
    chunk_index: int = 0
    content_hash: str = ""


@dataclass(frozen=True, slots=True)
class StoredDocument:
    """A row as persisted by a store, including its store-assigned ``id``."""

    id: int
    slug: str
    title: str
    folder: str
    tags: tuple[str, ...]
    body: str
    embedding: list[float]
    chunk_index: int = 0
    content_hash: str = ""


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A stored document ranked against one query.

    Attributes:
        id: Store-assigned row id (tie breaker).
        slug: Article slug.
        title: Article title.
        folder: Article folder.
        tags: Article tags.
        distance: Cosine distance to the query (lower is closer).
        chunk_index: Which chunk of the article matched.
        excerpt: The matched text.
    """

    id: int
    slug: str
    title: str
    folder: str
    tags: tuple[str, ...]
    distance: float
    chunk_index: int = 0
    excerpt: str = ""

    @property
    def similarity(self) -> float:
        """Cosine similarity (``1 - distance``)."""
        return 1.0 - self.distance

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "title": self.title,
            "folder": self.folder,
            "tags": list(self.tags),
            "distance": self.distance,
        }


@dataclass(frozen=True, slots=True)
class ResultGroup:
    """Results sharing a folder, in rank order."""

    folder: str
    results: list[SearchResult] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class UpsertResult:
    """Result of a store upsert.

    Attributes:
        upserted_count: Number of rows inserted or updated.
        removed_chunks: Stale chunk rows removed for the upserted slugs.
    """

    upserted_count: int
    removed_chunks: int = 0


@dataclass(frozen=True, slots=True)
class DeleteResult:
    """Result of a store delete."""

    deleted_count: int


# ------------------------------------------------------------------
# Indexing report
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IndexFailure:
    """One article that could not be indexed, and why."""

    slug: str
    reason: str


@dataclass(slots=True)
class IndexReport:
    """Outcome of an indexing run.

    Attributes:
        indexed: Articles embedded and written.
        skipped: Articles left alone (empty body or unchanged content).
        failed: Articles that failed, with reasons.
        pruned: Stored articles removed because they left the corpus.
        chunks: Rows written.
        duration_seconds: Wall-clock time of the run.
    """

    indexed: int = 0
    skipped: int = 0
    failed: list[IndexFailure] = field(default_factory=list)
    pruned: int = 0
    chunks: int = 0
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        """True when no article failed."""
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "indexed": self.indexed,
            "skipped": self.skipped,
            "failed": len(self.failed),
            "failures": [{"slug": f.slug, "reason": f.reason} for f in self.failed],
            "pruned": self.pruned,
            "chunks": self.chunks,
            "duration_seconds": round(self.duration_seconds, 3),
        }
