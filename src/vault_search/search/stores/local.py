"""LocalVectorStore — in-process usearch vector store with a JSON sidecar."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

import numpy as np
from usearch.index import Index

from vault_search.exceptions import (
    DimensionMismatchError,
    ProviderMismatchError,
    StoreUnavailableError,
)
from vault_search.search.filters import FilterExpression, compile_predicate
from vault_search.search.similarity import select_top_k
from vault_search.search.types import (
    DeleteResult,
    DocumentEntry,
    SearchResult,
    StoredDocument,
    UpsertResult,
)

logger = logging.getLogger(__name__)

_INDEX_FILE = "search.usearch"
_META_FILE = "search_meta.json"


class LocalVectorStore:
    """In-process vector store backed by a usearch index.

    Rows are keyed by ``(slug, chunk_index)``.  Each row carries a stable
    ``id`` that survives upserts, while the usearch key changes every time
    the vector is replaced.  Searches are exact, so ranking matches the SQL
    store for the same vectors.

    When *directory* is given, :meth:`connect` loads a previously saved
    index from it and :meth:`close` writes the index back.

    Thread-safe via :class:`threading.Lock`.
    """

    def __init__(
        self,
        *,
        dimension: int,
        model_name: str,
        directory: str | Path | None = None,
    ) -> None:
        self._dimension = dimension
        self._model_name = model_name
        self._directory = Path(directory) if directory is not None else None
        self._lock = threading.Lock()
        self._init_state()

    def _init_state(self) -> None:
        self._index = Index(ndim=self._dimension, metric="cos", dtype="f32")
        self._next_key: int = 0
        self._next_id: int = 1
        # usearch key -> row metadata (no vector)
        self._key_to_meta: dict[int, dict[str, Any]] = {}
        # (slug, chunk_index) -> usearch key
        self._row_to_key: dict[tuple[str, int], int] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Load the saved index from *directory*, if one exists."""
        if self._directory is None:
            return
        if (self._directory / _META_FILE).exists():
            self.load(self._directory)

    async def reset(self) -> None:
        """Drop every row."""
        with self._lock:
            self._init_state()

    async def close(self) -> None:
        """Persist to *directory*, if one was given."""
        if self._directory is not None:
            self.save(self._directory)

    # ------------------------------------------------------------------
    # VectorStore protocol
    # ------------------------------------------------------------------

    async def upsert(self, entries: list[DocumentEntry]) -> UpsertResult:
        """Insert or update rows and drop stale chunks of every upserted slug."""
        for entry in entries:
            if len(entry.embedding) != self._dimension:
                raise DimensionMismatchError(
                    self._dimension, len(entry.embedding), source=entry.slug
                )

        kept: dict[str, set[int]] = {}
        for entry in entries:
            kept.setdefault(entry.slug, set()).add(entry.chunk_index)

        count = 0
        removed = 0
        with self._lock:
            for entry in entries:
                row = (entry.slug, entry.chunk_index)
                doc_id = self._next_id
                old_key = self._row_to_key.get(row)
                if old_key is not None:
                    # Keep the row id, replace the vector
                    doc_id = self._key_to_meta[old_key]["id"]
                    self._remove_key(old_key)
                else:
                    self._next_id += 1

                key = self._next_key
                self._next_key += 1
                self._index.add(key, np.asarray(entry.embedding, dtype=np.float32))
                self._key_to_meta[key] = {
                    "id": doc_id,
                    "slug": entry.slug,
                    "chunk_index": entry.chunk_index,
                    "title": entry.title,
                    "folder": entry.folder,
                    "tags": list(entry.tags),
                    "body": entry.body,
                    "content_hash": entry.content_hash,
                }
                self._row_to_key[row] = key
                count += 1

            for slug, indexes in kept.items():
                stale = [
                    key
                    for (row_slug, chunk), key in self._row_to_key.items()
                    if row_slug == slug and chunk not in indexes
                ]
                for key in stale:
                    self._remove_key(key)
                    removed += 1

        return UpsertResult(upserted_count=count, removed_chunks=removed)

    async def nearest(
        self,
        vector: list[float],
        limit: int = 10,
        *,
        filter: FilterExpression | None = None,  # noqa: A002
    ) -> list[SearchResult]:
        """Rank stored rows by cosine distance to *vector*."""
        if len(vector) != self._dimension:
            raise DimensionMismatchError(self._dimension, len(vector), source="query")
        if limit <= 0 or not self._key_to_meta:
            return []

        query = np.asarray(vector, dtype=np.float32)
        predicate = compile_predicate(filter) if filter is not None else None

        # Exact search over every key ever added; removed keys are dropped below,
        # then the filter and per-slug dedupe run
        with self._lock:
            matches = self._index.search(query, self._next_key, exact=True)
            keys = matches.keys.tolist()
            distances = matches.distances.tolist()
            metas = [self._key_to_meta.get(int(k)) for k in keys]

        scored: list[tuple[float, int, str, dict[str, Any]]] = []
        for meta, distance in zip(metas, distances, strict=True):
            if meta is None:
                continue
            if predicate is not None and not predicate(_meta_fields(meta)):
                continue
            scored.append((float(distance), int(meta["id"]), meta["slug"], meta))

        return [
            SearchResult(
                id=doc_id,
                slug=slug,
                title=meta["title"],
                folder=meta["folder"],
                tags=tuple(meta["tags"]),
                distance=distance,
                chunk_index=meta["chunk_index"],
                excerpt=meta["body"],
            )
            for distance, doc_id, slug, meta in select_top_k(scored, limit)
        ]

    async def delete(self, slugs: list[str]) -> DeleteResult:
        """Delete every row belonging to *slugs*."""
        targets = set(slugs)
        count = 0
        with self._lock:
            doomed = [key for (slug, _), key in self._row_to_key.items() if slug in targets]
            for key in doomed:
                self._remove_key(key)
                count += 1
        return DeleteResult(deleted_count=count)

    async def fetch(self, slug: str) -> list[StoredDocument]:
        """Return the stored rows of *slug*, ordered by chunk index."""
        with self._lock:
            rows = sorted(
                (chunk, key) for (row_slug, chunk), key in self._row_to_key.items()
                if row_slug == slug
            )
            found = [(self._key_to_meta[key], self._index.get(key)) for _, key in rows]
        return [
            StoredDocument(
                id=meta["id"],
                slug=meta["slug"],
                title=meta["title"],
                folder=meta["folder"],
                tags=tuple(meta["tags"]),
                body=meta["body"],
                embedding=[float(x) for x in np.asarray(vec).reshape(-1).tolist()],
                chunk_index=meta["chunk_index"],
                content_hash=meta["content_hash"],
            )
            for meta, vec in found
        ]

    async def count(self) -> int:
        """Return the number of stored rows."""
        return len(self)

    async def slugs(self) -> set[str]:
        """Return every stored slug."""
        return {slug for slug, _ in self._row_to_key}

    async def content_hashes(self) -> dict[str, str]:
        """Return ``slug -> content_hash`` taken from each article's first chunk."""
        return {
            slug: self._key_to_meta[key]["content_hash"]
            for (slug, chunk), key in self._row_to_key.items()
            if chunk == 0
        }

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    def __len__(self) -> int:
        """Return the number of stored rows."""
        return len(self._key_to_meta)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, directory: str | Path) -> None:
        """Persist the index and metadata to *directory*."""
        dir_path = Path(directory)
        try:
            dir_path.mkdir(parents=True, exist_ok=True)
            with self._lock:
                self._index.save(str(dir_path / _INDEX_FILE))
                sidecar: dict[str, Any] = {
                    "model_name": self._model_name,
                    "dimension": self._dimension,
                    "next_key": self._next_key,
                    "next_id": self._next_id,
                    "key_to_meta": {str(k): v for k, v in self._key_to_meta.items()},
                }
            with (dir_path / _META_FILE).open("w") as f:
                json.dump(sidecar, f)
        except OSError as exc:
            msg = f"Cannot save vector store to {dir_path}: {exc}"
            raise StoreUnavailableError(msg) from exc
        logger.debug("Saved %d rows to %s", len(self), dir_path)

    def load(self, directory: str | Path) -> None:
        """Load a previously saved index from *directory*.

        Raises ``ProviderMismatchError`` when the saved index was built with
        a different model or dimension.
        """
        dir_path = Path(directory)
        try:
            with (dir_path / _META_FILE).open() as f:
                sidecar = json.load(f)
        except (OSError, ValueError) as exc:
            msg = f"Cannot read vector store metadata in {dir_path}: {exc}"
            raise StoreUnavailableError(msg) from exc

        if sidecar.get("model_name") != self._model_name or sidecar.get("dimension") != self._dimension:
            msg = (
                f"Store was built with {sidecar.get('model_name')!r} "
                f"({sidecar.get('dimension')} dims), not {self._model_name!r} "
                f"({self._dimension} dims); rebuild the index"
            )
            raise ProviderMismatchError(msg)

        with self._lock:
            self._init_state()
            try:
                self._index.load(str(dir_path / _INDEX_FILE))
            except (OSError, RuntimeError) as exc:
                msg = f"Cannot read vector index in {dir_path}: {exc}"
                raise StoreUnavailableError(msg) from exc
            self._next_key = sidecar["next_key"]
            self._next_id = sidecar["next_id"]
            for k_str, meta in sidecar.get("key_to_meta", {}).items():
                key = int(k_str)
                self._key_to_meta[key] = meta
                self._row_to_key[(meta["slug"], meta["chunk_index"])] = key

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _remove_key(self, key: int) -> None:
        """Remove one row.  Caller holds the lock."""
        meta = self._key_to_meta.pop(key, None)
        if meta is not None:
            self._row_to_key.pop((meta["slug"], meta["chunk_index"]), None)
        self._index.remove(key)


def _meta_fields(meta: dict[str, Any]) -> dict[str, Any]:
    return {
        "slug": meta["slug"],
        "title": meta["title"],
        "folder": meta["folder"],
        "tags": tuple(meta["tags"]),
        "chunk_index": meta["chunk_index"],
    }
