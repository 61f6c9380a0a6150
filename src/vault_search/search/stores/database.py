"""DatabaseVectorStore — SQL-backed vector store (SQLite file or PostgreSQL)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import numpy as np
from sqlalchemy import delete, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vault_search.exceptions import (
    DimensionMismatchError,
    ProviderMismatchError,
    StoreUnavailableError,
)
from vault_search.models import SearchDocument, SearchIndexInfo
from vault_search.search.dialect import get_dialect, upsert_rows
from vault_search.search.filters import (
    FilterExpression,
    compile_predicate,
    compile_sqlalchemy,
    fields_of,
)
from vault_search.search.similarity import cosine_distances, select_top_k
from vault_search.search.types import (
    DeleteResult,
    DocumentEntry,
    SearchResult,
    StoredDocument,
    UpsertResult,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

_TABLES = [SearchDocument.__table__, SearchIndexInfo.__table__]  # type: ignore[attr-defined]

# Filter fields that map to plain string columns and compile to SQL.
_SQL_COLUMNS: dict[str, Any] = {
    "slug": SearchDocument.slug,
    "title": SearchDocument.title,
    "folder": SearchDocument.folder,
}


class DatabaseVectorStore:
    """Vector store persisted in a SQL database through async SQLAlchemy.

    Works unchanged on a local SQLite file (``sqlite+aiosqlite``) and on a
    remote PostgreSQL server (``postgresql+asyncpg``).  Vectors are stored
    as JSON arrays and ranked in process with numpy over the filtered
    candidate set, which is exact and fast at the corpus sizes this store
    targets (hundreds of rows).

    The store is pinned to one embedding model: :meth:`connect` records the
    model and dimension on first use and raises ``ProviderMismatchError``
    when they differ later.

    Usage::

        store = DatabaseVectorStore.from_url(
            "sqlite+aiosqlite:///local.db", dimension=384, model_name="all-MiniLM-L6-v2"
        )
        await store.connect()
        await store.upsert(entries)
        results = await store.nearest(query_vector, limit=5)
        await store.close()
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        dimension: int,
        model_name: str,
        dispose_engine: bool = False,
    ) -> None:
        self._engine = engine
        self._dialect = get_dialect(engine)
        self._dimension = dimension
        self._model_name = model_name
        self._dispose_engine = dispose_engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        dimension: int,
        model_name: str,
        password: str | None = None,
    ) -> DatabaseVectorStore:
        """Build a store (and its own engine) from a SQLAlchemy URL."""
        try:
            sa_url = make_url(url)
            if password is not None:
                sa_url = sa_url.set(password=password)
            kwargs: dict[str, Any] = {"echo": False}
            if sa_url.get_backend_name() != "sqlite":
                kwargs["pool_pre_ping"] = True
            engine = create_async_engine(sa_url, **kwargs)
        except (SQLAlchemyError, ImportError, ValueError) as exc:
            msg = f"Cannot create database engine: {type(exc).__name__}: {exc}"
            raise StoreUnavailableError(msg) from exc
        return cls(engine, dimension=dimension, model_name=model_name, dispose_engine=True)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Create tables if needed and pin the store to its embedding model."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(
                    lambda sync_conn: SearchDocument.metadata.create_all(sync_conn, tables=_TABLES)
                )
            async with self._session_factory() as session:
                info = await session.get(SearchIndexInfo, 1)
                if info is None:
                    session.add(
                        SearchIndexInfo(id=1, model_name=self._model_name, dimensions=self._dimension)
                    )
                    await session.commit()
                    return
        except (SQLAlchemyError, OSError) as exc:
            msg = f"Cannot open vector store: {type(exc).__name__}"
            logger.error("%s (%s)", msg, exc)
            raise StoreUnavailableError(msg) from exc

        if info.model_name != self._model_name or info.dimensions != self._dimension:
            msg = (
                f"Store was built with {info.model_name!r} ({info.dimensions} dims), "
                f"not {self._model_name!r} ({self._dimension} dims); rebuild the index"
            )
            raise ProviderMismatchError(msg)

    async def reset(self) -> None:
        """Drop and recreate the tables, pinned to the configured model."""
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(
                    lambda sync_conn: SearchDocument.metadata.drop_all(sync_conn, tables=_TABLES)
                )
        except (SQLAlchemyError, OSError) as exc:
            msg = f"Cannot reset vector store: {type(exc).__name__}"
            raise StoreUnavailableError(msg) from exc
        await self.connect()

    async def close(self) -> None:
        """Dispose the engine if this store created it."""
        if self._dispose_engine:
            await self._engine.dispose()

    # ------------------------------------------------------------------
    # VectorStore protocol
    # ------------------------------------------------------------------

    async def upsert(self, entries: list[DocumentEntry]) -> UpsertResult:
        """Insert or update rows and drop stale chunks of every upserted slug."""
        if not entries:
            return UpsertResult(upserted_count=0)
        for entry in entries:
            if len(entry.embedding) != self._dimension:
                raise DimensionMismatchError(
                    self._dimension, len(entry.embedding), source=entry.slug
                )

        now = datetime.now(UTC)
        rows = [
            {
                "slug": e.slug,
                "chunk_index": e.chunk_index,
                "title": e.title,
                "folder": e.folder,
                "tags": list(e.tags),
                "body": e.body,
                "content_hash": e.content_hash,
                "dimensions": len(e.embedding),
                "embedding": [float(x) for x in e.embedding],
                "updated_at": now,
            }
            for e in entries
        ]
        kept: dict[str, set[int]] = {}
        for e in entries:
            kept.setdefault(e.slug, set()).add(e.chunk_index)

        removed = 0
        async with self._session() as session:
            written = await upsert_rows(
                session,
                self._dialect,
                SearchDocument,
                rows,
                conflict_keys=["slug", "chunk_index"],
            )
            for slug, indexes in kept.items():
                result = await session.execute(
                    delete(SearchDocument).where(
                        SearchDocument.slug == slug,
                        SearchDocument.chunk_index.not_in(indexes),  # type: ignore[attr-defined]
                    )
                )
                removed += result.rowcount or 0
        return UpsertResult(upserted_count=written, removed_chunks=removed)

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
        if limit <= 0:
            return []

        stmt = select(SearchDocument)
        predicate = None
        if filter is not None:
            if fields_of(filter) <= set(_SQL_COLUMNS):
                stmt = stmt.where(compile_sqlalchemy(filter, _SQL_COLUMNS))
            else:
                predicate = compile_predicate(filter)

        async with self._session() as session:
            rows = list((await session.execute(stmt)).scalars().all())

        candidates: list[SearchDocument] = []
        for row in rows:
            if len(row.embedding) != self._dimension:
                logger.warning(
                    "Skipping %s#%d: stored vector has %d dims, expected %d",
                    row.slug,
                    row.chunk_index,
                    len(row.embedding),
                    self._dimension,
                )
                continue
            if predicate is not None and not predicate(_row_metadata(row)):
                continue
            candidates.append(row)
        if not candidates:
            return []

        matrix = np.asarray([row.embedding for row in candidates], dtype=np.float32)
        distances = cosine_distances(vector, matrix)
        scored = [
            (float(dist), int(row.id or 0), row.slug, row)
            for dist, row in zip(distances.tolist(), candidates, strict=True)
        ]
        return [
            SearchResult(
                id=doc_id,
                slug=row.slug,
                title=row.title,
                folder=row.folder,
                tags=tuple(row.tags),
                distance=dist,
                chunk_index=row.chunk_index,
                excerpt=row.body,
            )
            for dist, doc_id, _, row in select_top_k(scored, limit)
        ]

    async def delete(self, slugs: list[str]) -> DeleteResult:
        """Delete every row belonging to *slugs*."""
        if not slugs:
            return DeleteResult(deleted_count=0)
        async with self._session() as session:
            result = await session.execute(
                delete(SearchDocument).where(SearchDocument.slug.in_(slugs))  # type: ignore[attr-defined]
            )
        return DeleteResult(deleted_count=result.rowcount or 0)

    async def fetch(self, slug: str) -> list[StoredDocument]:
        """Return the stored rows of *slug*, ordered by chunk index."""
        stmt = (
            select(SearchDocument)
            .where(SearchDocument.slug == slug)
            .order_by(SearchDocument.chunk_index)
        )
        async with self._session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [
            StoredDocument(
                id=int(row.id or 0),
                slug=row.slug,
                title=row.title,
                folder=row.folder,
                tags=tuple(row.tags),
                body=row.body,
                embedding=list(row.embedding),
                chunk_index=row.chunk_index,
                content_hash=row.content_hash,
            )
            for row in rows
        ]

    async def count(self) -> int:
        """Return the number of stored rows."""
        async with self._session() as session:
            result = await session.execute(select(func.count()).select_from(SearchDocument))
            return int(result.scalar() or 0)

    async def slugs(self) -> set[str]:
        """Return every stored slug."""
        async with self._session() as session:
            result = await session.execute(select(SearchDocument.slug).distinct())
            return {row[0] for row in result.all()}

    async def content_hashes(self) -> dict[str, str]:
        """Return ``slug -> content_hash`` taken from each article's first chunk."""
        stmt = select(SearchDocument.slug, SearchDocument.content_hash).where(
            SearchDocument.chunk_index == 0
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return {slug: content_hash for slug, content_hash in result.all()}

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dialect(self) -> str:
        return self._dialect

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _session(self) -> _StoreSession:
        return _StoreSession(self._session_factory)


class _StoreSession:
    """Session context that commits on success and maps driver errors to ``StoreUnavailableError``."""

    def __init__(self, factory: async_sessionmaker[AsyncSession]) -> None:
        self._factory = factory
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> AsyncSession:
        self._session = self._factory()
        return self._session

    async def __aexit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        assert self._session is not None
        session = self._session
        try:
            if exc is None:
                await session.commit()
            else:
                await session.rollback()
        except (SQLAlchemyError, OSError) as commit_exc:
            await session.close()
            msg = f"Vector store write failed: {type(commit_exc).__name__}"
            raise StoreUnavailableError(msg) from commit_exc
        await session.close()
        if isinstance(exc, (SQLAlchemyError, OSError)):
            msg = f"Vector store query failed: {type(exc).__name__}"
            logger.error("%s (%s)", msg, exc)
            raise StoreUnavailableError(msg) from exc
        return False


def _row_metadata(row: SearchDocument) -> dict[str, Any]:
    return {
        "slug": row.slug,
        "title": row.title,
        "folder": row.folder,
        "tags": tuple(row.tags),
        "chunk_index": row.chunk_index,
    }
