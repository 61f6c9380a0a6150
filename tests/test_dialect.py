"""Tests for dialect detection and the dialect-aware upsert."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from vault_search.models import SearchDocument
from vault_search.search.dialect import get_dialect, upsert_rows

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def async_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dialect.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


def _row(slug: str, title: str, chunk_index: int = 0) -> dict:
    return {
        "slug": slug,
        "chunk_index": chunk_index,
        "title": title,
        "folder": "f",
        "tags": [],
        "body": "",
        "content_hash": "",
        "dimensions": 1,
        "embedding": [1.0],
    }


class TestGetDialect:
    def test_sqlite_sync(self):
        assert get_dialect(create_engine("sqlite://")) == "sqlite"

    async def test_sqlite_async(self, async_engine: AsyncEngine):
        assert get_dialect(async_engine) == "sqlite"


class TestUpsertRows:
    async def test_insert_then_update_keeps_primary_key(self, async_engine: AsyncEngine):
        factory = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            written = await upsert_rows(
                session,
                "sqlite",
                SearchDocument,
                [_row("a", "first"), _row("b", "other")],
                conflict_keys=["slug", "chunk_index"],
            )
            await session.commit()
        assert written == 2

        async with factory() as session:
            before = (
                await session.execute(select(SearchDocument).where(SearchDocument.slug == "a"))
            ).scalar_one()
            await upsert_rows(
                session,
                "sqlite",
                SearchDocument,
                [_row("a", "second")],
                conflict_keys=["slug", "chunk_index"],
            )
            await session.commit()

        async with factory() as session:
            rows = (await session.execute(select(SearchDocument))).scalars().all()
        by_slug = {r.slug: r for r in rows}
        assert len(rows) == 2
        assert by_slug["a"].title == "second"
        assert by_slug["a"].id == before.id

    async def test_update_keys_limit_columns(self, async_engine: AsyncEngine):
        factory = async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)
        async with factory() as session:
            await upsert_rows(session, "sqlite", SearchDocument, [_row("a", "first")], ["slug", "chunk_index"])
            changed = {**_row("a", "second"), "folder": "g"}
            await upsert_rows(
                session, "sqlite", SearchDocument, [changed], ["slug", "chunk_index"], update_keys=["folder"]
            )
            await session.commit()
            row = (await session.execute(select(SearchDocument))).scalar_one()
        assert row.title == "first"
        assert row.folder == "g"

    async def test_empty_rows(self, async_engine: AsyncEngine):
        factory = async_sessionmaker(async_engine, class_=AsyncSession)
        async with factory() as session:
            assert await upsert_rows(session, "sqlite", SearchDocument, [], ["slug"]) == 0

    async def test_unsupported_dialect(self, async_engine: AsyncEngine):
        factory = async_sessionmaker(async_engine, class_=AsyncSession)
        async with factory() as session:
            with pytest.raises(ValueError, match="mssql"):
                await upsert_rows(session, "mssql", SearchDocument, [_row("a", "x")], ["slug"])
