"""Dialect-aware SQL helpers — dialect detection and upsert."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy import Engine
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


def get_dialect(engine: Engine | AsyncEngine) -> str:
    """Return 'sqlite', 'postgresql', or the raw dialect name."""
    # AsyncEngine wraps a sync engine
    sync_engine = getattr(engine, "sync_engine", engine)
    name = sync_engine.dialect.name
    if name == "sqlite":
        return "sqlite"
    if name in ("postgresql", "postgres"):
        return "postgresql"
    return name


async def upsert_rows(
    session: AsyncSession,
    dialect: str,
    model: type,
    rows: list[dict[str, Any]],
    conflict_keys: list[str],
    update_keys: list[str] | None = None,
) -> int:
    """Dialect-aware bulk upsert.  Returns the number of rows written.

    SQLite and PostgreSQL both use ``INSERT ... ON CONFLICT DO UPDATE``, so
    the primary key of an existing row is preserved.
    """
    if not rows:
        return 0
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        msg = f"Upsert is not supported for dialect {dialect!r}"
        raise ValueError(msg)

    written = 0
    for values in rows:
        stmt = insert(model).values(**values)

        # Columns to update on conflict, taken from the proposed row
        if update_keys is not None:
            update_cols = {k: stmt.excluded[k] for k in values if k in update_keys}
        else:
            update_cols = {k: stmt.excluded[k] for k in values if k not in conflict_keys}

        if update_cols:
            stmt = stmt.on_conflict_do_update(index_elements=conflict_keys, set_=update_cols)
        else:
            stmt = stmt.on_conflict_do_nothing(index_elements=conflict_keys)

        await session.execute(stmt)
        written += 1
    return written
