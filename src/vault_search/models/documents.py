"""Search document and index metadata tables."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class SearchDocument(SQLModel, table=True):
    """One embedded article (or article chunk).

    Rows are unique per ``(slug, chunk_index)``; ``id`` is assigned on first
    insert and kept across upserts.  ``embedding`` holds exactly
    ``dimensions`` floats.
    """

    __tablename__ = "search_documents"
    __table_args__ = (
        UniqueConstraint("slug", "chunk_index", name="uq_search_documents_slug_chunk"),
    )

    id: int | None = Field(default=None, primary_key=True)
    slug: str = Field(index=True)
    chunk_index: int = Field(default=0)
    title: str = Field(default="")
    folder: str = Field(default="", index=True)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    body: str = Field(default="", sa_column=Column(Text, nullable=False))
    content_hash: str = Field(default="")
    dimensions: int = Field(default=0)
    embedding: list[float] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SearchIndexInfo(SQLModel, table=True):
    """The embedding model a store was built with (single row)."""

    __tablename__ = "search_index_info"

    id: int = Field(default=1, primary_key=True)
    model_name: str
    dimensions: int
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
