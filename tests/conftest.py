"""Shared fixtures for vault-search tests."""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING

import pytest

from vault_search.search.stores.database import DatabaseVectorStore
from vault_search.search.stores.local import LocalVectorStore
from vault_search.search.types import Article

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

# ------------------------------------------------------------------
# Deterministic providers
# ------------------------------------------------------------------

VOCABULARY = (
    "relational",
    "sql",
    "database",
    "transactions",
    "joins",
    "document",
    "json",
    "cache",
    "key",
    "value",
    "memory",
    "python",
    "async",
)
DIM = len(VOCABULARY) + 1

_WORD_RE = re.compile(r"[a-z0-9]+")


def vocab_vector(text: str) -> list[float]:
    """Bag-of-words over :data:`VOCABULARY` plus a small constant component, unit length."""
    words = _WORD_RE.findall(text.lower())
    raw = [float(words.count(term)) for term in VOCABULARY] + [0.1]
    norm = math.sqrt(sum(x * x for x in raw))
    return [x / norm for x in raw]


class VocabProvider:
    """Async provider whose similarity is shared vocabulary; records every call."""

    def __init__(self, model_name: str = "vocab") -> None:
        self._model_name = model_name
        self.calls: list[list[str]] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append([text])
        return vocab_vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [vocab_vector(t) for t in texts]

    @property
    def dimensions(self) -> int:
        return DIM

    @property
    def model_name(self) -> str:
        return self._model_name


class SyncVocabProvider:
    """Synchronous variant, for the sync/async bridge."""

    def embed(self, text: str) -> list[float]:
        return vocab_vector(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [vocab_vector(t) for t in texts]

    @property
    def dimensions(self) -> int:
        return DIM

    @property
    def model_name(self) -> str:
        return "vocab"


# ------------------------------------------------------------------
# Corpus
# ------------------------------------------------------------------

DATABASE_ARTICLES = [
    Article(
        slug="databases/postgres",
        title="PostgreSQL",
        folder="databases",
        tags=("sql", "relational"),
        body="PostgreSQL is a relational SQL database with transactions and joins.",
    ),
    Article(
        slug="databases/mongodb",
        title="MongoDB",
        folder="databases",
        tags=("nosql",),
        body="MongoDB is a document database that stores JSON.",
    ),
    Article(
        slug="caching/redis",
        title="Redis",
        folder="caching",
        tags=("cache",),
        body="Redis is an in-memory key value cache.",
    ),
]


@pytest.fixture
def articles() -> list[Article]:
    return list(DATABASE_ARTICLES)


@pytest.fixture
def provider() -> VocabProvider:
    return VocabProvider()


# ------------------------------------------------------------------
# Stores
# ------------------------------------------------------------------


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """URL of a fresh SQLite file database."""
    return f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
async def db_store(db_url: str) -> AsyncIterator[DatabaseVectorStore]:
    """Connected SQLite-backed store pinned to the vocab provider."""
    store = DatabaseVectorStore.from_url(db_url, dimension=DIM, model_name="vocab")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
async def local_store() -> AsyncIterator[LocalVectorStore]:
    """In-memory usearch store pinned to the vocab provider."""
    store = LocalVectorStore(dimension=DIM, model_name="vocab")
    await store.connect()
    yield store
    await store.close()


@pytest.fixture(params=["database", "usearch"])
async def any_store(
    request: pytest.FixtureRequest, db_url: str
) -> AsyncIterator[DatabaseVectorStore | LocalVectorStore]:
    """Each store implementation in turn."""
    store: DatabaseVectorStore | LocalVectorStore
    if request.param == "database":
        store = DatabaseVectorStore.from_url(db_url, dimension=DIM, model_name="vocab")
    else:
        store = LocalVectorStore(dimension=DIM, model_name="vocab")
    await store.connect()
    yield store
    await store.close()
