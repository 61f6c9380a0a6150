"""Construction of providers, stores and engines from :class:`Settings`."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from vault_search.config import ProviderKind, Settings
from vault_search.exceptions import (
    MissingCredentialsError,
    ProviderMismatchError,
    ProviderUnavailableError,
    StoreUnavailableError,
)
from vault_search.search._engine import SearchEngine
from vault_search.search.providers.gemini import GeminiEmbedding
from vault_search.search.providers.sentence_transformers import SentenceTransformerEmbedding
from vault_search.search.stores.database import DatabaseVectorStore
from vault_search.search.stores.local import LocalVectorStore

if TYPE_CHECKING:
    from collections.abc import Callable

    from vault_search.search.protocols import EmbeddingProvider, VectorStore

logger = logging.getLogger(__name__)


def _secret(settings_value: object) -> str | None:
    if settings_value is None:
        return None
    return settings_value.get_secret_value()  # type: ignore[attr-defined]


def _build_local(settings: Settings) -> EmbeddingProvider:
    try:
        return SentenceTransformerEmbedding(
            settings.local_model, cache_folder=settings.model_cache_dir
        )
    except ImportError as exc:
        raise ProviderUnavailableError(str(exc)) from exc


def _build_gemini(settings: Settings) -> EmbeddingProvider:
    return GeminiEmbedding(
        model=settings.gemini_model,
        dimensions=settings.embedding_dimensions,
        api_key=_secret(settings.gemini_api_key),
    )


def _build_openai(settings: Settings) -> EmbeddingProvider:
    try:
        from vault_search.search.providers.openai import OpenAIEmbedding

        return OpenAIEmbedding(
            model=settings.openai_model,
            dimensions=settings.embedding_dimensions,
            api_key=_secret(settings.openai_api_key),
        )
    except ImportError as exc:
        raise ProviderUnavailableError(str(exc)) from exc


_BUILDERS: dict[ProviderKind, Callable[[Settings], EmbeddingProvider]] = {
    ProviderKind.LOCAL: _build_local,
    ProviderKind.GEMINI: _build_gemini,
    ProviderKind.OPENAI: _build_openai,
}


def build_provider(settings: Settings, kind: ProviderKind | None = None) -> EmbeddingProvider:
    """Build the configured embedding provider.

    A remote provider without credentials falls back to the local model
    with a warning.
    """
    kind = kind or settings.embedding_provider
    try:
        return _BUILDERS[kind](settings)
    except MissingCredentialsError as exc:
        if kind is ProviderKind.LOCAL:
            raise
        logger.warning("%s; falling back to the local embedding model", exc)
        return _build_local(settings)


def _database_store(
    url: str, provider: EmbeddingProvider, password: str | None = None
) -> DatabaseVectorStore:
    return DatabaseVectorStore.from_url(
        url,
        dimension=provider.dimensions,
        model_name=provider.model_name,
        password=password,
    )


async def open_store(
    settings: Settings,
    provider: EmbeddingProvider,
    *,
    fallback: bool = False,
    rebuild: bool = False,
) -> VectorStore:
    """Create and connect the configured vector store.

    With *fallback*, an unreachable remote database is replaced by the
    local SQLite file store.  A provider mismatch is never masked.
    With *rebuild*, the store is dropped and recreated for *provider*.
    """
    store: VectorStore
    if settings.store_backend == "usearch":
        store = LocalVectorStore(
            dimension=provider.dimensions,
            model_name=provider.model_name,
            directory=Path(settings.index_dir),
        )
    elif settings.database_url:
        store = _database_store(
            settings.database_url, provider, _secret(settings.database_password)
        )
    else:
        store = _database_store(settings.local_database_url, provider)

    try:
        if rebuild:
            await store.reset()
        else:
            await store.connect()
    except ProviderMismatchError:
        await store.close()
        raise
    except StoreUnavailableError as exc:
        await store.close()
        if not (fallback and settings.database_url and settings.store_backend == "database"):
            raise
        logger.warning(
            "Remote vector store unavailable (%s); falling back to %s",
            exc,
            settings.local_database_path,
        )
        store = _database_store(settings.local_database_url, provider)
        if rebuild:
            await store.reset()
        else:
            await store.connect()
    return store


async def build_engine(settings: Settings, *, fallback: bool = True) -> SearchEngine:
    """Build a ready-to-query :class:`SearchEngine` from *settings*."""
    provider = build_provider(settings)
    store = await open_store(settings, provider, fallback=fallback)
    return SearchEngine(
        store,
        provider,
        min_query_length=settings.min_query_length,
        max_limit=settings.max_limit,
        default_limit=settings.default_limit,
    )
