"""Vector search layer — engine, indexer, stores, embedding providers."""

from vault_search.search._engine import SearchEngine, group_by_folder
from vault_search.search.indexer import Indexer, content_hash
from vault_search.search.protocols import EmbeddingProvider, VectorStore
from vault_search.search.stores import DatabaseVectorStore, LocalVectorStore
from vault_search.search.types import (
    Article,
    IndexReport,
    ResultGroup,
    SearchResult,
)

__all__ = [
    "Article",
    "DatabaseVectorStore",
    "EmbeddingProvider",
    "IndexReport",
    "Indexer",
    "LocalVectorStore",
    "ResultGroup",
    "SearchEngine",
    "SearchResult",
    "VectorStore",
    "content_hash",
    "group_by_folder",
]
