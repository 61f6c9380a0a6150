"""SQLModel database models for vault-search."""

from vault_search.models.documents import SearchDocument, SearchIndexInfo

__all__ = [
    "SearchDocument",
    "SearchIndexInfo",
]
