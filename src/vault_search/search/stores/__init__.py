"""Vector stores — VectorStore protocol implementations."""

from vault_search.search.stores.database import DatabaseVectorStore
from vault_search.search.stores.local import LocalVectorStore

__all__ = [
    "DatabaseVectorStore",
    "LocalVectorStore",
]
