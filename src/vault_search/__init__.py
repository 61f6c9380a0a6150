"""vault-search: semantic search for a markdown documentation vault.

Offline indexing, a vector store, a query engine and a debounced client
session, wired together behind an HTTP API and a CLI.
"""

__version__ = "0.1.0"

from vault_search.config import ProviderKind, Settings, get_settings
from vault_search.exceptions import (
    DimensionMismatchError,
    ErrorKind,
    MissingCredentialsError,
    ProviderMismatchError,
    ProviderUnavailableError,
    QueryValidationError,
    StoreUnavailableError,
    VaultSearchError,
)
from vault_search.search._engine import SearchEngine, group_by_folder
from vault_search.search.filters import (
    FilterExpression,
    and_,
    eq,
    exists,
    in_,
    ne,
    not_in,
    or_,
)
from vault_search.search.indexer import Indexer
from vault_search.search.protocols import EmbeddingProvider, VectorStore
from vault_search.search.stores import DatabaseVectorStore, LocalVectorStore
from vault_search.search.types import (
    Article,
    DeleteResult,
    DocumentEntry,
    IndexFailure,
    IndexReport,
    ResultGroup,
    SearchResult,
    StoredDocument,
    UpsertResult,
)
from vault_search.session import SearchSession, SearchStatus, SessionState

__all__ = [
    "Article",
    "DatabaseVectorStore",
    "DeleteResult",
    "DimensionMismatchError",
    "DocumentEntry",
    "EmbeddingProvider",
    "ErrorKind",
    "FilterExpression",
    "IndexFailure",
    "IndexReport",
    "Indexer",
    "LocalVectorStore",
    "MissingCredentialsError",
    "ProviderKind",
    "ProviderMismatchError",
    "ProviderUnavailableError",
    "QueryValidationError",
    "ResultGroup",
    "SearchEngine",
    "SearchResult",
    "SearchSession",
    "SearchStatus",
    "SessionState",
    "Settings",
    "StoreUnavailableError",
    "StoredDocument",
    "UpsertResult",
    "VaultSearchError",
    "VectorStore",
    "__version__",
    "and_",
    "eq",
    "exists",
    "get_settings",
    "in_",
    "ne",
    "not_in",
    "or_",
    "group_by_folder",
]
