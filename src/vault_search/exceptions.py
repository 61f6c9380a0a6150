"""Exception hierarchy for the search engine, API and indexer."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Stable error vocabulary exposed to clients instead of raw exceptions."""

    VALIDATION_ERROR = "validation_error"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    STORE_UNAVAILABLE = "store_unavailable"
    DIMENSION_MISMATCH = "dimension_mismatch"
    INTERNAL_ERROR = "internal_error"


class VaultSearchError(Exception):
    """Base exception for all vault-search errors."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR


class ProviderUnavailableError(VaultSearchError):
    """Raised when embedding generation fails (model load, network, rate limit)."""

    kind = ErrorKind.PROVIDER_UNAVAILABLE


class MissingCredentialsError(VaultSearchError, ValueError):
    """Raised when a remote embedding provider is built without an API key."""

    kind = ErrorKind.PROVIDER_UNAVAILABLE


class DimensionMismatchError(VaultSearchError):
    """Raised when a vector's length differs from the configured dimension.

    Attributes:
        expected: The configured embedding dimension.
        actual: The length of the offending vector.
    """

    kind = ErrorKind.DIMENSION_MISMATCH

    def __init__(self, expected: int, actual: int, *, source: str = "") -> None:
        self.expected = expected
        self.actual = actual
        self.source = source
        where = f" from {source}" if source else ""
        super().__init__(f"Expected a {expected}-dimensional vector{where}, got {actual}")


class StoreUnavailableError(VaultSearchError):
    """Raised when the vector store cannot be opened or queried."""

    kind = ErrorKind.STORE_UNAVAILABLE


class ProviderMismatchError(StoreUnavailableError):
    """Raised when a store was built with a different embedding model or dimension."""


class QueryValidationError(VaultSearchError):
    """Raised for malformed query input (non-string text, out-of-range limit)."""

    kind = ErrorKind.VALIDATION_ERROR
