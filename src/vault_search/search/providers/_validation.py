"""Output checks shared by embedding providers."""

from __future__ import annotations

from collections.abc import Sequence

from vault_search.exceptions import DimensionMismatchError, ProviderUnavailableError


def check_vectors(
    vectors: Sequence[Sequence[float]],
    *,
    expected_count: int,
    dimensions: int | None,
    source: str,
) -> list[list[float]]:
    """Validate provider output and return it as plain float lists.

    Raises ``ProviderUnavailableError`` when the provider returned the wrong
    number of vectors and ``DimensionMismatchError`` when a vector's length
    differs from *dimensions*.  Vectors are never truncated or padded.
    """
    if len(vectors) != expected_count:
        msg = f"{source} returned {len(vectors)} vectors for {expected_count} inputs"
        raise ProviderUnavailableError(msg)
    result: list[list[float]] = []
    for vector in vectors:
        if dimensions is not None and len(vector) != dimensions:
            raise DimensionMismatchError(dimensions, len(vector), source=source)
        result.append([float(x) for x in vector])
    return result
