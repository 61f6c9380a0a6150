"""Vector math — cosine similarity/distance, normalisation and top-k selection."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TypeVar

import numpy as np

T = TypeVar("T")


def l2_normalize(vectors: np.ndarray) -> np.ndarray:
    """Return *vectors* (1-D or 2-D) scaled to unit L2 norm.  Zero rows stay zero."""
    arr = np.asarray(vectors, dtype=np.float32)
    norms = np.linalg.norm(arr, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return arr / norms


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors (0.0 if either is zero)."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        msg = f"Vectors differ in length: {va.shape[0]} != {vb.shape[0]}"
        raise ValueError(msg)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def cosine_distances(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine distance (``1 - similarity``) from *query* to every row of *matrix*."""
    if len(matrix) == 0:
        return np.zeros(0, dtype=np.float32)
    q = l2_normalize(np.asarray(query, dtype=np.float32))
    m = l2_normalize(matrix)
    return 1.0 - m @ q


def select_top_k(
    scored: Iterable[tuple[float, int, str, T]],
    limit: int,
) -> list[tuple[float, int, str, T]]:
    """Pick the *limit* best ``(distance, id, slug, item)`` tuples.

    Sorted by ascending distance, ties broken by ascending id.  Only the
    first (closest) tuple of each slug is kept, so chunked articles
    appear once.
    """
    if limit <= 0:
        return []
    picked: list[tuple[float, int, str, T]] = []
    seen: set[str] = set()
    for item in sorted(scored, key=lambda s: (s[0], s[1])):
        if item[2] in seen:
            continue
        seen.add(item[2])
        picked.append(item)
        if len(picked) >= limit:
            break
    return picked
