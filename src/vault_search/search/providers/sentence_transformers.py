"""SentenceTransformerEmbedding — local embedding provider (all-MiniLM-L6-v2)."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from vault_search.exceptions import ProviderUnavailableError
from vault_search.search.providers._validation import check_vectors
from vault_search.search.similarity import l2_normalize

try:
    from sentence_transformers import SentenceTransformer

    _HAS_SENTENCE_TRANSFORMERS = True
except ImportError:  # pragma: no cover
    SentenceTransformer = None  # type: ignore[assignment,misc]
    _HAS_SENTENCE_TRANSFORMERS = False

logger = logging.getLogger(__name__)

# Dimensions of common mean-pooling models, reported without loading weights.
_MODEL_DIMENSIONS: dict[str, int] = {
    "all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "all-MiniLM-L12-v2": 384,
    "all-mpnet-base-v2": 768,
    "sentence-transformers/all-mpnet-base-v2": 768,
}

# Process-wide model cache: (model name, cache folder) -> loaded model.
_models: dict[tuple[str, str | None], Any] = {}
_models_lock = threading.Lock()


def _get_model(model_name: str, cache_folder: str | None) -> Any:
    """Load *model_name* once per process; concurrent first calls share one load."""
    key = (model_name, cache_folder)
    model = _models.get(key)
    if model is not None:
        return model
    with _models_lock:
        model = _models.get(key)
        if model is None:
            logger.info("Loading embedding model %s", model_name)
            try:
                model = SentenceTransformer(model_name, cache_folder=cache_folder)
            except Exception as exc:
                msg = f"Could not load embedding model {model_name!r}: {exc}"
                raise ProviderUnavailableError(msg) from exc
            _models[key] = model
    return model


def clear_model_cache() -> None:
    """Forget every loaded model (the next call reloads)."""
    with _models_lock:
        _models.clear()


class SentenceTransformerEmbedding:
    """Embedding provider backed by ``sentence-transformers``.

    The model is loaded lazily on first use and shared by every provider
    instance in the process.  Async methods run the CPU-bound inference in a
    thread pool via :func:`asyncio.to_thread`.  Rows come out of the model
    mean-pooled and are L2-normalised here, so cosine distance and dot
    product agree.
    """

    def __init__(
        self,
        model_name: str = "all-MiniLM-L6-v2",
        *,
        cache_folder: str | None = None,
    ) -> None:
        if not _HAS_SENTENCE_TRANSFORMERS:
            msg = (
                "sentence-transformers is required for SentenceTransformerEmbedding. "
                "Install it with: pip install vault-search[local]"
            )
            raise ImportError(msg)
        self._model_name = model_name
        self._cache_folder = cache_folder

    def _load_model(self) -> Any:
        return _get_model(self._model_name, self._cache_folder)

    # ------------------------------------------------------------------
    # Sync methods
    # ------------------------------------------------------------------

    def embed_sync(self, text: str) -> list[float]:
        """Embed a single text string (synchronous)."""
        return self.embed_batch_sync([text])[0]

    def embed_batch_sync(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts (synchronous)."""
        if not texts:
            return []
        model = self._load_model()
        try:
            raw: Any = model.encode(texts, convert_to_numpy=True)
        except Exception as exc:
            msg = f"Embedding model {self._model_name!r} failed: {exc}"
            raise ProviderUnavailableError(msg) from exc
        rows = l2_normalize(raw)
        return check_vectors(
            rows.tolist(),
            expected_count=len(texts),
            dimensions=self.dimensions,
            source=self._model_name,
        )

    # ------------------------------------------------------------------
    # Async methods (EmbeddingProvider protocol)
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string in a thread pool."""
        return await asyncio.to_thread(self.embed_sync, text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts in a thread pool."""
        return await asyncio.to_thread(self.embed_batch_sync, texts)

    @property
    def dimensions(self) -> int:
        """Return the embedding dimensionality."""
        known = _MODEL_DIMENSIONS.get(self._model_name)
        if known is not None:
            return known
        model = self._load_model()
        dim = model.get_sentence_embedding_dimension()
        if dim is None:
            msg = f"Model {self._model_name!r} did not report embedding dimensions"
            raise ProviderUnavailableError(msg)
        return int(dim)

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._model_name
