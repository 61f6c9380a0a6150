"""OpenAI embedding provider (``embedding_provider = "openai"``)."""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

from vault_search.exceptions import MissingCredentialsError, ProviderUnavailableError
from vault_search.search.providers._validation import check_vectors

try:
    from openai import AsyncOpenAI, OpenAIError

    _HAS_OPENAI = True
except ImportError:  # pragma: no cover
    _HAS_OPENAI = False

if TYPE_CHECKING:
    from openai import AsyncOpenAI as AsyncOpenAIType

logger = logging.getLogger(__name__)

_KNOWN_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

_INSTALL_HINT = "pip install vault-search[openai]"


class OpenAIEmbedding:
    """Remote provider calling the OpenAI embeddings endpoint.

    The key comes from *api_key* or ``OPENAI_API_KEY``; without either the
    constructor raises ``MissingCredentialsError`` so the caller can fall
    back to the local model.  Transient failures are retried by the SDK
    (*max_retries*); whatever still fails surfaces as
    ``ProviderUnavailableError`` without the SDK's message text.

    *dimensions* is sent to the API when given (the ``text-embedding-3``
    models can shorten their output); otherwise the model's native size
    is used and must be known.
    """

    def __init__(
        self,
        *,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
        api_key: str | None = None,
        max_retries: int = 2,
        timeout: float = 60.0,
        batch_size: int = 512,
    ) -> None:
        if not _HAS_OPENAI:
            msg = f"The openai package is not installed ({_INSTALL_HINT})"
            raise ImportError(msg)

        key = api_key or os.environ.get("OPENAI_API_KEY")
        if not key:
            msg = "OpenAI embeddings need an API key (api_key= or OPENAI_API_KEY)"
            raise MissingCredentialsError(msg)

        if dimensions is None and model not in _KNOWN_DIMENSIONS:
            msg = f"Cannot infer the dimension of {model!r}; pass dimensions="
            raise ValueError(msg)

        self._model = model
        self._requested_dimensions = dimensions
        self._dimensions = dimensions or _KNOWN_DIMENSIONS[model]
        self._batch_size = batch_size
        self._client: AsyncOpenAIType = AsyncOpenAI(
            api_key=key,
            max_retries=max_retries,
            timeout=timeout,
        )

    async def embed(self, text: str) -> list[float]:
        [vector] = await self._request([text])
        return vector

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in input order, *batch_size* texts per request."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            vectors += await self._request(texts[start : start + self._batch_size])
        return vectors

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return self._model

    async def close(self) -> None:
        await self._client.close()

    async def _request(self, texts: list[str]) -> list[list[float]]:
        params: dict[str, Any] = {"model": self._model, "input": texts}
        if self._requested_dimensions is not None:
            params["dimensions"] = self._requested_dimensions
        try:
            response = await self._client.embeddings.create(**params)
        except OpenAIError as exc:
            logger.error("OpenAI embeddings call failed for %d texts: %s", len(texts), type(exc).__name__)
            msg = f"OpenAI embeddings call failed: {type(exc).__name__}"
            raise ProviderUnavailableError(msg) from exc

        # The API may return items out of order
        items = sorted(response.data, key=lambda item: item.index)
        return check_vectors(
            [item.embedding for item in items],
            expected_count=len(texts),
            dimensions=self._dimensions,
            source=self._model,
        )
