"""GeminiEmbedding — async embedding provider backed by the Gemini REST API."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

import httpx

from vault_search.exceptions import MissingCredentialsError, ProviderUnavailableError
from vault_search.search.providers._validation import check_vectors

logger = logging.getLogger(__name__)

_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Gemini accepts at most 100 requests per batchEmbedContents call.
_MAX_BATCH = 100

_MODEL_DEFAULTS: dict[str, int] = {
    "text-embedding-004": 768,
    "embedding-001": 768,
    "gemini-embedding-001": 3072,
}

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class GeminiEmbedding:
    """Async embedding provider backed by Gemini's ``batchEmbedContents`` endpoint.

    The API key travels in the ``x-goog-api-key`` header, never in the URL,
    so it does not end up in access logs.  Transport errors, 429 and 5xx
    responses are retried up to *max_retries* times with exponential
    backoff; anything else fails immediately with
    ``ProviderUnavailableError``.
    """

    def __init__(
        self,
        *,
        model: str = "text-embedding-004",
        dimensions: int | None = None,
        api_key: str | None = None,
        task_type: str | None = None,
        max_retries: int = 3,
        backoff: float = 0.5,
        timeout: float = 30.0,
        base_url: str = _BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_key = api_key or os.environ.get("GEMINI_API_KEY")
        if not resolved_key:
            msg = (
                "No Gemini API key provided. Pass api_key= or set the "
                "GEMINI_API_KEY environment variable."
            )
            raise MissingCredentialsError(msg)

        self._model = model.removeprefix("models/")
        self._dimensions = dimensions
        self._task_type = task_type
        self._max_retries = max_retries
        self._backoff = backoff
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"x-goog-api-key": resolved_key},
            timeout=timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # EmbeddingProvider protocol
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string via the Gemini API."""
        result = await self._call_api([text])
        return result[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts, at most 100 per API call, preserving order."""
        if not texts:
            return []
        vectors: list[list[float]] = []
        for start in range(0, len(texts), _MAX_BATCH):
            vectors.extend(await self._call_api(texts[start : start + _MAX_BATCH]))
        return vectors

    @property
    def dimensions(self) -> int:
        """Return the embedding dimensionality."""
        if self._dimensions is not None:
            return self._dimensions
        default = _MODEL_DEFAULTS.get(self._model)
        if default is not None:
            return default
        msg = f"Unknown default dimensions for model {self._model!r}. Pass dimensions= explicitly."
        raise ValueError(msg)

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self._model

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _payload(self, texts: list[str]) -> dict[str, Any]:
        requests: list[dict[str, Any]] = []
        for text in texts:
            request: dict[str, Any] = {
                "model": f"models/{self._model}",
                "content": {"parts": [{"text": text}]},
            }
            if self._task_type is not None:
                request["taskType"] = self._task_type
            if self._dimensions is not None:
                request["outputDimensionality"] = self._dimensions
            requests.append(request)
        return {"requests": requests}

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        path = f"/models/{self._model}:batchEmbedContents"
        attempt = 0
        while True:
            try:
                response = await self._client.post(path, json=payload)
            except httpx.TransportError as exc:
                if attempt >= self._max_retries:
                    msg = f"Gemini embedding request failed: {type(exc).__name__}"
                    raise ProviderUnavailableError(msg) from exc
                logger.warning(
                    "Gemini request failed (%s), retry %d/%d",
                    type(exc).__name__,
                    attempt + 1,
                    self._max_retries,
                )
            else:
                if response.status_code not in _RETRYABLE_STATUS:
                    return response
                if attempt >= self._max_retries:
                    return response
                logger.warning(
                    "Gemini returned HTTP %d, retry %d/%d",
                    response.status_code,
                    attempt + 1,
                    self._max_retries,
                )
            await asyncio.sleep(self._backoff * (2**attempt))
            attempt += 1

    async def _call_api(self, texts: list[str]) -> list[list[float]]:
        response = await self._post(self._payload(texts))
        if response.is_error:
            logger.error(
                "Gemini embedding request failed: HTTP %d, batch size=%d",
                response.status_code,
                len(texts),
            )
            msg = f"Gemini embedding request failed: HTTP {response.status_code}"
            raise ProviderUnavailableError(msg)

        try:
            records = response.json()["embeddings"]
            raw = [record["values"] for record in records]
        except (ValueError, KeyError, TypeError) as exc:
            msg = "Gemini embedding response is malformed"
            raise ProviderUnavailableError(msg) from exc

        return check_vectors(
            raw,
            expected_count=len(texts),
            dimensions=self._dimensions or _MODEL_DEFAULTS.get(self._model),
            source=self._model,
        )
