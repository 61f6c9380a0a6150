"""Indexer — turns articles into stored embedding rows."""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from vault_search.exceptions import StoreUnavailableError, VaultSearchError
from vault_search.search.chunking import chunk_text
from vault_search.search.providers._validation import check_vectors
from vault_search.search.types import Article, DocumentEntry, IndexFailure, IndexReport

if TYPE_CHECKING:
    from collections.abc import Iterable

    from vault_search.search.protocols import EmbeddingProvider, VectorStore

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 64


def content_hash(
    article: Article,
    *,
    chunk_size: int | None = None,
    chunk_overlap: int = 0,
) -> str:
    """Return the sha256 of everything that affects an article's stored rows.

    The chunking parameters are part of the hash, so changing them
    re-embeds every article on the next run.
    """
    chunking = [chunk_size, chunk_overlap] if chunk_size is not None else None
    payload = json.dumps(
        [article.title, article.folder, list(article.tags), article.body, chunking],
        ensure_ascii=False,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


@dataclass(frozen=True, slots=True)
class _Pending:
    """One article waiting to be embedded, already split into texts."""

    article: Article
    texts: list[str]
    content_hash: str


class Indexer:
    """Embeds articles in batches and writes them to a :class:`VectorStore`.

    Articles with an empty body are skipped.  An article whose content hash
    matches what the store already holds is skipped unless ``force`` is
    set, so re-running on an unchanged corpus writes nothing.

    A failing embedding call never takes the whole batch down: the batch is
    retried text by text and only the articles whose texts still fail are
    reported.  Store failures abort the run.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: VectorStore,
        *,
        batch_size: int = 16,
        chunk_size: int | None = None,
        chunk_overlap: int = 200,
    ) -> None:
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            msg = f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}"
            raise ValueError(msg)
        if chunk_size is not None and chunk_overlap >= chunk_size:
            msg = f"chunk_overlap ({chunk_overlap}) must be smaller than chunk_size ({chunk_size})"
            raise ValueError(msg)
        self._provider = provider
        self._store = store
        self._batch_size = batch_size
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap

    async def index_all(
        self,
        articles: Iterable[Article],
        *,
        prune: bool = True,
        force: bool = False,
    ) -> IndexReport:
        """Index *articles* and return a report of what happened."""
        started = time.perf_counter()
        report = IndexReport()

        try:
            stored_hashes = {} if force else await self._store.content_hashes()
        except (StoreUnavailableError, OSError) as exc:
            logger.error("Cannot read stored content hashes: %s", exc)
            raise

        seen: set[str] = set()
        emptied: set[str] = set()
        pending: list[_Pending] = []
        for article in articles:
            if article.slug in seen:
                logger.warning("Duplicate slug %s; keeping the first copy", article.slug)
                report.failed.append(IndexFailure(article.slug, "duplicate slug"))
                continue
            seen.add(article.slug)

            texts = self._texts_for(article)
            if not texts:
                logger.debug("Skipping %s: empty body", article.slug)
                emptied.add(article.slug)
                report.skipped += 1
                continue

            digest = content_hash(
                article, chunk_size=self._chunk_size, chunk_overlap=self._chunk_overlap
            )
            if stored_hashes.get(article.slug) == digest:
                report.skipped += 1
                continue
            pending.append(_Pending(article, texts, digest))

        for start in range(0, len(pending), self._batch_size):
            await self._index_batch(pending[start : start + self._batch_size], report)

        # Articles whose body became empty lose their rows even without prune
        stored = await self._store.slugs()
        stale = emptied & stored
        if prune:
            stale |= stored - seen
        if stale:
            await self._store.delete(sorted(stale))
            report.pruned = len(stale)
            logger.info("Pruned %d articles that are gone or now empty", len(stale))

        report.duration_seconds = time.perf_counter() - started
        logger.info(
            "Indexed %d, skipped %d, failed %d, pruned %d in %.2fs",
            report.indexed,
            report.skipped,
            len(report.failed),
            report.pruned,
            report.duration_seconds,
        )
        return report

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _texts_for(self, article: Article) -> list[str]:
        body = article.body.strip()
        if not body:
            return []
        if self._chunk_size is None:
            return [body]
        return chunk_text(body, self._chunk_size, self._chunk_overlap)

    async def _index_batch(self, batch: list[_Pending], report: IndexReport) -> None:
        texts = [text for item in batch for text in item.texts]
        try:
            vectors: list[list[float] | None] = list(await self._embed_batch(texts))
            errors: list[str | None] = [None] * len(texts)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Batch of %d texts failed (%s); retrying one by one", len(texts), exc
            )
            vectors, errors = await self._embed_individually(texts)

        entries: list[DocumentEntry] = []
        offset = 0
        for item in batch:
            span = range(offset, offset + len(item.texts))
            offset += len(item.texts)
            reason = next((errors[i] for i in span if errors[i] is not None), None)
            if reason is not None:
                logger.warning("Failed to index %s: %s", item.article.slug, reason)
                report.failed.append(IndexFailure(item.article.slug, reason))
                continue
            article = item.article
            for chunk_index, i in enumerate(span):
                vector = vectors[i]
                assert vector is not None
                entries.append(
                    DocumentEntry(
                        slug=article.slug,
                        title=article.title,
                        folder=article.folder,
                        tags=tuple(article.tags),
                        body=texts[i],
                        embedding=vector,
                        chunk_index=chunk_index,
                        content_hash=item.content_hash,
                    )
                )
            report.indexed += 1

        if entries:
            result = await self._store.upsert(entries)
            report.chunks += result.upserted_count

    async def _embed_individually(
        self, texts: list[str]
    ) -> tuple[list[list[float] | None], list[str | None]]:
        """Embed each text on its own, at most ``batch_size`` at a time."""
        semaphore = asyncio.Semaphore(self._batch_size)

        async def one(text: str) -> tuple[list[float] | None, str | None]:
            async with semaphore:
                try:
                    return await self._embed(text), None
                except Exception as exc:  # noqa: BLE001
                    return None, _describe(exc)

        outcomes = await asyncio.gather(*(one(text) for text in texts))
        return [v for v, _ in outcomes], [e for _, e in outcomes]

    async def _embed(self, text: str) -> list[float]:
        """Embed a single text, handling both sync and async providers."""
        result = self._provider.embed(text)
        if inspect.isawaitable(result):
            result = await result
        return check_vectors(
            [result],
            expected_count=1,
            dimensions=self._store.dimension,
            source=self._provider.model_name,
        )[0]

    async def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts, handling both sync and async providers."""
        result = self._provider.embed_batch(texts)
        if inspect.isawaitable(result):
            result = await result
        return check_vectors(
            result,
            expected_count=len(texts),
            dimensions=self._store.dimension,
            source=self._provider.model_name,
        )


def _describe(exc: BaseException) -> str:
    if isinstance(exc, VaultSearchError):
        return f"{exc.kind.value}: {exc}"
    return f"{type(exc).__name__}: {exc}"
