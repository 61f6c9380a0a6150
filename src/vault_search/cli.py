"""``vault-search`` command line: index, search and serve."""

from __future__ import annotations

import argparse
import asyncio
import inspect
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from vault_search.bootstrap import build_provider, open_store
from vault_search.config import ProviderKind, Settings, get_settings
from vault_search.content import iter_markdown, load_corpus_json
from vault_search.exceptions import (
    ProviderUnavailableError,
    StoreUnavailableError,
    VaultSearchError,
)
from vault_search.search._engine import SearchEngine
from vault_search.search.indexer import Indexer

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vault_search.search.protocols import EmbeddingProvider
    from vault_search.search.types import Article

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-search",
        description="Semantic search over a markdown documentation vault.",
    )
    parser.add_argument("--log-level", default=None, help="Override VAULT_SEARCH_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    index = sub.add_parser("index", help="Embed the corpus and write the vector store")
    source = index.add_mutually_exclusive_group()
    source.add_argument("--content-dir", default=None, help="Markdown content directory")
    source.add_argument("--corpus", default=None, help="JSON corpus file instead of markdown")
    index.add_argument("--rebuild", action="store_true", help="Drop and recreate the store first")
    index.add_argument("--force", action="store_true", help="Re-embed unchanged articles")
    index.add_argument(
        "--no-prune",
        dest="prune",
        action="store_false",
        help="Keep stored articles that are no longer in the corpus",
    )
    index.add_argument(
        "--provider",
        choices=[k.value for k in ProviderKind],
        default=None,
        help="Embedding provider (default: VAULT_SEARCH_EMBEDDING_PROVIDER)",
    )
    index.add_argument("--chunk-size", type=int, default=None, help="Chunk articles into N characters")
    index.add_argument("--batch-size", type=int, default=None, help="Texts per embedding call (1-64)")

    search = sub.add_parser("search", help="Query the vector store")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=None)
    search.add_argument("--folder", default=None)
    search.add_argument(
        "--provider", choices=[k.value for k in ProviderKind], default=None
    )

    serve = sub.add_parser("serve", help="Run the HTTP search API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _with_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    update: dict[str, Any] = {}
    if getattr(args, "provider", None):
        update["embedding_provider"] = ProviderKind(args.provider)
    if getattr(args, "content_dir", None):
        update["content_dir"] = args.content_dir
    if getattr(args, "chunk_size", None) is not None:
        update["chunk_size"] = args.chunk_size
    if getattr(args, "batch_size", None) is not None:
        update["batch_size"] = args.batch_size
    return settings.model_copy(update=update) if update else settings


async def _close_provider(provider: EmbeddingProvider) -> None:
    close_fn = getattr(provider, "close", None)
    if close_fn is not None:
        result = close_fn()
        if inspect.isawaitable(result):
            await result


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


async def run_index(settings: Settings, args: argparse.Namespace) -> int:
    articles: list[Article]
    try:
        if args.corpus:
            articles = load_corpus_json(args.corpus)
        else:
            articles = list(iter_markdown(settings.content_dir))
    except (OSError, ValueError) as exc:
        logger.error("Cannot load content: %s", exc)
        return 1

    try:
        provider = build_provider(settings)
    except ProviderUnavailableError as exc:
        logger.error("Embedding provider unavailable: %s", exc)
        return 1

    try:
        try:
            store = await open_store(settings, provider, rebuild=args.rebuild)
        except StoreUnavailableError as exc:
            logger.error("%s", exc)
            return 1
        try:
            indexer = Indexer(
                provider,
                store,
                batch_size=settings.batch_size,
                chunk_size=settings.chunk_size,
                chunk_overlap=settings.chunk_overlap,
            )
            report = await indexer.index_all(articles, prune=args.prune, force=args.force)
        except (StoreUnavailableError, ValueError) as exc:
            logger.error("Indexing aborted: %s", exc)
            return 1
        finally:
            await store.close()
    finally:
        await _close_provider(provider)

    for failure in report.failed:
        logger.warning("Not indexed: %s (%s)", failure.slug, failure.reason)
    print(json.dumps(report.to_dict(), indent=2))
    return 0


async def run_search(settings: Settings, args: argparse.Namespace) -> int:
    try:
        provider = build_provider(settings)
    except ProviderUnavailableError as exc:
        logger.error("Embedding provider unavailable: %s", exc)
        return 1
    try:
        store = await open_store(settings, provider, fallback=True)
        try:
            engine = SearchEngine(
                store,
                provider,
                min_query_length=settings.min_query_length,
                max_limit=settings.max_limit,
                default_limit=settings.default_limit,
            )
            results = await engine.search(args.query, args.limit, folder=args.folder)
        finally:
            await store.close()
    except VaultSearchError as exc:
        logger.error("%s: %s", exc.kind.value, exc)
        return 1
    finally:
        await _close_provider(provider)

    payload = {
        "results": [{**r.to_dict(), "excerpt": r.excerpt} for r in results],
        "count": len(results),
        "query": args.query,
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def run_serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    from vault_search.api import create_app

    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    if args.log_level:
        settings = settings.model_copy(update={"log_level": args.log_level})
    _configure_logging(settings.log_level)
    settings = _with_overrides(settings, args)

    if args.command == "index":
        return asyncio.run(run_index(settings, args))
    if args.command == "search":
        return asyncio.run(run_search(settings, args))
    return run_serve(settings, args)


if __name__ == "__main__":
    sys.exit(main())
