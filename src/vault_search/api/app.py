"""Search API application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from vault_search import __version__
from vault_search.api.errors import register_exception_handlers
from vault_search.api.routes import router
from vault_search.bootstrap import build_engine
from vault_search.config import Settings, get_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from vault_search.search._engine import SearchEngine

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    engine: SearchEngine | None = None,
) -> FastAPI:
    """Create and configure the search API.

    When *engine* is given it is used as-is and left open on shutdown;
    otherwise one is built from *settings* at startup (falling back to the
    local SQLite store when the remote one is unreachable) and closed on
    shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = engine is None
        if owned:
            app.state.engine = await build_engine(settings or get_settings(), fallback=True)
        else:
            app.state.engine = engine
        logger.info(
            "Search API ready (model %s, %d dims)",
            app.state.engine.provider.model_name,
            app.state.engine.store.dimension,
        )
        try:
            yield
        finally:
            if owned:
                await app.state.engine.close()
            logger.info("Search API stopped")

    app = FastAPI(title="vault-search", version=__version__, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(router)
    return app
