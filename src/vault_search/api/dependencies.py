"""Request-scoped dependencies of the search API."""

from __future__ import annotations

from fastapi import Request

from vault_search.exceptions import StoreUnavailableError
from vault_search.search._engine import SearchEngine


def get_engine(request: Request) -> SearchEngine:
    """Return the engine built at startup."""
    engine: SearchEngine | None = getattr(request.app.state, "engine", None)
    if engine is None:
        msg = "Search engine is not initialised"
        raise StoreUnavailableError(msg)
    return engine
