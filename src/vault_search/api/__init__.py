"""HTTP search API — FastAPI application factory, routes and schemas."""

from vault_search.api.app import create_app

__all__ = ["create_app"]
