"""Tests for the HTTP search API."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest
from conftest import DATABASE_ARTICLES, DIM, VocabProvider
from fastapi.testclient import TestClient

from vault_search import bootstrap
from vault_search.api import create_app
from vault_search.config import Settings
from vault_search.exceptions import ProviderUnavailableError, StoreUnavailableError
from vault_search.search._engine import SearchEngine
from vault_search.search.indexer import Indexer
from vault_search.search.stores.local import LocalVectorStore

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


def _indexed_engine(provider: VocabProvider | None = None, **limits: int) -> SearchEngine:
    provider = provider or VocabProvider()
    store = LocalVectorStore(dimension=DIM, model_name="vocab")
    asyncio.run(Indexer(provider, store).index_all(DATABASE_ARTICLES))
    return SearchEngine(store, provider, **limits)


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(create_app(engine=_indexed_engine())) as c:
        yield c


# ==================================================================
# Search endpoint
# ==================================================================


class TestSearchEndpoint:
    def test_search(self, client: TestClient):
        resp = client.post("/api/search.json", json={"query": "relational SQL database", "limit": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert body["query"] == "relational SQL database"
        assert body["count"] == 2
        assert [r["slug"] for r in body["results"]] == ["databases/postgres", "databases/mongodb"]
        first = body["results"][0]
        assert set(first) == {"id", "slug", "title", "folder", "tags", "distance"}
        assert first["tags"] == ["sql", "relational"]
        assert body["groups"] == [{"folder": "databases", "results": body["results"]}]

    def test_default_limit(self, client: TestClient):
        resp = client.post("/api/search.json", json={"query": "database cache"})
        assert resp.json()["count"] == 3

    def test_folder(self, client: TestClient):
        resp = client.post("/api/search.json", json={"query": "database", "folder": "caching"})
        assert [r["slug"] for r in resp.json()["results"]] == ["caching/redis"]

    def test_short_query(self, client: TestClient):
        resp = client.post("/api/search.json", json={"query": "a"})
        assert resp.status_code == 200
        assert resp.json() == {"results": [], "count": 0, "query": "a", "groups": []}

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"query": 42},
            {"query": "database", "limit": 0},
            {"query": "database", "limit": 51},
            {"query": "database", "limit": "ten"},
        ],
    )
    def test_malformed_payload(self, client: TestClient, payload: dict):
        resp = client.post("/api/search.json", json=payload)
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_invalid_json(self, client: TestClient):
        resp = client.post(
            "/api/search.json", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400


class TestConfiguredLimits:
    @pytest.fixture
    def small_client(self) -> Iterator[TestClient]:
        engine = _indexed_engine(default_limit=2, max_limit=3)
        with TestClient(create_app(engine=engine)) as c:
            yield c

    def test_default_limit_comes_from_engine(self, small_client: TestClient):
        resp = small_client.post("/api/search.json", json={"query": "sql database"})
        assert resp.status_code == 200
        assert resp.json()["count"] == 2

    def test_max_limit_comes_from_engine(self, small_client: TestClient):
        assert small_client.post("/api/search.json", json={"query": "sql database", "limit": 3}).status_code == 200
        resp = small_client.post("/api/search.json", json={"query": "sql database", "limit": 4})
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    def test_limits_from_settings(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(bootstrap, "build_provider", lambda settings: VocabProvider())
        settings = Settings(
            local_database_path=str(tmp_path / "local.db"), default_limit=2, max_limit=3
        )
        with TestClient(create_app(settings)) as client:
            assert client.app.state.engine.default_limit == 2
            assert client.app.state.engine.max_limit == 3
            resp = client.post("/api/search.json", json={"query": "sql database"})
        assert resp.status_code == 200

    def test_error_schema_documented(self, client: TestClient):
        spec = client.get("/openapi.json").json()
        responses = spec["paths"]["/api/search.json"]["post"]["responses"]
        assert {"400", "500", "503"} <= set(responses)
        assert "ErrorResponse" in spec["components"]["schemas"]


# ==================================================================
# Error mapping
# ==================================================================


def _engine_raising(exc: Exception) -> SearchEngine:
    engine = _indexed_engine()
    engine.search = AsyncMock(side_effect=exc)  # type: ignore[method-assign]
    return engine


class TestErrors:
    def test_provider_unavailable(self):
        app = create_app(engine=_engine_raising(ProviderUnavailableError("key sk-secret rejected")))
        with TestClient(app) as client:
            resp = client.post("/api/search.json", json={"query": "database"})
        assert resp.status_code == 503
        assert resp.json() == {"error": "provider_unavailable"}
        assert "sk-secret" not in resp.text

    def test_store_unavailable(self):
        app = create_app(engine=_engine_raising(StoreUnavailableError("db gone")))
        with TestClient(app) as client:
            resp = client.post("/api/search.json", json={"query": "database"})
        assert resp.status_code == 503
        assert resp.json() == {"error": "store_unavailable"}

    def test_unexpected_error(self):
        app = create_app(engine=_engine_raising(RuntimeError("traceback details")))
        with TestClient(app, raise_server_exceptions=False) as client:
            resp = client.post("/api/search.json", json={"query": "database"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "internal_error"}
        assert "traceback" not in resp.text


# ==================================================================
# Health and startup
# ==================================================================


class TestHealth:
    def test_health(self, client: TestClient):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "model": "vocab", "dimension": DIM, "documents": 3}


class TestStartup:
    def test_builds_engine_from_settings_with_fallback(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setattr(bootstrap, "build_provider", lambda settings: VocabProvider())
        settings = Settings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'remote.db'}",
            local_database_path=str(tmp_path / "local.db"),
        )
        with TestClient(create_app(settings)) as client:
            resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["documents"] == 0
        assert (tmp_path / "local.db").exists()
