"""Request and response schemas of the search API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from vault_search.search.types import ResultGroup, SearchResult


class SearchRequest(BaseModel):
    """Body of ``POST /api/search.json``.

    ``limit`` defaults to the engine's ``default_limit``; its upper bound is
    the engine's ``max_limit``.
    """

    query: str
    limit: int | None = Field(default=None, ge=1)
    folder: str | None = None

    model_config = ConfigDict(extra="ignore", strict=True)


class SearchResultModel(BaseModel):
    id: int
    slug: str
    title: str
    folder: str
    tags: list[str]
    distance: float

    @classmethod
    def from_result(cls, result: SearchResult) -> SearchResultModel:
        return cls(**result.to_dict())


class ResultGroupModel(BaseModel):
    folder: str
    results: list[SearchResultModel]

    @classmethod
    def from_group(cls, group: ResultGroup) -> ResultGroupModel:
        return cls(
            folder=group.folder,
            results=[SearchResultModel.from_result(r) for r in group.results],
        )


class SearchResponse(BaseModel):
    """Body returned by ``POST /api/search.json``."""

    results: list[SearchResultModel]
    count: int
    query: str
    groups: list[ResultGroupModel] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    model: str
    dimension: int
    documents: int


class ErrorResponse(BaseModel):
    """Machine-readable error body; never carries raw exception text."""

    error: str
    detail: str | None = None
