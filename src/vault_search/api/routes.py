"""Search and health routes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, status

from vault_search.api.dependencies import get_engine
from vault_search.api.models import (
    ErrorResponse,
    HealthResponse,
    ResultGroupModel,
    SearchRequest,
    SearchResponse,
    SearchResultModel,
)
from vault_search.search._engine import SearchEngine, group_by_folder

router = APIRouter()

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Malformed query or limit"},
    500: {"model": ErrorResponse, "description": "Internal error"},
    503: {"model": ErrorResponse, "description": "Embedding provider or vector store unavailable"},
}


@router.post(
    "/api/search.json",
    response_model=SearchResponse,
    summary="Semantic search over the vault",
    status_code=status.HTTP_200_OK,
    tags=["search"],
    responses=_ERROR_RESPONSES,
)
async def search(
    req: SearchRequest,
    engine: Annotated[SearchEngine, Depends(get_engine)],
) -> SearchResponse:
    """Return the articles nearest to ``req.query``, ranked by cosine distance.

    Without ``limit`` the engine's default applies; a limit above the
    engine's maximum is a ``400 validation_error``.
    """
    results = await engine.search(req.query, req.limit, folder=req.folder)
    return SearchResponse(
        results=[SearchResultModel.from_result(r) for r in results],
        count=len(results),
        query=req.query,
        groups=[ResultGroupModel.from_group(g) for g in group_by_folder(results)],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    responses={503: _ERROR_RESPONSES[503]},
)
async def health(engine: Annotated[SearchEngine, Depends(get_engine)]) -> HealthResponse:
    return HealthResponse(
        status="ok",
        model=engine.provider.model_name,
        dimension=engine.store.dimension,
        documents=await engine.store.count(),
    )
