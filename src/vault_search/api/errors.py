"""Exception handlers mapping the error vocabulary to HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from vault_search.api.models import ErrorResponse
from vault_search.exceptions import ErrorKind, VaultSearchError

logger = logging.getLogger(__name__)

_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
    ErrorKind.STORE_UNAVAILABLE: 503,
    ErrorKind.DIMENSION_MISMATCH: 500,
    ErrorKind.INTERNAL_ERROR: 500,
}

# Client-facing error codes; dimension mismatches are internal faults.
_PUBLIC_KIND: dict[ErrorKind, ErrorKind] = {
    ErrorKind.DIMENSION_MISMATCH: ErrorKind.INTERNAL_ERROR,
}


def _error(kind: ErrorKind, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=kind.value, detail=detail)
    return JSONResponse(status_code=_STATUS[kind], content=body.model_dump(exclude_none=True))


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies become ``400 validation_error``."""
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    detail = "Invalid request: " + ", ".join(f for f in fields if f) if fields else "Invalid request"
    return _error(ErrorKind.VALIDATION_ERROR, detail)


async def search_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map a :class:`VaultSearchError` to its status code and public error code."""
    assert isinstance(exc, VaultSearchError)
    kind = _PUBLIC_KIND.get(exc.kind, exc.kind)
    if kind is ErrorKind.VALIDATION_ERROR:
        return _error(kind, str(exc))
    logger.error(
        "%s during %s %s: %s", exc.kind.value, request.method, request.url.path, exc
    )
    return _error(kind)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all: log the traceback, return a generic 500."""
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _error(ErrorKind.INTERNAL_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(VaultSearchError, search_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
