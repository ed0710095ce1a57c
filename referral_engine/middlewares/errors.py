"""Глобальный перехват ошибок: доменные исключения -> JSON-ответы."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from referral_engine.services.exceptions import (
    AccessDenied,
    ExternalDependencyError,
    NotFound,
    RailError,
    ReferralEngineError,
    StateConflict,
    ValidationFailed,
)

_STATUS_BY_FAMILY: tuple[tuple[type[ReferralEngineError], int], ...] = (
    (ValidationFailed, status.HTTP_400_BAD_REQUEST),
    (AccessDenied, status.HTTP_403_FORBIDDEN),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (StateConflict, status.HTTP_409_CONFLICT),
    (ExternalDependencyError, status.HTTP_502_BAD_GATEWAY),
)


def status_for(exc: ReferralEngineError) -> int:
    for family, code in _STATUS_BY_FAMILY:
        if isinstance(exc, family):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def engine_error_handler(request: Request, exc: ReferralEngineError) -> JSONResponse:
    http_status = status_for(exc)
    body = {"ok": False, "error": exc.code, "detail": exc.message}
    if isinstance(exc, RailError):
        body["rail_code"] = exc.rail_code
    if http_status >= 500:
        logger.error("{method} {path}: {code} {detail}", method=request.method, path=request.url.path, code=exc.code, detail=exc.message)
    else:
        logger.debug("{method} {path}: {code}", method=request.method, path=request.url.path, code=exc.code)
    return JSONResponse(status_code=http_status, content=body)


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Необработанная ошибка {method} {path}: {error}", method=request.method, path=request.url.path, error=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"ok": False, "error": "internal_error", "detail": "Internal server error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ReferralEngineError, engine_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)


__all__ = ["engine_error_handler", "register_error_handlers", "status_for", "unexpected_error_handler"]
