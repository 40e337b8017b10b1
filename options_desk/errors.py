"""
API error helpers.

Business-rule failures surface as HTTPException with a dict detail:
    {"error": "<human message>", "code": "<MACHINE_CODE>", ...extra}
"""

from __future__ import annotations

import logging
from typing import Any, NoReturn

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from options_desk.common.logging import log_event

logger = logging.getLogger(__name__)


def api_error(status_code: int, code: str, message: str, **extra: Any) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"error": message, "code": code, **extra})


def not_found(code: str, message: str) -> NoReturn:
    raise api_error(404, code, message)


def bad_request(code: str, message: str, **extra: Any) -> NoReturn:
    raise api_error(400, code, message, **extra)


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        log_event(
            logger,
            "http.unhandled_error",
            severity="ERROR",
            message=f"Unhandled error on {request.method} {request.url.path}: {exc}",
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": {"error": "Internal server error", "code": "INTERNAL_ERROR"}},
        )
