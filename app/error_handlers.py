from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from app.exceptions import ContentAPIError

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str:
    return str(getattr(request.state, "request_id", "unknown"))


def _error_body(
    *, request: Request, error_code: str, message: str, details: Any | None = None
) -> dict[str, Any]:
    return {
        "error_code": error_code,
        "message": message,
        "details": details,
        "request_id": _request_id(request),
    }


def register_error_handlers(app: FastAPI) -> None:
    """Translate service-layer failures into JSON error responses."""

    @app.exception_handler(ContentAPIError)
    async def content_error_handler(request: Request, exc: ContentAPIError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request=request,
                error_code=exc.error_code,
                message=exc.message,
                details=exc.details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def request_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=_error_body(
                request=request,
                error_code="VALIDATION_ERROR",
                message="Invalid request.",
                details=jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(ValidationError)
    async def value_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=_error_body(
                request=request,
                error_code="VALIDATION_ERROR",
                message="Invalid attribute value.",
                details=exc.errors(include_url=False, include_context=False),
            ),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
        logger.warning("Integrity error [%s]: %s", _request_id(request), exc.orig)
        return JSONResponse(
            status_code=409,
            content=_error_body(
                request=request,
                error_code="CONFLICT",
                message="The change violates a database constraint.",
            ),
        )
