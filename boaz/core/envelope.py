from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from boaz.context import get_correlation_id


logger = logging.getLogger("boaz.errors")

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Every JSON body the API returns: exactly one of data / error is set."""

    data: T | None = None
    error: str | None = None


class ItemList(BaseModel, Generic[T]):
    items: list[T]


def ok(data: Any) -> dict[str, Any]:
    return {"data": data, "error": None}


def ok_items(items: list[Any]) -> dict[str, Any]:
    return ok({"items": items})


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    details: Any = None,
) -> JSONResponse:
    content: dict[str, Any] = {"data": None, "error": code}
    if details is not None:
        content["details"] = details
    response = JSONResponse(status_code=status_code, content=content)
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    if correlation_id:
        response.headers["x-correlation-id"] = correlation_id
    return response


def _validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": str(error.get("msg", "")),
            "type": str(error.get("type", "")),
        }
        for error in exc.errors()
    ]


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, str):
        code, details = exc.detail, None
    else:
        code, details = "error", exc.detail
    response = error_response(request, status_code=exc.status_code, code=code, details=details)
    for key, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[key] = value
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(
        request,
        status_code=status.HTTP_400_BAD_REQUEST,
        code="invalid_payload",
        details=_validation_details(exc),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", extra={"path": request.url.path, "method": request.method, "error": str(exc)})
    return error_response(request, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, code="internal_error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
