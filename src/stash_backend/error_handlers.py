"""Every failure renders as `{error, message, request_id, details}`."""

from __future__ import annotations

import logging
from typing import cast

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from stash_backend.errors import StorageError
from stash_backend.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

_ERROR_CODES: dict[int, str] = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
    422: "validation_error",
    500: "internal_error",
    502: "upstream_error",
}


def error_code(status_code: int) -> str:
    return _ERROR_CODES.get(status_code, f"http_{status_code}")


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _render(
    request: Request,
    status_code: int,
    message: str,
    *,
    details: object | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = ErrorResponse(
        error=error_code(status_code),
        message=message,
        request_id=_request_id(request),
        details=details,
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(payload, exclude_none=True),
        headers=headers,
    )


def _message_and_details(detail: object) -> tuple[str, object | None]:
    if isinstance(detail, str):
        return detail, None
    if isinstance(detail, dict):
        msg = detail.get("message")
        if isinstance(msg, str):
            return msg, detail.get("details")
    return "Request failed", jsonable_encoder(detail)


async def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_exc = cast(StarletteHTTPException, exc)
    message, details = _message_and_details(http_exc.detail)
    return _render(
        request,
        http_exc.status_code,
        message,
        details=details,
        headers=getattr(http_exc, "headers", None),
    )


async def _storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    storage_exc = cast(StorageError, exc)
    logger.warning(
        "storage failure request_id=%s key=%s message=%s",
        _request_id(request),
        storage_exc.key,
        storage_exc.detail,
        exc_info=storage_exc.__cause__,
    )
    return _render(request, storage_exc.status_code, str(storage_exc.detail))


async def _validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    validation_exc = cast(RequestValidationError, exc)
    # ctx may hold the raw exception from a model validator.
    return _render(
        request,
        422,
        "Request validation error",
        details=jsonable_encoder(validation_exc.errors()),
    )


async def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled exception request_id=%s method=%s path=%s",
        _request_id(request),
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return _render(request, 500, "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StorageError, _storage_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
