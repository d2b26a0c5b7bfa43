"""Error taxonomy and global JSON error handling with request correlation."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from runtime_config.middleware.request_id import REQUEST_ID_HEADER, get_request_id

log = logging.getLogger(__name__)

# Map common HTTP statuses to stable machine-readable codes
_STATUS_TO_CODE = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    422: "validation_error",
    429: "rate_limited",
    500: "internal_error",
    503: "service_unavailable",
    504: "backend_timeout",
}


class ConfigServiceError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, error: str, **extra: Any) -> None:
        super().__init__(error)
        self.error = error
        self.extra: Dict[str, Any] = extra


class AuthError(ConfigServiceError):
    status_code = 401
    code = "unauthorized"


class ValidationError(ConfigServiceError):
    status_code = 400
    code = "bad_request"


class Forbidden(ConfigServiceError):
    status_code = 403
    code = "forbidden"


class RateLimitExceeded(ConfigServiceError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, retry_after: int) -> None:
        super().__init__("Too many requests", retryAfter=int(retry_after))
        self.retry_after = int(retry_after)


class ServiceUnavailable(ConfigServiceError):
    status_code = 503
    code = "service_unavailable"


class BackendError(ConfigServiceError):
    status_code = 500
    code = "backend_error"


class BackendTimeout(BackendError):
    status_code = 504
    code = "backend_timeout"


def _rid_from_request(request: Request) -> str:
    # Context var is already reset by the time unhandled errors render.
    return (
        get_request_id()
        or getattr(request.state, "request_id", None)
        or request.headers.get(REQUEST_ID_HEADER)
        or uuid4().hex
    )


def _json_error(
    request: Request,
    *,
    error: str,
    status: int,
    code: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    rid = _rid_from_request(request)
    body: Dict[str, Any] = {
        "error": error,
        "code": code or _STATUS_TO_CODE.get(status, "error"),
        "request_id": rid,
    }
    if extra:
        body.update(extra)
    resp = JSONResponse(status_code=status, content=body, headers=headers)
    resp.headers[REQUEST_ID_HEADER] = rid
    return resp


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ConfigServiceError)
    async def service_exc_handler(request: Request, exc: ConfigServiceError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitExceeded):
            headers = {"Retry-After": str(exc.retry_after)}
        return _json_error(
            request,
            error=exc.error,
            status=exc.status_code,
            code=exc.code,
            extra=exc.extra,
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        return _json_error(request, error=detail, status=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _json_error(
            request,
            error="Validation failed",
            status=400,
            code="bad_request",
            extra={"details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled error on %s %s", request.method, request.url.path)
        return _json_error(request, error="Internal server error", status=500)
