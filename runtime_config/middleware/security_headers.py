# runtime_config/middleware/security_headers.py
# - X-Frame-Options and X-Content-Type-Options on every response (setdefault).
# - The client config route adds its own cache and XSS headers on top.

from __future__ import annotations

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request as StarletteRequest
from starlette.responses import Response as StarletteResponse

from runtime_config.config import Settings

# Added by the client config endpoint to its 200 responses only. Error bodies
# rendered in errors.py carry just the baseline headers set by the middleware.
CLIENT_CONFIG_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Cache-Control": "private, max-age=300",
}


class _SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: StarletteRequest, call_next) -> StarletteResponse:
        resp: StarletteResponse = await call_next(request)
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        return resp


def install_security_headers(app: FastAPI, settings: Settings) -> None:
    if not settings.SECURITY_HEADERS_ENABLED:
        return
    app.add_middleware(_SecurityHeadersMiddleware)
