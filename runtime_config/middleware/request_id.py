from __future__ import annotations

import uuid
from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_INBOUND_LEN = 128

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("runtime_config_request_id", default=None)


def get_request_id() -> Optional[str]:
    return _REQUEST_ID.get()


def _inbound_id(request: Request) -> Optional[str]:
    raw = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if not raw or len(raw) > _MAX_INBOUND_LEN:
        return None
    return raw


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id for log lines and error bodies. A caller
    supplied X-Request-ID is reused when sane, otherwise a UUID4 is minted.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        rid = _inbound_id(request) or uuid.uuid4().hex
        request.state.request_id = rid
        token = _REQUEST_ID.set(rid)
        try:
            response = await call_next(request)
        finally:
            _REQUEST_ID.reset(token)
        response.headers.setdefault(REQUEST_ID_HEADER, rid)
        return response
