from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from runtime_config.errors import RateLimitExceeded
from runtime_config.middleware.security_headers import CLIENT_CONFIG_HEADERS
from runtime_config.runtime import ConfigRuntime, get_runtime
from runtime_config.services.ratelimit import client_identifier

router = APIRouter(tags=["client"])

log = logging.getLogger(__name__)


@router.get("/config")
async def client_config(request: Request, rt: ConfigRuntime = Depends(get_runtime)) -> JSONResponse:
    client_id = client_identifier(request)

    if rt.settings.RATE_LIMIT_ENABLED:
        admission = rt.limiter.admit(client_id)
        if not admission.allowed:
            raise RateLimitExceeded(admission.retry_after_seconds or rt.limiter.window_seconds)

    environment = rt.validator.validate(request)
    app_version = request.headers.get("x-app-version")
    log.info(
        "config access",
        extra={"client": client_id, "environment": environment, "app_version": app_version or "unknown"},
    )

    entry = rt.cache.get(environment)
    if entry is not None:
        body = {
            "data": entry.data.to_payload(),
            "cached": True,
            "timestamp": int(entry.captured_at * 1000),
            "environment": environment,
        }
        return JSONResponse(body, headers=CLIENT_CONFIG_HEADERS)

    bundle = await rt.resolver.resolve(environment, app_version)
    body = {
        "data": bundle.to_payload(),
        "cached": False,
        "timestamp": int(time.time() * 1000),
        "environment": environment,
    }
    return JSONResponse(body, headers=CLIENT_CONFIG_HEADERS)
