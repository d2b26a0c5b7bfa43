# runtime_config/main.py
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import httpx
from fastapi import FastAPI

from runtime_config.config import Settings, get_settings
from runtime_config.errors import register_error_handlers
from runtime_config.middleware.cors import install_cors
from runtime_config.middleware.request_id import RequestIDMiddleware
from runtime_config.middleware.security_headers import install_security_headers
from runtime_config.routes import admin, client, health
from runtime_config.runtime import ConfigRuntime
from runtime_config.security.permissions import PermissionChecker
from runtime_config.telemetry.logging import configure_root_logging

log = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    http: Optional[httpx.AsyncClient] = None,
    permissions: Optional[PermissionChecker] = None,
    clock: Callable[[], float] = time.time,
    monotonic: Callable[[], float] = time.monotonic,
) -> FastAPI:
    settings = settings or get_settings()
    if settings.LOG_JSON:
        configure_root_logging(settings.LOG_LEVEL)

    runtime = ConfigRuntime(
        settings,
        http=http,
        permissions=permissions,
        clock=clock,
        monotonic=monotonic,
    )
    runtime.load_persisted_overrides()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        log.info(
            "runtime config service starting",
            extra={
                "environment": settings.APP_ENV,
                "backend_configured": runtime.backend.configured,
                "dev_mode": settings.is_development,
            },
        )
        try:
            yield
        finally:
            await runtime.aclose()

    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION, lifespan=lifespan)
    app.state.runtime = runtime

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(client.router)
    app.include_router(admin.router)

    install_security_headers(app, settings)
    install_cors(app, settings)
    app.add_middleware(RequestIDMiddleware)
    return app


build_app = create_app
app = create_app()
