from __future__ import annotations

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from runtime_config.config import Settings

_ALLOW_HEADERS = [
    "Content-Type",
    "Authorization",
    "x-api-key",
    "x-app-version",
    "x-env",
    "x-admin-email",
]


def install_cors(app: FastAPI, settings: Settings) -> None:
    """
    Enable Starlette's CORS middleware when CORS_ENABLED is truthy.
    Env:
      CORS_ENABLED=1
      CORS_ALLOW_ORIGINS=https://admin.example.com,http://localhost:3000
    """
    if not settings.CORS_ENABLED:
        return

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=_ALLOW_HEADERS,
        max_age=600,
    )
