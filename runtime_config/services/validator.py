from __future__ import annotations

import logging
import re

from starlette.requests import Request

from runtime_config.config import ENVIRONMENTS, Settings
from runtime_config.errors import AuthError, ValidationError

log = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")


class RequestValidator:
    """Authenticates client config requests and settles the target environment."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @staticmethod
    def requested_environment(request: Request) -> str:
        return (
            request.headers.get("x-env")
            or request.query_params.get("env")
            or "production"
        ).strip()

    def validate(self, request: Request) -> str:
        """
        Return the validated environment and stash it on ``request.state``.

        Raises AuthError / ValidationError before anything touches the backend.
        """
        environment = self.requested_environment(request)

        if self._settings.is_development:
            request.state.environment = environment
            return environment

        api_key = (request.headers.get("x-api-key") or "").strip()
        if not api_key or api_key == self._settings.CLIENT_API_KEY_PLACEHOLDER:
            raise AuthError("Invalid API key")
        allowed = self._settings.client_api_keys
        if allowed and api_key not in allowed:
            raise AuthError("Invalid API key")

        app_version = request.headers.get("x-app-version")
        if app_version is not None and not _VERSION_RE.match(app_version.strip()):
            raise ValidationError(
                "Invalid app version format",
                minVersion=self._settings.MIN_APP_VERSION,
            )

        if environment not in ENVIRONMENTS:
            raise ValidationError(
                "Invalid environment",
                allowed=list(ENVIRONMENTS),
            )

        request.state.environment = environment
        return environment
