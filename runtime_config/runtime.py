from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import httpx
from fastapi import Request

from runtime_config.config import Settings
from runtime_config.security.permissions import AllowListPermissionChecker, PermissionChecker
from runtime_config.services.admin import AdminConfigService
from runtime_config.services.backend import BackendClient
from runtime_config.services.cache import ConfigCache
from runtime_config.services.overrides import OverrideFile, RuntimeOverride, apply_overrides
from runtime_config.services.ratelimit import SlidingWindowRateLimiter
from runtime_config.services.resolver import ConfigResolver
from runtime_config.services.secrets import EncryptionHelper
from runtime_config.services.validator import RequestValidator

log = logging.getLogger(__name__)


class ConfigRuntime:
    """
    Process-wide state for one app instance: rate-limit windows, cached
    bundles and runtime overrides, plus the services that own them.
    Built once by the app factory and reached through ``request.app.state``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        http: Optional[httpx.AsyncClient] = None,
        permissions: Optional[PermissionChecker] = None,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.started_at = monotonic()
        self._monotonic = monotonic

        self.override = RuntimeOverride()
        self.override_file = OverrideFile(settings.OVERRIDE_FILE)
        self.cache = ConfigCache(ttl_seconds=settings.CONFIG_CACHE_TTL_S, clock=clock)
        self.limiter = SlidingWindowRateLimiter(
            limit=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_S,
            clock=monotonic,
        )
        self.validator = RequestValidator(settings)
        self.backend = BackendClient(settings, http=http)
        self.encryption = (
            EncryptionHelper(settings.API_ENCRYPTION_KEY) if settings.API_ENCRYPTION_KEY else None
        )
        self.permissions = permissions or AllowListPermissionChecker(
            settings.admin_emails, settings.SUPER_ADMIN_EMAIL
        )
        self.resolver = ConfigResolver(
            settings, self.cache, self.override, self.backend, encryption=self.encryption
        )
        self.admin = AdminConfigService(
            settings,
            self.backend,
            self.cache,
            self.override,
            self.permissions,
            self.override_file,
            encryption=self.encryption,
        )

    def load_persisted_overrides(self) -> bool:
        values = self.override_file.load()
        if not values:
            return False
        apply_overrides(values, self.override, self.settings)
        log.info("runtime overrides restored", extra={"path": str(self.override_file.path)})
        return True

    def uptime_seconds(self) -> float:
        return max(0.0, self._monotonic() - self.started_at)

    async def aclose(self) -> None:
        await self.backend.aclose()


def get_runtime(request: Request) -> ConfigRuntime:
    return request.app.state.runtime
