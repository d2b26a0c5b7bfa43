from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from runtime_config.config import CRITICAL_KEYS, ENVIRONMENTS, Settings
from runtime_config.errors import BackendError, Forbidden, ValidationError
from runtime_config.schemas import ConfigUpsertRequest, EnvSyncRequest, RotateKeysRequest
from runtime_config.security.permissions import PermissionChecker
from runtime_config.services.backend import BackendClient
from runtime_config.services.cache import KEY_PREFIX, ConfigCache
from runtime_config.services.overrides import (
    ADMOB_KEYS,
    OverrideFile,
    RuntimeOverride,
    apply_overrides,
)
from runtime_config.services.secrets import EncryptionHelper, max_plaintext_bytes
from runtime_config.telemetry.metrics import ADMIN_OPS, inc

log = logging.getLogger(__name__)

MAX_KEY_LENGTH = 100
MAX_VALUE_LENGTH = 10000
MAX_AUDIT_DAYS = 365
MAX_AUDIT_LIMIT = 1000
_PUBLIC_FORBIDDEN_WORDS = ("secret", "private")


@dataclass(frozen=True)
class AdminContext:
    identity: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def log_extra(self, **more: Any) -> Dict[str, Any]:
        return {"admin": self.identity, "ip": self.ip_address, **more}


def is_critical_key(key: str) -> bool:
    upper = (key or "").upper()
    return any(critical in upper for critical in CRITICAL_KEYS)


def _check_environment(environment: str) -> None:
    if environment not in ENVIRONMENTS:
        raise ValidationError("Invalid environment", allowed=list(ENVIRONMENTS))


class AdminConfigService:
    """
    Admin-side CRUD over the backend store.

    Permission and input checks run before any backend call. The client cache
    is only invalidated once the backend has accepted a write.
    """

    def __init__(
        self,
        settings: Settings,
        backend: BackendClient,
        cache: ConfigCache,
        override: RuntimeOverride,
        permissions: PermissionChecker,
        override_file: OverrideFile,
        encryption: Optional[EncryptionHelper] = None,
    ) -> None:
        self._settings = settings
        self._backend = backend
        self._cache = cache
        self._override = override
        self._permissions = permissions
        self._override_file = override_file
        self._encryption = encryption

    def authorize(self, ctx: AdminContext, action: str, resource: str) -> None:
        if self._permissions.is_authorized(ctx.identity, action, resource):
            return
        inc(ADMIN_OPS, action=action, outcome="denied")
        log.warning(
            "admin permission denied",
            extra=ctx.log_extra(action=action, resource=resource),
        )
        raise Forbidden("Insufficient permissions")

    # ---- config entries -------------------------------------------------------

    async def list_config(self, ctx: AdminContext, environment: str) -> Dict[str, Any]:
        self.authorize(ctx, "config:read", environment)
        _check_environment(environment)
        try:
            entries = await self._backend.fetch_all_config(environment)
        except BackendError as exc:
            inc(ADMIN_OPS, action="config:read", outcome="error")
            log.error("admin config list failed", extra=ctx.log_extra(environment=environment, error=exc.error))
            raise
        public = sum(1 for e in entries if e.get("is_public"))
        return {
            "environment": environment,
            "entries": entries,
            "counts": {"total": len(entries), "public": public, "private": len(entries) - public},
        }

    def validate_entry(self, req: ConfigUpsertRequest) -> None:
        key = (req.key or "").strip()
        if not key:
            raise ValidationError("Key is required")
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Key must be at most {MAX_KEY_LENGTH} characters")
        if len(req.value) > MAX_VALUE_LENGTH:
            raise ValidationError(f"Value must be at most {MAX_VALUE_LENGTH} characters")
        _check_environment(req.environment)
        if req.is_public and any(w in key.lower() for w in _PUBLIC_FORBIDDEN_WORDS):
            raise ValidationError(
                "Public keys cannot contain 'secret' or 'private'",
                key=key,
            )

    async def upsert(self, ctx: AdminContext, req: ConfigUpsertRequest) -> Any:
        self.authorize(ctx, "config:write", req.key)
        self.validate_entry(req)

        value = req.value
        if req.encrypt:
            if self._encryption is None:
                raise ValidationError("Encryption is not configured")
            value = self._encryption.encrypt(value).to_token()
            if len(value) > MAX_VALUE_LENGTH:
                raise ValidationError(
                    f"Encrypted value must be at most {MAX_VALUE_LENGTH} characters",
                    maxPlaintextBytes=max_plaintext_bytes(MAX_VALUE_LENGTH),
                )

        try:
            result = await self._backend.upsert_config(
                key=req.key.strip(),
                value=value,
                is_public=req.is_public,
                environment=req.environment,
                description=req.description,
                category=req.category or "general",
                admin_email=ctx.identity,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
                reason=req.reason,
            )
        except BackendError as exc:
            inc(ADMIN_OPS, action="config:write", outcome="error")
            log.error(
                "admin config upsert failed",
                extra=ctx.log_extra(key=req.key, environment=req.environment, error=exc.error),
            )
            raise

        dropped = self._cache.invalidate_containing(req.environment)
        inc(ADMIN_OPS, action="config:write", outcome="ok")
        log.info(
            "admin config upserted",
            extra=ctx.log_extra(
                key=req.key, environment=req.environment, public=req.is_public, cache_dropped=dropped
            ),
        )
        return result

    async def delete(
        self,
        ctx: AdminContext,
        key: str,
        environment: str = "production",
        reason: Optional[str] = None,
    ) -> Any:
        if is_critical_key(key):
            inc(ADMIN_OPS, action="config:delete", outcome="forbidden")
            log.warning(
                "critical key deletion refused",
                extra=ctx.log_extra(key=key, environment=environment),
            )
            raise Forbidden(
                "Critical system keys cannot be deleted",
                suggestion="Consider rotating the key instead",
            )
        self.authorize(ctx, "config:delete", key)
        _check_environment(environment)

        try:
            result = await self._backend.delete_config(
                key=key,
                environment=environment,
                admin_email=ctx.identity,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
                reason=reason or "Deleted via admin panel",
            )
        except BackendError as exc:
            inc(ADMIN_OPS, action="config:delete", outcome="error")
            log.error(
                "admin config delete failed",
                extra=ctx.log_extra(key=key, environment=environment, error=exc.error),
            )
            raise

        self._cache.invalidate_containing(environment)
        inc(ADMIN_OPS, action="config:delete", outcome="ok")
        log.info("admin config deleted", extra=ctx.log_extra(key=key, environment=environment))
        return result

    async def list_audit_logs(
        self,
        ctx: AdminContext,
        key_filter: Optional[str] = None,
        env_filter: Optional[str] = None,
        days_back: int = 30,
        limit: int = 100,
    ) -> Dict[str, Any]:
        self.authorize(ctx, "audit:read", key_filter or "*")
        if not 1 <= days_back <= MAX_AUDIT_DAYS:
            raise ValidationError(f"days must be between 1 and {MAX_AUDIT_DAYS}")
        if not 1 <= limit <= MAX_AUDIT_LIMIT:
            raise ValidationError(f"limit must be between 1 and {MAX_AUDIT_LIMIT}")
        if env_filter:
            _check_environment(env_filter)

        try:
            logs = await self._backend.fetch_audit_logs(
                key_filter=key_filter,
                env_filter=env_filter,
                days_back=days_back,
                limit=limit,
            )
        except BackendError as exc:
            log.error("audit log query failed", extra=ctx.log_extra(key=key_filter, error=exc.error))
            raise
        return {
            "logs": logs,
            "metadata": {
                "key": key_filter,
                "environment": env_filter,
                "days": days_back,
                "limit": limit,
                "count": len(logs),
            },
        }

    # ---- runtime operations ---------------------------------------------------

    def clear_cache(self, ctx: AdminContext) -> Dict[str, Any]:
        self.authorize(ctx, "cache:clear", "*")
        cleared = self._cache.clear_all()
        inc(ADMIN_OPS, action="cache:clear", outcome="ok")
        log.info("config cache cleared", extra=ctx.log_extra(cleared=cleared))
        return {"success": True, "message": "Configuration cache cleared", "cleared": cleared}

    def env_sync(self, ctx: AdminContext, body: EnvSyncRequest) -> Dict[str, Any]:
        self.authorize(ctx, "env:sync", "*")
        url = body.MOBILE_SUPABASE_URL or body.SUPABASE_URL
        anon = body.MOBILE_SUPABASE_ANON_KEY or body.SUPABASE_ANON_KEY
        if not url or not anon:
            raise ValidationError(
                "Missing SUPABASE URL or ANON KEY",
                success=False,
                message="Missing SUPABASE URL or ANON KEY",
            )

        values: Dict[str, str] = {"MOBILE_SUPABASE_URL": url, "MOBILE_SUPABASE_ANON_KEY": anon}
        for name in ADMOB_KEYS:
            supplied = getattr(body, name)
            if supplied:
                values[name] = supplied
        apply_overrides(values, self._override, self._settings)

        # Persist the full current state so a restart restores every ad unit too.
        persisted = dict(values)
        for name in ADMOB_KEYS:
            persisted[name] = getattr(self._settings, name)
        saved = self._override_file.save(persisted)

        cleared = self._cache.invalidate_containing(KEY_PREFIX)
        inc(ADMIN_OPS, action="env:sync", outcome="ok")
        log.info("environment synchronized", extra=ctx.log_extra(persisted=saved, cache_dropped=cleared))
        return {
            "success": True,
            "message": "Environment synchronized",
            "overrides": self._override.as_dict(),
            "persisted": saved,
        }

    def rotate_keys(self, ctx: AdminContext, body: RotateKeysRequest) -> Dict[str, Any]:
        self.authorize(ctx, "keys:rotate", ",".join(body.keys) or "*")
        keys = [k.strip() for k in body.keys if k and k.strip()]
        if not keys:
            raise ValidationError("At least one key is required")
        requested_at = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        inc(ADMIN_OPS, action="keys:rotate", outcome="ok")
        log.info(
            "key rotation requested",
            extra=ctx.log_extra(keys=keys, reason=body.reason, notify_clients=body.notify_clients),
        )
        return {
            "success": True,
            "message": f"Rotation scheduled for {len(keys)} key(s)",
            "rotated": [{"key": k, "status": "scheduled", "requestedAt": requested_at} for k in keys],
            "notifyClients": body.notify_clients,
        }
