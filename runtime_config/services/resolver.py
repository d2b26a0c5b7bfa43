from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from runtime_config.config import Settings
from runtime_config.errors import BackendError, ServiceUnavailable
from runtime_config.schemas import (
    AdmobSection,
    AppSection,
    BundleMetadata,
    ConfigBundle,
    FeaturesSection,
    SecuritySection,
    SupabaseSection,
)
from runtime_config.services.backend import BackendClient
from runtime_config.services.cache import ConfigCache
from runtime_config.services.overrides import RuntimeOverride
from runtime_config.services.secrets import EncryptionHelper, checksum, is_encrypted_token
from runtime_config.telemetry.metrics import RESOLUTIONS, inc

log = logging.getLogger(__name__)

# Bundle field <- setting / public row key
_ADMOB_FIELDS = {
    "app_id": "ADMOB_APP_ID",
    "banner_id": "ADMOB_BANNER_ID",
    "interstitial_id": "ADMOB_INTERSTITIAL_ID",
    "rewarded_id": "ADMOB_REWARDED_ID",
}
_FEATURE_FIELDS = {
    "coins_enabled": "FEATURE_COINS_ENABLED",
    "ads_enabled": "FEATURE_ADS_ENABLED",
    "vip_enabled": "FEATURE_VIP_ENABLED",
    "referrals_enabled": "FEATURE_REFERRALS_ENABLED",
    "analytics_enabled": "FEATURE_ANALYTICS_ENABLED",
}
_APP_FIELDS = {
    "min_version": "APP_MIN_VERSION",
    "force_update": "APP_FORCE_UPDATE",
    "maintenance_mode": "APP_MAINTENANCE_MODE",
    "api_version": "APP_API_VERSION",
}
_TRUE = {"1", "true", "yes", "on"}

UNAVAILABLE_MESSAGE = (
    "Application configuration not properly set up. Please contact administrator."
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _first(*values: Optional[str]) -> Optional[str]:
    for v in values:
        if v:
            return v
    return None


def _coerce(value: Any, like: Any) -> Any:
    if isinstance(like, bool):
        return str(value).strip().lower() in _TRUE
    return str(value)


def fold_rows(rows: Iterable[Mapping[str, Any]]) -> Tuple[Dict[str, str], Dict[str, Dict[str, str]]]:
    """Flatten backend rows into ``{key: value}`` and ``{category: {key: value}}``."""
    flat: Dict[str, str] = {}
    grouped: Dict[str, Dict[str, str]] = {}
    for row in rows:
        key = row.get("key")
        if not key:
            continue
        value = "" if row.get("value") is None else str(row.get("value"))
        category = str(row.get("category") or "general")
        flat[key] = value
        grouped.setdefault(category, {})[key] = value
    return flat, grouped


class ConfigResolver:
    """
    Builds the client bundle from the first viable source:

    1. runtime override / process Supabase URL + anon key ("direct")
    2. public rows from the backend store ("backend")
    3. operator-enabled embedded fallback ("fallback")

    Direct and backend bundles are stored in the cache before returning, unless
    the cache was invalidated while the backend call was in flight.
    """

    def __init__(
        self,
        settings: Settings,
        cache: ConfigCache,
        override: RuntimeOverride,
        backend: BackendClient,
        encryption: Optional[EncryptionHelper] = None,
    ) -> None:
        self._settings = settings
        self._cache = cache
        self._override = override
        self._backend = backend
        self._encryption = encryption

    # ---- section builders ---------------------------------------------------

    def _lookup(self, values: Mapping[str, str], name: str) -> Any:
        default = getattr(self._settings, name)
        if name in values:
            return _coerce(values[name], default)
        return default

    def _sections(self, values: Mapping[str, str]) -> Dict[str, Any]:
        s = self._settings
        allow_emulators = s.SECURITY_ALLOW_EMULATORS
        if allow_emulators is None:
            allow_emulators = s.is_development
        require_signature = s.SECURITY_REQUIRE_SIGNATURE
        if require_signature is None:
            require_signature = s.APP_ENV.strip().lower() == "production"
        return {
            "admob": AdmobSection(**{f: self._lookup(values, n) for f, n in _ADMOB_FIELDS.items()}),
            "features": FeaturesSection(
                **{f: self._lookup(values, n) for f, n in _FEATURE_FIELDS.items()}
            ),
            "app": AppSection(**{f: self._lookup(values, n) for f, n in _APP_FIELDS.items()}),
            "security": SecuritySection(
                allow_emulators=allow_emulators,
                allow_rooted=s.SECURITY_ALLOW_ROOTED,
                require_signature_validation=require_signature,
                ad_block_detection=s.SECURITY_AD_BLOCK_DETECTION,
            ),
        }

    def _assemble(
        self,
        *,
        source: str,
        environment: str,
        url: str,
        anon_key: str,
        values: Optional[Dict[str, str]] = None,
        categories: Optional[Dict[str, Dict[str, str]]] = None,
    ) -> ConfigBundle:
        sections = self._sections(values or {})
        supabase = SupabaseSection(url=url, anon_key=anon_key)
        if values is not None:
            digest = checksum(values)
        else:
            digest = checksum(
                {
                    "supabase": supabase.model_dump(by_alias=True),
                    **{k: v.model_dump(by_alias=True) for k, v in sections.items()},
                }
            )
        metadata = BundleMetadata(
            config_version=self._settings.CONFIG_VERSION,
            last_updated=_now_iso(),
            ttl=self._settings.CONFIG_METADATA_TTL,
            source=source,
            environment=environment,
            checksum=digest,
        )
        return ConfigBundle(
            supabase=supabase,
            metadata=metadata,
            config=dict(values or {}),
            categories=dict(categories or {}),
            **sections,
        )

    # ---- sources ------------------------------------------------------------

    def _direct(self, environment: str) -> Optional[ConfigBundle]:
        s = self._settings
        url = _first(self._override.supabase_url, s.MOBILE_SUPABASE_URL, s.SUPABASE_URL)
        anon = _first(
            self._override.supabase_anon_key, s.MOBILE_SUPABASE_ANON_KEY, s.SUPABASE_ANON_KEY
        )
        if not (url and anon):
            return None
        return self._assemble(source="direct", environment=environment, url=url, anon_key=anon)

    def _decrypt_values(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for row in rows:
            value = row.get("value")
            if is_encrypted_token(value):
                plain = self._encryption.decrypt_token(value) if self._encryption else None
                if plain is None:
                    log.error("dropping undecryptable config value", extra={"key": row.get("key")})
                    continue
                row = {**row, "value": plain}
            out.append(row)
        return out

    async def _from_backend(self, environment: str) -> Optional[ConfigBundle]:
        if not self._backend.configured:
            return None
        try:
            rows = await self._backend.fetch_public_config(environment)
        except BackendError as exc:
            log.error(
                "backend config fetch failed",
                extra={"environment": environment, "error": exc.error},
            )
            return None
        flat, grouped = fold_rows(self._decrypt_values(rows))
        url = _first(flat.get("MOBILE_SUPABASE_URL"), flat.get("SUPABASE_URL")) or ""
        anon = _first(flat.get("MOBILE_SUPABASE_ANON_KEY"), flat.get("SUPABASE_ANON_KEY")) or ""
        return self._assemble(
            source="backend",
            environment=environment,
            url=url,
            anon_key=anon,
            values=flat,
            categories=grouped,
        )

    def _fallback(self, environment: str) -> Optional[ConfigBundle]:
        s = self._settings
        if not s.HARD_FALLBACK_ENABLED:
            return None
        if not (s.FALLBACK_SUPABASE_URL and s.FALLBACK_SUPABASE_ANON_KEY):
            return None
        log.warning("serving hard fallback configuration", extra={"environment": environment})
        return self._assemble(
            source="fallback",
            environment=environment,
            url=s.FALLBACK_SUPABASE_URL,
            anon_key=s.FALLBACK_SUPABASE_ANON_KEY,
        )

    async def resolve(self, environment: str, app_version: Optional[str] = None) -> ConfigBundle:
        epoch = self._cache.epoch
        bundle = self._direct(environment)
        if bundle is None:
            bundle = await self._from_backend(environment)
        if bundle is not None:
            self._cache.put(environment, bundle, epoch=epoch)
        else:
            bundle = self._fallback(environment)

        if bundle is None:
            inc(RESOLUTIONS, source="unavailable")
            log.error(
                "no valid configuration source",
                extra={"environment": environment, "app_version": app_version},
            )
            raise ServiceUnavailable("Service temporarily unavailable", message=UNAVAILABLE_MESSAGE)

        inc(RESOLUTIONS, source=bundle.metadata.source)
        return bundle
