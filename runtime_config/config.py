# runtime_config/config.py
from __future__ import annotations

import os
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings

APP_VERSION = os.getenv("APP_VERSION", "2.1.0")

ENVIRONMENTS = ("production", "staging", "development")
DEV_MODES = {"development", "dev"}
CRITICAL_KEYS = frozenset({"SERVICE_ROLE_KEY", "JWT_SECRET", "ENCRYPTION_KEY"})


def _csv_to_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    items = [part.strip() for part in value.split(",")]
    return [item for item in items if item]


class Settings(BaseSettings):
    # --- Identity / Build ---
    APP_NAME: str = Field(default="Runtime Config API")
    APP_ENV: str = Field(default="production")
    VERSION: str = Field(default=APP_VERSION)

    # --- Client auth ---
    CLIENT_API_KEYS: Optional[str] = None  # comma-separated; empty = any non-placeholder key
    CLIENT_API_KEY_PLACEHOLDER: str = Field(default="your-api-key-here")
    MIN_APP_VERSION: str = Field(default="1.0.0")

    # --- Rate limit ---
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_MAX_REQUESTS: int = Field(default=100, ge=1)
    RATE_LIMIT_WINDOW_S: int = Field(default=60, ge=1)

    # --- Cache ---
    CONFIG_CACHE_TTL_S: float = Field(default=300.0, gt=0)

    # --- Backend (Supabase) ---
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    MOBILE_SUPABASE_URL: Optional[str] = None
    MOBILE_SUPABASE_ANON_KEY: Optional[str] = None

    # --- Outbound calls ---
    BACKEND_TIMEOUT_S: float = Field(default=10.0, gt=0)
    BACKEND_MAX_RETRIES: int = Field(default=2, ge=0, le=10)
    BACKEND_RETRY_BASE_S: float = Field(default=0.2, ge=0)
    BACKEND_RETRY_FACTOR: float = Field(default=2.0, ge=1)
    BACKEND_RETRY_JITTER_S: float = Field(default=0.1, ge=0)

    # --- Ad units ---
    ADMOB_APP_ID: str = Field(default="ca-app-pub-test")
    ADMOB_BANNER_ID: str = Field(default="ca-app-pub-test-banner")
    ADMOB_INTERSTITIAL_ID: str = Field(default="ca-app-pub-test-interstitial")
    ADMOB_REWARDED_ID: str = Field(default="ca-app-pub-test-rewarded")

    # --- Feature flags ---
    FEATURE_COINS_ENABLED: bool = True
    FEATURE_ADS_ENABLED: bool = True
    FEATURE_VIP_ENABLED: bool = True
    FEATURE_REFERRALS_ENABLED: bool = True
    FEATURE_ANALYTICS_ENABLED: bool = True

    # --- App / version metadata ---
    APP_MIN_VERSION: str = Field(default="1.0.0")
    APP_FORCE_UPDATE: bool = False
    APP_MAINTENANCE_MODE: bool = False
    APP_API_VERSION: str = Field(default="v1")
    CONFIG_VERSION: str = Field(default="1.0.0")
    CONFIG_METADATA_TTL: int = Field(default=3600, ge=0)

    # --- Client security flags ---
    SECURITY_ALLOW_EMULATORS: Optional[bool] = None  # None = allowed only in dev mode
    SECURITY_ALLOW_ROOTED: bool = False
    SECURITY_REQUIRE_SIGNATURE: Optional[bool] = None  # None = required only in production
    SECURITY_AD_BLOCK_DETECTION: bool = True

    # --- Hard fallback (operator opt-in) ---
    HARD_FALLBACK_ENABLED: bool = False
    FALLBACK_SUPABASE_URL: Optional[str] = None
    FALLBACK_SUPABASE_ANON_KEY: Optional[str] = None

    # --- Admin ---
    ADMIN_EMAILS: Optional[str] = None  # comma-separated allow-list
    SUPER_ADMIN_EMAIL: Optional[str] = None

    # --- Secrets ---
    API_ENCRYPTION_KEY: Optional[str] = None

    # --- Runtime override persistence ---
    OVERRIDE_FILE: Optional[str] = Field(default=".runtime-overrides.env")

    # --- HTTP ---
    CORS_ENABLED: bool = False
    CORS_ALLOW_ORIGINS: str = Field(default="*")
    SECURITY_HEADERS_ENABLED: bool = True

    # --- Logging ---
    LOG_JSON: bool = True
    LOG_LEVEL: str = Field(default="INFO")

    model_config = {
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @property
    def is_development(self) -> bool:
        return self.APP_ENV.strip().lower() in DEV_MODES

    @property
    def client_api_keys(self) -> List[str]:
        return _csv_to_list(self.CLIENT_API_KEYS)

    @property
    def admin_emails(self) -> List[str]:
        return [e.lower() for e in _csv_to_list(self.ADMIN_EMAILS)]

    @property
    def cors_origins(self) -> List[str]:
        return _csv_to_list(self.CORS_ALLOW_ORIGINS) or ["*"]


def get_settings() -> Settings:
    return Settings()
