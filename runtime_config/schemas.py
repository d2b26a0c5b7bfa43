from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Environment = Literal["production", "staging", "development"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---- Client bundle -----------------------------------------------------------


class SupabaseSection(_CamelModel):
    url: str
    anon_key: str


class AdmobSection(_CamelModel):
    app_id: str
    banner_id: str
    interstitial_id: str
    rewarded_id: str


class FeaturesSection(_CamelModel):
    coins_enabled: bool = True
    ads_enabled: bool = True
    vip_enabled: bool = True
    referrals_enabled: bool = True
    analytics_enabled: bool = True


class AppSection(_CamelModel):
    min_version: str = "1.0.0"
    force_update: bool = False
    maintenance_mode: bool = False
    api_version: str = "v1"


class SecuritySection(_CamelModel):
    allow_emulators: bool = False
    allow_rooted: bool = False
    require_signature_validation: bool = False
    ad_block_detection: bool = True


class BundleMetadata(_CamelModel):
    config_version: str
    last_updated: str
    ttl: int
    source: Literal["direct", "backend", "fallback"]
    environment: str
    checksum: str


class ConfigBundle(_CamelModel):
    """Configuration delivered to clients. Every resolution path fills every section."""

    supabase: SupabaseSection
    admob: AdmobSection
    features: FeaturesSection
    app: AppSection
    security: SecuritySection
    metadata: BundleMetadata
    # Public backend rows, flat and grouped by category; empty outside the backend path.
    config: Dict[str, str] = Field(default_factory=dict)
    categories: Dict[str, Dict[str, str]] = Field(default_factory=dict)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ---- Admin request bodies ----------------------------------------------------


class ConfigUpsertRequest(_CamelModel):
    key: str
    value: str
    is_public: bool = False
    environment: str = "production"
    description: Optional[str] = None
    category: str = "general"
    reason: Optional[str] = None
    encrypt: bool = False


class ConfigDeleteRequest(BaseModel):
    reason: Optional[str] = None


class EnvSyncRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    MOBILE_SUPABASE_URL: Optional[str] = None
    MOBILE_SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    ADMOB_APP_ID: Optional[str] = None
    ADMOB_BANNER_ID: Optional[str] = None
    ADMOB_INTERSTITIAL_ID: Optional[str] = None
    ADMOB_REWARDED_ID: Optional[str] = None


class RotateKeysRequest(_CamelModel):
    keys: List[str] = Field(default_factory=list)
    reason: Optional[str] = None
    notify_clients: bool = False
