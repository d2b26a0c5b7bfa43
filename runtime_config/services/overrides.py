from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from dotenv import dotenv_values, set_key

from runtime_config.config import Settings

log = logging.getLogger(__name__)

# Ad-unit settings an env-sync may replace at runtime.
ADMOB_KEYS = (
    "ADMOB_APP_ID",
    "ADMOB_BANNER_ID",
    "ADMOB_INTERSTITIAL_ID",
    "ADMOB_REWARDED_ID",
)


@dataclass
class RuntimeOverride:
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None

    def as_dict(self) -> Dict[str, Optional[str]]:
        return {"supabaseUrl": self.supabase_url, "supabaseAnonKey": self.supabase_anon_key}


class OverrideFile:
    """dotenv file that carries env-sync results across restarts."""

    def __init__(self, path: Optional[str]) -> None:
        self.path = Path(path) if path else None

    def load(self) -> Dict[str, str]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            parsed = dotenv_values(self.path, encoding="utf-8")
        except OSError as exc:
            log.error("could not read override file %s: %s", self.path, exc)
            return {}
        return {k: v for k, v in parsed.items() if v}

    def save(self, values: Dict[str, str]) -> bool:
        if self.path is None:
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text("", encoding="utf-8")
            for key, value in values.items():
                if value:
                    set_key(tmp, key, value, encoding="utf-8")
            tmp.replace(self.path)
        except OSError as exc:
            log.error("could not write override file %s: %s", self.path, exc)
            return False
        return True


def apply_overrides(values: Dict[str, str], override: RuntimeOverride, settings: Settings) -> None:
    url = values.get("MOBILE_SUPABASE_URL") or values.get("SUPABASE_URL")
    anon = values.get("MOBILE_SUPABASE_ANON_KEY") or values.get("SUPABASE_ANON_KEY")
    if url and anon:
        override.supabase_url = url
        override.supabase_anon_key = anon
    for name in ADMOB_KEYS:
        if values.get(name):
            setattr(settings, name, values[name])
