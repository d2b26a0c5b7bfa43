from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from runtime_config.schemas import ConfigBundle
from runtime_config.telemetry.metrics import CACHE_LOOKUPS, inc

log = logging.getLogger(__name__)

KEY_PREFIX = "public-config-"


def cache_key(environment: str) -> str:
    return f"{KEY_PREFIX}{environment}"


@dataclass(frozen=True)
class CacheEntry:
    environment_key: str
    data: ConfigBundle
    captured_at: float  # unix seconds


class ConfigCache:
    """
    Environment-keyed snapshot store with lazy TTL expiry.

    Entries are replaced whole, never edited. An expired entry reads as a miss
    and is evicted on that read.

    Every invalidation bumps ``epoch``. A writer that read the epoch before a
    slow resolution passes it back to ``put``; if an invalidation landed in
    between, the result is discarded instead of cached.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._epoch = 0

    @property
    def epoch(self) -> int:
        return self._epoch

    def get(self, environment: str) -> Optional[CacheEntry]:
        key = cache_key(environment)
        entry = self._entries.get(key)
        if entry is None:
            inc(CACHE_LOOKUPS, result="miss")
            return None
        if self._clock() - entry.captured_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            inc(CACHE_LOOKUPS, result="expired")
            return None
        inc(CACHE_LOOKUPS, result="hit")
        return entry

    def put(
        self, environment: str, bundle: ConfigBundle, *, epoch: Optional[int] = None
    ) -> Optional[CacheEntry]:
        key = cache_key(environment)
        if epoch is not None and epoch != self._epoch:
            log.info("discarding bundle resolved before invalidation", extra={"environment": environment})
            return None
        entry = CacheEntry(environment_key=key, data=bundle, captured_at=self._clock())
        self._entries[key] = entry
        return entry

    def invalidate(self, environment: str) -> bool:
        self._epoch += 1
        return self._entries.pop(cache_key(environment), None) is not None

    def invalidate_containing(self, fragment: str) -> int:
        self._epoch += 1
        doomed = [k for k in self._entries if fragment in k]
        for k in doomed:
            del self._entries[k]
        return len(doomed)

    def clear_all(self) -> int:
        self._epoch += 1
        n = len(self._entries)
        self._entries.clear()
        return n

    def __len__(self) -> int:
        return len(self._entries)
