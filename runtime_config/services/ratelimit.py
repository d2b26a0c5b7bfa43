from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from starlette.requests import Request

from runtime_config.telemetry.metrics import RATE_LIMIT_BLOCKS, inc

log = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class Admission:
    allowed: bool
    retry_after_seconds: Optional[int] = None


def client_identifier(request: Request) -> str:
    """First hop of X-Forwarded-For, then the socket peer, then a shared bucket."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


class SlidingWindowRateLimiter:
    """
    Per-client request log over a trailing window.

    The checked client is pruned on every ``admit``. Once per window the whole
    map is swept as well, so clients that never return are dropped too. A
    timestamp exactly ``window_seconds`` old no longer counts.
    """

    def __init__(
        self,
        limit: int = 100,
        window_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = int(limit)
        self.window_seconds = int(window_seconds)
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()

    def _sweep(self, cutoff: float) -> int:
        idle = [k for k, w in self._windows.items() if not w or w[-1] <= cutoff]
        for k in idle:
            del self._windows[k]
        return len(idle)

    def admit(self, client_id: Optional[str]) -> Admission:
        key = client_id or UNKNOWN_CLIENT
        now = self._clock()
        cutoff = now - self.window_seconds

        if now - self._last_sweep >= self.window_seconds:
            self._last_sweep = now
            dropped = self._sweep(cutoff)
            if dropped:
                log.debug("rate limit windows swept", extra={"dropped": dropped})

        window = self._windows.get(key)
        if window is not None:
            while window and window[0] <= cutoff:
                window.popleft()
            if not window:
                del self._windows[key]
                window = None

        if window is not None and len(window) >= self.limit:
            inc(RATE_LIMIT_BLOCKS)
            log.warning("rate limit exceeded", extra={"client": key, "count": len(window)})
            return Admission(allowed=False, retry_after_seconds=self.window_seconds)

        if window is None:
            window = deque()
            self._windows[key] = window
        window.append(now)
        return Admission(allowed=True)

    def tracked_clients(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()
