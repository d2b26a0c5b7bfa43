from __future__ import annotations

import asyncio
import logging
import math
import random
from typing import Any, Dict, List, Optional

import httpx

from runtime_config.config import Settings
from runtime_config.errors import BackendError, BackendTimeout
from runtime_config.telemetry.metrics import BACKEND_CALLS, inc

log = logging.getLogger(__name__)

RPC_FETCH_PUBLIC = "get_public_runtime_config"
RPC_FETCH_ALL = "get_all_runtime_config"
RPC_UPSERT = "upsert_runtime_config"
RPC_DELETE = "delete_runtime_config"
RPC_AUDIT_LOGS = "get_config_audit_logs"

_TRANSIENT_STATUSES = {502, 503, 504}


def compute_backoff_s(base_s: float, factor: float, attempt: int, jitter_s: float) -> float:
    expo = base_s * math.pow(factor, max(0, attempt - 1))
    jitter = random.uniform(0.0, jitter_s)
    return float(expo + jitter)


def _as_rows(rpc: str, payload: Any) -> List[Dict[str, Any]]:
    """Row-returning procedures must answer with a JSON array of objects."""
    if payload is None:
        return []
    if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
        log.error(
            "backend rpc returned unexpected shape",
            extra={"rpc": rpc, "payload_type": type(payload).__name__},
        )
        raise BackendError("Backend returned an unexpected response", rpc=rpc)
    return payload


class BackendClient:
    """
    Calls the five named procedures of the persistent config store.

    Every call is bounded by ``BACKEND_TIMEOUT_S`` and retried on transient
    failures with exponential backoff. Callers see BackendTimeout when the
    store never answered in time and BackendError for anything else.
    """

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None) -> None:
        self._url = (settings.SUPABASE_URL or "").rstrip("/")
        self._key = settings.SUPABASE_SERVICE_ROLE_KEY or ""
        self._timeout = settings.BACKEND_TIMEOUT_S
        self._max_retries = settings.BACKEND_MAX_RETRIES
        self._base_s = settings.BACKEND_RETRY_BASE_S
        self._factor = settings.BACKEND_RETRY_FACTOR
        self._jitter_s = settings.BACKEND_RETRY_JITTER_S
        self._http = http
        self._owns_http = http is None

    @property
    def configured(self) -> bool:
        return bool(self._url and self._key)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def _headers(self) -> Dict[str, str]:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
        }

    async def call(self, rpc: str, params: Dict[str, Any]) -> Any:
        if not self.configured:
            inc(BACKEND_CALLS, rpc=rpc, outcome="unconfigured")
            raise BackendError("Backend is not configured")

        url = f"{self._url}/rest/v1/rpc/{rpc}"
        attempts = self._max_retries + 1
        last_exc: Optional[Exception] = None
        timed_out = False

        for attempt in range(1, attempts + 1):
            try:
                resp = await asyncio.wait_for(
                    self._client().post(url, json=params, headers=self._headers()),
                    timeout=self._timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
                last_exc, timed_out = exc, True
            except httpx.TransportError as exc:
                last_exc, timed_out = exc, False
            else:
                if resp.status_code in _TRANSIENT_STATUSES:
                    last_exc = httpx.HTTPStatusError(
                        f"status={resp.status_code}", request=resp.request, response=resp
                    )
                    timed_out = resp.status_code == 504
                elif resp.status_code >= 400:
                    inc(BACKEND_CALLS, rpc=rpc, outcome="error")
                    log.error(
                        "backend rpc rejected",
                        extra={"rpc": rpc, "status": resp.status_code, "body": resp.text[:500]},
                    )
                    raise BackendError("Backend request failed", rpc=rpc)
                else:
                    try:
                        payload = resp.json() if resp.content else None
                    except ValueError:
                        inc(BACKEND_CALLS, rpc=rpc, outcome="error")
                        log.error("backend rpc returned invalid json", extra={"rpc": rpc})
                        raise BackendError("Backend request failed", rpc=rpc)
                    inc(BACKEND_CALLS, rpc=rpc, outcome="ok")
                    return payload

            log.warning(
                "backend rpc attempt failed",
                extra={"rpc": rpc, "attempt": attempt, "error": f"{type(last_exc).__name__}: {last_exc}"},
            )
            if attempt < attempts:
                await asyncio.sleep(
                    compute_backoff_s(self._base_s, self._factor, attempt, self._jitter_s)
                )

        if timed_out:
            inc(BACKEND_CALLS, rpc=rpc, outcome="timeout")
            raise BackendTimeout("Backend request timed out", rpc=rpc)
        inc(BACKEND_CALLS, rpc=rpc, outcome="error")
        raise BackendError("Backend request failed", rpc=rpc)

    # ---- Named procedures ----------------------------------------------------

    async def fetch_public_config(self, environment: str) -> List[Dict[str, Any]]:
        rows = await self.call(RPC_FETCH_PUBLIC, {"env_name": environment})
        return _as_rows(RPC_FETCH_PUBLIC, rows)

    async def fetch_all_config(self, environment: str) -> List[Dict[str, Any]]:
        rows = await self.call(RPC_FETCH_ALL, {"env_name": environment})
        return _as_rows(RPC_FETCH_ALL, rows)

    async def upsert_config(
        self,
        *,
        key: str,
        value: str,
        is_public: bool,
        environment: str,
        description: Optional[str],
        category: str,
        admin_email: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        reason: Optional[str],
    ) -> Any:
        return await self.call(
            RPC_UPSERT,
            {
                "config_key": key,
                "config_value": value,
                "is_public_param": is_public,
                "env_name": environment,
                "description_param": description,
                "category_param": category,
                "admin_email_param": admin_email,
                "ip_address_param": ip_address,
                "user_agent_param": user_agent,
                "reason_param": reason,
            },
        )

    async def delete_config(
        self,
        *,
        key: str,
        environment: str,
        admin_email: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        reason: Optional[str],
    ) -> Any:
        return await self.call(
            RPC_DELETE,
            {
                "config_key": key,
                "env_name": environment,
                "admin_email_param": admin_email,
                "ip_address_param": ip_address,
                "user_agent_param": user_agent,
                "reason_param": reason,
            },
        )

    async def fetch_audit_logs(
        self,
        *,
        key_filter: Optional[str],
        env_filter: Optional[str],
        days_back: int,
        limit: int,
    ) -> List[Dict[str, Any]]:
        rows = await self.call(
            RPC_AUDIT_LOGS,
            {
                "config_key_filter": key_filter or None,
                "env_filter": env_filter or None,
                "days_back": int(days_back),
                "limit_count": int(limit),
            },
        )
        return _as_rows(RPC_AUDIT_LOGS, rows)
