from __future__ import annotations

import asyncio

import httpx
import pytest

from runtime_config.errors import BackendError, BackendTimeout
from runtime_config.services.backend import (
    RPC_FETCH_PUBLIC,
    RPC_UPSERT,
    BackendClient,
    compute_backoff_s,
)

CREDS = {"SUPABASE_URL": "https://proj.supabase.co/", "SUPABASE_SERVICE_ROLE_KEY": "svc-key"}


def _client(make_settings, handler, **overrides) -> BackendClient:
    settings = make_settings(**{**CREDS, **overrides})
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return BackendClient(settings, http=http)


async def test_rpc_request_shape(make_settings) -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[{"key": "A", "value": "1"}])

    backend = _client(make_settings, handler)
    rows = await backend.fetch_public_config("staging")

    assert rows == [{"key": "A", "value": "1"}]
    req = seen[0]
    assert req.method == "POST"
    assert str(req.url) == f"https://proj.supabase.co/rest/v1/rpc/{RPC_FETCH_PUBLIC}"
    assert req.headers["apikey"] == "svc-key"
    assert req.headers["Authorization"] == "Bearer svc-key"


async def test_transient_status_is_retried(make_settings) -> None:
    replies = iter([503, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(replies)
        return httpx.Response(status, json={"ok": status == 200})

    backend = _client(make_settings, handler, BACKEND_MAX_RETRIES=2)
    result = await backend.call(RPC_UPSERT, {})
    assert result == {"ok": True}


async def test_client_error_is_not_retried(make_settings) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"message": "bad"})

    backend = _client(make_settings, handler, BACKEND_MAX_RETRIES=3)
    with pytest.raises(BackendError) as exc:
        await backend.call(RPC_UPSERT, {})
    assert not isinstance(exc.value, BackendTimeout)
    assert len(calls) == 1


async def test_transport_errors_exhaust_to_backend_error(make_settings) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("refused", request=request)

    backend = _client(make_settings, handler, BACKEND_MAX_RETRIES=2)
    with pytest.raises(BackendError) as exc:
        await backend.call(RPC_UPSERT, {})
    assert exc.value.status_code == 500
    assert len(calls) == 3


async def test_timeouts_surface_as_backend_timeout(make_settings) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("slow", request=request)

    backend = _client(make_settings, handler, BACKEND_MAX_RETRIES=1)
    with pytest.raises(BackendTimeout) as exc:
        await backend.call(RPC_FETCH_PUBLIC, {})
    assert exc.value.status_code == 504
    assert len(calls) == 2


async def test_hung_call_is_cut_off(make_settings) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200, json=[])

    backend = _client(make_settings, handler, BACKEND_TIMEOUT_S=0.05, BACKEND_MAX_RETRIES=0)
    with pytest.raises(BackendTimeout):
        await backend.fetch_public_config("production")


async def test_unconfigured_backend_fails_without_network(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    backend = _client(make_settings, handler, SUPABASE_SERVICE_ROLE_KEY=None)
    assert backend.configured is False
    with pytest.raises(BackendError):
        await backend.fetch_all_config("production")


def test_backoff_grows_exponentially() -> None:
    assert compute_backoff_s(0.2, 2.0, 1, 0.0) == pytest.approx(0.2)
    assert compute_backoff_s(0.2, 2.0, 3, 0.0) == pytest.approx(0.8)
    assert 0.2 <= compute_backoff_s(0.2, 2.0, 1, 0.1) <= 0.3


@pytest.mark.parametrize(
    "payload",
    [{"message": "unexpected"}, ["just", "strings"], [{"key": "A"}, 3], "text"],
)
async def test_row_procedures_reject_unexpected_shapes(make_settings, payload) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    backend = _client(make_settings, handler)
    for fetch in (
        lambda: backend.fetch_public_config("production"),
        lambda: backend.fetch_all_config("production"),
        lambda: backend.fetch_audit_logs(key_filter=None, env_filter=None, days_back=1, limit=1),
    ):
        with pytest.raises(BackendError):
            await fetch()


async def test_null_rows_read_as_empty(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"null", headers={"content-type": "application/json"})

    backend = _client(make_settings, handler)
    assert await backend.fetch_public_config("production") == []
