# tests/conftest.py
from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest
from starlette.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from runtime_config.config import Settings  # noqa: E402
from runtime_config.main import create_app  # noqa: E402

ADMIN = "ops@example.com"
API_KEY = "client-key-1"

# Every field a stray process env could otherwise fill in.
_ISOLATED = {
    "APP_ENV": "production",
    "CLIENT_API_KEYS": None,
    "SUPABASE_URL": None,
    "SUPABASE_ANON_KEY": None,
    "SUPABASE_SERVICE_ROLE_KEY": None,
    "MOBILE_SUPABASE_URL": None,
    "MOBILE_SUPABASE_ANON_KEY": None,
    "ADMIN_EMAILS": ADMIN,
    "SUPER_ADMIN_EMAIL": None,
    "API_ENCRYPTION_KEY": None,
    "OVERRIDE_FILE": None,
    "HARD_FALLBACK_ENABLED": False,
    "BACKEND_RETRY_BASE_S": 0.0,
    "BACKEND_RETRY_JITTER_S": 0.0,
    "LOG_JSON": False,
}


def make_settings(**overrides: Any) -> Settings:
    values = dict(_ISOLATED)
    values.update(overrides)
    return Settings(_env_file=None, **values)


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Reply = Union[Tuple[int, Any], Callable[[httpx.Request], httpx.Response]]


class FakeBackend:
    """Stands in for the RPC endpoint of the config store via httpx.MockTransport."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.replies: Dict[str, Reply] = {}

    def reply(self, rpc: str, status: int = 200, payload: Any = None) -> None:
        self.replies[rpc] = (status, payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        rpc = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content or b"null")
        self.calls.append((rpc, body))
        reply = self.replies.get(rpc, (200, []))
        if callable(reply):
            return reply(request)
        status, payload = reply
        return httpx.Response(status, json=payload)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def monotonic() -> FakeClock:
    return FakeClock(start=500.0)


@pytest.fixture()
def build_client(fake_backend, clock, monotonic):
    """Factory: TestClient over a fresh app with the given settings overrides."""

    def _build(**overrides: Any) -> TestClient:
        app = create_app(
            make_settings(**overrides),
            http=fake_backend.client(),
            clock=clock,
            monotonic=monotonic,
        )
        return TestClient(app)

    return _build


def client_headers(**extra: str) -> Dict[str, str]:
    headers = {"x-api-key": API_KEY, "x-app-version": "1.2.3"}
    headers.update(extra)
    return headers


def admin_headers(email: str = ADMIN) -> Dict[str, str]:
    return {"x-admin-email": email, "user-agent": "pytest-admin"}


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if asyncio.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


@pytest.fixture(name="make_settings")
def _make_settings_fixture():
    return make_settings


@pytest.fixture(name="client_headers")
def _client_headers_fixture():
    return client_headers


@pytest.fixture(name="admin_headers")
def _admin_headers_fixture():
    return admin_headers
