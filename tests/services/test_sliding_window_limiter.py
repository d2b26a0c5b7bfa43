from __future__ import annotations

from runtime_config.services.ratelimit import SlidingWindowRateLimiter, client_identifier
from starlette.requests import Request


def _limiter(clock, limit=100, window=60) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(limit=limit, window_seconds=window, clock=clock)


def test_denies_at_limit_and_reports_window(clock) -> None:
    rl = _limiter(clock, limit=3)
    assert [rl.admit("c").allowed for _ in range(3)] == [True, True, True]
    denied = rl.admit("c")
    assert denied.allowed is False
    assert denied.retry_after_seconds == 60


def test_window_slides(clock) -> None:
    rl = _limiter(clock, limit=2, window=60)
    rl.admit("c")
    clock.advance(30)
    rl.admit("c")
    assert rl.admit("c").allowed is False

    clock.advance(31)  # first timestamp leaves the window
    assert rl.admit("c").allowed is True
    assert rl.admit("c").allowed is False


def test_denied_requests_do_not_extend_the_window(clock) -> None:
    rl = _limiter(clock, limit=1, window=10)
    rl.admit("c")
    for _ in range(5):
        clock.advance(1)
        assert rl.admit("c").allowed is False
    clock.advance(5)
    assert rl.admit("c").allowed is True


def test_expired_timestamps_are_purged(clock) -> None:
    rl = _limiter(clock)
    for _ in range(5):
        rl.admit("a")
    rl.admit("b")
    assert rl.tracked_clients() == 2
    clock.advance(61)
    rl.admit("a")
    assert len(rl._windows["a"]) == 1
    assert rl.tracked_clients() == 1


def test_idle_clients_are_swept_once_per_window(clock) -> None:
    rl = _limiter(clock)
    for i in range(5000):
        rl.admit(f"198.51.100.{i}")
    assert rl.tracked_clients() == 5000

    clock.advance(3600)
    rl.admit("203.0.113.1")
    assert rl.tracked_clients() == 1


def test_active_clients_survive_the_sweep(clock) -> None:
    rl = _limiter(clock, window=60)
    rl.admit("idle")
    clock.advance(30)
    rl.admit("busy")
    clock.advance(31)
    rl.admit("other")
    assert set(rl._windows) == {"busy", "other"}


def test_timestamp_exactly_one_window_old_no_longer_counts(clock) -> None:
    rl = _limiter(clock, limit=1, window=60)
    assert rl.admit("c").allowed is True
    clock.advance(59.5)
    assert rl.admit("c").allowed is False
    clock.advance(0.5)
    assert rl.admit("c").allowed is True


def test_missing_identifier_shares_unknown_bucket(clock) -> None:
    rl = _limiter(clock, limit=1)
    assert rl.admit(None).allowed is True
    assert rl.admit("").allowed is False
    assert rl.admit("unknown").allowed is False


def _request(headers=None, client=("10.0.0.5", 1234)) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    scope = {"type": "http", "method": "GET", "path": "/config", "headers": raw, "client": client}
    return Request(scope)


def test_client_identifier_prefers_first_forwarded_hop() -> None:
    req = _request({"X-Forwarded-For": "203.0.113.9, 10.1.1.1"})
    assert client_identifier(req) == "203.0.113.9"


def test_client_identifier_falls_back_to_socket_then_unknown() -> None:
    assert client_identifier(_request()) == "10.0.0.5"
    assert client_identifier(_request(client=None)) == "unknown"
