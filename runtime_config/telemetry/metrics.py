from __future__ import annotations

from typing import Any

from prometheus_client import REGISTRY, Counter


def _get_or_create_metric(factory: Any, name: str, documentation: str, **kwargs: Any) -> Any:
    """
    Prometheus helper that tolerates re-registration across tests and reloads.
    """
    try:
        return factory(name, documentation, **kwargs)
    except ValueError:
        existing = getattr(REGISTRY, "_names_to_collectors", {}).get(name)
        if existing is not None:
            return existing
        raise


RATE_LIMIT_BLOCKS = _get_or_create_metric(
    Counter,
    "runtime_config_rate_limited_total",
    "Total number of client config requests blocked by rate limiting",
)

CACHE_LOOKUPS = _get_or_create_metric(
    Counter,
    "runtime_config_cache_lookups_total",
    "Config cache lookups by result",
    labelnames=("result",),
)

RESOLUTIONS = _get_or_create_metric(
    Counter,
    "runtime_config_resolutions_total",
    "Config bundle resolutions by source",
    labelnames=("source",),
)

BACKEND_CALLS = _get_or_create_metric(
    Counter,
    "runtime_config_backend_calls_total",
    "Backend RPC calls by procedure and outcome",
    labelnames=("rpc", "outcome"),
)

ADMIN_OPS = _get_or_create_metric(
    Counter,
    "runtime_config_admin_ops_total",
    "Admin operations by action and outcome",
    labelnames=("action", "outcome"),
)


def inc(metric: Any, **labels: str) -> None:
    """Best-effort increment; metrics never break a request."""
    try:
        (metric.labels(**labels) if labels else metric).inc()
    except Exception:  # pragma: no cover
        pass
