from __future__ import annotations

import pytest

from runtime_config.services.cache import ConfigCache, cache_key
from runtime_config.services.resolver import ConfigResolver
from runtime_config.services.backend import BackendClient
from runtime_config.services.overrides import RuntimeOverride


@pytest.fixture()
def bundle(make_settings, clock):
    settings = make_settings(SUPABASE_URL="https://p.supabase.co", SUPABASE_ANON_KEY="anon")
    resolver = ConfigResolver(
        settings, ConfigCache(clock=clock), RuntimeOverride(), BackendClient(settings)
    )
    return resolver._direct("production")


def test_hit_before_ttl_miss_after(clock, bundle) -> None:
    cache = ConfigCache(ttl_seconds=300, clock=clock)
    cache.put("production", bundle)

    clock.advance(299)
    entry = cache.get("production")
    assert entry is not None
    assert entry.data is bundle

    clock.advance(2)
    assert cache.get("production") is None
    assert len(cache) == 0  # expired entries are evicted on read


def test_exact_ttl_is_a_miss(clock, bundle) -> None:
    cache = ConfigCache(ttl_seconds=10, clock=clock)
    cache.put("staging", bundle)
    clock.advance(10)
    assert cache.get("staging") is None


def test_put_replaces_whole_entry(clock, bundle) -> None:
    cache = ConfigCache(clock=clock)
    first = cache.put("production", bundle)
    clock.advance(5)
    second = cache.put("production", bundle)
    assert second.captured_at == first.captured_at + 5
    assert cache.get("production") is second


def test_invalidation_variants(clock, bundle) -> None:
    cache = ConfigCache(clock=clock)
    for env in ("production", "staging", "development"):
        cache.put(env, bundle)

    assert cache.invalidate("staging") is True
    assert cache.invalidate("staging") is False
    assert cache.invalidate_containing("prod") == 1
    assert cache.get("development") is not None
    assert cache.clear_all() == 1
    assert len(cache) == 0


def test_keys_are_prefixed_per_environment() -> None:
    assert cache_key("staging") == "public-config-staging"


def test_put_with_stale_epoch_is_discarded(bundle, clock) -> None:
    cache = ConfigCache(clock=clock)
    before = cache.epoch
    cache.invalidate_containing("production")
    assert cache.put("production", bundle, epoch=before) is None
    assert cache.get("production") is None

    assert cache.put("production", bundle, epoch=cache.epoch) is not None
    assert cache.get("production") is not None


def test_every_invalidation_bumps_epoch(clock) -> None:
    cache = ConfigCache(clock=clock)
    epochs = [cache.epoch]
    cache.invalidate("staging")
    epochs.append(cache.epoch)
    cache.invalidate_containing("public-config-")
    epochs.append(cache.epoch)
    cache.clear_all()
    epochs.append(cache.epoch)
    assert epochs == sorted(set(epochs))
