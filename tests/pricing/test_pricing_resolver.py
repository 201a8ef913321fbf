"""Tests for pricing resolution, caching and stale fallback."""

from __future__ import annotations

import os
import threading
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import orjson
import pytest

from model_pricing import NetworkTimeout, PricingConfig, PricingResolver, PricingUnavailable
from usage_monitor_internal.cache import CacheStore

PAYLOAD = {
    "data": [
        {"id": "anthropic/claude-sonnet-4", "pricing": {"prompt": "0.000003", "completion": "0.000015"}},
        {"id": "anthropic/claude-opus-4", "pricing": {"prompt": "0.000015", "completion": "0.000075"}},
    ]
}


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_resolve_fetches_once_and_caches(tmp_path: Path) -> None:
    """Repeated lookups within the TTL reuse one fetched catalog."""
    calls: list[str] = []

    def _fetch(url: str, timeout: float) -> Any:
        calls.append(url)
        return PAYLOAD

    resolver = PricingResolver(PricingConfig(cache_path=tmp_path / "prices.json"), fetcher=_fetch)

    assert resolver.resolve("claude-sonnet-4").input_per_million == pytest.approx(3.0)
    assert resolver.resolve("claude-opus-4").output_per_million == pytest.approx(75.0)
    assert len(calls) == 1
    assert orjson.loads((tmp_path / "prices.json").read_bytes()) == PAYLOAD


def test_concurrent_lookups_for_different_models_share_one_fetch(tmp_path: Path) -> None:
    """Lookups arriving during an in-flight fetch wait for it instead of fetching again."""
    calls: list[str] = []
    release = threading.Event()

    def _slow_fetch(url: str, timeout: float) -> Any:
        calls.append(url)
        release.wait(5)
        return PAYLOAD

    resolver = PricingResolver(PricingConfig(cache_path=None), fetcher=_slow_fetch)
    models = ["claude-sonnet-4", "claude-opus-4"] * 4
    results: dict[int, float] = {}

    def _lookup(index: int, model: str) -> None:
        results[index] = resolver.resolve(model).input_per_million

    threads = [threading.Thread(target=_lookup, args=(index, model)) for index, model in enumerate(models)]
    for thread in threads:
        thread.start()
    time.sleep(0.2)
    release.set()
    for thread in threads:
        thread.join(5)

    assert len(calls) == 1
    assert len(results) == len(models)
    assert results[0] == pytest.approx(3.0)
    assert results[1] == pytest.approx(15.0)


def test_resolve_uses_fresh_disk_cache_without_fetching(tmp_path: Path) -> None:
    """A disk cache younger than the TTL is served without network access."""
    cache_file = tmp_path / "prices.json"
    cache_file.write_bytes(orjson.dumps(PAYLOAD))

    def _unexpected_fetch(url: str, timeout: float) -> Any:
        raise AssertionError(f"Unexpected fetch for {url}")

    resolver = PricingResolver(PricingConfig(cache_path=cache_file), fetcher=_unexpected_fetch)

    catalog = resolver.resolve_catalog()

    assert catalog.source == "disk"
    assert catalog.stale is False


def test_failed_refresh_serves_previous_catalog_as_stale(tmp_path: Path) -> None:
    """After the TTL, a failing refresh keeps serving the last catalog flagged stale."""
    clock = _FakeClock()
    outcomes: list[Any] = [PAYLOAD, PricingUnavailable("HTTP 500")]

    def _fetch(url: str, timeout: float) -> Any:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    resolver = PricingResolver(PricingConfig(ttl_seconds=60, cache_path=None), cache=CacheStore(clock=clock), fetcher=_fetch)
    assert resolver.resolve("claude-sonnet-4").stale is False

    clock.now += 120
    entry = resolver.resolve("claude-sonnet-4")

    assert entry.stale is True
    assert entry.input_per_million == pytest.approx(3.0)
    assert isinstance(resolver.last_error, PricingUnavailable)


def test_failed_refresh_falls_back_to_expired_disk_cache(tmp_path: Path) -> None:
    """With no catalog in memory, an expired disk cache is used as stale data."""
    cache_file = tmp_path / "prices.json"
    cache_file.write_bytes(orjson.dumps(PAYLOAD))
    old = time.time() - 10 * 86400
    os.utime(cache_file, (old, old))

    def _timeout(url: str, timeout: float) -> Any:
        raise NetworkTimeout("timed out")

    resolver = PricingResolver(PricingConfig(cache_path=cache_file), fetcher=_timeout)

    catalog = resolver.resolve_catalog()

    assert catalog.stale is True
    assert catalog.source == "disk"
    assert isinstance(resolver.last_error, NetworkTimeout)


def test_failed_fetch_without_any_catalog_raises(tmp_path: Path) -> None:
    """Without memory or disk data, the failure reaches the caller."""

    def _fail(url: str, timeout: float) -> Any:
        raise PricingUnavailable("HTTP 500")

    resolver = PricingResolver(PricingConfig(cache_path=tmp_path / "missing.json"), fetcher=_fail)

    with pytest.raises(PricingUnavailable):
        resolver.resolve("claude-sonnet-4")


def test_unknown_model_raises_pricing_unavailable(tmp_path: Path) -> None:
    """A catalog without the model is an unavailable price, not a zero price."""
    resolver = PricingResolver(PricingConfig(cache_path=None), fetcher=lambda url, timeout: PAYLOAD)

    with pytest.raises(PricingUnavailable):
        resolver.resolve("gpt-5")


def test_offline_mode_never_fetches(tmp_path: Path) -> None:
    """Offline resolvers only use the disk cache."""

    def _unexpected_fetch(url: str, timeout: float) -> Any:
        raise AssertionError("offline resolver fetched")

    resolver = PricingResolver(PricingConfig(cache_path=tmp_path / "missing.json", offline=True), fetcher=_unexpected_fetch)

    with pytest.raises(PricingUnavailable):
        resolver.resolve_catalog()


def test_invalidate_forces_refetch(tmp_path: Path) -> None:
    """Dropping the cached catalog makes the next lookup fetch again."""
    calls: list[datetime] = []

    def _fetch(url: str, timeout: float) -> Any:
        calls.append(datetime.now(UTC))
        return PAYLOAD

    resolver = PricingResolver(PricingConfig(cache_path=None), fetcher=_fetch)
    resolver.resolve_catalog()
    resolver.invalidate()
    resolver.resolve_catalog()

    assert len(calls) == 2
