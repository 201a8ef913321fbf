"""Per-model pricing resolution over a cached remote catalog."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from usage_monitor_internal.cache import CacheStore

from .catalog import PriceCatalog, PricingEntry, parse_catalog
from .errors import PricingError, PricingUnavailable
from .price_spec import PricingConfig, fetch_catalog, read_cached_catalog, resolve_cache_path, write_cached_catalog

LOGGER = logging.getLogger(__name__)
CATALOG_KEY = ("pricing-catalog",)


class PricingResolver:
    """Resolve model pricing, sharing one catalog fetch between all models.

    The whole catalog is one cache key, so concurrent lookups for different
    models during a fetch wait on that single request. When a refresh fails the
    last known catalog (in memory, then on disk) is served flagged as stale.
    """

    def __init__(
        self,
        config: PricingConfig | None = None,
        cache: CacheStore | None = None,
        fetcher: Callable[[str, float], Any] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or PricingConfig()
        self._cache = cache or CacheStore()
        self._fetcher = fetcher or fetch_catalog
        self._clock = clock or (lambda: datetime.now(UTC))
        self._cache_path = resolve_cache_path(self._config.cache_path)
        self.last_error: PricingError | None = None

    @property
    def config(self) -> PricingConfig:
        return self._config

    def resolve_catalog(self) -> PriceCatalog:
        """Return the current catalog, refreshing it when expired.

        Raises:
            PricingUnavailable: If the refresh failed and no earlier catalog exists.
        """
        try:
            catalog = self._cache.get_or_compute(CATALOG_KEY, self._config.ttl_seconds, self._load_catalog)
        except PricingError as exc:
            self.last_error = exc
            fallback = self._stale_catalog()
            if fallback is None:
                LOGGER.warning("Pricing unavailable: %s", exc)
                raise
            LOGGER.warning("Pricing refresh failed (%s); serving stale catalog from %s.", exc, fallback.fetched_at)
            return fallback
        self.last_error = None
        return catalog

    def resolve(self, model: str) -> PricingEntry:
        """Return pricing for one model.

        Raises:
            PricingUnavailable: If there is no catalog or the model is not in it.
        """
        catalog = self.resolve_catalog()
        entry = catalog.lookup(model)
        if entry is None:
            raise PricingUnavailable(f"No pricing entry for model {model!r}.")
        return entry

    def invalidate(self) -> None:
        """Force the next lookup to refresh the catalog; the old one stays available as stale."""
        self._cache.expire(CATALOG_KEY)

    def _load_catalog(self) -> PriceCatalog:
        cached = read_cached_catalog(self._cache_path, max_age_seconds=self._config.ttl_seconds)
        if cached is not None:
            LOGGER.debug("Loaded fresh pricing catalog from %s.", self._cache_path)
            return cached
        if self._config.offline:
            raise PricingUnavailable("Offline mode and no fresh pricing cache on disk.")

        LOGGER.info("Fetching pricing catalog from %s.", self._config.url)
        payload = self._fetcher(self._config.url, self._config.timeout_seconds)
        catalog = parse_catalog(payload, fetched_at=self._clock(), source="network")
        write_cached_catalog(self._cache_path, payload)
        return catalog

    def _stale_catalog(self) -> PriceCatalog | None:
        previous = self._cache.get_stale(CATALOG_KEY)
        if previous is not None:
            return previous.value.as_stale()
        on_disk = read_cached_catalog(self._cache_path, max_age_seconds=None)
        if on_disk is not None:
            return on_disk.as_stale()
        return None
