"""Shared model pricing utilities."""

from .catalog import PriceCatalog, PricingEntry, parse_catalog
from .errors import NetworkTimeout, PricingError, PricingUnavailable
from .price_spec import DEFAULT_CATALOG_URL, DEFAULT_PRICE_CACHE_PATH, PricingConfig, fetch_catalog
from .resolver import PricingResolver

__all__ = [
    "DEFAULT_CATALOG_URL",
    "DEFAULT_PRICE_CACHE_PATH",
    "NetworkTimeout",
    "PriceCatalog",
    "PricingConfig",
    "PricingEntry",
    "PricingError",
    "PricingResolver",
    "PricingUnavailable",
    "fetch_catalog",
    "parse_catalog",
]
