"""Custom exceptions for pricing catalog failures."""


class PricingError(Exception):
    """Base exception for pricing errors."""


class PricingUnavailable(PricingError):
    """Raised when no pricing data (fresh or stale) can be produced."""


class NetworkTimeout(PricingUnavailable):
    """Raised when the catalog request exceeds its timeout."""
