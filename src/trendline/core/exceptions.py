"""Custom exceptions for Trendline."""


class TrendlineError(Exception):
    """Base exception for all Trendline errors."""

    def __init__(self, message: str, *args: object) -> None:
        self.message = message
        super().__init__(message, *args)


# Input errors
class ValidationError(TrendlineError):
    """Input failed validation (bad amount, unknown curve, malformed payload)."""


class InsufficientSupplyError(ValidationError):
    """Sell amount exceeds circulating supply."""


class DecodeError(ValidationError):
    """Ledger account or event did not match the expected shape."""


# Lookup errors
class NotFoundError(TrendlineError):
    """Base error for missing records."""


class ItemNotFoundError(NotFoundError):
    """No tradable item with the given id."""


class MarketNotFoundError(NotFoundError):
    """No flash market with the given id."""


# External service errors
class ExternalServiceUnavailableError(TrendlineError):
    """A downstream dependency could not serve the request."""


class CircuitOpenError(ExternalServiceUnavailableError):
    """Circuit breaker is open; the call was not attempted."""


class InferenceError(ExternalServiceUnavailableError):
    """Inference service call failed."""


class LedgerError(ExternalServiceUnavailableError):
    """Ledger gateway call failed."""


class RateLimitedError(TrendlineError):
    """Upstream answered with a rate-limit response."""


# Storage errors
class PersistenceError(TrendlineError):
    """A write to the persistence store failed."""
