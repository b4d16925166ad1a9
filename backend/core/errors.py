"""Typed errors shared by the live pipeline and the backtester.

Every error carries a ``code`` that is sent verbatim to clients
(``{"type": "error", "reason": code}``) or used as the HTTP error key.
"""


class RelayError(Exception):
    """Base class for all expected failures."""

    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidInputError(RelayError):
    """Malformed input. Rejected immediately, never retried."""

    code = "invalid_message"


class InvalidBarError(InvalidInputError):
    code = "invalid_candle"


class InvalidSymbolError(InvalidInputError):
    code = "invalid_symbol"


class UnknownMessageTypeError(InvalidInputError):
    code = "unknown_type"


class EntitlementError(RelayError):
    """Premium entitlement missing or expired."""


class IndicatorRequiresPremiumError(EntitlementError):
    code = "indicator_requires_premium"


class PremiumExpiredError(EntitlementError):
    code = "premium_expired"


class InsufficientDataError(RelayError):
    code = "insufficient_data"


class StaleBarError(RelayError):
    """Bar is older than the newest bar already processed for the pair."""

    code = "stale_bar"


class UpstreamError(RelayError):
    """Exchange returned something unusable."""

    code = "upstream_error"
