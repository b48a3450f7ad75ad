"""Common application-wide constants."""

from datetime import timedelta

# Default reservation window for an equipment hold
DEFAULT_HOLD_DURATION = timedelta(minutes=15)

# Prefix of gateway order identifiers
ORDER_ID_PREFIX = "HILINK"

# Metadata for system-driven booking transitions
PAYMENT_TIMEOUT_REASON = "payment_timeout"
PAYMENT_FAILED_REASON = "payment_failed"
PAYMENT_TOKEN_FAILED_REASON = "payment_token_failed"


__all__ = [
    "DEFAULT_HOLD_DURATION",
    "ORDER_ID_PREFIX",
    "PAYMENT_TIMEOUT_REASON",
    "PAYMENT_FAILED_REASON",
    "PAYMENT_TOKEN_FAILED_REASON",
]
