"""
BanBridge - Utilities Package
=============================
"""

from .retry import (
    RETRYABLE_EXCEPTIONS,
    ResponseAction,
    RetryPolicy,
    RequestAttempt,
    classify_status,
)
from .helpers import (
    truncate,
    safe_inline,
    parse_instant,
    format_instant,
    utcnow,
)

__all__ = [
    # Retry utilities
    "RETRYABLE_EXCEPTIONS",
    "ResponseAction",
    "RetryPolicy",
    "RequestAttempt",
    "classify_status",
    # String helpers
    "truncate",
    "safe_inline",
    # Timestamp helpers
    "parse_instant",
    "format_instant",
    "utcnow",
]
