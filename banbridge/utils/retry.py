"""
BanBridge - Retry Utilities
===========================

Exponential backoff policy and failure classification for backend calls.

Features:
- Configurable attempts, base delay and delay cap
- Exponential backoff: 250ms → 500ms → 1s → ... (capped)
- Additive jitter of up to 20% of the computed delay
- 429 responses wait at least one second
- Auth failures (401/403) are never retried
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import aiohttp


# Transport-level exceptions that should be retried
RETRYABLE_EXCEPTIONS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    ConnectionError,
    TimeoutError,
    OSError,
)

MAX_BACKOFF_EXPONENT = 10
JITTER_RATIO = 0.20
RATE_LIMIT_FLOOR_SECONDS = 1.0


# =============================================================================
# Response Classification
# =============================================================================

class ResponseAction(Enum):
    """What the request layer does with a received status code."""
    RETURN = "return"
    AUTH_FAILED = "auth_failed"
    RETRY = "retry"


def classify_status(status: int) -> ResponseAction:
    """
    Classify an HTTP status for the retry loop.

    401/403 are terminal auth failures, 5xx and 429 are retryable,
    everything else (2xx included) is returned as-is.
    """
    if status in (401, 403):
        return ResponseAction.AUTH_FAILED
    if status == 429 or 500 <= status <= 599:
        return ResponseAction.RETRY
    return ResponseAction.RETURN


# =============================================================================
# Backoff Policy
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """Retry limits for one backend client."""
    max_attempts: int = 4
    base_delay: float = 0.25
    max_delay: float = 5.0

    @classmethod
    def create(cls, max_attempts: int, base_delay: float, max_delay: float) -> "RetryPolicy":
        """Build a policy, clamping values to sane minimums."""
        attempts = max(1, int(max_attempts))
        base = max(0.05, float(base_delay))
        return cls(max_attempts=attempts, base_delay=base, max_delay=max(base, float(max_delay)))

    def base_backoff(self, attempt: int, rate_limited: bool = False) -> float:
        """Backoff before jitter for a 1-based attempt number."""
        exponent = min(MAX_BACKOFF_EXPONENT, max(0, attempt - 1))
        delay = min(self.base_delay * (2 ** exponent), self.max_delay)
        if rate_limited:
            delay = max(delay, RATE_LIMIT_FLOOR_SECONDS)
        return delay

    def compute_delay(
        self,
        attempt: int,
        rate_limited: bool = False,
        rng: Optional[random.Random] = None,
    ) -> float:
        """
        Delay to wait after a failed attempt.

        Args:
            attempt: 1-based attempt number that just failed
            rate_limited: True when the failure was an HTTP 429
            rng: Optional random source (for deterministic tests)

        Returns:
            Delay in seconds within [delay, 1.2 * delay]

        Formula: delay = min(base * 2^(attempt-1), max), plus jitter
        """
        delay = self.base_backoff(attempt, rate_limited)
        source = rng or random
        return delay + source.uniform(0, delay * JITTER_RATIO)


@dataclass
class RequestAttempt:
    """One try of a logical backend call."""
    operation: str
    attempt: int
    delay: float = 0.0


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    "RETRYABLE_EXCEPTIONS",
    "ResponseAction",
    "RetryPolicy",
    "RequestAttempt",
    "classify_status",
]
