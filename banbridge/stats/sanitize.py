"""
BanBridge - Telemetry Sanitizer
===============================

Pure functions that turn raw observations into values safe to transmit.

Rule: anything unmeasurable becomes None, never a negative sentinel.
The backend reads None as "not measured" and 0 as "measured as zero".
"""

import math
from typing import Optional


# =============================================================================
# Constants
# =============================================================================

BYTES_PER_MB = 1024 * 1024
INT_MAX = 2**31 - 1

CPU_LOAD_CEILING = 1.2  # tolerate momentary overshoot above 1.0
TPS_CEILING = 25.0
KBPS_CEILING = 100_000_000.0  # 100 Gbit/s in kbit/s


def _is_negative(value: float) -> bool:
    """True for negative numbers, including -0.0."""
    return value < 0.0 or math.copysign(1.0, value) < 0.0


def _is_unmeasurable(value: Optional[float]) -> bool:
    return value is None or math.isnan(value) or math.isinf(value)


# =============================================================================
# Memory
# =============================================================================

def to_used_mb(used_bytes: Optional[int]) -> Optional[int]:
    """Used memory in whole megabytes; None for negative input."""
    if used_bytes is None or used_bytes < 0:
        return None
    return min(int(used_bytes) // BYTES_PER_MB, INT_MAX)


def to_max_mb(max_bytes: Optional[int]) -> Optional[int]:
    """Memory capacity in whole megabytes; None unless at least 1 MB."""
    if max_bytes is None or max_bytes <= 0:
        return None
    mb = int(max_bytes) // BYTES_PER_MB
    if mb <= 0:
        return None
    return min(mb, INT_MAX)


# =============================================================================
# Load & Rates
# =============================================================================

def sanitize_cpu_load(value: Optional[float]) -> Optional[float]:
    """CPU load as a 0..1 fraction, clamped to 1.2."""
    if _is_unmeasurable(value) or value < 0.0:
        return None
    return min(float(value), CPU_LOAD_CEILING)


def sanitize_tps(value: Optional[float]) -> Optional[float]:
    """Ticks per second, clamped to 25."""
    if _is_unmeasurable(value) or value < 0.0:
        return None
    return min(float(value), TPS_CEILING)


def normalize_kbps(value: Optional[float]) -> Optional[float]:
    """
    Throughput in kbit/s, clamped to 1e8 and rounded half-up to 2 decimals.

    Example:
        normalize_kbps(150.555)  -> 150.55 or 150.56 (float representation)
        normalize_kbps(-0.0)     -> None
        normalize_kbps(None)     -> None
    """
    if _is_unmeasurable(value) or _is_negative(value):
        return None
    clamped = min(float(value), KBPS_CEILING)
    return math.floor(clamped * 100.0 + 0.5) / 100.0


# =============================================================================
# Player Counts
# =============================================================================

def players_online(count: Optional[int]) -> int:
    """Online players, never negative and never None."""
    if count is None:
        return 0
    return max(0, int(count))


def players_max(capacity: Optional[int]) -> Optional[int]:
    """Max players; None only when the host reports a negative capacity."""
    if capacity is None or capacity < 0:
        return None
    return int(capacity)


__all__ = [
    "to_used_mb",
    "to_max_mb",
    "sanitize_cpu_load",
    "sanitize_tps",
    "normalize_kbps",
    "players_online",
    "players_max",
]
