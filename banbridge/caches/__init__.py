"""
BanBridge - Caches Module
=========================

Thread-safe local state mirrored from the backend.
"""

from banbridge.caches.ban_cache import BanCache, BanRecord, ApplyResult

__all__ = [
    "BanCache",
    "BanRecord",
    "ApplyResult",
]
