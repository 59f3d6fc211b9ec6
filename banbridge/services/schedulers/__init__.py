"""
BanBridge - Schedulers Package
==============================

Fixed-interval background tasks for the periodic jobs.
"""

from banbridge.services.schedulers.base import IntervalScheduler, ShutdownToken

__all__ = [
    "IntervalScheduler",
    "ShutdownToken",
]
