"""
BanBridge - Services Package
============================

Periodic jobs that talk to the backend.
"""

# Schedulers
from banbridge.services.schedulers import (
    IntervalScheduler,
    ShutdownToken,
)

# Jobs
from banbridge.services.ban_sync import BanSyncService
from banbridge.services.presence import PresenceService
from banbridge.services.stats_flush import StatsFlushService
from banbridge.services.metrics import MetricsService
from banbridge.services.commands import CommandProcessor, UnknownCommandError

__all__ = [
    # Schedulers
    "IntervalScheduler",
    "ShutdownToken",
    # Jobs
    "BanSyncService",
    "PresenceService",
    "StatsFlushService",
    "MetricsService",
    "CommandProcessor",
    "UnknownCommandError",
]
