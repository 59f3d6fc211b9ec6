"""
BanBridge - Bridge Orchestrator
===============================

Wires the sync core together and owns the periodic jobs.

ARCHITECTURE OVERVIEW:
======================

┌─────────────────────────────────────────────────────────────────┐
│                     BRIDGE LAYER (bridge.py)                    │
│  - Service construction and lifecycle management                │
│  - One IntervalScheduler task per periodic job                  │
└─────────────────────────────────────────────────────────────────┘
                              │
        ┌─────────────────────┼─────────────────────┐
        ▼                     ▼                     ▼
┌───────────────┐    ┌───────────────┐    ┌───────────────┐
│   HANDLERS    │    │   SERVICES    │    │    STATE      │
│ - events.py   │    │ - ban_sync    │    │ - BanCache    │
│ - shutdown.py │    │ - presence    │    │ - Stats       │
└───────────────┘    │ - stats_flush │    │   Accumulator │
                     │ - metrics     │    └───────────────┘
                     │ - commands    │
                     └───────────────┘
                              │
                              ▼
                    ┌───────────────────┐
                    │  BackendClient    │
                    │  (retry/backoff)  │
                    └───────────────────┘

KEY DESIGN DECISIONS:
=====================
1. Jobs are independent asyncio tasks; a slow or retrying call in one
   job never delays another.
2. Shared state uses threading locks, never held across an await, so
   host event callbacks can run on their own threads.
3. A single ShutdownToken stops every job body on its next tick.
"""

import asyncio
from typing import Optional

from banbridge.api.client import BackendClient
from banbridge.api.models import HealthResponse
from banbridge.caches.ban_cache import BanCache
from banbridge.core.config import BridgeConfig, PLAYTIME_TICK_SECONDS
from banbridge.core.logger import logger
from banbridge.handlers.events import PlayerEventHandlers
from banbridge.handlers.shutdown import shutdown_handler
from banbridge.host import GameServer
from banbridge.services.ban_sync import BanSyncService
from banbridge.services.commands import CommandProcessor
from banbridge.services.metrics import MetricsService
from banbridge.services.presence import PresenceService
from banbridge.services.schedulers import IntervalScheduler, ShutdownToken
from banbridge.services.stats_flush import StatsFlushService
from banbridge.stats.accumulator import StatsAccumulator
from banbridge.stats.bandwidth import BandwidthMeter, create_bandwidth_meter
from banbridge.utils.helpers import safe_inline


# =============================================================================
# BanBridge Class
# =============================================================================

class BanBridge:
    """
    Central orchestrator for one game-server instance.

    STARTUP ORDER:
    1. Load the persisted ban cache
    2. Select the bandwidth meter
    3. Backend health check (logged, never fatal)
    4. Start the periodic jobs
    """

    def __init__(
        self,
        config: BridgeConfig,
        host: GameServer,
        client: Optional[BackendClient] = None,
        meter: Optional[BandwidthMeter] = None,
    ) -> None:
        self.config: BridgeConfig = config
        self.host: GameServer = host
        self.token: ShutdownToken = ShutdownToken()

        self.client: BackendClient = client or BackendClient.from_config(config)
        self.cache: BanCache = BanCache(config.bans_cache_file)
        self.stats: StatsAccumulator = StatsAccumulator()

        self.ban_sync = BanSyncService(self.client, self.cache, host)
        self.presence = PresenceService(self.client, host)
        self.stats_flush = StatsFlushService(self.client, self.stats, host)
        self.metrics = MetricsService(self.client, host, meter)
        self.commands = CommandProcessor(self.client, self.cache, host)
        self.events = PlayerEventHandlers(self.cache, self.stats)

        self.schedulers: list[IntervalScheduler] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopped: asyncio.Event = asyncio.Event()
        self._shutdown_complete: bool = False

    # =========================================================================
    # Startup
    # =========================================================================

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()

        self.cache.load()

        if self.metrics.meter is None:
            self.metrics.meter = create_bandwidth_meter(self.config.net_interface)

        await self.check_health()

        self.schedulers = self._build_schedulers()
        for scheduler in self.schedulers:
            scheduler.start()

        logger.tree("BanBridge Started", [
            ("Backend", safe_inline(self.config.base_url)),
            ("Server Key", safe_inline(self.config.server_key)),
            ("Active Bans", str(self.cache.size)),
            ("Cursor", self.cache.cursor),
        ], emoji="✅")

    def _build_schedulers(self) -> list[IntervalScheduler]:
        config = self.config
        return [
            IntervalScheduler("Ban Sync", self.ban_sync.sync_once,
                              config.bans_poll_seconds, self.token, initial_delay=0, log_emoji="🔨"),
            IntervalScheduler("Presence", self.presence.push_snapshot,
                              config.presence_seconds, self.token, initial_delay=0, log_emoji="👥"),
            IntervalScheduler("Playtime Tick", self.stats_flush.tick_playtime,
                              PLAYTIME_TICK_SECONDS, self.token, log_emoji="⏱️"),
            IntervalScheduler("Stats Flush", self.stats_flush.flush,
                              config.stats_flush_seconds, self.token, log_emoji="📊"),
            IntervalScheduler("Metrics", self.metrics.push,
                              config.metrics_seconds, self.token, initial_delay=0, log_emoji="📈"),
            IntervalScheduler("Commands", self.commands.poll_once,
                              config.commands_poll_seconds, self.token, initial_delay=0, log_emoji="📡"),
        ]

    async def check_health(self) -> Optional[HealthResponse]:
        health = await self.client.health_check()
        if health is None:
            logger.error("Backend Health Check Failed", [
                ("Base URL", safe_inline(self.config.base_url)),
            ])
            return None

        if health.db_ok is None:
            db_state = "unknown"
        else:
            db_state = "OK" if health.db_ok else "FAIL"

        logger.success("Backend Reachable", [
            ("Status", safe_inline(health.status)),
            ("Server Time", safe_inline(health.server_time)),
            ("Database", db_state),
        ])
        return health

    # =========================================================================
    # Shutdown
    # =========================================================================

    def request_shutdown(self) -> None:
        """
        Ask the bridge to stop. Safe to call from any thread or signal handler.

        Job bodies are skipped from now on; wait_until_stopped() returns.
        """
        self.token.set()
        if self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._stopped.set)

    async def wait_until_stopped(self) -> None:
        await self._stopped.wait()

    async def close(self) -> None:
        """Run the shutdown sequence once."""
        if self._shutdown_complete:
            return
        self._shutdown_complete = True
        await shutdown_handler(self)


__all__ = ["BanBridge"]
