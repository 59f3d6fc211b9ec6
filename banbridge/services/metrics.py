"""
BanBridge - Metrics Service
===========================

Collects host telemetry, sanitizes it and posts it to the backend.

Sources:
- Memory: psutil process RSS (used) and system total memory (max)
- CPU: psutil system-wide load as a 0..1 fraction
- TPS and player counts: the host GameServer
- Network: the bandwidth meter chosen at startup (optional)

Anything that cannot be measured is sent as null.
"""

from typing import Optional

import psutil

from banbridge.api.client import BackendClient
from banbridge.api.models import PostResult, ServerMetrics
from banbridge.core.logger import logger
from banbridge.host import GameServer
from banbridge.stats.bandwidth import BandwidthMeter
from banbridge.stats.sanitize import (
    normalize_kbps,
    players_max,
    players_online,
    sanitize_cpu_load,
    sanitize_tps,
    to_max_mb,
    to_used_mb,
)


def _fmt(value: Optional[float]) -> str:
    return "null" if value is None else f"{value:.2f}"


class MetricsService:
    """Periodic metrics push; disabled while the server key is empty."""

    def __init__(
        self,
        client: BackendClient,
        host: GameServer,
        meter: Optional[BandwidthMeter] = None,
    ) -> None:
        self.client = client
        self.host = host
        self.meter = meter
        self._process = psutil.Process()
        self._warned_missing_key = False

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    def _memory(self) -> tuple[Optional[int], Optional[int]]:
        try:
            used = self._process.memory_info().rss
        except (OSError, psutil.Error):
            used = None
        try:
            total = psutil.virtual_memory().total
        except (OSError, psutil.Error):
            total = None
        return to_used_mb(used), to_max_mb(total)

    @staticmethod
    def _cpu_load() -> Optional[float]:
        try:
            return sanitize_cpu_load(psutil.cpu_percent(interval=None) / 100.0)
        except (OSError, psutil.Error):
            return None

    def _tps(self) -> Optional[float]:
        try:
            return sanitize_tps(self.host.ticks_per_second())
        except Exception:
            return None

    def _bandwidth(self) -> tuple[Optional[float], Optional[float]]:
        if self.meter is None:
            return None, None
        try:
            sample = self.meter.sample_kbps()
        except Exception:
            return None, None
        return normalize_kbps(sample.rx_kbps), normalize_kbps(sample.tx_kbps)

    def collect(self) -> ServerMetrics:
        ram_used, ram_max = self._memory()
        rx, tx = self._bandwidth()
        return ServerMetrics(
            server_key=self.client.server_key,
            players_online=players_online(len(self.host.online_players())),
            ram_used_mb=ram_used,
            ram_max_mb=ram_max,
            cpu_load=self._cpu_load(),
            players_max=players_max(self.host.max_players()),
            tps=self._tps(),
            rx_kbps=rx,
            tx_kbps=tx,
        )

    # -------------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------------

    async def push(self) -> Optional[PostResult]:
        """
        Collect and post one metrics sample.

        Returns:
            The post result, or None if skipped for a missing server key
        """
        if not self.client.server_key:
            if not self._warned_missing_key:
                self._warned_missing_key = True
                logger.error("Metrics Disabled", [
                    ("Reason", "BANBRIDGE_SERVER_KEY is missing or empty"),
                    ("Note", "Must be set and unique per instance"),
                ])
            return None

        metrics = self.collect()
        result = await self.client.post_metrics(metrics)

        if result.ok:
            logger.debug("Metrics Sent", [
                ("Server Key", metrics.server_key),
                ("Players Online", str(metrics.players_online)),
                ("TPS", _fmt(metrics.tps)),
                ("RX kbps", _fmt(metrics.rx_kbps)),
                ("TX kbps", _fmt(metrics.tx_kbps)),
            ])
        else:
            logger.warning("Metrics Push Failed", [
                ("Status", "n/a" if result.status_code is None else str(result.status_code)),
                ("Server Key", metrics.server_key),
            ])
        return result


__all__ = ["MetricsService"]
