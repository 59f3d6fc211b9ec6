"""
BanBridge - Stats Flush Service
===============================

Credits playtime to online players and flushes accumulated deltas.

A failed flush requeues the batch, so deltas are delivered at least once.
"""

from banbridge.api.client import BackendClient
from banbridge.core.config import PLAYTIME_TICK_SECONDS
from banbridge.core.logger import logger
from banbridge.host import GameServer
from banbridge.stats.accumulator import StatsAccumulator


class StatsFlushService:
    """Owns the playtime tick and the periodic batch upload."""

    def __init__(self, client: BackendClient, stats: StatsAccumulator, host: GameServer) -> None:
        self.client = client
        self.stats = stats
        self.host = host

    async def tick_playtime(self) -> int:
        """
        Add one tick of playtime to every online player.

        Returns:
            Number of players credited
        """
        credited = 0
        for player in self.host.online_players():
            if player.subject_id:
                self.stats.record_playtime(player.subject_id, player.name, PLAYTIME_TICK_SECONDS)
                credited += 1
        return credited

    async def flush(self) -> bool:
        """
        Drain the accumulator and post the batch.

        Returns:
            True if nothing was pending or the backend accepted the batch
        """
        batch = self.stats.drain_batch()
        if batch.is_empty():
            return True

        ok = await self.client.post_stats_batch(batch)
        if ok:
            logger.debug("Stats Flushed", [
                ("Players", str(len(batch.players))),
            ])
            return True

        self.stats.requeue(batch)
        logger.warning("Stats Flush Failed", [
            ("Players", str(len(batch.players))),
            ("Action", "Requeued, will retry next flush"),
        ])
        return False


__all__ = ["StatsFlushService"]
