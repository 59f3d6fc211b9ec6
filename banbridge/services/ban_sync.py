"""
BanBridge - Ban Sync Service
============================

Pulls the ban change feed into the local cache and enforces new bans.

Each run:
1. GET /api/server/bans/changes?since=<cursor>
2. Merge into the BanCache (idempotent)
3. Persist only if the mapping changed
4. Log every newly banned subject and kick the ones online
"""

from typing import Optional

from banbridge.api.client import BackendClient
from banbridge.api.models import BanPayload, BanReport
from banbridge.caches.ban_cache import ApplyResult, BanCache, BanRecord
from banbridge.core.logger import logger
from banbridge.host import GameServer, OnlinePlayer
from banbridge.utils.helpers import format_instant, safe_inline, utcnow


class BanSyncService:
    """Keeps the local ban cache converged with the backend."""

    def __init__(self, client: BackendClient, cache: BanCache, host: GameServer) -> None:
        self.client = client
        self.cache = cache
        self.host = host

    async def sync_once(self) -> Optional[ApplyResult]:
        """
        Run one sync cycle.

        Returns:
            The merge result, or None if the fetch failed (cycle skipped)
        """
        response = await self.client.fetch_ban_changes(self.cache.cursor)
        if response is None:
            return None

        result = self.cache.apply_changes(response.changes)
        if not result.changed:
            return result

        self.cache.persist()

        for record in result.newly_banned:
            self._enforce(record)

        logger.debug("Ban Sync Applied", [
            ("Changes", str(len(response.changes))),
            ("New Bans", str(len(result.newly_banned))),
            ("Active", str(self.cache.size)),
            ("Cursor", self.cache.cursor),
        ])
        return result

    def _enforce(self, record: BanRecord) -> None:
        """Log a new ban and disconnect the subject if online."""
        online = self.host.find_online(record.subject_id)

        logger.warning("New Ban", [
            ("Ban ID", str(record.ban_id)),
            ("Subject", record.subject_id),
            ("Player", online.name if online else "n/a"),
            ("Reason", safe_inline(record.reason)),
            ("Expires", format_instant(record.expires_at) or "permanent"),
            ("Updated", format_instant(record.updated_at) or "n/a"),
        ])

        if online is None:
            return

        try:
            kicked = self.host.kick(record.subject_id, BanCache.build_notice(record))
        except Exception as e:
            logger.error("Failed to Kick Banned Player", [
                ("Subject", record.subject_id),
                ("Player", online.name),
                ("Error", str(e)),
            ])
            return

        if kicked:
            logger.tree("Banned Player Kicked", [
                ("Subject", record.subject_id),
                ("Player", online.name),
                ("Ban ID", str(record.ban_id)),
            ], emoji="🔨")

    # -------------------------------------------------------------------------
    # Local Ban Report
    # -------------------------------------------------------------------------

    async def report_local_ban(
        self,
        player: OnlinePlayer,
        reason: Optional[str],
        duration_seconds: Optional[int] = None,
    ) -> bool:
        """
        Tell the backend about a ban enforced locally.

        Returns:
            True if the backend accepted the report
        """
        if not player.subject_id:
            return False

        report = BanReport(
            server_key=self.client.server_key,
            ban=BanPayload(
                subject_id=player.subject_id,
                reason=reason,
                duration_seconds=duration_seconds,
                ip=player.ip,
                hwid=player.hwid,
                executed_at_iso=format_instant(utcnow()),
            ),
        )

        ok = await self.client.report_ban(report)
        if not ok:
            logger.warning("Failed to Report Ban", [
                ("Subject", player.subject_id),
                ("Player", player.name),
            ])
        return ok


__all__ = ["BanSyncService"]
