"""
BanBridge - Presence Service
============================

Snapshot-mode presence heartbeat.

Every report lists all online players; anyone missing from the list is
marked offline by the backend, so an empty report is still sent.
"""

from banbridge.api.client import BackendClient
from banbridge.api.models import PlayerPresence, PresenceReport
from banbridge.core.logger import logger
from banbridge.host import GameServer


class PresenceService:
    """Pushes the online player list to the backend."""

    def __init__(self, client: BackendClient, host: GameServer) -> None:
        self.client = client
        self.host = host

    def build_snapshot(self) -> PresenceReport:
        players = [
            PlayerPresence(
                subject_id=p.subject_id,
                name=p.name,
                online=True,
                ip=p.ip,
                hwid=p.hwid,
            )
            for p in self.host.online_players()
            if p.subject_id
        ]
        return PresenceReport(players=players, snapshot=True)

    async def push_snapshot(self) -> bool:
        report = self.build_snapshot()
        ok = await self.client.post_presence(report)
        if not ok:
            logger.warning("Presence Push Failed", [
                ("Snapshot", "true"),
                ("Players", str(len(report.players))),
            ])
        return ok

    async def push_offline(self) -> bool:
        """Empty snapshot: tells the backend every player left."""
        return await self.client.post_presence(PresenceReport(players=[], snapshot=True))


__all__ = ["PresenceService"]
