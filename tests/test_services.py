import asyncio
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from banbridge.api.models import (
    BanChange,
    BanChangesResponse,
    PlayerDelta,
    PostResult,
    StatsBatch,
)
from banbridge.caches.ban_cache import BanCache
from banbridge.host import GameServer, OnlinePlayer
from banbridge.services.ban_sync import BanSyncService
from banbridge.services.metrics import MetricsService
from banbridge.services.presence import PresenceService
from banbridge.services.schedulers import IntervalScheduler, ShutdownToken
from banbridge.services.stats_flush import StatsFlushService
from banbridge.stats.accumulator import StatsAccumulator
from banbridge.stats.bandwidth import BandwidthSample


class FakeGameServer(GameServer):
    def __init__(self, players: Optional[list[OnlinePlayer]] = None, tps: Optional[float] = 20.0) -> None:
        self.players = players or []
        self.tps = tps
        self.kicked: list[tuple[str, str]] = []
        self.shutdowns = 0

    def online_players(self) -> list[OnlinePlayer]:
        return list(self.players)

    def max_players(self) -> int:
        return 50

    def ticks_per_second(self) -> Optional[float]:
        return self.tps

    def kick(self, subject_id: str, message: str) -> bool:
        self.kicked.append((subject_id, message))
        return True

    def shutdown(self) -> None:
        self.shutdowns += 1


ALEX = OnlinePlayer("P1", "Alex", ip="10.0.0.5", hwid="hw-1")
SAM = OnlinePlayer("P2", "Sam")


@pytest.fixture
def client():
    api = MagicMock()
    api.server_key = "srv-1"
    api.fetch_ban_changes = AsyncMock(return_value=None)
    api.post_presence = AsyncMock(return_value=True)
    api.post_stats_batch = AsyncMock(return_value=True)
    api.post_metrics = AsyncMock(return_value=PostResult(True, 200))
    api.report_ban = AsyncMock(return_value=True)
    return api


def feed(*changes: dict) -> BanChangesResponse:
    return BanChangesResponse(
        server_time="2024-01-02T00:00:00Z",
        changes=[BanChange.from_dict(c) for c in changes],
    )


# =============================================================================
# Ban Sync
# =============================================================================

@pytest.mark.asyncio()
async def test_sync_applies_persists_and_kicks_online_player(tmp_path, client):
    host = FakeGameServer([ALEX, SAM])
    cache = BanCache(tmp_path / "bans.json")
    client.fetch_ban_changes.return_value = feed(
        {"banId": 1, "subjectId": "P1", "reason": "xray", "updatedAt": "2024-01-01T00:00:00Z"},
        {"banId": 2, "subjectId": "P404", "updatedAt": "2024-01-01T00:00:00Z"},
    )

    result = await BanSyncService(client, cache, host).sync_once()

    assert result.changed
    client.fetch_ban_changes.assert_awaited_once_with("1970-01-01T00:00:00Z")
    assert cache.file.exists()
    assert host.kicked == [("P1", "You are banned.\nReason: xray\nDuration: Permanent")]


@pytest.mark.asyncio()
async def test_sync_does_not_kick_subject_revoked_in_same_feed(tmp_path, client):
    host = FakeGameServer([ALEX])
    cache = BanCache(tmp_path / "bans.json")
    client.fetch_ban_changes.return_value = feed(
        {"type": "UPSERT", "banId": 2, "subjectId": "P1", "updatedAt": "2024-01-02T00:00:00Z"},
        {"type": "REVOKE", "banId": 1, "subjectId": "P1",
         "revokedAt": "2024-01-01T12:00:00Z", "updatedAt": "2024-01-01T12:00:00Z"},
    )
    service = BanSyncService(client, cache, host)

    first = await service.sync_once()
    second = await service.sync_once()

    assert first.newly_banned == []
    assert second.changed is False
    assert cache.find_active("P1") is None
    assert host.kicked == []


@pytest.mark.asyncio()
async def test_sync_without_changes_does_not_persist(tmp_path, client):
    cache = BanCache(tmp_path / "bans.json")
    client.fetch_ban_changes.return_value = feed()

    result = await BanSyncService(client, cache, FakeGameServer()).sync_once()

    assert result.changed is False
    assert not cache.file.exists()


@pytest.mark.asyncio()
async def test_sync_skips_cycle_on_fetch_failure(tmp_path, client):
    cache = BanCache(tmp_path / "bans.json")

    assert await BanSyncService(client, cache, FakeGameServer()).sync_once() is None
    assert cache.size == 0


@pytest.mark.asyncio()
async def test_report_local_ban(tmp_path, client):
    service = BanSyncService(client, BanCache(tmp_path / "bans.json"), FakeGameServer())

    assert await service.report_local_ban(ALEX, "fly hacks", 3600) is True

    report = client.report_ban.await_args.args[0].to_dict()
    assert report["serverKey"] == "srv-1"
    assert report["ban"]["subjectId"] == "P1"
    assert report["ban"]["durationSeconds"] == 3600
    assert report["ban"]["ip"] == "10.0.0.5"
    assert report["ban"]["hwid"] == "hw-1"
    assert report["ban"]["executedAtIso"].endswith("Z")


# =============================================================================
# Presence
# =============================================================================

@pytest.mark.asyncio()
async def test_presence_snapshot_lists_online_players(client):
    await PresenceService(client, FakeGameServer([ALEX])).push_snapshot()

    body = client.post_presence.await_args.args[0].to_dict()
    assert body == {"snapshot": True, "players": [{
        "subjectId": "P1", "name": "Alex", "online": True, "ip": "10.0.0.5", "hwid": "hw-1",
    }]}


@pytest.mark.asyncio()
async def test_presence_is_sent_even_when_empty(client):
    assert await PresenceService(client, FakeGameServer()).push_snapshot() is True

    assert client.post_presence.await_args.args[0].to_dict() == {"snapshot": True, "players": []}


# =============================================================================
# Stats Flush
# =============================================================================

@pytest.mark.asyncio()
async def test_playtime_tick_credits_online_players(client):
    stats = StatsAccumulator()
    service = StatsFlushService(client, stats, FakeGameServer([ALEX, SAM]))

    assert await service.tick_playtime() == 2

    assert {p.subject_id: p.playtime_delta_seconds for p in stats.drain_batch().players} == {"P1": 60, "P2": 60}


@pytest.mark.asyncio()
async def test_flush_skips_empty_batch(client):
    service = StatsFlushService(client, StatsAccumulator(), FakeGameServer())

    assert await service.flush() is True
    client.post_stats_batch.assert_not_awaited()


@pytest.mark.asyncio()
async def test_failed_flush_requeues_batch(client):
    stats = StatsAccumulator()
    stats.record_kill("P1", "Alex", 2)
    client.post_stats_batch.return_value = False
    service = StatsFlushService(client, stats, FakeGameServer())

    assert await service.flush() is False

    stats.record_kill("P1", "Alex", 1)
    assert stats.drain_batch() == StatsBatch(players=[PlayerDelta("P1", "Alex", 0, 3, 0)])


# =============================================================================
# Metrics
# =============================================================================

@pytest.mark.asyncio()
async def test_metrics_skipped_without_server_key(client):
    client.server_key = ""
    service = MetricsService(client, FakeGameServer())

    assert await service.push() is None
    assert await service.push() is None
    client.post_metrics.assert_not_awaited()


@pytest.mark.asyncio()
async def test_metrics_are_collected_and_sanitized(client):
    meter = MagicMock()
    meter.sample_kbps.return_value = BandwidthSample(150.555, -0.0)
    service = MetricsService(client, FakeGameServer([ALEX], tps=40.0), meter)

    result = await service.push()

    assert result.ok
    metrics = client.post_metrics.await_args.args[0]
    assert metrics.server_key == "srv-1"
    assert metrics.players_online == 1
    assert metrics.players_max == 50
    assert metrics.tps == 25.0
    assert metrics.rx_kbps in (150.55, 150.56)
    assert metrics.tx_kbps is None
    assert metrics.ram_used_mb is not None and metrics.ram_used_mb >= 0
    assert metrics.ram_max_mb is None or metrics.ram_max_mb > 0


@pytest.mark.asyncio()
async def test_metrics_without_meter_send_null_bandwidth(client):
    metrics = MetricsService(client, FakeGameServer(tps=None)).collect()

    assert metrics.rx_kbps is None
    assert metrics.tx_kbps is None
    assert metrics.tps is None
    assert metrics.players_online == 0


# =============================================================================
# Scheduler
# =============================================================================

@pytest.mark.asyncio()
async def test_scheduler_skips_body_after_shutdown():
    token = ShutdownToken()
    callback = AsyncMock()
    scheduler = IntervalScheduler("Test", callback, 10, token)

    assert await scheduler.run_once() is True
    token.set()
    assert await scheduler.run_once() is False
    callback.assert_awaited_once()


@pytest.mark.asyncio()
async def test_scheduler_survives_failing_body():
    token = ShutdownToken()
    callback = AsyncMock(side_effect=RuntimeError("boom"))
    scheduler = IntervalScheduler("Test", callback, 10, token)

    assert await scheduler.run_once() is True


@pytest.mark.asyncio()
async def test_scheduler_runs_repeatedly_until_stopped():
    token = ShutdownToken()
    ran = asyncio.Event()
    count = 0

    async def body() -> None:
        nonlocal count
        count += 1
        if count >= 3:
            ran.set()

    scheduler = IntervalScheduler("Test", body, 0.01, token, initial_delay=0)
    assert scheduler.start() is True
    assert scheduler.start() is False

    await asyncio.wait_for(ran.wait(), timeout=2.0)
    assert await scheduler.stop() is True
    assert not scheduler.is_running
    assert count >= 3
