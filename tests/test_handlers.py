from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from banbridge.api.models import BanChange, HealthResponse, PostResult
from banbridge.bridge import BanBridge
from banbridge.caches.ban_cache import BanCache
from banbridge.core.config import BridgeConfig
from banbridge.handlers.events import PlayerEventHandlers
from banbridge.host import HeadlessGameServer
from banbridge.stats.accumulator import StatsAccumulator
from banbridge.stats.bandwidth import BandwidthSample


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def cache(tmp_path) -> BanCache:
    cache = BanCache(tmp_path / "bans.json", clock=lambda: NOW)
    cache.apply_changes([
        BanChange(type="UPSERT", ban_id=7, subject_id="P1", reason="griefing",
                  expires_at="2024-06-02T00:00:00Z", updated_at="2024-06-01T10:00:00Z"),
    ])
    return cache


@pytest.fixture
def stats() -> StatsAccumulator:
    return StatsAccumulator()


@pytest.fixture
def events(cache, stats) -> PlayerEventHandlers:
    return PlayerEventHandlers(cache, stats)


# =============================================================================
# Player Events
# =============================================================================

def test_banned_login_is_denied_with_notice(events):
    assert events.on_login("P1", "Alex") == (
        "You are banned.\nReason: griefing\nExpires: 2024-06-02T00:00:00Z"
    )


def test_clean_login_is_allowed(events):
    assert events.on_login("P2", "Sam") is None
    assert events.on_login(None, "Nobody") is None


def test_join_records_name_without_deltas(events, stats):
    events.on_join("P2", "Sam")
    events.on_quit("P2")

    assert stats.last_known_name("P2") == "Sam"
    assert stats.drain_batch().is_empty()


def test_death_counts_victim_and_killer(events, stats):
    events.on_death("P2", "Sam", "P3", "Kim")
    events.on_death("P2", "Sam")

    deltas = {p.subject_id: p for p in stats.drain_batch().players}
    assert deltas["P2"].deaths_delta == 2
    assert deltas["P3"].kills_delta == 1
    assert deltas["P3"].deaths_delta == 0


@pytest.mark.parametrize("message, blocked", [
    ("/ban Sam", True),
    ("/BAN", True),
    ("  /ban  ", True),
    ("/banner", False),
    ("/kick Sam", False),
    (None, False),
])
def test_player_ban_command_blocked(events, message, blocked):
    assert events.on_player_command("Alex", message) is blocked


@pytest.mark.parametrize("command, blocked", [
    ("ban Sam cheating", True),
    ("Ban", True),
    ("bank", False),
    ("/ban Sam", False),
    ("", False),
])
def test_console_ban_command_blocked(events, command, blocked):
    assert events.on_console_command(None, command) is blocked


# =============================================================================
# Host
# =============================================================================

def test_headless_shutdown_runs_callback_once():
    callback = MagicMock()
    host = HeadlessGameServer(capacity=20, on_shutdown=callback)

    host.shutdown()
    host.shutdown()

    assert host.stopped.is_set()
    callback.assert_called_once_with()
    assert host.max_players() == 20
    assert host.online_players() == []
    assert host.find_online("P1") is None


# =============================================================================
# Bridge Lifecycle
# =============================================================================

@pytest.fixture
def config(tmp_path) -> BridgeConfig:
    return BridgeConfig(
        base_url="https://bans.example.net",
        server_token="secret",
        server_key="srv-1",
        bans_cache_file=tmp_path / "data" / "bans.json",
    )


@pytest.fixture
def client():
    api = MagicMock()
    api.server_key = "srv-1"
    api.health_check = AsyncMock(return_value=HealthResponse("ok", "2024-06-01T12:00:00Z", True))
    api.fetch_ban_changes = AsyncMock(return_value=None)
    api.post_presence = AsyncMock(return_value=True)
    api.post_stats_batch = AsyncMock(return_value=True)
    api.post_metrics = AsyncMock(return_value=PostResult(True, 200))
    api.poll_commands = AsyncMock(return_value=None)
    api.ack_command = AsyncMock(return_value=True)
    api.close = AsyncMock()
    return api


@pytest.fixture
def meter():
    stub = MagicMock()
    stub.sample_kbps.return_value = BandwidthSample(None, None)
    return stub


@pytest.mark.asyncio()
async def test_bridge_start_and_close(config, client, meter):
    host = HeadlessGameServer()
    bridge = BanBridge(config, host, client=client, meter=meter)

    await bridge.start()
    assert len(bridge.schedulers) == 6
    assert all(s.is_running for s in bridge.schedulers)
    client.health_check.assert_awaited_once()

    await bridge.close()
    await bridge.close()

    assert bridge.token.is_set
    assert not any(s.is_running for s in bridge.schedulers)
    assert config.bans_cache_file.exists()
    client.close.assert_awaited_once()

    offline = client.post_presence.await_args.args[0].to_dict()
    assert offline == {"snapshot": True, "players": []}


@pytest.mark.asyncio()
async def test_failed_health_check_is_not_fatal(config, client, meter):
    client.health_check.return_value = None
    bridge = BanBridge(config, HeadlessGameServer(), client=client, meter=meter)

    await bridge.start()
    assert len(bridge.schedulers) == 6
    await bridge.close()


@pytest.mark.asyncio()
async def test_host_shutdown_stops_bridge(config, client, meter):
    host = HeadlessGameServer()
    bridge = BanBridge(config, host, client=client, meter=meter)
    host.on_shutdown = bridge.request_shutdown

    await bridge.start()
    host.shutdown()
    await bridge.wait_until_stopped()

    assert bridge.token.is_set
    await bridge.close()
