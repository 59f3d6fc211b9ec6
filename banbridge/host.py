"""
BanBridge - Host Game Server Interface
======================================

The small surface of the game server the bridge depends on.

A plugin adapter implements GameServer on top of the real server API
and forwards player events to banbridge.handlers.events.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from banbridge.core.logger import logger


@dataclass(frozen=True)
class OnlinePlayer:
    """A connected player as seen by the host."""
    subject_id: str
    name: str
    ip: Optional[str] = None
    hwid: Optional[str] = None


# =============================================================================
# Game Server Interface
# =============================================================================

class GameServer(ABC):
    """Host capabilities used by the periodic jobs."""

    @abstractmethod
    def online_players(self) -> list[OnlinePlayer]:
        """Players currently connected."""

    @abstractmethod
    def max_players(self) -> int:
        """Configured capacity; negative if unknown."""

    @abstractmethod
    def ticks_per_second(self) -> Optional[float]:
        """Recent TPS, or None when the host cannot measure it."""

    @abstractmethod
    def kick(self, subject_id: str, message: str) -> bool:
        """Disconnect a player; returns True if they were online."""

    @abstractmethod
    def shutdown(self) -> None:
        """Stop the server. Must be safe to call more than once."""

    def find_online(self, subject_id: str) -> Optional[OnlinePlayer]:
        for player in self.online_players():
            if player.subject_id == subject_id:
                return player
        return None


# =============================================================================
# Headless Host
# =============================================================================

class HeadlessGameServer(GameServer):
    """
    Host with no players, for running the bridge as a standalone daemon.

    shutdown() sets `stopped` and invokes the registered callback once.
    """

    def __init__(self, capacity: int = 0, on_shutdown: Optional[Callable[[], None]] = None) -> None:
        self.capacity = capacity
        self.on_shutdown = on_shutdown
        self.stopped = threading.Event()

    def online_players(self) -> list[OnlinePlayer]:
        return []

    def max_players(self) -> int:
        return self.capacity

    def ticks_per_second(self) -> Optional[float]:
        return None

    def kick(self, subject_id: str, message: str) -> bool:
        return False

    def shutdown(self) -> None:
        if self.stopped.is_set():
            return
        self.stopped.set()
        logger.tree("Host Shutdown Requested", [
            ("Host", "headless"),
        ], emoji="🛑")
        if self.on_shutdown is not None:
            self.on_shutdown()


__all__ = ["GameServer", "OnlinePlayer", "HeadlessGameServer"]
