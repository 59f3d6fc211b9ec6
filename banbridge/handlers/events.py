"""
BanBridge - Player Event Handlers
=================================

Entry points a host adapter calls from its event callbacks.

The adapter extracts identifiers and names from its own event objects;
these handlers only see plain strings, so they are safe to call from any
thread.
"""

from typing import Optional

from banbridge.caches.ban_cache import BanCache
from banbridge.core.logger import logger
from banbridge.stats.accumulator import StatsAccumulator
from banbridge.utils.helpers import safe_inline


BLOCKED_PLAYER_COMMAND = "/ban"
BLOCKED_CONSOLE_COMMAND = "ban"
BAN_DISABLED_MESSAGE = "Banning is disabled here. Please use the website."


def _is_command(text: Optional[str], command: str) -> bool:
    lowered = (text or "").strip().lower()
    return lowered == command or lowered.startswith(command + " ")


class PlayerEventHandlers:
    """Ban enforcement at login, stats recording and /ban blocking."""

    def __init__(self, cache: BanCache, stats: StatsAccumulator) -> None:
        self.cache = cache
        self.stats = stats

    # -------------------------------------------------------------------------
    # Login / Join / Quit
    # -------------------------------------------------------------------------

    def on_login(self, subject_id: Optional[str], name: str) -> Optional[str]:
        """
        Check a connecting player against the ban cache.

        Returns:
            Kick notice if the login must be denied, None to allow it
        """
        record = self.cache.find_active(subject_id)
        if record is None:
            return None

        logger.warning("Login Blocked", [
            ("Player", name),
            ("Subject", subject_id),
            ("Ban ID", str(record.ban_id)),
        ])
        return BanCache.build_notice(record)

    def on_join(self, subject_id: Optional[str], name: str) -> None:
        self.stats.mark_online(subject_id, name)

    def on_quit(self, subject_id: Optional[str]) -> None:
        self.stats.mark_offline(subject_id)

    # -------------------------------------------------------------------------
    # Combat
    # -------------------------------------------------------------------------

    def on_death(
        self,
        victim_id: Optional[str],
        victim_name: str,
        killer_id: Optional[str] = None,
        killer_name: Optional[str] = None,
    ) -> None:
        self.stats.record_death(victim_id, victim_name, 1)
        if killer_id:
            self.stats.record_kill(killer_id, killer_name, 1)

    # -------------------------------------------------------------------------
    # Command Blocking
    # -------------------------------------------------------------------------

    def on_player_command(self, name: str, message: Optional[str]) -> bool:
        """
        Returns:
            True if the command must be cancelled (reply with BAN_DISABLED_MESSAGE)
        """
        if not _is_command(message, BLOCKED_PLAYER_COMMAND):
            return False
        logger.warning("Blocked /ban", [
            ("Player", name),
            ("Command", safe_inline(message)),
        ])
        return True

    def on_console_command(self, sender: Optional[str], command: Optional[str]) -> bool:
        if not _is_command(command, BLOCKED_CONSOLE_COMMAND):
            return False
        logger.warning("Blocked Console Ban", [
            ("Sender", sender or "CONSOLE"),
            ("Command", safe_inline(command)),
        ])
        return True


__all__ = ["PlayerEventHandlers", "BAN_DISABLED_MESSAGE"]
