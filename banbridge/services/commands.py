"""
BanBridge - Command Processor
=============================

Polls remotely issued commands and runs them at least once.

Protocol per command id: unseen -> executed -> acknowledged.
- Poll with sinceId=<watermark>; ids <= watermark are ignored client side
- Execute first, ack only after a successful execution
- Advance the watermark only after a successful ack

Supported commands:
- SHUTDOWN: stop the host server
- REFRESH_BANS: drop the ban cache and resync from the epoch
"""

import threading
from typing import Callable, Dict, Optional

from banbridge.api.client import BackendClient
from banbridge.api.models import ServerCommand
from banbridge.caches.ban_cache import BanCache
from banbridge.core.logger import logger
from banbridge.host import GameServer
from banbridge.utils.helpers import safe_inline


CommandHandler = Callable[[ServerCommand], None]


class UnknownCommandError(Exception):
    """Raised for a command type with no registered handler."""


class CommandProcessor:
    """
    Command poll/ack loop with a monotonic watermark.

    DESIGN: A failed ack leaves the watermark behind, so the command is
    redelivered and executed again. Handlers must be idempotent.
    """

    def __init__(self, client: BackendClient, cache: BanCache, host: GameServer) -> None:
        self.client = client
        self.cache = cache
        self.host = host
        self._lock = threading.Lock()
        self._watermark: int = 0
        self._handlers: Dict[str, CommandHandler] = {
            "SHUTDOWN": self._handle_shutdown,
            "REFRESH_BANS": self._handle_refresh_bans,
        }

    @property
    def watermark(self) -> int:
        with self._lock:
            return self._watermark

    def _advance(self, command_id: int) -> None:
        with self._lock:
            self._watermark = max(self._watermark, command_id)

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    def _handle_shutdown(self, command: ServerCommand) -> None:
        logger.warning("Backend Command", [
            ("ID", str(command.id)),
            ("Type", "SHUTDOWN"),
        ])
        self.host.shutdown()

    def _handle_refresh_bans(self, command: ServerCommand) -> None:
        logger.info("Backend Command", [
            ("ID", str(command.id)),
            ("Type", "REFRESH_BANS"),
        ])
        self.cache.reset_to_epoch()

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    @staticmethod
    def normalize_type(cmd_type: Optional[str]) -> str:
        return (cmd_type or "").strip().upper()

    def execute(self, command: ServerCommand) -> bool:
        """
        Run one command synchronously.

        Returns:
            True if it ran, False if unknown or the handler raised
        """
        cmd_type = self.normalize_type(command.cmd_type)
        try:
            handler = self._handlers.get(cmd_type)
            if handler is None:
                raise UnknownCommandError(cmd_type)
            handler(command)
            return True
        except UnknownCommandError:
            logger.warning("Unknown Backend Command", [
                ("ID", str(command.id)),
                ("Type", safe_inline(cmd_type)),
            ])
            return False
        except Exception as e:
            logger.error("Backend Command Failed", [
                ("ID", str(command.id)),
                ("Type", cmd_type),
                ("Error Type", type(e).__name__),
                ("Error", safe_inline(str(e))),
            ])
            return False

    async def poll_once(self) -> int:
        """
        Poll, execute and acknowledge new commands.

        Returns:
            Number of commands executed and acknowledged
        """
        response = await self.client.poll_commands(self.watermark)
        if response is None or not response.commands:
            return 0

        acknowledged = 0
        for command in response.commands:
            if command.id <= self.watermark:
                continue

            if not self.execute(command):
                continue

            if await self.client.ack_command(command.id):
                self._advance(command.id)
                acknowledged += 1
            else:
                logger.warning("Command Ack Failed", [
                    ("ID", str(command.id)),
                    ("Note", "Will retry next poll"),
                ])
        return acknowledged


__all__ = ["CommandProcessor", "UnknownCommandError"]
