"""
BanBridge - Interval Scheduler
==============================

Fixed-interval background task used by every periodic job.

Features:
- One asyncio task per job, so jobs run concurrently
- First run after an optional initial delay
- Bodies are skipped once the shutdown token is set
- A failing body is logged and the loop keeps going
"""

import asyncio
import threading
from typing import Any, Awaitable, Callable, Optional

from banbridge.core.logger import logger


# =============================================================================
# Shutdown Token
# =============================================================================

class ShutdownToken:
    """
    One-way cancellation flag shared by all periodic jobs.

    Backed by a threading.Event so host threads can trip it too.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def set(self) -> None:
        self._event.set()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()


# =============================================================================
# Interval Scheduler
# =============================================================================

class IntervalScheduler:
    """Runs an async callback every `interval` seconds until stopped."""

    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[Any]],
        interval: float,
        token: ShutdownToken,
        initial_delay: Optional[float] = None,
        log_emoji: str = "⏱️",
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            name: Job name for logging (e.g., "Ban Sync")
            callback: Async function run on each tick
            interval: Seconds between runs
            token: Shutdown token checked before each run
            initial_delay: Seconds before the first run (defaults to interval)
            log_emoji: Emoji for start/stop log lines
        """
        self.name: str = name
        self.callback = callback
        self.interval: float = interval
        self.token: ShutdownToken = token
        self.initial_delay: float = interval if initial_delay is None else initial_delay
        self.log_emoji: str = log_emoji

        self.task: Optional[asyncio.Task] = None
        self.runs: int = 0
        self._busy: bool = False

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    # -------------------------------------------------------------------------
    # Start/Stop Controls
    # -------------------------------------------------------------------------

    def start(self) -> bool:
        """
        Start the background loop.

        Returns:
            True if started, False if already running
        """
        if self.is_running:
            logger.warning("Scheduler Already Running", [
                ("Job", self.name),
            ])
            return False

        self.task = asyncio.create_task(self._loop(), name=f"banbridge:{self.name}")
        logger.tree("Scheduler Started", [
            ("Job", self.name),
            ("Interval", f"{self.interval:g}s"),
        ], emoji=self.log_emoji)
        return True

    async def stop(self, grace: float = 0.0) -> bool:
        """
        Stop the loop and wait for it to finish.

        Args:
            grace: Seconds a running body may take to finish before it is cancelled

        Returns:
            True if stopped, False if it was not running
        """
        if not self.is_running:
            return False

        if self._busy and grace > 0:
            try:
                await asyncio.wait_for(asyncio.shield(self.task), grace)
            except asyncio.TimeoutError:
                pass

        if not self.task.done():
            self.task.cancel()
        try:
            await self.task
        except asyncio.CancelledError:
            pass

        logger.debug("Scheduler Stopped", [
            ("Job", self.name),
            ("Runs", str(self.runs)),
        ])
        return True

    # -------------------------------------------------------------------------
    # Scheduling Loop
    # -------------------------------------------------------------------------

    async def run_once(self) -> bool:
        """
        Run the callback once unless shutdown was requested.

        Returns:
            True if the body ran (even if it failed), False if skipped
        """
        if self.token.is_set:
            return False
        self.runs += 1
        self._busy = True
        try:
            await self.callback()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Scheduled Job Failed", [
                ("Job", self.name),
                ("Error Type", type(e).__name__),
                ("Error", str(e)),
            ])
        finally:
            self._busy = False
        return True

    async def _loop(self) -> None:
        """
        DESIGN: Sleeps a fixed interval after each run, so a slow body
        (for example a call waiting on retries) delays its own next run
        instead of overlapping with it.
        """
        await asyncio.sleep(self.initial_delay)
        while not self.token.is_set:
            await self.run_once()
            if self.token.is_set:
                break
            await asyncio.sleep(self.interval)


__all__ = ["IntervalScheduler", "ShutdownToken"]
