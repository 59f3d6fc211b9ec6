"""
BanBridge - Shutdown Handler
============================

Graceful shutdown and cleanup logic.

Order:
1. Trip the shutdown token (periodic bodies stop running)
2. Let in-flight job bodies finish, then stop the schedulers
3. Best-effort empty presence snapshot (everyone offline)
4. Final ban cache persist
5. Close the HTTP session
"""

import asyncio
from typing import TYPE_CHECKING, Any, List, Tuple

from banbridge.core.config import SHUTDOWN_TIMEOUT
from banbridge.core.logger import logger

if TYPE_CHECKING:
    from banbridge.bridge import BanBridge


# =============================================================================
# Constants
# =============================================================================

SCHEDULER_GRACE_SECONDS = 5.0  # Time a running job body gets to finish
OFFLINE_PRESENCE_TIMEOUT = 5.0


# =============================================================================
# Shutdown Handler
# =============================================================================

async def _safe_cleanup(name: str, cleanup_coro: Any) -> bool:
    """
    Execute a cleanup coroutine with error handling.

    Args:
        name: Name of the cleanup task for logging
        cleanup_coro: Coroutine to execute

    Returns:
        True if cleanup succeeded, False otherwise
    """
    try:
        await cleanup_coro
        logger.debug("Cleanup Complete", [
            ("Task", name),
        ])
        return True
    except asyncio.CancelledError:
        logger.debug("Cleanup Cancelled", [
            ("Task", name),
        ])
        return True
    except asyncio.TimeoutError:
        logger.warning("Cleanup Timed Out", [
            ("Task", name),
        ])
        return False
    except Exception as e:
        logger.warning("Cleanup Failed", [
            ("Task", name),
            ("Error Type", type(e).__name__),
            ("Error", str(e)),
        ])
        return False


async def _send_offline_presence(bridge: "BanBridge") -> None:
    """Empty snapshot so the backend marks every player offline at once."""
    async with asyncio.timeout(OFFLINE_PRESENCE_TIMEOUT):
        await bridge.presence.push_offline()


async def shutdown_handler(bridge: "BanBridge") -> None:
    """
    Cleanup when the bridge is shutting down.

    Args:
        bridge: The BanBridge instance

    DESIGN: Each step is wrapped so one failure does not prevent the others.
    Nothing is retried here; the process is going away.
    """
    bridge.token.set()

    logger.info("Shutting Down BanBridge", [
        ("Timeout", f"{SHUTDOWN_TIMEOUT}s"),
    ])

    cleanup_tasks: List[Tuple[str, Any]] = [
        (f"Scheduler ({scheduler.name})", scheduler.stop(grace=SCHEDULER_GRACE_SECONDS))
        for scheduler in bridge.schedulers
    ]

    if cleanup_tasks:
        try:
            async with asyncio.timeout(SHUTDOWN_TIMEOUT):
                results = await asyncio.gather(
                    *[_safe_cleanup(name, coro) for name, coro in cleanup_tasks],
                    return_exceptions=True
                )

                successful = sum(1 for r in results if r is True)
                logger.info("Schedulers Stopped", [
                    ("Successful", str(successful)),
                    ("Failed", str(len(results) - successful)),
                ])

        except asyncio.TimeoutError:
            logger.warning("Scheduler Shutdown Timed Out", [
                ("Timeout", f"{SHUTDOWN_TIMEOUT}s"),
                ("Note", "Some jobs may not have completed"),
            ])

    try:
        await _send_offline_presence(bridge)
    except Exception as e:
        logger.debug("Offline Presence Failed", [
            ("Error", str(e)),
        ])

    try:
        bridge.cache.persist()
    except Exception as e:
        logger.debug("Final Ban Cache Save Failed", [
            ("Error", str(e)),
        ])

    await _safe_cleanup("Backend Client", bridge.client.close())

    logger.tree("BanBridge Shutdown Complete", [
        ("Status", "All jobs stopped"),
        ("Active Bans Saved", str(bridge.cache.size)),
    ], emoji="👋")


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["shutdown_handler"]
