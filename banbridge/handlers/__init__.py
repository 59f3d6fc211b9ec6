"""
BanBridge - Handlers Package
============================

Host event handlers and the shutdown sequence.
"""

from banbridge.handlers.events import PlayerEventHandlers, BAN_DISABLED_MESSAGE
from banbridge.handlers.shutdown import shutdown_handler

__all__ = [
    "PlayerEventHandlers",
    "BAN_DISABLED_MESSAGE",
    "shutdown_handler",
]
