"""
BanBridge
=========

Keeps a game-server instance in sync with a remote ban/stats backend.
"""

__version__ = "1.0.0"
