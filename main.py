"""
BanBridge - Main Entry Point
============================

Standalone daemon entry point with single-instance enforcement and
graceful shutdown.

This module handles:
- Single-instance lock acquisition (prevents two bridges sharing a cache file)
- Environment configuration loading
- SIGTERM/SIGHUP graceful shutdown
- Running the bridge against a headless host until stopped

Usage:
    python main.py

    Or with a process manager:
    nohup python main.py > /dev/null 2>&1 &

Environment Variables:
    BANBRIDGE_BASE_URL: Required. Backend root URL.
    BANBRIDGE_SERVER_TOKEN: Required. Bearer credential.
    BANBRIDGE_SERVER_KEY: Unique key of this instance (metrics, commands).
"""

import os
import sys
import fcntl
import signal
import asyncio
import tempfile
from pathlib import Path
from typing import NoReturn, Optional

# CRITICAL: Load environment variables BEFORE importing any local modules
# that read from environment at import time (e.g., logger.py)
from dotenv import load_dotenv
load_dotenv()

from banbridge.core.logger import logger
from banbridge.core.config import BridgeConfig, ConfigValidationError, validate_and_log_config
from banbridge.bridge import BanBridge
from banbridge.host import HeadlessGameServer


# =============================================================================
# Global State for Signal Handling
# =============================================================================

_bridge_instance: Optional[BanBridge] = None


# =============================================================================
# Constants
# =============================================================================

LOCK_FILE_PATH = Path(tempfile.gettempdir()) / "banbridge.lock"
"""Path to the lock file used for single-instance enforcement."""


# =============================================================================
# Single Instance Lock
# =============================================================================

def acquire_lock() -> int:
    """
    Acquire an exclusive file lock to ensure only one bridge instance runs.

    Uses fcntl.flock() for atomic lock acquisition. The lock is automatically
    released when the process terminates (even on crash), preventing stale locks.

    Returns:
        File descriptor of the lock file (kept open for lock lifetime).

    Raises:
        SystemExit: If another instance is already running.
    """
    try:
        fd = os.open(str(LOCK_FILE_PATH), os.O_RDWR | os.O_CREAT, 0o644)
    except OSError as e:
        logger.error("Failed to Open Lock File", [
            ("Path", str(LOCK_FILE_PATH)),
            ("Error", str(e)),
        ])
        sys.exit(1)

    try:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

        os.truncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())

        logger.info("🔒 Lock Acquired Successfully", [
            ("PID", str(os.getpid())),
        ])
        return fd

    except OSError:
        _report_existing_instance(fd)
        os.close(fd)
        sys.exit(1)


def _report_existing_instance(fd: int) -> None:
    """
    Log information about the existing instance holding the lock.

    Args:
        fd: File descriptor of the lock file.
    """
    try:
        os.lseek(fd, 0, os.SEEK_SET)
        existing_pid = os.read(fd, 100).decode().strip()

        logger.error("🔒 Another Instance Already Running", [
            ("Existing PID", existing_pid or "Unknown"),
            ("Kill Command", f"kill {existing_pid}" if existing_pid else "n/a"),
        ])

    except (OSError, ValueError) as e:
        logger.error("🔒 Another Instance Already Running", [
            ("PID", "Could not read"),
            ("Error", str(e)),
        ])


# =============================================================================
# Configuration
# =============================================================================

def load_configuration() -> BridgeConfig:
    """
    Load and validate environment configuration.

    Returns:
        The bridge configuration.

    Raises:
        SystemExit: If required configuration is missing or malformed.
    """
    try:
        validate_and_log_config()
        return BridgeConfig.from_env()
    except ConfigValidationError as e:
        logger.error("Configuration Validation Failed", [
            ("Error", str(e)),
            ("Action", "Check your .env file"),
        ])
        sys.exit(1)


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_signal(signum: int) -> None:
    """
    Called from the event loop via loop.add_signal_handler().

    Args:
        signum: Signal number received
    """
    logger.info("Signal Received", [
        ("Signal", signal.Signals(signum).name),
        ("Action", "Initiating graceful shutdown"),
    ])

    if _bridge_instance:
        _bridge_instance.request_shutdown()


def _setup_async_signal_handlers(loop: asyncio.AbstractEventLoop) -> None:
    """
    Setup async-safe signal handlers using loop.add_signal_handler().

    Args:
        loop: The asyncio event loop
    """
    if not hasattr(loop, "add_signal_handler"):
        logger.debug("Async signal handlers not supported on this platform")
        return

    for sig in (signal.SIGTERM, signal.SIGHUP):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _handle_signal(s))
            logger.debug(f"Registered async {sig.name} handler")
        except (ValueError, OSError, NotImplementedError) as e:
            logger.warning(f"Could not register {sig.name} handler", [
                ("Error", str(e)),
            ])


# =============================================================================
# Run Loop
# =============================================================================

async def run(config: BridgeConfig) -> None:
    """Start the bridge and block until a shutdown is requested."""
    global _bridge_instance

    host = HeadlessGameServer()
    bridge = BanBridge(config, host)
    host.on_shutdown = bridge.request_shutdown
    _bridge_instance = bridge

    _setup_async_signal_handlers(asyncio.get_running_loop())

    try:
        await bridge.start()
        await bridge.wait_until_stopped()
    finally:
        await bridge.close()


# =============================================================================
# Main Entry Point
# =============================================================================

def main() -> NoReturn:
    """
    Main entry point for the BanBridge daemon.

    Execution flow:
    1. Acquire single-instance lock
    2. Load environment configuration
    3. Run the bridge until a signal or SHUTDOWN command
    4. Handle shutdown gracefully

    Raises:
        SystemExit: On startup failure or clean shutdown.
    """
    lock_fd = acquire_lock()
    config = load_configuration()

    exit_code = 0
    try:
        logger.tree(
            "Starting BanBridge",
            [
                ("Backend", config.base_url),
                ("Cache File", str(config.bans_cache_file)),
                ("Lock File", str(LOCK_FILE_PATH)),
                ("PID", str(os.getpid())),
            ],
            emoji="🌉",
        )
        asyncio.run(run(config))

    except KeyboardInterrupt:
        logger.info("🛑 Shutdown Requested", [
            ("By", "User (Ctrl+C)"),
        ])

    except Exception as e:
        logger.error("💥 Fatal Error During Bridge Execution", [
            ("Error", str(e)),
        ])
        logger.exception("Full traceback:")
        exit_code = 1

    finally:
        try:
            os.close(lock_fd)
        except OSError:
            pass
        logger.info("🛑 BanBridge Stopped")

    sys.exit(exit_code)


# =============================================================================
# Script Execution
# =============================================================================

if __name__ == "__main__":
    main()
