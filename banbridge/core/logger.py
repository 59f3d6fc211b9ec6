"""
BanBridge - Logger
==================

Tree-style structured logging for the sync core.

Every log call takes a title plus an optional list of (key, value) details,
rendered as a box-drawing tree on the console and in daily log files.

Features:
- Unique run ID per process for tracking sessions
- Configurable timestamp timezone (BANBRIDGE_LOG_TZ, default UTC)
- Console and file output simultaneously
- Daily log folders with separate log and error files
- Automatic cleanup of old logs (7+ days)

Log Structure:
    logs/
    ├── 2024-01-01/
    │   ├── BanBridge-2024-01-01.log
    │   └── BanBridge-Errors-2024-01-01.log
    └── ...
"""

import os
import re
import shutil
import uuid
import traceback
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import List, Tuple, Optional, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


# =============================================================================
# Constants
# =============================================================================

LOG_RETENTION_DAYS = 7

LOG_NAME = "BanBridge"

DEFAULT_LOG_DIR = Path(__file__).parent.parent.parent / "logs"

EMOJI_PATTERN = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols & pictographs
    "\U0001F680-\U0001F6FF"  # transport & map symbols
    "\U00002702-\U000027B0"  # dingbats
    "\U0001F900-\U0001F9FF"  # supplemental symbols
    "\U00002600-\U000026FF"  # misc symbols
    "\U00002300-\U000023FF"  # misc technical
    "]+",
    flags=re.UNICODE
)


def _resolve_timezone(name: str) -> tzinfo:
    """Resolve a timezone name, falling back to UTC if unknown."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


# =============================================================================
# Tree Symbols
# =============================================================================

class TreeSymbols:
    """Box-drawing characters for tree formatting."""
    BRANCH = "├─"
    LAST = "└─"
    PIPE = "│ "
    SPACE = "  "


# =============================================================================
# MiniTreeLogger
# =============================================================================

class MiniTreeLogger:
    """Logger with tree-style formatting and daily file rotation."""

    def __init__(self, logs_dir: Optional[Path] = None, tz_name: Optional[str] = None) -> None:
        """
        Initialize the logger with unique run ID and daily log folder rotation.

        Args:
            logs_dir: Base directory for log folders (BANBRIDGE_LOG_DIR or ./logs)
            tz_name: Timezone used for timestamps and folder dates
        """
        self.run_id: str = str(uuid.uuid4())[:8]

        env_dir = os.getenv("BANBRIDGE_LOG_DIR")
        self.logs_base_dir: Path = logs_dir or (Path(env_dir) if env_dir else DEFAULT_LOG_DIR)
        self._timezone = _resolve_timezone(tz_name or os.getenv("BANBRIDGE_LOG_TZ", "UTC"))

        self.current_date = datetime.now(self._timezone).strftime("%Y-%m-%d")
        self.log_dir = self.logs_base_dir / self.current_date
        self.log_file: Path = self.log_dir / f"{LOG_NAME}-{self.current_date}.log"
        self.error_file: Path = self.log_dir / f"{LOG_NAME}-Errors-{self.current_date}.log"

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

        self._cleanup_old_logs()
        self._write_session_header()

    # =========================================================================
    # Private Methods - Setup
    # =========================================================================

    def _check_date_rotation(self) -> None:
        """Rotate to a new log folder when the date changes."""
        current_date = datetime.now(self._timezone).strftime("%Y-%m-%d")
        if current_date == self.current_date:
            return

        self.current_date = current_date
        self.log_dir = self.logs_base_dir / self.current_date
        self.log_file = self.log_dir / f"{LOG_NAME}-{self.current_date}.log"
        self.error_file = self.log_dir / f"{LOG_NAME}-Errors-{self.current_date}.log"

        header = (
            f"\n{'='*60}\n"
            f"LOG ROTATION - Continuing session {self.run_id}\n"
            f"{self._get_timestamp()}\n"
            f"{'='*60}\n\n"
        )
        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(header)
            with open(self.error_file, "a", encoding="utf-8") as f:
                f.write(header)
        except OSError:
            pass

    def _cleanup_old_logs(self) -> None:
        """Remove log folders older than the retention period."""
        try:
            now = datetime.now(self._timezone)
            deleted_count = 0

            for folder in self.logs_base_dir.iterdir():
                if not folder.is_dir():
                    continue
                try:
                    folder_date = datetime.strptime(folder.name, "%Y-%m-%d").replace(tzinfo=self._timezone)
                except ValueError:
                    continue

                if (now - folder_date).days > LOG_RETENTION_DAYS:
                    shutil.rmtree(folder)
                    deleted_count += 1

            if deleted_count > 0:
                print(f"[LOG CLEANUP] Deleted {deleted_count} old log folders (>{LOG_RETENTION_DAYS} days)")
        except OSError as e:
            print(f"[LOG CLEANUP ERROR] {e}")

    def _write_session_header(self) -> None:
        """Write session header to both log files."""
        header = (
            f"\n{'='*60}\n"
            f"NEW SESSION - RUN ID: {self.run_id}\n"
            f"{self._get_timestamp()}\n"
            f"{'='*60}\n\n"
        )
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(header)
            with open(self.error_file, "a", encoding="utf-8") as f:
                f.write(header)
        except OSError:
            pass

    # =========================================================================
    # Private Methods - Formatting
    # =========================================================================

    def _get_timestamp(self) -> str:
        current_time = datetime.now(self._timezone)
        tz_name = current_time.strftime("%Z")
        return current_time.strftime(f"[%H:%M:%S {tz_name}]")

    def _strip_emojis(self, text: str) -> str:
        return EMOJI_PATTERN.sub("", text).strip()

    def _format(self, message: str, emoji: str) -> str:
        clean_message = self._strip_emojis(message)
        timestamp = self._get_timestamp()
        return f"{timestamp} {emoji} {clean_message}" if emoji else f"{timestamp} {clean_message}"

    def _append(self, line: str, also_to_error: bool = False) -> None:
        """Append a line to the main log (and optionally the error log)."""
        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"{line}\n")
            if also_to_error:
                with open(self.error_file, "a", encoding="utf-8") as f:
                    f.write(f"{line}\n")
        except OSError:
            pass

    def _write(self, message: str, emoji: str = "", to_error: bool = False) -> None:
        """Write a timestamped title line to console and file."""
        self._check_date_rotation()
        full_message = self._format(message, emoji)
        print(full_message)
        self._append(full_message, also_to_error=to_error)

    def _write_raw(self, message: str, also_to_error: bool = False) -> None:
        """Write raw message without timestamp (for tree branches)."""
        print(message)
        self._append(message, also_to_error=also_to_error)

    def _render(
        self,
        title: str,
        items: Optional[List[Tuple[str, Any]]],
        emoji: str,
        status: str,
        to_error: bool = False,
    ) -> None:
        self._write(title, emoji, to_error=to_error)

        if not items:
            items = [("Status", status)]

        for i, (key, value) in enumerate(items):
            prefix = TreeSymbols.LAST if i == len(items) - 1 else TreeSymbols.BRANCH
            self._write_raw(f"  {prefix} {key}: {value}", also_to_error=to_error)

        self._write_raw("", also_to_error=to_error)

    # =========================================================================
    # Public Methods - Log Levels
    # =========================================================================

    def info(self, msg: str, details: Optional[List[Tuple[str, Any]]] = None) -> None:
        self._render(msg, details, "ℹ️", "OK")

    def success(self, msg: str, details: Optional[List[Tuple[str, Any]]] = None) -> None:
        self._render(msg, details, "✅", "Complete")

    def error(self, msg: str, details: Optional[List[Tuple[str, Any]]] = None) -> None:
        """Log an error message as a tree (also writes to error log)."""
        self._render(msg, details, "❌", "Failed", to_error=True)

    def warning(self, msg: str, details: Optional[List[Tuple[str, Any]]] = None) -> None:
        """Log a warning message as a tree (also writes to error log)."""
        self._render(msg, details, "⚠️", "Warning", to_error=True)

    def debug(self, msg: str, details: Optional[List[Tuple[str, Any]]] = None) -> None:
        """Log a debug message (only if DEBUG env var is set)."""
        if os.getenv("DEBUG", "").lower() in ("1", "true", "yes"):
            self._render(msg, details, "🔍", "Debug")

    def exception(self, msg: str, details: Optional[List[Tuple[str, Any]]] = None) -> None:
        """Log an exception with full traceback (also writes to error log)."""
        self._render(msg, details, "💥", "Exception", to_error=True)
        self._append(traceback.format_exc(), also_to_error=True)

    # =========================================================================
    # Public Methods - Tree Formatting
    # =========================================================================

    def tree(
        self,
        title: str,
        items: List[Tuple[str, Any]],
        emoji: str = "📦"
    ) -> None:
        """
        Log structured data in tree format.

        Example output:
            [12:00:00 UTC] 📦 Ban Sync Applied
              ├─ Changed: True
              ├─ Active Bans: 12
              └─ Cursor: 2024-01-02T00:00:00Z

        Args:
            title: Tree title/header
            items: List of (key, value) tuples
            emoji: Emoji prefix for title
        """
        self._render(title, items, emoji, "OK")


# =============================================================================
# Global Logger Instance
# =============================================================================

logger = MiniTreeLogger()


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["logger", "MiniTreeLogger", "TreeSymbols"]
