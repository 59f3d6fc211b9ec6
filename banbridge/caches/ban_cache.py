"""
BanBridge - Ban Cache
=====================

Locally persisted mirror of the backend's active bans.

Features:
- One active ban per subject, looked up on every login
- Incremental merge of the backend change feed (idempotent)
- Monotonic sync cursor = max updatedAt ever applied
- Lazy and sweep-based eviction of expired bans
- Atomic JSON persistence (write temp file, then replace)

File format:
    {
      "cursor": "2024-01-02T00:00:00Z",
      "entries": [{"banId": 1, "subjectId": "...", ...}]
    }
"""

import json
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from banbridge.api.models import BanChange
from banbridge.core.config import EPOCH_CURSOR
from banbridge.core.logger import logger
from banbridge.utils.helpers import format_instant, parse_instant, utcnow


EPOCH = parse_instant(EPOCH_CURSOR)


# =============================================================================
# Ban Record
# =============================================================================

@dataclass(frozen=True)
class BanRecord:
    """A ban as mirrored from the backend."""
    ban_id: int
    subject_id: str
    reason: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_active_at(self, now: datetime) -> bool:
        """Active iff not revoked and not yet expired."""
        if self.revoked_at is not None:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > now

    @property
    def is_permanent(self) -> bool:
        return self.expires_at is None

    @classmethod
    def from_change(cls, change: BanChange) -> "BanRecord":
        return cls(
            ban_id=change.ban_id,
            subject_id=change.subject_id or "",
            reason=change.reason,
            created_at=parse_instant(change.created_at),
            expires_at=parse_instant(change.expires_at),
            revoked_at=parse_instant(change.revoked_at),
            updated_at=parse_instant(change.updated_at),
        )

    @classmethod
    def from_dict(cls, data: Any) -> Optional["BanRecord"]:
        """Rebuild a record from the cache file; None if unusable."""
        if not isinstance(data, dict) or not data.get("subjectId"):
            return None
        try:
            ban_id = int(data.get("banId") or 0)
        except (TypeError, ValueError):
            return None
        return cls(
            ban_id=ban_id,
            subject_id=str(data["subjectId"]),
            reason=data.get("reason"),
            created_at=parse_instant(data.get("createdAt")),
            expires_at=parse_instant(data.get("expiresAt")),
            revoked_at=parse_instant(data.get("revokedAt")),
            updated_at=parse_instant(data.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "banId": self.ban_id,
            "subjectId": self.subject_id,
            "reason": self.reason,
            "createdAt": format_instant(self.created_at),
            "expiresAt": format_instant(self.expires_at),
            "revokedAt": format_instant(self.revoked_at),
            "updatedAt": format_instant(self.updated_at),
        }


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of merging one change feed."""
    changed: bool
    newly_banned: list[BanRecord] = field(default_factory=list)


# =============================================================================
# Ban Cache
# =============================================================================

class BanCache:
    """
    Thread-safe active-ban mapping plus sync cursor, persisted as one unit.

    DESIGN: Login checks can arrive from host threads while the sync job
    merges a feed, so the mapping and cursor share one threading lock.
    The lock is never held during file I/O; writes are serialized by a
    separate persist lock so lookups never wait on the disk.
    """

    def __init__(self, file: Path, clock: Callable[[], datetime] = utcnow) -> None:
        """
        Initialize an empty cache.

        Args:
            file: JSON file used by persist()/load()
            clock: Returns the current aware UTC time
        """
        self.file: Path = Path(file)
        self._clock = clock
        self._lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._active: dict[str, BanRecord] = {}
        self._cursor: datetime = EPOCH

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def cursor(self) -> str:
        """Sync cursor as an ISO-8601 instant."""
        with self._lock:
            return format_instant(self._cursor)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._active)

    def active_records(self) -> list[BanRecord]:
        with self._lock:
            return list(self._active.values())

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_active(self, subject_id: Optional[str]) -> Optional[BanRecord]:
        """
        Return the active ban for a subject, if any.

        A record that expired since the last sweep is evicted here.
        """
        if not subject_id:
            return None
        now = self._clock()
        with self._lock:
            record = self._active.get(subject_id)
            if record is None:
                return None
            if not record.is_active_at(now):
                del self._active[subject_id]
                return None
            return record

    # -------------------------------------------------------------------------
    # Change Feed
    # -------------------------------------------------------------------------

    def apply_changes(self, changes: Optional[Iterable[BanChange]]) -> ApplyResult:
        """
        Merge a change feed into the active mapping.

        Returns:
            ApplyResult(changed, newly_banned); newly_banned lists subjects
            that are banned after this call and had no active ban before it

        DESIGN: Both results compare the mapping before and after the whole
        feed, so several entries for one subject collapse to their net effect
        and re-applying the same feed is a no-op. The cursor only moves
        forward because feed entries are not guaranteed to be ordered.
        """
        now = self._clock()
        max_updated: Optional[datetime] = None

        with self._lock:
            before = dict(self._active)
            active_before = {sid for sid, record in before.items() if record.is_active_at(now)}

            for change in changes or ():
                if change is None or not change.subject_id:
                    continue

                record = BanRecord.from_change(change)
                if record.updated_at is not None and (max_updated is None or record.updated_at > max_updated):
                    max_updated = record.updated_at

                if record.is_active_at(now):
                    self._active[record.subject_id] = record
                else:
                    self._active.pop(record.subject_id, None)

            self._sweep_unlocked(now)

            changed = self._active != before
            newly_banned = [
                record for sid, record in self._active.items()
                if sid not in active_before
            ]

            if max_updated is not None and max_updated > self._cursor:
                self._cursor = max_updated

        return ApplyResult(changed=changed, newly_banned=newly_banned)

    def sweep_expired(self) -> int:
        """Evict every record no longer active; returns the number removed."""
        now = self._clock()
        with self._lock:
            return self._sweep_unlocked(now)

    def _sweep_unlocked(self, now: datetime) -> int:
        """Remove inactive records. Must be called with lock held."""
        expired = [sid for sid, record in self._active.items() if not record.is_active_at(now)]
        for sid in expired:
            del self._active[sid]
        return len(expired)

    # -------------------------------------------------------------------------
    # Notices
    # -------------------------------------------------------------------------

    @staticmethod
    def build_notice(record: BanRecord) -> str:
        """Human-readable kick/login-denied message for a ban."""
        reason = record.reason if record.reason is not None else "N/A"
        notice = f"You are banned.\nReason: {reason}"
        if record.expires_at is not None:
            return f"{notice}\nExpires: {format_instant(record.expires_at)}"
        return f"{notice}\nDuration: Permanent"

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "cursor": format_instant(self._cursor),
                "entries": [record.to_dict() for record in self._active.values()],
            }

    def persist(self) -> bool:
        """
        Write cursor and active bans atomically.

        Returns:
            True if the file was written, False on failure (logged)
        """
        tmp_file = self.file.with_name(self.file.name + ".tmp")

        with self._persist_lock:
            document = self._snapshot()
            try:
                self.file.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_file, "w", encoding="utf-8") as f:
                    json.dump(document, f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                self._replace(tmp_file, self.file)
                return True
            except (OSError, TypeError, ValueError) as e:
                logger.warning("Failed to Save Ban Cache", [
                    ("File", str(self.file)),
                    ("Error", str(e)),
                ])
                return False

    @staticmethod
    def _replace(source: Path, target: Path) -> None:
        """Atomically replace target, falling back to a non-atomic swap."""
        try:
            os.replace(source, target)
        except OSError:
            if target.exists():
                target.unlink()
            os.rename(source, target)

    def load(self) -> None:
        """
        Restore state from disk, keeping only bans still active.

        Missing or unreadable files leave the cache empty at the epoch cursor.
        """
        if not self.file.exists():
            logger.info("No Ban Cache File", [
                ("File", str(self.file)),
                ("Cursor", EPOCH_CURSOR),
            ])
            return

        try:
            with open(self.file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("cache document must be a JSON object")
        except (OSError, ValueError) as e:
            logger.warning("Failed to Load Ban Cache", [
                ("File", str(self.file)),
                ("Error", str(e)),
            ])
            return

        now = self._clock()
        entries = data.get("entries") or []
        loaded: dict[str, BanRecord] = {}
        for item in entries if isinstance(entries, list) else []:
            record = BanRecord.from_dict(item)
            if record is not None and record.is_active_at(now):
                loaded[record.subject_id] = record

        cursor = parse_instant(data.get("cursor"))

        with self._lock:
            self._active = loaded
            self._cursor = cursor if cursor is not None else EPOCH

        logger.info("Loaded Ban Cache", [
            ("Active Bans", str(len(loaded))),
            ("Cursor", format_instant(self._cursor)),
        ])

    def reset_to_epoch(self) -> None:
        """Delete the cache file and start over from an empty state."""
        with self._persist_lock:
            try:
                self.file.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to Delete Ban Cache File", [
                    ("File", str(self.file)),
                    ("Error", str(e)),
                ])

            with self._lock:
                removed = len(self._active)
                self._active = {}
                self._cursor = EPOCH

        logger.tree("Ban Cache Reset", [
            ("Removed", str(removed)),
            ("Cursor", EPOCH_CURSOR),
        ], emoji="🔄")


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["BanCache", "BanRecord", "ApplyResult"]
