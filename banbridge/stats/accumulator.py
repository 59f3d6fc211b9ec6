"""
BanBridge - Stats Accumulator
=============================

Per-player playtime/kill/death deltas collected between flushes.

Counters are in-memory only. A batch that fails to send is requeued
so the next successful flush still carries the lost work.
"""

import threading
from dataclasses import dataclass
from typing import Dict, Optional

from banbridge.api.models import PlayerDelta, StatsBatch


UNKNOWN_NAME = "Unknown"


@dataclass
class _Counters:
    playtime: int = 0
    kills: int = 0
    deaths: int = 0

    def is_zero(self) -> bool:
        return self.playtime == 0 and self.kills == 0 and self.deaths == 0


# =============================================================================
# Stats Accumulator
# =============================================================================

class StatsAccumulator:
    """
    Thread-safe additive counters keyed by subject id.

    DESIGN: Host event callbacks record from arbitrary threads while the
    flush job drains. Every add and the whole drain run under one lock,
    so an increment lands either in the drained batch or in the next one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, _Counters] = {}
        self._names: Dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_playtime(self, subject_id: Optional[str], name: Optional[str], seconds: int) -> None:
        self._add(subject_id, name, "playtime", seconds)

    def record_kill(self, subject_id: Optional[str], name: Optional[str], n: int = 1) -> None:
        self._add(subject_id, name, "kills", n)

    def record_death(self, subject_id: Optional[str], name: Optional[str], n: int = 1) -> None:
        self._add(subject_id, name, "deaths", n)

    def _add(self, subject_id: Optional[str], name: Optional[str], counter: str, delta: int) -> None:
        if not subject_id or delta <= 0:
            return
        with self._lock:
            self._remember_name_unlocked(subject_id, name)
            counters = self._counters.setdefault(subject_id, _Counters())
            setattr(counters, counter, getattr(counters, counter) + int(delta))

    def _remember_name_unlocked(self, subject_id: str, name: Optional[str]) -> None:
        """Keep the latest non-blank name. Must be called with lock held."""
        if name and name.strip():
            self._names[subject_id] = name.strip()

    # -------------------------------------------------------------------------
    # Presence Hooks
    # -------------------------------------------------------------------------

    def mark_online(self, subject_id: Optional[str], name: Optional[str]) -> None:
        """Remember the player's name; counters are untouched."""
        if not subject_id:
            return
        with self._lock:
            self._remember_name_unlocked(subject_id, name)

    def mark_offline(self, subject_id: Optional[str]) -> None:
        """Reserved hook; pending deltas are kept until the next flush."""
        return None

    def last_known_name(self, subject_id: str) -> str:
        with self._lock:
            return self._names.get(subject_id, UNKNOWN_NAME)

    # -------------------------------------------------------------------------
    # Drain / Requeue
    # -------------------------------------------------------------------------

    def drain_batch(self) -> StatsBatch:
        """
        Read and reset every counter, returning the non-zero deltas.

        Returns:
            StatsBatch with one PlayerDelta per subject that had activity
        """
        with self._lock:
            drained = self._counters
            self._counters = {}
            players = [
                PlayerDelta(
                    subject_id=subject_id,
                    name=self._names.get(subject_id, UNKNOWN_NAME),
                    playtime_delta_seconds=c.playtime,
                    kills_delta=c.kills,
                    deaths_delta=c.deaths,
                )
                for subject_id, c in drained.items()
                if not c.is_zero()
            ]
        return StatsBatch(players=players)

    def requeue(self, batch: Optional[StatsBatch]) -> None:
        """
        Add a failed batch back on top of whatever was recorded since.

        The batch name only fills in a missing one; a name recorded after
        the drain is newer and is kept.
        """
        if batch is None:
            return
        with self._lock:
            for delta in batch.players:
                if not delta.subject_id:
                    continue
                name = (delta.name or "").strip()
                if name and name != UNKNOWN_NAME:
                    self._names.setdefault(delta.subject_id, name)
                counters = self._counters.setdefault(delta.subject_id, _Counters())
                counters.playtime += max(0, int(delta.playtime_delta_seconds))
                counters.kills += max(0, int(delta.kills_delta))
                counters.deaths += max(0, int(delta.deaths_delta))

    @property
    def pending_subjects(self) -> int:
        """Number of subjects with undrained counters (for monitoring)."""
        with self._lock:
            return sum(1 for c in self._counters.values() if not c.is_zero())


__all__ = ["StatsAccumulator", "UNKNOWN_NAME"]
