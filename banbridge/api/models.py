"""
BanBridge - Backend Wire Models
===============================

Dataclasses for every request and response exchanged with the backend.

Responses are built with `from_dict` (unknown fields ignored, missing
required fields raise); requests serialize with `to_dict` using the
backend's camelCase field names. Unmeasured values serialize as null.
"""

from dataclasses import dataclass, field
from typing import Any, Optional


def _require_list(data: dict[str, Any], key: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list")
    return value


def _require_dict(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ValueError(f"{what} must be a JSON object")
    return data


def _opt_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


# =============================================================================
# Responses
# =============================================================================

@dataclass(frozen=True)
class HealthResponse:
    """GET /api/server/health"""
    status: Optional[str]
    server_time: Optional[str]
    db_ok: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Any) -> "HealthResponse":
        data = _require_dict(data, "health response")
        db_ok = data.get("dbOk")
        return cls(
            status=_opt_str(data.get("status")),
            server_time=_opt_str(data.get("serverTime")),
            db_ok=None if db_ok is None else bool(db_ok),
        )


@dataclass(frozen=True)
class BanChange:
    """One entry of the incremental ban change feed."""
    type: Optional[str]
    ban_id: int
    subject_id: Optional[str]
    reason: Optional[str] = None
    created_at: Optional[str] = None
    expires_at: Optional[str] = None
    revoked_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "BanChange":
        data = _require_dict(data, "ban change")
        return cls(
            type=_opt_str(data.get("type")),
            ban_id=int(data.get("banId") or 0),
            subject_id=_opt_str(data.get("subjectId")),
            reason=_opt_str(data.get("reason")),
            created_at=_opt_str(data.get("createdAt")),
            expires_at=_opt_str(data.get("expiresAt")),
            revoked_at=_opt_str(data.get("revokedAt")),
            updated_at=_opt_str(data.get("updatedAt")),
        )


@dataclass(frozen=True)
class BanChangesResponse:
    """GET /api/server/bans/changes"""
    server_time: Optional[str]
    changes: list[BanChange] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "BanChangesResponse":
        data = _require_dict(data, "ban changes response")
        return cls(
            server_time=_opt_str(data.get("serverTime")),
            changes=[BanChange.from_dict(c) for c in _require_list(data, "changes") if c is not None],
        )


@dataclass(frozen=True)
class ServerCommand:
    """A remotely issued command."""
    id: int
    cmd_type: Optional[str]
    payload_json: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ServerCommand":
        data = _require_dict(data, "command")
        if data.get("id") is None:
            raise ValueError("command is missing 'id'")
        return cls(
            id=int(data["id"]),
            cmd_type=_opt_str(data.get("cmdType")),
            payload_json=_opt_str(data.get("payloadJson")),
            created_at=_opt_str(data.get("createdAt")),
        )


@dataclass(frozen=True)
class CommandsPollResponse:
    """GET /api/server/commands/poll"""
    server_time: Optional[str]
    commands: list[ServerCommand] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "CommandsPollResponse":
        data = _require_dict(data, "commands poll response")
        return cls(
            server_time=_opt_str(data.get("serverTime")),
            commands=[ServerCommand.from_dict(c) for c in _require_list(data, "commands") if c is not None],
        )


@dataclass(frozen=True)
class PostResult:
    """Outcome of a write call; status_code is None if no response arrived."""
    ok: bool
    status_code: Optional[int] = None


# =============================================================================
# Requests
# =============================================================================

@dataclass(frozen=True)
class PlayerDelta:
    subject_id: str
    name: str
    playtime_delta_seconds: int = 0
    kills_delta: int = 0
    deaths_delta: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "name": self.name,
            "playtimeDeltaSeconds": self.playtime_delta_seconds,
            "killsDelta": self.kills_delta,
            "deathsDelta": self.deaths_delta,
        }


@dataclass(frozen=True)
class StatsBatch:
    """POST /api/server/stats/batch"""
    players: list[PlayerDelta] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.players

    def to_dict(self) -> dict[str, Any]:
        return {"players": [p.to_dict() for p in self.players]}


@dataclass(frozen=True)
class PlayerPresence:
    subject_id: str
    name: Optional[str] = None
    online: Optional[bool] = True
    ip: Optional[str] = None
    hwid: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "name": self.name,
            "online": self.online,
            "ip": self.ip,
            "hwid": self.hwid,
        }


@dataclass(frozen=True)
class PresenceReport:
    """
    POST /api/server/presence (snapshot mode).

    The backend marks every player missing from the list as offline,
    so an empty report means "everyone is offline".
    """
    players: list[PlayerPresence] = field(default_factory=list)
    snapshot: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"snapshot": self.snapshot, "players": [p.to_dict() for p in self.players]}


@dataclass(frozen=True)
class ServerMetrics:
    """POST /api/server/metrics; None means "not measured"."""
    server_key: str
    players_online: int
    ram_used_mb: Optional[int] = None
    ram_max_mb: Optional[int] = None
    cpu_load: Optional[float] = None
    players_max: Optional[int] = None
    tps: Optional[float] = None
    rx_kbps: Optional[float] = None
    tx_kbps: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "serverKey": self.server_key,
            "ramUsedMb": self.ram_used_mb,
            "ramMaxMb": self.ram_max_mb,
            "cpuLoad": self.cpu_load,
            "playersOnline": self.players_online,
            "playersMax": self.players_max,
            "tps": self.tps,
            "rxKbps": self.rx_kbps,
            "txKbps": self.tx_kbps,
        }


@dataclass(frozen=True)
class CommandAck:
    """POST /api/server/commands/ack"""
    server_key: str
    id: int

    def to_dict(self) -> dict[str, Any]:
        return {"serverKey": self.server_key, "id": self.id}


@dataclass(frozen=True)
class BanPayload:
    subject_id: str
    reason: Optional[str]
    duration_seconds: Optional[int] = None
    ip: Optional[str] = None
    hwid: Optional[str] = None
    executed_at_iso: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subjectId": self.subject_id,
            "reason": self.reason,
            "durationSeconds": self.duration_seconds,
            "ip": self.ip,
            "hwid": self.hwid,
            "executedAtIso": self.executed_at_iso,
        }


@dataclass(frozen=True)
class BanReport:
    """POST /api/server/bans/report"""
    server_key: str
    ban: BanPayload

    def to_dict(self) -> dict[str, Any]:
        return {"serverKey": self.server_key, "ban": self.ban.to_dict()}


__all__ = [
    "HealthResponse",
    "BanChange",
    "BanChangesResponse",
    "ServerCommand",
    "CommandsPollResponse",
    "PostResult",
    "PlayerDelta",
    "StatsBatch",
    "PlayerPresence",
    "PresenceReport",
    "ServerMetrics",
    "CommandAck",
    "BanPayload",
    "BanReport",
]
