"""
BanBridge - API Package
=======================

Backend HTTP client, wire models and request layer errors.
"""

from banbridge.api.client import BackendClient
from banbridge.api.errors import (
    BackendError,
    TransportError,
    AuthenticationError,
    HttpStatusError,
    MalformedResponseError,
)
from banbridge.api.models import (
    HealthResponse,
    BanChange,
    BanChangesResponse,
    ServerCommand,
    CommandsPollResponse,
    PostResult,
    PlayerDelta,
    StatsBatch,
    PlayerPresence,
    PresenceReport,
    ServerMetrics,
    CommandAck,
    BanPayload,
    BanReport,
)

__all__ = [
    # Client
    "BackendClient",
    # Errors
    "BackendError",
    "TransportError",
    "AuthenticationError",
    "HttpStatusError",
    "MalformedResponseError",
    # Responses
    "HealthResponse",
    "BanChange",
    "BanChangesResponse",
    "ServerCommand",
    "CommandsPollResponse",
    "PostResult",
    # Requests
    "PlayerDelta",
    "StatsBatch",
    "PlayerPresence",
    "PresenceReport",
    "ServerMetrics",
    "CommandAck",
    "BanPayload",
    "BanReport",
]
