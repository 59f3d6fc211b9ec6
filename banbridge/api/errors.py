"""
BanBridge - Backend Errors
==========================

Failure types raised inside the request layer.

These never escape the public BackendClient methods: every call resolves
to a value, None, False or a failed PostResult.
"""

from typing import Optional


class BackendError(Exception):
    """Base class for request layer failures."""

    kind: str = "error"


class TransportError(BackendError):
    """Connection refused, timeout or other I/O failure after all retries."""

    kind = "transport"


class AuthenticationError(BackendError):
    """Backend rejected the credential (HTTP 401/403)."""

    kind = "auth"

    def __init__(self, status: int) -> None:
        super().__init__(f"HTTP {status} (auth failed?)")
        self.status = status


class HttpStatusError(BackendError):
    """Non-2xx response to a read operation."""

    kind = "http_status"

    def __init__(self, status: int, body_preview: str = "") -> None:
        super().__init__(f"HTTP {status} body={body_preview}")
        self.status = status
        self.body_preview = body_preview


class MalformedResponseError(BackendError):
    """2xx response whose body could not be decoded into the expected shape."""

    kind = "malformed"

    def __init__(self, reason: str, body_preview: str = "", status: Optional[int] = None) -> None:
        super().__init__(f"JSON parse failed: {reason} body={body_preview}")
        self.status = status
        self.body_preview = body_preview


__all__ = [
    "BackendError",
    "TransportError",
    "AuthenticationError",
    "HttpStatusError",
    "MalformedResponseError",
]
