"""
BanBridge - Backend Client
==========================

Resilient HTTP client for every backend endpoint.

Features:
- Shared aiohttp session with bearer auth and JSON accept headers
- Retry with exponential backoff and jitter on transport errors, 5xx and 429
- 401/403 never retried, logged once until the next success
- Typed response decoding; malformed bodies are treated as failures
- Public methods never raise: they resolve to a value, None or False

Endpoints:
    GET  /api/server/health
    GET  /api/server/bans/changes?since=<cursor>
    POST /api/server/stats/batch
    POST /api/server/presence
    POST /api/server/metrics
    GET  /api/server/commands/poll?serverKey=<k>&sinceId=<id>
    POST /api/server/commands/ack
    POST /api/server/bans/report
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from banbridge.api.errors import (
    AuthenticationError,
    HttpStatusError,
    MalformedResponseError,
    TransportError,
)
from banbridge.api.models import (
    BanChangesResponse,
    BanReport,
    CommandAck,
    CommandsPollResponse,
    HealthResponse,
    PostResult,
    PresenceReport,
    ServerMetrics,
    StatsBatch,
)
from banbridge.core.config import (
    BridgeConfig,
    CONNECT_TIMEOUT,
    EPOCH_CURSOR,
    LOG_BODY_PREVIEW_LENGTH,
    REQUEST_TIMEOUT,
    trim_trailing_slash,
)
from banbridge.core.logger import logger
from banbridge.utils.helpers import truncate
from banbridge.utils.retry import (
    RETRYABLE_EXCEPTIONS,
    RequestAttempt,
    ResponseAction,
    RetryPolicy,
    classify_status,
)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[Any]]


# =============================================================================
# Backend Client
# =============================================================================

class BackendClient:
    """
    Authenticated JSON client with retry/backoff for the backend API.

    DESIGN: One logical call = up to max_attempts HTTP requests.
    Backoff waits are awaited (asyncio.sleep), so other periodic jobs keep
    running while a call is retrying.
    """

    def __init__(
        self,
        base_url: str,
        server_key: str,
        server_token: str,
        policy: Optional[RetryPolicy] = None,
        timeout: float = REQUEST_TIMEOUT,
        connect_timeout: float = CONNECT_TIMEOUT,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Backend root URL (trailing slash removed)
            server_key: Unique key of this instance
            server_token: Bearer credential
            policy: Retry policy (defaults: 4 attempts, 250ms base, 5s cap)
            timeout: Total timeout per request (seconds)
            connect_timeout: Connect timeout per request (seconds)
            sleep: Awaitable used for backoff waits (asyncio.sleep by default)
        """
        self.base_url: str = trim_trailing_slash(base_url or "")
        self.server_key: str = (server_key or "").strip()
        self._server_token: str = (server_token or "").strip()
        self.policy: RetryPolicy = policy or RetryPolicy()
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=connect_timeout)
        self._sleep: SleepFunc = sleep or asyncio.sleep
        self._session: Optional[aiohttp.ClientSession] = None
        self._auth_failed_ops: set[str] = set()

    @classmethod
    def from_config(cls, config: BridgeConfig) -> "BackendClient":
        policy = RetryPolicy.create(
            config.http_max_attempts,
            config.http_base_backoff_ms / 1000.0,
            config.http_max_backoff_ms / 1000.0,
        )
        return cls(config.base_url, config.server_key, config.server_token, policy=policy)

    # -------------------------------------------------------------------------
    # Session Management
    # -------------------------------------------------------------------------

    @property
    def default_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._server_token}",
            "Accept": "application/json",
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the shared aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self.default_headers,
                timeout=self._timeout,
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    # =========================================================================
    # Public API
    # =========================================================================

    async def health_check(self) -> Optional[HealthResponse]:
        return await self.execute("health", "/api/server/health", HealthResponse.from_dict)

    async def fetch_ban_changes(self, since_cursor: Optional[str]) -> Optional[BanChangesResponse]:
        """Fetch ban changes newer than the cursor (last applied max updatedAt)."""
        return await self.execute(
            "banChanges",
            "/api/server/bans/changes",
            BanChangesResponse.from_dict,
            params={"since": since_cursor or EPOCH_CURSOR},
        )

    async def post_stats_batch(self, batch: StatsBatch) -> bool:
        result = await self.submit("statsBatch", "/api/server/stats/batch", batch.to_dict())
        return result.ok

    async def post_presence(self, report: PresenceReport) -> bool:
        result = await self.submit("presence", "/api/server/presence", report.to_dict())
        return result.ok

    async def post_metrics(self, metrics: ServerMetrics) -> PostResult:
        """Post metrics, returning the status code for per-send logging."""
        return await self.submit("metrics", "/api/server/metrics", metrics.to_dict())

    async def poll_commands(self, since_id: int) -> Optional[CommandsPollResponse]:
        return await self.execute(
            "commandsPoll",
            "/api/server/commands/poll",
            CommandsPollResponse.from_dict,
            params={"serverKey": self.server_key, "sinceId": str(since_id)},
        )

    async def ack_command(self, command_id: int) -> bool:
        body = CommandAck(server_key=self.server_key, id=command_id).to_dict()
        result = await self.submit("commandsAck", "/api/server/commands/ack", body)
        return result.ok

    async def report_ban(self, report: BanReport) -> bool:
        result = await self.submit("banReport", "/api/server/bans/report", report.to_dict())
        return result.ok

    # =========================================================================
    # Read / Write Primitives
    # =========================================================================

    async def execute(
        self,
        op: str,
        path: str,
        parser: Callable[[Any], T],
        params: Optional[dict[str, str]] = None,
    ) -> Optional[T]:
        """
        Run a read operation and decode its JSON payload.

        Returns:
            The parsed payload, or None on any failure (already logged)
        """
        url = self.base_url + path
        try:
            status, body = await self._send_with_retry(op, "GET", url, params=params)

            if classify_status(status) is ResponseAction.AUTH_FAILED:
                raise AuthenticationError(status)
            if status // 100 != 2:
                raise HttpStatusError(status, truncate(body, LOG_BODY_PREVIEW_LENGTH))

            return self._decode(body, parser, status)

        except Exception as e:
            self._log_failure(op, url, e)
            return None

    async def submit(self, op: str, path: str, payload: dict[str, Any]) -> PostResult:
        """
        Run a write operation where only success/failure matters.

        Returns:
            PostResult(ok, status_code); status_code is None if no response arrived
        """
        url = self.base_url + path
        try:
            status, body = await self._send_with_retry(op, "POST", url, payload=payload)
        except Exception as e:
            self._log_failure(op, url, e)
            return PostResult(False, None)

        ok = status // 100 == 2
        if not ok and classify_status(status) is not ResponseAction.AUTH_FAILED:
            logger.warning("Backend Call Rejected", [
                ("Operation", op),
                ("URL", url),
                ("Status", str(status)),
                ("Body", truncate(body, LOG_BODY_PREVIEW_LENGTH) or "(empty)"),
            ])
        return PostResult(ok, status)

    # =========================================================================
    # Retry Loop
    # =========================================================================

    async def _send_with_retry(
        self,
        op: str,
        method: str,
        url: str,
        params: Optional[dict[str, str]] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> tuple[int, str]:
        """
        Send a request, retrying transient failures.

        Returns:
            (status, body) of the final response

        Raises:
            TransportError: If no response was received after all attempts
        """
        attempt = RequestAttempt(operation=op, attempt=1)

        while True:
            try:
                session = await self._get_session()
                async with session.request(method, url, params=params, json=payload) as resp:
                    status = resp.status
                    body = await resp.text()

            except aiohttp.InvalidURL as e:
                raise TransportError(f"InvalidURL: {e}") from e

            except RETRYABLE_EXCEPTIONS as e:
                if attempt.attempt >= self.policy.max_attempts:
                    raise TransportError(f"{type(e).__name__}: {e}") from e
                await self._backoff(attempt, reason=type(e).__name__)
                continue

            action = classify_status(status)

            if action is ResponseAction.AUTH_FAILED:
                self._log_auth_failure(op, url, status)
                return status, body

            if action is ResponseAction.RETRY and attempt.attempt < self.policy.max_attempts:
                await self._backoff(attempt, reason=f"HTTP {status}", rate_limited=status == 429)
                continue

            if status // 100 == 2:
                self._auth_failed_ops.discard(op)
            return status, body

    async def _backoff(self, attempt: RequestAttempt, reason: str, rate_limited: bool = False) -> None:
        """Wait before the next attempt and advance the attempt counter."""
        attempt.delay = self.policy.compute_delay(attempt.attempt, rate_limited=rate_limited)
        logger.debug("Retrying Backend Call", [
            ("Operation", attempt.operation),
            ("Attempt", f"{attempt.attempt}/{self.policy.max_attempts}"),
            ("Reason", reason),
            ("Delay", f"{attempt.delay:.2f}s"),
        ])
        await self._sleep(attempt.delay)
        attempt.attempt += 1

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _decode(body: str, parser: Callable[[Any], T], status: int) -> T:
        preview = truncate(body, LOG_BODY_PREVIEW_LENGTH)
        try:
            data = json.loads(body)
        except ValueError as e:
            raise MalformedResponseError(f"{type(e).__name__}: {e}", preview, status) from e
        try:
            return parser(data)
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"{type(e).__name__}: {e}", preview, status) from e

    def _log_auth_failure(self, op: str, url: str, status: int) -> None:
        """Log an auth rejection once per operation until it succeeds again."""
        if op in self._auth_failed_ops:
            logger.debug("Backend Auth Still Failing", [
                ("Operation", op),
                ("Status", str(status)),
            ])
            return
        self._auth_failed_ops.add(op)
        logger.error("Backend Auth Failed", [
            ("Operation", op),
            ("URL", url),
            ("Status", str(status)),
            ("Action", "Check BANBRIDGE_SERVER_TOKEN"),
        ])

    @staticmethod
    def _log_failure(op: str, url: str, error: Exception) -> None:
        if isinstance(error, AuthenticationError):
            return
        logger.warning("Backend Call Failed", [
            ("Operation", op),
            ("URL", url),
            ("Kind", getattr(error, "kind", type(error).__name__)),
            ("Error", str(error)),
        ])


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["BackendClient"]
