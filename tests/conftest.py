import json
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any, Optional

# Logs go to a throwaway folder; must be set before banbridge is imported
os.environ.setdefault("BANBRIDGE_LOG_DIR", tempfile.mkdtemp(prefix="banbridge-logs-"))

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from banbridge.api.client import BackendClient
from banbridge.utils.retry import RetryPolicy


@dataclass
class RecordedRequest:
    method: str
    path: str
    query: dict[str, str]
    headers: dict[str, str]
    body: Optional[Any]


@dataclass
class CannedResponse:
    status: int = 200
    text: str = "{}"


@dataclass
class FakeBackend:
    """In-process backend: canned responses per route, every request recorded."""
    url: str = ""
    requests: list[RecordedRequest] = field(default_factory=list)
    queued: dict[tuple[str, str], list[CannedResponse]] = field(default_factory=dict)

    def queue(self, method: str, path: str, status: int = 200, body: Any = None, text: Optional[str] = None) -> None:
        payload = text if text is not None else json.dumps({} if body is None else body)
        self.queued.setdefault((method, path), []).append(CannedResponse(status, payload))

    def requests_to(self, path: str) -> list[RecordedRequest]:
        return [r for r in self.requests if r.path == path]

    async def handle(self, request: web.Request) -> web.Response:
        raw = await request.text()
        self.requests.append(RecordedRequest(
            method=request.method,
            path=request.path,
            query=dict(request.query),
            headers=dict(request.headers),
            body=json.loads(raw) if raw else None,
        ))
        pending = self.queued.get((request.method, request.path))
        canned = pending.pop(0) if pending else CannedResponse()
        return web.Response(status=canned.status, text=canned.text, content_type="application/json")


class SleepRecorder:
    """Stands in for asyncio.sleep in the retry loop."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("BANBRIDGE_") and key != "BANBRIDGE_LOG_DIR":
            monkeypatch.delenv(key, raising=False)


@pytest_asyncio.fixture
async def backend():
    fake = FakeBackend()
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", fake.handle)
    server = TestServer(app)
    await server.start_server()
    fake.url = str(server.make_url("/")).rstrip("/")
    yield fake
    await server.close()


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest_asyncio.fixture
async def client(backend, sleeps):
    api = BackendClient(
        backend.url + "/",
        "srv-1",
        "secret-token",
        policy=RetryPolicy(max_attempts=3, base_delay=0.05, max_delay=0.2),
        sleep=sleeps,
    )
    yield api
    await api.close()
