"""Shared test fixtures for the ilabs_api test suite.

WHY: Every client test needs a stand-in for the ilabs service and a way to
skip the real backoff sleeps. Centralizing both keeps each test focused on
the behavior it checks.

HOW: FakeIlabsService is an httpx.MockTransport handler that routes requests
the way the real API does and records every request. SleepRecorder replaces
asyncio.sleep and remembers each requested delay.

RULES:
- No test touches the network or sleeps for real
- Status responses are consumed in order; the last one repeats
- A status entry that is an int is returned as that HTTP status code
- A status entry that is an exception is raised from the transport
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import httpx
import pytest

from ilabs_api.api.client import IlabsClient

TEST_ENDPOINT = "https://ilabs.test/v1"
TEST_USER_KEY = "test-user-key"

StatusEntry = Union[Dict[str, Any], int, Exception]


class FakeIlabsService:
    """In-memory ilabs API driven through httpx.MockTransport."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.actions: List[str] = []
        self.input_filename = "input-0001.xml"
        self.task_id = "task-0001"
        self.output = b"<doc>processed</doc>"
        self.statuses: List[StatusEntry] = [{"completed": True, "error": None}]
        self.failures: Dict[str, int] = {}
        self.uploaded: Optional[bytes] = None
        self._status_index = 0

    def _route(self, request: httpx.Request) -> str:
        path = request.url.path[len("/v1"):]
        parts = path.strip("/").split("/")
        if path == "/ping":
            return "ping"
        if path == "/documents/input" and request.method == "POST":
            return "upload"
        if parts[:2] == ["documents", "output"]:
            return "download"
        if parts[0] == "reference" and len(parts) == 4:
            return parts[3]  # status / cancel
        if parts[0] == "reference" and len(parts) == 3:
            return "submit"
        return "unknown"

    def _next_status(self) -> StatusEntry:
        index = min(self._status_index, len(self.statuses) - 1)
        self._status_index += 1
        return self.statuses[index]

    def handler(self, request: httpx.Request) -> httpx.Response:
        action = self._route(request)
        self.requests.append(request)
        self.actions.append(action)

        if action in self.failures:
            return httpx.Response(self.failures[action], text="{} failed".format(action))

        if action == "ping":
            return httpx.Response(200, json={"ping": "pong"})
        if action == "upload":
            self.uploaded = request.content
            return httpx.Response(201, json={"input_filename": self.input_filename})
        if action == "submit":
            return httpx.Response(202, json={"task_id": self.task_id})
        if action == "status":
            entry = self._next_status()
            if isinstance(entry, Exception):
                raise entry
            if isinstance(entry, int):
                return httpx.Response(entry, text="status unavailable")
            return httpx.Response(200, json=entry)
        if action == "cancel":
            return httpx.Response(200, json={})
        if action == "download":
            return httpx.Response(200, content=self.output)
        return httpx.Response(404, text="not found")

    def requests_for(self, action: str) -> List[httpx.Request]:
        return [r for r, a in zip(self.requests, self.actions) if a == action]

    def count(self, action: str) -> int:
        return self.actions.count(action)


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(autouse=True)
def _no_env_user_key(monkeypatch):
    """Keep a developer's ILABS_USER_KEY out of the tests."""
    monkeypatch.delenv("ILABS_USER_KEY", raising=False)


@pytest.fixture
def service():
    return FakeIlabsService()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def make_client(service, sleeper):
    """Factory for IlabsClient instances wired to the fake service."""

    def _make(**kwargs: Any) -> IlabsClient:
        kwargs.setdefault("user_key", TEST_USER_KEY)
        kwargs.setdefault("endpoint", TEST_ENDPOINT)
        kwargs.setdefault("sleep", sleeper)
        kwargs.setdefault("transport", httpx.MockTransport(service.handler))
        return IlabsClient(**kwargs)

    return _make
