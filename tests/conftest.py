"""Shared fixtures: a fake requests session and a temporary token store."""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

import pytest

from planner_sync.core.storage import LocalStorage
from planner_sync.core.tokens import TokenStore

FIXED_NOW = datetime(2026, 1, 31, 12, 0, 0, tzinfo=timezone.utc)


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, json_data: Any = None, content: bytes | None = None) -> None:
        self.status_code = status_code
        if content is None:
            content = json.dumps(json_data).encode("utf-8") if json_data is not None else b""
        self.content = content
        self.text = content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)


@dataclass
class Call:
    method: str
    url: str
    headers: dict[str, str]
    kwargs: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Call], FakeResponse]


class FakeSession:
    """Routes (method, url) to canned responses or handlers and records every call."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], FakeResponse | Handler] = {}
        self.calls: list[Call] = []
        self._lock = threading.Lock()

    def add(self, method: str, url: str, response: FakeResponse | Handler) -> None:
        self.routes[(method, url)] = response

    def request(self, method: str, url: str, headers: dict[str, str] | None = None,
                timeout: float | None = None, **kwargs: Any) -> FakeResponse:
        call = Call(method, url, headers or {}, kwargs)
        with self._lock:
            self.calls.append(call)
        route = self.routes.get((method, url))
        if route is None:
            raise AssertionError(f"Unexpected request: {method} {url}")
        if callable(route):
            return route(call)
        return route

    def count(self, method: str, url: str) -> int:
        return sum(1 for c in self.calls if c.method == method and c.url == url)


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path / "state")


@pytest.fixture
def token_store(storage) -> TokenStore:
    return TokenStore(storage, clock=lambda: FIXED_NOW)


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()
