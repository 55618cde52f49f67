from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from pytracker.cache.engine import EntityCache
from pytracker.cache.store import EntityStore


class FakeClock:
    """Manually advanced clock for freshness tests."""

    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


Response = dict[str, Any] | Exception | Callable[[], Awaitable[Any]]


class FakeTransport:
    """In-memory ``Transport``: canned responses per ``(method, path)``.

    The last queued response for a route is reused once the others are used
    up. A response may be a body, an exception to raise, or a coroutine
    function producing the body.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Response]] = {}
        self.calls: list[tuple[str, str, dict[str, Any], Any]] = []

    def add(self, method: str, path: str, *responses: Response) -> None:
        self.routes.setdefault((method, path), []).extend(responses)

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call[0] == method and call[1] == path)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json_body: Any = None,
        auth: bool = True,
    ) -> Any:
        self.calls.append((method, path, dict(params or {}), json_body))
        queued = self.routes.get((method, path))
        if not queued:
            raise AssertionError(f"Unexpected request {method} {path}")
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return await response()
        return response


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> EntityStore:
    return EntityStore(clock=clock)


@pytest.fixture
def cache(clock: FakeClock) -> EntityCache:
    return EntityCache(clock=clock)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
