"""Single-flight fetch coordination.

Owns:
- serving fresh entries without calling the loader
- sharing one loader task between concurrent callers of the same key
- writing the outcome (data or error) to the store
- detaching cancelled callers and aborting loads nobody waits for
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, TypeVar

from pytracker.cache.entry import CacheEntry
from pytracker.cache.keys import CacheKey
from pytracker.cache.policy import is_fresh, retry_delay_for
from pytracker.cache.store import EntityStore
from pytracker.exceptions import TrackerNetworkError

_logger = logging.getLogger(__name__)

T = TypeVar("T")

Loader = Callable[[], Awaitable[T]]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class _Flight:
    """One in-flight loader run shared by ``waiters`` callers."""

    key: CacheKey
    task: asyncio.Task[Any]
    waiters: int = 0


class FetchCoordinator:
    """Resolve keys from the store or through exactly one loader call."""

    def __init__(
        self,
        store: EntityStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
        stale_time: float = 0.0,
        retries: int = 0,
        retry_delay: float = 0.0,
    ) -> None:
        self._store = store
        self._clock = clock
        self._stale_time = stale_time
        self._retries = retries
        self._retry_delay = retry_delay
        self._in_flight: dict[CacheKey, _Flight] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def is_fetching(self, key: CacheKey) -> bool:
        return key in self._in_flight

    async def fetch(
        self,
        key: CacheKey,
        loader: Loader[T],
        *,
        stale_time: float | None = None,
        force: bool = False,
    ) -> T:
        """Return data for *key*, loading it at most once across concurrent callers.

        Parameters
        ----------
        key
            Entry to resolve.
        loader
            Zero-argument coroutine function performing the remote read.
        stale_time
            Seconds a successful entry stays fresh. Falls back to the
            coordinator default.
        force
            Ignore freshness and load (an in-flight load is still shared).

        Raises
        ------
        Exception
            Whatever the loader raised; the same error reaches every waiter
            and is stored in the entry.
        """
        effective_stale_time = self._stale_time if stale_time is None else stale_time
        entry = self._store.get(key)
        if not force and is_fresh(entry, self._clock(), effective_stale_time):
            _logger.debug("Serving fresh %s (v%d)", key, entry.version)
            return entry.data  # type: ignore[no-any-return]

        flight = self._in_flight.get(key)
        # An invalidation after the load started means its result may predate
        # the change; start over instead of joining.
        if flight is None or entry.invalidated:
            flight = self._start(key, loader, entry)
        return await self._wait(flight)  # type: ignore[no-any-return]

    def _start(self, key: CacheKey, loader: Loader[Any], previous: CacheEntry) -> _Flight:
        loading = self._store.mark_loading(key)
        loop = asyncio.get_running_loop()
        task = loop.create_task(
            self._run(key, loader, loading.version),
            name=f"pytracker-fetch:{key}",
        )
        flight = _Flight(key=key, task=task)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(functools.partial(self._finish, flight, previous, loading.version))
        self._in_flight[key] = flight
        _logger.debug("Started fetch for %s", key)
        return flight

    async def _wait(self, flight: _Flight) -> Any:
        flight.waiters += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                _logger.debug("Last waiter for %s detached; cancelling fetch", flight.key)
                flight.task.cancel()

    def _owns(self, key: CacheKey) -> bool:
        flight = self._in_flight.get(key)
        return flight is not None and flight.task is asyncio.current_task()

    async def _run(self, key: CacheKey, loader: Loader[Any], loading_version: int) -> Any:
        try:
            data = await self._load_with_retries(key, loader)
        except Exception as exc:
            if self._owns(key) and not self._expire_if_moved(key, loading_version):
                self._store.set_error(key, exc)
            _logger.debug("Fetch for %s failed: %r", key, exc)
            raise
        else:
            # A superseded load still answers its own waiters but must not
            # overwrite the entry its replacement is responsible for.
            if self._owns(key) and not self._expire_if_moved(key, loading_version):
                self._store.set(key, data)
            return data

    def _expire_if_moved(self, key: CacheKey, loading_version: int) -> bool:
        """True when something wrote to *key* after its loading mark.

        The load may predate that write (typically an invalidation), so its
        outcome is not stored; a leftover loading mark becomes idle and
        invalidated so the next access loads again.
        """
        if self._store.version_of(key) == loading_version:
            return False
        _logger.debug("Result for %s predates a newer write; not stored", key)
        self._store.expire_loading(key)
        return True

    def _finish(
        self,
        flight: _Flight,
        previous: CacheEntry,
        loading_version: int,
        task: asyncio.Task[Any],
    ) -> None:
        # Runs even when the task was cancelled before its first step.
        if self._in_flight.get(flight.key) is not flight:
            return
        del self._in_flight[flight.key]
        if task.cancelled():
            self._store.restore(flight.key, previous, loading_version)

    async def _load_with_retries(self, key: CacheKey, loader: Loader[Any]) -> Any:
        attempt = 0
        while True:
            try:
                return await loader()
            except TrackerNetworkError as exc:
                if not exc.retryable or attempt >= self._retries:
                    raise
                attempt += 1
                delay = retry_delay_for(attempt, self._retry_delay)
                _logger.debug(
                    "Retrying fetch for %s in %.2fs (attempt %d/%d): %s",
                    key,
                    delay,
                    attempt,
                    self._retries,
                    exc,
                )
                await asyncio.sleep(delay)

    async def cancel_all(self) -> None:
        """Abort every running load, superseded ones included."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
