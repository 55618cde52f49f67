"""Framework-agnostic read/write bindings for UI layers.

A UI adapter wraps :class:`EntityBinding` (current entry + change callback)
and :class:`MutationBinding` (rollback-aware write with its own status).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from pytracker.cache.entry import CacheEntry, MutationStatus
from pytracker.cache.fetcher import FetchCoordinator, Loader
from pytracker.cache.keys import CacheKey
from pytracker.cache.mutations import MutationEngine, MutationSpec
from pytracker.cache.store import EntityStore
from pytracker.exceptions import TrackerError

_logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")
R = TypeVar("R")


class EntityBinding(Generic[T]):
    """Observe one key and load it through the fetch coordinator.

    While open and enabled, an invalidation of the key schedules a
    background refetch, so observers converge on server data without
    polling. ``enabled=False`` never calls the loader.
    """

    def __init__(
        self,
        *,
        store: EntityStore,
        fetcher: FetchCoordinator,
        key: CacheKey,
        loader: Loader[T],
        stale_time: float | None = None,
        enabled: bool = True,
        refetch_on_invalidate: bool = True,
        on_change: Callable[[CacheEntry], None] | None = None,
    ) -> None:
        self._store = store
        self._fetcher = fetcher
        self._key = key
        self._loader = loader
        self._stale_time = stale_time
        self._enabled = enabled
        self._refetch_on_invalidate = refetch_on_invalidate
        self._on_change = on_change
        self._loop: asyncio.AbstractEventLoop | None = None
        self._refreshes: set[asyncio.Task[None]] = set()
        self._closed = False
        self._unsubscribe = store.bus.subscribe(key, self._on_entry)

    @property
    def key(self) -> CacheKey:
        return self._key

    @property
    def entry(self) -> CacheEntry:
        return self._store.get(self._key)

    @property
    def data(self) -> T | None:
        return self.entry.data  # type: ignore[no-any-return]

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = value

    @property
    def closed(self) -> bool:
        return self._closed

    async def load(self, *, force: bool = False) -> T | None:
        """Resolve the key (cached, shared, or freshly loaded)."""
        if self._closed:
            raise TrackerError(f"Binding for {self._key} is closed")
        self._loop = asyncio.get_running_loop()
        if not self._enabled:
            return self.data
        return await self._fetcher.fetch(self._key, self._loader, stale_time=self._stale_time, force=force)

    def _on_entry(self, entry: CacheEntry) -> None:
        if self._on_change is not None:
            self._on_change(entry)
        if entry.invalidated and self._refetch_on_invalidate and self._enabled and not self._closed:
            self._schedule_refresh()

    def _schedule_refresh(self) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        task = loop.create_task(self._background_refresh(), name=f"pytracker-refetch:{self._key}")
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def _background_refresh(self) -> None:
        try:
            await self.load()
        except Exception:
            # The error is already stored in the entry for observers.
            _logger.debug("Background refetch of %s failed", self._key, exc_info=True)

    def close(self) -> None:
        """Stop observing; pending background refetches detach."""
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        for task in list(self._refreshes):
            task.cancel()


class MutationBinding(Generic[V, R]):
    """Reusable write: ``await binding(variables)`` runs ``build(variables)``."""

    def __init__(self, engine: MutationEngine, build: Callable[[V], MutationSpec[R]]) -> None:
        self._engine = engine
        self._build = build
        self._status = MutationStatus.IDLE
        self._data: R | None = None
        self._error: Exception | None = None

    @property
    def status(self) -> MutationStatus:
        return self._status

    @property
    def data(self) -> R | None:
        return self._data

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def is_pending(self) -> bool:
        return self._status == MutationStatus.PENDING

    async def mutate(self, variables: V) -> R:
        spec = self._build(variables)
        self._status = MutationStatus.PENDING
        self._error = None
        try:
            result = await self._engine.mutate(spec)
        except asyncio.CancelledError:
            self._status = MutationStatus.IDLE
            raise
        except Exception as exc:
            self._status = MutationStatus.ERROR
            self._error = exc
            raise
        self._status = MutationStatus.SUCCESS
        self._data = result
        return result

    async def __call__(self, variables: V) -> R:
        return await self.mutate(variables)

    def reset(self) -> None:
        self._status = MutationStatus.IDLE
        self._data = None
        self._error = None

    def __repr__(self) -> str:
        return f"MutationBinding(status={self._status.value!r})"
