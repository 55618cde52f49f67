"""Entity cache facade with an explicit create/dispose lifecycle."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from pytracker.cache.bindings import EntityBinding, MutationBinding
from pytracker.cache.bus import Listener, NotificationBus, Unsubscribe
from pytracker.cache.entry import CacheEntry
from pytracker.cache.fetcher import FetchCoordinator, Loader
from pytracker.cache.keys import CacheKey, PatternLike
from pytracker.cache.mutations import MutationEngine, MutationSpec
from pytracker.cache.store import EntityStore
from pytracker.config import TrackerConfig
from pytracker.exceptions import TrackerError

_logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")
R = TypeVar("R")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EntityCache:
    """One owned cache instance: store, bus, fetcher and mutation engine.

    Inject it into consumers instead of reaching for a global. Usage::

        async with EntityCache.create(stale_time=30) as cache:
            members = await cache.fetch(members_key, load_members)
    """

    def __init__(
        self,
        *,
        stale_time: float = 0.0,
        fetch_retries: int = 0,
        retry_delay: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._bus = NotificationBus()
        self._store = EntityStore(bus=self._bus, clock=clock)
        self._fetcher = FetchCoordinator(
            self._store,
            clock=clock,
            stale_time=stale_time,
            retries=fetch_retries,
            retry_delay=retry_delay,
        )
        self._mutations = MutationEngine(self._store)
        self._bindings: list[EntityBinding[Any]] = []
        self._disposed = False

    @classmethod
    def create(cls, config: TrackerConfig | None = None, **overrides: Any) -> EntityCache:
        """Build a cache from client configuration (keyword arguments win)."""
        kwargs: dict[str, Any] = {}
        if config is not None:
            kwargs.update(
                stale_time=config.stale_time,
                fetch_retries=config.fetch_retries,
                retry_delay=config.retry_delay,
            )
        kwargs.update(overrides)
        return cls(**kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> EntityCache:
        self._require_open()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.dispose()

    async def dispose(self) -> None:
        """Close bindings, abort loads, drop subscriptions. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        for binding in self._bindings:
            binding.close()
        self._bindings.clear()
        await self._fetcher.cancel_all()
        self._bus.clear()
        _logger.debug("Entity cache disposed")

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _require_open(self) -> None:
        if self._disposed:
            raise TrackerError("EntityCache has been disposed")

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def store(self) -> EntityStore:
        return self._store

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    @property
    def fetcher(self) -> FetchCoordinator:
        return self._fetcher

    @property
    def mutations(self) -> MutationEngine:
        return self._mutations

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def get(self, key: CacheKey) -> CacheEntry:
        self._require_open()
        return self._store.get(key)

    async def fetch(
        self,
        key: CacheKey,
        loader: Loader[T],
        *,
        stale_time: float | None = None,
        force: bool = False,
    ) -> T:
        self._require_open()
        return await self._fetcher.fetch(key, loader, stale_time=stale_time, force=force)

    async def mutate(self, spec: MutationSpec[R]) -> R:
        self._require_open()
        return await self._mutations.mutate(spec)

    def invalidate(self, pattern: PatternLike) -> list[CacheKey]:
        self._require_open()
        return self._store.invalidate(pattern)

    def subscribe(self, key: CacheKey, callback: Listener) -> Unsubscribe:
        self._require_open()
        return self._bus.subscribe(key, callback)

    def clear(self) -> None:
        """Forget all cached data (e.g. after the signed-in user changes)."""
        self._require_open()
        self._store.clear()

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------

    def use_entity(
        self,
        key: CacheKey,
        loader: Loader[T],
        *,
        stale_time: float | None = None,
        enabled: bool = True,
        refetch_on_invalidate: bool = True,
        on_change: Callable[[CacheEntry], None] | None = None,
    ) -> EntityBinding[T]:
        """Create a read binding; call ``await binding.load()`` to resolve it."""
        self._require_open()
        binding: EntityBinding[T] = EntityBinding(
            store=self._store,
            fetcher=self._fetcher,
            key=key,
            loader=loader,
            stale_time=stale_time,
            enabled=enabled,
            refetch_on_invalidate=refetch_on_invalidate,
            on_change=on_change,
        )
        self._bindings = [existing for existing in self._bindings if not existing.closed]
        self._bindings.append(binding)
        return binding

    def use_mutation(self, build: Callable[[V], MutationSpec[R]]) -> MutationBinding[V, R]:
        """Create a write binding from a ``variables -> MutationSpec`` builder."""
        self._require_open()
        return MutationBinding(self._mutations, build)
