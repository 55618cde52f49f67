"""Optimistic mutations with versioned rollback and pattern invalidation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pytracker.cache.entry import CacheEntry
from pytracker.cache.keys import CacheKey, PatternLike
from pytracker.cache.store import EntityStore

_logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(slots=True)
class RollbackToken:
    """What an optimistic update changed and how to undo it.

    ``snapshots`` holds each touched key's entry before its first optimistic
    write; ``written_versions`` the version of its last optimistic write,
    which is the only version a rollback may overwrite.
    """

    snapshots: dict[CacheKey, CacheEntry] = field(default_factory=dict)
    written_versions: dict[CacheKey, int] = field(default_factory=dict)

    @property
    def target_keys(self) -> frozenset[CacheKey]:
        return frozenset(self.written_versions)


class OptimisticWriter:
    """Store facade handed to ``optimistic_update`` callbacks.

    Every write goes through :meth:`EntityStore.patch` with the version read
    just before it, and the first write to a key records its snapshot.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self._token = RollbackToken()

    @property
    def token(self) -> RollbackToken:
        return self._token

    def get(self, key: CacheKey) -> CacheEntry:
        return self._store.get(key)

    def patch(self, key: CacheKey, updater: Callable[[Any], Any]) -> bool:
        """Optimistically replace the data of *key* with ``updater(data)``."""
        current = self._store.get(key)
        self._token.snapshots.setdefault(key, current)
        result = self._store.patch(key, updater, current.version)
        if result.applied:
            self._token.written_versions[key] = result.version
        return result.applied

    def set(self, key: CacheKey, data: Any) -> bool:
        return self.patch(key, lambda _previous: data)


@dataclass
class MutationSpec(Generic[R]):
    """Description of one write against the remote collaborator.

    Parameters
    ----------
    remote_call
        Zero-argument coroutine function performing the write.
    optimistic_update
        Optional callback applying local patches before the remote call.
    invalidates
        Patterns invalidated once the remote call succeeds.
    """

    remote_call: Callable[[], Awaitable[R]]
    optimistic_update: Callable[[OptimisticWriter], None] | None = None
    invalidates: Sequence[PatternLike] = ()


@dataclass(slots=True)
class PendingMutation:
    token: RollbackToken
    invalidates: Sequence[PatternLike]

    @property
    def target_keys(self) -> frozenset[CacheKey]:
        return self.token.target_keys


class MutationEngine:
    """Execute mutations; the only writer allowed to apply optimistic patches."""

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self._pending: list[PendingMutation] = []

    @property
    def pending(self) -> int:
        """Number of mutations whose remote call has not settled."""
        return len(self._pending)

    async def mutate(self, spec: MutationSpec[R]) -> R:
        """Run *spec* and return the remote call's result.

        The remote error (or cancellation) is always re-raised, after every
        optimistic write has been rolled back.
        """
        writer = OptimisticWriter(self._store)
        if spec.optimistic_update is not None:
            try:
                spec.optimistic_update(writer)
            except Exception:
                _logger.debug("Optimistic update raised; aborting before remote call", exc_info=True)
                self.rollback(writer.token)
                raise

        pending = PendingMutation(token=writer.token, invalidates=spec.invalidates)
        self._pending.append(pending)
        try:
            result = await spec.remote_call()
        except asyncio.CancelledError:
            # Outcome unknown: undo the guess and let the server decide.
            self.rollback(pending.token)
            self._invalidate(spec.invalidates)
            raise
        except Exception as exc:
            _logger.debug("Mutation failed (%r); rolling back %d key(s)", exc, len(pending.target_keys))
            self.rollback(pending.token)
            raise
        finally:
            self._pending.remove(pending)

        self._invalidate(spec.invalidates)
        return result

    def rollback(self, token: RollbackToken) -> list[CacheKey]:
        """Restore every key *token* touched, unless a newer write landed since.

        Returns the keys actually restored.
        """
        restored: list[CacheKey] = []
        for key, written_version in token.written_versions.items():
            result = self._store.restore(key, token.snapshots[key], written_version)
            if result.applied:
                restored.append(key)
            else:
                _logger.debug("Rollback of %s skipped; newer data present", key)
        return restored

    def _invalidate(self, patterns: Sequence[PatternLike]) -> None:
        for pattern in patterns:
            self._store.invalidate(pattern)
