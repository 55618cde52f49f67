"""Entity cache and mutation-invalidation engine.

This package is the single source of truth for server-owned entities on the
client: it serves cached reads, shares concurrent loads, applies optimistic
writes with versioned rollback, and invalidates dependent keys.
"""

from pytracker.cache.bindings import EntityBinding, MutationBinding
from pytracker.cache.bus import NotificationBus, Subscription
from pytracker.cache.engine import EntityCache
from pytracker.cache.entry import CacheEntry, EntryStatus, MutationStatus, PatchResult
from pytracker.cache.fetcher import FetchCoordinator
from pytracker.cache.keys import (
    CacheKey,
    KeyPattern,
    as_pattern,
    build_key,
    build_pattern,
    matches_pattern,
    parse_key,
)
from pytracker.cache.mutations import (
    MutationEngine,
    MutationSpec,
    OptimisticWriter,
    PendingMutation,
    RollbackToken,
)
from pytracker.cache.store import EntityStore

__all__ = [
    "CacheEntry",
    "CacheKey",
    "EntityBinding",
    "EntityCache",
    "EntityStore",
    "EntryStatus",
    "FetchCoordinator",
    "KeyPattern",
    "MutationBinding",
    "MutationEngine",
    "MutationSpec",
    "MutationStatus",
    "NotificationBus",
    "OptimisticWriter",
    "PatchResult",
    "PendingMutation",
    "RollbackToken",
    "Subscription",
    "as_pattern",
    "build_key",
    "build_pattern",
    "matches_pattern",
    "parse_key",
]
