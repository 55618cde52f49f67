"""Deterministic freshness and write-acceptance policy.

This module holds the pure decisions the store and fetcher share; it never
touches entries itself.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from pytracker.cache.entry import CacheEntry, EntryStatus


def is_fresh(entry: CacheEntry, now: datetime, stale_time: float) -> bool:
    """Whether a successful entry may be served without a refetch."""
    if entry.status != EntryStatus.SUCCESS or entry.updated_at is None:
        return False
    if stale_time <= 0:
        return False
    if stale_time == float("inf"):
        return True
    return (now - entry.updated_at) < timedelta(seconds=stale_time)


def should_accept_write(*, current_version: int, base_version: int) -> bool:
    """A versioned write only lands on the exact version it was computed from."""
    return current_version == base_version


def retry_delay_for(attempt: int, base_delay: float) -> float:
    """Exponential backoff: ``base_delay * 2**(attempt - 1)`` for attempt >= 1."""
    if attempt <= 0 or base_delay <= 0:
        return 0.0
    return base_delay * (2 ** (attempt - 1))
