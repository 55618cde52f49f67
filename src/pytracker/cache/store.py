"""Versioned in-memory entity store.

This is the only component allowed to write cache entries. Every write bumps
the entry version by one and notifies the bus for that key. Entries are never
deleted (``clear`` resets them to idle), so a version number is never reused
for the same key.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pytracker.cache.bus import NotificationBus
from pytracker.cache.entry import IDLE_ENTRY, CacheEntry, EntryStatus, PatchResult, copy_entry
from pytracker.cache.keys import CacheKey, PatternLike, as_pattern
from pytracker.cache.policy import should_accept_write
from pytracker.exceptions import TrackerStaleWriteError

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EntityStore:
    """In-memory mapping from :class:`CacheKey` to :class:`CacheEntry`."""

    def __init__(
        self,
        *,
        bus: NotificationBus | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._bus = bus if bus is not None else NotificationBus()
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    def _current(self, key: CacheKey) -> CacheEntry:
        return self._entries.get(key, IDLE_ENTRY)

    def _write(self, key: CacheKey, entry: CacheEntry) -> None:
        self._entries[key] = entry
        self._bus.notify(key, entry)

    def _check_version(self, key: CacheKey, current: CacheEntry, base_version: int) -> None:
        if not should_accept_write(current_version=current.version, base_version=base_version):
            raise TrackerStaleWriteError(
                f"Write to {key} computed against v{base_version}, entry is at v{current.version}",
                base_version=base_version,
                current_version=current.version,
            )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: CacheKey) -> CacheEntry:
        """Current entry for *key*, or a synthesized idle entry. Never writes."""
        return copy_entry(self._current(key))

    def keys(self, pattern: PatternLike | None = None) -> list[CacheKey]:
        if pattern is None:
            return list(self._entries)
        matcher = as_pattern(pattern)
        return [key for key in self._entries if matcher.matches(key)]

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def version_of(self, key: CacheKey) -> int:
        return self._current(key).version

    # ------------------------------------------------------------------
    # Confirmed writes
    # ------------------------------------------------------------------

    def set(self, key: CacheKey, data: Any) -> None:
        """Store confirmed data: status success, ``updated_at = now``."""
        current = self._current(key)
        self._write(
            key,
            CacheEntry(
                status=EntryStatus.SUCCESS,
                data=copy.deepcopy(data),
                error=None,
                updated_at=self._clock(),
                version=current.version + 1,
            ),
        )

    def set_error(self, key: CacheKey, error: Exception) -> None:
        """Record a failed fetch, keeping the last known data visible."""
        current = self._current(key)
        self._write(
            key,
            CacheEntry(
                status=EntryStatus.ERROR,
                data=current.data,
                error=error,
                updated_at=self._clock(),
                version=current.version + 1,
            ),
        )

    def mark_loading(self, key: CacheKey) -> CacheEntry:
        """Flag *key* as being fetched and return the written entry."""
        current = self._current(key)
        entry = current.model_copy(
            update={
                "status": EntryStatus.LOADING,
                "version": current.version + 1,
                "invalidated": False,
            }
        )
        self._write(key, entry)
        return copy_entry(entry)

    def expire_loading(self, key: CacheKey) -> bool:
        """Turn a leftover ``loading`` mark into ``idle`` + invalidated, keeping data.

        Used when a load settles after the entry moved past its loading mark,
        so its result can no longer be trusted as current.
        """
        current = self._current(key)
        if current.status != EntryStatus.LOADING:
            return False
        self._write(
            key,
            current.model_copy(
                update={
                    "status": EntryStatus.IDLE,
                    "version": current.version + 1,
                    "invalidated": True,
                }
            ),
        )
        return True

    # ------------------------------------------------------------------
    # Versioned writes
    # ------------------------------------------------------------------

    def patch(self, key: CacheKey, updater: Callable[[Any], Any], base_version: int) -> PatchResult:
        """Apply ``updater(previous_data)`` if the entry is still at *base_version*.

        A patch computed against an outdated snapshot is rejected and
        reported as ``applied=False``; it never overwrites a newer write.
        Status and error are preserved.
        """
        current = self._current(key)
        try:
            self._check_version(key, current, base_version)
        except TrackerStaleWriteError as exc:
            _logger.debug("Stale patch rejected: %s", exc)
            return PatchResult(applied=False, version=current.version)

        next_data = updater(copy.deepcopy(current.data))
        entry = current.model_copy(
            update={
                "data": copy.deepcopy(next_data),
                "version": current.version + 1,
                "invalidated": False,
            }
        )
        self._write(key, entry)
        return PatchResult(applied=True, version=entry.version)

    def restore(self, key: CacheKey, snapshot: CacheEntry, base_version: int) -> PatchResult:
        """Reinstate *snapshot* (status, data, error, timestamp) under a new version.

        Same compare-and-write rule as :meth:`patch`: if anything wrote to
        the key after *base_version*, the newer write wins and nothing
        changes.
        """
        current = self._current(key)
        try:
            self._check_version(key, current, base_version)
        except TrackerStaleWriteError as exc:
            _logger.debug("Stale restore rejected: %s", exc)
            return PatchResult(applied=False, version=current.version)

        entry = snapshot.model_copy(update={"version": current.version + 1})
        self._write(key, entry)
        return PatchResult(applied=True, version=entry.version)

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    def invalidate(self, pattern: PatternLike) -> list[CacheKey]:
        """Mark every entry matching *pattern* idle, keeping its data.

        Returns the affected keys.
        """
        matcher = as_pattern(pattern)
        affected: list[CacheKey] = []
        for key, current in list(self._entries.items()):
            if not matcher.matches(key):
                continue
            self._write(
                key,
                current.model_copy(
                    update={
                        "status": EntryStatus.IDLE,
                        "version": current.version + 1,
                        "invalidated": True,
                    }
                ),
            )
            affected.append(key)
        _logger.debug("Invalidated %d entr%s for %s", len(affected), "y" if len(affected) == 1 else "ies", matcher)
        return affected

    def clear(self) -> None:
        """Drop all cached data; every known key reads as idle afterwards."""
        for key, current in list(self._entries.items()):
            self._write(key, CacheEntry(version=current.version + 1))
        _logger.debug("Cleared %d cache entries", len(self._entries))
