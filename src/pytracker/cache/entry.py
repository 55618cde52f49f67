"""Cache entry value types.

Entries are immutable snapshots. Only :class:`~pytracker.cache.store.EntityStore`
creates new ones; consumers receive copies.
"""

from __future__ import annotations

import copy
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntryStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


class MutationStatus(StrEnum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


class CacheEntry(BaseModel):
    """State of one cache key at a given version."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    status: EntryStatus = EntryStatus.IDLE
    data: Any = None
    error: Exception | None = None
    updated_at: datetime | None = Field(
        default=None,
        description="Time of the last confirmed write (fetch result or error).",
    )
    version: int = Field(default=0, ge=0)
    invalidated: bool = Field(
        default=False,
        description="Set by invalidation; cleared by the next write.",
    )

    @field_validator("updated_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def is_idle(self) -> bool:
        return self.status == EntryStatus.IDLE

    @property
    def is_loading(self) -> bool:
        return self.status == EntryStatus.LOADING

    @property
    def is_success(self) -> bool:
        return self.status == EntryStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == EntryStatus.ERROR


IDLE_ENTRY = CacheEntry()


def copy_entry(entry: CacheEntry) -> CacheEntry:
    """Entry whose data can be mutated without touching *entry*."""
    if entry.data is None:
        return entry
    return entry.model_copy(update={"data": copy.deepcopy(entry.data)})


class PatchResult(NamedTuple):
    """Outcome of a versioned write."""

    applied: bool
    version: int
