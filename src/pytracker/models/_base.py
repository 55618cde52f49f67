"""Base model and enum for tracker API payloads.

Every tracker model inherits from :class:`TrackerBaseModel`, which maps the
API's camelCase keys to snake_case fields (``alias_generator=to_camel``) and
ignores relation objects and other keys it does not declare.

Enums inherit from :class:`TrackerEnum`, which resolves values the server
sends without a mapped member to ``UNKNOWN`` instead of raising.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class TrackerEnum(enum.StrEnum):
    """Base for tracker string enums. Subclasses must define ``UNKNOWN``."""

    @classmethod
    def _missing_(cls, value: object) -> TrackerEnum:
        if isinstance(value, str):
            for member in cls:
                if member.value == value.upper():
                    return member
        unknown: TrackerEnum = cls["UNKNOWN"]
        return unknown


class TrackerBaseModel(BaseModel):
    """Base for tracker entities (immutable; copy to change)."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: int
    created_at: datetime | None = None

    @property
    def is_temporary(self) -> bool:
        """Placeholder inserted by an optimistic create (negative id)."""
        return self.id < 0

    def with_changes(self, changes: Mapping[str, Any]) -> Self:
        """Return a validated copy with camelCase API *changes* applied."""
        merged = self.model_dump(by_alias=True)
        merged.update(changes)
        return self.model_validate(merged)
