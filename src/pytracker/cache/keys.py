"""Cache key builders and invalidation patterns. Single place for key format.

A :class:`CacheKey` is identified by a canonical JSON token of
``[resource, params]`` with params sorted by name, so parameter order never
affects equality. Param values are restricted to scalars; integral floats are
folded into ints (``1.0`` and ``1`` name the same entity) while ``True`` and
``1`` stay distinct.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from pytracker.exceptions import TrackerValidationError

Scalar: TypeAlias = str | int | float | bool | None
ParamItems: TypeAlias = tuple[tuple[str, Scalar], ...]


def _normalize_value(name: str, value: Any) -> Scalar:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        return str(value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise TrackerValidationError(f"Cache key param {name!r} must be finite, got {value!r}")
        return int(value) if value.is_integer() else value
    raise TrackerValidationError(
        f"Cache key param {name!r} must be a scalar (str, int, float, bool or None), got {type(value).__name__}"
    )


def _normalize_params(params: Mapping[str, Any] | None, extra: Mapping[str, Any]) -> ParamItems:
    merged: dict[Any, Any] = {}
    if params is not None:
        if not isinstance(params, Mapping):
            raise TrackerValidationError(f"Cache key params must be a mapping, got {type(params).__name__}")
        merged.update(params)
    merged.update(extra)

    items: list[tuple[str, Scalar]] = []
    for name, value in merged.items():
        if not isinstance(name, str) or not name:
            raise TrackerValidationError(f"Cache key param names must be non-empty strings, got {name!r}")
        items.append((name, _normalize_value(name, value)))
    return tuple(sorted(items, key=lambda item: item[0]))


def _validate_resource(resource: Any) -> str:
    if not isinstance(resource, str) or not resource.strip():
        raise TrackerValidationError(f"Cache key resource must be a non-empty string, got {resource!r}")
    return resource


def _encode(resource: str, params: ParamItems) -> str:
    return json.dumps([resource, dict(params)], sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _same_scalar(left: Scalar, right: Scalar) -> bool:
    # Values are normalized, so a type mismatch always means "different".
    return type(left) is type(right) and left == right


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Deterministic identifier for one cached entity or query result."""

    token: str
    resource: str = field(compare=False)
    params: ParamItems = field(compare=False, repr=False)

    def param(self, name: str, default: Scalar = None) -> Scalar:
        for param_name, value in self.params:
            if param_name == name:
                return value
        return default

    def as_dict(self) -> dict[str, Scalar]:
        return dict(self.params)

    def __str__(self) -> str:
        if not self.params:
            return self.resource
        query = "&".join(f"{name}={value}" for name, value in self.params)
        return f"{self.resource}?{query}"


@dataclass(frozen=True, slots=True)
class KeyPattern:
    """Partial key used for bulk invalidation.

    ``resource=None`` matches every resource. Params present in the pattern
    must be present in the key with an equal value; params absent from the
    pattern match anything.
    """

    resource: str | None = None
    params: ParamItems = ()

    def matches(self, key: CacheKey) -> bool:
        if self.resource is not None and key.resource != self.resource:
            return False
        key_params = dict(key.params)
        for name, value in self.params:
            if name not in key_params:
                return False
            if not _same_scalar(key_params[name], value):
                return False
        return True

    def __str__(self) -> str:
        resource = self.resource if self.resource is not None else "*"
        if not self.params:
            return resource
        query = "&".join(f"{name}={value}" for name, value in self.params)
        return f"{resource}?{query}"


PatternLike: TypeAlias = KeyPattern | CacheKey | Mapping[str, Any]


def build_key(resource: str, params: Mapping[str, Any] | None = None, /, **kwargs: Any) -> CacheKey:
    """Build a cache key from a resource type and scalar scope params.

    Params may be given as a mapping, as keyword arguments, or both (keyword
    arguments win).

    Raises
    ------
    TrackerValidationError
        If the resource is empty or a param is not a finite scalar.
    """
    name = _validate_resource(resource)
    items = _normalize_params(params, kwargs)
    return CacheKey(token=_encode(name, items), resource=name, params=items)


def parse_key(token: str) -> CacheKey:
    """Rebuild a :class:`CacheKey` from its canonical token."""
    try:
        decoded = json.loads(token)
    except (TypeError, json.JSONDecodeError) as exc:
        raise TrackerValidationError(f"Not a cache key token: {token!r}") from exc
    if not (isinstance(decoded, list) and len(decoded) == 2 and isinstance(decoded[1], dict)):
        raise TrackerValidationError(f"Not a cache key token: {token!r}")
    return build_key(decoded[0], decoded[1])


def build_pattern(resource: str | None = None, params: Mapping[str, Any] | None = None, /, **kwargs: Any) -> KeyPattern:
    """Build an invalidation pattern (``resource=None`` matches any resource)."""
    name = _validate_resource(resource) if resource is not None else None
    return KeyPattern(resource=name, params=_normalize_params(params, kwargs))


def as_pattern(value: PatternLike) -> KeyPattern:
    """Coerce a pattern, a concrete key, or a bare params mapping to a pattern."""
    if isinstance(value, KeyPattern):
        return value
    if isinstance(value, CacheKey):
        return KeyPattern(resource=value.resource, params=value.params)
    if isinstance(value, Mapping):
        return build_pattern(None, value)
    raise TrackerValidationError(f"Cannot use {type(value).__name__} as a cache key pattern")


def matches_pattern(key: CacheKey, pattern: PatternLike) -> bool:
    """Return ``True`` when *key* falls under *pattern*."""
    return as_pattern(pattern).matches(key)
