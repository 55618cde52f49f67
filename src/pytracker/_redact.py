"""Helpers for safe debug logging.

Tracker requests carry credentials: passwords on login, bearer tokens in
headers and bodies, and the refresh cookie. Everything the transport logs at
DEBUG level goes through :func:`redact_for_log` or :func:`redact_headers`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

_REDACTED = "<redacted>"

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "password",
        "token",
        "accesstoken",
        "refreshtoken",
        "tokenhash",
        "authorization",
        "cookie",
        "setcookie",
    }
)


def _is_sensitive(key: str) -> bool:
    return key.lower().replace("_", "").replace("-", "") in _SENSITIVE_KEYS


def _redact_string(value: str, max_string: int) -> str:
    if value[:7].lower() == "bearer ":
        return f"Bearer {_REDACTED}"
    if len(value) > max_string:
        return f"{value[:max_string]}…<truncated>"
    return value


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of a JSON-like *value* with credentials masked."""
    if _depth > 20:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return _redact_string(value, max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {
            str(key): _REDACTED
            if _is_sensitive(str(key))
            else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            for key, item in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]
    # Models and other objects: never dump internals.
    return f"<{type(value).__name__}>"


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Mask credential-bearing HTTP headers."""
    return {name: _REDACTED if _is_sensitive(name) else value for name, value in headers.items()}
