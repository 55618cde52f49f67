"""Shared helpers for tracker API endpoint handling.

Every tracker endpoint answers with the same envelope::

    {"success": true, "data": ...}
    {"success": false, "error": "..."}

This module unwraps it and turns payloads into models, mapping malformed
responses to :class:`~pytracker.exceptions.TrackerNetworkError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import ValidationError

from pytracker.exceptions import TrackerNetworkError
from pytracker.models._base import TrackerBaseModel

M = TypeVar("M", bound=TrackerBaseModel)


def unwrap_envelope(body: Any, *, endpoint: str) -> Any:
    """Return ``body["data"]`` or raise when the server reports failure."""
    if not isinstance(body, Mapping):
        raise TrackerNetworkError(
            f"{endpoint} returned an unexpected body: {str(body)[:128]}",
            code="invalid_response",
            endpoint=endpoint,
        )
    if body.get("success") is False:
        message = body.get("error") or body.get("message") or "Request failed"
        raise TrackerNetworkError(
            f"{endpoint} failed: {message}",
            code="request_failed",
            endpoint=endpoint,
        )
    return body.get("data")


def parse_model(model: type[M], data: Any, *, endpoint: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise TrackerNetworkError(
            f"{endpoint} returned an invalid {model.__name__}: {exc.error_count()} error(s)",
            code="invalid_response",
            endpoint=endpoint,
        ) from exc


def parse_model_list(model: type[M], data: Any, *, endpoint: str) -> list[M]:
    """Parse a list payload; a missing/null list reads as empty."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise TrackerNetworkError(
            f"{endpoint} returned {type(data).__name__}, expected a list",
            code="invalid_response",
            endpoint=endpoint,
        )
    return [parse_model(model, item, endpoint=endpoint) for item in data]
