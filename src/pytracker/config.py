"""Client configuration for pytracker."""

from __future__ import annotations

import dataclasses
import math
import os
from collections.abc import Mapping
from typing import Any

from pytracker.exceptions import TrackerConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], name: str, cast: type) -> Any:
    raw = env.get(name)
    if raw is None:
        return None
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise TrackerConfigError(f"{name} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class TrackerConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Tracker server origin. Defaults to the local development server.
    api_prefix : str
        Path prefix shared by every REST endpoint.
    access_token : str or None
        Bearer token sent with authenticated requests. Usually obtained via
        :meth:`pytracker.client.TrackerClient.login`.
    stale_time : float
        Seconds a successful fetch is served from cache before the next
        access refetches. ``0`` (the default) refetches on every access;
        ``math.inf`` never considers data stale.
    fetch_retries : int
        Extra attempts for a loader that fails with a retryable network
        error before the error is stored in the cache entry.
    retry_delay : float
        Base delay in seconds between retries; doubles on each attempt.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    api_trace_enabled : bool
        Log redacted request/response bodies at DEBUG level.
    """

    base_url: str = "http://localhost:4000"
    api_prefix: str = "/api"
    access_token: str | None = None
    stale_time: float = 0.0
    fetch_retries: int = 1
    retry_delay: float = 0.5
    request_timeout: float = 30.0
    api_trace_enabled: bool = False

    def __post_init__(self) -> None:
        if self.stale_time < 0 or math.isnan(self.stale_time):
            raise TrackerConfigError("stale_time must be >= 0")
        if self.fetch_retries < 0:
            raise TrackerConfigError("fetch_retries must be >= 0")
        if self.retry_delay < 0:
            raise TrackerConfigError("retry_delay must be >= 0")
        if self.request_timeout <= 0:
            raise TrackerConfigError("request_timeout must be > 0")

    @property
    def api_url(self) -> str:
        """Base URL joined with the API prefix, without a trailing slash."""
        return f"{self.base_url.rstrip('/')}/{self.api_prefix.strip('/')}".rstrip("/")

    @classmethod
    def from_env(cls, **overrides: Any) -> TrackerConfig:
        """Create configuration from environment variables.

        Reads optional ``TRACKER_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        TrackerConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "TRACKER_BASE_URL": "base_url",
            "TRACKER_API_PREFIX": "api_prefix",
            "TRACKER_ACCESS_TOKEN": "access_token",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "TRACKER_STALE_TIME": ("stale_time", float),
            "TRACKER_FETCH_RETRIES": ("fetch_retries", int),
            "TRACKER_RETRY_DELAY": ("retry_delay", float),
            "TRACKER_REQUEST_TIMEOUT": ("request_timeout", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            if field_name in overrides:
                continue
            value = _env_number(env, env_key, cast)
            if value is not None:
                config_kwargs[field_name] = value

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("TRACKER_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
