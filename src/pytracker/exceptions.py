"""Custom exception hierarchy for pytracker."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for all pytracker errors."""


class TrackerConfigError(TrackerError):
    """Invalid or missing configuration."""


class TrackerValidationError(TrackerError, ValueError):
    """Caller-supplied cache key or pattern is malformed."""


class TrackerStaleWriteError(TrackerError):
    """A versioned write was attempted against an outdated entry version.

    This is the expected outcome of the store's compare-and-write check and
    is handled inside :class:`~pytracker.cache.store.EntityStore`; callers
    observe it only as ``PatchResult(applied=False)``.
    """

    def __init__(self, message: str, *, base_version: int, current_version: int) -> None:
        self.base_version = base_version
        self.current_version = current_version
        super().__init__(message)


class TrackerNetworkError(TrackerError):
    """A remote call (loader or mutation) was rejected.

    Carries the structured ``{code, message}`` shape the remote collaborator
    reports, plus the HTTP status and endpoint when the failure came from the
    HTTP transport.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether repeating the call could succeed (transport failure or 5xx)."""
        if self.status_code is None:
            return self.code in {"transport_error", "timeout"}
        return self.status_code >= 500


class TrackerAuthenticationError(TrackerNetworkError):
    """Access token missing, expired, or rejected and refresh failed."""
