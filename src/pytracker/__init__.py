"""pytracker - Async Python client for the tracker API with an entity cache."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytracker")
except PackageNotFoundError:
    __version__ = "0+local"
from pytracker.cache import (
    CacheEntry,
    CacheKey,
    EntityBinding,
    EntityCache,
    EntryStatus,
    KeyPattern,
    MutationBinding,
    MutationSpec,
    MutationStatus,
    OptimisticWriter,
    build_key,
    build_pattern,
)
from pytracker.client import TrackerClient
from pytracker.config import TrackerConfig
from pytracker.exceptions import (
    TrackerAuthenticationError,
    TrackerConfigError,
    TrackerError,
    TrackerNetworkError,
    TrackerStaleWriteError,
    TrackerValidationError,
)
from pytracker.models import (
    Activity,
    Comment,
    Priority,
    Project,
    Task,
    TaskList,
    Team,
    TeamMember,
)
from pytracker.resources import ResourceClient

__all__ = [
    "__version__",
    "Activity",
    "CacheEntry",
    "CacheKey",
    "Comment",
    "EntityBinding",
    "EntityCache",
    "EntryStatus",
    "KeyPattern",
    "MutationBinding",
    "MutationSpec",
    "MutationStatus",
    "OptimisticWriter",
    "Priority",
    "Project",
    "ResourceClient",
    "Task",
    "TaskList",
    "Team",
    "TeamMember",
    "TrackerAuthenticationError",
    "TrackerClient",
    "TrackerConfig",
    "TrackerConfigError",
    "TrackerError",
    "TrackerNetworkError",
    "TrackerStaleWriteError",
    "TrackerValidationError",
    "build_key",
    "build_pattern",
]
