"""Pydantic models for tracker entities."""

from pytracker.models._base import TrackerBaseModel, TrackerEnum
from pytracker.models.project import Project, TaskList
from pytracker.models.task import Activity, Comment, Priority, Task
from pytracker.models.team import Team, TeamMember

__all__ = [
    "Activity",
    "Comment",
    "Priority",
    "Project",
    "Task",
    "TaskList",
    "Team",
    "TeamMember",
    "TrackerBaseModel",
    "TrackerEnum",
]
