"""Task, comment and activity models."""

from __future__ import annotations

from datetime import datetime

from pytracker.models._base import TrackerBaseModel, TrackerEnum


class Priority(TrackerEnum):
    UNKNOWN = "UNKNOWN"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Task(TrackerBaseModel):
    """A task (feature) inside a list."""

    name: str = ""
    description: str = ""
    priority: Priority = Priority.MEDIUM
    due_date: datetime | None = None
    parent_task_id: int | None = None
    project_id: int | None = None
    list_id: int | None = None
    assigned_by_id: int | None = None
    assignee_id: int | None = None
    status_id: int | None = None


class Comment(TrackerBaseModel):
    """A comment in a task's thread; ``parent_id`` links replies."""

    description: str = ""
    task_id: int | None = None
    user_id: int | None = None
    parent_id: int | None = None


class Activity(TrackerBaseModel):
    """An entry in a task's activity log."""

    description: str = ""
    task_id: int | None = None
    user_id: int | None = None
