"""Project, list and task status models."""

from __future__ import annotations

from pytracker.models._base import TrackerBaseModel


class Project(TrackerBaseModel):
    name: str = ""
    description: str = ""
    team_id: int | None = None
    creator_id: int | None = None


class TaskList(TrackerBaseModel):
    """A column/list grouping tasks inside a project."""

    name: str = ""
    project_id: int | None = None
