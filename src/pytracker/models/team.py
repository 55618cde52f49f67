"""Team and team member models."""

from __future__ import annotations

from datetime import datetime

from pytracker.models._base import TrackerBaseModel


class Team(TrackerBaseModel):
    """A team owning projects and members."""

    name: str = ""
    about: str = ""
    creator_id: int | None = None


class TeamMember(TrackerBaseModel):
    """Membership of a (possibly not yet registered) user in a team.

    ``user_id`` stays ``None`` until the invited email signs up.
    """

    team_id: int | None = None
    user_id: int | None = None
    email: str = ""
    name: str | None = None
    role: str = ""
    added_at: datetime | None = None
    added_by_id: int | None = None
