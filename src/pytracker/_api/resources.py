"""REST endpoint table for tracker resources.

Each resource is described once: where its list and items live, how it is
created and updated, which query parameter scopes its list, and which other
resources a write to it makes stale.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pytracker.cache.keys import KeyPattern, Scalar, build_pattern
from pytracker.exceptions import TrackerValidationError


@dataclass(frozen=True, slots=True)
class ResourceEndpoints:
    """Routes and invalidation rules for one resource.

    ``create_path`` may contain ``{scope}``, filled from the payload's
    ``scope_param`` value. ``create_wrapper`` nests the payload in a list
    under that body key (``{"members": [payload]}``).
    """

    name: str
    base_path: str
    scope_param: str | None = None
    create_path: str | None = None
    item_template: str = "{base}/{id}"
    update_template: str = "{base}/{id}"
    update_method: str = "PUT"
    create_wrapper: str | None = None
    create_returns_entity: bool = True
    related: tuple[str, ...] = ()

    @property
    def list_path(self) -> str:
        return self.base_path

    def item_path(self, entity_id: int) -> str:
        return self.item_template.format(base=self.base_path, id=entity_id)

    def update_path(self, entity_id: int) -> str:
        return self.update_template.format(base=self.base_path, id=entity_id)

    def create_request(self, payload: Mapping[str, Any]) -> tuple[str, Any]:
        """Return ``(path, body)`` for a create call."""
        template = self.create_path or self.base_path
        path = template
        if "{scope}" in template:
            scope = self.scope_value(payload)
            if scope is None:
                raise TrackerValidationError(f"Creating {self.name} requires {self.scope_param}")
            path = template.format(scope=scope)
        body: Any = dict(payload)
        if self.create_wrapper is not None:
            body = {self.create_wrapper: [body]}
        return path, body

    def scope_value(self, payload: Mapping[str, Any]) -> Scalar:
        if self.scope_param is None:
            return None
        value = payload.get(self.scope_param)
        if isinstance(value, (str, int, float, bool)) or value is None:
            return value
        raise TrackerValidationError(f"{self.scope_param} must be a scalar, got {type(value).__name__}")


RESOURCES: dict[str, ResourceEndpoints] = {
    "teams": ResourceEndpoints(
        name="teams",
        base_path="/team",
        update_template="{base}/update/{id}",
    ),
    "members": ResourceEndpoints(
        name="members",
        base_path="/member",
        scope_param="teamId",
        create_path="/member/{scope}",
        create_wrapper="members",
        create_returns_entity=False,
        related=("teams",),
    ),
    "projects": ResourceEndpoints(
        name="projects",
        base_path="/project",
        scope_param="teamId",
        related=("teams",),
    ),
    "lists": ResourceEndpoints(
        name="lists",
        base_path="/list",
        scope_param="projectId",
        related=("projects",),
    ),
    "tasks": ResourceEndpoints(
        name="tasks",
        base_path="/task",
        scope_param="listId",
        update_method="PATCH",
        related=("lists",),
    ),
    "comments": ResourceEndpoints(
        name="comments",
        base_path="/comment/comments",
        scope_param="taskId",
        create_path="/comment",
        update_method="PATCH",
        related=("activities",),
    ),
    "activities": ResourceEndpoints(
        name="activities",
        base_path="/activity",
        scope_param="taskId",
        update_method="PATCH",
    ),
}


def related_patterns(endpoints: ResourceEndpoints, scope: Scalar = None) -> list[KeyPattern]:
    """Patterns a write to *endpoints* makes stale, besides its own keys.

    A related resource sharing the same scope parameter is narrowed to that
    scope (a new comment on task 5 only touches ``activities?taskId=5``);
    otherwise the whole related resource is invalidated.
    """
    patterns: list[KeyPattern] = []
    for name in endpoints.related:
        other = RESOURCES[name]
        if scope is not None and other.scope_param is not None and other.scope_param == endpoints.scope_param:
            patterns.append(build_pattern(name, {other.scope_param: scope}))
        else:
            patterns.append(build_pattern(name))
    return patterns
