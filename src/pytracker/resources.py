"""Cached, optimistic CRUD access to one tracker resource."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from pydantic import ValidationError

from pytracker._api._common import parse_model, parse_model_list, unwrap_envelope
from pytracker._api.resources import ResourceEndpoints, related_patterns
from pytracker._transport import Transport
from pytracker.cache.bindings import EntityBinding, MutationBinding
from pytracker.cache.engine import EntityCache
from pytracker.cache.keys import CacheKey, KeyPattern, PatternLike, Scalar, build_key, build_pattern
from pytracker.cache.mutations import MutationSpec, OptimisticWriter
from pytracker.models._base import TrackerBaseModel

_logger = logging.getLogger(__name__)

M = TypeVar("M", bound=TrackerBaseModel)

# Shared so placeholders never collide across resources.
_temporary_ids = itertools.count(-1, -1)


def next_temporary_id() -> int:
    """Negative id for an optimistic placeholder (server ids are positive)."""
    return next(_temporary_ids)


class ResourceClient(Generic[M]):
    """Reads go through the entity cache; writes are optimistic mutations.

    Cache layout for a resource ``name`` scoped by ``scopeParam``:

    - list: ``name?scopeParam=<value>`` (or ``name`` when unscoped)
    - item: ``name?id=<id>``

    Lists hold ``list[M]`` and items hold ``M``.
    """

    def __init__(
        self,
        endpoints: ResourceEndpoints,
        model: type[M],
        transport: Transport,
        cache: EntityCache,
    ) -> None:
        self._endpoints = endpoints
        self._model = model
        self._transport = transport
        self._cache = cache

    @property
    def name(self) -> str:
        return self._endpoints.name

    @property
    def endpoints(self) -> ResourceEndpoints:
        return self._endpoints

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def list_key(self, scope: Scalar = None) -> CacheKey:
        scope_param = self._endpoints.scope_param
        if scope_param is None or scope is None:
            return build_key(self.name)
        return build_key(self.name, {scope_param: scope})

    def item_key(self, entity_id: int) -> CacheKey:
        return build_key(self.name, id=entity_id)

    def _list_pattern(self, scope: Scalar) -> KeyPattern:
        scope_param = self._endpoints.scope_param
        if scope_param is None or scope is None:
            return build_pattern(self.name)
        return build_pattern(self.name, {scope_param: scope})

    def _write_patterns(self, scope: Scalar, entity_id: int | None = None) -> list[PatternLike]:
        patterns: list[PatternLike] = [self._list_pattern(scope)]
        if entity_id is not None:
            patterns.append(self.item_key(entity_id))
        patterns.extend(related_patterns(self._endpoints, scope))
        return patterns

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    async def _load_list(self, scope: Scalar) -> list[M]:
        path = self._endpoints.list_path
        scope_param = self._endpoints.scope_param
        params = {scope_param: scope} if scope_param is not None and scope is not None else None
        body = await self._transport.request("GET", path, params=params)
        return parse_model_list(self._model, unwrap_envelope(body, endpoint=path), endpoint=path)

    async def _load_item(self, entity_id: int) -> M:
        path = self._endpoints.item_path(entity_id)
        body = await self._transport.request("GET", path)
        return parse_model(self._model, unwrap_envelope(body, endpoint=path), endpoint=path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self, scope: Scalar = None, *, force: bool = False) -> list[M]:
        """Return the (possibly cached) list, e.g. ``members.list(7)``."""
        return await self._cache.fetch(self.list_key(scope), lambda: self._load_list(scope), force=force)

    async def get(self, entity_id: int, *, force: bool = False) -> M:
        return await self._cache.fetch(self.item_key(entity_id), lambda: self._load_item(entity_id), force=force)

    def use_list(self, scope: Scalar = None, **options: Any) -> EntityBinding[list[M]]:
        """Bind to a list. A scoped resource without a scope starts disabled."""
        options.setdefault("enabled", self._endpoints.scope_param is None or scope is not None)
        return self._cache.use_entity(self.list_key(scope), lambda: self._load_list(scope), **options)

    def use_item(self, entity_id: int, **options: Any) -> EntityBinding[M]:
        return self._cache.use_entity(self.item_key(entity_id), lambda: self._load_item(entity_id), **options)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_spec(self, payload: Mapping[str, Any]) -> MutationSpec[M | None]:
        """Mutation appending a placeholder with a temporary id to the cached list.

        The placeholder is only inserted into a list that has already been
        loaded; the confirmed list arrives with the refetch that follows the
        invalidation.
        """
        endpoints = self._endpoints
        scope = endpoints.scope_value(payload)
        list_key = self.list_key(scope)
        path, body = endpoints.create_request(payload)

        def optimistic(writer: OptimisticWriter) -> None:
            if writer.get(list_key).data is None:
                return
            try:
                placeholder = self._model.model_validate({**payload, "id": next_temporary_id()})
            except ValidationError:
                _logger.debug("No optimistic %s placeholder for payload %s", self.name, list(payload))
                return
            writer.patch(list_key, lambda items: [*(items or []), placeholder])

        async def remote() -> M | None:
            response = await self._transport.request("POST", path, json_body=body)
            data = unwrap_envelope(response, endpoint=path)
            if not endpoints.create_returns_entity:
                return None
            return parse_model(self._model, data, endpoint=path)

        return MutationSpec(
            remote_call=remote,
            optimistic_update=optimistic,
            invalidates=self._write_patterns(scope),
        )

    def update_spec(
        self,
        entity_id: int,
        changes: Mapping[str, Any],
        *,
        scope: Scalar = None,
    ) -> MutationSpec[M]:
        """Mutation applying camelCase *changes* to the cached item and list."""
        endpoints = self._endpoints
        if scope is None:
            scope = endpoints.scope_value(changes)
        list_key = self.list_key(scope)
        item_key = self.item_key(entity_id)
        path = endpoints.update_path(entity_id)

        def optimistic(writer: OptimisticWriter) -> None:
            # Changes the model cannot represent are left to the server.
            item = writer.get(item_key).data
            if isinstance(item, TrackerBaseModel):
                try:
                    writer.set(item_key, item.with_changes(changes))
                except ValidationError:
                    _logger.debug("No optimistic %s update for %s", self.name, item_key)
            items = writer.get(list_key).data
            if isinstance(items, list):
                try:
                    patched = [entity.with_changes(changes) if entity.id == entity_id else entity for entity in items]
                except ValidationError:
                    _logger.debug("No optimistic %s update for %s", self.name, list_key)
                else:
                    writer.set(list_key, patched)

        async def remote() -> M:
            response = await self._transport.request(endpoints.update_method, path, json_body=dict(changes))
            return parse_model(self._model, unwrap_envelope(response, endpoint=path), endpoint=path)

        return MutationSpec(
            remote_call=remote,
            optimistic_update=optimistic,
            invalidates=self._write_patterns(scope, entity_id),
        )

    def delete_spec(self, entity_id: int, *, scope: Scalar = None) -> MutationSpec[None]:
        list_key = self.list_key(scope)
        path = self._endpoints.item_path(entity_id)

        def optimistic(writer: OptimisticWriter) -> None:
            if isinstance(writer.get(list_key).data, list):
                writer.patch(list_key, lambda items: [entity for entity in items if entity.id != entity_id])

        async def remote() -> None:
            response = await self._transport.request("DELETE", path)
            unwrap_envelope(response, endpoint=path)

        return MutationSpec(
            remote_call=remote,
            optimistic_update=optimistic,
            invalidates=self._write_patterns(scope, entity_id),
        )

    async def create(self, payload: Mapping[str, Any]) -> M | None:
        """Create an entity; returns ``None`` when the endpoint echoes no entity."""
        return await self._cache.mutate(self.create_spec(payload))

    async def update(self, entity_id: int, changes: Mapping[str, Any], *, scope: Scalar = None) -> M:
        return await self._cache.mutate(self.update_spec(entity_id, changes, scope=scope))

    async def delete(self, entity_id: int, *, scope: Scalar = None) -> None:
        await self._cache.mutate(self.delete_spec(entity_id, scope=scope))

    def use_create(self) -> MutationBinding[Mapping[str, Any], M | None]:
        return self._cache.use_mutation(self.create_spec)

    def use_delete(self, *, scope: Scalar = None) -> MutationBinding[int, None]:
        return self._cache.use_mutation(lambda entity_id: self.delete_spec(entity_id, scope=scope))

    def __repr__(self) -> str:
        return f"ResourceClient({self.name!r}, model={self._model.__name__})"
