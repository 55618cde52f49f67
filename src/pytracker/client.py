"""High-level async client for the tracker REST API."""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pytracker._api.resources import RESOURCES
from pytracker._transport import JsonTransport
from pytracker.cache.engine import EntityCache
from pytracker.config import TrackerConfig
from pytracker.exceptions import TrackerAuthenticationError, TrackerError
from pytracker.models import Activity, Comment, Project, Task, TaskList, Team, TeamMember
from pytracker.resources import ResourceClient

_logger = logging.getLogger(__name__)


class TrackerClient:
    """Async client for the tracker API with a shared entity cache.

    Usage::

        async with TrackerClient(TrackerConfig.from_env()) as client:
            await client.login("ada@example.com", "secret")
            members = await client.members.list(7)
            await client.members.create({"teamId": 7, "email": "new@example.com"})

    The cache is cleared whenever the signed-in state changes (login,
    logout, or a failed token refresh), so one user never sees another
    user's data.
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        *,
        session: aiohttp.ClientSession | None = None,
        cache: EntityCache | None = None,
    ) -> None:
        self._config = config or TrackerConfig()
        self._external_session = session is not None
        self._http_session = session
        self._external_cache = cache is not None
        self._cache = cache or EntityCache.create(self._config)
        self._transport: JsonTransport | None = None

        self.teams: ResourceClient[Team] = self._resource("teams", Team)
        self.members: ResourceClient[TeamMember] = self._resource("members", TeamMember)
        self.projects: ResourceClient[Project] = self._resource("projects", Project)
        self.lists: ResourceClient[TaskList] = self._resource("lists", TaskList)
        self.tasks: ResourceClient[Task] = self._resource("tasks", Task)
        self.comments: ResourceClient[Comment] = self._resource("comments", Comment)
        self.activities: ResourceClient[Activity] = self._resource("activities", Activity)

    def _resource(self, name: str, model: type[Any]) -> ResourceClient[Any]:
        return ResourceClient(RESOURCES[name], model, _LazyTransport(self), self._cache)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> TrackerClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = JsonTransport(
            self._config,
            self._http_session,
            on_auth_change=self._on_auth_change,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_cache:
            await self._cache.dispose()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    @property
    def cache(self) -> EntityCache:
        return self._cache

    @property
    def config(self) -> TrackerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self._transport is not None and self._transport.access_token is not None

    async def login(self, email: str, password: str) -> dict[str, Any]:
        """Sign in, keep the access token and return the user payload."""
        return await self._authenticate("/auth/login", {"email": email, "password": password})

    async def signup(self, email: str, password: str, **profile: Any) -> dict[str, Any]:
        """Create an account and sign in as it."""
        return await self._authenticate("/auth/signup", {**profile, "email": email, "password": password})

    async def logout(self) -> None:
        """Sign out server-side, then drop the token and cached data."""
        transport = self._require_transport()
        try:
            await transport.request("POST", "/auth/logout", auth=False)
        finally:
            transport.set_access_token(None)

    def set_access_token(self, token: str | None) -> None:
        self._require_transport().set_access_token(token)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _authenticate(self, path: str, credentials: dict[str, Any]) -> dict[str, Any]:
        transport = self._require_transport()
        body = await transport.request("POST", path, json_body=credentials, auth=False)
        token = body.get("token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            raise TrackerAuthenticationError(f"{path} response did not include a token", endpoint=path)
        if transport.access_token is not None and not self._cache.disposed:
            # Switching accounts without signing out.
            self._cache.clear()
        transport.set_access_token(token)
        user = body.get("user")
        return user if isinstance(user, dict) else {}

    def _on_auth_change(self, authenticated: bool) -> None:
        _logger.debug("Authentication changed (signed in: %s); clearing cache", authenticated)
        if not self._cache.disposed:
            self._cache.clear()

    def _require_transport(self) -> JsonTransport:
        if self._transport is None:
            raise TrackerError("Client not initialized. Use 'async with TrackerClient(...) as client:'")
        return self._transport


class _LazyTransport:
    """Resolves the client's transport at call time (it exists only inside ``async with``)."""

    def __init__(self, client: TrackerClient) -> None:
        self._client = client

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        return await self._client._require_transport().request(method, path, **kwargs)
