from __future__ import annotations

from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pytracker.client import TrackerClient
from pytracker.config import TrackerConfig
from pytracker.exceptions import TrackerAuthenticationError, TrackerError


def _app() -> web.Application:
    tokens = {"ada@example.com": "token-ada", "grace@example.com": "token-grace"}
    members = {
        "token-ada": [{"id": 1, "teamId": 7, "email": "ada@example.com"}],
        "token-grace": [{"id": 2, "teamId": 7, "email": "grace@example.com"}],
    }

    async def login(request: web.Request) -> web.Response:
        body: dict[str, Any] = await request.json()
        token = tokens.get(body.get("email", ""))
        if token is None or body.get("password") != "secret":
            return web.json_response({"error": "Invalid credentials"}, status=401)
        return web.json_response({"token": token, "user": {"id": 1, "email": body["email"]}})

    async def logout(request: web.Request) -> web.Response:
        return web.json_response({"success": True})

    async def list_members(request: web.Request) -> web.Response:
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in members:
            return web.json_response({"error": "Unauthorized"}, status=401)
        return web.json_response({"success": True, "data": members[token]})

    async def refresh(request: web.Request) -> web.Response:
        return web.json_response({"error": "No refresh token"}, status=401)

    app = web.Application()
    app.router.add_post("/api/auth/login", login)
    app.router.add_post("/api/auth/logout", logout)
    app.router.add_post("/api/auth/refresh", refresh)
    app.router.add_get("/api/member", list_members)
    return app


@pytest.mark.asyncio
async def test_requires_context_manager() -> None:
    client = TrackerClient(TrackerConfig())

    with pytest.raises(TrackerError, match="not initialized"):
        await client.login("ada@example.com", "secret")
    with pytest.raises(TrackerError):
        await client.members.list(7)


@pytest.mark.asyncio
async def test_login_list_and_logout() -> None:
    async with TestServer(_app()) as server:
        config = TrackerConfig(base_url=str(server.make_url("")))
        async with TrackerClient(config) as client:
            user = await client.login("ada@example.com", "secret")
            assert user == {"id": 1, "email": "ada@example.com"}
            assert client.is_authenticated

            members = await client.members.list(7)
            assert [member.email for member in members] == ["ada@example.com"]
            assert client.cache.get(client.members.list_key(7)).is_success

            await client.logout()
            assert not client.is_authenticated
            assert client.cache.get(client.members.list_key(7)).data is None

        assert client.cache.disposed


@pytest.mark.asyncio
async def test_switching_accounts_clears_cache() -> None:
    async with TestServer(_app()) as server, aiohttp.ClientSession() as http:
        config = TrackerConfig(base_url=str(server.make_url("")))
        async with TrackerClient(config, session=http) as client:
            await client.login("ada@example.com", "secret")
            await client.members.list(7)

            await client.login("grace@example.com", "secret")
            assert client.cache.get(client.members.list_key(7)).data is None

            members = await client.members.list(7)
            assert [member.email for member in members] == ["grace@example.com"]

        assert not http.closed


@pytest.mark.asyncio
async def test_bad_credentials() -> None:
    async with TestServer(_app()) as server:
        async with TrackerClient(TrackerConfig(base_url=str(server.make_url("")))) as client:
            with pytest.raises(TrackerAuthenticationError):
                await client.login("ada@example.com", "wrong")
            assert not client.is_authenticated


@pytest.mark.asyncio
async def test_unauthenticated_read_fails_after_refresh_attempt() -> None:
    async with TestServer(_app()) as server:
        async with TrackerClient(TrackerConfig(base_url=str(server.make_url("")), fetch_retries=0)) as client:
            with pytest.raises(TrackerAuthenticationError):
                await client.members.list(7)
            entry = client.cache.get(client.members.list_key(7))
            assert entry.is_error
