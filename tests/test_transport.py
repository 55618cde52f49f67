from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pytracker._transport import JsonTransport
from pytracker.config import TrackerConfig
from pytracker.exceptions import TrackerAuthenticationError, TrackerNetworkError


class FakeTrackerApi:
    """Minimal tracker server: one protected route plus token refresh."""

    def __init__(self, *, refresh_ok: bool = True) -> None:
        self.refresh_ok = refresh_ok
        self.refresh_calls = 0
        self.seen_auth: list[str | None] = []
        self.app = web.Application()
        self.app.router.add_get("/api/team", self.teams)
        self.app.router.add_post("/api/auth/refresh", self.refresh)
        self.app.router.add_post("/api/auth/login", self.login)
        self.app.router.add_get("/api/missing", self.missing)
        self.app.router.add_get("/api/broken", self.broken)
        self.app.router.add_get("/api/crash", self.crash)

    async def teams(self, request: web.Request) -> web.Response:
        auth = request.headers.get("Authorization")
        self.seen_auth.append(auth)
        if auth != "Bearer fresh":
            return web.json_response({"error": "Unauthorized"}, status=401)
        return web.json_response({"success": True, "data": [{"id": 1, "name": "Core"}], "q": dict(request.query)})

    async def refresh(self, request: web.Request) -> web.Response:
        self.refresh_calls += 1
        await asyncio.sleep(0.05)
        if not self.refresh_ok:
            return web.json_response({"error": "Invalid refresh token. Login again"}, status=401)
        return web.json_response({"token": "fresh"})

    async def login(self, request: web.Request) -> web.Response:
        return web.json_response({"error": "Invalid credentials"}, status=401)

    async def missing(self, request: web.Request) -> web.Response:
        return web.json_response({"success": False, "error": "Team not found"}, status=404)

    async def broken(self, request: web.Request) -> web.Response:
        return web.Response(text="<html>oops</html>", content_type="text/html")

    async def crash(self, request: web.Request) -> web.Response:
        return web.Response(text="Internal Server Error", status=500)


def _config(server: TestServer, **kwargs: Any) -> TrackerConfig:
    return TrackerConfig(base_url=str(server.make_url("")), **kwargs)


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_request_retried() -> None:
    api = FakeTrackerApi()
    changes: list[bool] = []
    async with TestServer(api.app) as server, aiohttp.ClientSession() as http:
        transport = JsonTransport(_config(server, access_token="stale"), http, on_auth_change=changes.append)

        body = await transport.request("GET", "/team", params={"teamId": 7, "archived": False, "page": None})

    assert body["data"] == [{"id": 1, "name": "Core"}]
    assert body["q"] == {"teamId": "7", "archived": "false"}
    assert api.seen_auth == ["Bearer stale", "Bearer fresh"]
    assert api.refresh_calls == 1
    assert transport.access_token == "fresh"
    # stale -> fresh is still "signed in"
    assert changes == []


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_request() -> None:
    api = FakeTrackerApi()
    async with TestServer(api.app) as server, aiohttp.ClientSession() as http:
        transport = JsonTransport(_config(server), http)

        results = await asyncio.gather(*(transport.refresh_access_token() for _ in range(4)))

    assert results == [True] * 4
    assert api.refresh_calls == 1


@pytest.mark.asyncio
async def test_failed_refresh_signs_out() -> None:
    api = FakeTrackerApi(refresh_ok=False)
    changes: list[bool] = []
    async with TestServer(api.app) as server, aiohttp.ClientSession() as http:
        transport = JsonTransport(_config(server, access_token="stale"), http, on_auth_change=changes.append)

        with pytest.raises(TrackerAuthenticationError) as excinfo:
            await transport.request("GET", "/team")

    assert excinfo.value.status_code == 401
    assert transport.access_token is None
    assert changes == [False]
    assert len(api.seen_auth) == 1


@pytest.mark.asyncio
async def test_auth_endpoints_do_not_refresh() -> None:
    api = FakeTrackerApi()
    async with TestServer(api.app) as server, aiohttp.ClientSession() as http:
        transport = JsonTransport(_config(server), http)

        with pytest.raises(TrackerAuthenticationError, match="Invalid credentials"):
            await transport.request("POST", "/auth/login", json_body={"email": "a", "password": "b"}, auth=False)

    assert api.refresh_calls == 0


@pytest.mark.asyncio
async def test_http_errors_are_mapped() -> None:
    api = FakeTrackerApi()
    async with TestServer(api.app) as server, aiohttp.ClientSession() as http:
        transport = JsonTransport(_config(server), http)

        with pytest.raises(TrackerNetworkError) as not_found:
            await transport.request("GET", "/missing")
        with pytest.raises(TrackerNetworkError) as crashed:
            await transport.request("GET", "/crash")

    assert not_found.value.code == "http_404"
    assert not_found.value.status_code == 404
    assert "Team not found" in not_found.value.message
    assert not not_found.value.retryable
    assert crashed.value.code == "http_500"
    assert crashed.value.retryable


@pytest.mark.asyncio
async def test_invalid_json_is_reported() -> None:
    api = FakeTrackerApi()
    async with TestServer(api.app) as server, aiohttp.ClientSession() as http:
        transport = JsonTransport(_config(server), http)

        with pytest.raises(TrackerNetworkError) as excinfo:
            await transport.request("GET", "/broken")

    assert excinfo.value.code == "invalid_response"
    assert not excinfo.value.retryable


@pytest.mark.asyncio
async def test_connection_failure_is_retryable() -> None:
    api = FakeTrackerApi()
    server = TestServer(api.app)
    await server.start_server()
    config = _config(server)
    await server.close()

    async with aiohttp.ClientSession() as http:
        transport = JsonTransport(config, http)
        with pytest.raises(TrackerNetworkError) as excinfo:
            await transport.request("GET", "/team")

    assert excinfo.value.code == "transport_error"
    assert excinfo.value.retryable


def test_set_access_token_reports_state_flips() -> None:
    changes: list[bool] = []
    transport = JsonTransport(TrackerConfig(), None, on_auth_change=changes.append)  # type: ignore[arg-type]

    transport.set_access_token("a")
    transport.set_access_token("b")
    transport.set_access_token("")
    transport.set_access_token(None)

    assert changes == [True, False]
