"""HTTP transport with bearer authentication and access-token refresh."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import aiohttp

from pytracker._redact import redact_for_log, redact_headers
from pytracker.config import TrackerConfig
from pytracker.exceptions import TrackerAuthenticationError, TrackerNetworkError

_logger = logging.getLogger(__name__)

#: Endpoints whose 401 means "bad credentials", not "expired token".
_NO_REFRESH_PREFIXES: tuple[str, ...] = ("/auth/login", "/auth/signup", "/auth/logout", "/auth/refresh")

REFRESH_ENDPOINT = "/auth/refresh"


class Transport(Protocol):
    """Structural transport interface used by resource clients.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`JsonTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        auth: bool = True,
    ) -> Any:
        ...


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _error_message(body: Any) -> str:
    if isinstance(body, Mapping):
        for field in ("error", "message"):
            value = body.get(field)
            if isinstance(value, str) and value:
                return value
    if isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return "Request failed"


def _raise_for_status(status: int, body: Any, method: str, path: str) -> None:
    if status < 400:
        return
    message = f"{method} {path} failed with HTTP {status}: {_error_message(body)}"
    error_cls = TrackerAuthenticationError if status == 401 else TrackerNetworkError
    raise error_cls(message, code=f"http_{status}", status_code=status, endpoint=path)


class JsonTransport:
    """JSON-over-HTTP transport for the tracker REST API.

    Authenticated requests send ``Authorization: Bearer <token>``. A 401 on
    any other endpoint triggers one ``POST /auth/refresh`` (using the
    refresh cookie held by the aiohttp cookie jar) and a single retry.
    Concurrent 401s share one refresh.
    """

    def __init__(
        self,
        config: TrackerConfig,
        http_session: aiohttp.ClientSession,
        *,
        on_auth_change: Callable[[bool], None] | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._token: str | None = config.access_token
        self._on_auth_change = on_auth_change
        self._refreshing: asyncio.Task[bool] | None = None

    @property
    def access_token(self) -> str | None:
        return self._token

    def set_access_token(self, token: str | None) -> None:
        """Replace the bearer token; notifies when signed-in state flips."""
        was_authenticated = self._token is not None
        self._token = token or None
        is_authenticated = self._token is not None
        if was_authenticated != is_authenticated and self._on_auth_change is not None:
            self._on_auth_change(is_authenticated)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        auth: bool = True,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Raises
        ------
        TrackerAuthenticationError
            HTTP 401 that a token refresh could not fix.
        TrackerNetworkError
            Transport failure, timeout, invalid JSON or any other HTTP error.
        """
        status, body = await self._send(method, path, params=params, json_body=json_body, auth=auth)
        if status == 401 and auth and not path.startswith(_NO_REFRESH_PREFIXES):
            if not await self.refresh_access_token():
                raise TrackerAuthenticationError(
                    "Authentication required",
                    code="unauthorized",
                    status_code=401,
                    endpoint=path,
                )
            status, body = await self._send(method, path, params=params, json_body=json_body, auth=auth)
        _raise_for_status(status, body, method, path)
        return body

    async def refresh_access_token(self) -> bool:
        """Obtain a new access token; concurrent callers share one attempt."""
        task = self._refreshing
        if task is None:
            task = asyncio.get_running_loop().create_task(self._refresh())
            self._refreshing = task
        return await asyncio.shield(task)

    async def _refresh(self) -> bool:
        try:
            status, body = await self._send("POST", REFRESH_ENDPOINT, auth=False)
        except TrackerNetworkError:
            _logger.debug("Access token refresh failed", exc_info=True)
            status, body = 0, None
        finally:
            self._refreshing = None

        token = body.get("token") if isinstance(body, Mapping) else None
        if status >= 400 or status == 0 or not isinstance(token, str) or not token:
            _logger.debug("Access token refresh rejected (HTTP %s)", status)
            self.set_access_token(None)
            return False
        self.set_access_token(token)
        return True

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        auth: bool = True,
    ) -> tuple[int, Any]:
        url = f"{self._config.api_url}{path}"
        headers: dict[str, str] = {"accept": "application/json"}
        if auth and self._token:
            headers["authorization"] = f"Bearer {self._token}"
        query = {name: _query_value(value) for name, value in (params or {}).items() if value is not None}

        if self._config.api_trace_enabled:
            _logger.debug(
                "%s %s params=%s headers=%s body=%s",
                method,
                url,
                query,
                redact_headers(headers),
                redact_for_log(json_body),
            )
        else:
            _logger.debug("%s %s", method, url)

        try:
            async with self._http.request(
                method,
                url,
                params=query or None,
                json=json_body,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout),
            ) as resp:
                status = resp.status
                text = await resp.text()
        except TimeoutError as exc:
            raise TrackerNetworkError(f"{method} {path} timed out", code="timeout", endpoint=path) from exc
        except aiohttp.ClientError as exc:
            raise TrackerNetworkError(
                f"Request to {path} failed: {exc}",
                code="transport_error",
                endpoint=path,
            ) from exc

        if not text.strip():
            return status, None
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            if status >= 400:
                return status, text
            raise TrackerNetworkError(
                f"Invalid JSON from {path}: {text[:200]}",
                code="invalid_response",
                status_code=status,
                endpoint=path,
            ) from exc

        if self._config.api_trace_enabled:
            _logger.debug("HTTP %s from %s: %s", status, path, redact_for_log(body))
        return status, body
