"""Credential refresh for the initial stream request.

A 401 on the job-creating request triggers one token refresh and a single
retry. Concurrent requests that hit a 401 at the same time share one
refresh through a ``SingleFlight`` coordinator keyed by credential scope.
The coordinator is passed in, so separate clients can share it or not.

Usage::

    coordinator = SingleFlight()
    auth = TokenRefreshAuth(token, refresh=renew_token, coordinator=coordinator)
    client = StreamClient("https://api.example.com", auth=auth)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable, Hashable
from typing import Any, TypeVar

import httpx

logger = logging.getLogger("jobstream.auth")

T = TypeVar("T")


class SingleFlight:
    """Ensures at most one in-flight call per key.

    Callers arriving while a call for the same key is running await its
    result instead of starting another one.
    """

    def __init__(self) -> None:
        self._inflight: dict[Hashable, asyncio.Future[Any]] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._inflight

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` for ``key`` unless a call is already in flight.

        Each waiter is shielded, so cancelling one caller does not cancel
        the shared call for the others.
        """
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(fn())
            self._inflight[key] = future
            future.add_done_callback(lambda f: self._release(key, f))
        return await asyncio.shield(future)

    def _release(self, key: Hashable, future: asyncio.Future[Any]) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            # Mark the exception retrieved when every waiter went away.
            future.exception()


RefreshFn = Callable[[], Awaitable[str | None]]


class TokenRefreshAuth(httpx.Auth):
    """Bearer-token auth that refreshes once on 401 and retries the request.

    Args:
        token: The current access token (may be empty before first login).
        refresh: Coroutine returning a new token, or ``None`` if the
            refresh failed.
        scope: Credential scope used as the single-flight key.
        coordinator: Shared ``SingleFlight``; a private one is created if
            omitted.
    """

    def __init__(
        self,
        token: str,
        *,
        refresh: RefreshFn,
        scope: Hashable = "default",
        coordinator: SingleFlight | None = None,
    ) -> None:
        self.token = token
        self._refresh = refresh
        self._scope = scope
        self._coordinator = coordinator or SingleFlight()

    def _apply(self, request: httpx.Request) -> None:
        if self.token:
            request.headers["Authorization"] = f"Bearer {self.token}"

    async def async_auth_flow(
        self, request: httpx.Request
    ) -> AsyncGenerator[httpx.Request, httpx.Response]:
        self._apply(request)
        response = yield request
        if response.status_code != 401:
            return

        logger.info("Access token rejected for %s, refreshing", request.url.path)
        sent_token = self.token
        new_token = await self._coordinator.do(self._scope, self._refresh_once(sent_token))
        if not new_token:
            logger.warning("Token refresh failed for scope %r", self._scope)
            return

        self.token = new_token
        self._apply(request)
        yield request

    def _refresh_once(self, sent_token: str) -> Callable[[], Awaitable[str | None]]:
        async def refresh() -> str | None:
            # Another flight may have finished between our 401 and now.
            if self.token and self.token != sent_token:
                return self.token
            return await self._refresh()

        return refresh
