"""Tests for single-flight coordination and token refresh."""

from __future__ import annotations

import asyncio

import httpx
import pytest
from pytest_httpx import HTTPXMock

from jobstream.auth import SingleFlight, TokenRefreshAuth
from jobstream.client import StreamClient
from jobstream.testing import RecordingCallbacks, sse_bytes

BASE_URL = "http://localhost:8080"


class TestSingleFlight:
    async def test_concurrent_callers_share_one_call(self) -> None:
        flight = SingleFlight()
        gate = asyncio.Event()
        calls = 0

        async def fetch() -> str:
            nonlocal calls
            calls += 1
            await gate.wait()
            return "token-2"

        waiters = [asyncio.create_task(flight.do("scope", fetch)) for _ in range(5)]
        await asyncio.sleep(0)
        assert flight.in_flight("scope")
        gate.set()

        assert await asyncio.gather(*waiters) == ["token-2"] * 5
        assert calls == 1
        assert not flight.in_flight("scope")

    async def test_different_keys_run_independently(self) -> None:
        flight = SingleFlight()
        calls: list[str] = []

        def make(key: str):
            async def fetch() -> str:
                calls.append(key)
                await asyncio.sleep(0)
                return key

            return fetch

        results = await asyncio.gather(flight.do("a", make("a")), flight.do("b", make("b")))
        assert results == ["a", "b"]
        assert sorted(calls) == ["a", "b"]

    async def test_failure_reaches_every_waiter(self) -> None:
        flight = SingleFlight()

        async def fail() -> str:
            await asyncio.sleep(0)
            raise RuntimeError("refresh endpoint down")

        results = await asyncio.gather(
            flight.do("scope", fail), flight.do("scope", fail), return_exceptions=True
        )
        assert all(isinstance(r, RuntimeError) for r in results)
        assert not flight.in_flight("scope")

    async def test_new_call_after_completion(self) -> None:
        flight = SingleFlight()
        calls = 0

        async def fetch() -> int:
            nonlocal calls
            calls += 1
            return calls

        assert await flight.do("scope", fetch) == 1
        assert await flight.do("scope", fetch) == 2

    async def test_cancelled_waiter_does_not_cancel_shared_call(self) -> None:
        flight = SingleFlight()
        gate = asyncio.Event()

        async def fetch() -> str:
            await gate.wait()
            return "ok"

        first = asyncio.create_task(flight.do("scope", fetch))
        second = asyncio.create_task(flight.do("scope", fetch))
        await asyncio.sleep(0)
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

        gate.set()
        assert await second == "ok"


def _auth_handler(valid_token: str, seen: list[str | None]):
    def handler(request: httpx.Request) -> httpx.Response:
        auth = request.headers.get("authorization")
        seen.append(auth)
        if auth != f"Bearer {valid_token}":
            return httpx.Response(401, json={"message": "Token expired"})
        return httpx.Response(200, json={"ok": True})

    return handler


class TestTokenRefreshAuth:
    async def test_refreshes_once_and_retries(self) -> None:
        seen: list[str | None] = []
        refreshes = 0

        async def refresh() -> str:
            nonlocal refreshes
            refreshes += 1
            return "fresh"

        auth = TokenRefreshAuth("stale", refresh=refresh)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(_auth_handler("fresh", seen)), auth=auth
        ) as http:
            response = await http.post("http://test/api/assessments/new", json={})

        assert response.status_code == 200
        assert seen == ["Bearer stale", "Bearer fresh"]
        assert refreshes == 1
        assert auth.token == "fresh"

    async def test_failed_refresh_returns_original_401(self) -> None:
        seen: list[str | None] = []

        async def refresh() -> None:
            return None

        auth = TokenRefreshAuth("stale", refresh=refresh)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(_auth_handler("fresh", seen)), auth=auth
        ) as http:
            response = await http.post("http://test/x", json={})

        assert response.status_code == 401
        assert seen == ["Bearer stale"]

    async def test_no_retry_loop_when_new_token_is_rejected(self) -> None:
        seen: list[str | None] = []

        async def refresh() -> str:
            return "also-wrong"

        auth = TokenRefreshAuth("stale", refresh=refresh)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(_auth_handler("fresh", seen)), auth=auth
        ) as http:
            response = await http.post("http://test/x", json={})

        assert response.status_code == 401
        assert seen == ["Bearer stale", "Bearer also-wrong"]

    async def test_concurrent_401s_share_one_refresh(self) -> None:
        seen: list[str | None] = []
        refreshes = 0

        async def refresh() -> str:
            nonlocal refreshes
            refreshes += 1
            await asyncio.sleep(0.01)
            return "fresh"

        coordinator = SingleFlight()
        auth = TokenRefreshAuth("stale", refresh=refresh, coordinator=coordinator)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(_auth_handler("fresh", seen)), auth=auth
        ) as http:
            responses = await asyncio.gather(
                *(http.post("http://test/x", json={}) for _ in range(3))
            )

        assert [r.status_code for r in responses] == [200, 200, 200]
        assert refreshes == 1

    async def test_no_header_without_token(self) -> None:
        seen: list[str | None] = []

        async def refresh() -> None:
            return None

        auth = TokenRefreshAuth("", refresh=refresh)
        async with httpx.AsyncClient(
            transport=httpx.MockTransport(_auth_handler("fresh", seen)), auth=auth
        ) as http:
            await http.post("http://test/x", json={})

        assert seen == [None]


class TestClientWithAuth:
    async def test_stream_after_refresh(
        self, httpx_mock: HTTPXMock, recorder: RecordingCallbacks
    ) -> None:
        url = f"{BASE_URL}/api/assessments/new"
        httpx_mock.add_response(
            url=url,
            method="POST",
            status_code=401,
            match_headers={"Authorization": "Bearer stale"},
        )
        httpx_mock.add_response(
            url=url,
            method="POST",
            headers={"content-type": "text/event-stream"},
            content=sse_bytes(("assessment_created", {"assessmentId": "a1"})),
            match_headers={"Authorization": "Bearer fresh"},
        )

        async def refresh() -> str:
            return "fresh"

        client = StreamClient(BASE_URL, auth=TokenRefreshAuth("stale", refresh=refresh))
        await client.open({}, "/api/assessments/new", recorder.callbacks)

        assert recorder.events == [{"assessmentId": "a1"}]
        recorder.assert_no_error()

    async def test_rejected_after_refresh(
        self, httpx_mock: HTTPXMock, recorder: RecordingCallbacks
    ) -> None:
        httpx_mock.add_response(
            url=f"{BASE_URL}/api/assessments/new",
            method="POST",
            status_code=401,
            json={"message": "Session expired"},
            is_reusable=True,
        )

        async def refresh() -> str:
            return "fresh"

        client = StreamClient(BASE_URL, auth=TokenRefreshAuth("stale", refresh=refresh))
        await client.open({}, "/api/assessments/new", recorder.callbacks)

        assert recorder.errors == ["Session expired"]
