"""End-to-end tests: FastAPI endpoints consumed by the streaming client."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

import httpx
import pytest

from jobstream.client import StreamClient
from jobstream.config import ServerSettings
from jobstream.connection import ConnectionState
from jobstream.dispatcher import ASSESSMENT_VOCABULARY, CHAT_VOCABULARY
from jobstream.events import EventType
from jobstream.job import ChatMessage, JobContext
from jobstream.orchestrator import JobOrchestrator
from jobstream.parser import FrameParser
from jobstream.server import ASSESSMENT_JOB, CHAT_JOB, create_app
from jobstream.testing import RecordingCallbacks, event_names
from jobstream.transport.http import HTTPStreamTransport

BASE_URL = "http://testserver"
INSTALL_URL = "https://github.com/apps/assessments/installations/new"


@pytest.fixture
def linked() -> set[str]:
    return set()


@pytest.fixture
def orchestrator(linked: set[str]) -> JobOrchestrator:
    orch = JobOrchestrator(job_timeout=5)

    @orch.register(ASSESSMENT_JOB, event=EventType.ASSESSMENT_CREATED)
    async def create(ctx: JobContext) -> dict[str, Any]:
        if ctx.payload.get("fail"):
            raise RuntimeError("GitHub link failed")
        ctx.report_progress("Provisioning repository")
        await asyncio.sleep(0)
        return {"assessmentId": "a1", "name": ctx.payload.get("name")}

    async def require_link(payload: dict[str, Any]) -> str | None:
        return None if payload.get("userId") in linked else INSTALL_URL

    @orch.register(CHAT_JOB, event=EventType.CHAT_COMPLETION, prerequisite=require_link)
    async def chat(ctx: JobContext) -> dict[str, Any]:
        first = ChatMessage(id="m1", text="Hello")
        second = ChatMessage(id="m2", text="World")
        ctx.emit_message(first)
        ctx.emit_message(second)
        return {"messages": [first.to_dict(), second.to_dict()]}

    return orch


@pytest.fixture
async def http(orchestrator: JobOrchestrator) -> AsyncIterator[httpx.AsyncClient]:
    app = create_app(orchestrator, ServerSettings(heartbeat_interval_s=15))
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url=BASE_URL
    ) as client:
        yield client


def stream_client(http: httpx.AsyncClient, **kwargs: Any) -> StreamClient:
    return StreamClient(transport=HTTPStreamTransport(BASE_URL, client=http), **kwargs)


class TestWireFormat:
    async def test_assessment_stream(self, http: httpx.AsyncClient) -> None:
        response = await http.post("/api/assessments/new", json={"name": "Take-home"})

        assert response.status_code == 201
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = FrameParser().feed(response.text)
        assert event_names(frames) == [
            "connected",
            "job_created",
            "job_running",
            "job_running",
            "assessment_created",
        ]
        job_id = frames[0].data["jobId"]
        assert all(f.id == job_id for f in frames)
        assert frames[-1].data == {"jobId": job_id, "assessmentId": "a1", "name": "Take-home"}

    async def test_frames_use_newline_separators(self, http: httpx.AsyncClient) -> None:
        response = await http.post("/api/assessments/new", json={})
        assert "\r\n" not in response.text
        assert "event: connected\n" in response.text

    async def test_redirect_instruction(self, http: httpx.AsyncClient) -> None:
        response = await http.post("/api/assessments/chat", json={"userId": "u1"})
        assert response.status_code == 200
        assert response.json() == {"redirectUrl": INSTALL_URL, "requiresRedirect": True}

    async def test_body_must_be_an_object(self, http: httpx.AsyncClient) -> None:
        response = await http.post("/api/assessments/new", json=[1, 2])
        assert response.status_code == 422

    async def test_unregistered_job_type(self) -> None:
        app = create_app(JobOrchestrator())
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url=BASE_URL
        ) as client:
            response = await client.post("/api/assessments/new", json={})
        assert response.status_code == 404
        assert "assessment.create" in response.json()["detail"]

    async def test_custom_paths(self, orchestrator: JobOrchestrator) -> None:
        app = create_app(orchestrator, ServerSettings(assessment_path="/jobs/assessments"))
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url=BASE_URL
        ) as client:
            response = await client.post("/jobs/assessments", json={})
            missing = await client.post("/api/assessments/new", json={})
        assert response.status_code == 201
        assert missing.status_code == 404


class TestClientAgainstServer:
    async def test_assessment_happy_path(
        self, http: httpx.AsyncClient, recorder: RecordingCallbacks
    ) -> None:
        client = stream_client(http, vocabulary=ASSESSMENT_VOCABULARY)

        await client.open({"name": "Take-home"}, "/api/assessments/new", recorder.callbacks)

        assert len(recorder.events) == 1
        assert recorder.events[0]["assessmentId"] == "a1"
        assert recorder.events[0]["jobId"] == client.connection.job_id
        recorder.assert_no_error()
        assert client.state == ConnectionState.CLOSED
        assert client.is_connected is False

    async def test_server_side_failure(
        self, http: httpx.AsyncClient, recorder: RecordingCallbacks
    ) -> None:
        client = stream_client(http)
        await client.open({"fail": True}, "/api/assessments/new", recorder.callbacks)
        assert recorder.errors == ["GitHub link failed"]
        assert recorder.events == []

    async def test_chat_streaming(
        self, http: httpx.AsyncClient, linked: set[str], recorder: RecordingCallbacks
    ) -> None:
        linked.add("u1")
        client = stream_client(http, vocabulary=CHAT_VOCABULARY)

        await client.open({"userId": "u1", "message": "hi"}, "/api/assessments/chat", recorder.callbacks)

        assert [len(e) for e in recorder.events] == [1, 1, 2]
        assert recorder.events[0][0]["text"] == "Hello"
        assert recorder.events[1][0]["text"] == "World"
        assert [m["id"] for m in recorder.events[2]] == ["m1", "m2"]

    async def test_chat_redirect(
        self, http: httpx.AsyncClient, recorder: RecordingCallbacks
    ) -> None:
        client = stream_client(http, vocabulary=CHAT_VOCABULARY)
        await client.open({"userId": "u2"}, "/api/assessments/chat", recorder.callbacks)
        assert recorder.redirects == [INSTALL_URL]
        assert recorder.events == []
        assert recorder.errors == []


class TestServerSettings:
    def test_defaults(self) -> None:
        settings = ServerSettings(_env_file=None)
        assert settings.assessment_path == "/api/assessments/new"
        assert settings.chat_path == "/api/assessments/chat"
        assert settings.job_timeout_s == 300.0
        assert settings.heartbeat_interval_s == 15

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JOBSTREAM_CHAT_PATH", "/v2/chat")
        monkeypatch.setenv("JOBSTREAM_JOB_TIMEOUT_S", "30")
        settings = ServerSettings(_env_file=None)
        assert settings.chat_path == "/v2/chat"
        assert settings.job_timeout_s == 30.0
