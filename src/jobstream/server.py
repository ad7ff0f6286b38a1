"""FastAPI endpoints that start jobs and stream their events.

Each endpoint validates the request through the orchestrator before
anything is streamed: an unknown job type is a 404, an unmet prerequisite
is a plain JSON redirect instruction, and only an accepted job answers
with ``201 text/event-stream``.

Usage::

    orchestrator = JobOrchestrator()
    app = create_app(orchestrator)
    # uvicorn module:app
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from sse_starlette.sse import EventSourceResponse

from jobstream.config import ServerSettings
from jobstream.errors import PrerequisiteRequiredError, UnknownJobTypeError
from jobstream.orchestrator import JobOrchestrator, JobStream

logger = logging.getLogger("jobstream.server")

ASSESSMENT_JOB = "assessment.create"
CHAT_JOB = "chat.complete"


def create_app(
    orchestrator: JobOrchestrator,
    settings: ServerSettings | None = None,
) -> FastAPI:
    """Build the application serving job streams from ``orchestrator``."""
    settings = settings or ServerSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logging.getLogger("jobstream").setLevel(settings.log_level.upper())
        logger.info("Serving job types: %s", ", ".join(orchestrator.job_types) or "none")
        yield
        await orchestrator.shutdown()
        logger.info("Shutdown complete")

    app = FastAPI(title="jobstream", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.settings = settings

    app.add_api_route(
        settings.assessment_path,
        _job_endpoint(ASSESSMENT_JOB),
        methods=["POST"],
        status_code=201,
        name="create_assessment",
    )
    app.add_api_route(
        settings.chat_path,
        _job_endpoint(CHAT_JOB),
        methods=["POST"],
        status_code=201,
        name="chat",
    )
    return app


def _job_endpoint(job_type: str) -> Callable[..., Awaitable[Response]]:
    async def endpoint(request: Request, payload: dict[str, Any] = Body(...)) -> Response:
        orchestrator: JobOrchestrator = request.app.state.orchestrator
        settings: ServerSettings = request.app.state.settings
        try:
            stream = await orchestrator.submit(job_type, payload)
        except UnknownJobTypeError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except PrerequisiteRequiredError as e:
            return JSONResponse({"redirectUrl": e.redirect_url, "requiresRedirect": True})

        return EventSourceResponse(
            _publish(stream),
            status_code=201,
            sep="\n",
            ping=settings.heartbeat_interval_s,
        )

    return endpoint


async def _publish(stream: JobStream) -> AsyncIterator[dict[str, Any]]:
    async for frame in stream:
        yield frame.to_sse()
