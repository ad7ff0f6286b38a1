"""jobstream -- long-running jobs reported over server-sent event streams.

Provides an async client that opens a job with one ``POST`` and consumes
its event stream, and a server-side orchestrator that runs job handlers
and streams their lifecycle.

Usage::

    import jobstream

    # Consumer
    async with jobstream.StreamClient(
        "http://localhost:8080",
        callbacks=jobstream.StreamCallbacks(on_event=print, on_error=print),
    ) as client:
        await client.send_message({"name": "Backend take-home"}, "/api/assessments/new")

    # Producer
    orchestrator = jobstream.JobOrchestrator()

    @orchestrator.register("assessment.create", event="assessment_created")
    async def create_assessment(ctx: jobstream.JobContext):
        ctx.report_progress("Provisioning repository")
        return {"assessmentId": await provision(ctx.payload)}

    app = jobstream.create_app(orchestrator)
"""

from jobstream.auth import SingleFlight, TokenRefreshAuth
from jobstream.client import StreamClient
from jobstream.config import ServerSettings
from jobstream.connection import ConnectionState, StreamConnection
from jobstream.dispatcher import (
    ASSESSMENT_VOCABULARY,
    CHAT_VOCABULARY,
    DEFAULT_VOCABULARY,
    EventAction,
    EventDispatcher,
    EventRoute,
    StreamCallbacks,
)
from jobstream.errors import (
    AuthenticationError,
    JobStreamError,
    PollTimeoutError,
    PrerequisiteRequiredError,
    StreamBusyError,
    StreamConnectionError,
    StreamTimeoutError,
    StreamTransportError,
    UnknownJobTypeError,
)
from jobstream.events import TERMINAL_EVENTS, EventFrame, EventType
from jobstream.job import ChatMessage, Job, JobContext, JobStatus, MessageType
from jobstream.orchestrator import JobOrchestrator, JobStream
from jobstream.parser import FrameParser
from jobstream.polling import poll_until
from jobstream.server import ASSESSMENT_JOB, CHAT_JOB, create_app

__version__ = "0.1.0"

__all__ = [
    # Client
    "StreamClient",
    "StreamCallbacks",
    "StreamConnection",
    "ConnectionState",
    # Auth
    "SingleFlight",
    "TokenRefreshAuth",
    # Wire
    "EventFrame",
    "EventType",
    "FrameParser",
    "TERMINAL_EVENTS",
    # Dispatch
    "EventAction",
    "EventDispatcher",
    "EventRoute",
    "ASSESSMENT_VOCABULARY",
    "CHAT_VOCABULARY",
    "DEFAULT_VOCABULARY",
    # Server
    "JobOrchestrator",
    "JobStream",
    "ServerSettings",
    "create_app",
    "ASSESSMENT_JOB",
    "CHAT_JOB",
    # Core types
    "Job",
    "JobContext",
    "JobStatus",
    "ChatMessage",
    "MessageType",
    # Utilities
    "poll_until",
    # Errors
    "JobStreamError",
    "StreamTransportError",
    "AuthenticationError",
    "PrerequisiteRequiredError",
    "StreamConnectionError",
    "StreamTimeoutError",
    "StreamBusyError",
    "UnknownJobTypeError",
    "PollTimeoutError",
]
