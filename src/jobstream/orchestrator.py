"""Job orchestrator -- the server-side producer of job streams.

Accepts a job request, allocates a job id, runs the registered handler in
the background and reports its lifecycle to exactly one subscriber:

    connected -> job_created -> job_running (1..n) -> terminal

where the terminal event is the handler's registered success event
(e.g. ``assessment_created``) or ``error``. Nothing is emitted after the
terminal event, and the stream ends right after it has been delivered.

Usage::

    orchestrator = JobOrchestrator(job_timeout=300)

    @orchestrator.register("assessment.create", event="assessment_created")
    async def create_assessment(ctx: JobContext):
        ctx.report_progress("Provisioning repository")
        assessment_id = await provision(ctx.payload)
        return {"assessmentId": assessment_id}

    stream = await orchestrator.submit("assessment.create", {"name": "X"})
    async for frame in stream:
        send(frame.encode())
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from jobstream.errors import PrerequisiteRequiredError, UnknownJobTypeError
from jobstream.events import TERMINAL_EVENTS, EventFrame, EventType
from jobstream.job import Job, JobContext, JobHandler, JobStatus
from jobstream.middleware import ExecutionMiddleware, ExecutionMiddlewareChain
from jobstream.middleware.logging import logging_middleware
from jobstream.middleware.timeout import timeout_middleware

logger = logging.getLogger("jobstream.orchestrator")

# Returns a redirect URL when an external prerequisite is not yet satisfied.
PrerequisiteCheck = Callable[[dict[str, Any]], Awaitable[str | None]]

_END = object()


class JobStream:
    """The event stream of one job, consumed by a single subscriber.

    Frames are queued until the subscriber reads them. After the terminal
    frame the stream is closed: later emits are dropped with a warning. If
    the subscriber goes away first the job keeps running and its remaining
    events are discarded.
    """

    def __init__(self, job: Job) -> None:
        self.job = job
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False
        self._detached = False
        self._subscribed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    def emit(self, event: str, data: Any) -> bool:
        """Queue a frame. Terminal event names complete the stream."""
        if event in TERMINAL_EVENTS:
            return self.complete(event, data)
        if self._closed:
            logger.warning(
                "Dropping %r for job %s: stream already completed", event, self.job.id
            )
            return False
        if self._detached:
            logger.debug("No subscriber for job %s, dropping %r", self.job.id, event)
            return False
        self._queue.put_nowait(EventFrame(event=event, data=data, id=self.job.id))
        return True

    def complete(self, event: str, data: Any) -> bool:
        """Queue the terminal frame and close the stream."""
        if self._closed:
            logger.warning(
                "Dropping terminal %r for job %s: stream already completed",
                event,
                self.job.id,
            )
            return False
        self._closed = True
        if self._detached:
            return False
        self._queue.put_nowait(EventFrame(event=event, data=data, id=self.job.id))
        self._queue.put_nowait(_END)
        return True

    async def __aiter__(self) -> AsyncIterator[EventFrame]:
        if self._subscribed:
            raise RuntimeError(f"Job {self.job.id} already has a subscriber")
        self._subscribed = True
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    return
                yield item
        finally:
            if not self._closed:
                self._detached = True
                logger.info("Subscriber for job %s disconnected", self.job.id)


@dataclass(frozen=True)
class JobRegistration:
    handler: JobHandler
    event: str
    prerequisite: PrerequisiteCheck | None = None


class JobOrchestrator:
    """Runs registered job handlers and streams their progress.

    Args:
        job_timeout: Seconds a handler may run before the job fails with a
            timeout error. ``None`` disables the limit. Default: 300.
        log_jobs: Install the logging middleware. Default: True.
    """

    def __init__(self, *, job_timeout: float | None = 300.0, log_jobs: bool = True) -> None:
        self._registrations: dict[str, JobRegistration] = {}
        self._execution_middleware = ExecutionMiddlewareChain()
        if log_jobs:
            self._execution_middleware.add(logging_middleware())
        if job_timeout:
            self._execution_middleware.add(timeout_middleware(seconds=job_timeout))

        self._streams: dict[str, JobStream] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # --- Handler Registration ---

    def register(
        self,
        job_type: str,
        *,
        event: str,
        prerequisite: PrerequisiteCheck | None = None,
    ) -> Callable[[JobHandler], JobHandler]:
        """Register a handler for a job type (decorator).

        Args:
            job_type: Name the job is submitted under.
            event: Terminal success event name sent with the handler's result.
            prerequisite: Optional check run before the job is created.
        """

        def decorator(fn: JobHandler) -> JobHandler:
            self.handler(job_type, fn, event=event, prerequisite=prerequisite)
            return fn

        return decorator

    def handler(
        self,
        job_type: str,
        fn: JobHandler,
        *,
        event: str,
        prerequisite: PrerequisiteCheck | None = None,
    ) -> None:
        """Register a handler for a job type (non-decorator form)."""
        if event not in TERMINAL_EVENTS or event == EventType.ERROR:
            raise ValueError(f"{event!r} is not a terminal success event")
        self._registrations[job_type] = JobRegistration(fn, event, prerequisite)

    def middleware(self, fn: ExecutionMiddleware) -> ExecutionMiddleware:
        """Register an execution middleware (decorator)."""
        self._execution_middleware.add(fn)
        return fn

    # --- Jobs ---

    @property
    def job_types(self) -> list[str]:
        return list(self._registrations)

    @property
    def active_jobs(self) -> list[str]:
        return list(self._tasks)

    def get(self, job_id: str) -> Job | None:
        """Return a job that is still running, or None."""
        stream = self._streams.get(job_id)
        return stream.job if stream is not None else None

    async def submit(self, job_type: str, payload: dict[str, Any]) -> JobStream:
        """Create a job and start running it.

        Validation happens before anything is queued, so a rejected request
        never produces a stream.

        Raises:
            UnknownJobTypeError: No handler is registered for ``job_type``.
            PrerequisiteRequiredError: The registered prerequisite is unmet.
        """
        registration = self._registrations.get(job_type)
        if registration is None:
            raise UnknownJobTypeError(job_type)
        if registration.prerequisite is not None:
            redirect_url = await registration.prerequisite(payload)
            if redirect_url:
                logger.info("Prerequisite unmet for %s, redirecting to %s", job_type, redirect_url)
                raise PrerequisiteRequiredError(redirect_url)

        job = Job(id=str(uuid.uuid4()), type=job_type)
        stream = JobStream(job)
        stream.emit(EventType.CONNECTED, {"jobId": job.id, "message": "Connected"})
        stream.emit(EventType.JOB_CREATED, {"jobId": job.id, "status": job.status.value})

        self._streams[job.id] = stream
        task = asyncio.create_task(self._run(job, registration, payload, stream), name=f"job-{job.id}")
        self._tasks[job.id] = task
        task.add_done_callback(lambda _: self._job_done(job.id))
        logger.info("Job created: %s (%s)", job.id, job_type)
        return stream

    async def shutdown(self) -> None:
        """Cancel running jobs and wait for them to report failure."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        logger.info("Cancelling %d running jobs", len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _job_done(self, job_id: str) -> None:
        self._tasks.pop(job_id, None)
        stream = self._streams.pop(job_id, None)
        if stream is not None and not stream.closed:
            # Cancelled before the handler started.
            self._fail(stream.job, stream, "Job cancelled")

    async def _run(
        self,
        job: Job,
        registration: JobRegistration,
        payload: dict[str, Any],
        stream: JobStream,
    ) -> None:
        job.transition(JobStatus.RUNNING)
        stream.emit(EventType.JOB_RUNNING, {"jobId": job.id, "message": f"Processing {job.type}"})
        ctx = JobContext(
            job=job, payload=payload, emit=stream.emit, success_event=registration.event
        )

        try:
            result = await self._execution_middleware.execute(ctx, registration.handler)
        except asyncio.CancelledError:
            self._fail(job, stream, "Job cancelled")
            raise
        except Exception as exc:
            logger.warning("Job %s (%s) failed: %s", job.id, job.type, exc)
            self._fail(job, stream, str(exc) or type(exc).__name__)
            return

        job.result = result
        job.transition(JobStatus.SUCCEEDED)
        stream.complete(registration.event, _success_payload(job.id, result))

    def _fail(self, job: Job, stream: JobStream, message: str) -> None:
        job.error = message
        job.transition(JobStatus.FAILED)
        stream.complete(EventType.ERROR, {"error": message, "jobId": job.id})


def _success_payload(job_id: str, result: Any) -> dict[str, Any]:
    if result is None:
        return {"jobId": job_id}
    if isinstance(result, dict):
        return {"jobId": job_id, **result}
    return {"jobId": job_id, "result": result}
