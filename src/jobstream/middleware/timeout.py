"""Execution deadline for job handlers.

A handler that outlives its deadline is cancelled and the job's stream ends
with an ``error`` event instead of leaving the subscriber waiting.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from jobstream.errors import JobStreamError
from jobstream.job import JobContext
from jobstream.middleware import ExecutionMiddleware, ExecutionNext

logger = logging.getLogger("jobstream.orchestrator")


class JobTimeoutError(JobStreamError):
    """A job handler ran past its deadline.

    Attributes:
        timeout_seconds: The configured deadline in seconds.
        job_id: The job whose handler was cancelled.
    """

    def __init__(self, timeout_seconds: float, job_id: str) -> None:
        self.timeout_seconds = timeout_seconds
        self.job_id = job_id
        super().__init__(f"Job {job_id} timed out after {timeout_seconds:g}s")


def timeout_middleware(*, seconds: float) -> ExecutionMiddleware:
    """Cancel handlers that run longer than ``seconds``.

    Raises:
        JobTimeoutError: The handler missed its deadline, so the job never
            reached its success event.
    """

    async def middleware(ctx: JobContext, next_handler: ExecutionNext) -> Any:
        scope = asyncio.timeout(seconds)
        try:
            async with scope:
                return await next_handler()
        except TimeoutError:
            if not scope.expired():
                raise
            logger.warning(
                "Job %s (%s) missed its %gs deadline before %r",
                ctx.job_id,
                ctx.job_type,
                seconds,
                ctx.success_event,
            )
            raise JobTimeoutError(seconds, ctx.job_id) from None

    return middleware
