"""Logging middleware for job execution.

Logs when a handler starts running and how its job ends: the terminal event
the subscriber will receive, how many progress updates and chat messages the
handler streamed, and how long it ran.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any

from jobstream.events import EventType
from jobstream.job import JobContext
from jobstream.middleware import ExecutionMiddleware, ExecutionNext

logger = logging.getLogger("jobstream.orchestrator")


def logging_middleware(
    *,
    log_level: int = logging.INFO,
    custom_logger: logging.Logger | None = None,
) -> ExecutionMiddleware:
    """Create execution middleware that logs each job's stream outcome.

    Args:
        log_level: The logging level for start/completion messages.
            Defaults to ``logging.INFO``.
        custom_logger: Optional custom logger instance. Defaults to
            the ``jobstream.orchestrator`` logger.
    """
    log = custom_logger or logger

    async def middleware(ctx: JobContext, next_handler: ExecutionNext) -> Any:
        job = ctx.job
        sent: Counter[str] = Counter()
        emit = ctx.emit

        def counting_emit(event: str, data: Any) -> bool:
            delivered = emit(event, data)
            if delivered:
                sent[event] += 1
            return delivered

        ctx.emit = counting_emit
        log.log(log_level, "Job %s running: %s", job.id, job.type)

        start = time.monotonic()
        try:
            result = await next_handler()
        except Exception as exc:
            log.warning(
                "Job %s (%s) will report %r after %.2fms: %s",
                job.id,
                job.type,
                EventType.ERROR,
                (time.monotonic() - start) * 1000,
                exc,
            )
            raise
        finally:
            ctx.emit = emit

        log.log(
            log_level,
            "Job %s (%s) will report %r after %.2fms (%d progress updates, %d messages)",
            job.id,
            job.type,
            ctx.success_event,
            (time.monotonic() - start) * 1000,
            sent[EventType.JOB_RUNNING],
            sent[EventType.MESSAGE],
        )
        return result

    return middleware
