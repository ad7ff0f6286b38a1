"""Bounded fixed-interval polling.

Used while waiting for an external prerequisite to be satisfied, e.g.
checking every few seconds whether the user finished linking an account
before retrying a chat request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from jobstream.errors import PollTimeoutError

logger = logging.getLogger("jobstream.polling")

T = TypeVar("T")

DEFAULT_INTERVAL = 7.0
DEFAULT_MAX_ATTEMPTS = 60


async def poll_until(
    check: Callable[[], Awaitable[T | None]],
    *,
    interval: float = DEFAULT_INTERVAL,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T:
    """Call ``check`` until it returns a truthy value and return that value.

    The first check runs immediately; later checks are ``interval`` seconds
    apart. An exception raised by ``check`` is logged and counts as a
    failed attempt.

    Raises:
        PollTimeoutError: ``check`` never succeeded within ``max_attempts``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            result = await check()
        except Exception:
            logger.warning("Poll attempt %d raised", attempt, exc_info=True)
            result = None
        if result:
            logger.debug("Poll succeeded on attempt %d", attempt)
            return result
        if attempt < max_attempts:
            await asyncio.sleep(interval)

    logger.warning("Polling gave up after %d attempts", max_attempts)
    raise PollTimeoutError(max_attempts)
