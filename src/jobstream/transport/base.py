"""Abstract stream transport.

Defines the interface the streaming client uses to open a job stream.
"""

from __future__ import annotations

import abc
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Any

EVENT_STREAM_MEDIA_TYPE = "text/event-stream"


class StreamTransport(abc.ABC):
    """Abstract base class for job stream transports.

    A transport performs the triggering request and hands back the raw
    response body as byte chunks.
    """

    @abc.abstractmethod
    def stream(
        self,
        endpoint: str,
        payload: Any,
        *,
        force_stream: bool = False,
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Open a job stream.

        Entering the context sends the request and validates the response;
        the yielded iterator produces body chunks as they arrive. Leaving the
        context releases the response exactly once.

        Args:
            endpoint: Path (or absolute URL) of the job-creating endpoint.
            payload: JSON-serialisable job input.
            force_stream: Treat a successful response as a stream even if
                its content type is not ``text/event-stream``.

        Raises:
            StreamTransportError: Non-success status, missing body, or a
                response that is not a stream.
            AuthenticationError: A 401 that survived credential refresh.
            PrerequisiteRequiredError: The server answered with a redirect.
            StreamConnectionError: Network failure.
        """

    async def close(self) -> None:
        """Release transport resources."""
