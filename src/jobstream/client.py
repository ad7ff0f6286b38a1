"""Streaming request client -- the caller-facing API.

Opens a job stream with a ``POST``, decodes the response body
incrementally, and delivers results through caller-supplied callbacks.
Errors never escape to the caller: they arrive as ``on_error`` messages.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Callable, Mapping
from typing import Any

import httpx

from jobstream.connection import ConnectionState, StreamConnection
from jobstream.dispatcher import (
    DEFAULT_VOCABULARY,
    EventDispatcher,
    EventRoute,
    StreamCallbacks,
)
from jobstream.errors import (
    JobStreamError,
    PrerequisiteRequiredError,
    StreamBusyError,
    StreamTimeoutError,
)
from jobstream.events import EventFrame
from jobstream.parser import FrameParser
from jobstream.transport.base import StreamTransport
from jobstream.transport.http import HTTPStreamTransport

logger = logging.getLogger("jobstream.client")

INCOMPLETE_STREAM_MESSAGE = "Stream closed before the job finished"


class StreamClient:
    """Client for long-running jobs reported over an event stream.

    Usage::

        def on_created(data):
            print("assessment", data["assessmentId"])

        client = jobstream.StreamClient(
            "http://localhost:8080",
            callbacks=jobstream.StreamCallbacks(on_event=on_created, on_error=print),
            vocabulary=jobstream.ASSESSMENT_VOCABULARY,
        )
        await client.send_message({"name": "Backend take-home"}, "/api/assessments/new")

    Per-call callbacks can be given to ``open`` instead. Only one stream may
    be open at a time; ``cancel`` closes it from another task and ``abort``
    from inside a callback.

    Also works as an async context manager::

        async with jobstream.StreamClient("http://localhost:8080") as client:
            await client.open(payload, "/api/assessments/chat", callbacks)
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        callbacks: StreamCallbacks | None = None,
        vocabulary: Mapping[str, EventRoute] = DEFAULT_VOCABULARY,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        cookies: dict[str, str] | httpx.Cookies | None = None,
        auth: httpx.Auth | None = None,
        transport: StreamTransport | None = None,
        require_terminal: bool = False,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Server base URL. Endpoints are resolved against it.
            callbacks: Callbacks used by ``send_message``.
            vocabulary: Event routing table. Default: the superset of the
                assessment and chat vocabularies.
            timeout: Overall deadline in seconds for each stream. Default:
                no deadline.
            headers: Additional HTTP headers.
            cookies: Session cookies sent with every request.
            auth: Optional httpx auth flow, e.g. ``TokenRefreshAuth``.
            transport: Optional pre-configured transport.
            require_terminal: Report ``on_error`` when the stream ends
                without a terminal event.
        """
        self._transport = transport or HTTPStreamTransport(
            base_url, headers=headers, cookies=cookies, auth=auth
        )
        self._callbacks = callbacks or StreamCallbacks()
        self._vocabulary = vocabulary
        self._timeout = timeout
        self._require_terminal = require_terminal

        self._connection = StreamConnection()
        self._task: asyncio.Task[None] | None = None
        self._cancel_requested = False

    async def __aenter__(self) -> StreamClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # --- Observable state ---

    @property
    def connection(self) -> StreamConnection:
        return self._connection

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    @property
    def is_loading(self) -> bool:
        return self._task is not None and not self._task.done()

    # --- Stream operations ---

    async def send_message(
        self,
        payload: Any,
        endpoint: str,
        *,
        timeout: float | None = None,
        stream: bool = False,
    ) -> None:
        """Open a stream using the callbacks given at construction."""
        await self.open(payload, endpoint, self._callbacks, timeout=timeout, stream=stream)

    async def open(
        self,
        payload: Any,
        endpoint: str,
        callbacks: StreamCallbacks | None = None,
        *,
        timeout: float | None = None,
        stream: bool = False,
    ) -> None:
        """Send ``payload`` to ``endpoint`` and consume the job stream.

        Returns when the stream completes, fails, times out or is cancelled.

        Args:
            payload: JSON-serialisable job input.
            endpoint: Path of the job-creating endpoint.
            callbacks: Callbacks for this stream. Default: the client's.
            timeout: Deadline for this stream, overriding the client's.
            stream: Treat a successful response as a stream regardless of
                its content type.

        Raises:
            StreamBusyError: A stream is already open on this client.
        """
        if self.is_loading:
            raise StreamBusyError("A stream is already open on this client")

        callbacks = callbacks or self._callbacks
        deadline = timeout if timeout is not None else self._timeout
        self._cancel_requested = False
        self._connection.begin()

        task = asyncio.create_task(
            self._run(payload, endpoint, callbacks, deadline, stream),
            name=f"jobstream:{endpoint}",
        )
        self._task = task
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.debug("Stream to %s cancelled", endpoint)
        finally:
            if self._task is task:
                self._task = None
                if self._connection.state.is_active:
                    self._connection.close()

    def abort(self) -> None:
        """Request cancellation without waiting for the reader to stop.

        Usable from inside a (synchronous) callback; no further callbacks
        fire for the stream.
        """
        self._connection.close()
        task = self._task
        if task is None or task.done():
            return
        self._cancel_requested = True
        task.cancel()

    async def cancel(self) -> None:
        """Close the active stream, if any. Safe to call repeatedly.

        Neither callback fires for a cancelled stream.
        """
        task = self._task
        self.abort()
        if task is None or task.done() or task is asyncio.current_task():
            return
        await asyncio.wait({task})
        self._connection.close()

    async def close(self) -> None:
        """Cancel any active stream and release the transport."""
        await self.cancel()
        await self._transport.close()

    # --- Read loop ---

    async def _run(
        self,
        payload: Any,
        endpoint: str,
        callbacks: StreamCallbacks,
        deadline: float | None,
        force_stream: bool,
    ) -> None:
        dispatcher = EventDispatcher(callbacks, self._connection, self._vocabulary)
        scope = asyncio.timeout(deadline)
        try:
            async with scope:
                await self._consume(payload, endpoint, dispatcher, force_stream)
        except TimeoutError:
            if scope.expired():
                logger.warning("Stream to %s exceeded its %ss deadline", endpoint, deadline)
                self._fail(callbacks, str(StreamTimeoutError(deadline or 0)))
            else:
                logger.exception("Callback raised while handling stream from %s", endpoint)
                self._connection.fail()
            return
        except PrerequisiteRequiredError as e:
            logger.info("Server deferred job at %s until %s", endpoint, e.redirect_url)
            self._connection.close()
            if callbacks.on_redirect is not None:
                self._deliver(callbacks.on_redirect, e.redirect_url)
            else:
                self._deliver(callbacks.error, str(e))
            return
        except JobStreamError as e:
            logger.warning("Stream to %s failed: %s", endpoint, e)
            self._fail(callbacks, str(e))
            return
        except Exception:
            # A caller callback raised; it is not called again for this stream.
            logger.exception("Callback raised while handling stream from %s", endpoint)
            self._connection.fail()
            return

        if not dispatcher.terminated and not self._cancel_requested:
            logger.warning("Stream from %s ended without a terminal event", endpoint)
            if self._require_terminal:
                self._fail(callbacks, INCOMPLETE_STREAM_MESSAGE)
                return
        self._connection.close()

    async def _consume(
        self,
        payload: Any,
        endpoint: str,
        dispatcher: EventDispatcher,
        force_stream: bool,
    ) -> None:
        async with self._transport.stream(endpoint, payload, force_stream=force_stream) as chunks:
            self._connection.streaming()
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            parser = FrameParser()

            async for chunk in chunks:
                self._dispatch_all(dispatcher, parser.feed(decoder.decode(chunk)))
                if dispatcher.terminated or self._cancel_requested:
                    return

            self._dispatch_all(dispatcher, parser.feed(decoder.decode(b"", final=True)))
            self._dispatch_all(dispatcher, parser.flush())

    def _dispatch_all(self, dispatcher: EventDispatcher, frames: list[EventFrame]) -> None:
        for frame in frames:
            if dispatcher.terminated or self._cancel_requested:
                return
            dispatcher.dispatch(frame)

    def _fail(self, callbacks: StreamCallbacks, message: str) -> None:
        self._connection.fail()
        self._deliver(callbacks.error, message)

    def _deliver(self, fn: Callable[[str], None], message: str) -> None:
        try:
            fn(message)
        except Exception:
            logger.exception("Callback raised while reporting %r", message)
            self._connection.fail()
