"""jobstream testing utilities -- fake transport, recorders and wire helpers.

Usage::

    from jobstream.testing import FakeStreamTransport, RecordingCallbacks, sse_bytes

    async def test_shows_created_assessment():
        transport = FakeStreamTransport(
            sse_bytes(("connected", {}), ("assessment_created", {"assessmentId": "a1"}))
        )
        recorder = RecordingCallbacks()
        client = StreamClient(transport=transport)
        await client.open({"name": "X"}, "/api/assessments/new", recorder.callbacks)
        assert recorder.events == [{"assessmentId": "a1"}]
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from jobstream.dispatcher import StreamCallbacks
from jobstream.events import EventFrame
from jobstream.orchestrator import JobStream
from jobstream.transport.base import StreamTransport


@dataclass
class RecordingCallbacks:
    """Records everything a stream delivers, in order."""

    events: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    redirects: list[str] = field(default_factory=list)

    @property
    def callbacks(self) -> StreamCallbacks:
        return StreamCallbacks(
            on_event=self.events.append,
            on_error=self.errors.append,
            on_redirect=self.redirects.append,
        )

    def assert_no_error(self) -> None:
        assert not self.errors, f"Unexpected stream errors: {self.errors}"


class FakeStreamTransport(StreamTransport):
    """In-memory transport that replays canned body chunks.

    Tracks every request for assertion. Set ``error`` to make the next
    ``stream`` call raise instead of producing a body.
    """

    def __init__(self, *chunks: bytes, error: Exception | None = None) -> None:
        self.chunks: list[bytes] = list(chunks)
        self.error = error
        self.requests: list[dict[str, Any]] = []
        self.released = 0
        self.closed = False

    @asynccontextmanager
    async def stream(
        self,
        endpoint: str,
        payload: Any,
        *,
        force_stream: bool = False,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        self.requests.append(
            {"endpoint": endpoint, "payload": payload, "force_stream": force_stream}
        )
        if self.error is not None:
            raise self.error
        try:
            yield self._body()
        finally:
            self.released += 1

    async def _body(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk

    async def close(self) -> None:
        self.closed = True


class BlockingStreamTransport(FakeStreamTransport):
    """Fake transport whose body stays open after the canned chunks.

    The body stalls until ``release`` is set, so a stream can be observed
    mid-flight. ``stalled`` is set once every chunk has been handed out.
    """

    def __init__(self, *chunks: bytes, error: Exception | None = None) -> None:
        super().__init__(*chunks, error=error)
        self.release = asyncio.Event()
        self.stalled = asyncio.Event()

    async def _body(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            yield chunk
        self.stalled.set()
        await self.release.wait()


def sse_bytes(*frames: tuple[str, Any] | EventFrame, job_id: str | None = None) -> bytes:
    """Encode ``(event, data)`` pairs or frames in wire syntax."""
    out: list[str] = []
    for frame in frames:
        if not isinstance(frame, EventFrame):
            event, data = frame
            frame = EventFrame(event=event, data=data, id=job_id)
        out.append(frame.encode())
    return "".join(out).encode("utf-8")


def split_bytes(data: bytes, sizes: Iterable[int] | int) -> list[bytes]:
    """Cut ``data`` into consecutive chunks.

    ``sizes`` is either a fixed chunk size or a sequence of sizes; whatever
    remains after the sequence becomes the last chunk.
    """
    if isinstance(sizes, int):
        if sizes < 1:
            raise ValueError("chunk size must be positive")
        return [data[i : i + sizes] for i in range(0, len(data), sizes)]

    chunks: list[bytes] = []
    pos = 0
    for size in sizes:
        if pos >= len(data):
            break
        chunks.append(data[pos : pos + size])
        pos += size
    if pos < len(data):
        chunks.append(data[pos:])
    return chunks


async def drain(stream: JobStream) -> list[EventFrame]:
    """Consume a job stream to its end and return its frames."""
    return [frame async for frame in stream]


def event_names(frames: Sequence[EventFrame]) -> list[str]:
    return [frame.event for frame in frames]
