"""Incremental parser for the line-framed event stream.

The parser accepts decoded text in arbitrary chunks and emits a frame for
every complete ``data:`` line, using the event name and id seen so far.
A partial trailing line is held back until the next chunk (or ``flush``),
so chunk boundaries never lose or duplicate characters.

Example::

    parser = FrameParser()
    frames = parser.feed('event: job_running\\ndata: {"a"')
    frames += parser.feed(': 1}\\n')
    # [EventFrame(event="job_running", data={"a": 1}, ...)]
"""

from __future__ import annotations

import json
import logging

from jobstream.events import EventFrame

logger = logging.getLogger("jobstream.parser")

_ID = "id:"
_EVENT = "event:"
_DATA = "data:"


class FrameParser:
    """Turns a growing text buffer into ``EventFrame`` objects."""

    def __init__(self) -> None:
        self._buffer = ""
        self._event = ""
        self._id: str | None = None
        self._dispatched = False
        self.malformed_count = 0

    @property
    def buffer(self) -> str:
        """Text received after the last newline, not yet processed."""
        return self._buffer

    @property
    def current_event(self) -> str:
        return self._event

    def feed(self, text: str) -> list[EventFrame]:
        """Append ``text`` and return the frames completed by it, in order."""
        if not text:
            return []
        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        frames: list[EventFrame] = []
        for line in lines:
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def flush(self) -> list[EventFrame]:
        """Process whatever is left in the buffer as a final line."""
        remainder, self._buffer = self._buffer, ""
        if not remainder:
            return []
        frame = self._process_line(remainder)
        return [frame] if frame is not None else []

    def _process_line(self, line: str) -> EventFrame | None:
        if line.endswith("\r"):
            line = line[:-1]

        if line.startswith(_ID):
            self._id = line[len(_ID):].lstrip()
            return None

        if line.startswith(_EVENT):
            self._event = line[len(_EVENT):].strip()
            return None

        if line.startswith(_DATA):
            return self._parse_data(line[len(_DATA):])

        if not line.strip():
            # Frame boundary: a new logical frame starts after a dispatch.
            if self._dispatched:
                self._event = ""
                self._id = None
                self._dispatched = False
            return None

        logger.debug("Ignoring unrecognised stream line: %r", line)
        return None

    def _parse_data(self, payload: str) -> EventFrame | None:
        payload = payload.strip()
        if not payload:
            return None
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            self.malformed_count += 1
            logger.warning(
                "Skipping malformed data line for event %r: %s (%r)",
                self._event,
                exc,
                payload,
            )
            return None
        self._dispatched = True
        return EventFrame(event=self._event, data=data, id=self._id, raw=payload)
