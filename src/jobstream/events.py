"""jobstream event types.

A frame is one logical server-sent event. The vocabulary below is the
superset of the assessment-creation and chat job protocols.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass
class EventFrame:
    """A single decoded server-sent event.

    ``event`` is empty when the stream did not name the event; the
    dispatcher treats that as ``message``.
    """

    event: str = ""
    data: Any = None
    id: str | None = None
    raw: str = ""

    def encode(self) -> str:
        """Render the frame in wire syntax, terminated by a blank line."""
        lines: list[str] = []
        if self.event:
            lines.append(f"event: {self.event}")
        if self.id is not None:
            lines.append(f"id: {self.id}")
        lines.append(f"data: {encode_data(self.data)}")
        return "\n".join(lines) + "\n\n"

    def to_sse(self) -> dict[str, Any]:
        """Keyword form accepted by sse-starlette's ``EventSourceResponse``."""
        return {"event": self.event or None, "id": self.id, "data": encode_data(self.data)}


def encode_data(data: Any) -> str:
    # Compact JSON never contains a raw newline, so one frame is one data line.
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)


class EventType:
    """Event names understood by the dispatcher."""

    CONNECTED = "connected"
    JOB_CREATED = "job_created"
    JOB_RUNNING = "job_running"

    # Terminal success
    ASSESSMENT_CREATED = "assessment_created"
    CHAT_COMPLETION = "chat_completion"
    CHAT_COMPLETED = "chat_completed"

    # Incremental chat output
    MESSAGE = "message"

    # Terminal failure
    ERROR = "error"


TERMINAL_EVENTS = frozenset(
    {
        EventType.ASSESSMENT_CREATED,
        EventType.CHAT_COMPLETION,
        EventType.CHAT_COMPLETED,
        EventType.ERROR,
    }
)
