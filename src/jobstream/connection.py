"""Connection state for a single streaming subscription."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class ConnectionState(enum.StrEnum):
    """StreamConnection lifecycle states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (ConnectionState.CONNECTING, ConnectionState.STREAMING)


@dataclass
class StreamConnection:
    """Observable state of the stream owned by one ``StreamClient``.

    ``is_connected`` follows the server's acknowledgement: it becomes true on
    ``connected`` and false again on a terminal event, cancellation or close.
    """

    state: ConnectionState = ConnectionState.IDLE
    is_connected: bool = False
    job_id: str | None = None
    last_event_id: str | None = None

    def begin(self) -> None:
        self.state = ConnectionState.CONNECTING
        self.is_connected = False
        self.job_id = None
        self.last_event_id = None

    def streaming(self) -> None:
        self.state = ConnectionState.STREAMING

    def acknowledge(self) -> None:
        self.is_connected = True

    def close(self) -> None:
        self.state = ConnectionState.CLOSED
        self.is_connected = False

    def fail(self) -> None:
        self.state = ConnectionState.FAILED
        self.is_connected = False
