"""Job, handler context and chat message types.

Defines the server-side job record, the context handed to job handlers,
and the chat message wire shape delivered in ``chat_completion`` and
``message`` events.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from jobstream._utils import format_datetime, parse_datetime, utcnow
from jobstream.events import EventType


class JobStatus(enum.StrEnum):
    """Job lifecycle states."""

    CREATED = "CREATED"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


@dataclass
class Job:
    """A unit of asynchronous work reported to exactly one subscriber."""

    id: str
    type: str
    status: JobStatus = JobStatus.CREATED
    result: Any = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def transition(self, status: JobStatus) -> None:
        if self.status.is_terminal:
            raise ValueError(f"Job {self.id} is already {self.status}")
        self.status = status
        self.updated_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "jobId": self.id,
            "type": self.type,
            "status": self.status.value,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        }
        if self.result is not None:
            d["result"] = self.result
        if self.error is not None:
            d["error"] = self.error
        return d


class MessageType(enum.StrEnum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


@dataclass
class ChatMessage:
    """A chat message exchanged with the assessment assistant."""

    id: str
    text: str
    model: str = ""
    message_type: MessageType = MessageType.ASSISTANT
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(
            id=str(data["id"]),
            text=data.get("text", ""),
            model=data.get("model", ""),
            message_type=MessageType(data.get("messageType", "ASSISTANT")),
            created_at=parse_datetime(data.get("createdAt")),
            updated_at=parse_datetime(data.get("updatedAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "model": self.model,
            "messageType": self.message_type.value,
            "createdAt": format_datetime(self.created_at),
            "updatedAt": format_datetime(self.updated_at),
        }


# Emits one event for the job; returns False if the stream is already closed.
EmitFn = Callable[[str, Any], bool]

# Type alias for a job handler function
JobHandler = Callable[["JobContext"], Coroutine[Any, Any, Any]]


def _discard(event: str, data: Any) -> bool:
    return False


@dataclass
class JobContext:
    """Context passed to job handlers during execution.

    Provides the job record, the request payload, and helpers for
    reporting progress to the subscriber while the handler runs.
    """

    job: Job
    payload: dict[str, Any] = field(default_factory=dict)
    emit: EmitFn = field(default=_discard, repr=False)
    # Terminal event sent with the handler's result.
    success_event: str | None = None

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def job_type(self) -> str:
        return self.job.type

    def report_progress(self, message: str, data: dict[str, Any] | None = None) -> bool:
        """Send a ``job_running`` update with a human-readable message."""
        body: dict[str, Any] = {"jobId": self.job.id, "message": message}
        if data is not None:
            body["data"] = data
        return self.emit(EventType.JOB_RUNNING, body)

    def emit_message(self, message: ChatMessage | dict[str, Any]) -> bool:
        """Send one incremental chat message as a ``message`` event."""
        if isinstance(message, ChatMessage):
            message = message.to_dict()
        return self.emit(EventType.MESSAGE, message)
