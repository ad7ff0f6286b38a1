"""Event dispatch: routes decoded frames to caller callbacks.

The assessment-creation and chat protocols differ only in their event
vocabulary and callback payload, so a single dispatcher is configured with
a vocabulary mapping each event name to an ``EventRoute``.

Usage::

    dispatcher = EventDispatcher(
        StreamCallbacks(on_event=show_result, on_error=show_toast),
        StreamConnection(),
        vocabulary=CHAT_VOCABULARY,
    )
    for frame in parser.feed(text):
        dispatcher.dispatch(frame)
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from jobstream.connection import StreamConnection
from jobstream.events import EventFrame, EventType

logger = logging.getLogger("jobstream.dispatcher")

DEFAULT_ERROR_MESSAGE = "SSE stream failed"


@dataclass
class StreamCallbacks:
    """Caller-owned handlers for one stream.

    Attributes:
        on_event: Receives terminal success payloads and incremental messages.
        on_error: Receives a human-readable failure message.
        on_redirect: Receives the URL the user must visit when the server
            defers the job until an external prerequisite is satisfied.
            When unset, the redirect is reported through ``on_error``.
    """

    on_event: Callable[[Any], None] | None = None
    on_error: Callable[[str], None] | None = None
    on_redirect: Callable[[str], None] | None = None

    def event(self, data: Any) -> None:
        if self.on_event is not None:
            self.on_event(data)

    def error(self, message: str) -> None:
        if self.on_error is not None:
            self.on_error(message)


class EventAction(enum.StrEnum):
    """What the dispatcher does with a recognised event."""

    ACKNOWLEDGE = "acknowledge"
    INFORMATIONAL = "informational"
    INCREMENTAL = "incremental"
    SUCCESS = "success"
    FAILURE = "failure"

    @property
    def is_terminal(self) -> bool:
        return self in (EventAction.SUCCESS, EventAction.FAILURE)


@dataclass(frozen=True)
class EventRoute:
    """Routing entry for one event name.

    Attributes:
        action: The semantic action for the event.
        extract: Optional transform from frame data to callback payload.
    """

    action: EventAction
    extract: Callable[[Any], Any] | None = None


def _messages(data: Any) -> Any:
    if isinstance(data, dict):
        return data.get("messages") or []
    return []


def _as_list(data: Any) -> list[Any]:
    return data if isinstance(data, list) else [data]


_ACKNOWLEDGE = EventRoute(EventAction.ACKNOWLEDGE)
_INFO = EventRoute(EventAction.INFORMATIONAL)
_FAILURE = EventRoute(EventAction.FAILURE)
_CHAT_DONE = EventRoute(EventAction.SUCCESS, extract=_messages)

ASSESSMENT_VOCABULARY: Mapping[str, EventRoute] = {
    EventType.CONNECTED: _ACKNOWLEDGE,
    EventType.JOB_CREATED: _INFO,
    EventType.JOB_RUNNING: _INFO,
    EventType.ASSESSMENT_CREATED: EventRoute(EventAction.SUCCESS),
    EventType.ERROR: _FAILURE,
}

CHAT_VOCABULARY: Mapping[str, EventRoute] = {
    EventType.CONNECTED: _ACKNOWLEDGE,
    EventType.JOB_CREATED: _INFO,
    EventType.JOB_RUNNING: _INFO,
    EventType.CHAT_COMPLETION: _CHAT_DONE,
    EventType.CHAT_COMPLETED: _CHAT_DONE,
    EventType.MESSAGE: EventRoute(EventAction.INCREMENTAL, extract=_as_list),
    EventType.ERROR: _FAILURE,
}

DEFAULT_VOCABULARY: Mapping[str, EventRoute] = {**ASSESSMENT_VOCABULARY, **CHAT_VOCABULARY}


class EventDispatcher:
    """Routes frames to callbacks and keeps the connection state in step.

    At most one terminal callback fires; frames arriving after it are dropped.
    """

    def __init__(
        self,
        callbacks: StreamCallbacks,
        connection: StreamConnection,
        vocabulary: Mapping[str, EventRoute] = DEFAULT_VOCABULARY,
    ) -> None:
        self._callbacks = callbacks
        self._connection = connection
        self._vocabulary = vocabulary
        self._terminated = False
        self.dispatched = 0

    @property
    def terminated(self) -> bool:
        return self._terminated

    def dispatch(self, frame: EventFrame) -> None:
        name = frame.event or EventType.MESSAGE
        if self._terminated:
            logger.debug("Dropping %r frame received after terminal event", name)
            return

        if frame.id is not None:
            self._connection.last_event_id = frame.id

        route = self._vocabulary.get(name)
        if route is None:
            logger.info("Unknown stream event %r: %r", name, frame.data)
            return

        self.dispatched += 1
        data = frame.data
        action = route.action

        if action == EventAction.ACKNOWLEDGE:
            logger.debug("Stream connected: %r", data)
            self._connection.acknowledge()
        elif action == EventAction.INFORMATIONAL:
            logger.debug("Job update %r: %r", name, data)
            if name == EventType.JOB_CREATED and isinstance(data, dict) and data.get("jobId"):
                self._connection.job_id = str(data["jobId"])
        elif action == EventAction.INCREMENTAL:
            if data is not None:
                self._callbacks.event(route.extract(data) if route.extract else data)
        elif action == EventAction.SUCCESS:
            self._terminate()
            self._callbacks.event(route.extract(data) if route.extract else data)
        elif action == EventAction.FAILURE:
            self._terminate()
            message = _failure_message(data)
            logger.warning("Job reported failure: %s", message)
            self._callbacks.error(message)

    def _terminate(self) -> None:
        self._terminated = True
        self._connection.close()


def _failure_message(data: Any) -> str:
    if isinstance(data, dict):
        message = data.get("error")
        if message:
            return str(message)
    elif isinstance(data, str) and data:
        return data
    return DEFAULT_ERROR_MESSAGE
