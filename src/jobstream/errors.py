"""jobstream error types.

Maps the failure modes of a job stream (transport, authentication,
prerequisites, deadlines, misuse) to Python exceptions.
"""

from __future__ import annotations

from typing import Any


class JobStreamError(Exception):
    """Base exception for all jobstream errors."""


class StreamTransportError(JobStreamError):
    """The request never reached a streamable state.

    Attributes:
        status_code: HTTP status code, or 0 when no response was received.
        body: Parsed JSON error body, if the server sent one.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        body: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body


class AuthenticationError(StreamTransportError):
    """Raised on a 401 that survived a credential refresh."""


class PrerequisiteRequiredError(JobStreamError):
    """The server refused to start the job until an external prerequisite is met.

    Attributes:
        redirect_url: Where the user must go to satisfy the prerequisite
            (e.g. an app installation page for account linkage).
    """

    def __init__(self, redirect_url: str) -> None:
        self.redirect_url = redirect_url
        super().__init__(f"Prerequisite required, continue at {redirect_url}")


class StreamConnectionError(JobStreamError):
    """Network failure while connecting to or reading from the server."""


class StreamTimeoutError(JobStreamError):
    """The caller-imposed deadline on a stream expired.

    Attributes:
        timeout: The deadline in seconds.
    """

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Stream timed out after {timeout:g}s")


class StreamBusyError(JobStreamError):
    """A stream is already open on this client."""


class UnknownJobTypeError(JobStreamError):
    """No handler is registered for the requested job type."""

    def __init__(self, job_type: str) -> None:
        self.job_type = job_type
        super().__init__(f"No handler registered for job type '{job_type}'")


class PollTimeoutError(JobStreamError):
    """Polling gave up before the condition was satisfied."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"Condition not satisfied after {attempts} attempts")


def error_message(body: dict[str, Any] | None, status_code: int) -> str:
    """Pick the human-readable message out of an error response body."""
    if body:
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP {status_code}"


def raise_for_status(status_code: int, body: dict[str, Any] | None = None) -> None:
    """Raise the appropriate exception for a non-success HTTP response."""
    if status_code < 400:
        return
    message = error_message(body, status_code)
    if status_code == 401:
        raise AuthenticationError(message, status_code=status_code, body=body)
    raise StreamTransportError(message, status_code=status_code, body=body)
