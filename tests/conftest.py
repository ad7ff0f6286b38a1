"""Shared test fixtures for the jobstream test suite."""

from __future__ import annotations

from collections.abc import Generator

import pytest
from sse_starlette.sse import AppStatus

from jobstream.testing import RecordingCallbacks


@pytest.fixture
def recorder() -> RecordingCallbacks:
    return RecordingCallbacks()


@pytest.fixture(autouse=True)
def _reset_sse_app_status() -> Generator[None, None, None]:
    # sse-starlette keeps a process-wide exit event bound to the first loop.
    AppStatus.should_exit_event = None
    yield
    AppStatus.should_exit_event = None
