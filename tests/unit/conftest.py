"""Shared fixtures for unit tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from cdp_fakes import RecordingSession, make_driver


@pytest.fixture
def driver() -> MagicMock:
    return make_driver()


@pytest.fixture
def recording_session() -> RecordingSession:
    return RecordingSession()


@pytest.fixture
def session_factory(recording_session: RecordingSession) -> Callable[..., RecordingSession]:
    """Factory handing out the shared recording session, like SeleniumDevToolsSession would."""

    def _factory(driver: Any, open_timeout: float = 10.0) -> RecordingSession:
        recording_session.driver = driver
        recording_session.open_timeout = open_timeout
        return recording_session

    return _factory
