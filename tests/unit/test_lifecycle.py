"""Tests for the DevTools session lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest
from cdp_fakes import (
    RecordingSession,
    cdp_exception,
    cdp_log_entry,
    cdp_request,
    cdp_response,
    make_driver,
)
from structlog.testing import capture_logs

from cdplogger.config import CdpLoggerSettings
from cdplogger.events import EventKind
from cdplogger.exceptions import (
    LifecycleStateError,
    ProtocolSessionError,
    UnsupportedDriverTypeError,
)
from cdplogger.lifecycle import DevToolsLifecycle, LifecycleState, devtools_logging
from cdplogger.locator import DevToolsTarget

ALL_KINDS = [kind.value for kind in EventKind]


def _target(response_url_filter: str | None = None) -> DevToolsTarget:
    return DevToolsTarget.from_driver(make_driver(), response_url_filter, test_name="test_x")


class TestBeforeTest:
    """Tests for DevToolsLifecycle.before_test."""

    def test_opens_session_and_registers_four_listeners(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        lifecycle.before_test(_target())

        assert lifecycle.state is LifecycleState.ACTIVE
        assert lifecycle.session is recording_session
        assert recording_session.opened == 1
        assert "enable_network_domain" in recording_session.calls
        assert "enable_log_domain" in recording_session.calls
        assert sorted(kind.value for kind in recording_session.listeners) == sorted(ALL_KINDS)
        assert all(len(cbs) == 1 for cbs in recording_session.listeners.values())

    def test_uses_session_open_timeout_setting(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        settings = CdpLoggerSettings(session_open_timeout=2.5)
        DevToolsLifecycle(session_factory, settings=settings).before_test(_target())
        assert recording_session.open_timeout == 2.5

    def test_cannot_open_twice(self, session_factory: Callable[..., RecordingSession]) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        lifecycle.before_test(_target())

        with pytest.raises(LifecycleStateError, match="active"):
            lifecycle.before_test(_target())

    def test_open_failure_leaves_lifecycle_idle(self) -> None:
        def failing_factory(driver: Any, open_timeout: float) -> Any:
            session = MagicMock()
            session.open.side_effect = ProtocolSessionError("connection refused")
            return session

        lifecycle = DevToolsLifecycle(failing_factory)
        with pytest.raises(ProtocolSessionError, match="connection refused"):
            lifecycle.before_test(_target())

        assert lifecycle.state is LifecycleState.IDLE
        assert lifecycle.session is None

    def test_domain_failure_closes_partial_session(
        self, recording_session: RecordingSession
    ) -> None:
        def factory(driver: Any, open_timeout: float) -> RecordingSession:
            recording_session.enable_network_domain = MagicMock(  # type: ignore[method-assign]
                side_effect=RuntimeError("Network.enable failed")
            )
            return recording_session

        lifecycle = DevToolsLifecycle(factory)
        with pytest.raises(ProtocolSessionError, match="Network.enable failed") as exc_info:
            lifecycle.before_test(_target())

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert recording_session.closed == 1
        assert recording_session.listeners == {}
        assert lifecycle.state is LifecycleState.IDLE

    def test_registration_failure_aborts(self, recording_session: RecordingSession) -> None:
        original = recording_session.add_listener

        def flaky_add(kind: EventKind, callback: Any) -> None:
            if kind is EventKind.LOG_ENTRY_ADDED:
                raise ProtocolSessionError("listen failed")
            original(kind, callback)

        recording_session.add_listener = flaky_add  # type: ignore[method-assign]
        lifecycle = DevToolsLifecycle(lambda driver, open_timeout: recording_session)

        with pytest.raises(ProtocolSessionError, match="listen failed"):
            lifecycle.before_test(_target())

        assert recording_session.listeners == {}
        assert recording_session.closed == 1
        assert lifecycle.state is LifecycleState.IDLE

    def test_can_reopen_after_failure(self, session_factory: Callable[..., RecordingSession]) -> None:
        attempts: list[int] = []

        def factory(driver: Any, open_timeout: float) -> RecordingSession:
            attempts.append(1)
            if len(attempts) == 1:
                raise ProtocolSessionError("first attempt fails")
            return session_factory(driver, open_timeout)

        lifecycle = DevToolsLifecycle(factory)
        with pytest.raises(ProtocolSessionError):
            lifecycle.before_test(_target())
        lifecycle.before_test(_target())

        assert lifecycle.state is LifecycleState.ACTIVE


class TestAfterTest:
    """Tests for DevToolsLifecycle.after_test."""

    def test_clears_listeners_before_closing(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        lifecycle.before_test(_target())
        lifecycle.after_test()

        assert recording_session.calls[-2:] == ["clear_listeners", "close"]
        assert recording_session.opened == 1
        assert recording_session.closed == 1
        assert lifecycle.state is LifecycleState.IDLE
        assert lifecycle.session is None

    def test_noop_when_idle(self) -> None:
        lifecycle = DevToolsLifecycle(MagicMock())
        lifecycle.after_test()
        lifecycle.after_test()
        assert lifecycle.state is LifecycleState.IDLE

    def test_close_runs_even_if_clearing_fails(self, recording_session: RecordingSession) -> None:
        lifecycle = DevToolsLifecycle(lambda driver, open_timeout: recording_session)
        lifecycle.before_test(_target())
        recording_session.clear_listeners = MagicMock(  # type: ignore[method-assign]
            side_effect=ProtocolSessionError("loop gone")
        )

        with pytest.raises(ProtocolSessionError, match="loop gone"):
            lifecycle.after_test()

        assert recording_session.closed == 1
        assert lifecycle.state is LifecycleState.IDLE

    def test_no_listener_fires_after_teardown(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        with capture_logs() as logs:
            lifecycle.before_test(_target())
            lifecycle.after_test()
            recording_session.emit(EventKind.RESPONSE_RECEIVED, cdp_response(status=500))

        assert [entry for entry in logs if entry["event"] == "fetch_response_failed"] == []


class TestListeners:
    """Tests for events flowing through registered listeners."""

    def test_events_are_logged_with_test_name(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        with capture_logs() as logs:
            lifecycle.before_test(_target())
            recording_session.emit(EventKind.REQUEST_SENT, cdp_request())
            recording_session.emit(
                EventKind.RESPONSE_RECEIVED,
                cdp_response(url="https://api.example.com/missing", status=404),
            )
            recording_session.emit(EventKind.LOG_ENTRY_ADDED, cdp_log_entry(level="info"))
            recording_session.emit(EventKind.SCRIPT_EXCEPTION, cdp_exception())
            lifecycle.after_test()

        emitted = [(entry["event"], entry["log_level"]) for entry in logs]
        assert ("fetch_request_sent", "info") in emitted
        assert ("fetch_response_failed", "error") in emitted
        assert ("script_exception", "error") in emitted
        assert "browser_log_error" not in [event for event, _ in emitted]
        assert all(
            entry["test"] == "test_x" for entry in logs if entry["event"].startswith("fetch")
        )

    def test_response_filter_applied(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        with capture_logs() as logs:
            lifecycle.before_test(_target("api.example.com"))
            recording_session.emit(
                EventKind.RESPONSE_RECEIVED, cdp_response(url="https://cdn.example.com/x.json")
            )
            recording_session.emit(
                EventKind.RESPONSE_RECEIVED, cdp_response(url="https://api.example.com/x")
            )

        urls = [entry["url"] for entry in logs if entry["event"] == "fetch_response_received"]
        assert urls == ["https://api.example.com/x"]

    def test_malformed_event_is_contained(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        with capture_logs() as logs:
            lifecycle.before_test(_target())
            recording_session.emit(EventKind.RESPONSE_RECEIVED, object())
            recording_session.emit(EventKind.RESPONSE_RECEIVED, cdp_response(status=503))
            lifecycle.after_test()

        events = [entry["event"] for entry in logs]
        assert "event_formatting_failed" in events
        assert "fetch_response_failed" in events
        assert recording_session.closed == 1

    def test_subclass_can_override_registration(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        class QuietLifecycle(DevToolsLifecycle):
            def register_request_listener(self) -> None:
                pass

        QuietLifecycle(session_factory).before_test(_target())

        assert EventKind.REQUEST_SENT not in recording_session.listeners
        assert len(recording_session.listeners) == 3


class TestDevtoolsLogging:
    """Tests for the devtools_logging context manager."""

    def test_brackets_block(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        with devtools_logging(make_driver(), lifecycle=lifecycle) as active:
            assert active is lifecycle
            assert active.state is LifecycleState.ACTIVE

        assert recording_session.opened == 1
        assert recording_session.closed == 1
        assert lifecycle.state is LifecycleState.IDLE

    def test_closes_when_block_raises(
        self, session_factory: Callable[..., RecordingSession], recording_session: RecordingSession
    ) -> None:
        lifecycle = DevToolsLifecycle(session_factory)
        with pytest.raises(AssertionError, match="test failed"):
            with devtools_logging(make_driver(), lifecycle=lifecycle):
                raise AssertionError("test failed")

        assert recording_session.opened == 1
        assert recording_session.closed == 1

    def test_teardown_error_does_not_mask_block_error(
        self, recording_session: RecordingSession
    ) -> None:
        recording_session.close = MagicMock(  # type: ignore[method-assign]
            side_effect=ProtocolSessionError("close failed")
        )
        lifecycle = DevToolsLifecycle(lambda driver, open_timeout: recording_session)

        with capture_logs() as logs:
            with pytest.raises(AssertionError, match="original"):
                with devtools_logging(make_driver(), lifecycle=lifecycle):
                    raise AssertionError("original")

        assert "devtools_teardown_failed_after_error" in [entry["event"] for entry in logs]

    def test_teardown_error_raised_when_block_succeeds(
        self, recording_session: RecordingSession
    ) -> None:
        recording_session.close = MagicMock(  # type: ignore[method-assign]
            side_effect=ProtocolSessionError("close failed")
        )
        lifecycle = DevToolsLifecycle(lambda driver, open_timeout: recording_session)

        with pytest.raises(ProtocolSessionError, match="close failed"):
            with devtools_logging(make_driver(), lifecycle=lifecycle):
                pass

    def test_rejects_unsupported_driver_before_opening(self) -> None:
        factory = MagicMock()
        with pytest.raises(UnsupportedDriverTypeError):
            with devtools_logging(object(), lifecycle=DevToolsLifecycle(factory)):
                pass
        factory.assert_not_called()
