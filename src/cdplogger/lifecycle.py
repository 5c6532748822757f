"""Test-scoped DevTools session lifecycle.

A :class:`DevToolsLifecycle` brackets exactly one test execution: it opens a
session and registers the event listeners before the test body runs, then
unregisters them and closes the session afterwards, whatever the outcome.

Example:
    >>> from cdplogger import devtools_logging
    >>> with devtools_logging(driver, response_url_filter="api.example.com"):
    ...     driver.get("https://app.example.com")
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from cdplogger import formatting
from cdplogger.config import CdpLoggerSettings, get_settings
from cdplogger.events import (
    EventKind,
    LogEntryEvent,
    NetworkRequestEvent,
    NetworkResponseEvent,
    ScriptExceptionEvent,
)
from cdplogger.exceptions import LifecycleStateError, ProtocolSessionError
from cdplogger.locator import DevToolsTarget
from cdplogger.logging import get_logger

if TYPE_CHECKING:
    from cdplogger.session import DevToolsSession

LOG = get_logger(__name__)


class LifecycleState(enum.Enum):
    IDLE = "idle"
    SESSION_OPENING = "session_opening"
    ACTIVE = "active"
    CLOSING = "closing"


class DevToolsLifecycle:
    """Open, wire up and tear down a DevTools session around one test.

    One instance handles one test at a time; concurrently running tests each
    need their own lifecycle. Each ``register_*`` method can be overridden in
    a subclass to change how a particular event kind is logged.

    Args:
        session_factory: Callable creating a session from a driver and
            ``open_timeout``. Defaults to Selenium's CDP connection.
        settings: Settings providing the session timeout. Defaults to the
            global settings.
    """

    def __init__(
        self,
        session_factory: Callable[..., DevToolsSession] | None = None,
        settings: CdpLoggerSettings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._state = LifecycleState.IDLE
        self._session: DevToolsSession | None = None
        self._target: DevToolsTarget | None = None
        self._log: Any = LOG

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def session(self) -> DevToolsSession | None:
        return self._session

    @property
    def target(self) -> DevToolsTarget | None:
        return self._target

    def before_test(self, target: DevToolsTarget) -> None:
        """Open the session, enable domains and register all listeners.

        Args:
            target: Validated driver and response filter for the test.

        Raises:
            LifecycleStateError: If a session is already open for this lifecycle.
            ProtocolSessionError: If the session, a domain or a listener
                cannot be set up. Nothing stays open in that case.
        """
        if self._state is not LifecycleState.IDLE:
            raise LifecycleStateError(
                f"Cannot open a DevTools session while {self._state.value}"
            )

        self._state = LifecycleState.SESSION_OPENING
        self._target = target
        # Listeners run on the session thread where contextvars are not bound
        self._log = LOG.bind(test=target.test_name)
        try:
            self._session = target.open_session(
                self._session_factory,
                open_timeout=self._settings.session_open_timeout,
            )
            self._session.enable_network_domain()
            self.register_request_listener()
            self.register_response_listener(target.response_url_filter)
            self._session.enable_log_domain()
            self.register_log_listener()
            self.register_script_exception_listener()
        except Exception as exc:
            self._abort_opening()
            if isinstance(exc, ProtocolSessionError):
                raise
            raise ProtocolSessionError(f"Failed to set up DevTools logging: {exc}") from exc

        self._state = LifecycleState.ACTIVE
        self._log.debug("devtools_logging_started", response_url_filter=target.response_url_filter)

    def after_test(self) -> None:
        """Unregister every listener, then close the session.

        Both steps are attempted even if the first fails. Calling this when
        no session is active is a no-op.

        Raises:
            ProtocolSessionError: If either teardown step failed. The
                lifecycle is back in IDLE regardless.
        """
        if self._state is not LifecycleState.ACTIVE or self._session is None:
            return

        self._state = LifecycleState.CLOSING
        session, log = self._session, self._log
        errors: list[Exception] = []
        for step in ("clear_listeners", "close"):
            try:
                getattr(session, step)()
            except Exception as exc:
                log.error(
                    "devtools_teardown_step_failed",
                    step=step,
                    error=str(exc),
                    exc_type=type(exc).__name__,
                )
                errors.append(exc)

        self._reset()
        log.debug("devtools_logging_stopped")
        if errors:
            raise ProtocolSessionError(f"DevTools teardown failed: {errors[0]}") from errors[0]

    def register_request_listener(self) -> None:
        log = self._log

        def _on_request(event: Any) -> None:
            formatting.log_request(NetworkRequestEvent.from_cdp(event), log)

        self._add(EventKind.REQUEST_SENT, _on_request)

    def register_response_listener(self, response_url_filter: str | None) -> None:
        log = self._log

        def _on_response(event: Any) -> None:
            formatting.log_response(NetworkResponseEvent.from_cdp(event), log, response_url_filter)

        self._add(EventKind.RESPONSE_RECEIVED, _on_response)

    def register_log_listener(self) -> None:
        log = self._log

        def _on_entry(event: Any) -> None:
            formatting.log_entry(LogEntryEvent.from_cdp(event), log)

        self._add(EventKind.LOG_ENTRY_ADDED, _on_entry)

    def register_script_exception_listener(self) -> None:
        log = self._log

        def _on_exception(event: Any) -> None:
            formatting.log_script_exception(ScriptExceptionEvent.from_cdp(event), log)

        self._add(EventKind.SCRIPT_EXCEPTION, _on_exception)

    def _add(self, kind: EventKind, handler: Callable[[Any], None]) -> None:
        if self._session is None:
            raise LifecycleStateError("No DevTools session to register listeners on")
        self._session.add_listener(kind, formatting.guarded(kind, handler, self._log))

    def _abort_opening(self) -> None:
        session = self._session
        if session is not None:
            try:
                session.clear_listeners()
                session.close()
            except Exception as exc:
                self._log.warning(
                    "devtools_partial_session_close_failed",
                    error=str(exc),
                    exc_type=type(exc).__name__,
                )
        self._reset()

    def _reset(self) -> None:
        self._session = None
        self._target = None
        self._log = LOG
        self._state = LifecycleState.IDLE


@contextmanager
def devtools_logging(
    driver: Any,
    response_url_filter: str | None = None,
    *,
    test_name: str = "<anonymous>",
    lifecycle: DevToolsLifecycle | None = None,
) -> Iterator[DevToolsLifecycle]:
    """Log DevTools events from ``driver`` for the duration of the block.

    A teardown failure is raised only when the block itself succeeded;
    otherwise it is logged and the block's exception propagates unchanged.

    Args:
        driver: Chromium based Selenium driver.
        response_url_filter: Optional substring a response URL must contain.
        test_name: Name bound to every log line.
        lifecycle: Lifecycle to use; a new one is created by default.

    Yields:
        The active lifecycle.
    """
    target = DevToolsTarget.from_driver(driver, response_url_filter, test_name=test_name)
    lifecycle = lifecycle or DevToolsLifecycle()
    lifecycle.before_test(target)
    try:
        yield lifecycle
    except BaseException:
        try:
            lifecycle.after_test()
        except ProtocolSessionError as exc:
            LOG.error("devtools_teardown_failed_after_error", test=test_name, error=str(exc))
        raise
    else:
        lifecycle.after_test()
