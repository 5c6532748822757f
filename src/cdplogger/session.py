"""DevTools sessions that push CDP events to registered callbacks.

Selenium exposes Chrome DevTools Protocol events through the async
``WebDriver.bidi_connection()`` context manager, which runs on trio. A
pytest test body is synchronous, so :class:`SeleniumDevToolsSession` owns a
trio event loop on a daemon thread for the lifetime of the session and
bridges every command through ``trio.from_thread``.

Listener callbacks are invoked on that session thread, never on the test
thread.

Example:
    >>> from cdplogger.events import EventKind
    >>> from cdplogger.session import SeleniumDevToolsSession
    >>> session = SeleniumDevToolsSession(driver)
    >>> session.open()
    >>> session.enable_network_domain()
    >>> session.add_listener(EventKind.RESPONSE_RECEIVED, print)
    >>> session.clear_listeners()
    >>> session.close()
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import trio

from cdplogger.events import EventKind
from cdplogger.exceptions import ProtocolSessionError
from cdplogger.logging import get_logger

LOG = get_logger(__name__)

# Per-listener channel capacity; Selenium drops events once a channel is full
EVENT_BUFFER_SIZE = 100

Listener = Callable[[Any], None]


def _root_cause(exc: BaseException) -> BaseException:
    """Unwrap single-member exception groups raised by trio nurseries."""
    while isinstance(exc, BaseExceptionGroup) and len(exc.exceptions) == 1:
        exc = exc.exceptions[0]
    return exc


@runtime_checkable
class DevToolsSession(Protocol):
    """Protocol for a DevTools session scoped to a single test."""

    @property
    def is_open(self) -> bool:
        """Whether the session is open and accepting commands."""
        ...

    def open(self) -> None:
        """Open the protocol connection."""
        ...

    def enable_network_domain(self) -> None:
        """Enable Network domain events for the whole page."""
        ...

    def enable_log_domain(self) -> None:
        """Enable Log domain events."""
        ...

    def add_listener(self, kind: EventKind, callback: Listener) -> None:
        """Invoke ``callback`` with every raw CDP event of ``kind``."""
        ...

    def clear_listeners(self) -> None:
        """Unregister every listener; no callback fires after this returns."""
        ...

    def close(self) -> None:
        """Close the protocol connection."""
        ...


class SeleniumDevToolsSession:
    """DevTools session over Selenium's ``bidi_connection()``.

    Each subscribed event kind gets one pump task in the session's nursery.
    The pump reads a ``session.listen()`` channel and fans events out to the
    callbacks registered for that kind while holding the listener lock, so
    ``clear_listeners()`` waits for an in-flight dispatch to finish.
    """

    def __init__(self, driver: Any, open_timeout: float = 10.0) -> None:
        self._driver = driver
        self._open_timeout = open_timeout
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._startup_error: BaseException | None = None
        self._abandoned = False
        self._closed = False
        self._token: trio.lowlevel.TrioToken | None = None
        self._connection: Any = None
        self._nursery: trio.Nursery | None = None
        self._stop: trio.Event | None = None
        self._lock = threading.Lock()
        self._listeners: dict[EventKind, list[Listener]] = {}
        self._pumps: dict[EventKind, trio.CancelScope] = {}

    @property
    def is_open(self) -> bool:
        return (
            self._token is not None
            and not self._closed
            and self._thread is not None
            and self._thread.is_alive()
        )

    def open(self) -> None:
        """Start the session thread and wait for the CDP connection.

        Raises:
            ProtocolSessionError: If the session was opened before, the
                connection fails, or it is not ready within ``open_timeout``.
        """
        if self._thread is not None:
            raise ProtocolSessionError("DevTools session has already been opened")

        self._thread = threading.Thread(
            target=self._run,
            name=f"cdp-session-{id(self):x}",
            daemon=True,
        )
        self._thread.start()

        ready = self._ready.wait(self._open_timeout)
        with self._lock:
            if not ready and not self._ready.is_set():
                self._abandoned = True
                self._closed = True
                raise ProtocolSessionError(
                    f"Timed out after {self._open_timeout}s waiting for the DevTools connection"
                )

        if self._startup_error is not None:
            self._closed = True
            raise ProtocolSessionError(
                f"Failed to open DevTools session: {self._startup_error}"
            ) from self._startup_error

        LOG.debug("devtools_session_opened", thread=self._thread.name)

    def enable_network_domain(self) -> None:
        self._call(self._execute, "network", "enable")

    def enable_log_domain(self) -> None:
        self._call(self._execute, "log", "enable")

    def add_listener(self, kind: EventKind, callback: Listener) -> None:
        """Register ``callback`` for ``kind``, starting its pump on first use.

        Raises:
            ProtocolSessionError: If the session is not open or the
                subscription cannot be set up.
        """
        self._require_open()
        with self._lock:
            self._listeners.setdefault(kind, []).append(callback)
            needs_pump = kind not in self._pumps
        if not needs_pump:
            return

        if kind is EventKind.SCRIPT_EXCEPTION:
            # Runtime.exceptionThrown is only emitted once Runtime is enabled
            self._call(self._execute, "runtime", "enable")
        scope = self._call(self._start_pump, kind)
        with self._lock:
            self._pumps[kind] = scope
        LOG.debug("devtools_listener_added", kind=kind.value)

    def clear_listeners(self) -> None:
        with self._lock:
            self._listeners.clear()
            scopes = list(self._pumps.values())
            self._pumps.clear()
        if scopes and self.is_open:
            self._call_sync(self._cancel_scopes, scopes)
        LOG.debug("devtools_listeners_cleared", pumps=len(scopes))

    def close(self) -> None:
        """Stop the event loop and wait for the connection to shut down.

        Closing an already closed or never opened session is a no-op.

        Raises:
            ProtocolSessionError: If the session thread does not stop in time.
        """
        if self._thread is None or self._closed:
            return
        self._closed = True

        if self._token is not None and self._stop is not None:
            try:
                trio.from_thread.run_sync(self._stop.set, trio_token=self._token)
            except trio.RunFinishedError:
                LOG.debug("devtools_session_already_finished")

        self._thread.join(self._open_timeout)
        if self._thread.is_alive():
            raise ProtocolSessionError(
                f"DevTools session thread did not stop within {self._open_timeout}s"
            )
        LOG.debug("devtools_session_closed", thread=self._thread.name)

    def _require_open(self) -> trio.lowlevel.TrioToken:
        if not self.is_open or self._token is None:
            raise ProtocolSessionError("DevTools session is not open")
        return self._token

    def _call(self, async_fn: Callable[..., Any], *args: Any) -> Any:
        token = self._require_open()
        try:
            return trio.from_thread.run(async_fn, *args, trio_token=token)
        except ProtocolSessionError:
            raise
        except Exception as exc:
            raise ProtocolSessionError(f"DevTools command failed: {exc}") from exc

    def _call_sync(self, fn: Callable[..., Any], *args: Any) -> Any:
        token = self._require_open()
        try:
            return trio.from_thread.run_sync(fn, *args, trio_token=token)
        except Exception as exc:
            raise ProtocolSessionError(f"DevTools command failed: {exc}") from exc

    def _run(self) -> None:
        """Session thread entry point."""
        try:
            trio.run(self._serve)
        except Exception as exc:
            if not self._ready.is_set():
                self._startup_error = exc
            else:
                cause = _root_cause(exc)
                LOG.error(
                    "devtools_session_crashed",
                    error=str(cause),
                    exc_type=type(cause).__name__,
                    exc_info=exc,
                )
        finally:
            self._ready.set()

    async def _serve(self) -> None:
        async with self._driver.bidi_connection() as connection:
            self._connection = connection
            self._stop = trio.Event()
            async with trio.open_nursery() as nursery:
                self._nursery = nursery
                with self._lock:
                    if self._abandoned:
                        return
                    self._token = trio.lowlevel.current_trio_token()
                    self._ready.set()
                await self._stop.wait()
                nursery.cancel_scope.cancel()

    async def _execute(self, domain: str, command: str) -> Any:
        devtools = self._connection.devtools
        return await self._connection.session.execute(getattr(getattr(devtools, domain), command)())

    async def _start_pump(self, kind: EventKind) -> trio.CancelScope:
        assert self._nursery is not None
        return await self._nursery.start(self._pump, kind)

    async def _pump(
        self,
        kind: EventKind,
        *,
        task_status: trio.TaskStatus[trio.CancelScope] = trio.TASK_STATUS_IGNORED,
    ) -> None:
        domain, name = kind.cdp_event
        event_type = getattr(getattr(self._connection.devtools, domain), name)
        with trio.CancelScope() as scope:
            receiver = self._connection.session.listen(event_type, buffer_size=EVENT_BUFFER_SIZE)
            task_status.started(scope)
            async with receiver:
                async for event in receiver:
                    self._dispatch(kind, event)

    def _dispatch(self, kind: EventKind, event: Any) -> None:
        with self._lock:
            for callback in self._listeners.get(kind, ()):
                try:
                    callback(event)
                except Exception as exc:
                    LOG.error(
                        "devtools_listener_failed",
                        kind=kind.value,
                        error=str(exc),
                        exc_type=type(exc).__name__,
                    )

    @staticmethod
    def _cancel_scopes(scopes: list[trio.CancelScope]) -> None:
        for scope in scopes:
            scope.cancel()
