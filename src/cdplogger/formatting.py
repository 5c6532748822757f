"""Decide whether and how each DevTools event becomes a log line.

Predicates here are pure. Emitters only call the logger they are handed,
so they are safe to run on the session's event thread.
"""

from __future__ import annotations

import functools
from collections.abc import Callable
from typing import Any, TypeVar

from cdplogger.events import (
    EventKind,
    LogEntryEvent,
    NetworkRequestEvent,
    NetworkResponseEvent,
    ScriptExceptionEvent,
)
from cdplogger.exceptions import FormattingObservationError

T = TypeVar("T")

FETCH = "Fetch"
XHR = "XHR"
RESPONSE_RESOURCE_TYPES = frozenset({FETCH, XHR})
ERROR_STATUSES = frozenset({400, 404})
LOG_LEVEL_ERROR = "error"


def is_fetch_request(event: NetworkRequestEvent) -> bool:
    """Only requests issued through fetch() are logged."""
    return event.resource_type == FETCH


def is_in_scope_response(event: NetworkResponseEvent) -> bool:
    return event.resource_type in RESPONSE_RESOURCE_TYPES


def is_error_status(status: int) -> bool:
    """Return True for statuses routed to error level: 400, 404 and any 5xx."""
    return status >= 500 or status in ERROR_STATUSES


def matches_response_filter(url: str, response_url_filter: str | None) -> bool:
    """Plain, case-sensitive substring match. No filter matches everything."""
    if response_url_filter is None:
        return True
    return response_url_filter in url


def is_error_entry(event: LogEntryEvent) -> bool:
    return event.level == LOG_LEVEL_ERROR


def log_request(event: NetworkRequestEvent, logger: Any) -> None:
    """Log a fetch request, followed by its body when it carries one."""
    if not is_fetch_request(event):
        return
    logger.info("fetch_request_sent", method=event.method, url=event.url)
    if event.post_data:
        logger.info("fetch_request_body", body=event.post_data)


def log_response(
    event: NetworkResponseEvent,
    logger: Any,
    response_url_filter: str | None = None,
) -> None:
    """Log a fetch/XHR response at error or info level depending on its status."""
    if not is_in_scope_response(event):
        return
    if not matches_response_filter(event.url, response_url_filter):
        return
    if is_error_status(event.status):
        logger.error("fetch_response_failed", url=event.url, status=event.status)
    else:
        logger.info("fetch_response_received", url=event.url, status=event.status)


def log_entry(event: LogEntryEvent, logger: Any) -> None:
    """Log browser log entries at error level; everything else is ignored."""
    if not is_error_entry(event):
        return
    logger.error("browser_log_error", text=event.text)
    if event.stack_trace:
        logger.error("browser_log_stack_trace", stack_trace=event.stack_trace)


def log_script_exception(event: ScriptExceptionEvent, logger: Any) -> None:
    logger.error("script_exception", message=event.message)
    if event.stack_trace:
        logger.error("script_exception_stack_trace", stack_trace=event.stack_trace)


def guarded(kind: EventKind, handler: Callable[[T], None], logger: Any) -> Callable[[T], None]:
    """Wrap a listener so a failure on one event is logged and contained.

    Args:
        kind: Event kind the handler is registered for.
        handler: Callable receiving the raw CDP event.
        logger: Logger that receives the failure report.

    Returns:
        A callable with the same signature that never raises ``Exception``.
    """

    @functools.wraps(handler)
    def _wrapper(event: T) -> None:
        try:
            handler(event)
        except Exception as exc:
            error = FormattingObservationError(kind.value, exc)
            logger.error(
                "event_formatting_failed",
                kind=kind.value,
                error=str(error),
                exc_type=type(exc).__name__,
                exc_info=exc,
            )

    return _wrapper
