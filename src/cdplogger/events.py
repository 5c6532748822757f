"""Value records for the DevTools events the logger reacts to.

Each record is built from the raw CDP event object delivered by Selenium's
devtools bindings and discarded once it has been formatted.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any


class EventKind(str, enum.Enum):
    """DevTools events a session can subscribe to."""

    REQUEST_SENT = "request_sent"
    RESPONSE_RECEIVED = "response_received"
    LOG_ENTRY_ADDED = "log_entry_added"
    SCRIPT_EXCEPTION = "script_exception"

    @property
    def cdp_event(self) -> tuple[str, str]:
        """Return the (domain module, event class) pair in the devtools bindings."""
        return _CDP_EVENTS[self]


_CDP_EVENTS: dict[EventKind, tuple[str, str]] = {
    EventKind.REQUEST_SENT: ("network", "RequestWillBeSent"),
    EventKind.RESPONSE_RECEIVED: ("network", "ResponseReceived"),
    EventKind.LOG_ENTRY_ADDED: ("log", "EntryAdded"),
    EventKind.SCRIPT_EXCEPTION: ("runtime", "ExceptionThrown"),
}


def _enum_value(value: Any) -> str | None:
    """Unwrap a CDP enum (e.g. ResourceType.FETCH) to its wire string."""
    if value is None:
        return None
    return getattr(value, "value", value)


def format_stack_trace(stack_trace: Any) -> str | None:
    """Render a CDP runtime.StackTrace as JavaScript-style "at" lines."""
    if stack_trace is None:
        return None
    lines = []
    if getattr(stack_trace, "description", None):
        lines.append(stack_trace.description)
    for frame in getattr(stack_trace, "call_frames", None) or []:
        name = frame.function_name or "<anonymous>"
        # CDP line/column numbers are 0-based
        lines.append(f"    at {name} ({frame.url}:{frame.line_number + 1}:{frame.column_number + 1})")
    return "\n".join(lines) if lines else str(stack_trace)


@dataclass(frozen=True)
class NetworkRequestEvent:
    """A request the browser is about to send (Network.requestWillBeSent)."""

    method: str
    url: str
    resource_type: str | None = None
    post_data: str | None = None

    @classmethod
    def from_cdp(cls, event: Any) -> NetworkRequestEvent:
        request = event.request
        return cls(
            method=request.method,
            url=request.url,
            resource_type=_enum_value(getattr(event, "type_", None)),
            post_data=getattr(request, "post_data", None),
        )


@dataclass(frozen=True)
class NetworkResponseEvent:
    """A response the browser received (Network.responseReceived)."""

    url: str
    status: int
    resource_type: str | None = None

    @classmethod
    def from_cdp(cls, event: Any) -> NetworkResponseEvent:
        response = event.response
        return cls(
            url=response.url,
            status=int(response.status),
            resource_type=_enum_value(getattr(event, "type_", None)),
        )


@dataclass(frozen=True)
class LogEntryEvent:
    """An entry added to the browser log (Log.entryAdded)."""

    level: str
    text: str
    stack_trace: str | None = None

    @classmethod
    def from_cdp(cls, event: Any) -> LogEntryEvent:
        entry = event.entry
        return cls(
            level=_enum_value(entry.level) or "",
            text=entry.text,
            stack_trace=format_stack_trace(getattr(entry, "stack_trace", None)),
        )


@dataclass(frozen=True)
class ScriptExceptionEvent:
    """An uncaught JavaScript exception (Runtime.exceptionThrown)."""

    message: str
    stack_trace: str | None = None

    @classmethod
    def from_cdp(cls, event: Any) -> ScriptExceptionEvent:
        details = event.exception_details
        exception = getattr(details, "exception", None)
        description = getattr(exception, "description", None) if exception else None
        return cls(
            message=description or details.text,
            stack_trace=format_stack_trace(getattr(details, "stack_trace", None)),
        )
