"""cdplogger - Chrome DevTools Protocol event logging for Selenium tests.

Stream network traffic, browser log errors and uncaught script exceptions
from a Chromium driver into structured log output while a test runs.

This package provides:
- A pytest plugin (``@pytest.mark.devtools``) scoping a DevTools session to each test body
- A context manager for logging outside of pytest
- Pure filtering and formatting functions for each event kind

Example:
    >>> from cdplogger import devtools_logging
    >>> with devtools_logging(driver, response_url_filter="api.example.com"):
    ...     driver.get("https://app.example.com/search?q=test")
"""

from cdplogger.config import CdpLoggerSettings, get_settings
from cdplogger.events import (
    EventKind,
    LogEntryEvent,
    NetworkRequestEvent,
    NetworkResponseEvent,
    ScriptExceptionEvent,
)
from cdplogger.exceptions import (
    CapabilityError,
    CdpLoggerError,
    FormattingObservationError,
    InvalidResponseFilterError,
    LifecycleStateError,
    MissingCapabilityFieldError,
    ProtocolSessionError,
    UnsupportedDriverTypeError,
)
from cdplogger.lifecycle import DevToolsLifecycle, LifecycleState, devtools_logging
from cdplogger.locator import DevToolsTarget, locate_target, supports_devtools
from cdplogger.session import DevToolsSession, SeleniumDevToolsSession

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Lifecycle
    "DevToolsLifecycle",
    "LifecycleState",
    "devtools_logging",
    # Driver location
    "DevToolsTarget",
    "locate_target",
    "supports_devtools",
    # Sessions
    "DevToolsSession",
    "SeleniumDevToolsSession",
    # Events
    "EventKind",
    "NetworkRequestEvent",
    "NetworkResponseEvent",
    "LogEntryEvent",
    "ScriptExceptionEvent",
    # Configuration
    "CdpLoggerSettings",
    "get_settings",
    # Exceptions
    "CdpLoggerError",
    "CapabilityError",
    "MissingCapabilityFieldError",
    "UnsupportedDriverTypeError",
    "InvalidResponseFilterError",
    "ProtocolSessionError",
    "LifecycleStateError",
    "FormattingObservationError",
]
