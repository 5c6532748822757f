"""pytest plugin that logs DevTools events while a test body runs.

Mark a test or test class with ``@pytest.mark.devtools`` (or pass
``--cdp-log-all``) and give it a Chromium driver, either as a ``driver``
attribute of the test class or as a ``driver`` fixture::

    @pytest.mark.devtools(response_url_filter="api.example.com")
    class TestSearch:
        def test_search(self, driver):
            ...

The session is opened right before the test body and closed right after it,
so fixture setup and teardown traffic is not logged.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
import structlog

from cdplogger.config import CdpLoggerSettings, get_settings
from cdplogger.exceptions import MissingCapabilityFieldError, ProtocolSessionError
from cdplogger.lifecycle import DevToolsLifecycle
from cdplogger.locator import DRIVER_FIELD, FILTER_FIELD, DevToolsTarget, locate_target
from cdplogger.logging import configure_logging, get_logger

LOG = get_logger(__name__)

MARKER = "devtools"

lifecycle_key = pytest.StashKey[DevToolsLifecycle]()
settings_key = pytest.StashKey[CdpLoggerSettings]()

_UNSET = object()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("cdp-logger", "Chrome DevTools Protocol event logging")
    group.addoption(
        "--cdp-log-all",
        action="store_true",
        default=None,
        help="Log DevTools events for every test, not only those marked 'devtools'.",
    )
    group.addoption(
        "--cdp-response-filter",
        default=None,
        help="Only log responses whose URL contains this substring.",
    )
    group.addoption(
        "--cdp-log-level",
        default=None,
        help="Log level for DevTools event output (default: INFO).",
    )
    group.addoption(
        "--cdp-log-json",
        action="store_true",
        default=None,
        help="Render DevTools events as JSON lines.",
    )
    group.addoption(
        "--cdp-no-highlight",
        action="store_true",
        default=False,
        help="Disable colored console output for DevTools events.",
    )
    parser.addini(
        "cdp_log_all",
        type="bool",
        default=False,
        help="Log DevTools events for every test.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{MARKER}(response_url_filter=None, driver_field='{DRIVER_FIELD}'): "
        "log Chrome DevTools Protocol events while the test body runs",
    )

    overrides: dict[str, Any] = {}
    if config.getoption("--cdp-log-level"):
        overrides["log_level"] = config.getoption("--cdp-log-level")
    if config.getoption("--cdp-log-json"):
        overrides["json_output"] = True
    if config.getoption("--cdp-no-highlight"):
        overrides["highlight_errors"] = False
    if config.getoption("--cdp-response-filter") is not None:
        overrides["response_url_filter"] = config.getoption("--cdp-response-filter")

    settings = get_settings()
    if overrides:
        settings = settings.model_copy(update=overrides)
    config.stash[settings_key] = settings

    # Leave an existing structlog setup of the host project alone
    if not structlog.is_configured():
        configure_logging(
            level=settings.log_level,
            json_output=settings.json_output,
            highlight_errors=settings.highlight_errors,
        )


def _log_all(config: pytest.Config) -> bool:
    return bool(config.getoption("--cdp-log-all") or config.getini("cdp_log_all"))


def is_enabled(item: pytest.Item) -> bool:
    """Return True if DevTools logging applies to this test item."""
    return item.get_closest_marker(MARKER) is not None or _log_all(item.config)


def resolve_target(item: pytest.Item, settings: CdpLoggerSettings) -> DevToolsTarget:
    """Find the driver and response filter for a test item.

    The test class attribute wins over a ``driver`` fixture. A
    ``response_url_filter`` marker argument overrides the class attribute,
    which overrides the session default.

    Raises:
        MissingCapabilityFieldError: If neither the class nor the fixtures
            provide a driver.
    """
    marker = item.get_closest_marker(MARKER)
    marker_kwargs = marker.kwargs if marker is not None else {}
    driver_field = marker_kwargs.get("driver_field", DRIVER_FIELD)
    marker_filter = marker_kwargs.get("response_url_filter", _UNSET)

    instance = getattr(item, "instance", None)
    funcargs = getattr(item, "funcargs", {})

    if instance is not None and hasattr(instance, driver_field):
        target = locate_target(
            instance,
            driver_field=driver_field,
            filter_field=FILTER_FIELD,
            default_filter=settings.response_url_filter,
            test_name=item.nodeid,
        )
        if marker_filter is _UNSET:
            return target
        return DevToolsTarget.from_driver(target.driver, marker_filter, test_name=item.nodeid)

    if driver_field in funcargs:
        response_url_filter = (
            settings.response_url_filter if marker_filter is _UNSET else marker_filter
        )
        return DevToolsTarget.from_driver(
            funcargs[driver_field], response_url_filter, test_name=item.nodeid
        )

    owner = type(instance) if instance is not None else None
    name = f"{owner.__module__}.{owner.__qualname__}" if owner else item.nodeid
    raise MissingCapabilityFieldError(name, driver_field)


@pytest.hookimpl(wrapper=True)
def pytest_runtest_call(item: pytest.Item) -> Generator[None, Any, Any]:
    if not is_enabled(item):
        return (yield)

    settings = item.config.stash.get(settings_key, None) or get_settings()
    lifecycle = DevToolsLifecycle(settings=settings)
    item.stash[lifecycle_key] = lifecycle

    with structlog.contextvars.bound_contextvars(test=item.nodeid):
        # Setup errors propagate here and fail the test before its body runs
        lifecycle.before_test(resolve_target(item, settings))
        try:
            result = yield
        except BaseException:
            try:
                lifecycle.after_test()
            except ProtocolSessionError as exc:
                LOG.error("devtools_teardown_failed_after_error", error=str(exc))
            raise
        lifecycle.after_test()
        return result
