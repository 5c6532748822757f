"""Locate the DevTools-capable driver a test wants its events logged from.

Example:
    >>> from cdplogger.locator import DevToolsTarget
    >>> target = DevToolsTarget.from_driver(driver, response_url_filter="api.example.com")
    >>> session = target.open_session()
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from selenium.webdriver.chromium.webdriver import ChromiumDriver

from cdplogger.exceptions import (
    InvalidResponseFilterError,
    MissingCapabilityFieldError,
    UnsupportedDriverTypeError,
)

if TYPE_CHECKING:
    from cdplogger.session import DevToolsSession

DRIVER_FIELD = "driver"
FILTER_FIELD = "response_url_filter"

# Sentinel distinguishing "attribute missing" from "attribute set to None"
_MISSING = object()


def _qualified_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def supports_devtools(driver: Any) -> bool:
    """Return True if the driver can open a Chrome DevTools Protocol session."""
    return isinstance(driver, ChromiumDriver)


def validate_driver(driver: Any) -> Any:
    """Return the driver unchanged, or raise if it cannot speak CDP."""
    if not supports_devtools(driver):
        raise UnsupportedDriverTypeError(_qualified_name(type(driver)))
    return driver


def validate_response_filter(value: Any) -> str | None:
    """Return the filter unchanged, or raise if it is not a string or None."""
    if value is not None and not isinstance(value, str):
        raise InvalidResponseFilterError(_qualified_name(type(value)))
    return value


@dataclass(frozen=True)
class DevToolsTarget:
    """A validated driver plus the optional response URL filter for one test.

    Attributes:
        driver: Chromium based Selenium driver (Chrome or Edge).
        response_url_filter: Substring a response URL must contain to be
            logged, or None to log every in-scope response.
        test_name: Identifier of the test the target belongs to.
    """

    driver: Any
    response_url_filter: str | None = None
    test_name: str = "<anonymous>"

    @classmethod
    def from_driver(
        cls,
        driver: Any,
        response_url_filter: str | None = None,
        test_name: str = "<anonymous>",
    ) -> DevToolsTarget:
        """Build a target from explicit values, validating both."""
        return cls(
            driver=validate_driver(driver),
            response_url_filter=validate_response_filter(response_url_filter),
            test_name=test_name,
        )

    def open_session(
        self,
        session_factory: Callable[..., DevToolsSession] | None = None,
        open_timeout: float = 10.0,
    ) -> DevToolsSession:
        """Create a DevTools session for the driver and open it.

        Args:
            session_factory: Callable taking the driver and ``open_timeout``.
                Defaults to :class:`~cdplogger.session.SeleniumDevToolsSession`.
            open_timeout: Seconds to wait for the connection.

        Returns:
            An open session.

        Raises:
            ProtocolSessionError: If the connection cannot be established.
        """
        if session_factory is None:
            from cdplogger.session import SeleniumDevToolsSession

            session_factory = SeleniumDevToolsSession
        session = session_factory(self.driver, open_timeout=open_timeout)
        session.open()
        return session


def locate_target(
    instance: Any,
    *,
    driver_field: str = DRIVER_FIELD,
    filter_field: str = FILTER_FIELD,
    default_filter: str | None = None,
    test_name: str | None = None,
) -> DevToolsTarget:
    """Find the driver and optional response filter on a test class instance.

    Both instance and class attributes are considered, so a filter can be a
    plain class constant.

    Args:
        instance: The test class instance.
        driver_field: Attribute holding the driver.
        filter_field: Attribute holding the optional response URL filter.
        default_filter: Filter used when ``filter_field`` is absent.
        test_name: Identifier used for the target; defaults to the class name.

    Returns:
        Validated target.

    Raises:
        MissingCapabilityFieldError: If ``driver_field`` is absent.
        UnsupportedDriverTypeError: If the driver is not Chromium based.
        InvalidResponseFilterError: If the filter is not a string.
    """
    class_name = _qualified_name(type(instance))
    driver = getattr(instance, driver_field, _MISSING)
    if driver is _MISSING:
        raise MissingCapabilityFieldError(class_name, driver_field)

    response_url_filter = getattr(instance, filter_field, _MISSING)
    if response_url_filter is _MISSING:
        response_url_filter = default_filter

    return DevToolsTarget.from_driver(
        driver,
        response_url_filter=response_url_filter,
        test_name=test_name or class_name,
    )
