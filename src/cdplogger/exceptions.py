"""Custom exceptions for the cdplogger package."""


class CdpLoggerError(Exception):
    """Base exception class for all cdplogger errors."""


class CapabilityError(CdpLoggerError):
    """Raised when a test does not provide a usable DevTools target."""


class MissingCapabilityFieldError(CapabilityError):
    """The test instance has no driver field to attach to.

    This is a setup defect in the test class and is surfaced before the
    test body runs.

    Attributes:
        test_class: Qualified name of the offending test class.
        field_name: Name of the field that was looked up.
    """

    def __init__(self, test_class: str, field_name: str = "driver") -> None:
        self.test_class = test_class
        self.field_name = field_name
        super().__init__(
            f"There is no '{field_name}' field in test class '{test_class}'. "
            "This field is required to log DevTools events."
        )


class UnsupportedDriverTypeError(CapabilityError):
    """The located driver cannot open a DevTools session.

    Attributes:
        driver_type: Qualified name of the driver's actual type.
    """

    def __init__(self, driver_type: str) -> None:
        self.driver_type = driver_type
        super().__init__(
            f"Unsupported WebDriver type {driver_type!r}. Only Chromium based "
            "drivers (Chrome, Edge) support the Chrome DevTools Protocol."
        )


class InvalidResponseFilterError(CapabilityError):
    """The response URL filter field holds something other than a string."""

    def __init__(self, filter_type: str) -> None:
        self.filter_type = filter_type
        super().__init__(f"Response URL filter must be a string or None, got {filter_type!r}")


class ProtocolSessionError(CdpLoggerError):
    """Raised when opening, driving or closing a DevTools session fails."""


class LifecycleStateError(CdpLoggerError):
    """Raised when a lifecycle transition is requested from the wrong state."""


class FormattingObservationError(CdpLoggerError):
    """Formatting a single DevTools event failed.

    Raised inside a listener and contained there; it never reaches the
    test or the teardown path.

    Attributes:
        kind: Event kind whose handler failed.
        original: The exception raised by the handler.
    """

    def __init__(self, kind: str, original: BaseException) -> None:
        self.kind = kind
        self.original = original
        super().__init__(f"Failed to format {kind} event: {original}")
