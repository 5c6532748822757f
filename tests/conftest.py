"""Pytest configuration for cdplogger tests."""

import sys
from pathlib import Path

import pytest
import structlog
from structlog._config import BoundLoggerLazyProxy

# Add src directory to sys.path for test imports
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate each test from CDP_LOGGER_* variables of the host environment.

    Also resets the global settings instance before each test.
    """
    for name in ("LOG_LEVEL", "JSON_OUTPUT", "HIGHLIGHT_ERRORS", "RESPONSE_URL_FILTER"):
        monkeypatch.delenv(f"CDP_LOGGER_{name}", raising=False)
    monkeypatch.setenv("CDP_LOGGER_SESSION_OPEN_TIMEOUT", "5")

    from cdplogger.config import reset_settings

    reset_settings()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog after each test.

    Lifecycles bind loggers when a session opens. Clearing the cached bind
    on module level proxies keeps one test's configuration from leaking into
    the next.
    """
    yield
    structlog.reset_defaults()
    for module in list(sys.modules.values()):
        for attr in getattr(module, "__dict__", {}).values():
            if isinstance(attr, BoundLoggerLazyProxy):
                attr.__dict__.pop("bind", None)
