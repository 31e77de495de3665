"""Pytest configuration and fixtures."""

import logging
import sys
from pathlib import Path

import pytest

# Ensure project root is importable without an editable install
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from callouts.lib.env import TEST_HARNESS_ENV_VAR  # noqa: E402
from callouts.lib.mock_transport import MockTransport  # noqa: E402
from callouts.lib.resilience import ResilienceWrapper, RetryPolicy  # noqa: E402
from callouts.lib.store import InMemoryRecordStore  # noqa: E402


@pytest.fixture(autouse=True)
def _clear_test_harness_marker(monkeypatch):
    """Tests opt into the harness marker explicitly."""
    monkeypatch.delenv(TEST_HARNESS_ENV_VAR, raising=False)


@pytest.fixture
def sleeps():
    """Records requested backoff delays instead of sleeping."""
    return []


@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def wrapper(mock_transport, sleeps):
    return ResilienceWrapper(mock_transport, sleep=sleeps.append)


@pytest.fixture
def fast_policy():
    """Three attempts with a 1s base delay (sleep is stubbed out)."""
    return RetryPolicy(max_attempts=3, base_delay=1.0)


@pytest.fixture
def memory_store():
    return InMemoryRecordStore()


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging(): drop the handlers it installed and reset the level."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
