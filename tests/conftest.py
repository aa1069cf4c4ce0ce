"""Shared pytest configuration and fixtures for the ECG monitor test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def qapp():
    """One QCoreApplication for every test that touches QObject / QTimer."""
    from PyQt6.QtCore import QCoreApplication

    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


class FakeClock:
    """Manually advanced replacement for time.monotonic."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def identity_filter():
    """Pass-through 'band-pass' (order 1): out[0] = 0, out[i] = x[i]."""
    from processing.filters import BandpassFilter

    return BandpassFilter(b=[1.0, 0.0], a=[1.0, 0.0])
