"""Shared test fixtures for Pulse Insights tests."""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BACKEND_URL", "")
    monkeypatch.setenv("BACKEND_TOKEN", "")
    monkeypatch.setenv("VIEW_STATE_PATH", ":memory:")
    monkeypatch.setenv("DISPLAY_TIMEZONE", "UTC")
    monkeypatch.setenv("WARNING_POLICY", "absent")

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from pulse.core.state.database import StateDatabase  # noqa: E402
from pulse.domains.health.connectors.memory_backend import InMemoryPulseBackend  # noqa: E402
from pulse.domains.health.domain_logic.view_state import ViewStateStore  # noqa: E402

# Fixed reference instant used across time-dependent tests.
NOW = datetime(2024, 1, 12, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def memory_backend() -> InMemoryPulseBackend:
    """In-memory backend seeded with the sample data set."""
    return InMemoryPulseBackend(now=NOW)


@pytest.fixture
def empty_backend() -> InMemoryPulseBackend:
    """In-memory backend with no data at all."""
    return InMemoryPulseBackend(
        recommendations=[],
        profile={},
        completions=[],
        readings=[],
        thresholds=[],
        notes=[],
        now=NOW,
    )


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def state_db():
    """Create an in-memory StateDatabase for testing."""
    db = StateDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def view_state_store(state_db) -> ViewStateStore:
    return ViewStateStore(state_db)
