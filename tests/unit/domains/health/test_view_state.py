"""Tests for persisted section expansion and biomarker card order."""

from __future__ import annotations

import pytest

from pulse.core.state.database import StateDatabase, StateDatabaseError
from pulse.domains.health.domain_logic.view_state import (
    STATE_KEY,
    InvalidOrderError,
    UnknownSectionError,
    ViewState,
    ViewStateStore,
    normalize_order,
)

DEFAULT_ORDER = [
    "heart_rate",
    "blood_pressure_systolic",
    "blood_pressure_diastolic",
    "glucose",
    "steps",
    "sleep",
]


def test_defaults(view_state_store):
    state = view_state_store.state
    assert state.expanded == {"goal": True, "biomarker": True, "other": True}
    assert state.biomarker_order == DEFAULT_ORDER


def test_collapse_is_saved(view_state_store, state_db):
    view_state_store.set_section_expanded("other", False)
    assert state_db.get(STATE_KEY)["expanded"]["other"] is False


def test_unknown_section(view_state_store):
    with pytest.raises(UnknownSectionError):
        view_state_store.set_section_expanded("notes", False)


def test_reorder_fills_missing_types(view_state_store):
    state = view_state_store.set_biomarker_order(["Sleep", "glucose"])
    assert state.biomarker_order == [
        "sleep",
        "glucose",
        "heart_rate",
        "blood_pressure_systolic",
        "blood_pressure_diastolic",
        "steps",
    ]


@pytest.mark.parametrize("order", [["weight"], ["sleep", "sleep"]])
def test_invalid_order_rejected(view_state_store, order):
    with pytest.raises(InvalidOrderError):
        view_state_store.set_biomarker_order(order)
    assert view_state_store.state.biomarker_order == DEFAULT_ORDER


def test_state_survives_restart(tmp_path):
    path = str(tmp_path / "state.db")
    db = StateDatabase(path)
    store = ViewStateStore(db)
    store.set_section_expanded("goal", False)
    store.set_biomarker_order(["steps"])
    db.close()

    reopened = ViewStateStore(StateDatabase(path))
    assert reopened.state.expanded["goal"] is False
    assert reopened.state.biomarker_order[0] == "steps"


def test_reset(view_state_store, state_db):
    view_state_store.set_section_expanded("goal", False)
    state = view_state_store.reset()
    assert state.expanded["goal"] is True
    assert state_db.get(STATE_KEY) is None


def test_from_dict_tolerates_garbage():
    state = ViewState.from_dict({
        "expanded": {"goal": "no", "other": False, "extra": False},
        "biomarker_order": ["cholesterol"],
    })
    assert state.expanded == {"goal": True, "biomarker": True, "other": False}
    assert state.biomarker_order == DEFAULT_ORDER
    assert ViewState.from_dict(None).biomarker_order == DEFAULT_ORDER


def test_normalize_order_empty():
    assert normalize_order([]) == DEFAULT_ORDER


class _ReadOnlyDatabase(StateDatabase):
    def put(self, key, value):
        raise StateDatabaseError("disk is read-only")


def test_failed_save_keeps_previous_state():
    store = ViewStateStore(_ReadOnlyDatabase(":memory:"))
    with pytest.raises(StateDatabaseError):
        store.set_section_expanded("goal", False)
    with pytest.raises(StateDatabaseError):
        store.set_biomarker_order(["sleep"])
    assert store.state.expanded["goal"] is True
    assert store.state.biomarker_order == DEFAULT_ORDER
