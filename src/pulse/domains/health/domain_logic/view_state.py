"""Persisted presentation state: section expansion and biomarker card order.

Loaded once at start, saved on every change. The ordering key is the
biomarker type.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pulse.core.state.database import StateDatabase
from pulse.domains.health.domain_logic.biomarker_models import (
    BIOMARKER_ORDER,
    RecommendationCategory,
    parse_type,
)

logger = logging.getLogger(__name__)

STATE_KEY = "insights_view"
SECTIONS = tuple(c.value for c in RecommendationCategory)


class ViewStateError(Exception):
    """Base exception for view-state operations."""


class UnknownSectionError(ViewStateError):
    pass


class InvalidOrderError(ViewStateError):
    pass


def _default_expanded() -> dict[str, bool]:
    return {section: True for section in SECTIONS}


def _default_order() -> list[str]:
    return [t.value for t in BIOMARKER_ORDER]


@dataclass
class ViewState:
    expanded: dict[str, bool] = field(default_factory=_default_expanded)
    biomarker_order: list[str] = field(default_factory=_default_order)

    def to_dict(self) -> dict[str, Any]:
        return {"expanded": dict(self.expanded), "biomarker_order": list(self.biomarker_order)}

    @classmethod
    def from_dict(cls, data: Any) -> ViewState:
        """Rebuild from stored data, ignoring anything unrecognized."""
        state = cls()
        if not isinstance(data, dict):
            return state
        expanded = data.get("expanded")
        if isinstance(expanded, dict):
            for section in SECTIONS:
                if isinstance(expanded.get(section), bool):
                    state.expanded[section] = expanded[section]
        order = data.get("biomarker_order")
        if isinstance(order, list):
            try:
                state.biomarker_order = normalize_order(order)
            except InvalidOrderError:
                logger.warning("Ignoring stored biomarker order %r", order)
        return state


def normalize_order(order: list[Any]) -> list[str]:
    """Validate a biomarker ordering; types left out keep their default relative order."""
    seen: list[str] = []
    for name in order:
        key = parse_type(name)
        if key is None:
            raise InvalidOrderError(f"Unknown biomarker type in order: {name!r}")
        if key.value in seen:
            raise InvalidOrderError(f"Duplicate biomarker type in order: {key.value}")
        seen.append(key.value)
    return seen + [t for t in _default_order() if t not in seen]


class ViewStateStore:
    """Loads the view state at construction and writes it back on each change."""

    def __init__(self, database: StateDatabase) -> None:
        self._db = database
        self._db.initialize()
        self._state = ViewState.from_dict(self._db.get(STATE_KEY))

    @property
    def state(self) -> ViewState:
        return self._state

    def set_section_expanded(self, section: str, expanded: bool) -> ViewState:
        if section not in SECTIONS:
            raise UnknownSectionError(f"Unknown section {section!r}; expected one of {', '.join(SECTIONS)}")
        return self._commit(
            ViewState(
                expanded={**self._state.expanded, section: bool(expanded)},
                biomarker_order=list(self._state.biomarker_order),
            )
        )

    def set_biomarker_order(self, order: list[Any]) -> ViewState:
        return self._commit(
            ViewState(expanded=dict(self._state.expanded), biomarker_order=normalize_order(order))
        )

    def reset(self) -> ViewState:
        self._db.delete(STATE_KEY)
        self._state = ViewState()
        logger.info("View state reset to defaults")
        return self._state

    def _commit(self, state: ViewState) -> ViewState:
        # Swap in only after the write succeeds so memory never runs ahead of disk.
        self._db.put(STATE_KEY, state.to_dict())
        self._state = state
        logger.debug("View state saved")
        return state
