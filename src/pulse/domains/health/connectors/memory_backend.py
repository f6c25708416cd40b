"""In-memory PulseBackend seeded with sample data.

Used when no backend URL is configured and throughout the test suite.
Mutations are recorded so callers can assert on them, and individual
operations can be made to fail.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from pulse.core.backend.client import BackendRequestError
from pulse.domains.health.connectors import sample_data
from pulse.domains.health.domain_logic.biomarker_models import BIOMARKER_ORDER, parse_type
from pulse.domains.health.domain_logic.reference_ranges import range_for

logger = logging.getLogger(__name__)


class InMemoryPulseBackend:
    """Deterministic backend double.

    Args:
        recommendations / profile / completions / readings / thresholds / notes:
            Seed data in the backend's wire shapes. ``None`` seeds the sample
            data set; pass an empty list or dict for an empty backend.
        dashboard: Explicit dashboard payload. When omitted the dashboard is
            derived from the latest reading of each type.
        failures: Operation names that raise ``BackendRequestError``.
        now: Reference instant for sample timestamps.
    """

    def __init__(
        self,
        *,
        recommendations: list[dict] | None = None,
        profile: dict | None = None,
        completions: list[dict] | None = None,
        readings: list[dict] | None = None,
        thresholds: list[dict] | None = None,
        notes: list[dict] | None = None,
        dashboard: Any = None,
        failures: set[str] | None = None,
        now: datetime | None = None,
    ) -> None:
        now = now or datetime.now(timezone.utc)
        self.recommendations = (
            sample_data.get_sample_recommendations() if recommendations is None else list(recommendations)
        )
        self.profile = sample_data.get_sample_profile() if profile is None else dict(profile)
        self.completions = [] if completions is None else list(completions)
        self.readings = sample_data.get_sample_readings(now) if readings is None else list(readings)
        self.thresholds = sample_data.get_sample_thresholds() if thresholds is None else list(thresholds)
        self.notes = sample_data.get_sample_notes() if notes is None else list(notes)
        self.dashboard = dashboard
        self.failures: set[str] = set(failures or ())

        self.dismissed: list[str] = []
        self.feedback: list[tuple[str, dict[str, Any]]] = []
        self.calls: list[str] = []

    @property
    def data_source(self) -> str:
        return "memory"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_active_recommendations(self) -> Any:
        self._enter("get_active_recommendations")
        return copy.deepcopy(self.recommendations)

    async def get_profile(self) -> Any:
        self._enter("get_profile")
        return copy.deepcopy(self.profile)

    async def get_goal_completions(self) -> Any:
        self._enter("get_goal_completions")
        return copy.deepcopy(self.completions)

    async def get_biomarker_dashboard(self) -> Any:
        self._enter("get_biomarker_dashboard")
        if self.dashboard is not None:
            return copy.deepcopy(self.dashboard)
        latest: dict[str, dict] = {}
        for reading in self.readings:
            key = str(reading.get("biomarker_type", ""))
            current = latest.get(key)
            if current is None or str(reading.get("recorded_at", "")) > str(current.get("recorded_at", "")):
                latest[key] = reading
        return {
            key: {"value": r.get("value"), "unit": r.get("unit"), "recorded_at": r.get("recorded_at")}
            for key, r in latest.items()
        }

    async def get_biomarker_history(self, biomarker_type: str, limit: int = 500) -> Any:
        self._enter("get_biomarker_history")
        key = parse_type(biomarker_type)
        rows = [r for r in self.readings if parse_type(r.get("biomarker_type")) == key]
        rows.sort(key=lambda r: str(r.get("recorded_at", "")), reverse=True)
        return {"readings": copy.deepcopy(rows[:limit])}

    async def get_effective_thresholds(self) -> Any:
        self._enter("get_effective_thresholds")
        effective = []
        for row in self._threshold_rows():
            effective.append({**row, "source": row["set_by_role"]})
        covered = {parse_type(row["biomarker_type"]) for row in effective}
        for key in BIOMARKER_ORDER:
            if key in covered:
                continue
            ref = range_for(key)
            effective.append({
                "biomarker_type": key.value,
                "source": "default",
                "warning_low": None,
                "warning_high": None,
                "critical_low": ref.critical_low,
                "critical_high": ref.critical_high,
            })
        return {"thresholds": effective}

    async def get_my_thresholds(self) -> Any:
        self._enter("get_my_thresholds")
        return copy.deepcopy(self.thresholds)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def set_my_threshold(self, payload: dict[str, Any]) -> Any:
        self._enter("set_my_threshold")
        key = parse_type(payload.get("biomarker_type"))
        if key is None:
            raise BackendRequestError(f"Unknown biomarker type {payload.get('biomarker_type')!r}", 422)
        for row in self.thresholds:
            if parse_type(row.get("biomarker_type")) == key and row.get("set_by_role") == "patient":
                row.update({k: payload.get(k) for k in ("warning_low", "warning_high", "critical_low", "critical_high")})
                return copy.deepcopy(row)
        row = {
            "id": f"thr-{uuid.uuid4().hex[:8]}",
            "biomarker_type": key.value,
            "set_by_role": "patient",
            **{k: payload.get(k) for k in ("warning_low", "warning_high", "critical_low", "critical_high")},
        }
        self.thresholds.append(row)
        return copy.deepcopy(row)

    async def delete_my_threshold(self, threshold_id: str) -> Any:
        self._enter("delete_my_threshold")
        for row in self.thresholds:
            if str(row.get("id")) != str(threshold_id):
                continue
            if row.get("set_by_role") != "patient":
                raise BackendRequestError("Provider thresholds cannot be deleted by the patient", 403)
            self.thresholds.remove(row)
            return {"deleted": threshold_id}
        raise BackendRequestError(f"Threshold {threshold_id} not found", 404)

    async def dismiss_recommendation(self, recommendation_id: str) -> Any:
        self._enter("dismiss_recommendation")
        before = len(self.recommendations)
        self.recommendations = [r for r in self.recommendations if str(r.get("id")) != str(recommendation_id)]
        if len(self.recommendations) == before:
            raise BackendRequestError(f"Recommendation {recommendation_id} not found", 404)
        self.dismissed.append(recommendation_id)
        return {"dismissed": recommendation_id}

    async def submit_feedback(self, recommendation_id: str, payload: dict[str, Any]) -> Any:
        self._enter("submit_feedback")
        self.feedback.append((recommendation_id, dict(payload)))
        return {"recommendation_id": recommendation_id, **payload}

    async def mark_note_read(self, note_id: str) -> Any:
        self._enter("mark_note_read")
        for note in self.notes:
            if str(note.get("id")) == str(note_id):
                note["is_read"] = True
                return copy.deepcopy(note)
        raise BackendRequestError(f"Note {note_id} not found", 404)

    async def insert_biomarker(self, payload: dict[str, Any]) -> Any:
        self._enter("insert_biomarker")
        if parse_type(payload.get("biomarker_type")) is None:
            raise BackendRequestError(f"Unknown biomarker type {payload.get('biomarker_type')!r}", 422)
        row = {"id": f"rd-{uuid.uuid4().hex[:8]}", **payload}
        self.readings.append(row)
        return copy.deepcopy(row)

    async def mark_goal_complete(self, goal_text: str, goal_frequency: str, completion_date: str) -> Any:
        self._enter("mark_goal_complete")
        for row in self.completions:
            if row.get("goal_text") == goal_text and row.get("completion_date") == completion_date:
                raise BackendRequestError("Goal already completed for this date", 409)
        row = {
            "id": f"gc-{uuid.uuid4().hex[:8]}",
            "goal_text": goal_text,
            "goal_frequency": goal_frequency,
            "completion_date": completion_date,
            "status": "completed",
        }
        self.completions.append(row)
        return copy.deepcopy(row)

    async def unmark_goal_complete(self, goal_text: str, completion_date: str) -> Any:
        self._enter("unmark_goal_complete")
        for row in self.completions:
            if row.get("goal_text") == goal_text and row.get("completion_date") == completion_date:
                self.completions.remove(row)
                return {"removed": True}
        raise BackendRequestError("No completion found for this goal and date", 404)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self.failures:
            logger.debug("Injected failure for %s", operation)
            raise BackendRequestError(f"{operation} failed", 500)

    def _threshold_rows(self) -> list[dict]:
        # Provider rows win over patient rows for the same type.
        by_type: dict[Any, dict] = {}
        for row in self.thresholds:
            key = parse_type(row.get("biomarker_type"))
            if key is None:
                continue
            if row.get("set_by_role") == "provider" or key not in by_type:
                by_type[key] = row
        return copy.deepcopy(list(by_type.values()))
