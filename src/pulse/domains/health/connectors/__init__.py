"""Pulse backend connectors — abstraction layer over the platform API."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PulseBackend(Protocol):
    """Abstract interface to the Pulse platform backend.

    Payloads are returned raw; callers normalize them through
    ``connectors.ingestion`` before use. Mutations raise on failure so the
    caller can keep local state unchanged.
    """

    async def get_active_recommendations(self) -> Any:
        """Active backend recommendations for the signed-in patient."""
        ...

    async def get_profile(self) -> Any:
        """Patient profile, including ``health_goals``."""
        ...

    async def get_goal_completions(self) -> Any:
        """Goal completion records."""
        ...

    async def get_biomarker_dashboard(self) -> Any:
        """Current biomarker snapshot."""
        ...

    async def get_biomarker_history(self, biomarker_type: str, limit: int = 500) -> Any:
        """Reading history for one biomarker type."""
        ...

    async def get_effective_thresholds(self) -> Any:
        """Thresholds as resolved by the backend, tagged with their source."""
        ...

    async def get_my_thresholds(self) -> Any:
        """Threshold overrides visible to the patient (patient and provider)."""
        ...

    async def set_my_threshold(self, payload: dict[str, Any]) -> Any:
        """Create or replace the patient override for ``payload['biomarker_type']``."""
        ...

    async def delete_my_threshold(self, threshold_id: str) -> Any:
        """Delete a patient override by id."""
        ...

    async def dismiss_recommendation(self, recommendation_id: str) -> Any:
        ...

    async def submit_feedback(self, recommendation_id: str, payload: dict[str, Any]) -> Any:
        ...

    async def mark_note_read(self, note_id: str) -> Any:
        ...

    async def insert_biomarker(self, payload: dict[str, Any]) -> Any:
        """Record one biomarker reading."""
        ...

    async def mark_goal_complete(self, goal_text: str, goal_frequency: str, completion_date: str) -> Any:
        """Record a goal as completed on ``completion_date`` (YYYY-MM-DD)."""
        ...

    async def unmark_goal_complete(self, goal_text: str, completion_date: str) -> Any:
        """Remove the completion record of a goal for ``completion_date``."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active backend: 'http' or 'memory'."""
        ...
