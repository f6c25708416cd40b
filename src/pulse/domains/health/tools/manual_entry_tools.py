"""MCP tools for manual data entry: biomarker readings and goal completions.

Readings are validated locally before they are sent to the backend. Goal
completions go through the insight feed so the recommendation view reflects
them straight away.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from pulse.core.backend.client import BackendError
from pulse.domains.health.domain_logic.insight_feed import InsightError
from pulse.domains.health.domain_logic.reading_entry import (
    ReadingValidationError,
    build_blood_pressure,
    build_reading,
    reading_payload,
)

if TYPE_CHECKING:
    from pulse.domains.health.connectors import PulseBackend
    from pulse.domains.health.domain_logic.insight_feed import InsightFeed

logger = logging.getLogger(__name__)


def _error(message: str, **extra) -> str:
    return json.dumps({"status": "error", "message": message, **extra})


def register_manual_entry_tools(
    mcp: FastMCP,
    backend: PulseBackend,
    feed: InsightFeed,
) -> None:
    """Register manual entry tools on the MCP server."""

    @mcp.tool
    async def log_biomarker_reading(
        ctx: Context,
        biomarker_type: str,
        value: float,
        unit: str = "",
        recorded_at: str = "",
        notes: str = "",
    ) -> str:
        """Record a biomarker reading taken by hand.

        Args:
            biomarker_type: heart_rate, blood_pressure_systolic,
                blood_pressure_diastolic, glucose, steps or sleep.
            value: The measured value.
            unit: Unit of measurement. Defaults to the usual unit for the type
                (bpm, mmHg, mg/dL, steps, hours).
            recorded_at: When it was measured (ISO 8601). Defaults to now.
            notes: Optional notes, up to 500 characters.
        """
        try:
            reading = build_reading(biomarker_type, value, unit=unit, recorded_at=recorded_at, notes=notes)
        except ReadingValidationError as exc:
            return _error(str(exc))

        payload = reading_payload(reading)
        try:
            saved = await backend.insert_biomarker(payload)
        except BackendError as exc:
            return _error(f"Failed to save reading: {exc}")
        logger.info("Manual reading saved: %s = %s %s", reading.biomarker_type.value, reading.value, reading.unit)
        reading_id = saved.get("id") if isinstance(saved, dict) else None
        return json.dumps({"status": "saved", "id": reading_id, **payload})

    @mcp.tool
    async def log_blood_pressure(
        ctx: Context,
        systolic: float,
        diastolic: float,
        recorded_at: str = "",
        notes: str = "",
    ) -> str:
        """Record a blood pressure measurement as a systolic/diastolic pair.

        Args:
            systolic: Systolic pressure (top number) in mmHg.
            diastolic: Diastolic pressure (bottom number) in mmHg.
            recorded_at: When it was measured (ISO 8601). Defaults to now.
            notes: Optional notes, up to 500 characters.
        """
        try:
            pair = build_blood_pressure(systolic, diastolic, recorded_at=recorded_at, notes=notes)
        except ReadingValidationError as exc:
            return _error(str(exc))

        saved: list[str] = []
        for reading in pair:
            try:
                await backend.insert_biomarker(reading_payload(reading))
            except BackendError as exc:
                return _error(f"Failed to save {reading.biomarker_type.value}: {exc}", saved=saved)
            saved.append(reading.biomarker_type.value)

        logger.info("Manual blood pressure saved: %s/%s mmHg", pair[0].value, pair[1].value)
        return json.dumps({
            "status": "saved",
            "systolic": pair[0].value,
            "diastolic": pair[1].value,
            "unit": pair[0].unit,
            "recorded_at": pair[0].recorded_at.isoformat(),
        })

    async def _set_goal(goal_text: str, completed: bool, completion_date: str) -> str:
        try:
            if feed.generation == 0:
                await feed.load()
            result = await feed.set_goal_completed(goal_text, completed, completion_date or None)
        except InsightError as exc:
            return _error(str(exc))
        return json.dumps({"status": "completed" if completed else "reopened", **result})

    @mcp.tool
    async def mark_goal_complete(ctx: Context, goal_text: str, completion_date: str = "") -> str:
        """Mark one of your health goals as done.

        Args:
            goal_text: The goal exactly as it appears in your profile.
            completion_date: Day it was done (YYYY-MM-DD). Defaults to today.
        """
        return await _set_goal(goal_text, True, completion_date)

    @mcp.tool
    async def unmark_goal_complete(ctx: Context, goal_text: str, completion_date: str = "") -> str:
        """Undo a goal completion.

        Args:
            goal_text: The goal exactly as it appears in your profile.
            completion_date: Day to undo (YYYY-MM-DD). Defaults to today.
        """
        return await _set_goal(goal_text, False, completion_date)
