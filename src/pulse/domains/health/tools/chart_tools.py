"""MCP tools for biomarker history charts."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone, tzinfo
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from pulse.core.backend.client import BackendError
from pulse.domains.health.connectors.ingestion import normalize_readings
from pulse.domains.health.domain_logic.biomarker_models import parse_type
from pulse.domains.health.domain_logic.time_series import (
    QUICK_RANGE_DAYS,
    ChartMode,
    DateRange,
    last_days_range,
    prepare,
    project,
)

if TYPE_CHECKING:
    from pulse.domains.health.connectors import PulseBackend

logger = logging.getLogger(__name__)


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def _parse_day(text: str) -> date | None:
    return date.fromisoformat(text) if text else None


def register_chart_tools(
    mcp: FastMCP,
    backend: PulseBackend,
    *,
    history_limit: int = 500,
    tz: tzinfo = timezone.utc,
) -> None:
    """Register biomarker chart tools on the MCP server."""

    @mcp.tool
    async def biomarker_chart(
        ctx: Context,
        biomarker_type: str,
        start_date: str = "",
        end_date: str = "",
        last_days: int = 0,
        mode: str = "",
        include_projection: bool = False,
    ) -> str:
        """Prepare a chart of a biomarker's reading history.

        Steps and sleep are summed per day and drawn as bars; other
        biomarkers are drawn as lines of individual readings.

        Args:
            biomarker_type: The biomarker to chart.
            start_date: First calendar day to include (YYYY-MM-DD). Optional.
            end_date: Last calendar day to include (YYYY-MM-DD). Optional.
            last_days: Quick range (7, 30, 60 or 90) ending today; overrides
                start_date/end_date.
            mode: Force 'bar' or 'line'. Defaults by biomarker type.
            include_projection: Also return pixel coordinates for a 520x260 chart.
        """
        key = parse_type(biomarker_type)
        if key is None:
            return _error(f"Unknown biomarker type: {biomarker_type!r}")
        if mode and mode not in (m.value for m in ChartMode):
            return _error("mode must be 'bar' or 'line'")

        try:
            if last_days:
                if last_days not in QUICK_RANGE_DAYS:
                    return _error(f"last_days must be one of {', '.join(map(str, QUICK_RANGE_DAYS))}")
                date_range = last_days_range(last_days, datetime.now(tz).date())
            else:
                date_range = DateRange(start=_parse_day(start_date), end=_parse_day(end_date))
        except ValueError as exc:
            return _error(f"Invalid date: {exc}")

        if date_range.start and date_range.end and date_range.start > date_range.end:
            return _error("start_date must not be after end_date")

        try:
            payload = await backend.get_biomarker_history(key.value, limit=history_limit)
        except BackendError as exc:
            return _error(f"Failed to load history: {exc}")

        series = prepare(
            normalize_readings(payload, key),
            mode or None,
            date_range,
            biomarker_type=key,
            tz=tz,
        )
        result = series.to_dict()
        result["date_range"] = {
            "start": date_range.start.isoformat() if date_range.start else None,
            "end": date_range.end.isoformat() if date_range.end else None,
        }
        if include_projection:
            result["projection"] = project(series)
        logger.debug("Chart for %s: %d points", key.value, len(series.points))
        return json.dumps(result)
