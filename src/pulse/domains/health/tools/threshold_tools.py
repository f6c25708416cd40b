"""MCP tools for biomarker classification and personal thresholds.

Thresholds resolve provider > patient > default. Patients can set and reset
their own override; provider overrides are read-only here.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from pulse.domains.health.domain_logic.biomarker_models import (
    CANONICAL_UNITS,
    DISPLAY_LABELS,
    parse_type,
    to_number,
)
from pulse.domains.health.domain_logic.classifier import classify, classify_with_threshold
from pulse.domains.health.domain_logic.reference_ranges import ranges_as_dicts
from pulse.domains.health.domain_logic.threshold_resolver import ThresholdError

if TYPE_CHECKING:
    from pulse.domains.health.domain_logic.threshold_manager import ThresholdManager

logger = logging.getLogger(__name__)


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def register_threshold_tools(mcp: FastMCP, manager: ThresholdManager) -> None:
    """Register classification and threshold tools on the MCP server."""

    async def _ensure_loaded() -> None:
        if not manager.loaded:
            await manager.load()

    @mcp.tool
    async def classify_biomarker(
        ctx: Context,
        biomarker_type: str,
        value: float,
        use_personal_thresholds: bool = True,
    ) -> str:
        """Classify a biomarker reading as optimal, normal, high, low or critical.

        Args:
            biomarker_type: heart_rate, blood_pressure_systolic,
                blood_pressure_diastolic, glucose, steps or sleep.
            value: The measured value in the biomarker's canonical unit.
            use_personal_thresholds: Apply provider/patient overrides when
                available; otherwise only the reference ranges are used.
        """
        key = parse_type(biomarker_type)
        source = "reference"
        if key is not None and use_personal_thresholds:
            try:
                await _ensure_loaded()
                resolved = manager.resolve(key)
                status = classify_with_threshold(key, value, resolved.threshold)
                source = resolved.source.value
            except ThresholdError as exc:
                logger.warning("Thresholds unavailable, classifying against reference ranges: %s", exc)
                status = classify(key, value)
        else:
            status = classify(biomarker_type, value)

        return json.dumps({
            "biomarker_type": key.value if key else biomarker_type,
            "label": DISPLAY_LABELS.get(key, biomarker_type) if key else biomarker_type,
            "value": to_number(value),
            "unit": CANONICAL_UNITS.get(key, "") if key else "",
            "status": status.value,
            "threshold_source": source,
        })

    @mcp.tool
    async def get_thresholds(ctx: Context, biomarker_type: str = "") -> str:
        """Show the effective thresholds and which tier they come from.

        Args:
            biomarker_type: Limit to one biomarker type. Empty returns all.
        """
        try:
            await _ensure_loaded()
            if biomarker_type:
                resolved = [manager.resolve(biomarker_type)]
            else:
                resolved = manager.resolve_all()
        except ThresholdError as exc:
            return _error(str(exc))
        return json.dumps({
            "warning_policy": manager.policy.value,
            "thresholds": [r.to_dict() for r in resolved],
        })

    @mcp.tool
    async def set_my_threshold(
        ctx: Context,
        biomarker_type: str,
        warning_low: float | None = None,
        warning_high: float | None = None,
        critical_low: float | None = None,
        critical_high: float | None = None,
    ) -> str:
        """Set your own alert thresholds for a biomarker.

        Replaces any threshold you set before. A provider-set threshold still
        takes precedence over yours.

        Args:
            biomarker_type: The biomarker to configure.
            warning_low: Lower warning bound, or omit to leave undefined.
            warning_high: Upper warning bound, or omit to leave undefined.
            critical_low: Lower critical bound, or omit to leave undefined.
            critical_high: Upper critical bound, or omit to leave undefined.
        """
        try:
            await _ensure_loaded()
            resolved = await manager.set_override(
                biomarker_type,
                {
                    "warning_low": warning_low,
                    "warning_high": warning_high,
                    "critical_low": critical_low,
                    "critical_high": critical_high,
                },
            )
        except ThresholdError as exc:
            return _error(str(exc))
        return json.dumps({"status": "saved", "effective": resolved.to_dict()})

    @mcp.tool
    async def reset_my_threshold(ctx: Context, biomarker_type: str) -> str:
        """Remove your own threshold so the provider or default threshold applies.

        Args:
            biomarker_type: The biomarker to reset.
        """
        try:
            await _ensure_loaded()
            resolved = await manager.reset_override(biomarker_type)
        except ThresholdError as exc:
            return _error(str(exc))
        return json.dumps({"status": "reset", "effective": resolved.to_dict()})

    @mcp.tool
    def get_reference_ranges() -> str:
        """List the reference ranges (optimal, normal, critical) for every biomarker."""
        return json.dumps({"ranges": ranges_as_dicts()})
