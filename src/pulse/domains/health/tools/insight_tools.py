"""MCP tools for the recommendation feed and provider notes."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from pulse.core.backend.client import BackendError
from pulse.domains.health.domain_logic.insight_feed import InsightError
from pulse.domains.health.domain_logic.threshold_resolver import ThresholdError

if TYPE_CHECKING:
    from pulse.domains.health.connectors import PulseBackend
    from pulse.domains.health.domain_logic.insight_feed import InsightFeed
    from pulse.domains.health.domain_logic.threshold_manager import ThresholdManager

logger = logging.getLogger(__name__)


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def register_insight_tools(
    mcp: FastMCP,
    feed: InsightFeed,
    backend: PulseBackend,
    threshold_manager: ThresholdManager | None = None,
) -> None:
    """Register recommendation feed tools on the MCP server."""

    @mcp.tool
    async def load_insights(ctx: Context, refresh_thresholds: bool = False) -> str:
        """Load your recommendations: goal, biomarker and other categories.

        Combines recommendations from your care team with ones derived from
        your goals and latest biomarker readings.

        Args:
            refresh_thresholds: Reload personal thresholds before classifying.
        """
        if threshold_manager is not None and (refresh_thresholds or not threshold_manager.loaded):
            try:
                await threshold_manager.load()
            except ThresholdError as exc:
                logger.warning("Classifying with reference ranges only: %s", exc)

        try:
            view = await feed.load()
        except InsightError as exc:
            return _error(str(exc))

        result = view.to_dict()
        result["status"] = "ok"
        result["biomarker_snapshot_available"] = feed.snapshot_available
        result["restrictions"] = feed.restrictions
        return json.dumps(result)

    @mcp.tool
    async def dismiss_recommendation(ctx: Context, recommendation_id: str) -> str:
        """Dismiss a recommendation from the current list.

        Args:
            recommendation_id: Id of a recommendation returned by load_insights.
        """
        try:
            rec = await feed.dismiss(recommendation_id)
        except InsightError as exc:
            return _error(str(exc))
        return json.dumps({
            "status": "dismissed",
            "recommendation_id": rec.id,
            "is_derived": rec.is_derived,
            "remaining": len(feed.view),
        })

    @mcp.tool
    async def submit_recommendation_feedback(
        ctx: Context,
        recommendation_id: str,
        feedback: str,
        difficulty: str = "",
        notes: str = "",
    ) -> str:
        """Tell your care team how a recommendation worked for you.

        Args:
            recommendation_id: Id of a recommendation returned by load_insights.
            feedback: helpful, not_helpful, already_doing, too_difficult,
                not_applicable or implemented.
            difficulty: Optional: easy, moderate or challenging.
            notes: Optional free text, up to 500 characters.
        """
        try:
            result = await feed.submit_feedback(
                recommendation_id, feedback, difficulty or None, notes or None
            )
        except InsightError as exc:
            return _error(str(exc))
        return json.dumps({"status": "submitted", **result})

    @mcp.tool
    async def mark_note_read(ctx: Context, note_id: str) -> str:
        """Mark a provider note as read.

        Args:
            note_id: Id of the provider note.
        """
        try:
            await backend.mark_note_read(note_id)
        except BackendError as exc:
            return _error(f"Failed to mark note as read: {exc}")
        logger.info("Note %s marked as read", note_id)
        return json.dumps({"status": "read", "note_id": note_id})
