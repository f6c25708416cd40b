"""Pulse Insights MCP Server — application factory.

This module provides:
- create_app() for testability (integration tests create fresh server instances)
- Module-level `mcp` variable for FastMCP discovery
"""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastmcp import FastMCP

from pulse.core.backend.client import HttpPulseBackend
from pulse.core.config.settings import get_settings
from pulse.core.state.database import StateDatabase
from pulse.domains.health.connectors import PulseBackend
from pulse.domains.health.connectors.memory_backend import InMemoryPulseBackend
from pulse.domains.health.domain_logic.insight_feed import InsightFeed
from pulse.domains.health.domain_logic.recommendation_templates import default_templates
from pulse.domains.health.domain_logic.threshold_manager import ThresholdManager
from pulse.domains.health.domain_logic.threshold_resolver import WarningPolicy
from pulse.domains.health.domain_logic.view_state import ViewStateStore
from pulse.domains.health.tools.chart_tools import register_chart_tools
from pulse.domains.health.tools.insight_tools import register_insight_tools
from pulse.domains.health.tools.manual_entry_tools import register_manual_entry_tools
from pulse.domains.health.tools.threshold_tools import register_threshold_tools
from pulse.domains.health.tools.view_state_tools import register_view_state_tools

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(
    *,
    backend_override: PulseBackend | None = None,
    view_state_override: ViewStateStore | None = None,
) -> FastMCP:
    """Create and configure the Pulse Insights MCP server.

    This is the main application factory. It:
    1. Creates the FastMCP server instance
    2. Selects the backend (HTTP when BACKEND_URL is set, in-memory otherwise)
    3. Loads the recommendation template bank
    4. Creates the threshold manager and insight feed
    5. Opens the view-state store
    6. Registers all tools
    """
    settings = get_settings()

    try:
        tz = ZoneInfo(settings.display_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown display timezone: {settings.display_timezone!r}") from exc

    # --- Server instance ---
    server = FastMCP(
        "Pulse Insights",
        instructions=(
            "Pulse personal health interpretation server. Classifies biomarker "
            "readings against personal thresholds, merges care-team and derived "
            "recommendations, and prepares reading history for charts."
        ),
    )

    # --- Backend ---
    if backend_override is not None:
        backend = backend_override
    elif settings.backend_url:
        backend = HttpPulseBackend(
            settings.backend_url,
            token=settings.backend_token,
            timeout=settings.backend_timeout_seconds,
        )
        logger.info("Using Pulse backend at %s", settings.backend_url)
    else:
        backend = InMemoryPulseBackend()
        logger.info("No BACKEND_URL configured; using in-memory sample backend")

    # --- Interpretation layer ---
    templates = default_templates()
    threshold_manager = ThresholdManager(backend, policy=WarningPolicy(settings.warning_policy))
    feed = InsightFeed(
        backend,
        window_hours=settings.snapshot_window_hours,
        tz=tz,
        templates=templates,
        threshold_manager=threshold_manager,
    )

    # --- View state ---
    if view_state_override is not None:
        view_state = view_state_override
    else:
        view_state = ViewStateStore(StateDatabase(settings.view_state_path))
        logger.info("View state stored at %s", settings.view_state_path)

    # --- Register tools ---
    @server.tool
    def health_check() -> dict:
        """Check server health and return basic status information."""
        return {
            "status": "ok",
            "server": "Pulse Insights",
            "version": VERSION,
            "backend": backend.data_source,
            "display_timezone": settings.display_timezone,
            "warning_policy": threshold_manager.policy.value,
            "templates_version": templates.version,
        }

    register_threshold_tools(server, threshold_manager)
    register_insight_tools(server, feed, backend, threshold_manager)
    register_manual_entry_tools(server, backend, feed)
    register_chart_tools(server, backend, history_limit=settings.history_limit, tz=tz)
    register_view_state_tools(server, view_state)
    logger.info("Pulse Insights tools registered")

    return server


# Module-level instance for FastMCP discovery.
# Lazy: only created when this module is loaded directly (not when tests import create_app).
def __getattr__(name: str):
    if name == "mcp":
        global mcp  # noqa: PLW0603
        mcp = create_app()
        return mcp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
