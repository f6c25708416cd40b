"""MCP tools for persisted view preferences."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from fastmcp import Context, FastMCP

from pulse.core.state.database import StateDatabaseError
from pulse.domains.health.domain_logic.view_state import ViewStateError

if TYPE_CHECKING:
    from pulse.domains.health.domain_logic.view_state import ViewStateStore


def _error(message: str) -> str:
    return json.dumps({"status": "error", "message": message})


def register_view_state_tools(mcp: FastMCP, store: ViewStateStore) -> None:
    """Register view-state tools on the MCP server.

    The tools are coroutines so the store's SQLite connection is only ever
    touched from the event-loop thread that opened it.
    """

    @mcp.tool
    async def get_view_state(ctx: Context) -> str:
        """Return which recommendation sections are expanded and the biomarker card order."""
        return json.dumps(store.state.to_dict())

    @mcp.tool
    async def set_section_expanded(ctx: Context, section: str, expanded: bool) -> str:
        """Expand or collapse a recommendation section.

        Args:
            section: goal, biomarker or other.
            expanded: True to expand, False to collapse.
        """
        try:
            state = store.set_section_expanded(section, expanded)
        except (ViewStateError, StateDatabaseError) as exc:
            return _error(str(exc))
        return json.dumps({"status": "saved", **state.to_dict()})

    @mcp.tool
    async def set_biomarker_order(ctx: Context, order: list[str]) -> str:
        """Set the display order of biomarker cards.

        Args:
            order: Biomarker types in the desired order. Types left out keep
                their default relative order after the listed ones.
        """
        try:
            state = store.set_biomarker_order(order)
        except (ViewStateError, StateDatabaseError) as exc:
            return _error(str(exc))
        return json.dumps({"status": "saved", **state.to_dict()})

    @mcp.tool
    async def reset_view_state(ctx: Context) -> str:
        """Expand every section and restore the default biomarker card order."""
        try:
            state = store.reset()
        except StateDatabaseError as exc:
            return _error(str(exc))
        return json.dumps({"status": "reset", **state.to_dict()})
