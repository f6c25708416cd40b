"""Unit tests for the view-state MCP tools."""

from __future__ import annotations

import asyncio
import json
import threading

import pytest
from fastmcp import Client

from pulse.core.server.app import create_app
from pulse.core.state.database import StateDatabase
from pulse.domains.health.domain_logic.view_state import ViewStateStore


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    blocks = getattr(result, "content", result)
    return json.loads(blocks[0].text)


@pytest.fixture
def client(memory_backend, view_state_store):
    mcp = create_app(backend_override=memory_backend, view_state_override=view_state_store)
    return Client(mcp)


def test_collapse_and_reorder(client, view_state_store):
    async def _check():
        async with client:
            await client.call_tool("set_section_expanded", {"section": "goal", "expanded": False})
            await client.call_tool("set_biomarker_order", {"order": ["glucose", "heart_rate"]})
            return _payload(await client.call_tool("get_view_state", {}))

    data = _run(_check())
    assert data["expanded"]["goal"] is False
    assert data["biomarker_order"][:3] == ["glucose", "heart_rate", "blood_pressure_systolic"]
    assert view_state_store.state.expanded["goal"] is False


def test_errors_reported(client):
    async def _check():
        async with client:
            bad_section = _payload(await client.call_tool(
                "set_section_expanded", {"section": "notes", "expanded": True}
            ))
            bad_order = _payload(await client.call_tool("set_biomarker_order", {"order": ["weight"]}))
            return bad_section, bad_order

    bad_section, bad_order = _run(_check())
    assert bad_section["status"] == "error"
    assert bad_order["status"] == "error"


class _ThreadRecordingDatabase(StateDatabase):
    def __init__(self, path):
        super().__init__(path)
        self.writer_threads: set[int] = set()

    def put(self, key, value):
        self.writer_threads.add(threading.get_ident())
        super().put(key, value)


def test_saves_run_on_the_connection_thread(memory_backend, tmp_path):
    db = _ThreadRecordingDatabase(str(tmp_path / "view.db"))
    store = ViewStateStore(db)
    client = Client(create_app(backend_override=memory_backend, view_state_override=store))

    async def _check():
        async with client:
            expanded = _payload(await client.call_tool(
                "set_section_expanded", {"section": "other", "expanded": False}
            ))
            ordered = _payload(await client.call_tool("set_biomarker_order", {"order": ["sleep"]}))
            return expanded, ordered

    expanded, ordered = _run(_check())
    assert expanded["status"] == "saved"
    assert ordered["biomarker_order"][0] == "sleep"
    assert db.writer_threads == {threading.get_ident()}
    db.close()


def test_reset_view_state(client, view_state_store):
    async def _check():
        async with client:
            await client.call_tool("set_section_expanded", {"section": "biomarker", "expanded": False})
            return _payload(await client.call_tool("reset_view_state", {}))

    data = _run(_check())
    assert data["status"] == "reset"
    assert data["expanded"]["biomarker"] is True
    assert view_state_store.state.expanded["biomarker"] is True
