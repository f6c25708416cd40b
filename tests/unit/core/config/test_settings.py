"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from pulse.core.config.settings import Settings, get_settings


def test_defaults(monkeypatch):
    for var in ("BACKEND_URL", "VIEW_STATE_PATH", "DISPLAY_TIMEZONE", "WARNING_POLICY"):
        monkeypatch.delenv(var, raising=False)
    settings = Settings(_env_file=None)
    assert settings.pulse_host == "127.0.0.1"
    assert settings.pulse_port == 8001
    assert settings.pulse_allow_insecure_bind is False
    assert settings.backend_url == ""
    assert settings.history_limit == 500
    assert settings.snapshot_window_hours == 24
    assert settings.warning_policy == "absent"
    assert settings.view_state_path == "~/.pulse/view_state.db"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("BACKEND_URL", "https://pulse.test")
    monkeypatch.setenv("SNAPSHOT_WINDOW_HOURS", "36")
    monkeypatch.setenv("WARNING_POLICY", "from_normal")
    monkeypatch.setenv("PULSE_ALLOW_INSECURE_BIND", "true")
    settings = get_settings()
    assert settings.backend_url == "https://pulse.test"
    assert settings.snapshot_window_hours == 36
    assert settings.warning_policy == "from_normal"
    assert settings.pulse_allow_insecure_bind is True


def test_invalid_warning_policy(monkeypatch):
    monkeypatch.setenv("WARNING_POLICY", "sometimes")
    with pytest.raises(ValidationError):
        Settings(_env_file=None)
