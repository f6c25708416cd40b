"""Application settings loaded from environment variables."""

from __future__ import annotations

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pulse Insights server configuration."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Server
    # Loopback by default; the server carries patient data and has no auth layer.
    pulse_host: str = "127.0.0.1"
    pulse_port: int = 8001
    pulse_log_level: str = "info"
    # Binding to a non-loopback host is refused unless this is set true.
    pulse_allow_insecure_bind: bool = False

    # Backend (empty URL -> in-memory sample backend)
    backend_url: str = ""
    backend_token: str = ""
    backend_timeout_seconds: float = 10.0

    # Interpretation
    history_limit: int = 500
    snapshot_window_hours: float = 24
    display_timezone: str = "UTC"
    warning_policy: Literal["absent", "from_normal"] = "absent"

    # View state (section expansion, biomarker order)
    view_state_path: str = "~/.pulse/view_state.db"


def get_settings() -> Settings:
    """Create and return a Settings instance."""
    return Settings()
