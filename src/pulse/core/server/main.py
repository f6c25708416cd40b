"""Pulse server entry point — ``python -m pulse.core.server.main``."""

from __future__ import annotations

import logging
from ipaddress import ip_address

from pulse.core.config.settings import get_settings
from pulse.core.server.app import create_app


def _is_loopback_host(host: str) -> bool:
    if host in {"localhost"}:
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def run() -> None:
    """Start the Pulse Insights MCP server with Streamable HTTP transport."""
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.pulse_log_level.upper(), logging.INFO))

    logger = logging.getLogger(__name__)
    if not settings.pulse_allow_insecure_bind and not _is_loopback_host(settings.pulse_host):
        raise RuntimeError(
            "Refusing to bind Pulse server to a non-loopback host without an auth layer. "
            "Set PULSE_ALLOW_INSECURE_BIND=true to override (unsafe)."
        )
    logger.info(
        "Starting Pulse Insights server on %s:%d",
        settings.pulse_host,
        settings.pulse_port,
    )

    mcp = create_app()
    mcp.run(
        transport="streamable-http",
        host=settings.pulse_host,
        port=settings.pulse_port,
    )


if __name__ == "__main__":
    run()
