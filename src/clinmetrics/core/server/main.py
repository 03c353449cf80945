"""Clinmetrics server entry point (``clinmetrics-server`` / ``python -m clinmetrics.core.server.main``)."""

from __future__ import annotations

import argparse
import logging
from ipaddress import ip_address
from typing import Sequence

from clinmetrics.core.config.settings import Settings, get_settings
from clinmetrics.core.server.app import SERVER_NAME, SERVER_VERSION, create_app

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _is_loopback_host(host: str) -> bool:
    if host == "localhost":
        return True
    try:
        return ip_address(host).is_loopback
    except ValueError:
        return False


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="clinmetrics-server",
        description=f"{SERVER_NAME} MCP server {SERVER_VERSION}",
    )
    parser.add_argument("--transport", choices=("streamable-http", "stdio"))
    parser.add_argument("--host", help="bind address (HTTP transport only)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--log-level", choices=("debug", "info", "warning", "error"))
    return parser.parse_args(argv)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    overrides = {
        "clinmetrics_transport": args.transport,
        "clinmetrics_host": args.host,
        "clinmetrics_port": args.port,
        "clinmetrics_log_level": args.log_level,
    }
    return settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})


def check_bind(settings: Settings) -> None:
    """Refuse a non-loopback HTTP bind unless explicitly allowed.

    Raises:
        RuntimeError: If the bind would expose the server without auth.
    """
    if settings.clinmetrics_transport != "streamable-http":
        return
    if settings.clinmetrics_allow_insecure_bind or _is_loopback_host(settings.clinmetrics_host):
        return
    raise RuntimeError(
        f"Refusing to bind the biometrics server to non-loopback host "
        f"{settings.clinmetrics_host!r} without an auth layer. "
        "Set CLINMETRICS_ALLOW_INSECURE_BIND=true to override (unsafe)."
    )


def run(argv: Sequence[str] | None = None) -> None:
    """Start the Clinmetrics MCP server."""
    settings = _apply_overrides(get_settings(), _parse_args(argv))
    logging.basicConfig(
        level=getattr(logging, settings.clinmetrics_log_level.upper()),
        format=LOG_FORMAT,
    )
    logger = logging.getLogger(__name__)

    check_bind(settings)
    mcp = create_app()

    if settings.clinmetrics_transport == "stdio":
        logger.info("Starting %s %s on stdio", SERVER_NAME, SERVER_VERSION)
        mcp.run(transport="stdio")
        return

    logger.info(
        "Starting %s %s on %s:%d",
        SERVER_NAME,
        SERVER_VERSION,
        settings.clinmetrics_host,
        settings.clinmetrics_port,
    )
    mcp.run(
        transport="streamable-http",
        host=settings.clinmetrics_host,
        port=settings.clinmetrics_port,
    )


if __name__ == "__main__":
    run()
