#!/usr/bin/env python3
"""Service entrypoint — runs the health-check loop and the control-plane API.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file
    python scripts/run.py --config config/settings.yaml

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from healthwatch.core.config import load_settings
from healthwatch.core.exceptions import ConfigError
from healthwatch.core.logging import setup_logging
from healthwatch.monitor.factory import create_health_stack
from healthwatch.monitor.web_api import start_web_api

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Start the loop and API, then run until interrupted."""
    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    setup_logging(level=args.log_level)

    stack = create_health_stack(settings, config_path=args.config)
    if len(stack.registry) == 0:
        logger.error("no_monitors_configured")
        print(
            "No monitors configured. Add at least one entry under `monitors:` "
            "in config/settings.yaml.",
            file=sys.stderr,
        )
        return 1

    logger.info(
        "service_starting",
        monitors=len(stack.registry),
        tenants=len(settings.tenants),
        interval_secs=settings.scheduler.trigger_interval_secs,
    )

    # ── Start everything ─────────────────────────────────────────
    await stack.loop.start()

    web_runner = None
    dash = settings.dashboard
    if dash.enabled:
        web_runner = await start_web_api(
            stack,
            host=dash.host,
            port=dash.port,
            username=dash.username or None,
            password=dash.password.get_secret_value() or None,
        )

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("service_shutting_down")

    if web_runner is not None:
        await web_runner.cleanup()
    await stack.close()

    logger.info("service_stopped", runs=stack.loop.runs)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the platform health monitor.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
