#!/usr/bin/env python3
"""One-shot health check — run every check now and print a JSON report.

Usage::

    # Check the whole catalog
    python scripts/check.py

    # Check a single tenant
    python scripts/check.py --tenant acme

    # Custom config file
    python scripts/check.py --config config/settings.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from healthwatch.core.config import load_settings
from healthwatch.core.exceptions import ConfigError
from healthwatch.core.logging import setup_logging
from healthwatch.core.types import HealthStatus
from healthwatch.monitor.factory import create_health_stack


async def run_check(args: argparse.Namespace) -> int:
    """Execute a single forced run and print the result."""
    try:
        settings = load_settings(args.config)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    setup_logging(level=args.log_level or "WARNING")

    stack = create_health_stack(settings, config_path=args.config)
    try:
        if args.tenant:
            tenant_report = await stack.scheduler.run_tenant_health_checks(args.tenant)
            payload = tenant_report.model_dump(mode="json")
            status = tenant_report.status
        else:
            await stack.scheduler.run_all_health_checks()
            summary = await stack.reader.platform_summary()
            payload = {
                "platform": summary.model_dump(mode="json"),
                "matrix": (await stack.reader.matrix()).model_dump(mode="json"),
            }
            status = summary.status
    finally:
        await stack.close()

    print(json.dumps(payload, indent=2))
    return 0 if status == HealthStatus.HEALTHY else 2


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run all health checks once and print a JSON report.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--tenant",
        default=None,
        help="Only check this tenant",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override (default: WARNING)",
    )
    args = parser.parse_args()

    code = asyncio.run(run_check(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
