"""Monitor registry — the static catalog of probes and their tiers."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import httpx
import structlog

from healthwatch.core.config import MonitorDefinition
from healthwatch.core.types import CheckResult, HealthStatus, ServiceTier
from healthwatch.health.evaluator import DEFAULT_DEGRADED_MAX_MS, DEFAULT_HEALTHY_MAX_MS
from healthwatch.health.probes import HttpProbe, Probe, StatusPageProbe

logger = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class Monitor:
    """Immutable registration of one named probe.

    ``healthy_max_ms``/``degraded_max_ms`` grade results the probe left
    unclassified.
    """

    name: str
    tier: ServiceTier
    probe: Probe
    requires_tenant: bool = False
    healthy_max_ms: float = DEFAULT_HEALTHY_MAX_MS
    degraded_max_ms: float = DEFAULT_DEGRADED_MAX_MS


class MonitorRegistry:
    """Read-only ``name -> Monitor`` mapping built once at startup.

    There is no runtime registration API; unknown names resolve to
    ``None`` (see :func:`not_found_result`) rather than raising.
    """

    def __init__(self, monitors: Iterable[Monitor]) -> None:
        self._monitors: dict[str, Monitor] = {}
        for monitor in monitors:
            if monitor.name in self._monitors:
                raise ValueError(f"duplicate monitor name: {monitor.name}")
            self._monitors[monitor.name] = monitor

    def __len__(self) -> int:
        return len(self._monitors)

    def __iter__(self) -> Iterator[Monitor]:
        return iter(self._monitors.values())

    def __contains__(self, name: object) -> bool:
        return name in self._monitors

    @property
    def names(self) -> list[str]:
        return list(self._monitors)

    def get(self, name: str) -> Monitor | None:
        return self._monitors.get(name)

    def list_by_tier(self, tier: ServiceTier) -> list[Monitor]:
        return [m for m in self._monitors.values() if m.tier == tier]

    def list_platform(self) -> list[Monitor]:
        return [m for m in self._monitors.values() if not m.requires_tenant]

    def list_tenant_scoped(self) -> list[Monitor]:
        return [m for m in self._monitors.values() if m.requires_tenant]

    def representative(self, tier: ServiceTier) -> Monitor | None:
        """First registered monitor of *tier*, whose last-run time stands in
        for the whole tier."""
        for monitor in self._monitors.values():
            if monitor.tier == tier:
                return monitor
        return None

    async def close(self) -> None:
        """Close every probe, e.g. their HTTP clients."""
        for monitor in self._monitors.values():
            try:
                await monitor.probe.close()
            except Exception:
                logger.exception("probe_close_error", service=monitor.name)


def not_found_result(name: str) -> CheckResult:
    """Result reported for a lookup of an unregistered monitor name."""
    return CheckResult(
        status=HealthStatus.UNKNOWN,
        details={"lookup": "not_found", "service": name},
        error=f"no monitor registered under '{name}'",
    )


def build_monitors(
    definitions: Iterable[MonitorDefinition],
    client: httpx.AsyncClient | None = None,
) -> list[Monitor]:
    """Turn declarative monitor definitions into registrations."""
    monitors: list[Monitor] = []
    for definition in definitions:
        probe: Probe
        if definition.kind == "statuspage":
            probe = StatusPageProbe(
                definition.url,
                timeout_secs=definition.timeout_secs,
                client=client,
            )
        else:
            probe = HttpProbe(
                definition.url,
                method=definition.method,
                headers=definition.headers,
                expected_status=definition.expected_status,
                timeout_secs=definition.timeout_secs,
                client=client,
            )
        monitors.append(Monitor(
            name=definition.name,
            tier=definition.tier,
            probe=probe,
            requires_tenant=definition.requires_tenant,
            healthy_max_ms=definition.healthy_max_ms,
            degraded_max_ms=definition.degraded_max_ms,
        ))
    return monitors
