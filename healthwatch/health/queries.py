"""Read-side facade used by the control-plane API and CLI."""

from __future__ import annotations

import time
from collections.abc import Callable

from healthwatch.core.types import HealthCheckRecord, HealthStatus
from healthwatch.health.aggregator import (
    HealthMatrix,
    PlatformSummary,
    ServiceSummary,
    TenantSummary,
    build_health_matrix,
    build_platform_summary,
    build_service_summaries,
    build_tenant_summaries,
)
from healthwatch.health.registry import MonitorRegistry
from healthwatch.health.tenants import TenantSource
from healthwatch.health.tracker import ResultTracker


class HealthReader:
    """Loads the cache snapshot and tenant list, then delegates to the pure
    aggregator functions. Never runs probes."""

    def __init__(
        self,
        registry: MonitorRegistry,
        tracker: ResultTracker,
        tenant_source: TenantSource,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._tenant_source = tenant_source
        self._clock = clock

    async def status(self, service: str, tenant_id: str | None = None) -> HealthCheckRecord:
        """Cached record for the pair, or an ``unknown`` placeholder."""
        monitor = self._registry.get(service)
        scope = tenant_id if monitor is None or monitor.requires_tenant else None
        record = await self._tracker.get_cached_result(service, scope)
        if record is not None:
            return record
        return HealthCheckRecord(
            service=service,
            tenant_id=scope,
            tier=monitor.tier if monitor else None,
            status=HealthStatus.UNKNOWN,
            details={"cached": False} if monitor else {"lookup": "not_found"},
            checked_at=self._clock(),
        )

    async def tenant_summaries(self) -> list[TenantSummary]:
        tenants = await self._tenant_source.active_tenants()
        return build_tenant_summaries(self._registry, tenants, await self._tracker.snapshot())

    async def service_summaries(self) -> list[ServiceSummary]:
        tenants = await self._tenant_source.active_tenants()
        return build_service_summaries(self._registry, tenants, await self._tracker.snapshot())

    async def matrix(self) -> HealthMatrix:
        tenants = await self._tenant_source.active_tenants()
        return build_health_matrix(self._registry, tenants, await self._tracker.snapshot())

    async def platform_summary(self) -> PlatformSummary:
        return build_platform_summary(await self._tracker.snapshot(), self._clock())

    async def history(
        self, service: str, tenant_id: str | None = None, limit: int = 100,
    ) -> list[HealthCheckRecord]:
        return await self._tracker.get_history(service, tenant_id, limit)
