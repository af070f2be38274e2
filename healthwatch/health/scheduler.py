"""Tiered scheduler — decides which tiers are due and runs their checks.

Each tier runs on its own fixed cadence (see ``ServiceTier.interval_secs``).
Due-ness is computed, never stored: a tier is due when its representative
service has never run or last ran at least one interval ago.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable

import structlog
from pydantic import BaseModel, Field

from healthwatch.core.types import HealthCheckRecord, HealthStatus, ServiceTier
from healthwatch.health.evaluator import aggregate
from healthwatch.health.registry import Monitor, MonitorRegistry, not_found_result
from healthwatch.health.runner import HealthCheckRunner
from healthwatch.health.tenants import TenantSource
from healthwatch.health.tracker import ResultTracker

logger = structlog.stdlib.get_logger()

_FAILING = (HealthStatus.DEGRADED, HealthStatus.UNHEALTHY)


class ScheduledRunReport(BaseModel):
    """Outcome of one scheduled or forced run."""

    tiers_run: list[ServiceTier] = Field(default_factory=list)
    records: list[HealthCheckRecord] = Field(default_factory=list)
    errors: int = 0
    started_at: float
    duration_ms: float = 0.0

    def status_counts(self) -> dict[str, int]:
        counts = {s.value: 0 for s in HealthStatus}
        for record in self.records:
            counts[record.status.value] += 1
        return counts


class TenantHealthReport(BaseModel):
    """On-demand diagnostics for a single tenant."""

    tenant_id: str
    status: HealthStatus
    records: list[HealthCheckRecord] = Field(default_factory=list)
    failing: list[str] = Field(default_factory=list)
    checked_at: float


class TieredScheduler:
    """Runs due tiers, the whole catalog, or one tenant through the same
    per-check pipeline.

    Fan-out is bounded by a semaphore shared by every run on this
    scheduler, so an overlapping "refresh now" cannot double the load on
    downstream services.

    Usage::

        scheduler = TieredScheduler(registry, tracker, runner, tenants)
        report = await scheduler.run_scheduled_health_checks()
    """

    def __init__(
        self,
        registry: MonitorRegistry,
        tracker: ResultTracker,
        runner: HealthCheckRunner,
        tenant_source: TenantSource,
        max_concurrency: int = 25,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._runner = runner
        self._tenant_source = tenant_source
        self._semaphore = asyncio.Semaphore(max(max_concurrency, 1))
        self._clock = clock

    @property
    def registry(self) -> MonitorRegistry:
        return self._registry

    # ── Due-ness ────────────────────────────────────────────────

    async def get_tiers_to_run(self, now: float | None = None) -> list[ServiceTier]:
        now = self._clock() if now is None else now
        due: list[ServiceTier] = []
        for tier in ServiceTier:
            representative = self._registry.representative(tier)
            if representative is None:
                continue
            try:
                last_run = await self._tracker.get_last_run_time(representative.name)
            except Exception:
                # Unreadable bookkeeping must not silently stop monitoring.
                logger.exception("last_run_read_failed", tier=tier.value)
                last_run = None
            if last_run is None or now - last_run >= tier.interval_secs:
                due.append(tier)
        return due

    # ── Entry points ────────────────────────────────────────────

    async def run_tier_health_checks(self, tier: ServiceTier) -> list[HealthCheckRecord]:
        monitors = self._registry.list_by_tier(tier)
        pairs: list[tuple[Monitor, str | None]] = [
            (m, None) for m in monitors if not m.requires_tenant
        ]
        tenant_scoped = [m for m in monitors if m.requires_tenant]
        if tenant_scoped:
            tenants = await self._load_tenants()
            pairs.extend((m, t) for m in tenant_scoped for t in tenants)

        records = await self._run_batch(pairs)
        logger.info(
            "tier_checks_completed",
            tier=tier.value,
            checks=len(records),
            unhealthy=sum(1 for r in records if r.status == HealthStatus.UNHEALTHY),
        )
        return records

    async def run_scheduled_health_checks(self) -> ScheduledRunReport:
        """Run every due tier; intended to be triggered about once a minute."""
        started_at = self._clock()
        tiers = await self.get_tiers_to_run(now=started_at)
        if not tiers:
            logger.debug("no_tiers_due")
            return ScheduledRunReport(started_at=started_at)
        return await self._run_tiers(tiers, started_at)

    async def run_all_health_checks(self) -> ScheduledRunReport:
        """Force-run every tier regardless of due time."""
        started_at = self._clock()
        tiers = [t for t in ServiceTier if self._registry.list_by_tier(t)]
        return await self._run_tiers(tiers, started_at)

    async def run_tenant_health_checks(self, tenant_id: str) -> TenantHealthReport:
        """Every tenant-scoped monitor for *tenant_id* plus every
        platform-wide monitor once."""
        pairs: list[tuple[Monitor, str | None]] = [
            (m, tenant_id) for m in self._registry.list_tenant_scoped()
        ]
        pairs.extend((m, None) for m in self._registry.list_platform())

        records = await self._run_batch(pairs)
        return TenantHealthReport(
            tenant_id=tenant_id,
            status=aggregate(r.status for r in records),
            records=records,
            failing=sorted({r.service for r in records if r.status in _FAILING}),
            checked_at=self._clock(),
        )

    async def check_service(self, service: str, tenant_id: str | None = None) -> HealthCheckRecord:
        """Run one named monitor now. Unknown names yield an ``unknown``
        record instead of raising."""
        monitor = self._registry.get(service)
        if monitor is None:
            result = not_found_result(service)
            return HealthCheckRecord(
                service=service,
                tenant_id=tenant_id,
                status=HealthStatus.UNKNOWN,
                details=result.details,
                error=result.error,
                checked_at=self._clock(),
            )
        if monitor.requires_tenant and not tenant_id:
            return HealthCheckRecord(
                service=service,
                tier=monitor.tier,
                status=HealthStatus.UNKNOWN,
                details={"lookup": "tenant_required", "service": service},
                error=f"'{service}' requires a tenant id",
                checked_at=self._clock(),
            )
        scope = tenant_id if monitor.requires_tenant else None
        return await self._guarded(monitor, scope)

    # ── Internal ────────────────────────────────────────────────

    async def _run_tiers(
        self, tiers: list[ServiceTier], started_at: float,
    ) -> ScheduledRunReport:
        logger.info("health_run_started", tiers=[t.value for t in tiers])
        batches = await asyncio.gather(*(self.run_tier_health_checks(t) for t in tiers))
        records = [r for batch in batches for r in batch]

        # Stamp with the start time so a trigger firing every interval never
        # sees a tier as a few seconds short of due.
        await self._stamp_last_run(
            (m for t in tiers for m in self._registry.list_by_tier(t)),
            started_at,
        )

        report = ScheduledRunReport(
            tiers_run=tiers,
            records=records,
            errors=sum(1 for r in records if "pipeline_error" in r.details),
            started_at=started_at,
            duration_ms=round((self._clock() - started_at) * 1000, 2),
        )
        logger.info(
            "health_run_completed",
            tiers=[t.value for t in tiers],
            checks=len(records),
            errors=report.errors,
            duration_ms=report.duration_ms,
            **report.status_counts(),
        )
        return report

    async def _stamp_last_run(self, monitors: Iterable[Monitor], timestamp: float) -> None:
        for monitor in monitors:
            try:
                await self._tracker.set_last_run_time(monitor.name, timestamp)
            except Exception:
                logger.exception("last_run_write_failed", service=monitor.name)

    async def _load_tenants(self) -> list[str]:
        try:
            return await self._tenant_source.active_tenants()
        except Exception:
            logger.exception("tenant_source_failed")
            return []

    async def _run_batch(
        self, pairs: list[tuple[Monitor, str | None]],
    ) -> list[HealthCheckRecord]:
        return list(await asyncio.gather(*(self._guarded(m, t) for m, t in pairs)))

    async def _guarded(self, monitor: Monitor, tenant_id: str | None) -> HealthCheckRecord:
        """Run one check; any pipeline failure becomes an ``unknown`` record
        so sibling checks are unaffected."""
        async with self._semaphore:
            try:
                return await self._runner.run_health_check(monitor, tenant_id)
            except Exception as exc:
                logger.exception(
                    "health_check_pipeline_error",
                    service=monitor.name,
                    tenant=tenant_id,
                )
                return HealthCheckRecord(
                    service=monitor.name,
                    tenant_id=tenant_id,
                    tier=monitor.tier,
                    status=HealthStatus.UNKNOWN,
                    details={"pipeline_error": type(exc).__name__},
                    error=str(exc) or type(exc).__name__,
                    checked_at=self._clock(),
                )
