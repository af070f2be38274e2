"""Rollups over cached check records: tenant, service, matrix, platform.

All functions are pure over a cache snapshot and never run probes. Cells
with no cached record read as ``unknown``.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence

from pydantic import BaseModel, Field

from healthwatch.core.types import PLATFORM_KEY, HealthCheckRecord, HealthStatus, ServiceTier
from healthwatch.health.evaluator import aggregate, health_score
from healthwatch.health.registry import Monitor, MonitorRegistry
from healthwatch.health.store import CheckKey

Snapshot = Mapping[CheckKey, HealthCheckRecord]

_FAILING = (HealthStatus.DEGRADED, HealthStatus.UNHEALTHY)


class TenantSummary(BaseModel):
    tenant_id: str
    status: HealthStatus
    services: dict[str, HealthStatus] = Field(default_factory=dict)
    failing: list[str] = Field(default_factory=list)


class ServiceSummary(BaseModel):
    service: str
    tier: ServiceTier
    requires_tenant: bool
    status: HealthStatus
    avg_latency_ms: float | None = None
    failing_tenants: list[str] = Field(default_factory=list)
    checked: int = 0


class HealthMatrix(BaseModel):
    """Service x tenant grid of raw per-cell statuses with rollups."""

    services: list[str]
    tenants: list[str]
    cells: dict[str, dict[str, HealthStatus]]
    service_rollup: dict[str, HealthStatus]
    tenant_rollup: dict[str, HealthStatus]
    overall: HealthStatus


class PlatformSummary(BaseModel):
    status: HealthStatus
    total_checks: int
    healthy: int
    degraded: int
    unhealthy: int
    unknown: int
    health_score: int
    generated_at: float


def _cell_record(
    snapshot: Snapshot, monitor: Monitor, tenant_id: str,
) -> HealthCheckRecord | None:
    """Platform-wide monitors contribute their single record to every
    tenant's row."""
    key = (monitor.name, tenant_id if monitor.requires_tenant else PLATFORM_KEY)
    return snapshot.get(key)


def _cell_status(snapshot: Snapshot, monitor: Monitor, tenant_id: str) -> HealthStatus:
    record = _cell_record(snapshot, monitor, tenant_id)
    return record.status if record is not None else HealthStatus.UNKNOWN


def build_tenant_summaries(
    registry: MonitorRegistry,
    tenants: Sequence[str],
    snapshot: Snapshot,
) -> list[TenantSummary]:
    summaries: list[TenantSummary] = []
    for tenant_id in tenants:
        services = {m.name: _cell_status(snapshot, m, tenant_id) for m in registry}
        summaries.append(TenantSummary(
            tenant_id=tenant_id,
            status=aggregate(services.values()),
            services=services,
            failing=[name for name, status in services.items() if status in _FAILING],
        ))
    return summaries


def build_service_summaries(
    registry: MonitorRegistry,
    tenants: Sequence[str],
    snapshot: Snapshot,
) -> list[ServiceSummary]:
    summaries: list[ServiceSummary] = []
    for monitor in registry:
        scopes = list(tenants) if monitor.requires_tenant else [PLATFORM_KEY]
        records = {
            scope: snapshot.get((monitor.name, scope)) for scope in scopes
        }
        present = [r for r in records.values() if r is not None]
        statuses = [
            r.status if r is not None else HealthStatus.UNKNOWN
            for r in records.values()
        ]

        avg_latency: float | None = None
        if present:
            avg_latency = round(sum(r.latency_ms for r in present) / len(present), 2)

        failing_tenants = [
            scope for scope, r in records.items()
            if r is not None and r.status in _FAILING and monitor.requires_tenant
        ]

        summaries.append(ServiceSummary(
            service=monitor.name,
            tier=monitor.tier,
            requires_tenant=monitor.requires_tenant,
            status=aggregate(statuses),
            avg_latency_ms=avg_latency,
            failing_tenants=failing_tenants,
            checked=len(present),
        ))
    return summaries


def build_health_matrix(
    registry: MonitorRegistry,
    tenants: Sequence[str],
    snapshot: Snapshot,
) -> HealthMatrix:
    services = registry.names
    tenant_list = list(tenants)

    cells: dict[str, dict[str, HealthStatus]] = {}
    for monitor in registry:
        cells[monitor.name] = {t: _cell_status(snapshot, monitor, t) for t in tenant_list}

    # Platform-wide rows repeat one record, so their rollup is that record
    # even when there are no tenant columns.
    service_rollup = {
        m.name: (
            aggregate(cells[m.name].values())
            if m.requires_tenant
            else _cell_status(snapshot, m, PLATFORM_KEY)
        )
        for m in registry
    }
    tenant_rollup = {
        t: aggregate(cells[name][t] for name in services) for t in tenant_list
    }
    return HealthMatrix(
        services=services,
        tenants=tenant_list,
        cells=cells,
        service_rollup=service_rollup,
        tenant_rollup=tenant_rollup,
        overall=aggregate(service_rollup.values()),
    )


def build_platform_summary(
    snapshot: Snapshot,
    generated_at: float | None = None,
) -> PlatformSummary:
    counts = {s: 0 for s in HealthStatus}
    for record in snapshot.values():
        counts[record.status] += 1
    return PlatformSummary(
        status=aggregate(r.status for r in snapshot.values()),
        total_checks=len(snapshot),
        healthy=counts[HealthStatus.HEALTHY],
        degraded=counts[HealthStatus.DEGRADED],
        unhealthy=counts[HealthStatus.UNHEALTHY],
        unknown=counts[HealthStatus.UNKNOWN],
        health_score=health_score(
            counts[HealthStatus.HEALTHY],
            counts[HealthStatus.DEGRADED],
            counts[HealthStatus.UNHEALTHY],
        ),
        generated_at=time.time() if generated_at is None else generated_at,
    )
