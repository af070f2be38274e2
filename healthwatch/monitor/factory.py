"""Convenience factory for wiring the health-monitoring stack."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from healthwatch.core.config import Settings
from healthwatch.health.loop import HealthCheckLoop
from healthwatch.health.queries import HealthReader
from healthwatch.health.registry import Monitor, MonitorRegistry, build_monitors
from healthwatch.health.runner import HealthCheckRunner
from healthwatch.health.scheduler import TieredScheduler
from healthwatch.health.store import HealthStore, MemoryHealthStore
from healthwatch.health.tenants import StaticTenantSource, TenantSource
from healthwatch.health.tracker import ResultTracker
from healthwatch.monitor.dispatcher import AlertDispatcher
from healthwatch.monitor.providers import ChannelConfigProvider, SettingsChannelProvider


@dataclass
class HealthStack:
    """Every long-lived component, wired together."""

    registry: MonitorRegistry
    store: HealthStore
    tracker: ResultTracker
    dispatcher: AlertDispatcher
    runner: HealthCheckRunner
    scheduler: TieredScheduler
    reader: HealthReader
    loop: HealthCheckLoop
    tenant_source: TenantSource

    async def close(self) -> None:
        await self.loop.stop()
        await self.dispatcher.close()
        await self.registry.close()


def create_health_stack(
    settings: Settings,
    extra_monitors: Iterable[Monitor] = (),
    tenant_source: TenantSource | None = None,
    store: HealthStore | None = None,
    channel_provider: ChannelConfigProvider | None = None,
    config_path: str | Path | None = None,
) -> HealthStack:
    """Build registry, store, dispatcher, scheduler and read side from config.

    *extra_monitors* are code-defined probes registered alongside the
    declarative ``settings.monitors``.
    """
    sched = settings.scheduler

    registry = MonitorRegistry([*build_monitors(settings.monitors), *extra_monitors])
    store = store or MemoryHealthStore(history_limit=sched.history_limit)
    tenant_source = tenant_source or StaticTenantSource(settings.tenants)

    tracker = ResultTracker(
        store,
        cache_ttl_factor=sched.cache_ttl_factor,
        retries=sched.persistence_retries,
        retry_delay_secs=sched.retry_delay_secs,
    )
    dispatcher = AlertDispatcher(
        store,
        channel_provider or SettingsChannelProvider(config_path),
        source=settings.alerts.source,
        retries=sched.persistence_retries,
        retry_delay_secs=sched.retry_delay_secs,
    )
    runner = HealthCheckRunner(
        tracker,
        dispatcher,
        escalation_threshold=sched.escalation_threshold,
        probe_timeout_secs=sched.probe_timeout_secs,
    )
    scheduler = TieredScheduler(
        registry,
        tracker,
        runner,
        tenant_source,
        max_concurrency=sched.max_concurrency,
    )
    reader = HealthReader(registry, tracker, tenant_source)
    loop = HealthCheckLoop(scheduler, interval_secs=sched.trigger_interval_secs)

    return HealthStack(
        registry=registry,
        store=store,
        tracker=tracker,
        dispatcher=dispatcher,
        runner=runner,
        scheduler=scheduler,
        reader=reader,
        loop=loop,
        tenant_source=tenant_source,
    )
