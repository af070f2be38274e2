"""Single-check pipeline: probe, track, cache, record, escalate."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from healthwatch.core.exceptions import PersistenceError
from healthwatch.core.logging import check_context
from healthwatch.core.types import CheckResult, HealthCheckRecord, HealthStatus
from healthwatch.health.evaluator import evaluate_latency
from healthwatch.health.registry import Monitor
from healthwatch.health.tracker import ResultTracker
from healthwatch.monitor.dispatcher import AlertDispatcher

logger = structlog.stdlib.get_logger()


class HealthCheckRunner:
    """Runs one (monitor, tenant) check through the full pipeline.

    Order per check: execute probe, record outcome on the failure counter,
    cache the result, append history, then escalate when the counter
    crosses ``escalation_threshold`` from below. Sustained failure above
    the threshold does not alert again; a single non-unhealthy result
    re-arms the crossing. If the alert cannot be persisted the counter is
    rolled back below the threshold so the next failure escalates again.
    """

    def __init__(
        self,
        tracker: ResultTracker,
        dispatcher: AlertDispatcher,
        escalation_threshold: int = 3,
        probe_timeout_secs: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tracker = tracker
        self._dispatcher = dispatcher
        self._threshold = escalation_threshold
        self._probe_timeout_secs = probe_timeout_secs
        self._clock = clock

    @property
    def escalation_threshold(self) -> int:
        return self._threshold

    async def execute_probe(self, monitor: Monitor, tenant_id: str | None = None) -> CheckResult:
        """Invoke the probe, converting exceptions and timeouts to results."""
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                monitor.probe.check(tenant_id),
                timeout=self._probe_timeout_secs,
            )
        except TimeoutError:
            return CheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=round((time.monotonic() - start) * 1000, 2),
                details={"error_type": "timeout"},
                error=f"probe timed out after {self._probe_timeout_secs}s",
            )
        except Exception as exc:
            logger.warning(
                "probe_raised",
                service=monitor.name,
                tenant=tenant_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return CheckResult(
                status=HealthStatus.UNHEALTHY,
                latency_ms=round((time.monotonic() - start) * 1000, 2),
                details={"error_type": type(exc).__name__},
                error=str(exc) or type(exc).__name__,
            )

        if result.status is None:
            result = result.model_copy(update={
                "status": evaluate_latency(
                    result.latency_ms, monitor.healthy_max_ms, monitor.degraded_max_ms,
                ),
            })
        return result

    async def run_health_check(
        self, monitor: Monitor, tenant_id: str | None = None,
    ) -> HealthCheckRecord:
        with check_context(monitor.name, tenant_id):
            return await self._run(monitor, tenant_id)

    async def _run(self, monitor: Monitor, tenant_id: str | None) -> HealthCheckRecord:
        result = await self.execute_probe(monitor, tenant_id)
        status = result.status or HealthStatus.UNKNOWN

        previous, failures = await self._tracker.record_outcome(monitor.name, tenant_id, status)

        record = HealthCheckRecord(
            service=monitor.name,
            tenant_id=tenant_id,
            tier=monitor.tier,
            status=status,
            latency_ms=result.latency_ms,
            details=result.details,
            error=result.error,
            checked_at=self._clock(),
            consecutive_failures=failures,
        )

        await self._tracker.cache_result(monitor.name, tenant_id, monitor.tier, record)
        await self._tracker.append_history(monitor.name, tenant_id, record)

        logger.debug(
            "health_check_completed",
            status=status.value,
            latency_ms=result.latency_ms,
            consecutive_failures=failures,
        )

        if failures >= self._threshold and previous < self._threshold:
            logger.warning("failure_threshold_crossed", consecutive_failures=failures)
            try:
                await self._dispatcher.escalate(record, self._threshold)
            except PersistenceError:
                logger.error("escalation_failed", rollback_to=previous)
                await self._tracker.rollback_failures(monitor.name, tenant_id, previous)
                raise

        return record
