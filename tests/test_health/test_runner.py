"""Tests for the single-check pipeline: grading, counters, escalation."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from healthwatch.core.exceptions import PersistenceError
from healthwatch.core.types import (
    Alert,
    AlertChannel,
    AlertSeverity,
    ChannelType,
    CheckResult,
    HealthStatus,
    ServiceTier,
)
from healthwatch.health.probes import Probe
from healthwatch.health.registry import Monitor
from healthwatch.health.runner import HealthCheckRunner
from healthwatch.health.store import MemoryHealthStore
from healthwatch.health.tracker import ResultTracker
from healthwatch.monitor.dispatcher import AlertDispatcher
from healthwatch.monitor.providers import StaticChannelProvider


# ── Helpers ─────────────────────────────────────────────────────


class _ScriptedProbe(Probe):
    """Returns the scripted statuses in order, repeating the last one."""

    def __init__(self, *statuses: HealthStatus | None, latency_ms: float = 10.0) -> None:
        self._statuses = list(statuses)
        self._latency_ms = latency_ms
        self.calls: list[str | None] = []

    async def check(self, tenant_id: str | None = None) -> CheckResult:
        self.calls.append(tenant_id)
        status = self._statuses.pop(0) if len(self._statuses) > 1 else self._statuses[0]
        return CheckResult(
            status=status,
            latency_ms=self._latency_ms,
            error=None if status == HealthStatus.HEALTHY else "connection refused",
        )


class _RaisingProbe(Probe):
    async def check(self, tenant_id: str | None = None) -> CheckResult:
        raise RuntimeError("driver exploded")


class _SlowProbe(Probe):
    async def check(self, tenant_id: str | None = None) -> CheckResult:
        await asyncio.sleep(5)
        return CheckResult(status=HealthStatus.HEALTHY)


class _FlakyAlertStore(MemoryHealthStore):
    """Rejects alert writes while ``fail_alerts`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_alerts = True

    async def create_alert(self, alert: Alert) -> Alert:
        if self.fail_alerts:
            raise RuntimeError("db down")
        return await super().create_alert(alert)


class _CommitThenRaiseStore(MemoryHealthStore):
    """Commits the Nth increment, then loses the reply once."""

    def __init__(self, fail_on: int) -> None:
        super().__init__()
        self._fail_on = fail_on
        self._calls = 0

    async def increment_failures(self, key: tuple[str, str]) -> int:
        self._calls += 1
        count = await super().increment_failures(key)
        if self._calls == self._fail_on:
            raise ConnectionResetError("reset after commit")
        return count


def _monitor(probe: Probe, name: str = "api", **kw: object) -> Monitor:
    return Monitor(name=name, tier=ServiceTier.CRITICAL, probe=probe, **kw)  # type: ignore[arg-type]


def _runner(
    store: MemoryHealthStore | None = None,
    dispatcher: object | None = None,
    **kw: object,
) -> tuple[HealthCheckRunner, MagicMock]:
    tracker = ResultTracker(store or MemoryHealthStore(), retry_delay_secs=0)
    if dispatcher is None:
        dispatcher = MagicMock()
        dispatcher.escalate = AsyncMock()
    runner = HealthCheckRunner(tracker, dispatcher, clock=lambda: 5000.0, **kw)  # type: ignore[arg-type]
    return runner, dispatcher  # type: ignore[return-value]


U = HealthStatus.UNHEALTHY
H = HealthStatus.HEALTHY


# ── execute_probe ──────────────────────────────────────────────


class TestExecuteProbe:
    async def test_unclassified_result_graded_by_latency(self) -> None:
        runner, _ = _runner()
        result = await runner.execute_probe(_monitor(_ScriptedProbe(None, latency_ms=250)))
        assert result.status == HealthStatus.DEGRADED

    async def test_monitor_latency_bounds_apply(self) -> None:
        runner, _ = _runner()
        monitor = _monitor(_ScriptedProbe(None, latency_ms=250), healthy_max_ms=300.0)
        result = await runner.execute_probe(monitor)
        assert result.status == HealthStatus.HEALTHY

    async def test_exception_becomes_unhealthy(self) -> None:
        runner, _ = _runner()
        result = await runner.execute_probe(_monitor(_RaisingProbe()))
        assert result.status == U
        assert result.error == "driver exploded"
        assert result.details["error_type"] == "RuntimeError"

    async def test_timeout_becomes_unhealthy(self) -> None:
        runner, _ = _runner(probe_timeout_secs=0.01)
        result = await runner.execute_probe(_monitor(_SlowProbe()))
        assert result.status == U
        assert result.details["error_type"] == "timeout"


# ── run_health_check ───────────────────────────────────────────


class TestRunHealthCheck:
    async def test_record_is_cached_and_recorded(self) -> None:
        store = MemoryHealthStore()
        runner, _ = _runner(store)
        record = await runner.run_health_check(_monitor(_ScriptedProbe(H)))

        assert record.status == H
        assert record.tier == ServiceTier.CRITICAL
        assert record.checked_at == 5000.0
        assert await store.get_cached(("api", "platform")) == record
        assert await store.get_history(("api", "platform")) == [record]

    async def test_tenant_scoped_record(self) -> None:
        store = MemoryHealthStore()
        runner, _ = _runner(store)
        probe = _ScriptedProbe(H)
        record = await runner.run_health_check(_monitor(probe, requires_tenant=True), "acme")

        assert probe.calls == ["acme"]
        assert record.tenant_id == "acme"
        assert await store.get_cached(("api", "acme")) is not None

    async def test_alert_fires_once_per_crossing(self) -> None:
        runner, dispatcher = _runner()
        monitor = _monitor(_ScriptedProbe(U))

        for expected in (1, 2):
            record = await runner.run_health_check(monitor)
            assert record.consecutive_failures == expected
        dispatcher.escalate.assert_not_awaited()

        third = await runner.run_health_check(monitor)
        assert third.consecutive_failures == 3
        dispatcher.escalate.assert_awaited_once_with(third, 3)

        await runner.run_health_check(monitor)
        await runner.run_health_check(monitor)
        assert dispatcher.escalate.await_count == 1

    async def test_recovery_rearms_alert(self) -> None:
        runner, dispatcher = _runner()
        monitor = _monitor(_ScriptedProbe(U, U, U, H, U, U, U))

        records = [await runner.run_health_check(monitor) for _ in range(7)]

        assert [r.consecutive_failures for r in records] == [1, 2, 3, 0, 1, 2, 3]
        assert dispatcher.escalate.await_count == 2

    async def test_degraded_resets_streak(self) -> None:
        runner, dispatcher = _runner()
        monitor = _monitor(_ScriptedProbe(U, U, HealthStatus.DEGRADED, U, U))

        records = [await runner.run_health_check(monitor) for _ in range(5)]
        assert [r.consecutive_failures for r in records] == [1, 2, 0, 1, 2]
        dispatcher.escalate.assert_not_awaited()

    async def test_custom_threshold(self) -> None:
        runner, dispatcher = _runner(escalation_threshold=1)
        await runner.run_health_check(_monitor(_ScriptedProbe(U)))
        dispatcher.escalate.assert_awaited_once()
        assert runner.escalation_threshold == 1

    async def test_streaks_isolated_per_tenant(self) -> None:
        runner, dispatcher = _runner()
        monitor = _monitor(_ScriptedProbe(U), requires_tenant=True)

        for _ in range(3):
            await runner.run_health_check(monitor, "acme")
        other = await runner.run_health_check(monitor, "globex")

        assert other.consecutive_failures == 1
        dispatcher.escalate.assert_awaited_once()
        escalated = dispatcher.escalate.await_args.args[0]
        assert escalated.tenant_id == "acme"

    async def test_counter_write_failure_propagates(self) -> None:
        store = MemoryHealthStore()
        store.increment_failures = AsyncMock(side_effect=RuntimeError("down"))  # type: ignore[method-assign]
        runner, _ = _runner(store)
        with pytest.raises(PersistenceError):
            await runner.run_health_check(_monitor(_ScriptedProbe(U)))

    async def test_lost_increment_reply_still_crosses(self) -> None:
        runner, dispatcher = _runner(_CommitThenRaiseStore(fail_on=3))
        monitor = _monitor(_ScriptedProbe(U))

        records = [await runner.run_health_check(monitor) for _ in range(4)]

        assert [r.consecutive_failures for r in records] == [1, 2, 3, 4]
        dispatcher.escalate.assert_awaited_once()

    async def test_check_runs_with_bound_log_context(self) -> None:
        seen: list[dict[str, object]] = []

        class _ContextProbe(Probe):
            async def check(self, tenant_id: str | None = None) -> CheckResult:
                seen.append(structlog.contextvars.get_contextvars())
                return CheckResult(status=H)

        runner, _ = _runner()
        await runner.run_health_check(_monitor(_ContextProbe(), requires_tenant=True), "acme")
        await runner.run_health_check(_monitor(_ContextProbe(), name="queue"))

        assert seen == [
            {"service": "api", "tenant": "acme"},
            {"service": "queue", "tenant": "platform"},
        ]
        assert structlog.contextvars.get_contextvars() == {}


class TestEscalationFailure:
    async def test_alert_created_once_store_recovers(self) -> None:
        store = _FlakyAlertStore()
        dispatcher = AlertDispatcher(
            store,
            StaticChannelProvider([AlertChannel(type=ChannelType.DASHBOARD)]),
            retry_delay_secs=0,
        )
        runner, _ = _runner(store, dispatcher)
        monitor = _monitor(_ScriptedProbe(U))

        await runner.run_health_check(monitor)
        await runner.run_health_check(monitor)
        with pytest.raises(PersistenceError):
            await runner.run_health_check(monitor)
        assert await store.get_failures(("api", "platform")) == 2
        assert await store.list_alerts() == []

        store.fail_alerts = False
        for _ in range(5):
            await runner.run_health_check(monitor)

        alerts = await store.list_alerts()
        assert len(alerts) == 1
        assert alerts[0].current_value == 3
        assert await store.get_failures(("api", "platform")) == 7
        await dispatcher.close()

    async def test_failed_escalation_retried_on_next_failure(self) -> None:
        runner, dispatcher = _runner()
        dispatcher.escalate = AsyncMock(side_effect=[PersistenceError("db down"), None])
        monitor = _monitor(_ScriptedProbe(U))

        await runner.run_health_check(monitor)
        await runner.run_health_check(monitor)
        with pytest.raises(PersistenceError):
            await runner.run_health_check(monitor)
        fourth = await runner.run_health_check(monitor)

        assert fourth.consecutive_failures == 3
        assert dispatcher.escalate.await_count == 2


class TestEscalationEndToEnd:
    async def test_alert_persisted_with_failure_details(self) -> None:
        store = MemoryHealthStore()
        dispatcher = AlertDispatcher(
            store,
            StaticChannelProvider([AlertChannel(type=ChannelType.DASHBOARD)]),
            retry_delay_secs=0,
            clock=lambda: 6000.0,
        )
        runner, _ = _runner(store, dispatcher)
        monitor = _monitor(_ScriptedProbe(U))

        for _ in range(3):
            await runner.run_health_check(monitor)

        alerts = await store.list_alerts()
        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.severity == AlertSeverity.P1
        assert alert.service == "api"
        assert alert.tenant_id is None
        assert alert.title == "api is unhealthy"
        assert "3 consecutive health checks" in alert.message
        assert "connection refused" in alert.message
        assert alert.metric == "consecutive_failures"
        assert alert.current_value == 3
        assert alert.threshold_value == 3
        assert alert.delivery_status == {ChannelType.DASHBOARD: "sent"}
        await dispatcher.close()
