"""Alert dispatcher — creates escalation alerts and fans them out to channels."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import aiohttp
import structlog

from healthwatch.core.exceptions import (
    AlertNotFoundError,
    AlertTransitionError,
    PersistenceError,
)
from healthwatch.core.types import (
    Alert,
    AlertChannel,
    AlertSeverity,
    AlertStatus,
    ChannelType,
    DeliveryStatus,
    HealthCheckRecord,
)
from healthwatch.health.evaluator import to_severity, verdict_for_status
from healthwatch.health.store import HealthStore
from healthwatch.health.tracker import with_retries
from healthwatch.monitor.channels import NotificationChannel
from healthwatch.monitor.providers import ChannelConfigProvider, build_channel

# Dedicated structured logger for the alert audit trail.
alert_logger = structlog.get_logger("alert_log")

logger = structlog.get_logger(__name__)

ChannelFactory = Callable[[AlertChannel], NotificationChannel]


class AlertDispatcher:
    """Persists alerts and delivers them to every matching channel.

    - Channels are re-read from the provider on every dispatch.
    - All matching channels are attempted concurrently; a failing channel
      is recorded as ``failed`` and never blocks its siblings.
    - Delivery outcomes are written back onto the alert.
    """

    def __init__(
        self,
        store: HealthStore,
        channel_provider: ChannelConfigProvider,
        channel_factory: ChannelFactory | None = None,
        source: str = "platform-health",
        retries: int = 3,
        retry_delay_secs: float = 0.2,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._provider = channel_provider
        self._channel_factory = channel_factory or self._build_channel
        self._source = source
        self._retries = retries
        self._retry_delay_secs = retry_delay_secs
        self._clock = clock
        self._session: aiohttp.ClientSession | None = None

    # ── Escalation ──────────────────────────────────────────────

    async def escalate(
        self,
        record: HealthCheckRecord,
        threshold: int,
        severity: AlertSeverity | None = None,
    ) -> Alert:
        """Create an alert for a failure streak that crossed *threshold*
        and dispatch it immediately."""
        if severity is None:
            severity = to_severity(verdict_for_status(record.status)) or AlertSeverity.P3

        streak = record.consecutive_failures
        scope = f" for tenant {record.tenant_id}" if record.tenant_id else ""
        title = f"{record.service} is {record.status.value}{scope}"
        message = (
            f"{record.service} has failed {streak} consecutive health checks{scope}. "
            f"Last error: {record.error or 'none reported'}"
        )

        metric = record.details.get("metric")
        if metric:
            current_value = record.details.get("value")
            threshold_value = record.details.get("threshold")
        else:
            metric = "consecutive_failures"
            current_value = float(streak)
            threshold_value = float(threshold)

        alert = Alert(
            severity=severity,
            source=self._source,
            service=record.service,
            tenant_id=record.tenant_id,
            metric=metric,
            current_value=current_value,
            threshold_value=threshold_value,
            title=title,
            message=message,
            metadata={
                "consecutive_failures": streak,
                "tier": record.tier.value if record.tier else None,
                "latency_ms": record.latency_ms,
                "details": record.details,
            },
            created_at=self._clock(),
        )

        await with_retries(
            lambda: self._store.create_alert(alert),
            what="create_alert",
            attempts=self._retries,
            delay_secs=self._retry_delay_secs,
            service=record.service,
        )
        alert_logger.info("alert_escalated", **alert.model_dump(mode="json"))

        await self.dispatch_alert(alert)
        return alert

    # ── Fan-out ─────────────────────────────────────────────────

    async def dispatch_alert(self, alert: Alert) -> dict[ChannelType, DeliveryStatus]:
        """Send *alert* to every enabled channel accepting its severity.

        Never raises; returns the per-channel outcome map.
        """
        try:
            # Providers may read config from disk; keep that off the event loop.
            configs = await asyncio.to_thread(self._provider.channels)
            targets = [c for c in configs if c.accepts(alert.severity)]
        except Exception:
            logger.exception("channel_config_error", alert_id=alert.id)
            targets = []

        alert.delivery_status = {c.type: DeliveryStatus.PENDING for c in targets}
        outcomes = await asyncio.gather(*(self._send_one(c, alert) for c in targets))

        statuses = {
            c.type: DeliveryStatus.SENT if ok else DeliveryStatus.FAILED
            for c, ok in zip(targets, outcomes)
        }
        alert.delivery_status = statuses

        try:
            await with_retries(
                lambda: self._store.update_alert(alert),
                what="update_delivery_status",
                attempts=self._retries,
                delay_secs=self._retry_delay_secs,
                alert_id=alert.id,
            )
        except PersistenceError:
            logger.exception("delivery_status_write_failed", alert_id=alert.id)

        alert_logger.info(
            "alert_dispatched",
            alert_id=alert.id,
            severity=alert.severity.value,
            delivery_status={k.value: v.value for k, v in statuses.items()},
        )
        return statuses

    async def _send_one(self, config: AlertChannel, alert: Alert) -> bool:
        channel: NotificationChannel | None = None
        try:
            channel = self._channel_factory(config)
            return bool(await channel.send(alert))
        except Exception:
            logger.exception(
                "channel_dispatch_error",
                channel=config.type.value,
                alert_id=alert.id,
            )
            return False
        finally:
            if channel is not None:
                try:
                    await channel.close()
                except Exception:
                    logger.exception("channel_close_error", channel=config.type.value)

    # ── Lifecycle transitions ───────────────────────────────────

    async def get_alert(self, alert_id: str) -> Alert:
        alert = await self._store.get_alert(alert_id)
        if alert is None:
            raise AlertNotFoundError(alert_id)
        return alert

    async def list_alerts(self, status: AlertStatus | None = None, limit: int = 100) -> list[Alert]:
        return await self._store.list_alerts(status=status, limit=limit)

    async def acknowledge(self, alert_id: str, by: str) -> Alert:
        """open -> acknowledged. Re-acknowledging is a no-op."""
        alert = await self.get_alert(alert_id)
        if alert.status == AlertStatus.ACKNOWLEDGED:
            return alert
        if alert.status == AlertStatus.RESOLVED:
            raise AlertTransitionError(f"alert {alert_id} is already resolved")

        alert.status = AlertStatus.ACKNOWLEDGED
        alert.acknowledged_at = self._clock()
        alert.acknowledged_by = by
        await self._save(alert)
        alert_logger.info("alert_acknowledged", alert_id=alert_id, by=by)
        return alert

    async def resolve(self, alert_id: str, by: str, notes: str | None = None) -> Alert:
        """open|acknowledged -> resolved."""
        alert = await self.get_alert(alert_id)
        if alert.status == AlertStatus.RESOLVED:
            raise AlertTransitionError(f"alert {alert_id} is already resolved")

        alert.status = AlertStatus.RESOLVED
        alert.resolved_at = self._clock()
        alert.resolved_by = by
        alert.resolution_notes = notes
        await self._save(alert)
        alert_logger.info("alert_resolved", alert_id=alert_id, by=by, notes=notes)
        return alert

    async def _save(self, alert: Alert) -> None:
        await with_retries(
            lambda: self._store.update_alert(alert),
            what="update_alert",
            attempts=self._retries,
            delay_secs=self._retry_delay_secs,
            alert_id=alert.id,
        )

    # ── Internal ────────────────────────────────────────────────

    def _build_channel(self, config: AlertChannel) -> NotificationChannel:
        if config.type == ChannelType.DASHBOARD:
            return build_channel(config)
        return build_channel(config, self._get_session())

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            self._session = None
