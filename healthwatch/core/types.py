"""Domain types for health checks, tiers, alerts and channels."""

from __future__ import annotations

import time
import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

# Cache/counter key used for checks that run without tenant context.
PLATFORM_KEY = "platform"


class HealthStatus(StrEnum):
    """Health of one service, tenant, or the whole platform."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class ServiceTier(StrEnum):
    """Scheduling tier — each bound to a fixed polling interval."""

    CRITICAL = "critical"
    CORE = "core"
    INTEGRATIONS = "integrations"
    EXTERNAL = "external"

    @property
    def interval_secs(self) -> float:
        return TIER_INTERVALS_SECS[self]


TIER_INTERVALS_SECS: dict[ServiceTier, float] = {
    ServiceTier.CRITICAL: 60.0,
    ServiceTier.CORE: 300.0,
    ServiceTier.INTEGRATIONS: 900.0,
    ServiceTier.EXTERNAL: 1800.0,
}


class ThresholdVerdict(StrEnum):
    """Three-level result of comparing a metric against thresholds."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertSeverity(StrEnum):
    """Alert severity — P1 is the most urgent."""

    P1 = "p1"
    P2 = "p2"
    P3 = "p3"


class AlertStatus(StrEnum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class ChannelType(StrEnum):
    DASHBOARD = "dashboard"
    EMAIL = "email"
    SLACK = "slack"
    PAGERDUTY = "pagerduty"
    WEBHOOK = "webhook"


class DeliveryStatus(StrEnum):
    SENT = "sent"
    FAILED = "failed"
    PENDING = "pending"


class ThresholdConfig(BaseModel):
    """Warning/critical bounds for one metric."""

    warning: float
    critical: float


class CheckResult(BaseModel):
    """Output of a single probe invocation.

    ``status`` may be left as ``None`` when the probe only measured latency;
    the check pipeline then grades it with the latency evaluator.
    """

    status: HealthStatus | None = None
    latency_ms: float = 0.0
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class HealthCheckRecord(BaseModel):
    """A classified check result as cached, stored and reported."""

    service: str
    tenant_id: str | None = None
    tier: ServiceTier | None = None
    status: HealthStatus
    latency_ms: float = 0.0
    details: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    checked_at: float = Field(default_factory=time.time)
    consecutive_failures: int = 0

    @property
    def tenant_key(self) -> str:
        return self.tenant_id or PLATFORM_KEY


class Alert(BaseModel):
    """Persisted alert — an audit record, never deleted."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    severity: AlertSeverity
    source: str
    service: str
    tenant_id: str | None = None
    metric: str | None = None
    current_value: float | None = None
    threshold_value: float | None = None
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: AlertStatus = AlertStatus.OPEN
    created_at: float = Field(default_factory=time.time)
    acknowledged_at: float | None = None
    acknowledged_by: str | None = None
    resolved_at: float | None = None
    resolved_by: str | None = None
    resolution_notes: str | None = None
    delivery_status: dict[ChannelType, DeliveryStatus] = Field(default_factory=dict)


class AlertChannel(BaseModel, frozen=True):
    """One configured delivery destination, recomputed on every dispatch."""

    type: ChannelType
    enabled: bool = True
    config: dict[str, str] = Field(default_factory=dict)
    severities: frozenset[AlertSeverity] = frozenset(AlertSeverity)

    def accepts(self, severity: AlertSeverity) -> bool:
        return self.enabled and severity in self.severities
