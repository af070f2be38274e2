"""Threshold evaluation and worst-status-wins aggregation.

Everything here is pure: no I/O, no clock, no shared state.
"""

from __future__ import annotations

from collections.abc import Iterable

from healthwatch.core.types import (
    AlertSeverity,
    HealthStatus,
    ThresholdConfig,
    ThresholdVerdict,
)

# Aggregation precedence, higher wins.
_STATUS_RANK: dict[HealthStatus, int] = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.UNKNOWN: 1,
    HealthStatus.DEGRADED: 2,
    HealthStatus.UNHEALTHY: 3,
}

DEFAULT_HEALTHY_MAX_MS = 100.0
DEFAULT_DEGRADED_MAX_MS = 500.0


def evaluate(value: float, thresholds: ThresholdConfig) -> ThresholdVerdict:
    """Grade a metric where higher is worse. Bounds are inclusive."""
    if value >= thresholds.critical:
        return ThresholdVerdict.CRITICAL
    if value >= thresholds.warning:
        return ThresholdVerdict.WARNING
    return ThresholdVerdict.HEALTHY


def evaluate_inverse(value: float, thresholds: ThresholdConfig) -> ThresholdVerdict:
    """Grade a metric where lower is worse. Bounds are inclusive."""
    if value <= thresholds.critical:
        return ThresholdVerdict.CRITICAL
    if value <= thresholds.warning:
        return ThresholdVerdict.WARNING
    return ThresholdVerdict.HEALTHY


def evaluate_latency(
    latency_ms: float,
    healthy_max: float = DEFAULT_HEALTHY_MAX_MS,
    degraded_max: float = DEFAULT_DEGRADED_MAX_MS,
) -> HealthStatus:
    if latency_ms < healthy_max:
        return HealthStatus.HEALTHY
    if latency_ms < degraded_max:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


def to_health_status(verdict: ThresholdVerdict) -> HealthStatus:
    return {
        ThresholdVerdict.HEALTHY: HealthStatus.HEALTHY,
        ThresholdVerdict.WARNING: HealthStatus.DEGRADED,
        ThresholdVerdict.CRITICAL: HealthStatus.UNHEALTHY,
    }[verdict]


def to_severity(verdict: ThresholdVerdict) -> AlertSeverity | None:
    """Map a verdict to an alert severity; ``None`` means no alert."""
    if verdict == ThresholdVerdict.CRITICAL:
        return AlertSeverity.P1
    if verdict == ThresholdVerdict.WARNING:
        return AlertSeverity.P2
    return None


def should_alert(verdict: ThresholdVerdict) -> bool:
    return verdict != ThresholdVerdict.HEALTHY


def verdict_for_status(status: HealthStatus) -> ThresholdVerdict:
    """Inverse of :func:`to_health_status`; unknown grades as a warning."""
    if status == HealthStatus.UNHEALTHY:
        return ThresholdVerdict.CRITICAL
    if status == HealthStatus.HEALTHY:
        return ThresholdVerdict.HEALTHY
    return ThresholdVerdict.WARNING


def aggregate(statuses: Iterable[HealthStatus]) -> HealthStatus:
    """Reduce a multiset of statuses to the worst one present.

    Precedence is ``unhealthy > degraded > unknown > healthy``; an empty
    input yields ``unknown``.
    """
    return max(statuses, key=_STATUS_RANK.__getitem__, default=HealthStatus.UNKNOWN)


def health_score(healthy: int, degraded: int, unhealthy: int) -> int:
    """Percentage score where degraded checks count half.

    Unknown checks are excluded; returns 0 when nothing has been graded.
    """
    total = healthy + degraded + unhealthy
    if total == 0:
        return 0
    return round((healthy + degraded * 0.5) / total * 100)
