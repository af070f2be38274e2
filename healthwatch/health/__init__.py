"""Health checks — registry, evaluation, tracking and read-side rollups.

The scheduler, runner and loop depend on the alert dispatcher; import them
from their modules directly.
"""

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
from healthwatch.health.evaluator import (
    aggregate,
    evaluate,
    evaluate_inverse,
    evaluate_latency,
    health_score,
    should_alert,
    to_health_status,
    to_severity,
)
from healthwatch.health.probes import (
    FunctionProbe,
    HttpProbe,
    MetricProbe,
    Probe,
    StatusPageProbe,
)
from healthwatch.health.queries import HealthReader
from healthwatch.health.registry import Monitor, MonitorRegistry, build_monitors
from healthwatch.health.store import HealthStore, MemoryHealthStore
from healthwatch.health.tenants import CallableTenantSource, StaticTenantSource, TenantSource
from healthwatch.health.tracker import ResultTracker

__all__ = [
    "CallableTenantSource",
    "FunctionProbe",
    "HealthMatrix",
    "HealthReader",
    "HealthStore",
    "HttpProbe",
    "MemoryHealthStore",
    "MetricProbe",
    "Monitor",
    "MonitorRegistry",
    "PlatformSummary",
    "Probe",
    "ResultTracker",
    "ServiceSummary",
    "StaticTenantSource",
    "StatusPageProbe",
    "TenantSource",
    "TenantSummary",
    "aggregate",
    "build_health_matrix",
    "build_monitors",
    "build_platform_summary",
    "build_service_summaries",
    "build_tenant_summaries",
    "evaluate",
    "evaluate_inverse",
    "evaluate_latency",
    "health_score",
    "should_alert",
    "to_health_status",
    "to_severity",
]
