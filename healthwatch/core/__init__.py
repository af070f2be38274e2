"""Core module — config, types, logging, exceptions."""

from healthwatch.core.config import (
    AlertsConfig,
    Settings,
    get_settings,
    load_alerts_config,
    load_settings,
    reset_settings,
)
from healthwatch.core.exceptions import (
    AlertNotFoundError,
    AlertTransitionError,
    ConfigError,
    HealthwatchError,
    PersistenceError,
)
from healthwatch.core.logging import check_context, setup_logging
from healthwatch.core.types import (
    PLATFORM_KEY,
    Alert,
    AlertChannel,
    AlertSeverity,
    AlertStatus,
    ChannelType,
    CheckResult,
    DeliveryStatus,
    HealthCheckRecord,
    HealthStatus,
    ServiceTier,
    ThresholdConfig,
    ThresholdVerdict,
)

__all__ = [
    "PLATFORM_KEY",
    "Alert",
    "AlertChannel",
    "AlertNotFoundError",
    "AlertSeverity",
    "AlertStatus",
    "AlertTransitionError",
    "AlertsConfig",
    "ChannelType",
    "CheckResult",
    "ConfigError",
    "DeliveryStatus",
    "HealthCheckRecord",
    "HealthStatus",
    "HealthwatchError",
    "PersistenceError",
    "ServiceTier",
    "Settings",
    "ThresholdConfig",
    "ThresholdVerdict",
    "check_context",
    "get_settings",
    "load_alerts_config",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
