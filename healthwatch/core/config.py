"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, ValidationError

from healthwatch.core.exceptions import ConfigError
from healthwatch.core.types import AlertChannel, AlertSeverity, ChannelType, ServiceTier

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_ALL_SEVERITIES = [AlertSeverity.P1, AlertSeverity.P2, AlertSeverity.P3]


class SchedulerConfig(BaseModel):
    """Tiered scheduler and check pipeline configuration."""

    trigger_interval_secs: float = 60.0
    max_concurrency: int = 25
    probe_timeout_secs: float = 30.0
    escalation_threshold: int = 3
    cache_ttl_factor: float = 2.0
    history_limit: int = 500
    persistence_retries: int = 3
    retry_delay_secs: float = 0.2


class ChannelSettings(BaseModel):
    """A single alert channel — destination details live in ``config``."""

    enabled: bool = False
    severities: list[AlertSeverity] = Field(default_factory=lambda: list(_ALL_SEVERITIES))
    config: dict[str, str] = Field(default_factory=dict)


class AlertsConfig(BaseModel):
    """Alert channel routing."""

    source: str = "platform-health"
    dashboard: ChannelSettings = Field(
        default_factory=lambda: ChannelSettings(enabled=True),
    )
    email: ChannelSettings = Field(
        default_factory=lambda: ChannelSettings(
            severities=[AlertSeverity.P1, AlertSeverity.P2],
        ),
    )
    slack: ChannelSettings = Field(default_factory=ChannelSettings)
    pagerduty: ChannelSettings = Field(
        default_factory=lambda: ChannelSettings(severities=[AlertSeverity.P1]),
    )
    webhook: ChannelSettings = Field(default_factory=ChannelSettings)

    def to_channels(self) -> list[AlertChannel]:
        """Flatten into channel value objects, one per channel type."""
        return [
            AlertChannel(
                type=channel_type,
                enabled=cfg.enabled,
                config=dict(cfg.config),
                severities=frozenset(cfg.severities),
            )
            for channel_type, cfg in (
                (ChannelType.DASHBOARD, self.dashboard),
                (ChannelType.EMAIL, self.email),
                (ChannelType.SLACK, self.slack),
                (ChannelType.PAGERDUTY, self.pagerduty),
                (ChannelType.WEBHOOK, self.webhook),
            )
        ]


class MonitorDefinition(BaseModel):
    """Declarative HTTP or status-page monitor.

    A ``{tenant}`` placeholder in ``url`` makes the monitor tenant-scoped.
    """

    name: str
    tier: ServiceTier = ServiceTier.CORE
    kind: Literal["http", "statuspage"] = "http"
    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    expected_status: list[int] = Field(default_factory=lambda: [200])
    timeout_secs: float = 10.0
    healthy_max_ms: float = 100.0
    degraded_max_ms: float = 500.0

    @property
    def requires_tenant(self) -> bool:
        return "{tenant}" in self.url


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class DashboardConfig(BaseModel):
    """Control-plane HTTP API configuration."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8080
    username: str = ""
    password: SecretStr = SecretStr("")


class Settings(BaseModel):
    """Root settings container."""

    scheduler: SchedulerConfig = SchedulerConfig()
    alerts: AlertsConfig = Field(default_factory=AlertsConfig)
    monitors: list[MonitorDefinition] = Field(default_factory=list)
    tenants: list[str] = Field(default_factory=list)
    logging: LoggingConfig = LoggingConfig()
    dashboard: DashboardConfig = DashboardConfig()


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML in {config_path}: {exc}") from exc
    return raw if isinstance(raw, dict) else {}


def _apply_env_overlay(alerts: AlertsConfig) -> AlertsConfig:
    """Overlay channel destinations from the environment.

    Setting a destination variable enables that channel.
    """
    env = os.environ

    slack_url = env.get("HEALTHWATCH_SLACK_WEBHOOK_URL")
    if slack_url:
        alerts.slack.enabled = True
        alerts.slack.config["webhook_url"] = slack_url

    routing_key = env.get("HEALTHWATCH_PAGERDUTY_ROUTING_KEY")
    if routing_key:
        alerts.pagerduty.enabled = True
        alerts.pagerduty.config["routing_key"] = routing_key

    webhook_url = env.get("HEALTHWATCH_ALERT_WEBHOOK_URL")
    if webhook_url:
        alerts.webhook.enabled = True
        alerts.webhook.config["url"] = webhook_url

    email_to = env.get("HEALTHWATCH_ALERT_EMAIL_TO")
    if email_to:
        alerts.email.enabled = True
        alerts.email.config["to"] = email_to
    email_from = env.get("HEALTHWATCH_ALERT_EMAIL_FROM")
    if email_from:
        alerts.email.config["from"] = email_from
    resend_key = env.get("RESEND_API_KEY")
    if resend_key:
        alerts.email.config["api_key"] = resend_key

    return alerts


def load_alerts_config(path: str | Path | None = None) -> AlertsConfig:
    """Re-read only the alerts section plus the environment overlay.

    Called on every dispatch so channel changes apply without a restart.
    """
    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH
    data = _read_yaml(config_path).get("alerts") or {}
    try:
        alerts = AlertsConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"invalid alerts config in {config_path}: {exc}") from exc
    return _apply_env_overlay(alerts)


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH
    data = _read_yaml(config_path)

    try:
        settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"invalid settings in {config_path}: {exc}") from exc
    settings.alerts = _apply_env_overlay(settings.alerts)

    _settings = settings
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
