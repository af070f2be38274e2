"""Tests for healthwatch/core/config.py — YAML loading, defaults, env overlay."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from healthwatch.core.config import (
    AlertsConfig,
    DashboardConfig,
    LoggingConfig,
    MonitorDefinition,
    SchedulerConfig,
    Settings,
    get_settings,
    load_alerts_config,
    load_settings,
    reset_settings,
)
from healthwatch.core.exceptions import ConfigError
from healthwatch.core.types import AlertSeverity, ChannelType, ServiceTier

_ENV_VARS = (
    "HEALTHWATCH_SLACK_WEBHOOK_URL",
    "HEALTHWATCH_PAGERDUTY_ROUTING_KEY",
    "HEALTHWATCH_ALERT_WEBHOOK_URL",
    "HEALTHWATCH_ALERT_EMAIL_TO",
    "HEALTHWATCH_ALERT_EMAIL_FROM",
    "RESEND_API_KEY",
)


@pytest.fixture(autouse=True)
def _clean_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset the global settings cache and channel env before each test."""
    reset_settings()
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write(tmp_path: Path, data: object) -> Path:
    config_file = tmp_path / "settings.yaml"
    config_file.write_text(yaml.dump(data))
    return config_file


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_scheduler_config(self) -> None:
        cfg = SchedulerConfig()
        assert cfg.trigger_interval_secs == 60.0
        assert cfg.max_concurrency == 25
        assert cfg.escalation_threshold == 3
        assert cfg.cache_ttl_factor == 2.0

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_dashboard_disabled(self) -> None:
        cfg = DashboardConfig()
        assert cfg.enabled is False
        assert cfg.port == 8080
        assert cfg.password.get_secret_value() == ""

    def test_default_settings(self) -> None:
        s = Settings()
        assert s.monitors == []
        assert s.tenants == []
        assert s.alerts.source == "platform-health"

    def test_default_channel_routing(self) -> None:
        channels = {c.type: c for c in AlertsConfig().to_channels()}
        assert set(channels) == set(ChannelType)

        assert channels[ChannelType.DASHBOARD].enabled is True
        assert channels[ChannelType.DASHBOARD].severities == frozenset(AlertSeverity)

        assert channels[ChannelType.EMAIL].enabled is False
        assert channels[ChannelType.EMAIL].severities == frozenset(
            {AlertSeverity.P1, AlertSeverity.P2}
        )
        assert channels[ChannelType.PAGERDUTY].severities == frozenset({AlertSeverity.P1})
        assert channels[ChannelType.SLACK].enabled is False
        assert channels[ChannelType.WEBHOOK].enabled is False

    def test_instances_do_not_share_channel_state(self) -> None:
        a = AlertsConfig()
        b = AlertsConfig()
        a.slack.config["webhook_url"] = "https://hooks.example/a"
        assert "webhook_url" not in b.slack.config


class TestMonitorDefinition:
    def test_tenant_placeholder_makes_monitor_tenant_scoped(self) -> None:
        d = MonitorDefinition(name="portal", url="https://{tenant}.example.com/healthz")
        assert d.requires_tenant is True

    def test_plain_url_is_platform_wide(self) -> None:
        d = MonitorDefinition(name="api", url="https://api.example.com/healthz")
        assert d.requires_tenant is False
        assert d.tier == ServiceTier.CORE
        assert d.expected_status == [200]


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path, {
            "scheduler": {"escalation_threshold": 5, "max_concurrency": 10},
            "tenants": ["acme", "globex"],
            "monitors": [
                {"name": "api", "tier": "critical", "url": "https://api.example.com"},
                {
                    "name": "vendor",
                    "tier": "external",
                    "kind": "statuspage",
                    "url": "https://status.vendor.example/api/v2/status.json",
                },
            ],
            "logging": {"level": "DEBUG", "format": "console"},
        })

        settings = load_settings(config_file)

        assert settings.scheduler.escalation_threshold == 5
        assert settings.scheduler.max_concurrency == 10
        assert settings.tenants == ["acme", "globex"]
        assert [m.name for m in settings.monitors] == ["api", "vendor"]
        assert settings.monitors[0].tier == ServiceTier.CRITICAL
        assert settings.monitors[1].kind == "statuspage"
        assert settings.logging.level == "DEBUG"

    def test_load_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "nonexistent.yaml")
        assert settings.scheduler.trigger_interval_secs == 60.0
        assert settings.monitors == []

    def test_load_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        settings = load_settings(config_file)
        assert settings.scheduler.escalation_threshold == 3

    def test_partial_yaml_merges_with_defaults(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path, {"alerts": {"slack": {"enabled": True}}})

        settings = load_settings(config_file)
        assert settings.alerts.slack.enabled is True
        # Other defaults still intact
        assert settings.alerts.dashboard.enabled is True
        assert settings.alerts.pagerduty.severities == [AlertSeverity.P1]

    def test_invalid_yaml_raises_config_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("scheduler: [unclosed")
        with pytest.raises(ConfigError):
            load_settings(config_file)

    def test_invalid_values_raise_config_error(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path, {"monitors": [{"name": "x", "tier": "bogus", "url": "u"}]})
        with pytest.raises(ConfigError):
            load_settings(config_file)

    def test_get_settings_returns_cached(self, tmp_path: Path) -> None:
        config_file = _write(tmp_path, {"tenants": ["acme"]})
        loaded = load_settings(config_file)
        assert get_settings() is loaded


class TestEnvOverlay:
    """Channel destinations from the environment enable their channel."""

    def test_slack_webhook_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HEALTHWATCH_SLACK_WEBHOOK_URL", "https://hooks.slack.example/T1")
        settings = load_settings(tmp_path / "none.yaml")
        assert settings.alerts.slack.enabled is True
        assert settings.alerts.slack.config["webhook_url"] == "https://hooks.slack.example/T1"

    def test_email_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HEALTHWATCH_ALERT_EMAIL_TO", "ops@example.com,sre@example.com")
        monkeypatch.setenv("HEALTHWATCH_ALERT_EMAIL_FROM", "health@example.com")
        monkeypatch.setenv("RESEND_API_KEY", "re_123")
        alerts = load_alerts_config(tmp_path / "none.yaml")
        assert alerts.email.enabled is True
        assert alerts.email.config == {
            "to": "ops@example.com,sre@example.com",
            "from": "health@example.com",
            "api_key": "re_123",
        }

    def test_pagerduty_and_webhook_from_env(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("HEALTHWATCH_PAGERDUTY_ROUTING_KEY", "rk-1")
        monkeypatch.setenv("HEALTHWATCH_ALERT_WEBHOOK_URL", "https://hooks.example/alerts")
        alerts = load_alerts_config(tmp_path / "none.yaml")
        assert alerts.pagerduty.enabled is True
        assert alerts.pagerduty.config["routing_key"] == "rk-1"
        assert alerts.webhook.config["url"] == "https://hooks.example/alerts"

    def test_unset_env_leaves_channels_disabled(self, tmp_path: Path) -> None:
        alerts = load_alerts_config(tmp_path / "none.yaml")
        assert alerts.slack.enabled is False
        assert alerts.email.enabled is False

    def test_alerts_config_reread_on_each_call(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        config_file = _write(tmp_path, {"alerts": {"webhook": {"enabled": False}}})
        assert load_alerts_config(config_file).webhook.enabled is False

        config_file.write_text(yaml.dump({
            "alerts": {"webhook": {"enabled": True, "config": {"url": "https://x.example"}}},
        }))
        assert load_alerts_config(config_file).webhook.enabled is True


class TestSecretStr:
    def test_dashboard_password_repr_does_not_leak(self) -> None:
        cfg = DashboardConfig(password="hunter2")  # type: ignore[arg-type]
        assert "hunter2" not in repr(cfg)
        assert cfg.password.get_secret_value() == "hunter2"
