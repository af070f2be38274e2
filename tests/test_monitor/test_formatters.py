"""Tests for channel payload formatters — email, Slack, PagerDuty, webhook."""

from __future__ import annotations

from healthwatch.core.types import Alert, AlertSeverity, ChannelType, DeliveryStatus
from healthwatch.monitor.formatters import (
    SLACK_COLORS,
    dedup_key,
    format_email,
    format_pagerduty,
    format_slack,
    format_webhook,
)


# ── Helpers ─────────────────────────────────────────────────────


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "id": "abc123",
        "severity": AlertSeverity.P1,
        "source": "platform-health",
        "service": "portal",
        "tenant_id": "acme",
        "metric": "consecutive_failures",
        "current_value": 3.0,
        "threshold_value": 3.0,
        "title": "portal is unhealthy for tenant acme",
        "message": "portal has failed 3 consecutive health checks for tenant acme.",
        "created_at": 1_700_000_000.0,
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


# ── Email ──────────────────────────────────────────────────────


class TestFormatEmail:
    def test_subject_has_severity_prefix(self) -> None:
        subject, _ = format_email(_alert(severity=AlertSeverity.P2))
        assert subject == "[P2] portal is unhealthy for tenant acme"

    def test_body_contents(self) -> None:
        _, body = format_email(_alert())
        assert body.startswith("portal has failed 3 consecutive health checks")
        assert "Tenant: acme" in body
        assert "Metric: consecutive_failures = 3.0" in body
        assert "Threshold: 3.0" in body
        assert "Alert ID: abc123" in body
        assert "2023-11-14T22:13:20+00:00" in body

    def test_platform_alert_without_metric(self) -> None:
        _, body = format_email(_alert(tenant_id=None, metric=None))
        assert "Tenant: platform" in body
        assert "Metric:" not in body


# ── Slack ──────────────────────────────────────────────────────


class TestFormatSlack:
    def test_attachment_color_per_severity(self) -> None:
        for severity, color in SLACK_COLORS.items():
            payload = format_slack(_alert(severity=severity))
            assert payload["attachments"][0]["color"] == color

    def test_payload_shape(self) -> None:
        payload = format_slack(_alert())
        assert payload["text"] == "[P1] portal is unhealthy for tenant acme"
        attachment = payload["attachments"][0]
        assert attachment["footer"] == "platform-health"
        assert attachment["ts"] == 1_700_000_000
        titles = [f["title"] for f in attachment["fields"]]
        assert titles == ["Service", "Tenant", "Metric", "Value"]


# ── PagerDuty ──────────────────────────────────────────────────


class TestFormatPagerDuty:
    def test_trigger_payload(self) -> None:
        payload = format_pagerduty(_alert(), "rk-1")
        assert payload["routing_key"] == "rk-1"
        assert payload["event_action"] == "trigger"
        assert payload["dedup_key"] == "portal-acme-consecutive_failures"
        assert payload["payload"]["severity"] == "critical"
        assert payload["payload"]["component"] == "portal"
        assert payload["payload"]["group"] == "acme"
        assert payload["payload"]["custom_details"]["alert_id"] == "abc123"

    def test_non_p1_maps_to_warning(self) -> None:
        assert format_pagerduty(_alert(severity=AlertSeverity.P2), "k")["payload"]["severity"] == "warning"
        assert format_pagerduty(_alert(severity=AlertSeverity.P3), "k")["payload"]["severity"] == "warning"

    def test_dedup_key_platform_fallbacks(self) -> None:
        assert dedup_key(_alert(tenant_id=None, metric=None)) == "portal-platform-health"

    def test_summary_truncated(self) -> None:
        payload = format_pagerduty(_alert(message="x" * 2000), "k")
        assert len(payload["payload"]["summary"]) == 1024


# ── Webhook ────────────────────────────────────────────────────


class TestFormatWebhook:
    def test_envelope_excludes_delivery_status(self) -> None:
        alert = _alert(delivery_status={ChannelType.SLACK: DeliveryStatus.SENT})
        payload = format_webhook(alert)
        assert payload["type"] == "platform_alert"
        assert payload["alert"]["id"] == "abc123"
        assert payload["alert"]["severity"] == "p1"
        assert payload["alert"]["status"] == "open"
        assert "delivery_status" not in payload["alert"]
