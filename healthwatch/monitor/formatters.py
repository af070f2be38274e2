"""Wire payloads for each alert channel — pure functions of an Alert."""

from __future__ import annotations

import datetime
from typing import Any

from healthwatch.core.types import PLATFORM_KEY, Alert, AlertSeverity

# Slack attachment colours keyed by severity.
SLACK_COLORS: dict[AlertSeverity, str] = {
    AlertSeverity.P1: "#E74C3C",  # red
    AlertSeverity.P2: "#F39C12",  # orange
    AlertSeverity.P3: "#3498DB",  # blue
}

_PAGERDUTY_SEVERITY: dict[AlertSeverity, str] = {
    AlertSeverity.P1: "critical",
    AlertSeverity.P2: "warning",
    AlertSeverity.P3: "warning",
}


def _tenant_label(alert: Alert) -> str:
    return alert.tenant_id or PLATFORM_KEY


def _iso(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, datetime.UTC).isoformat()


def dedup_key(alert: Alert) -> str:
    """Stable key so repeated triggers of one condition collapse downstream."""
    return f"{alert.service}-{_tenant_label(alert)}-{alert.metric or 'health'}"


def format_email(alert: Alert) -> tuple[str, str]:
    """Return ``(subject, plaintext body)``."""
    subject = f"[{alert.severity.value.upper()}] {alert.title}"
    lines = [
        alert.message,
        "",
        f"Service: {alert.service}",
        f"Tenant: {_tenant_label(alert)}",
        f"Severity: {alert.severity.value.upper()}",
    ]
    if alert.metric:
        lines.append(f"Metric: {alert.metric} = {alert.current_value}")
        if alert.threshold_value is not None:
            lines.append(f"Threshold: {alert.threshold_value}")
    lines.append(f"Alert ID: {alert.id}")
    lines.append(f"Created: {_iso(alert.created_at)}")
    return subject, "\n".join(lines)


def format_slack(alert: Alert) -> dict[str, Any]:
    fields: list[dict[str, Any]] = [
        {"title": "Service", "value": alert.service, "short": True},
        {"title": "Tenant", "value": _tenant_label(alert), "short": True},
    ]
    if alert.metric:
        fields.append({"title": "Metric", "value": alert.metric, "short": True})
        fields.append({"title": "Value", "value": str(alert.current_value), "short": True})

    return {
        "text": f"[{alert.severity.value.upper()}] {alert.title}",
        "attachments": [
            {
                "color": SLACK_COLORS[alert.severity],
                "title": alert.title,
                "text": alert.message,
                "fields": fields,
                "footer": alert.source,
                "ts": int(alert.created_at),
            }
        ],
    }


def format_pagerduty(alert: Alert, routing_key: str) -> dict[str, Any]:
    """Events API v2 ``trigger`` payload."""
    return {
        "routing_key": routing_key,
        "event_action": "trigger",
        "dedup_key": dedup_key(alert),
        "payload": {
            "summary": f"{alert.title}: {alert.message}"[:1024],
            "source": alert.source,
            "severity": _PAGERDUTY_SEVERITY[alert.severity],
            "timestamp": _iso(alert.created_at),
            "component": alert.service,
            "group": _tenant_label(alert),
            "custom_details": {
                "alert_id": alert.id,
                "metric": alert.metric,
                "current_value": alert.current_value,
                "threshold_value": alert.threshold_value,
                **alert.metadata,
            },
        },
    }


def format_webhook(alert: Alert) -> dict[str, Any]:
    return {
        "type": "platform_alert",
        "alert": alert.model_dump(
            mode="json",
            exclude={"delivery_status"},
        ),
    }
