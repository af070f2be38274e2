"""Alerting subsystem — channels, formatters and the alert dispatcher.

The stack factory and web API import the health scheduler; import them
from their modules directly.
"""

from healthwatch.monitor.channels import (
    DashboardChannel,
    EmailChannel,
    MailTransport,
    NotificationChannel,
    PagerDutyChannel,
    ResendTransport,
    SlackChannel,
    WebhookChannel,
)
from healthwatch.monitor.dispatcher import AlertDispatcher
from healthwatch.monitor.formatters import (
    format_email,
    format_pagerduty,
    format_slack,
    format_webhook,
)
from healthwatch.monitor.providers import (
    ChannelConfigProvider,
    SettingsChannelProvider,
    StaticChannelProvider,
    build_channel,
)

__all__ = [
    "AlertDispatcher",
    "ChannelConfigProvider",
    "DashboardChannel",
    "EmailChannel",
    "MailTransport",
    "NotificationChannel",
    "PagerDutyChannel",
    "ResendTransport",
    "SettingsChannelProvider",
    "SlackChannel",
    "StaticChannelProvider",
    "WebhookChannel",
    "build_channel",
    "format_email",
    "format_pagerduty",
    "format_slack",
    "format_webhook",
]
