"""Channel configuration providers and the channel builder.

Providers are asked for the channel list on every dispatch, so edits to the
config file or environment take effect without a restart.
"""

from __future__ import annotations

import abc
from collections.abc import Iterable
from pathlib import Path

import aiohttp

from healthwatch.core.config import load_alerts_config
from healthwatch.core.types import AlertChannel, ChannelType
from healthwatch.monitor.channels import (
    DashboardChannel,
    EmailChannel,
    NotificationChannel,
    PagerDutyChannel,
    ResendTransport,
    SlackChannel,
    WebhookChannel,
)


class ChannelConfigProvider(abc.ABC):
    """Supplies the current channel configuration.

    ``channels`` is synchronous and is called from a worker thread on every
    dispatch, so implementations may do blocking I/O.
    """

    @abc.abstractmethod
    def channels(self) -> list[AlertChannel]: ...


class SettingsChannelProvider(ChannelConfigProvider):
    """Re-reads the alerts section of the YAML config plus env overlay."""

    def __init__(self, config_path: str | Path | None = None) -> None:
        self._config_path = config_path

    def channels(self) -> list[AlertChannel]:
        return load_alerts_config(self._config_path).to_channels()


class StaticChannelProvider(ChannelConfigProvider):
    """Fixed channel list — for embedding and tests."""

    def __init__(self, channels: Iterable[AlertChannel]) -> None:
        self._channels = list(channels)

    def channels(self) -> list[AlertChannel]:
        return list(self._channels)


def build_channel(
    config: AlertChannel,
    session: aiohttp.ClientSession | None = None,
) -> NotificationChannel:
    """Instantiate the delivery channel for one configuration entry."""
    if config.type == ChannelType.DASHBOARD:
        return DashboardChannel()
    if config.type == ChannelType.EMAIL:
        transport = ResendTransport(config.config.get("api_key", ""), session)
        return EmailChannel(config, transport)
    if config.type == ChannelType.SLACK:
        return SlackChannel(config, session)
    if config.type == ChannelType.PAGERDUTY:
        return PagerDutyChannel(config, session)
    if config.type == ChannelType.WEBHOOK:
        return WebhookChannel(config, session)
    raise ValueError(f"unsupported channel type: {config.type}")
