"""Notification channels — dashboard, email, Slack, PagerDuty and webhook."""

from __future__ import annotations

import abc
import json

import aiohttp
import structlog

from healthwatch.core.types import Alert, AlertChannel, ChannelType
from healthwatch.monitor.formatters import (
    format_email,
    format_pagerduty,
    format_slack,
    format_webhook,
)

logger = structlog.get_logger(__name__)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
RESEND_EMAILS_URL = "https://api.resend.com/emails"

_DEFAULT_FROM = "alerts@healthwatch.local"


class _SessionMixin:
    """Uses an injected ``aiohttp.ClientSession`` or lazily owns one."""

    _session: aiohttp.ClientSession | None
    _owns_session: bool

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    channel_type: ChannelType

    @abc.abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Deliver an alert. Returns True on success."""

    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class DashboardChannel(NotificationChannel):
    """The stored alert is itself the delivery; nothing leaves the process."""

    channel_type = ChannelType.DASHBOARD

    async def send(self, alert: Alert) -> bool:
        return True


class MailTransport(abc.ABC):
    """Outbound mail hand-off."""

    @abc.abstractmethod
    async def send(self, to: list[str], sender: str, subject: str, body: str) -> bool: ...

    async def close(self) -> None:
        """Release resources."""


class ResendTransport(_SessionMixin, MailTransport):
    """Sends plaintext mail through the Resend HTTP API."""

    def __init__(self, api_key: str, session: aiohttp.ClientSession | None = None) -> None:
        self._api_key = api_key
        self._session = session
        self._owns_session = False

    async def send(self, to: list[str], sender: str, subject: str, body: str) -> bool:
        payload = {"from": sender, "to": to, "subject": subject, "text": body}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        session = self._get_session()
        async with session.post(RESEND_EMAILS_URL, json=payload, headers=headers) as resp:
            if resp.status in (200, 201, 202):
                return True
            text = await resp.text()
            logger.warning("email_send_failed", status=resp.status, body=text[:200])
            return False


class EmailChannel(NotificationChannel):
    """Renders ``[SEVERITY] title`` plus a plaintext body for a mail transport."""

    channel_type = ChannelType.EMAIL

    def __init__(self, config: AlertChannel, transport: MailTransport) -> None:
        self._to = [a.strip() for a in config.config.get("to", "").split(",") if a.strip()]
        self._from = config.config.get("from") or _DEFAULT_FROM
        self._transport = transport

    async def send(self, alert: Alert) -> bool:
        if not self._to:
            logger.warning("email_no_recipients", alert_id=alert.id)
            return False
        subject, body = format_email(alert)
        return await self._transport.send(self._to, self._from, subject, body)

    async def close(self) -> None:
        await self._transport.close()


class _JsonPostChannel(_SessionMixin, NotificationChannel):
    """POSTs a JSON payload and treats any 2xx as delivered."""

    def __init__(self, url: str, session: aiohttp.ClientSession | None = None) -> None:
        self._url = url
        self._session = session
        self._owns_session = False

    def _headers(self) -> dict[str, str]:
        return {}

    @abc.abstractmethod
    def _payload(self, alert: Alert) -> dict: ...

    async def send(self, alert: Alert) -> bool:
        if not self._url:
            logger.warning("channel_not_configured", channel=self.channel_type.value)
            return False
        session = self._get_session()
        async with session.post(
            self._url, json=self._payload(alert), headers=self._headers(),
        ) as resp:
            if 200 <= resp.status < 300:
                return True
            body = await resp.text()
            logger.warning(
                "channel_send_failed",
                channel=self.channel_type.value,
                status=resp.status,
                body=body[:200],
            )
            return False


class SlackChannel(_JsonPostChannel):
    """Incoming-webhook message with a severity-coloured attachment."""

    channel_type = ChannelType.SLACK

    def __init__(self, config: AlertChannel, session: aiohttp.ClientSession | None = None) -> None:
        super().__init__(config.config.get("webhook_url", ""), session)

    def _payload(self, alert: Alert) -> dict:
        return format_slack(alert)


class PagerDutyChannel(_JsonPostChannel):
    """Events API v2 trigger with a per-condition dedup key."""

    channel_type = ChannelType.PAGERDUTY

    def __init__(self, config: AlertChannel, session: aiohttp.ClientSession | None = None) -> None:
        super().__init__(config.config.get("events_url", PAGERDUTY_EVENTS_URL), session)
        self._routing_key = config.config.get("routing_key", "")

    async def send(self, alert: Alert) -> bool:
        if not self._routing_key:
            logger.warning("pagerduty_no_routing_key", alert_id=alert.id)
            return False
        return await super().send(alert)

    def _payload(self, alert: Alert) -> dict:
        return format_pagerduty(alert, self._routing_key)


class WebhookChannel(_JsonPostChannel):
    """Generic ``platform_alert`` envelope.

    Custom headers come from the ``headers`` config entry, a JSON object.
    """

    channel_type = ChannelType.WEBHOOK

    def __init__(self, config: AlertChannel, session: aiohttp.ClientSession | None = None) -> None:
        super().__init__(config.config.get("url", ""), session)
        self._custom_headers = _parse_headers(config.config.get("headers", ""))

    def _headers(self) -> dict[str, str]:
        return dict(self._custom_headers)

    def _payload(self, alert: Alert) -> dict:
        return format_webhook(alert)


def _parse_headers(raw: str) -> dict[str, str]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("webhook_headers_invalid")
        return {}
    if not isinstance(parsed, dict):
        logger.warning("webhook_headers_invalid")
        return {}
    return {str(k): str(v) for k, v in parsed.items()}
