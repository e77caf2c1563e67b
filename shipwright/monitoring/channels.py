"""Alert delivery channels.

Each channel turns an :class:`Alert` into its own payload shape and hands
it to a transport. Every channel shares the same severity colors and emoji.
Configuration keys per channel type:

- chat: ``webhook_url``, optional ``channel`` and ``username``
- email: ``smtp_host``, ``from_address``, ``recipients``, optional
  ``smtp_port``, ``username``, ``password``, ``use_tls``
- webhook: ``url``, optional ``headers``
- pager: ``integration_key``, optional ``events_url``
"""

import asyncio
import json
import smtplib
from email.mime.text import MIMEText
from typing import Any

import httpx

from shipwright.config import settings
from shipwright.core.exceptions import AlertDeliveryError
from shipwright.models.monitoring import Alert, AlertSeverity, ChannelType
from shipwright.utils.logging import get_logger

logger = get_logger(__name__)

SEVERITY_COLORS: dict[AlertSeverity, str] = {
    AlertSeverity.INFO: "#36a64f",  # Green
    AlertSeverity.WARNING: "#ff9500",  # Orange
    AlertSeverity.ERROR: "#ff4444",  # Red
    AlertSeverity.CRITICAL: "#8b0000",  # Dark red
}

SEVERITY_EMOJI: dict[AlertSeverity, str] = {
    AlertSeverity.INFO: "ℹ️",
    AlertSeverity.WARNING: "⚠️",
    AlertSeverity.ERROR: "❌",
    AlertSeverity.CRITICAL: "🚨",
}

SOURCE_NAME = "Shipwright Deployment Monitor"


def severity_color(severity: AlertSeverity) -> str:
    return SEVERITY_COLORS.get(severity, "#cccccc")


def severity_emoji(severity: AlertSeverity) -> str:
    return SEVERITY_EMOJI.get(severity, "📊")


class AlertChannel:
    """Base class for alert channels."""

    type: ChannelType
    required_keys: tuple[str, ...] = ()

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    def validate_config(self, config: dict[str, Any]) -> None:
        """Raise AlertDeliveryError if a required key is missing."""
        missing = [key for key in self.required_keys if not config.get(key)]
        if missing:
            raise AlertDeliveryError(
                self.type.value,
                f"missing configuration: {', '.join(missing)}",
            )

    def build_payload(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError("Subclasses must implement build_payload")

    async def send(self, alert: Alert, config: dict[str, Any]) -> None:
        raise NotImplementedError("Subclasses must implement send")

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.post(
                    url,
                    json=payload,
                    headers=headers,
                    timeout=settings.http_timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
                    response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise AlertDeliveryError(self.type.value, str(e)) from e
        return response


class ChatChannel(AlertChannel):
    """Slack-compatible incoming webhook."""

    type = ChannelType.CHAT
    required_keys = ("webhook_url",)

    def build_payload(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        return {
            "channel": config.get("channel", "#deployments"),
            "username": config.get("username", "Shipwright Deploy Bot"),
            "icon_emoji": ":robot_face:",
            "attachments": [
                {
                    "color": severity_color(alert.severity),
                    "title": f"{severity_emoji(alert.severity)} {alert.title}",
                    "text": alert.message,
                    "fields": [
                        {"title": "Environment", "value": alert.environment, "short": True},
                        {"title": "Severity", "value": alert.severity.value.upper(), "short": True},
                        {"title": "Deployment ID", "value": alert.deployment_id or "N/A", "short": True},
                        {"title": "Timestamp", "value": alert.timestamp.isoformat(), "short": True},
                    ],
                    "footer": SOURCE_NAME,
                    "ts": int(alert.timestamp.timestamp()),
                }
            ],
        }

    async def send(self, alert: Alert, config: dict[str, Any]) -> None:
        self.validate_config(config)
        await self._post_json(config["webhook_url"], self.build_payload(alert, config))
        logger.info("channel.chat.sent", alert_id=alert.id)


class EmailChannel(AlertChannel):
    """Plain-text email over SMTP."""

    type = ChannelType.EMAIL
    required_keys = ("smtp_host", "from_address", "recipients")

    def build_subject(self, alert: Alert) -> str:
        return f"[{alert.severity.value.upper()}] {alert.title} - {alert.environment}"

    def build_body(self, alert: Alert) -> str:
        lines = [
            f"{severity_emoji(alert.severity)} Deployment Alert: {alert.title}",
            "",
            f"Environment: {alert.environment}",
            f"Severity: {alert.severity.value.upper()}",
            f"Timestamp: {alert.timestamp.isoformat()}",
            f"Deployment ID: {alert.deployment_id or 'N/A'}",
            "",
            "Message:",
            alert.message,
        ]

        if alert.metrics:
            lines += ["", "Recent Metrics:"]
            for metric in alert.metrics:
                duration = f"{metric.duration}ms" if metric.duration is not None else "N/A"
                lines.append(f"- {metric.phase.value}: {metric.status.value} ({duration})")

        lines += ["", f"This alert was generated by the {SOURCE_NAME}."]
        return "\n".join(lines)

    def build_payload(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        recipients = config.get("recipients") or []
        if isinstance(recipients, str):
            recipients = [recipients]
        return {
            "from": config.get("from_address"),
            "to": list(recipients),
            "subject": self.build_subject(alert),
            "body": self.build_body(alert),
        }

    def _deliver(self, payload: dict[str, Any], config: dict[str, Any]) -> None:
        message = MIMEText(payload["body"], "plain", "utf-8")
        message["Subject"] = payload["subject"]
        message["From"] = payload["from"]
        message["To"] = ", ".join(payload["to"])

        with smtplib.SMTP(
            config["smtp_host"],
            config.get("smtp_port", 587),
            timeout=settings.http_timeout_seconds,
        ) as server:
            if config.get("use_tls", True):
                server.starttls()
            if config.get("username") and config.get("password"):
                server.login(config["username"], config["password"])
            server.sendmail(payload["from"], payload["to"], message.as_string())

    async def send(self, alert: Alert, config: dict[str, Any]) -> None:
        self.validate_config(config)
        payload = self.build_payload(alert, config)
        try:
            await asyncio.to_thread(self._deliver, payload, config)
        except (smtplib.SMTPException, OSError) as e:
            raise AlertDeliveryError(self.type.value, str(e)) from e
        logger.info("channel.email.sent", alert_id=alert.id, recipients=len(payload["to"]))


class WebhookChannel(AlertChannel):
    """Generic JSON webhook."""

    type = ChannelType.WEBHOOK
    required_keys = ("url",)

    def build_payload(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        return {
            "alert": alert.model_dump(mode="json"),
            "environment": alert.environment,
            "timestamp": alert.timestamp.isoformat(),
            "color": severity_color(alert.severity),
            "emoji": severity_emoji(alert.severity),
        }

    async def send(self, alert: Alert, config: dict[str, Any]) -> None:
        self.validate_config(config)
        headers = {"Content-Type": "application/json", **(config.get("headers") or {})}
        await self._post_json(config["url"], self.build_payload(alert, config), headers)
        logger.info("channel.webhook.sent", alert_id=alert.id, url=config["url"])


class PagerChannel(AlertChannel):
    """PagerDuty Events API v2."""

    type = ChannelType.PAGER
    required_keys = ("integration_key",)

    EVENTS_API_URL = "https://events.pagerduty.com/v2/enqueue"

    def build_payload(self, alert: Alert, config: dict[str, Any]) -> dict[str, Any]:
        # Only critical alerts page someone; everything else just acknowledges
        event_action = "trigger" if alert.severity == AlertSeverity.CRITICAL else "acknowledge"

        return {
            "routing_key": config.get("integration_key"),
            "event_action": event_action,
            "dedup_key": f"{alert.environment}-{alert.deployment_id or 'none'}",
            "payload": {
                "summary": f"{severity_emoji(alert.severity)} {alert.title}",
                "source": SOURCE_NAME,
                "severity": alert.severity.value,
                "component": "deployment",
                "group": alert.environment,
                "custom_details": {
                    "message": alert.message,
                    "environment": alert.environment,
                    "deployment_id": alert.deployment_id,
                    "color": severity_color(alert.severity),
                    "metrics": [m.model_dump(mode="json") for m in alert.metrics],
                },
            },
        }

    async def send(self, alert: Alert, config: dict[str, Any]) -> None:
        self.validate_config(config)
        payload = self.build_payload(alert, config)
        response = await self._post_json(config.get("events_url", self.EVENTS_API_URL), payload)

        try:
            body = response.json()
        except json.JSONDecodeError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        logger.info(
            "channel.pager.sent",
            alert_id=alert.id,
            event_action=payload["event_action"],
            dedup_key=body.get("dedup_key", payload["dedup_key"]),
        )


def default_channels(client: httpx.AsyncClient | None = None) -> dict[ChannelType, AlertChannel]:
    """One sender per channel type."""
    return {
        ChannelType.CHAT: ChatChannel(client),
        ChannelType.EMAIL: EmailChannel(client),
        ChannelType.WEBHOOK: WebhookChannel(client),
        ChannelType.PAGER: PagerChannel(client),
    }
