"""Pipeline notification sinks."""

import httpx

from shipwright.config import settings
from shipwright.models.deployment import NotificationPayload
from shipwright.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationSink:
    """Receives one notification per pipeline milestone."""

    async def send_notification(self, payload: NotificationPayload) -> None:
        raise NotImplementedError("Subclasses must implement send_notification")


class LogNotificationSink(NotificationSink):
    """Writes notifications to the log."""

    async def send_notification(self, payload: NotificationPayload) -> None:
        logger.info(
            "deployment.notification",
            type=payload.type,
            environment=payload.environment,
            deployment_id=payload.deployment_id,
            error=payload.error,
            metrics=payload.metrics.model_dump() if payload.metrics else None,
        )


class WebhookNotificationSink(NotificationSink):
    """POSTs notifications as JSON to a webhook."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self.url = url
        self._client = client
        self.timeout = timeout or settings.http_timeout_seconds

    async def send_notification(self, payload: NotificationPayload) -> None:
        body = payload.model_dump(mode="json")
        if self._client is not None:
            response = await self._client.post(self.url, json=body, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=body)
        response.raise_for_status()

        logger.info(
            "deployment.notification.sent",
            type=payload.type,
            environment=payload.environment,
            url=self.url,
        )


def get_default_sink() -> NotificationSink:
    """Webhook sink when one is configured, the log otherwise."""
    if settings.notification_webhook_url:
        return WebhookNotificationSink(settings.notification_webhook_url)
    return LogNotificationSink()
