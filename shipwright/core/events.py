"""Event bus for streaming monitor activity over Server-Sent Events."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from shipwright.models.monitoring import Alert, DeploymentMetric


@dataclass
class Event:
    """An SSE event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        """Convert to SSE format."""
        data_json = json.dumps({**self.data, "timestamp": self.timestamp.isoformat()})
        return f"event: {self.event_type}\ndata: {data_json}\n\n"


class EventBus:
    """Event bus keyed by environment, with one queue per subscriber."""

    def __init__(self):
        self._subscribers: dict[str, set[asyncio.Queue[Event]]] = {}

    def subscribe(self, environment: str) -> asyncio.Queue[Event]:
        """Subscribe to events for an environment."""
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers.setdefault(environment, set()).add(queue)
        return queue

    def unsubscribe(self, environment: str, queue: asyncio.Queue[Event]) -> None:
        """Remove one subscriber queue from an environment."""
        queues = self._subscribers.get(environment)
        if queues is None:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[environment]

    def subscriber_count(self, environment: str) -> int:
        return len(self._subscribers.get(environment, ()))

    async def publish(self, environment: str, event: Event) -> None:
        """Publish an event to every subscriber of an environment."""
        for queue in list(self._subscribers.get(environment, ())):
            await queue.put(event)

    async def publish_metric(self, metric: DeploymentMetric) -> None:
        """Publish a metric recorded event."""
        await self.publish(
            metric.environment,
            Event(
                event_type="metric_recorded",
                data={
                    "deployment_id": metric.deployment_id,
                    "phase": metric.phase.value,
                    "status": metric.status.value,
                    "duration": metric.duration,
                },
            ),
        )

    async def publish_alert(self, alert: Alert) -> None:
        """Publish an alert created event."""
        await self.publish(
            alert.environment,
            Event(
                event_type="alert_created",
                data={
                    "alert_id": alert.id,
                    "severity": alert.severity.value,
                    "title": alert.title,
                    "deployment_id": alert.deployment_id,
                },
            ),
        )

    async def publish_alert_resolved(self, alert: Alert) -> None:
        """Publish an alert resolved event."""
        await self.publish(
            alert.environment,
            Event(
                event_type="alert_resolved",
                data={"alert_id": alert.id, "title": alert.title},
            ),
        )


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
