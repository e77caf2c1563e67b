"""Core functionality for Shipwright."""

from shipwright.core.events import Event, EventBus, get_event_bus
from shipwright.core.exceptions import (
    AlertDeliveryError,
    CommandError,
    CommandTimeoutError,
    ConfigurationError,
    ShipwrightError,
)
from shipwright.core.executor import (
    CommandExecutor,
    CommandResult,
    HttpProber,
    ShellCommandExecutor,
)
from shipwright.core.notifications import (
    LogNotificationSink,
    NotificationSink,
    WebhookNotificationSink,
    get_default_sink,
)

__all__ = [
    "ShipwrightError",
    "ConfigurationError",
    "CommandError",
    "CommandTimeoutError",
    "AlertDeliveryError",
    "CommandExecutor",
    "CommandResult",
    "ShellCommandExecutor",
    "HttpProber",
    "NotificationSink",
    "LogNotificationSink",
    "WebhookNotificationSink",
    "get_default_sink",
    "Event",
    "EventBus",
    "get_event_bus",
]
