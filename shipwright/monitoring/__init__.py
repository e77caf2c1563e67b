"""Deployment monitoring and alerting."""

from shipwright.monitoring.channels import (
    AlertChannel,
    ChatChannel,
    EmailChannel,
    PagerChannel,
    WebhookChannel,
    default_channels,
)
from shipwright.monitoring.config import load_alert_channels, load_alert_config
from shipwright.monitoring.monitor import DeploymentMonitor
from shipwright.monitoring.registry import MonitorRegistry, get_monitor_registry

__all__ = [
    "DeploymentMonitor",
    "AlertChannel",
    "ChatChannel",
    "EmailChannel",
    "WebhookChannel",
    "PagerChannel",
    "default_channels",
    "load_alert_config",
    "load_alert_channels",
    "MonitorRegistry",
    "get_monitor_registry",
]
