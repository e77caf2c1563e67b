"""Per-environment monitors for the monitoring API."""

from functools import lru_cache
from pathlib import Path

from shipwright.core.events import EventBus, get_event_bus
from shipwright.monitoring.config import load_alert_config
from shipwright.monitoring.monitor import DeploymentMonitor


class MonitorRegistry:
    """Holds one DeploymentMonitor per environment, in memory.

    Monitors are created lazily from the monitoring config file the first
    time an environment is requested.
    """

    def __init__(
        self,
        config_path: str | Path | None = None,
        events: EventBus | None = None,
    ):
        self._monitors: dict[str, DeploymentMonitor] = {}
        self._config_path = config_path
        self._events = events

    def get(self, environment: str) -> DeploymentMonitor:
        """Get (or create) the monitor for an environment."""
        monitor = self._monitors.get(environment)
        if monitor is None:
            monitor = DeploymentMonitor(
                load_alert_config(environment, self._config_path),
                events=self._events,
            )
            self._monitors[environment] = monitor
        return monitor

    def register(self, monitor: DeploymentMonitor) -> None:
        """Install an already built monitor for its environment."""
        self._monitors[monitor.config.environment] = monitor

    def environments(self) -> list[str]:
        return sorted(self._monitors)

    def clear(self) -> None:
        self._monitors.clear()


# Singleton instance
_registry: MonitorRegistry | None = None


@lru_cache
def get_monitor_registry() -> MonitorRegistry:
    """Get the monitor registry singleton."""
    global _registry
    if _registry is None:
        _registry = MonitorRegistry(events=get_event_bus())
    return _registry
