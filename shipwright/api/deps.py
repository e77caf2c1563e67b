"""Dependency injection for API endpoints."""

from typing import Annotated

from fastapi import Depends, HTTPException, Query, status

from shipwright.config import settings
from shipwright.core.events import EventBus, get_event_bus
from shipwright.models.deployment import ENVIRONMENTS
from shipwright.monitoring.monitor import DeploymentMonitor
from shipwright.monitoring.registry import MonitorRegistry, get_monitor_registry


async def get_registry() -> MonitorRegistry:
    """Get the monitor registry."""
    return get_monitor_registry()


async def get_events() -> EventBus:
    """Get the event bus."""
    return get_event_bus()


async def get_environment_monitor(
    registry: Annotated[MonitorRegistry, Depends(get_registry)],
    environment: Annotated[str | None, Query()] = None,
) -> DeploymentMonitor:
    """Get the monitor for the requested environment (default: this app's) or raise 400."""
    environment = environment or settings.app_env
    if environment not in ENVIRONMENTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid environment: {environment}. Must be one of: {', '.join(ENVIRONMENTS)}",
        )
    return registry.get(environment)


# Type aliases for cleaner signatures
RegistryDep = Annotated[MonitorRegistry, Depends(get_registry)]
EventsDep = Annotated[EventBus, Depends(get_events)]
MonitorDep = Annotated[DeploymentMonitor, Depends(get_environment_monitor)]
