"""Deployment monitoring endpoints."""

import asyncio
import json
from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from shipwright.api.deps import EventsDep, MonitorDep, RegistryDep
from shipwright.core.events import Event
from shipwright.models.deployment import ENVIRONMENTS
from shipwright.models.monitoring import (
    Alert,
    DeploymentMetric,
    DeploymentPhase,
    DeploymentStats,
    MetricStatus,
    utcnow,
)

router = APIRouter()

# Seconds without events before a keepalive is sent
KEEPALIVE_INTERVAL = 30.0


class StatsResponse(BaseModel):
    """Deployment statistics."""

    success: bool = True
    data: DeploymentStats


class MetricsResponse(BaseModel):
    """Exported metrics."""

    success: bool = True
    data: list[dict[str, Any]]


class AlertListResponse(BaseModel):
    """Alerts for an environment."""

    success: bool = True
    data: list[Alert]
    total: int


class MessageResponse(BaseModel):
    """Acknowledgement of a write."""

    success: bool = True
    message: str


class MonitorHealthResponse(BaseModel):
    """Health of the monitoring subsystem."""

    status: str = "ok"
    timestamp: datetime
    monitor: dict[str, Any]
    environments: list[str]


class RecordMetricRequest(BaseModel):
    """Request to record a deployment metric."""

    environment: str
    deployment_id: str = Field(min_length=1)
    phase: DeploymentPhase
    status: MetricStatus
    duration: int | None = Field(default=None, ge=0)
    error: str | None = None
    details: dict[str, Any] | None = None


class ResolveAlertRequest(BaseModel):
    """Request to resolve an alert."""

    resolution: str | None = None


@router.get("/stats", response_model=StatsResponse)
async def get_stats(monitor: MonitorDep) -> StatsResponse:
    """Deployment statistics for an environment."""
    return StatsResponse(data=monitor.get_deployment_stats(monitor.config.environment))


@router.get("/metrics", response_model=None)
async def export_metrics(
    monitor: MonitorDep,
    format: Annotated[Literal["json", "csv"], Query()] = "json",
) -> MetricsResponse | Response:
    """Export the recorded metrics as JSON or as a CSV download."""
    exported = monitor.export_metrics(format)

    if format == "csv":
        return Response(
            content=exported,
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=deployment-metrics.csv"},
        )

    return MetricsResponse(data=json.loads(exported))


@router.get("/alerts", response_model=AlertListResponse)
async def list_alerts(
    monitor: MonitorDep,
    unresolved: Annotated[bool, Query()] = False,
) -> AlertListResponse:
    """Alerts raised for an environment."""
    alerts = monitor.get_alerts(unresolved_only=unresolved)
    return AlertListResponse(data=alerts, total=len(alerts))


@router.get("/health", response_model=MonitorHealthResponse)
async def monitoring_health(
    monitor: MonitorDep,
    registry: RegistryDep,
) -> MonitorHealthResponse:
    """Check the monitoring subsystem itself."""
    return MonitorHealthResponse(
        timestamp=utcnow(),
        monitor=monitor.summary(),
        environments=registry.environments(),
    )


@router.post("/metrics", response_model=MessageResponse)
async def record_metric(
    request: RecordMetricRequest,
    registry: RegistryDep,
) -> MessageResponse:
    """Record a deployment metric and evaluate alert rules."""
    if request.environment not in ENVIRONMENTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid environment: {request.environment}. Must be one of: {', '.join(ENVIRONMENTS)}",
        )

    monitor = registry.get(request.environment)
    await monitor.record_metric(DeploymentMetric(**request.model_dump()))

    return MessageResponse(message="Metric recorded successfully")


@router.post("/alerts/{alert_id}/resolve", response_model=MessageResponse)
async def resolve_alert(
    alert_id: str,
    monitor: MonitorDep,
    request: ResolveAlertRequest | None = None,
) -> MessageResponse:
    """Resolve an alert, optionally with a resolution note."""
    resolved = await monitor.resolve_alert(
        alert_id,
        request.resolution if request else None,
    )
    if not resolved:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Alert not found: {alert_id}",
        )

    return MessageResponse(message="Alert resolved successfully")


@router.get("/stream", summary="Stream monitor events (SSE)")
async def stream_events(
    monitor: MonitorDep,
    events: EventsDep,
) -> EventSourceResponse:
    """Stream metric and alert events for an environment using Server-Sent Events."""
    environment = monitor.config.environment

    async def event_generator():
        queue = events.subscribe(environment)

        try:
            yield {
                "event": "connected",
                "data": json.dumps({"environment": environment, **monitor.summary()}),
            }

            while True:
                try:
                    event: Event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_INTERVAL)
                    yield {
                        "event": event.event_type,
                        "data": json.dumps(event.data),
                    }
                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(environment, queue)

    return EventSourceResponse(event_generator())
