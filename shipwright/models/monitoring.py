"""Monitoring data models: metrics, alerts and alert configuration."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class DeploymentPhase(str, Enum):
    """Discrete stage of the deployment pipeline."""

    VALIDATION = "validation"
    BACKUP = "backup"
    MIGRATION = "migration"
    DEPLOYMENT = "deployment"
    VERIFICATION = "verification"
    ROLLBACK = "rollback"


class MetricStatus(str, Enum):
    """Outcome reported by a metric."""

    STARTED = "started"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    FAILED = "failed"

    @property
    def is_failure(self) -> bool:
        return self in (MetricStatus.FAILED, MetricStatus.ERROR)


class AlertSeverity(str, Enum):
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ChannelType(str, Enum):
    """Supported alert destinations."""

    CHAT = "chat"
    EMAIL = "email"
    WEBHOOK = "webhook"
    PAGER = "pager"


class DeploymentMetric(BaseModel):
    """A single pipeline observation. Never mutated once recorded."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)
    environment: str
    deployment_id: str
    phase: DeploymentPhase
    status: MetricStatus
    duration: int | None = None
    error: str | None = None
    details: dict[str, Any] | None = None


class Alert(BaseModel):
    """An operator alert raised by the deployment monitor."""

    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    severity: AlertSeverity
    title: str
    message: str
    environment: str
    deployment_id: str | None = None
    metrics: list[DeploymentMetric] = Field(default_factory=list)

    # Resolution tracking
    resolved: bool = False
    resolved_at: datetime | None = None


class AlertChannelConfig(BaseModel):
    """A configured alert destination."""

    type: ChannelType
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True


class AlertThresholds(BaseModel):
    """Limits that turn metrics into alerts."""

    deployment_duration: int = Field(default=300000, ge=0)
    migration_duration: int = Field(default=60000, ge=0)
    error_rate: float = Field(default=0.1, ge=0, le=1)
    consecutive_failures: int = Field(default=3, ge=1)


class AlertConfig(BaseModel):
    """Per-environment alerting policy."""

    environment: str
    enabled: bool = True
    channels: list[AlertChannelConfig] = Field(default_factory=list)
    thresholds: AlertThresholds = Field(default_factory=AlertThresholds)


class DeploymentStats(BaseModel):
    """Aggregate statistics over recorded metrics."""

    environment: str = "all"
    deployment_count: int = 0
    successful_deployments: int = 0
    success_rate: float = 0.0
    average_deployment_time: float = 0.0
    average_migration_time: float = 0.0
    total_alerts: int = 0
    active_alerts: int = 0
    last_deployment: datetime | None = None
