"""Data models for Shipwright."""

from shipwright.models.deployment import (
    ENVIRONMENT_DEFAULTS,
    ENVIRONMENTS,
    BackupResult,
    DeploymentConfig,
    DeploymentResult,
    DeploymentTimings,
    Environment,
    FullDeploymentResult,
    MigrationResult,
    NotificationPayload,
    PendingMigration,
    RollbackOptions,
    RollbackResult,
    ValidationResult,
    VerificationResult,
)
from shipwright.models.monitoring import (
    Alert,
    AlertChannelConfig,
    AlertConfig,
    AlertSeverity,
    AlertThresholds,
    ChannelType,
    DeploymentMetric,
    DeploymentPhase,
    DeploymentStats,
    MetricStatus,
)

__all__ = [
    # Deployment models
    "ENVIRONMENTS",
    "ENVIRONMENT_DEFAULTS",
    "Environment",
    "DeploymentConfig",
    "ValidationResult",
    "PendingMigration",
    "BackupResult",
    "MigrationResult",
    "DeploymentResult",
    "VerificationResult",
    "RollbackOptions",
    "RollbackResult",
    "DeploymentTimings",
    "FullDeploymentResult",
    "NotificationPayload",
    # Monitoring models
    "DeploymentPhase",
    "MetricStatus",
    "AlertSeverity",
    "ChannelType",
    "DeploymentMetric",
    "Alert",
    "AlertChannelConfig",
    "AlertThresholds",
    "AlertConfig",
    "DeploymentStats",
]
