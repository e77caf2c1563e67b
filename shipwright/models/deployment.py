"""Deployment pipeline data models."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from shipwright.models.monitoring import utcnow

Environment = Literal["development", "staging", "production"]

ENVIRONMENTS: tuple[str, ...] = ("development", "staging", "production")

# Policy applied for every field the caller leaves unset
ENVIRONMENT_DEFAULTS: dict[str, dict[str, Any]] = {
    "development": {
        "dry_run": False,
        "skip_migrations": False,
        "timeout": 120000,
        "backup_enabled": False,
        "require_confirmation": False,
        "auto_rollback": False,
    },
    "staging": {
        "dry_run": False,
        "skip_migrations": False,
        "timeout": 300000,
        "backup_enabled": True,
        "require_confirmation": False,
        "auto_rollback": True,
    },
    "production": {
        "dry_run": False,
        "skip_migrations": False,
        "timeout": 600000,
        "backup_enabled": True,
        "require_confirmation": True,
        "auto_rollback": True,
    },
}


class DeploymentConfig(BaseModel):
    """Deployment options.

    Only ``environment`` is required. Fields left as ``None`` are filled
    from :data:`ENVIRONMENT_DEFAULTS` when a manager is constructed.
    """

    model_config = ConfigDict(frozen=True)

    environment: str
    dry_run: bool | None = None
    skip_migrations: bool | None = None
    timeout: int | None = Field(default=None, gt=0)
    backup_enabled: bool | None = None
    require_confirmation: bool | None = None
    auto_rollback: bool | None = None


class PendingMigration(BaseModel):
    """A migration reported by the status tool."""

    version: str
    status: str


class ValidationResult(BaseModel):
    """Outcome of pre-deployment validation."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    pending_migrations: list[PendingMigration] = Field(default_factory=list)
    build_status: Literal["success", "failed", "unknown"] = "unknown"
    environment_status: Literal["valid", "invalid"] = "valid"


class BackupResult(BaseModel):
    """Outcome of the datastore backup."""

    success: bool
    backup_path: str | None = None
    error: str | None = None
    skipped: bool = False


class MigrationResult(BaseModel):
    """Outcome of applying migrations."""

    success: bool
    migrations_executed: int = 0
    execution_time: int = 0
    error: str | None = None
    skipped: bool = False
    timed_out: bool = False


class DeploymentResult(BaseModel):
    """Outcome of the platform deploy command."""

    success: bool
    deployment_id: str | None = None
    error: str | None = None
    release_command_status: Literal["success", "failed"] | None = None


class VerificationResult(BaseModel):
    """Outcome of post-deployment verification."""

    success: bool = True
    health_check: bool = False
    migration_status: Literal["complete", "incomplete", "failed"] = "complete"
    app_responsive: bool = False
    pending_migrations: list[PendingMigration] | None = None


class RollbackOptions(BaseModel):
    """Selects a rollback strategy.

    ``restore_backup`` with ``backup_path`` restores data, ``steps`` reverts
    migrations, and no options rolls the application release back.
    """

    steps: int | None = Field(default=None, gt=0)
    restore_backup: bool = False
    backup_path: str | None = None


class RollbackResult(BaseModel):
    """Outcome of a rollback."""

    success: bool
    rollback_type: Literal["app", "migration", "backup"]
    error: str | None = None


class DeploymentTimings(BaseModel):
    """Millisecond timings collected across a pipeline run."""

    total_time: int = 0
    migration_time: int = 0
    deployment_time: int = 0
    verification_time: int = 0


class FullDeploymentResult(BaseModel):
    """Final output of a pipeline run."""

    success: bool = True
    deployment_id: str | None = None
    steps: list[str] = Field(default_factory=list)
    failed_step: str | None = None
    rollback_triggered: bool = False
    rollback_result: RollbackResult | None = None
    migration_error: str | None = None
    error: str | None = None
    dry_run: bool = False
    metrics: DeploymentTimings = Field(default_factory=DeploymentTimings)


class NotificationPayload(BaseModel):
    """Pipeline-level notification."""

    type: Literal["started", "success", "failed"]
    environment: Environment
    deployment_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    error: str | None = None
    metrics: DeploymentTimings | None = None
