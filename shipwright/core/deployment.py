"""Deployment Manager.

Ships the application and its schema migrations to an environment:

1. validate - migration files, pending migrations, required variables, build
2. backup - datastore dump (skipped for dry runs or when disabled)
3. migrate - apply migrations within the configured timeout
4. deploy - hosting platform deploy
5. verify - health check, migration status, responsiveness

Migration and deploy failures trigger an application rollback when the
environment enables auto-rollback. Every phase is reported to a
DeploymentMonitor, whose failures never affect the deployment.
"""

import asyncio
import json
import os
import re
import shlex
import time
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from shipwright.config import Settings, settings as default_settings
from shipwright.core.exceptions import (
    CommandError,
    CommandTimeoutError,
    ConfigurationError,
)
from shipwright.core.executor import CommandExecutor, HttpProber, ShellCommandExecutor
from shipwright.core.notifications import NotificationSink, get_default_sink
from shipwright.models.deployment import (
    ENVIRONMENT_DEFAULTS,
    ENVIRONMENTS,
    BackupResult,
    DeploymentConfig,
    DeploymentResult,
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
    AlertChannelConfig,
    AlertConfig,
    AlertThresholds,
    DeploymentMetric,
    DeploymentPhase,
    MetricStatus,
)
from shipwright.monitoring.channels import AlertChannel
from shipwright.monitoring.config import load_alert_channels
from shipwright.monitoring.monitor import DeploymentMonitor
from shipwright.utils.logging import get_logger

logger = get_logger(__name__)


def _compact_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def normalize_config(config: DeploymentConfig) -> DeploymentConfig:
    """Fill unset fields from the environment defaults.

    Raises:
        ConfigurationError: If the environment is not recognized.
    """
    if config.environment not in ENVIRONMENTS:
        raise ConfigurationError(
            f"Invalid environment: {config.environment}. "
            f"Must be one of: {', '.join(ENVIRONMENTS)}",
            {"environment": config.environment},
        )

    defaults = ENVIRONMENT_DEFAULTS[config.environment]
    overrides = config.model_dump(exclude_none=True)
    return DeploymentConfig(**{**defaults, **overrides})


class DeploymentManager:
    """Runs the deployment pipeline for one environment.

    One instance drives one logical deployment; ``deploy()`` is not meant
    to be called concurrently on the same instance.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        executor: CommandExecutor | None = None,
        prober: HttpProber | None = None,
        notifier: NotificationSink | None = None,
        alert_channels: list[AlertChannelConfig] | None = None,
        channel_senders: dict[Any, AlertChannel] | None = None,
        environ: Mapping[str, str] | None = None,
        settings: Settings | None = None,
    ):
        self.config = normalize_config(config)
        self.settings = settings or default_settings
        self.executor = executor or ShellCommandExecutor()
        self.prober = prober or HttpProber()
        self.notifier = notifier or get_default_sink()
        self.environ = environ if environ is not None else os.environ
        self.deployment_id = self._generate_deployment_id()
        self.logger = logger.bind(
            environment=self.config.environment,
            deployment_id=self.deployment_id,
        )
        self._background_tasks: set[asyncio.Task[None]] = set()
        self.monitor = self._initialize_monitoring(alert_channels, channel_senders)

    @property
    def environment(self) -> str:
        return self.config.environment

    def get_config(self) -> DeploymentConfig:
        """The resolved configuration."""
        return self.config

    def _generate_deployment_id(self) -> str:
        return f"deploy-{self.config.environment}-{_compact_timestamp()}-{uuid4().hex[:5]}"

    def _initialize_monitoring(
        self,
        alert_channels: list[AlertChannelConfig] | None,
        channel_senders: dict[Any, AlertChannel] | None,
    ) -> DeploymentMonitor | None:
        try:
            if alert_channels is None:
                alert_channels = load_alert_channels(
                    self.config.environment, self.settings.monitoring_config_path
                )

            alert_config = AlertConfig(
                environment=self.config.environment,
                channels=alert_channels,
                thresholds=AlertThresholds(
                    deployment_duration=self.config.timeout,
                    migration_duration=self.config.timeout // 2,
                    error_rate=0.1,
                    consecutive_failures=3,
                ),
                enabled=self.config.environment != "development",
            )
            return DeploymentMonitor(alert_config, channels=channel_senders)
        except Exception as e:
            # Metrics become no-ops; a monitoring outage never blocks a deployment
            self.logger.warning("deployment.monitoring.unavailable", error=str(e))
            return None

    async def _record_metric(
        self,
        phase: DeploymentPhase,
        status: MetricStatus,
        duration: int | None = None,
        error: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if self.monitor is None:
            return

        try:
            await self.monitor.record_metric(
                DeploymentMetric(
                    environment=self.config.environment,
                    deployment_id=self.deployment_id,
                    phase=phase,
                    status=status,
                    duration=duration,
                    error=error,
                    details=details,
                )
            )
        except Exception as e:
            self.logger.warning("deployment.metric.failed", phase=phase.value, error=str(e))

    # Phase operations

    async def validate_pre_deployment(self) -> ValidationResult:
        """Run every pre-deployment check and collect all failures."""
        result = ValidationResult()

        try:
            await self.executor.run(self.settings.migrate_validate_command)
        except Exception as e:
            result.is_valid = False
            result.errors.append(f"Migration validation failed: {e}")

        try:
            status = await self.executor.run(self.settings.migrate_status_command)
            result.pending_migrations = self._parse_pending_migrations(status.stdout)
        except Exception as e:
            # Status tool output is optional at this stage
            self.logger.debug("deployment.validation.status_unavailable", error=str(e))
            result.pending_migrations = []

        try:
            self.validate_environment_variables()
        except ConfigurationError as e:
            result.is_valid = False
            result.environment_status = "invalid"
            result.errors.append(e.message)

        try:
            await self.executor.run(self.settings.build_command)
            result.build_status = "success"
        except Exception as e:
            result.is_valid = False
            result.build_status = "failed"
            result.errors.append(f"Build failed: {e}")

        self.logger.info(
            "deployment.validation.completed",
            is_valid=result.is_valid,
            errors=len(result.errors),
            pending_migrations=len(result.pending_migrations),
        )
        return result

    def validate_environment_variables(self) -> None:
        """Raise ConfigurationError naming the first missing required variable."""
        for name in self.settings.required_env_vars:
            if not self.environ.get(name):
                raise ConfigurationError(
                    f"Missing required environment variable: {name}",
                    {"variable": name},
                )

    def _parse_pending_migrations(self, output: str) -> list[PendingMigration]:
        """Pending entries from the status tool's JSON array.

        Raises:
            ValueError: If the output is not a JSON array.
        """
        migrations = json.loads(output)
        if not isinstance(migrations, list):
            raise ValueError("Migration status output is not a list")

        return [
            PendingMigration(version=str(m.get("version", "")), status=m["status"])
            for m in migrations
            if isinstance(m, dict) and m.get("status") == "pending"
        ]

    async def create_backup(self) -> BackupResult:
        """Dump the datastore to a timestamped archive."""
        if self.config.dry_run or not self.config.backup_enabled:
            return BackupResult(success=True, skipped=True)

        try:
            backup_path = os.path.join(
                self.settings.backup_directory, f"backup-{_compact_timestamp()}.gz"
            )
            command = self.settings.backup_command.format(
                uri=shlex.quote(self.environ.get(self.settings.database_uri_var, "")),
                path=shlex.quote(backup_path),
            )
            await self.executor.run(command)

            self.logger.info("deployment.backup.created", backup_path=backup_path)
            return BackupResult(success=True, backup_path=backup_path)
        except Exception as e:
            self.logger.error("deployment.backup.failed", error=str(e))
            return BackupResult(success=False, error=str(e))

    async def run_migrations(self) -> MigrationResult:
        """Apply migrations, bounded by the configured timeout."""
        if self.config.skip_migrations:
            return MigrationResult(success=True, skipped=True, migrations_executed=0, execution_time=0)

        start = time.perf_counter()
        command = self.settings.migrate_up_command
        if self.config.dry_run:
            command = f"{self.settings.migration_dry_run_marker} {command}"

        try:
            output = await self._execute_with_timeout(command, self.config.timeout)
            return MigrationResult(
                success=True,
                migrations_executed=self._count_executed_migrations(output.stdout),
                execution_time=_elapsed_ms(start),
            )
        except (asyncio.TimeoutError, CommandTimeoutError):
            self.logger.error("deployment.migration.timeout", timeout_ms=self.config.timeout)
            return MigrationResult(
                success=False,
                error=f"Migration execution timeout after {self.config.timeout}ms",
                timed_out=True,
                execution_time=_elapsed_ms(start),
            )
        except Exception as e:
            return MigrationResult(success=False, error=str(e), execution_time=_elapsed_ms(start))

    async def _execute_with_timeout(self, command: str, timeout_ms: int):
        # Race the command against our own timer; the executor may not enforce it
        return await asyncio.wait_for(
            self.executor.run(command, timeout_ms=timeout_ms),
            timeout=timeout_ms / 1000,
        )

    def _count_executed_migrations(self, output: str) -> int:
        match = re.search(r"(\d+)\s+migrations?\s+(?:executed|applied)", output, re.IGNORECASE)
        if match:
            return int(match.group(1))
        return 1

    async def deploy_to_target(self) -> DeploymentResult:
        """Run the hosting platform deploy command."""
        command = self.settings.deploy_command
        if self.config.environment == "production":
            command = f"{command} --config {self.settings.production_deploy_config}"

        try:
            output = await self.executor.run(command)
            return DeploymentResult(
                success=True,
                deployment_id=self._extract_deployment_id(output.stdout),
                release_command_status="success",
            )
        except Exception as e:
            text = e.output if isinstance(e, CommandError) else ""
            if "release_command" in f"{e}\n{text}":
                # The new release may already be partially live
                self.logger.error("deployment.release_command.failed", error=str(e))
                return DeploymentResult(
                    success=False,
                    error="Release command failed",
                    release_command_status="failed",
                )
            return DeploymentResult(success=False, error=str(e))

    def _extract_deployment_id(self, output: str) -> str:
        match = re.search(r"\brelease\s+(v\d+)\b", output, re.IGNORECASE)
        if match:
            return match.group(1)

        match = re.search(r"\b(v\d+)\s+deployed\b", output, re.IGNORECASE)
        if match:
            return match.group(1)

        return f"deployment-{int(time.time() * 1000)}"

    async def verify_deployment(self) -> VerificationResult:
        """Run all three post-deployment checks.

        Every check runs even when an earlier one fails; any failure makes
        the whole verification fail.
        """
        result = VerificationResult()

        try:
            result.health_check = await self.prober.check(self.settings.health_check_url)
        except Exception as e:
            self.logger.warning("deployment.verification.health_check_error", error=str(e))
            result.health_check = False
        if not result.health_check:
            result.success = False

        try:
            status = await self.executor.run(self.settings.migrate_status_command)
            pending = self._parse_pending_migrations(status.stdout)
            if pending:
                result.success = False
                result.migration_status = "incomplete"
                result.pending_migrations = pending
        except Exception as e:
            self.logger.warning("deployment.verification.status_error", error=str(e))
            result.success = False
            result.migration_status = "failed"

        try:
            body = await self.prober.fetch_json(self.settings.health_check_url)
            result.app_responsive = isinstance(body, dict) and body.get("status") == "ok"
        except Exception as e:
            self.logger.warning("deployment.verification.responsiveness_error", error=str(e))
            result.app_responsive = False
        if not result.app_responsive:
            result.success = False

        return result

    async def rollback(self, options: RollbackOptions | None = None) -> RollbackResult:
        """Roll back using exactly one strategy.

        Restores the named backup, reverts ``steps`` migrations, or (with no
        options) asks the hosting platform to roll back the release.
        """
        options = options or RollbackOptions()

        if options.restore_backup and options.backup_path:
            rollback_type = "backup"
            command = self.settings.restore_command.format(
                uri=shlex.quote(self.environ.get(self.settings.database_uri_var, "")),
                path=shlex.quote(options.backup_path),
            )
        elif options.steps:
            rollback_type = "migration"
            command = f"{self.settings.migrate_down_command} {options.steps}"
        else:
            rollback_type = "app"
            command = self.settings.platform_rollback_command

        try:
            await self.executor.run(command)
            self.logger.info("deployment.rollback.completed", rollback_type=rollback_type)
            return RollbackResult(success=True, rollback_type=rollback_type)
        except Exception as e:
            self.logger.error("deployment.rollback.failed", rollback_type=rollback_type, error=str(e))
            return RollbackResult(success=False, rollback_type=rollback_type, error=str(e))

    # Pipeline

    async def deploy(self) -> FullDeploymentResult:
        """Run the whole pipeline.

        Never raises: every outcome, including unexpected exceptions, is
        reported through the returned result.
        """
        start = time.perf_counter()
        result = FullDeploymentResult(
            deployment_id=self.deployment_id,
            dry_run=self.config.dry_run,
        )

        self.logger.info("deployment.pipeline.started", dry_run=self.config.dry_run)

        try:
            await self._record_metric(DeploymentPhase.VALIDATION, MetricStatus.STARTED)
            await self._notify("started")

            completed = await self._execute_steps(result)
            result.metrics.total_time = _elapsed_ms(start)

            if not completed:
                self.logger.warning(
                    "deployment.pipeline.failed",
                    failed_step=result.failed_step,
                    rollback_triggered=result.rollback_triggered,
                )
                return result

            await self._notify_success(result)
            self.logger.info("deployment.pipeline.completed", total_time=result.metrics.total_time)
            return result

        except Exception as e:
            return self._handle_deployment_error(result, start, e)

    async def _execute_steps(self, result: FullDeploymentResult) -> bool:
        # Step 1: Validate
        if not await self._validation_step(result):
            return False

        # Step 2: Backup
        if not await self._backup_step(result):
            return False

        # Step 3: Migrate
        if not await self._migration_step(result):
            return False

        # Step 4: Deploy
        if not await self._deployment_step(result):
            return False

        # Step 5: Verify
        return await self._verification_step(result)

    async def _validation_step(self, result: FullDeploymentResult) -> bool:
        start = time.perf_counter()
        validation = await self.validate_pre_deployment()

        if not validation.is_valid:
            await self._record_metric(
                DeploymentPhase.VALIDATION,
                MetricStatus.FAILED,
                duration=_elapsed_ms(start),
                error=", ".join(validation.errors),
                details=validation.model_dump(),
            )
            result.success = False
            result.failed_step = "validate"
            result.error = "; ".join(validation.errors)
            return False

        await self._record_metric(
            DeploymentPhase.VALIDATION,
            MetricStatus.SUCCESS,
            duration=_elapsed_ms(start),
            details={"pending_migrations": len(validation.pending_migrations)},
        )
        result.steps.append("validate")
        return True

    async def _backup_step(self, result: FullDeploymentResult) -> bool:
        if not self.config.backup_enabled or self.config.dry_run:
            return True

        await self._record_metric(DeploymentPhase.BACKUP, MetricStatus.STARTED)
        start = time.perf_counter()
        backup = await self.create_backup()

        if not backup.success:
            await self._record_metric(
                DeploymentPhase.BACKUP,
                MetricStatus.FAILED,
                duration=_elapsed_ms(start),
                error=backup.error,
            )
            result.success = False
            result.failed_step = "backup"
            result.error = backup.error
            return False

        await self._record_metric(
            DeploymentPhase.BACKUP,
            MetricStatus.SUCCESS,
            duration=_elapsed_ms(start),
            details={"backup_path": backup.backup_path},
        )
        result.steps.append("backup")
        return True

    async def _migration_step(self, result: FullDeploymentResult) -> bool:
        await self._record_metric(DeploymentPhase.MIGRATION, MetricStatus.STARTED)
        start = time.perf_counter()
        migration = await self.run_migrations()

        if not migration.success:
            await self._record_metric(
                DeploymentPhase.MIGRATION,
                MetricStatus.FAILED,
                duration=_elapsed_ms(start),
                error=migration.error,
                details={"timed_out": migration.timed_out},
            )
            result.success = False
            result.failed_step = "migrate"
            result.migration_error = migration.error
            result.error = migration.error
            await self._maybe_auto_rollback(result)
            return False

        migration_time = _elapsed_ms(start)
        await self._record_metric(
            DeploymentPhase.MIGRATION,
            MetricStatus.SUCCESS,
            duration=migration_time,
            details={
                "migrations_executed": migration.migrations_executed,
                "skipped": migration.skipped,
            },
        )
        result.steps.append("migrate")
        result.metrics.migration_time = migration_time
        return True

    async def _deployment_step(self, result: FullDeploymentResult) -> bool:
        await self._record_metric(DeploymentPhase.DEPLOYMENT, MetricStatus.STARTED)
        start = time.perf_counter()
        deployment = await self.deploy_to_target()

        if not deployment.success:
            await self._record_metric(
                DeploymentPhase.DEPLOYMENT,
                MetricStatus.FAILED,
                duration=_elapsed_ms(start),
                error=deployment.error,
                details={"release_command_status": deployment.release_command_status},
            )
            result.success = False
            result.failed_step = "deploy"
            result.error = deployment.error
            await self._maybe_auto_rollback(result)
            return False

        deployment_time = _elapsed_ms(start)
        await self._record_metric(
            DeploymentPhase.DEPLOYMENT,
            MetricStatus.SUCCESS,
            duration=deployment_time,
            details={"deployment_id": deployment.deployment_id},
        )
        result.steps.append("deploy")
        result.metrics.deployment_time = deployment_time
        return True

    async def _verification_step(self, result: FullDeploymentResult) -> bool:
        await self._record_metric(DeploymentPhase.VERIFICATION, MetricStatus.STARTED)
        start = time.perf_counter()
        verification = await self.verify_deployment()

        if not verification.success:
            # The release is live; surface the failure instead of reverting it
            await self._record_metric(
                DeploymentPhase.VERIFICATION,
                MetricStatus.FAILED,
                duration=_elapsed_ms(start),
                error="Deployment verification failed",
                details=verification.model_dump(),
            )
            result.success = False
            result.failed_step = "verify"
            result.error = "Deployment verification failed"
            return False

        verification_time = _elapsed_ms(start)
        await self._record_metric(
            DeploymentPhase.VERIFICATION,
            MetricStatus.SUCCESS,
            duration=verification_time,
            details=verification.model_dump(),
        )
        result.steps.append("verify")
        result.metrics.verification_time = verification_time
        return True

    async def _maybe_auto_rollback(self, result: FullDeploymentResult) -> None:
        if not self.config.auto_rollback:
            return

        await self._record_metric(DeploymentPhase.ROLLBACK, MetricStatus.STARTED)
        start = time.perf_counter()
        rollback = await self.rollback()
        await self._record_metric(
            DeploymentPhase.ROLLBACK,
            MetricStatus.SUCCESS if rollback.success else MetricStatus.FAILED,
            duration=_elapsed_ms(start),
            error=rollback.error,
            details={"rollback_type": rollback.rollback_type},
        )
        result.rollback_triggered = True
        result.rollback_result = rollback

    def _handle_deployment_error(
        self, result: FullDeploymentResult, start: float, error: Exception
    ) -> FullDeploymentResult:
        self.logger.exception("deployment.pipeline.error", error=str(error))

        result.success = False
        result.error = str(error)
        result.metrics.total_time = _elapsed_ms(start)

        # Fire and forget
        task = asyncio.create_task(self._notify_failure(str(error)))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

        return result

    async def _notify(self, type: str, **fields: Any) -> None:
        await self.notifier.send_notification(
            NotificationPayload(
                type=type,
                environment=self.config.environment,
                deployment_id=self.deployment_id,
                **fields,
            )
        )

    async def _notify_success(self, result: FullDeploymentResult) -> None:
        try:
            await self._notify("success", metrics=result.metrics)
        except Exception as e:
            # The release is already live and verified
            self.logger.error("deployment.notification.failed", type="success", error=str(e))

    async def _notify_failure(self, error: str) -> None:
        try:
            await self._notify("failed", error=error)
        except Exception as e:
            self.logger.error("deployment.notification.failed", type="failed", error=str(e))

    async def wait_for_notifications(self) -> None:
        """Wait for pending fire-and-forget notifications."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
