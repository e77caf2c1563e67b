"""Unit tests for the deployment manager phase operations."""

import json
import re

import pytest

from shipwright.core.deployment import DeploymentManager
from shipwright.core.exceptions import CommandError, CommandTimeoutError, ConfigurationError
from shipwright.models.deployment import ENVIRONMENT_DEFAULTS, DeploymentConfig, RollbackOptions
from tests.conftest import FakeExecutor, FakeProber


class TestConstruction:
    """Tests for manager construction and configuration defaults."""

    @pytest.mark.parametrize("environment", ["development", "staging", "production"])
    def test_defaults_per_environment(self, make_manager, environment: str):
        config = make_manager(environment).get_config()

        expected = ENVIRONMENT_DEFAULTS[environment]
        assert config.model_dump() == {"environment": environment, **expected}

    def test_overrides_win(self, make_manager):
        config = make_manager("production", timeout=1000, backup_enabled=False).get_config()

        assert config.timeout == 1000
        assert config.backup_enabled is False
        assert config.auto_rollback is True

    def test_invalid_environment(self, make_manager):
        with pytest.raises(ConfigurationError) as exc_info:
            make_manager("qa")

        assert "Invalid environment: qa" in exc_info.value.message

    def test_invalid_environment_runs_nothing(self, executor: FakeExecutor):
        with pytest.raises(ConfigurationError):
            DeploymentManager(DeploymentConfig(environment="prod"), executor=executor, alert_channels=[])

        assert executor.commands == []

    def test_deployment_id_format(self, make_manager):
        manager = make_manager("staging")
        assert re.fullmatch(r"deploy-staging-\d{8}T\d{6}-[0-9a-f]{5}", manager.deployment_id)

    def test_deployment_id_stable(self, make_manager):
        manager = make_manager("staging")
        assert manager.deployment_id == manager.deployment_id

    def test_monitor_thresholds_follow_timeout(self, make_manager):
        manager = make_manager("staging", timeout=200000)
        thresholds = manager.monitor.config.thresholds

        assert thresholds.deployment_duration == 200000
        assert thresholds.migration_duration == 100000
        assert thresholds.error_rate == 0.1
        assert thresholds.consecutive_failures == 3

    def test_monitor_disabled_in_development(self, make_manager):
        assert make_manager("development").monitor.enabled is False
        assert make_manager("staging").monitor.enabled is True

    def test_monitor_failure_does_not_abort(self, monkeypatch, make_manager):
        def broken_monitor(*args, **kwargs):
            raise RuntimeError("monitor unavailable")

        monkeypatch.setattr("shipwright.core.deployment.DeploymentMonitor", broken_monitor)

        manager = make_manager("staging")
        assert manager.monitor is None


class TestValidatePreDeployment:
    """Tests for validate_pre_deployment."""

    @pytest.mark.asyncio
    async def test_all_checks_pass(self, make_manager, executor: FakeExecutor):
        executor.respond(
            "migrate:status",
            json.dumps([
                {"version": "001", "status": "applied"},
                {"version": "002", "status": "pending"},
            ]),
        )

        result = await make_manager().validate_pre_deployment()

        assert result.is_valid is True
        assert result.errors == []
        assert result.build_status == "success"
        assert [m.version for m in result.pending_migrations] == ["002"]

    @pytest.mark.asyncio
    async def test_accumulates_errors_in_order(self, executor: FakeExecutor, prober, sink):
        executor.fail("migrate:validate")
        executor.fail("npm run build")
        manager = DeploymentManager(
            DeploymentConfig(environment="staging"),
            executor=executor,
            prober=prober,
            notifier=sink,
            alert_channels=[],
            environ={"NEXTAUTH_SECRET": "s", "NEXTAUTH_URL": "u"},
        )

        result = await manager.validate_pre_deployment()

        assert result.is_valid is False
        assert len(result.errors) == 3
        assert result.errors[0].startswith("Migration validation failed")
        assert result.errors[1] == "Missing required environment variable: MONGODB_URI"
        assert result.errors[2].startswith("Build failed")
        assert result.environment_status == "invalid"
        assert result.build_status == "failed"
        # Every check ran despite the early failure
        assert executor.ran("migrate:status")
        assert executor.ran("npm run build")

    @pytest.mark.asyncio
    async def test_unparseable_status_is_not_fatal(self, make_manager, executor: FakeExecutor):
        executor.respond("migrate:status", "not json")

        result = await make_manager().validate_pre_deployment()

        assert result.is_valid is True
        assert result.pending_migrations == []

    @pytest.mark.asyncio
    async def test_failed_status_tool_is_not_fatal(self, make_manager, executor: FakeExecutor):
        executor.fail("migrate:status")

        result = await make_manager().validate_pre_deployment()

        assert result.is_valid is True
        assert result.pending_migrations == []

    def test_first_missing_variable_wins(self, executor: FakeExecutor):
        manager = DeploymentManager(
            DeploymentConfig(environment="staging"),
            executor=executor,
            alert_channels=[],
            environ={"MONGODB_URI": "mongodb://x"},
        )

        with pytest.raises(ConfigurationError) as exc_info:
            manager.validate_environment_variables()

        assert exc_info.value.message == "Missing required environment variable: NEXTAUTH_SECRET"


class TestCreateBackup:
    """Tests for create_backup."""

    @pytest.mark.asyncio
    async def test_creates_timestamped_archive(self, make_manager, executor: FakeExecutor):
        result = await make_manager("staging").create_backup()

        assert result.success is True
        assert result.skipped is False
        assert re.search(r"backup-\d{8}T\d{6}\.gz$", result.backup_path)
        assert executor.ran("mongodump")
        assert executor.ran(result.backup_path)

    @pytest.mark.asyncio
    async def test_skipped_in_dry_run(self, make_manager, executor: FakeExecutor):
        result = await make_manager("production", dry_run=True).create_backup()

        assert result.success is True
        assert result.skipped is True
        assert not executor.ran("mongodump")

    @pytest.mark.asyncio
    async def test_skipped_when_disabled(self, make_manager):
        result = await make_manager("development").create_backup()
        assert result.skipped is True

    @pytest.mark.asyncio
    async def test_failure_returned_not_raised(self, make_manager, executor: FakeExecutor):
        executor.fail("mongodump", stderr="connection refused")

        result = await make_manager("staging").create_backup()

        assert result.success is False
        assert "connection refused" in result.error


class TestRunMigrations:
    """Tests for run_migrations."""

    @pytest.mark.asyncio
    async def test_applies_migrations(self, make_manager, executor: FakeExecutor):
        executor.respond("migrate:up", "3 migrations executed")

        result = await make_manager().run_migrations()

        assert result.success is True
        assert result.migrations_executed == 3
        assert result.execution_time >= 0

    @pytest.mark.asyncio
    async def test_skip_migrations(self, make_manager, executor: FakeExecutor):
        result = await make_manager(skip_migrations=True).run_migrations()

        assert result.success is True
        assert result.skipped is True
        assert result.migrations_executed == 0
        assert not executor.ran("migrate:up")

    @pytest.mark.asyncio
    async def test_dry_run_marker(self, make_manager, executor: FakeExecutor):
        await make_manager(dry_run=True).run_migrations()
        assert executor.ran("MIGRATION_DRY_RUN=true npm run migrate:up")

    @pytest.mark.asyncio
    async def test_timeout_passed_to_executor(self, make_manager, executor: FakeExecutor):
        await make_manager(timeout=4321).run_migrations()
        assert 4321 in executor.timeouts

    @pytest.mark.asyncio
    async def test_slow_executor_times_out(self, make_manager, executor: FakeExecutor):
        executor.delay("migrate:up", 2.0)

        result = await make_manager(timeout=50).run_migrations()

        assert result.success is False
        assert result.timed_out is True
        assert result.error == "Migration execution timeout after 50ms"
        assert result.execution_time >= 40

    @pytest.mark.asyncio
    async def test_executor_timeout_reported_as_timeout(self, make_manager, executor: FakeExecutor):
        executor.fail("migrate:up", CommandTimeoutError("npm run migrate:up", 300000))

        result = await make_manager().run_migrations()

        assert result.timed_out is True
        assert "timeout" in result.error
        assert "300000" in result.error

    @pytest.mark.asyncio
    async def test_other_failure_is_not_timeout(self, make_manager, executor: FakeExecutor):
        executor.fail("migrate:up", stderr="duplicate key")

        result = await make_manager().run_migrations()

        assert result.success is False
        assert result.timed_out is False
        assert "duplicate key" in result.error


class TestDeployToTarget:
    """Tests for deploy_to_target."""

    @pytest.mark.asyncio
    async def test_extracts_release_id(self, make_manager, executor: FakeExecutor):
        executor.respond("flyctl deploy", "==> Monitoring deployment\n release v42 created\n")

        result = await make_manager("staging").deploy_to_target()

        assert result.success is True
        assert result.deployment_id == "v42"
        assert result.release_command_status == "success"

    @pytest.mark.asyncio
    async def test_fallback_id(self, make_manager, executor: FakeExecutor):
        executor.respond("flyctl deploy", "done")

        result = await make_manager("staging").deploy_to_target()

        assert result.deployment_id.startswith("deployment-")

    @pytest.mark.asyncio
    async def test_production_config_file(self, make_manager, executor: FakeExecutor):
        await make_manager("production").deploy_to_target()
        assert executor.ran("flyctl deploy --remote-only --config fly.production.toml")

    @pytest.mark.asyncio
    async def test_staging_has_no_config_file(self, make_manager, executor: FakeExecutor):
        await make_manager("staging").deploy_to_target()
        assert not executor.ran("--config")

    @pytest.mark.asyncio
    async def test_release_command_failure(self, make_manager, executor: FakeExecutor):
        executor.fail(
            "flyctl deploy",
            CommandError("flyctl deploy", 1, "", "Error: release_command failed running on machine"),
        )

        result = await make_manager("staging").deploy_to_target()

        assert result.success is False
        assert result.error == "Release command failed"
        assert result.release_command_status == "failed"

    @pytest.mark.asyncio
    async def test_generic_failure(self, make_manager, executor: FakeExecutor):
        executor.fail("flyctl deploy", stderr="unauthorized")

        result = await make_manager("staging").deploy_to_target()

        assert result.success is False
        assert result.release_command_status is None
        assert "unauthorized" in result.error


class TestVerifyDeployment:
    """Tests for verify_deployment."""

    @pytest.mark.asyncio
    async def test_all_checks_pass(self, make_manager):
        result = await make_manager().verify_deployment()

        assert result.success is True
        assert result.health_check is True
        assert result.app_responsive is True
        assert result.migration_status == "complete"

    @pytest.mark.asyncio
    async def test_pending_migrations(self, make_manager, executor: FakeExecutor):
        executor.respond("migrate:status", json.dumps([{"version": "007", "status": "pending"}]))

        result = await make_manager().verify_deployment()

        assert result.success is False
        assert result.migration_status == "incomplete"
        assert result.pending_migrations[0].version == "007"

    @pytest.mark.asyncio
    async def test_status_failure_degrades_to_failed(self, make_manager, executor: FakeExecutor):
        executor.fail("migrate:status")

        result = await make_manager().verify_deployment()

        assert result.success is False
        assert result.migration_status == "failed"

    @pytest.mark.asyncio
    async def test_health_failure_still_runs_other_checks(self, executor: FakeExecutor, sink, required_environ):
        prober = FakeProber(healthy=False)
        manager = DeploymentManager(
            DeploymentConfig(environment="staging"),
            executor=executor,
            prober=prober,
            notifier=sink,
            alert_channels=[],
            environ=required_environ,
        )

        result = await manager.verify_deployment()

        assert result.success is False
        assert result.health_check is False
        assert result.app_responsive is True
        assert executor.ran("migrate:status")

    @pytest.mark.asyncio
    async def test_unexpected_body_not_responsive(self, executor: FakeExecutor, sink, required_environ):
        manager = DeploymentManager(
            DeploymentConfig(environment="staging"),
            executor=executor,
            prober=FakeProber(body={"status": "degraded"}),
            notifier=sink,
            alert_channels=[],
            environ=required_environ,
        )

        result = await manager.verify_deployment()

        assert result.success is False
        assert result.health_check is True
        assert result.app_responsive is False

    @pytest.mark.asyncio
    async def test_probe_errors(self, executor: FakeExecutor, sink, required_environ):
        manager = DeploymentManager(
            DeploymentConfig(environment="staging"),
            executor=executor,
            prober=FakeProber(error=ConnectionError("refused")),
            notifier=sink,
            alert_channels=[],
            environ=required_environ,
        )

        result = await manager.verify_deployment()

        assert result.success is False
        assert result.health_check is False
        assert result.app_responsive is False


class TestRollback:
    """Tests for rollback strategies."""

    @pytest.mark.asyncio
    async def test_default_is_app_rollback(self, make_manager, executor: FakeExecutor):
        result = await make_manager().rollback()

        assert result.success is True
        assert result.rollback_type == "app"
        assert executor.commands == ["flyctl rollback"]

    @pytest.mark.asyncio
    async def test_migration_steps(self, make_manager, executor: FakeExecutor):
        result = await make_manager().rollback(RollbackOptions(steps=2))

        assert result.rollback_type == "migration"
        assert executor.commands == ["npm run migrate:down 2"]

    @pytest.mark.asyncio
    async def test_backup_restore(self, make_manager, executor: FakeExecutor):
        result = await make_manager().rollback(
            RollbackOptions(restore_backup=True, backup_path="/tmp/backup-1.gz")
        )

        assert result.rollback_type == "backup"
        assert executor.ran("mongorestore")
        assert executor.ran("/tmp/backup-1.gz")
        assert executor.ran("--drop")

    @pytest.mark.asyncio
    async def test_failure_reports_attempted_type(self, make_manager, executor: FakeExecutor):
        executor.fail("migrate:down", stderr="no migrations to revert")

        result = await make_manager().rollback(RollbackOptions(steps=1))

        assert result.success is False
        assert result.rollback_type == "migration"
        assert "no migrations to revert" in result.error
