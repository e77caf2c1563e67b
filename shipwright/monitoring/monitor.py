"""Deployment monitoring and alerting.

Records pipeline metrics, evaluates alert rules against configured
thresholds, and fans alerts out to every enabled channel. All state lives
on the monitor instance; nothing is shared between monitors.
"""

import asyncio
import csv
import io
import json
import time
from collections import defaultdict
from typing import Any, Literal
from uuid import uuid4

from shipwright.core.events import EventBus
from shipwright.models.monitoring import (
    Alert,
    AlertChannelConfig,
    AlertConfig,
    AlertSeverity,
    ChannelType,
    DeploymentMetric,
    DeploymentPhase,
    DeploymentStats,
    MetricStatus,
    utcnow,
)
from shipwright.monitoring.channels import AlertChannel, default_channels
from shipwright.utils.logging import get_logger

logger = get_logger(__name__)

# Number of most recent metrics inspected for consecutive failures
RECENT_WINDOW = 5

CSV_COLUMNS = ["timestamp", "environment", "deploymentId", "phase", "status", "duration", "error"]


class DeploymentMonitor:
    """Deployment metrics store and alert engine."""

    def __init__(
        self,
        config: AlertConfig,
        channels: dict[ChannelType, AlertChannel] | None = None,
        events: EventBus | None = None,
    ):
        self.config = config
        self.channels = channels if channels is not None else default_channels()
        self.events = events
        self._metrics: list[DeploymentMetric] = []
        self._alerts: list[Alert] = []

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def record_metric(self, metric: DeploymentMetric) -> None:
        """Record a metric and evaluate alert rules against it.

        Never raises: a failing rule is logged and the remaining rules still
        run, so a metric is never lost to an alerting problem.
        """
        self._metrics.append(metric)

        if self.config.enabled:
            for rule in (
                self._check_slow_deployment,
                self._check_slow_migration,
                self._check_phase_failure,
                self._check_consecutive_failures,
            ):
                try:
                    await rule(metric)
                except Exception as e:
                    logger.error(
                        "monitor.rule.failed",
                        rule=rule.__name__,
                        deployment_id=metric.deployment_id,
                        error=str(e),
                    )

        if self.events is not None:
            try:
                await self.events.publish_metric(metric)
            except Exception as e:
                logger.warning("monitor.event.publish_failed", error=str(e))

        logger.debug(
            "monitor.metric.recorded",
            phase=metric.phase.value,
            status=metric.status.value,
            duration=metric.duration,
            environment=metric.environment,
        )

    # Alert rules, evaluated in this order

    async def _check_slow_deployment(self, metric: DeploymentMetric) -> None:
        threshold = self.config.thresholds.deployment_duration
        if (
            metric.phase == DeploymentPhase.DEPLOYMENT
            and metric.status == MetricStatus.SUCCESS
            and metric.duration
            and metric.duration > threshold
        ):
            await self.create_alert(
                severity=AlertSeverity.WARNING,
                title="Slow Deployment Detected",
                message=f"Deployment took {metric.duration}ms, exceeding threshold of {threshold}ms",
                environment=metric.environment,
                deployment_id=metric.deployment_id,
                metrics=[metric],
            )

    async def _check_slow_migration(self, metric: DeploymentMetric) -> None:
        threshold = self.config.thresholds.migration_duration
        if (
            metric.phase == DeploymentPhase.MIGRATION
            and metric.status == MetricStatus.SUCCESS
            and metric.duration
            and metric.duration > threshold
        ):
            await self.create_alert(
                severity=AlertSeverity.WARNING,
                title="Slow Migration Detected",
                message=f"Migration took {metric.duration}ms, exceeding threshold of {threshold}ms",
                environment=metric.environment,
                deployment_id=metric.deployment_id,
                metrics=[metric],
            )

    async def _check_phase_failure(self, metric: DeploymentMetric) -> None:
        if not metric.status.is_failure:
            return

        phase = metric.phase.value
        await self.create_alert(
            severity=(
                AlertSeverity.CRITICAL
                if metric.phase == DeploymentPhase.MIGRATION
                else AlertSeverity.ERROR
            ),
            title=f"{phase} Failed",
            message=f"{phase} failed: {metric.error or 'Unknown error'}",
            environment=metric.environment,
            deployment_id=metric.deployment_id,
            metrics=[metric],
        )

    async def _check_consecutive_failures(self, metric: DeploymentMetric) -> None:
        # Window spans every phase, not only whole deployment attempts
        failures = [m for m in self.get_recent_metrics(RECENT_WINDOW) if m.status.is_failure]

        if len(failures) >= self.config.thresholds.consecutive_failures:
            await self.create_alert(
                severity=AlertSeverity.CRITICAL,
                title="Multiple Consecutive Deployment Failures",
                message=f"{len(failures)} consecutive deployment failures detected",
                environment=metric.environment,
                metrics=failures,
            )

    # Alerts

    async def create_alert(
        self,
        severity: AlertSeverity,
        title: str,
        message: str,
        environment: str,
        deployment_id: str | None = None,
        metrics: list[DeploymentMetric] | None = None,
    ) -> Alert:
        """Store an alert and dispatch it to every enabled channel."""
        alert = Alert(
            id=self._generate_alert_id(),
            severity=severity,
            title=title,
            message=message,
            environment=environment,
            deployment_id=deployment_id,
            metrics=metrics or [],
        )
        self._alerts.append(alert)

        await self._dispatch(alert)

        if self.events is not None:
            try:
                await self.events.publish_alert(alert)
            except Exception as e:
                logger.warning("monitor.event.publish_failed", error=str(e))

        logger.warning(
            "monitor.alert.created",
            alert_id=alert.id,
            title=alert.title,
            severity=alert.severity.value,
            environment=alert.environment,
        )
        return alert

    async def _dispatch(self, alert: Alert) -> None:
        enabled = [channel for channel in self.config.channels if channel.enabled]
        if enabled:
            await asyncio.gather(*(self._send_alert(alert, channel) for channel in enabled))

    async def _send_alert(self, alert: Alert, channel: AlertChannelConfig) -> None:
        sender = self.channels.get(channel.type)
        if sender is None:
            logger.warning("monitor.channel.unknown", channel=channel.type.value)
            return

        try:
            await sender.send(alert, channel.config)
        except Exception as e:
            logger.error(
                "monitor.channel.send_failed",
                channel=channel.type.value,
                alert_id=alert.id,
                error=str(e),
            )

    async def resolve_alert(self, alert_id: str, resolution: str | None = None) -> bool:
        """Mark an alert resolved.

        A resolution note raises a follow-up info alert so resolutions show
        up in the same alert stream.

        Returns:
            False when no alert has ``alert_id``.
        """
        alert = self.get_alert(alert_id)
        if alert is None:
            logger.warning("monitor.alert.not_found", alert_id=alert_id)
            return False

        alert.resolved = True
        alert.resolved_at = utcnow()
        logger.info("monitor.alert.resolved", alert_id=alert_id, title=alert.title)

        if self.events is not None:
            try:
                await self.events.publish_alert_resolved(alert)
            except Exception as e:
                logger.warning("monitor.event.publish_failed", error=str(e))

        if resolution:
            await self.create_alert(
                severity=AlertSeverity.INFO,
                title=f"Alert Resolved: {alert.title}",
                message=f"Alert {alert_id} has been resolved: {resolution}",
                environment=alert.environment,
            )
        return True

    def get_alert(self, alert_id: str) -> Alert | None:
        return next((a for a in self._alerts if a.id == alert_id), None)

    def get_alerts(
        self,
        environment: str | None = None,
        unresolved_only: bool = False,
    ) -> list[Alert]:
        """Alerts in creation order, optionally filtered."""
        return [
            a
            for a in self._alerts
            if (environment is None or a.environment == environment)
            and not (unresolved_only and a.resolved)
        ]

    # Metrics

    def get_metrics(self, environment: str | None = None) -> list[DeploymentMetric]:
        """Metrics in recording order, optionally filtered."""
        return [m for m in self._metrics if environment is None or m.environment == environment]

    def get_recent_metrics(self, count: int) -> list[DeploymentMetric]:
        """The ``count`` newest metrics, newest first.

        Equal timestamps are ordered by recording order.
        """
        newest_first = sorted(reversed(self._metrics), key=lambda m: m.timestamp, reverse=True)
        return newest_first[:count]

    def get_deployment_stats(self, environment: str | None = None) -> DeploymentStats:
        """Aggregate statistics grouped by deployment id."""
        metrics = self.get_metrics(environment)

        deployments: dict[str, list[DeploymentMetric]] = defaultdict(list)
        for metric in metrics:
            deployments[metric.deployment_id].append(metric)

        deployment_count = len(deployments)
        successful = sum(
            1
            for group in deployments.values()
            if any(
                m.phase == DeploymentPhase.VERIFICATION and m.status == MetricStatus.SUCCESS
                for m in group
            )
        )

        alerts = self.get_alerts(environment)

        return DeploymentStats(
            environment=environment or "all",
            deployment_count=deployment_count,
            successful_deployments=successful,
            success_rate=successful / deployment_count if deployment_count else 0.0,
            average_deployment_time=self._average_deployment_time(deployments),
            average_migration_time=self._average_migration_time(metrics),
            total_alerts=len(alerts),
            active_alerts=sum(1 for a in alerts if not a.resolved),
            last_deployment=max((m.timestamp for m in metrics), default=None),
        )

    def _average_deployment_time(self, deployments: dict[str, list[DeploymentMetric]]) -> float:
        times: list[float] = []

        for group in deployments.values():
            start = next(
                (
                    m
                    for m in group
                    if m.phase == DeploymentPhase.VALIDATION and m.status == MetricStatus.STARTED
                ),
                None,
            )
            end = next(
                (
                    m
                    for m in group
                    if m.phase == DeploymentPhase.VERIFICATION
                    and m.status in (MetricStatus.SUCCESS, MetricStatus.FAILED)
                ),
                None,
            )
            if start and end:
                times.append((end.timestamp - start.timestamp).total_seconds() * 1000)

        return sum(times) / len(times) if times else 0.0

    def _average_migration_time(self, metrics: list[DeploymentMetric]) -> float:
        durations = [
            m.duration for m in metrics if m.phase == DeploymentPhase.MIGRATION and m.duration
        ]
        return sum(durations) / len(durations) if durations else 0.0

    def export_metrics(self, format: Literal["json", "csv"] = "json") -> str:
        """Serialize the full metric log.

        Raises:
            ValueError: For any format other than ``json`` or ``csv``.
        """
        if format == "json":
            return json.dumps([m.model_dump(mode="json") for m in self._metrics], indent=2)

        if format == "csv":
            output = io.StringIO()
            writer = csv.writer(output, lineterminator="\n")
            writer.writerow(CSV_COLUMNS)
            for m in self._metrics:
                writer.writerow(
                    [
                        m.timestamp.isoformat(),
                        m.environment,
                        m.deployment_id,
                        m.phase.value,
                        m.status.value,
                        "" if m.duration is None else m.duration,
                        m.error or "",
                    ]
                )
            return output.getvalue().rstrip("\n")

        raise ValueError(f"Unsupported export format: {format}")

    def _generate_alert_id(self) -> str:
        return f"alert-{int(time.time() * 1000)}-{uuid4().hex[:9]}"

    def summary(self) -> dict[str, Any]:
        """Counts for health reporting."""
        return {
            "environment": self.config.environment,
            "enabled": self.config.enabled,
            "channels": sum(1 for c in self.config.channels if c.enabled),
            "metrics": len(self._metrics),
            "alerts": len(self._alerts),
        }
