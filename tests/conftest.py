"""Pytest configuration and fixtures."""

import asyncio
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from shipwright.core.deployment import DeploymentManager
from shipwright.core.executor import CommandExecutor, CommandResult, HttpProber
from shipwright.core.exceptions import CommandError
from shipwright.core.notifications import NotificationSink
from shipwright.main import app
from shipwright.models.deployment import DeploymentConfig, NotificationPayload
from shipwright.models.monitoring import AlertConfig, AlertThresholds
from shipwright.monitoring.monitor import DeploymentMonitor
from shipwright.monitoring.registry import get_monitor_registry


class FakeExecutor(CommandExecutor):
    """Records commands and answers them from scripted responses.

    Responses, failures and delays are keyed by a fragment of the command
    line; the first matching fragment wins.
    """

    def __init__(self):
        self.commands: list[str] = []
        self.timeouts: list[int | None] = []
        self.responses: dict[str, str] = {"migrate:status": "[]"}
        self.failures: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}

    def respond(self, fragment: str, stdout: str) -> None:
        self.responses[fragment] = stdout

    def fail(self, fragment: str, error: Exception | None = None, stderr: str = "boom") -> None:
        self.failures[fragment] = error or CommandError(fragment, 1, "", stderr)

    def delay(self, fragment: str, seconds: float) -> None:
        self.delays[fragment] = seconds

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands)

    async def run(self, command: str, timeout_ms: int | None = None) -> CommandResult:
        self.commands.append(command)
        self.timeouts.append(timeout_ms)

        for fragment, seconds in self.delays.items():
            if fragment in command:
                await asyncio.sleep(seconds)

        for fragment, error in self.failures.items():
            if fragment in command:
                raise error

        for fragment, stdout in self.responses.items():
            if fragment in command:
                return CommandResult(stdout=stdout)

        return CommandResult()


class FakeProber(HttpProber):
    """Answers health probes without touching the network."""

    def __init__(self, healthy: bool = True, body: Any = None, error: Exception | None = None):
        self.healthy = healthy
        self.body = {"status": "ok"} if body is None else body
        self.error = error
        self.urls: list[str] = []

    async def check(self, url: str) -> bool:
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.healthy

    async def fetch_json(self, url: str) -> Any:
        self.urls.append(url)
        if self.error:
            raise self.error
        return self.body


class RecordingSink(NotificationSink):
    """Keeps every notification it receives."""

    def __init__(self, fail_on: set[str] | None = None):
        self.payloads: list[NotificationPayload] = []
        self.fail_on = fail_on or set()

    @property
    def types(self) -> list[str]:
        return [p.type for p in self.payloads]

    async def send_notification(self, payload: NotificationPayload) -> None:
        if payload.type in self.fail_on:
            raise RuntimeError(f"sink unavailable for {payload.type}")
        self.payloads.append(payload)


@pytest.fixture
def required_environ() -> dict[str, str]:
    """Every variable a deployment needs."""
    return {
        "MONGODB_URI": "mongodb://localhost:27017/app",
        "NEXTAUTH_SECRET": "test-secret",
        "NEXTAUTH_URL": "http://localhost:3000",
    }


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_manager(executor, prober, sink, required_environ):
    """Build a manager wired to the fakes."""

    def _make(environment: str = "staging", **overrides: Any) -> DeploymentManager:
        return DeploymentManager(
            DeploymentConfig(environment=environment, **overrides),
            executor=executor,
            prober=prober,
            notifier=sink,
            alert_channels=[],
            environ=required_environ,
        )

    return _make


@pytest.fixture
def monitor() -> DeploymentMonitor:
    """A fresh, enabled monitor with no channels."""
    return DeploymentMonitor(
        AlertConfig(
            environment="staging",
            enabled=True,
            channels=[],
            thresholds=AlertThresholds(
                deployment_duration=300000,
                migration_duration=150000,
                error_rate=0.1,
                consecutive_failures=3,
            ),
        ),
        channels={},
    )


@pytest.fixture
async def client() -> AsyncClient:
    """Create an async test client with a fresh monitor registry."""
    registry = get_monitor_registry()
    registry.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    registry.clear()
