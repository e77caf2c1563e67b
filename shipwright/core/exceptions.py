"""Custom exceptions for Shipwright."""

from typing import Any


class ShipwrightError(Exception):
    """Base exception for Shipwright."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(ShipwrightError):
    """Invalid or missing configuration. Never retried."""

    pass


class CommandError(ShipwrightError):
    """External command exited with a non-zero status."""

    def __init__(
        self,
        command: str,
        returncode: int | None,
        stdout: str = "",
        stderr: str = "",
    ):
        output = (stderr or stdout).strip()
        message = f"Command '{command}' exited with code {returncode}"
        if output:
            message = f"{message}: {output[:500]}"
        super().__init__(message, {"command": command, "returncode": returncode})
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    @property
    def output(self) -> str:
        """Everything the command printed."""
        return f"{self.stdout}\n{self.stderr}"


class CommandTimeoutError(ShipwrightError):
    """External command did not finish within its timeout."""

    def __init__(self, command: str, timeout_ms: int):
        super().__init__(
            f"Command execution timeout after {timeout_ms}ms: {command}",
            {"command": command, "timeout_ms": timeout_ms},
        )
        self.command = command
        self.timeout_ms = timeout_ms


class AlertDeliveryError(ShipwrightError):
    """An alert could not be handed to a channel."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel} delivery failed: {message}", {"channel": channel})
        self.channel = channel
