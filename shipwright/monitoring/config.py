"""Loading per-environment alert configuration from JSON."""

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from shipwright.config import settings
from shipwright.core.exceptions import ConfigurationError
from shipwright.models.monitoring import AlertChannelConfig, AlertConfig, AlertThresholds
from shipwright.utils.logging import get_logger

logger = get_logger(__name__)


def fallback_alert_config(environment: str) -> AlertConfig:
    """Disabled config used when nothing usable is on disk."""
    return AlertConfig(
        environment=environment,
        enabled=False,
        channels=[],
        thresholds=AlertThresholds(
            deployment_duration=300000,
            migration_duration=60000,
            error_rate=0.1,
            consecutive_failures=3,
        ),
    )


def read_environment_section(environment: str, path: str | Path | None = None) -> dict[str, Any]:
    """Return the raw config block for ``environment``.

    The file looks like::

        {"environments": {"staging": {"enabled": true, "channels": [...], "thresholds": {...}}}}

    Raises:
        ConfigurationError: If the file is missing, unreadable, or has no
            block for ``environment``.
    """
    config_path = Path(path or settings.monitoring_config_path)

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Monitoring config not found: {config_path}")
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Invalid monitoring config {config_path}: {e}")

    section = (data.get("environments") or {}).get(environment) if isinstance(data, dict) else None
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"No monitoring configuration found for environment: {environment}",
            {"path": str(config_path)},
        )
    return section


def load_alert_config(environment: str, path: str | Path | None = None) -> AlertConfig:
    """Load the alert config for ``environment``, falling back to a disabled one."""
    try:
        section = read_environment_section(environment, path)
        return AlertConfig(environment=environment, **section)
    except (ConfigurationError, ValidationError, TypeError) as e:
        logger.warning("monitoring.config.fallback", environment=environment, reason=str(e))
        return fallback_alert_config(environment)


def load_alert_channels(
    environment: str, path: str | Path | None = None
) -> list[AlertChannelConfig]:
    """Only the channel list for ``environment``; empty on any problem."""
    try:
        section = read_environment_section(environment, path)
        return [AlertChannelConfig(**channel) for channel in section.get("channels", [])]
    except (ConfigurationError, ValidationError, TypeError) as e:
        logger.info("monitoring.channels.unavailable", environment=environment, reason=str(e))
        return []
