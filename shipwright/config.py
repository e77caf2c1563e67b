"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file without clobbering variables already set in the environment
load_dotenv(override=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Required deployment variables (checked by name during validation)
    database_uri_var: str = "MONGODB_URI"
    session_secret_var: str = "NEXTAUTH_SECRET"
    session_url_var: str = "NEXTAUTH_URL"

    # External tooling
    build_command: str = "npm run build"
    migrate_validate_command: str = "npm run migrate:validate"
    migrate_status_command: str = "npm run migrate:status"
    migrate_up_command: str = "npm run migrate:up"
    migrate_down_command: str = "npm run migrate:down"
    migration_dry_run_marker: str = "MIGRATION_DRY_RUN=true"
    backup_command: str = "mongodump --uri={uri} --gzip --archive={path}"
    restore_command: str = "mongorestore --uri={uri} --gzip --archive={path} --drop"
    deploy_command: str = "flyctl deploy --remote-only"
    production_deploy_config: str = "fly.production.toml"
    platform_rollback_command: str = "flyctl rollback"
    backup_directory: str = "/tmp"

    # Verification probes
    health_check_url: str = "http://localhost:3000/api/health"
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    # Monitoring and notifications
    monitoring_config_path: str = "config/monitoring.json"
    notification_webhook_url: str | None = None

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_file: str | None = None

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def required_env_vars(self) -> tuple[str, str, str]:
        """Names of the variables a deployment cannot run without, in check order."""
        return (self.database_uri_var, self.session_secret_var, self.session_url_var)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
