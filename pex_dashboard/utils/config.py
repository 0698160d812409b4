"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class APIConfig(BaseModel):
    """API configuration settings."""
    timeout: int = 30
    max_retries: int = 3
    retry_delay: int = 1
    exponential_backoff: bool = True


class StoreConfig(BaseModel):
    """Document store settings."""
    inventory_collection: str = "inventory"
    sales_collection: str = "sales"
    page_size: int = 300
    poll_interval_seconds: float = 5.0
    max_batch_size: int = 500  # Firestore commit limit


class StatusConfig(BaseModel):
    """Expiry status thresholds."""
    critical_days: int = 30


class MigrationConfig(BaseModel):
    """Local snapshot migration settings."""
    enabled: bool = True
    grace_period_seconds: float = 1.5
    load_timeout_seconds: float = 30.0


class LoggingFilesConfig(BaseModel):
    """Log file paths."""
    inventory: str = "logs/inventory.log"
    migration: str = "logs/migration.log"
    server: str = "logs/server.log"
    error: str = "logs/error.log"


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5
    files: LoggingFilesConfig = LoggingFilesConfig()


class SchedulerConfig(BaseModel):
    """Scheduler configuration."""
    timezone: str = "America/Sao_Paulo"
    max_instances: int = 1
    coalesce: bool = True
    misfire_grace_time: int = 300

    # Status rollover, shortly after local midnight
    status_refresh_hour: int = 0
    status_refresh_minute: int = 1


class YAMLConfig(BaseModel):
    """Configuration loaded from YAML file."""
    api: APIConfig = APIConfig()
    store: StoreConfig = StoreConfig()
    status: StatusConfig = StatusConfig()
    migration: MigrationConfig = MigrationConfig()
    logging: LoggingConfig = LoggingConfig()
    scheduler: SchedulerConfig = SchedulerConfig()


class Settings(BaseSettings):
    """Application settings from environment variables."""

    # Document store
    store_backend: str = Field(default="firestore", description="firestore or memory")
    firestore_project_id: Optional[str] = Field(default=None, description="Firebase project id")
    firestore_database: str = Field(default="(default)", description="Firestore database id")
    firestore_api_key: Optional[str] = Field(default=None, description="Web API key")
    firestore_access_token: Optional[str] = Field(default=None, description="OAuth2 bearer token")

    # Browser-local snapshot replacement
    local_snapshot_dir: str = Field(default="data/local", description="Legacy local snapshot directory")

    # Application settings
    environment: str = Field(default="development", description="Environment (development/production)")
    log_level: Optional[str] = Field(default=None, description="Override log level")
    port: int = Field(default=8000, description="Server port")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class AppConfig:
    """Combined application configuration."""

    def __init__(self):
        self.env = Settings()

        # Load YAML config
        config_path = Path(__file__).parent.parent.parent / "config" / "config.yml"
        if config_path.exists():
            with open(config_path, "r") as f:
                yaml_data = yaml.safe_load(f) or {}
                self.yaml = YAMLConfig(**yaml_data)
        else:
            self.yaml = YAMLConfig()

        # Override log level if specified in env
        if self.env.log_level:
            self.yaml.logging.level = self.env.log_level

    @property
    def api(self) -> APIConfig:
        return self.yaml.api

    @property
    def store(self) -> StoreConfig:
        return self.yaml.store

    @property
    def status(self) -> StatusConfig:
        return self.yaml.status

    @property
    def migration(self) -> MigrationConfig:
        return self.yaml.migration

    @property
    def logging(self) -> LoggingConfig:
        return self.yaml.logging

    @property
    def scheduler(self) -> SchedulerConfig:
        return self.yaml.scheduler

    @property
    def is_production(self) -> bool:
        return self.env.environment.lower() == "production"


@lru_cache()
def get_config() -> AppConfig:
    """Get cached configuration instance."""
    return AppConfig()
