"""Configuration management with Pydantic and YAML support."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class TrackingConfig(BaseModel):
    """Active-time accounting configuration."""

    tick_interval_seconds: float = Field(default=1.0, gt=0, description="Accrual tick period")
    idle_threshold_seconds: float = Field(default=120.0, gt=0, description="Stop accruing after this much inactivity")
    max_seconds_per_tick: float = Field(default=2.0, gt=0, description="Ceiling for a single tick")
    max_seconds_per_flush: float = Field(default=35.0, gt=0, description="Ceiling between two flushes")
    flush_interval_seconds: float = Field(default=30.0, gt=0, description="Move session into the store")


class StorageConfig(BaseModel):
    """Local record store configuration."""

    filename: str = Field(default="code-ledger-db.json")
    retention_days: int = Field(default=30, ge=1, description="Keep synced records this long")
    cleanup_interval_hours: float = Field(default=24.0, gt=0)


class SyncConfig(BaseModel):
    """Remote collector configuration."""

    api_url: str = Field(default="http://localhost:8000", description="Collector base URL")
    api_token: str | None = Field(default=None, description="Bearer token from the collector profile")
    interval_minutes: float = Field(default=5.0, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    sync_on_flush: bool = Field(default=False, description="Sync right after every periodic flush")


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CODE_LEDGER_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".local/share/code-ledger")
    log_dir: Path = Field(default_factory=lambda: Path.home() / ".local/state/code-ledger")
    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config/code-ledger")

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment wins over the YAML values passed in as init data
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def store_path(self) -> Path:
        """Path to the JSON record store."""
        return self.data_dir / self.storage.filename

    @property
    def pid_file(self) -> Path:
        """Path to the service PID file."""
        return self.data_dir / "service.pid"

    @property
    def config_file(self) -> Path:
        """Path to YAML config file."""
        return self.config_dir / "config.yaml"

    @property
    def has_token(self) -> bool:
        return bool(self.sync.api_token)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Set restrictive permissions on data directory
        os.chmod(self.data_dir, 0o700)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """Load configuration from YAML file, environment variables, and defaults.

        Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values
        """
        if config_path is None:
            config_dir = os.environ.get("CODE_LEDGER_CONFIG_DIR")
            config_path = (
                Path(config_dir) / "config.yaml"
                if config_dir
                else Path.home() / ".config/code-ledger/config.yaml"
            )

        yaml_config: dict[str, Any] = {}
        if config_path.exists():
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def save(self, config_path: Path | None = None) -> None:
        """Save current configuration to YAML file."""
        config_path = config_path or self.config_file
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(mode="json", exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

        # The file may carry the API token
        os.chmod(config_path, 0o600)


@lru_cache
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.load()
