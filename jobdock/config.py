"""
Configuration management using Pydantic models loaded from YAML.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .adapters.memory_store import InMemoryStore
from .adapters.notifier import LoggingNotifier, NotificationSender, WebhookNotifier

CONFIG_FILE_NAME = "jobdock.yaml"


class NotificationsConfig(BaseModel):
    """Where booking notifications go."""
    webhook_url: Optional[str] = None
    timeout_seconds: float = 10.0
    contractor_email: Optional[str] = None

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        """Ensure the webhook timeout is positive."""
        if value <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        return value

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.startswith(("http://", "https://")):
            raise ValueError(f"webhook_url must be an http(s) URL, got {value!r}")
        return value or None

    def build_notifier(self) -> NotificationSender:
        """Create the notifier matching this configuration."""
        if self.webhook_url:
            return WebhookNotifier(self.webhook_url, timeout_seconds=self.timeout_seconds)
        return LoggingNotifier()


class AppConfig(BaseModel):
    """Application configuration."""
    data_file: Path = Path("jobdock-data.json")
    default_tenant_id: Optional[str] = None
    log_level: str = "WARNING"
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept standard logging level names in any case."""
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    def resolve_data_file(self, config_path: Optional[Path] = None) -> Path:
        """Resolve a relative data file next to the config file it came from."""
        if self.data_file.is_absolute() or config_path is None:
            return self.data_file
        return config_path.parent / self.data_file

    def build_store(self, config_path: Optional[Path] = None) -> InMemoryStore:
        return InMemoryStore.load_from_json(self.resolve_data_file(config_path))

    def resolve_tenant(self, tenant_id: Optional[str]) -> str:
        """
        Pick the tenant for a command.

        Raises:
            ValueError: If neither an explicit nor a default tenant is available
        """
        resolved = tenant_id or self.default_tenant_id
        if not resolved:
            raise ValueError(
                "No tenant given. Pass --tenant or set default_tenant_id in the config file."
            )
        return resolved

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        A missing file yields the defaults, since every setting is optional.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            ValueError: If config is invalid
        """
        if not config_path.exists():
            return cls()

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for the config in the current directory
    current_dir = Path.cwd()
    config_path = current_dir / CONFIG_FILE_NAME

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / CONFIG_FILE_NAME

    return config_path
