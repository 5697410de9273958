"""Configuration management for minivcs.

A single ``VCSConfig`` is loaded once (by the CLI or the embedding
application) and handed to every component that needs it.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from minivcs.constants import (
    CONFIG_DIR,
    CONFIG_ENV_VAR,
    CONFIG_FILE,
    DATABASE_FILE,
    DEFAULT_EXCLUDE_PATTERNS,
    MAX_MESSAGE_LENGTH,
)
from minivcs.exceptions import ValidationError

logger = logging.getLogger(__name__)


def default_config_dir() -> Path:
    """User-level directory holding config.json and the metadata database."""
    return Path.home() / CONFIG_DIR


class DatabaseConfig(BaseModel):
    """Relational metadata store settings."""

    enabled: bool = Field(default=True, description="Record metadata in SQLite")
    path: Optional[Path] = Field(
        default=None,
        description="SQLite database file (defaults to ~/.minivcs/metadata.db)",
    )
    timeout: float = Field(default=30.0, description="Seconds to wait for locks")

    def resolved_path(self) -> Path:
        if self.path is not None:
            return Path(self.path).expanduser()
        return default_config_dir() / DATABASE_FILE


class StagingConfig(BaseModel):
    """Staging area settings."""

    exclude_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS),
        description="Path components skipped by add-all",
    )


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="WARNING", description="Log level for minivcs")

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


class VCSConfig(BaseModel):
    """Top-level minivcs configuration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    staging: StagingConfig = Field(default_factory=StagingConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    author: Optional[str] = Field(default=None, description="Commit author override")
    max_workers: int = Field(default=4, ge=1, description="Background worker threads")
    max_message_length: int = Field(default=MAX_MESSAGE_LENGTH, ge=1)

    def resolve_author(self) -> str:
        if self.author:
            return self.author
        return os.getenv("USER") or os.getenv("USERNAME") or "unknown"


class ConfigManager:
    """Loads and saves ``VCSConfig`` as JSON."""

    def __init__(self, config_path: Optional[Path] = None):
        if config_path is None:
            env_path = os.getenv(CONFIG_ENV_VAR)
            config_path = Path(env_path) if env_path else default_config_dir() / CONFIG_FILE
        self.config_path = Path(config_path)
        self._config: Optional[VCSConfig] = None

    def load(self) -> VCSConfig:
        """Load configuration from file, or defaults when the file is absent."""
        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                self._config = VCSConfig(**data)
            except Exception as e:
                raise ValidationError(
                    f"Failed to load config from {self.config_path}: {e}"
                ) from e
            logger.debug("Loaded configuration from %s", self.config_path)
        else:
            self._config = VCSConfig()

        return self._config

    def save(self, config: Optional[VCSConfig] = None) -> None:
        """Save configuration to file."""
        if config is None:
            config = self._config

        if config is None:
            raise ValidationError("No configuration to save")

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(config.model_dump(mode="json"), f, indent=2)
        self._config = config

    def get_config(self) -> VCSConfig:
        """Get current configuration, loading if necessary."""
        if self._config is None:
            self.load()
        assert self._config is not None
        return self._config

    def update_config(self, **kwargs: Any) -> VCSConfig:
        """Update top-level configuration values and persist them."""
        config_dict = self.get_config().model_dump()
        config_dict.update(kwargs)
        try:
            new_config = VCSConfig(**config_dict)
        except Exception as e:
            raise ValidationError(f"Invalid configuration: {e}") from e
        self.save(new_config)
        return new_config
