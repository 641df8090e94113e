"""
Configuration management for the APOD cache.

This module handles loading, saving, and validating configuration
using Pydantic models for type safety and validation.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

APP_DIRECTORY_NAME = "ApodCache"
API_KEY_ENVIRONMENT_VARIABLE = "NASA_API_KEY"


def get_default_data_dir() -> Path:
    """
    Get the per-user data directory.

    On Windows, uses AppData/Local/ApodCache
    On Linux, uses XDG_DATA_HOME/ApodCache or ~/.local/share/ApodCache
    """
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
        if base:
            return Path(base) / APP_DIRECTORY_NAME
    xdg_data = os.environ.get("XDG_DATA_HOME")
    if xdg_data:
        return Path(xdg_data) / APP_DIRECTORY_NAME
    return Path.home() / ".local" / "share" / APP_DIRECTORY_NAME


class NetworkConfig(BaseModel):
    """Configuration for APOD API access."""

    base_url: str = "https://api.nasa.gov/planetary/apod"
    timeout_seconds: int = Field(15, ge=1, le=300)
    pool_size: int = Field(10, ge=1, le=64, description="Concurrent network operations")


class StorageConfig(BaseModel):
    """Configuration for local storage locations."""

    database_path: Path = Field(default_factory=lambda: get_default_data_dir() / "apod.db")
    pictures_directory: Optional[Path] = Field(
        default_factory=lambda: Path.home() / "Pictures" / APP_DIRECTORY_NAME
    )
    private_directory: Path = Field(default_factory=lambda: get_default_data_dir() / "files")
    media_directory: Path = Field(default_factory=lambda: Path.home() / "Pictures")


class ApodConfig(BaseModel):
    """Main configuration data model."""

    api_key: str = "DEMO_KEY"
    network: NetworkConfig = NetworkConfig()
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("api_key")
    @classmethod
    def api_key_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("api_key cannot be empty")
        return value.strip()

    def with_environment_overrides(self) -> "ApodConfig":
        """Return a copy with the API key taken from the environment if set."""
        api_key = os.environ.get(API_KEY_ENVIRONMENT_VARIABLE)
        if api_key and api_key.strip():
            return self.model_copy(update={"api_key": api_key.strip()})
        return self


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""

    pass


class ConfigManager:
    """
    Manages configuration with file persistence.

    Handles loading configuration from JSON files, creating default
    configurations, and saving changes back to disk.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file. If None, uses the platform default
        """
        if config_path is None:
            self.config_path = self.get_default_config_path()
        else:
            self.config_path = Path(config_path)
        self.config: Optional[ApodConfig] = None
        logger.debug(f"ConfigManager initialized with path: {self.config_path}")

    @staticmethod
    def get_default_config_path() -> Path:
        """
        Get the default configuration file path.

        On Windows, uses AppData/Roaming/ApodCache/config.json
        On Linux, uses XDG_CONFIG_HOME/ApodCache/config.json or ~/.config/ApodCache/config.json
        """
        if os.name == "nt":
            appdata = os.environ.get("APPDATA")
            if appdata:
                return Path(appdata) / APP_DIRECTORY_NAME / "config.json"
        xdg_config = os.environ.get("XDG_CONFIG_HOME")
        if xdg_config:
            config_dir = Path(xdg_config) / APP_DIRECTORY_NAME
        else:
            config_dir = Path.home() / ".config" / APP_DIRECTORY_NAME
        return config_dir / "config.json"

    def load_config(self) -> ApodConfig:
        """
        Load configuration from file.

        If the configuration file doesn't exist, creates a default one.

        Returns:
            ApodConfig: The loaded configuration, with environment overrides applied

        Raises:
            ConfigurationError: If the configuration file is invalid
        """
        logger.debug(f"Loading config from: {self.config_path}")

        if not self.config_path.exists():
            logger.info(f"Config file doesn't exist, creating default at: {self.config_path}")
            self.create_default_config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.config = ApodConfig(**data).with_environment_overrides()
            logger.debug(f"Successfully loaded config from: {self.config_path}")
            return self.config
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in config file: {e}") from e
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to load config: {e}") from e

    def save_config(self, config: ApodConfig) -> bool:
        """
        Save configuration to file.

        Returns:
            bool: True if saved successfully, False otherwise
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
            self.config = config
            logger.info(f"Saved config to: {self.config_path}")
            return True
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save config to {self.config_path}: {e}")
            return False

    def create_default_config(self) -> None:
        """Create a default configuration file."""
        if not self.save_config(ApodConfig()):
            raise ConfigurationError(f"Could not create default config at {self.config_path}")
