"""
Business logic managers for the APOD cache.

This module contains the repository coordinating network, storage and
file I/O, the presentation-facing manager and configuration management.
"""

from .config_manager import ApodConfig, ConfigManager, ConfigurationError
from .apod_repository import ApodRepository, ApodRepositoryFactory
from .apod_manager import ApodManager

__all__ = [
    "ApodConfig",
    "ApodManager",
    "ApodRepository",
    "ApodRepositoryFactory",
    "ConfigManager",
    "ConfigurationError",
]
