"""
Configuration module for the transcript acquisition pipeline.

Provides centralized configuration management with environment variable support,
validation, and deployment mode handling.

Usage:
    from config import settings
    from config import get_settings, is_development, is_production

    # Access configuration
    print(settings.deployment_mode)
    print(settings.skip_synthesis)

    # Get fresh settings instance after changing the environment
    fresh_settings = reload_settings()
"""

from .settings import (
    Settings,
    DeploymentMode,
    LogLevel,
    StorageBackend,
    settings,
    get_settings,
    reload_settings,
    is_development,
    is_production,
    get_database_url,
    get_temp_dir,
)

__all__ = [
    "Settings",
    "DeploymentMode",
    "LogLevel",
    "StorageBackend",
    "settings",
    "get_settings",
    "reload_settings",
    "is_development",
    "is_production",
    "get_database_url",
    "get_temp_dir",
]
