"""
Configuration management for gbbackup.

This module handles loading, validating, and saving configuration settings.
"""

from gbbackup.config.settings import (
    BackupConfig,
    ConfigurationError,
    Settings,
    load_config,
    save_config,
)

__all__ = [
    "Settings",
    "BackupConfig",
    "load_config",
    "save_config",
    "ConfigurationError",
]
