"""
Configuration settings management for gbbackup.

This module handles loading, validating, and saving configuration settings
from YAML files with support for environment variable overrides.

Configuration is loaded from ~/.gbbackup/config.yaml by default, with the
path overridable via the GBBACKUP_CONFIG environment variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".gbbackup"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"


@dataclass
class BackupConfig:
    """Backup engine settings."""

    source_label: str = "Local Database"
    extra_collections: list[str] = field(default_factory=list)
    snapshot_workers: int = 8
    pre_restore_backup: bool = True


@dataclass
class Settings:
    """
    Complete gbbackup configuration settings.

    Attributes:
        data_file: JSON database file holding the live collections.
        backup_dir: Default directory for backup files.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        backup: Backup engine settings.
    """

    data_file: str = str(DEFAULT_CONFIG_DIR / "data" / "gbpos-db.json")
    backup_dir: str = str(DEFAULT_CONFIG_DIR / "backups")
    log_level: str = "INFO"

    backup: BackupConfig = field(default_factory=BackupConfig)

    @property
    def data_path(self) -> Path:
        return Path(self.data_file).expanduser()

    @property
    def backup_path(self) -> Path:
        return Path(self.backup_dir).expanduser()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_config_path() -> Path:
    """
    Get the configuration file path.

    Returns the path from GBBACKUP_CONFIG environment variable if set,
    otherwise returns the default path (~/.gbbackup/config.yaml).
    """
    env_path = os.environ.get("GBBACKUP_CONFIG")
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load configuration from YAML file.

    Reads configuration from the specified path (or default if not provided),
    applies environment variable overrides, and validates the configuration.

    Args:
        config_path: Optional path to configuration file.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the configuration file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_config_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Config file must contain a mapping")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save configuration to YAML file.

    Raises:
        ConfigurationError: If the configuration cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(config_path, "w") as f:
            yaml.safe_dump(
                _settings_to_dict(settings), f, default_flow_style=False, sort_keys=False
            )
    except OSError as e:
        raise ConfigurationError(f"Cannot write config file: {e}") from e


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    general = data.get("gbbackup") or {}

    if "data_file" in general:
        settings.data_file = str(general["data_file"])
    if "backup_dir" in general:
        settings.backup_dir = str(general["backup_dir"])
    if "log_level" in general:
        settings.log_level = str(general["log_level"]).upper()

    backup = data.get("backup") or {}

    if "source_label" in backup:
        settings.backup.source_label = str(backup["source_label"])
    if "extra_collections" in backup:
        extra = backup["extra_collections"] or []
        if not isinstance(extra, list):
            raise ConfigurationError("extra_collections must be a list")
        settings.backup.extra_collections = [str(name) for name in extra]
    if "snapshot_workers" in backup:
        try:
            settings.backup.snapshot_workers = int(backup["snapshot_workers"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"snapshot_workers must be an integer: {e}") from e
    if "pre_restore_backup" in backup:
        settings.backup.pre_restore_backup = bool(backup["pre_restore_backup"])

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "GBBACKUP_DATA_FILE": ("data_file", str),
        "GBBACKUP_BACKUP_DIR": ("backup_dir", str),
        "GBBACKUP_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "GBBACKUP_SOURCE_LABEL": ("backup.source_label", str),
    }

    for env_var, (attr_path, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested_attr(settings, attr_path, converter(value))

    return settings


def _set_nested_attr(obj: Any, path: str, value: Any) -> None:
    """Set a nested attribute on an object using dot notation."""
    parts = path.split(".")
    for part in parts[:-1]:
        obj = getattr(obj, part)
    setattr(obj, parts[-1], value)


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if settings.backup.snapshot_workers < 1:
        raise ConfigurationError("snapshot_workers must be at least 1")


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "gbbackup": {
            "data_file": settings.data_file,
            "backup_dir": settings.backup_dir,
            "log_level": settings.log_level,
        },
        "backup": {
            "source_label": settings.backup.source_label,
            "extra_collections": list(settings.backup.extra_collections),
            "snapshot_workers": settings.backup.snapshot_workers,
            "pre_restore_backup": settings.backup.pre_restore_backup,
        },
    }
