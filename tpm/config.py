"""Configuration management for the transport process engine.

This module provides configuration loading, validation, and default value handling
for both YAML and JSON configuration files.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


class ConfigError(Exception):
    """Base exception for configuration errors."""
    pass


class ConfigValidationError(ConfigError):
    """Exception raised when configuration validation fails."""
    pass


VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigLoader:
    """Configuration loader with support for YAML and JSON formats.

    Supports:
    - Loading from YAML and JSON files
    - Configuration validation
    - Default value fallback
    - Nested configuration access
    """

    # Default configuration values
    DEFAULT_CONFIG = {
        "system": {
            "log_level": "INFO",
        },
        "engine": {
            "tick_interval": 0.1,
            "max_ticks": None,
        },
        "loader": {
            "strict_required_parameters": False,
        },
        "steps": {
            "plugins": [],
        },
    }

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """Initialize the configuration loader.

        Args:
            config_path: Path to configuration file (YAML or JSON).
                        If None, uses default configuration only.
        """
        self.config_path = Path(config_path) if config_path else None
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file or use defaults."""
        self._config = self._deep_copy_dict(self.DEFAULT_CONFIG)

        if self.config_path is None:
            return
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        loaded_config = self._load_from_file(self.config_path)
        if not isinstance(loaded_config, dict):
            raise ConfigError(
                f"Configuration file {self.config_path} must contain a mapping"
            )
        self._deep_merge(self._config, loaded_config)

    def _load_from_file(self, path: Path) -> Any:
        """Load configuration from YAML or JSON file.

        Args:
            path: Path to configuration file

        Returns:
            Parsed document

        Raises:
            ConfigError: If file format is unsupported or parsing fails
        """
        suffix = path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigError(f"Unsupported configuration format: {suffix}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                if suffix == ".json":
                    return json.load(f)
                return yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file {path}: {e}") from e
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to parse configuration file: {e}") from e

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> None:
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _deep_copy_dict(self, d: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in d.items():
            if isinstance(value, dict):
                result[key] = self._deep_copy_dict(value)
            elif isinstance(value, list):
                result[key] = value.copy()
            else:
                result[key] = value
        return result

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Supports nested keys using dot notation (e.g., "engine.tick_interval").

        Args:
            key: Configuration key (supports dot notation)
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value using dot notation, creating sections as needed."""
        keys = key.split(".")
        section = self._config
        for k in keys[:-1]:
            if not isinstance(section.get(k), dict):
                section[k] = {}
            section = section[k]
        section[keys[-1]] = value

    def get_all(self) -> Dict[str, Any]:
        """Get a copy of the entire configuration dictionary."""
        return self._deep_copy_dict(self._config)

    def validate(self) -> bool:
        """Validate the configuration.

        Returns:
            True if configuration is valid

        Raises:
            ConfigValidationError: If validation fails
        """
        for key in ("system", "engine", "loader", "steps"):
            if not isinstance(self._config.get(key), dict):
                raise ConfigValidationError(f"Missing required configuration section: {key}")

        log_level = self.get("system.log_level")
        if log_level not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                f"Invalid log_level: {log_level}. Must be one of {VALID_LOG_LEVELS}"
            )

        tick_interval = self.get("engine.tick_interval")
        if (
            isinstance(tick_interval, bool)
            or not isinstance(tick_interval, (int, float))
            or tick_interval < 0
        ):
            raise ConfigValidationError("tick_interval must be a non-negative number")

        max_ticks = self.get("engine.max_ticks")
        if max_ticks is not None and (
            isinstance(max_ticks, bool) or not isinstance(max_ticks, int) or max_ticks < 1
        ):
            raise ConfigValidationError("max_ticks must be a positive integer or null")

        if not isinstance(self.get("loader.strict_required_parameters"), bool):
            raise ConfigValidationError("strict_required_parameters must be a boolean")

        plugins = self.get("steps.plugins")
        if not isinstance(plugins, list) or not all(
            isinstance(p, str) and p for p in plugins
        ):
            raise ConfigValidationError("plugins must be a list of module names")

        return True

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def __repr__(self) -> str:
        return f"ConfigLoader(config_path={self.config_path})"
