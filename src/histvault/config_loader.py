"""
Configuration Loader for histvault

Provides centralized access to settings.yaml configuration.

The packaged defaults are loaded first, then an optional user override
file is merged on top of them key by key:
- $HISTVAULT_CONFIG, if set
- ~/.histvault/settings.yaml, if it exists
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .exceptions import ConfigurationError

DEFAULT_CONFIG_FILE = Path(__file__).parent / "config" / "settings.yaml"
USER_CONFIG_FILE = Path("~/.histvault/settings.yaml")
CONFIG_ENV_VAR = "HISTVAULT_CONFIG"


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge override into a copy of base, recursing into nested dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """
    Singleton configuration loader.
    Loads settings.yaml once and provides access throughout the application.
    """

    _instance = None
    _config_data = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._config_data is None:
            self._load_config()

    def _read_yaml(self, config_file: Path) -> Dict[str, Any]:
        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_file}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_file}")
        return data

    def _load_config(self):
        """Load packaged defaults, then the user override if present."""
        if not DEFAULT_CONFIG_FILE.exists():
            raise ConfigurationError(f"Configuration file not found: {DEFAULT_CONFIG_FILE}")

        Config._config_data = self._read_yaml(DEFAULT_CONFIG_FILE)

        env_path = os.getenv(CONFIG_ENV_VAR)
        if env_path:
            self.load_file(env_path)
        elif USER_CONFIG_FILE.expanduser().exists():
            self.load_file(USER_CONFIG_FILE)

    def load_file(self, path) -> None:
        """
        Merge an override settings file into the active configuration.

        Args:
            path: Path to a YAML file (``~`` is expanded)

        Raises:
            ConfigurationError: If the file does not exist or is not valid YAML
        """
        config_file = Path(path).expanduser()
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}")

        Config._config_data = _deep_merge(self._config_data, self._read_yaml(config_file))

    def reset(self) -> None:
        """Reload packaged defaults, discarding any merged overrides."""
        Config._config_data = None
        self._load_config()

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'database.path')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Examples:
            >>> config = Config()
            >>> config.get('database.batch_size')
            500
            >>> config.get('agent.llm.timeout')
            5
        """
        keys = key_path.split('.')
        value = self._config_data

        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def get_path(self, key_path: str, default: Optional[str] = None) -> Optional[Path]:
        """Get a filesystem path setting with ``~`` expanded."""
        value = self.get(key_path, default)
        if value is None:
            return None
        return Path(value).expanduser()

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get entire configuration section.

        Args:
            section: Top-level section name (e.g., 'database', 'agent')

        Returns:
            Dictionary containing the section's configuration
        """
        return self._config_data.get(section, {})

    @property
    def all(self) -> Dict[str, Any]:
        """Get entire configuration dictionary"""
        return self._config_data


# Create a global instance for easy importing
config = Config()
