# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Configuration loading and validation for the prefab reference index."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = ".prefab_refs.yml"


class ConfigurationError(Exception):
    """Raised when configuration validation fails critically."""

    pass


class Config:
    """Configuration for the prefab reference index.

    Loads configuration from .prefab_refs.yml with validation and defaults.
    """

    DEFAULTS = {
        "corpus_root": "Assets",
        "batch_size": 20,
        "cache_file_name": "PrefabReferenceCache.json",
        "node_extensions": [".prefab"],
        "ignore_patterns": [],
        "quarantine_corrupt_cache": True,
        "watch_corpus": False,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration.

        Args:
            config_path: Path to configuration file. If None, uses default location.
        """
        if config_path is None:
            config_path = Path.cwd() / CONFIG_FILE_NAME

        self.config_path = config_path
        self._config: Dict[str, Any] = {}
        self._load_config()

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Config":
        """Build a configuration from a dict, validated like a file.

        Raises:
            ConfigurationError: If `values` is not a dict.
        """
        if not isinstance(values, dict):
            raise ConfigurationError(f"Configuration must be a dict, got {type(values)}")
        config = cls.__new__(cls)
        config.config_path = None
        config._config = cls._copy_defaults()
        config._validate_and_merge(values)
        return config

    @classmethod
    def _copy_defaults(cls) -> Dict[str, Any]:
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in cls.DEFAULTS.items()
        }

    def _load_config(self) -> None:
        """Load and validate configuration from file."""
        if not self.config_path.exists():
            logger.info(f"Configuration file not found at {self.config_path}, using defaults")
            self._config = self._copy_defaults()
            return

        try:
            with open(self.config_path, encoding="utf-8") as f:
                loaded_config = yaml.safe_load(f)

            if loaded_config is None:
                logger.warning("Configuration file is empty, using defaults")
                self._config = self._copy_defaults()
                return

            if not isinstance(loaded_config, dict):
                logger.warning(
                    f"Configuration file must contain a YAML dictionary, "
                    f"got {type(loaded_config)}, using defaults"
                )
                self._config = self._copy_defaults()
                return

            self._config = self._copy_defaults()
            self._validate_and_merge(loaded_config)

        except yaml.YAMLError as e:
            logger.warning(
                f"Error parsing configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._copy_defaults()
        except OSError as e:
            logger.warning(
                f"Error reading configuration file {self.config_path}: {e}, using defaults"
            )
            self._config = self._copy_defaults()

    def _validate_and_merge(self, loaded_config: Dict[str, Any]) -> None:
        """Validate loaded configuration and merge with defaults.

        Invalid parameters are logged as warnings and defaults are used.
        """
        for key, value in loaded_config.items():
            if key not in self.DEFAULTS:
                logger.warning(f"Unknown configuration parameter '{key}', ignoring")
                continue

            if not self._validate_parameter(key, value):
                logger.warning(
                    f"Invalid value for '{key}': {value}, using default {self.DEFAULTS[key]}"
                )
                continue

            self._config[key] = value

    def _validate_parameter(self, key: str, value: Any) -> bool:
        """Validate a configuration parameter.

        Returns:
            True if valid, False if invalid
        """
        expected_type = type(self.DEFAULTS[key])
        # bool is a subclass of int; reject True/False for numeric keys
        if expected_type is int and isinstance(value, bool):
            return False
        if not isinstance(value, expected_type):
            return False

        if key == "batch_size":
            return bool(0 < value <= 10000)
        elif key == "corpus_root":
            return bool(value.strip())
        elif key == "cache_file_name":
            return bool(value.strip()) and "/" not in value and "\\" not in value
        elif key == "node_extensions":
            return bool(value) and all(
                isinstance(ext, str) and ext.startswith(".") and len(ext) > 1 for ext in value
            )
        elif key == "ignore_patterns":
            return all(isinstance(pattern, str) for pattern in value)

        return True

    @property
    def corpus_root(self) -> str:
        """Search root for candidate nodes, relative to the project root."""
        value = self._config["corpus_root"]
        assert isinstance(value, str)
        return value

    @property
    def batch_size(self) -> int:
        """Nodes processed per cooperative build step."""
        value = self._config["batch_size"]
        assert isinstance(value, int)
        return value

    @property
    def cache_file_name(self) -> str:
        """Name of the persisted cache file at the project root."""
        value = self._config["cache_file_name"]
        assert isinstance(value, str)
        return value

    @property
    def node_extensions(self) -> List[str]:
        """File extensions enumerated as candidate nodes."""
        value = self._config["node_extensions"]
        assert isinstance(value, list)
        return value

    @property
    def ignore_patterns(self) -> List[str]:
        """Glob patterns excluded from enumeration."""
        value = self._config["ignore_patterns"]
        assert isinstance(value, list)
        return value

    @property
    def quarantine_corrupt_cache(self) -> bool:
        """Whether unreadable cache files are renamed aside on load."""
        value = self._config["quarantine_corrupt_cache"]
        assert isinstance(value, bool)
        return value

    @property
    def watch_corpus(self) -> bool:
        """Whether the service watches the corpus and invalidates on change."""
        value = self._config["watch_corpus"]
        assert isinstance(value, bool)
        return value
