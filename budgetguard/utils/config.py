"""
Configuration loader utility for YAML parsing and validation.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from budgetguard.http.models import GuardConfig
from budgetguard.utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ${VAR_NAME} or ${VAR_NAME:default}
_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*):?([^}]*)\}")


class ConfigLoader:
    """Configuration loader with YAML parsing and validation."""

    def __init__(self, env_prefix: str = "BUDGETGUARD_"):
        """Initialize configuration loader.

        Args:
            env_prefix: Prefix for environment variable substitution
        """
        self.env_prefix = env_prefix

    def load(self, config_path: Union[str, Path]) -> GuardConfig:
        """Load and validate a configuration file.

        Args:
            config_path: Path to YAML or JSON configuration file

        Returns:
            Validated GuardConfig instance

        Raises:
            ConfigurationError: If loading or validation fails
        """
        raw_config = load_config(config_path)
        config = self.load_dict(raw_config)
        logger.info(f"Loaded configuration from {config_path}")
        return config

    def load_dict(self, config_dict: Dict[str, Any]) -> GuardConfig:
        """Validate a configuration dictionary.

        Raises:
            ConfigurationError: If validation fails
        """
        try:
            processed = self._substitute_env_vars(config_dict)
            return GuardConfig(**processed)
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in configuration."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_string_vars(config)
        else:
            return config

    def _substitute_string_vars(self, text: str) -> str:
        """Substitute environment variables in a string.

        Supports formats:
        - ${VAR_NAME} - Required variable (raises error if not found)
        - ${VAR_NAME:default} - Optional variable with default value

        Raises:
            ConfigurationError: If a required variable is not found
        """

        def replace_var(match: re.Match) -> str:
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) else None

            env_var = os.getenv(f"{self.env_prefix}{var_name}")
            if env_var is not None:
                return env_var

            env_var = os.getenv(var_name)
            if env_var is not None:
                return env_var

            if default_value is not None:
                return default_value

            raise ConfigurationError(
                f"Required environment variable not found: {var_name} "
                f"(tried {self.env_prefix}{var_name} and {var_name})"
            )

        return _VAR_PATTERN.sub(replace_var, text)


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """Load a raw configuration mapping from a YAML or JSON file.

    Raises:
        ConfigurationError: If file cannot be loaded
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix == ".json":
                result = json.load(f)
            else:
                result = yaml.safe_load(f)
    except (yaml.YAMLError, json.JSONDecodeError, OSError) as e:
        raise ConfigurationError(f"Error loading config from {path}: {e}") from e

    return result if isinstance(result, dict) else {}


def load_documents(path: Union[str, Path]) -> list:
    """Load every document of a (multi-document) YAML manifest file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    try:
        with open(path, encoding="utf-8") as f:
            return [doc for doc in yaml.safe_load_all(f) if doc]
    except (yaml.YAMLError, OSError) as e:
        raise ConfigurationError(f"Error loading manifests from {path}: {e}") from e


def load_guard_config(config_path: Optional[Union[str, Path]] = None) -> GuardConfig:
    """Load configuration from a file, or return defaults when no path is given."""
    loader = ConfigLoader()
    if config_path is None:
        return GuardConfig()
    return loader.load(config_path)
