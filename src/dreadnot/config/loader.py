"""Configuration loader for Dreadnot.

This module provides the ConfigLoader class for loading, parsing, and
validating the settings file that describes an instance and its stacks.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from dreadnot.config.defaults import ENV_VAR_MAP
from dreadnot.config.validator import flatten_pydantic_errors
from dreadnot.lib.errors import ConfigError
from dreadnot.models.config import DreadnotConfig

logger = logging.getLogger(__name__)


def _apply_env_overrides(
    config: dict[str, Any], env_vars: Mapping[str, str]
) -> dict[str, Any]:
    """Return a copy of ``config`` with DREADNOT_* environment overrides."""
    merged = dict(config)
    for field_name, env_var_name in ENV_VAR_MAP.items():
        value = env_vars.get(env_var_name)
        if value:
            logger.debug(f"Overriding '{field_name}' from {env_var_name}")
            merged[field_name] = value
    return merged


class ConfigLoader:
    """Loads and validates Dreadnot settings files."""

    def __init__(self, env_vars: Mapping[str, str] | None = None) -> None:
        """Initialize the loader.

        Args:
            env_vars: Environment mapping used for overrides. Defaults to
                ``os.environ``.
        """
        self.env_vars = env_vars if env_vars is not None else os.environ

    def parse_yaml(self, file_path: str | Path) -> dict[str, Any]:
        """Parse a YAML file into a dictionary.

        Args:
            file_path: Path to the YAML file

        Returns:
            Parsed content, empty dict for an empty file

        Raises:
            ConfigError: If the file is missing or is not valid YAML
        """
        path = Path(file_path)
        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(
                "config_file",
                f"Configuration file not found at {path}. "
                "Please ensure the file exists at this path.",
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse", f"Failed to parse YAML file {path}: {e}"
            ) from e

        if content is None:
            return {}
        if not isinstance(content, dict):
            raise ConfigError(
                "yaml_parse", f"Top level of {path} must be a mapping of settings"
            )
        return content

    def load_config(self, file_path: str | Path) -> DreadnotConfig:
        """Load and validate a settings file.

        Relative ``data_root`` and ``stacks_dir`` paths are resolved against
        the directory containing the settings file.

        Args:
            file_path: Path to the settings YAML file

        Returns:
            Validated DreadnotConfig instance

        Raises:
            ConfigError: If the file cannot be parsed or is invalid
        """
        path = Path(file_path)
        raw = self.parse_yaml(path)
        config = self.build_config(raw, source=str(path))

        base_dir = path.resolve().parent
        updates: dict[str, Path] = {}
        if not config.data_root.is_absolute():
            updates["data_root"] = base_dir / config.data_root
        if not config.stacks_dir.is_absolute():
            updates["stacks_dir"] = base_dir / config.stacks_dir
        if updates:
            config = config.model_copy(update=updates)

        logger.info(
            f"Loaded configuration '{config.name}' from {path} "
            f"({len(config.stacks)} stacks)"
        )
        return config

    def build_config(
        self, raw: dict[str, Any], source: str = "<settings>"
    ) -> DreadnotConfig:
        """Validate a raw settings mapping after applying env overrides.

        Raises:
            ConfigError: If validation fails
        """
        merged = _apply_env_overrides(raw, self.env_vars)
        try:
            return DreadnotConfig(**merged)
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e))
            raise ConfigError(
                "settings_validation",
                f"Invalid configuration in {source}:\n{error_text}",
            ) from e
