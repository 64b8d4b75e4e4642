"""Configuration loader for Switchyard projects.

Reads ``switchyard.yml``, substitutes environment variables and validates the
result against :class:`~switchyard.models.config.ProjectConfig`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from switchyard.config.env_loader import load_env_file, substitute_env_vars
from switchyard.config.validator import flatten_pydantic_errors
from switchyard.lib.errors import ConfigError
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import ProjectConfig

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "switchyard.yml"
CONFIG_ENV_VAR = "SWITCHYARD_CONFIG"


def _read_yaml_with_env_substitution(path: Path) -> dict[str, Any]:
    """Read a YAML file, substituting env vars in the raw text before parsing.

    Raises:
        OSError: If the file cannot be read
        yaml.YAMLError: If YAML parsing fails
        ConfigError: If a referenced variable is missing
    """
    raw_text = path.read_text(encoding="utf-8")
    content = yaml.safe_load(substitute_env_vars(raw_text))
    return content if content else {}


class ConfigLoader:
    """Loads and validates project configuration.

    This class handles:
    - Locating the configuration file
    - Loading a ``.env`` file beside it
    - Environment variable substitution
    - Converting validation errors into readable messages
    """

    def __init__(self, load_dotenv: bool = True) -> None:
        self.load_dotenv = load_dotenv

    def resolve_path(self, config_path: str | None) -> Path:
        """Return the configuration path.

        Falls back to ``$SWITCHYARD_CONFIG``, then to ``switchyard.yml``.
        """
        path = config_path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILE
        return Path(path).expanduser().resolve()

    def load(self, config_path: str | None = None) -> ProjectConfig:
        """Load and validate a project configuration.

        Args:
            config_path: Path to the YAML file (default ``switchyard.yml``)

        Returns:
            Validated ProjectConfig instance

        Raises:
            ConfigError: If the file is missing, unparsable or invalid
        """
        path = self.resolve_path(config_path)
        if not path.is_file():
            raise ConfigError(
                "config_file",
                f"Configuration file not found at {path}. "
                f"Create {DEFAULT_CONFIG_FILE} or pass --config.",
            )

        if self.load_dotenv:
            load_env_file(path.parent / ".env")

        try:
            data = _read_yaml_with_env_substitution(path)
        except OSError as e:
            raise ConfigError(
                "config_file", f"Failed to read configuration file {path}: {e}"
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                "yaml_parse", f"Failed to parse YAML file {path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigError(
                "yaml_parse", f"Expected a mapping at the top level of {path}"
            )

        try:
            config = ProjectConfig(**data)
        except PydanticValidationError as e:
            error_text = "\n".join(flatten_pydantic_errors(e))
            raise ConfigError(
                "project_validation",
                f"Invalid configuration in {path}:\n{error_text}",
            ) from e

        logger.debug(
            f"Loaded configuration for '{config.product.name}' from {path} "
            f"({len(config.environments)} environments)"
        )
        return config


def load_config(config_path: str | None = None) -> ProjectConfig:
    """One-call helper for CLI commands."""
    return ConfigLoader().load(config_path)
