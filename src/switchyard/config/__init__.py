"""Configuration loading and validation for Switchyard projects.

Main components:
- ConfigLoader: Load and validate switchyard.yml
- load_config: One-call helper for CLI commands
- Environment variable substitution (${VAR} and ${VAR:-default})
"""

from switchyard.config.env_loader import get_env_var, load_env_file, substitute_env_vars
from switchyard.config.loader import DEFAULT_CONFIG_FILE, ConfigLoader, load_config

__all__ = [
    "ConfigLoader",
    "DEFAULT_CONFIG_FILE",
    "load_config",
    "substitute_env_vars",
    "get_env_var",
    "load_env_file",
]
