"""Environment variable handling for configuration files.

Supports ``${VAR}`` and ``${VAR:-default}`` references in raw YAML text and
loading a ``.env`` file that sits beside the configuration file.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path

from dotenv import load_dotenv

from switchyard.lib.errors import ConfigError
from switchyard.lib.logging_config import get_logger

logger = get_logger(__name__)

# Upper-case names only: lower-case ${container_port} style placeholders in
# health-check commands are filled in later, per deployment.
_ENV_PATTERN = re.compile(r"\$\{(?P<name>[A-Z_][A-Z0-9_]*)(?::-(?P<default>[^}]*))?\}")


def get_env_var(name: str, default: str | None = None) -> str | None:
    """Return an environment variable, or ``default`` when it is unset."""
    return os.environ.get(name, default)


def substitute_env_vars(
    text: str, environ: Mapping[str, str] | None = None
) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` references in ``text``.

    Args:
        text: Raw configuration text
        environ: Variables to substitute from (defaults to ``os.environ``)

    Returns:
        Text with every reference replaced

    Raises:
        ConfigError: If a referenced variable is unset and has no default
    """
    env = os.environ if environ is None else environ

    def _replace(match: re.Match[str]) -> str:
        name = match.group("name")
        default = match.group("default")
        value = env.get(name)
        if value is not None and (value != "" or default is None):
            return value
        if default is not None:
            return default
        raise ConfigError(
            name,
            f"Environment variable '{name}' is referenced but not set. "
            f"Set it or use ${{{name}:-default}}",
        )

    return _ENV_PATTERN.sub(_replace, text)


def load_env_file(path: Path) -> bool:
    """Load ``path`` into the process environment without overriding it.

    Returns:
        True if the file existed and was loaded
    """
    if not path.is_file():
        return False
    logger.debug(f"Loading environment from {path}")
    return load_dotenv(path, override=False)
