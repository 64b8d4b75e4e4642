"""Helpers shared by the CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from switchyard.config.loader import ConfigLoader
from switchyard.lib.errors import (
    ConfigError,
    DeployError,
    DeploymentError,
    SwitchyardError,
)
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import ProjectConfig

logger = get_logger(__name__)

EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def config_option(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the ``--config`` option."""
    return click.option(
        "--config",
        "-c",
        "config_path",
        type=click.Path(dir_okay=False),
        default=None,
        help="Path to switchyard.yml (default: ./switchyard.yml or $SWITCHYARD_CONFIG)",
    )(func)


def verbosity_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the ``--verbose`` and ``--quiet`` flags."""
    func = click.option(
        "--quiet", "-q", is_flag=True, help="Only print errors and results"
    )(func)
    return click.option(
        "--verbose", "-v", is_flag=True, help="Enable verbose debug logging"
    )(func)


@dataclass
class LoadedProject:
    """A validated configuration and the file it came from."""

    config: ProjectConfig
    path: Path


def load_project(config_path: str | None) -> LoadedProject:
    """Load the project configuration for a command.

    Raises:
        ConfigError: If the file is missing or invalid
    """
    loader = ConfigLoader()
    path = loader.resolve_path(config_path)
    return LoadedProject(config=loader.load(str(path)), path=path)


@contextmanager
def handle_command_errors() -> Generator[None, None, None]:
    """Context manager for consistent error handling in commands.

    Exit codes:
        1: Deployment, sync or remote execution error
        2: Configuration error
    """
    try:
        yield
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        click.secho("Error: Configuration error", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    except DeployError as e:
        click.secho(
            f"Error: deployment of '{e.environment}' failed during {e.phase}",
            fg="red",
            err=True,
        )
        click.echo(f"  Cause:  {e.cause}", err=True)
        click.echo(f"  Action: {e.action}", err=True)
        sys.exit(EXIT_FAILURE)
    except DeploymentError as e:
        logger.error(f"Deployment error: {e}")
        click.secho(f"Error: {e.operation} failed", fg="red", err=True)
        click.echo(f"  {e.message}", err=True)
        sys.exit(EXIT_FAILURE)
    except SwitchyardError as e:
        logger.error(f"{type(e).__name__}: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(EXIT_FAILURE)
