"""CLI command for restarting an environment's running instance."""

from __future__ import annotations

import click

from switchyard.cli.commands.common import (
    config_option,
    handle_command_errors,
    load_project,
    verbosity_options,
)
from switchyard.deploy.operations import EnvironmentOperations
from switchyard.deploy.state import DeploymentLedger
from switchyard.hosts import create_app_host, create_executor, create_proxy_host
from switchyard.lib.logging_config import get_logger, setup_logging
from switchyard.models.deployment import SyncOutcome

logger = get_logger(__name__)


@click.command(name="restart")
@click.argument("environment")
@config_option
@verbosity_options
def restart(
    environment: str,
    config_path: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Restart the newest instance of ENVIRONMENT in place.

    The container keeps its image. Once it is healthy again the upstream
    record is synced, since a runtime-assigned port can change on restart.

    Example:

        switchyard restart staging
    """
    setup_logging(verbose=verbose, quiet=quiet)

    with handle_command_errors():
        project = load_project(config_path)
        config = project.config

        with create_executor(config) as executor:
            operations = EnvironmentOperations(
                config,
                create_proxy_host(config, executor),
                create_app_host(config, executor),
                executor,
                ledger=DeploymentLedger.beside(project.path),
            )
            result = operations.restart(environment)

    if quiet:
        return
    click.secho(f"Restarted {result.instance} ({result.health})", fg="green")
    sync = result.sync
    if sync.outcome == SyncOutcome.NO_ACTION:
        click.echo(f"  Upstream already on port {sync.actual_port}")
    else:
        click.echo(
            f"  Upstream synced: {sync.declared_port or '(none)'} -> {sync.actual_port}"
        )
