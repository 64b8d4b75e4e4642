"""CLI command for removing an environment from both hosts."""

from __future__ import annotations

import sys

import click

from switchyard.cli.commands.common import (
    EXIT_FAILURE,
    config_option,
    handle_command_errors,
    load_project,
    verbosity_options,
)
from switchyard.deploy.operations import EnvironmentOperations
from switchyard.deploy.state import DeploymentLedger
from switchyard.hosts import create_app_host, create_executor, create_proxy_host
from switchyard.lib.errors import ConfigError
from switchyard.lib.logging_config import get_logger, setup_logging
from switchyard.models.deployment import DeleteResult

logger = get_logger(__name__)


@click.command(name="delete")
@click.argument("environment", required=False)
@click.option(
    "--all",
    "delete_all",
    is_flag=True,
    help="Delete every configured container environment",
)
@config_option
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Skip the confirmation prompt",
)
@verbosity_options
def delete(
    environment: str | None,
    delete_all: bool,
    config_path: str | None,
    force: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Stop and remove every instance of ENVIRONMENT and its upstream record.

    Instances are stopped gracefully. nginx is reloaded only if its
    configuration still tests clean without the record. The environment stays
    in switchyard.yml and site configuration is left alone.

    Example:

        switchyard delete staging

        switchyard delete --all --force
    """
    if delete_all and environment:
        raise click.UsageError(
            f"Cannot combine --all with environment '{environment}'."
        )
    if not delete_all and not environment:
        raise click.UsageError("Specify an ENVIRONMENT or use --all.")

    setup_logging(verbose=verbose, quiet=quiet)

    with handle_command_errors():
        project = load_project(config_path)
        config = project.config
        if environment is not None and environment not in config.environments:
            raise ConfigError(
                "environments",
                f"Environment '{environment}' is not configured. "
                f"Available: {', '.join(config.environment_names) or '(none)'}",
            )

    target = "all environments" if environment is None else f"'{environment}'"
    if not force:
        click.confirm(
            f"Delete {target} of {config.product.name}? This cannot be undone.",
            abort=True,
        )

    with handle_command_errors():
        with create_executor(config) as executor:
            operations = EnvironmentOperations(
                config,
                create_proxy_host(config, executor),
                create_app_host(config, executor),
                executor,
                ledger=DeploymentLedger.beside(project.path),
            )
            if environment is None:
                results = operations.delete_all()
            else:
                results = [operations.delete(environment)]

    for result in results:
        _display_result(result, quiet)

    if any(not result.ok for result in results):
        sys.exit(EXIT_FAILURE)


def _display_result(result: DeleteResult, quiet: bool) -> None:
    if not quiet:
        color = "green" if result.ok else "yellow"
        click.secho(f"{result.environment}: deleted", fg=color)
        removed = ", ".join(result.removed_instances) or "(none)"
        click.echo(f"  Instances removed: {removed}")
        record = "removed" if result.record_removed else "not present"
        click.echo(f"  Upstream record:   {record}")
    for warning in result.warnings:
        click.secho(f"Warning: {warning}", fg="yellow", err=True)
