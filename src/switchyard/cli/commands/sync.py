"""CLI command for repairing drift between nginx and running containers."""

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
from switchyard.deploy.reconciler import DriftReconciler
from switchyard.deploy.state import DeploymentLedger
from switchyard.hosts import create_app_host, create_executor, create_proxy_host
from switchyard.lib.logging_config import get_logger, setup_logging
from switchyard.models.deployment import SyncOutcome, SyncResult

logger = get_logger(__name__)

_OUTCOME_COLORS = {
    SyncOutcome.NO_ACTION: None,
    SyncOutcome.REPAIRED: "green",
    SyncOutcome.FORCED: "green",
    SyncOutcome.SKIPPED: "yellow",
    SyncOutcome.FAILED: "red",
}


@click.command(name="sync")
@click.argument("environment", required=False)
@click.option(
    "--all",
    "sync_all",
    is_flag=True,
    help="Sync every configured environment",
)
@config_option
@click.option(
    "--force",
    is_flag=True,
    help="Rewrite the upstream record even when the ports match",
)
@verbosity_options
def sync(
    environment: str | None,
    sync_all: bool,
    config_path: str | None,
    force: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Point nginx at the port the running container actually uses.

    Exits 0 when every environment is in sync or was repaired, 1 otherwise.

    Example:

        switchyard sync production

        switchyard sync --all
    """
    if sync_all and environment:
        raise click.UsageError(
            f"Cannot combine --all with environment '{environment}'. "
            "Use 'switchyard sync ENVIRONMENT' or 'switchyard sync --all'."
        )
    if not sync_all and not environment:
        raise click.UsageError("Specify an ENVIRONMENT or use --all.")

    setup_logging(verbose=verbose, quiet=quiet)

    with handle_command_errors():
        project = load_project(config_path)
        config = project.config

        with create_executor(config) as executor:
            reconciler = DriftReconciler(
                config,
                create_proxy_host(config, executor),
                create_app_host(config, executor),
                executor,
                ledger=DeploymentLedger.beside(project.path),
            )
            if environment is None:
                results = reconciler.sync_all(force=force)
            else:
                results = [reconciler.sync(environment, force=force)]

    for result in results:
        _display_result(result, quiet)

    if any(not result.ok for result in results):
        sys.exit(EXIT_FAILURE)


def _display_result(result: SyncResult, quiet: bool) -> None:
    if quiet and result.outcome in (SyncOutcome.NO_ACTION, SyncOutcome.SKIPPED):
        return

    label = f"{result.environment}: {result.outcome.value}"
    if result.outcome == SyncOutcome.FAILED:
        click.secho(label, fg="red", err=True)
        click.echo(f"  {result.error}", err=True)
        return

    click.secho(label, fg=_OUTCOME_COLORS[result.outcome])
    if result.outcome in (SyncOutcome.REPAIRED, SyncOutcome.FORCED):
        click.echo(
            f"  {result.declared_port or '(none)'} -> {result.actual_port} "
            f"({result.instance})"
        )
    elif result.outcome == SyncOutcome.NO_ACTION and not quiet:
        click.echo(f"  port {result.actual_port} ({result.instance})")
    for note in result.notes:
        click.secho(f"  Note: {note}", fg="yellow")
