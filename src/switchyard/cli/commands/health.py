"""CLI command reporting container health per environment."""

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
from switchyard.hosts import create_app_host, create_executor, create_proxy_host
from switchyard.lib.logging_config import get_logger, setup_logging
from switchyard.models.deployment import HealthReport

logger = get_logger(__name__)


@click.command(name="health")
@click.argument("environment", required=False)
@click.option(
    "--all",
    "check_all",
    is_flag=True,
    help="Check every configured environment",
)
@config_option
@verbosity_options
def health(
    environment: str | None,
    check_all: bool,
    config_path: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Check the health of the newest instance of ENVIRONMENT.

    Exits 0 when every checked environment is healthy, 1 otherwise.

    Example:

        switchyard health production

        switchyard health --all
    """
    if check_all and environment:
        raise click.UsageError(
            f"Cannot combine --all with environment '{environment}'."
        )
    if not check_all and not environment:
        raise click.UsageError("Specify an ENVIRONMENT or use --all.")

    setup_logging(verbose=verbose, quiet=quiet)

    with handle_command_errors():
        config = load_project(config_path).config

        with create_executor(config) as executor:
            operations = EnvironmentOperations(
                config,
                create_proxy_host(config, executor),
                create_app_host(config, executor),
                executor,
            )
            if environment is None:
                reports = operations.health_all()
            else:
                reports = [operations.health(environment)]

    for report in reports:
        _display_report(report, quiet)

    unhealthy = [report for report in reports if not report.healthy]
    if len(reports) > 1 and not quiet:
        if unhealthy:
            click.secho(f"{len(unhealthy)} environment(s) unhealthy", fg="red")
        else:
            click.secho("All environments healthy", fg="green")
    if unhealthy:
        sys.exit(EXIT_FAILURE)


def _display_report(report: HealthReport, quiet: bool) -> None:
    if report.skipped:
        if not quiet:
            click.secho(f"{report.environment}: skipped ({report.status})", fg="yellow")
        return
    if quiet and report.healthy:
        return

    label = "healthy" if report.healthy else "unhealthy"
    click.secho(
        f"{report.environment}: {label}", fg="green" if report.healthy else "red"
    )
    if report.error is not None:
        click.echo(f"  {report.error}")
        return
    click.echo(f"  Instance:  {report.instance or '(none)'}")
    click.echo(f"  Container: {report.status}")
    click.echo(f"  Port:      {report.host_port or '(none)'}")
    if report.endpoint_ok is not None:
        click.echo(f"  Endpoint:  {'ok' if report.endpoint_ok else 'failing'}")
