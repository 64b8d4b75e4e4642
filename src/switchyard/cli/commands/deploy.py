"""CLI command for zero-downtime deployments.

Implements 'switchyard deploy ENVIRONMENT': start a new instance, wait for it
to become healthy, switch nginx to it and retire the previous instance.
"""

from __future__ import annotations

import click

from switchyard.cli.commands.common import (
    config_option,
    handle_command_errors,
    load_project,
    verbosity_options,
)
from switchyard.deploy.cutover import CutoverEngine
from switchyard.deploy.state import DeploymentLedger
from switchyard.hosts import create_app_host, create_executor, create_proxy_host
from switchyard.lib.errors import DeploymentError
from switchyard.lib.logging_config import get_logger, setup_logging
from switchyard.models.deployment import CutoverPhase, CutoverResult

logger = get_logger(__name__)


@click.command(name="deploy")
@click.argument("environment")
@click.option(
    "--tag",
    type=str,
    default=None,
    help="Image tag to deploy (overrides the environment's image_tag)",
)
@config_option
@click.option(
    "--force",
    is_flag=True,
    help="Remove containers blocking a fixed host port",
)
@click.option(
    "--rollback",
    is_flag=True,
    help="Redeploy the image that ran before the current one",
)
@verbosity_options
def deploy(
    environment: str,
    tag: str | None,
    config_path: str | None,
    force: bool,
    rollback: bool,
    verbose: bool,
    quiet: bool,
) -> None:
    """Deploy a new version of ENVIRONMENT without downtime.

    Example:

        switchyard deploy production

        switchyard deploy staging --tag v1.4.2

        switchyard deploy production --rollback
    """
    if rollback and tag:
        raise click.UsageError("Cannot combine --rollback with --tag.")

    setup_logging(verbose=verbose, quiet=quiet)

    with handle_command_errors():
        project = load_project(config_path)
        config = project.config
        ledger = DeploymentLedger.beside(project.path)
        image = _rollback_image(ledger, environment) if rollback else None

        if not quiet:
            click.echo(f"Deploying {config.product.name} to '{environment}'...")

        with create_executor(config) as executor:
            engine = CutoverEngine(
                config,
                create_proxy_host(config, executor),
                create_app_host(config, executor),
                ledger=ledger,
                progress=None if quiet else _echo_phase,
            )
            result = engine.deploy(
                environment, image_tag=tag, force=force, image=image
            )

        _display_result(result, quiet)


def _rollback_image(ledger: DeploymentLedger, environment: str) -> str:
    image = ledger.history(environment).rollback_image
    if image is None:
        raise DeploymentError(
            operation="rollback",
            message=f"No earlier image is recorded for '{environment}'",
        )
    return image


def _echo_phase(phase: CutoverPhase, message: str) -> None:
    color = "yellow" if phase == CutoverPhase.ROLLED_BACK else None
    click.secho(f"  [{phase.value}] {message}", fg=color)


def _display_result(result: CutoverResult, quiet: bool) -> None:
    """Display the committed cutover.

    Args:
        result: Cutover result
        quiet: If True, only print the new instance id
    """
    if quiet:
        click.echo(result.instance)
    else:
        click.echo()
        click.secho("Deployment Successful!", fg="green", bold=True)
        click.echo(f"  Environment: {result.environment}")
        click.echo(f"  Instance:    {result.instance}")
        click.echo(f"  Image:       {result.image}")
        previous = result.previous_port or "(none)"
        click.echo(f"  Port:        {previous} -> {result.host_port}")
        if result.removed_instances:
            click.echo(f"  Retired:     {', '.join(result.removed_instances)}")
        if result.evicted:
            click.echo(f"  Evicted:     {', '.join(result.evicted)}")

    for warning in result.warnings:
        click.secho(f"Warning: {warning}", fg="yellow", err=True)
