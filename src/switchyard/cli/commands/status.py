"""CLI command showing declared versus actual ports per environment."""

from __future__ import annotations

import click

from switchyard.cli.commands.common import (
    config_option,
    handle_command_errors,
    load_project,
    verbosity_options,
)
from switchyard.deploy.reconciler import DriftReconciler
from switchyard.deploy.state import DeploymentLedger
from switchyard.hosts import create_app_host, create_executor, create_proxy_host
from switchyard.lib.errors import ConfigError, SwitchyardError
from switchyard.lib.logging_config import get_logger, setup_logging
from switchyard.models.config import ProductType
from switchyard.models.deployment import EnvironmentHistory, Observation

logger = get_logger(__name__)


@click.command(name="status")
@click.argument("environment", required=False)
@config_option
@verbosity_options
def status(
    environment: str | None,
    config_path: str | None,
    verbose: bool,
    quiet: bool,
) -> None:
    """Show the upstream port and the running instance of each environment.

    Read-only: nothing on either host is changed. Differences from the last
    instance committed by deploy or sync are listed as notes.

    Example:

        switchyard status

        switchyard status production
    """
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
        names = [environment] if environment else config.environment_names
        ledger = DeploymentLedger.beside(project.path)
        state = ledger.load()

        with create_executor(config) as executor:
            reconciler = DriftReconciler(
                config,
                create_proxy_host(config, executor),
                create_app_host(config, executor),
                executor,
            )
            for name in names:
                if config.environment_type(name) != ProductType.DOCKER:
                    click.secho(
                        f"{name}: skipped ({config.environment_type(name).value})",
                        fg="yellow",
                    )
                    continue
                try:
                    observation = reconciler.inspect(name)
                except SwitchyardError as e:
                    logger.debug(f"Status of '{name}' failed: {e}")
                    click.secho(f"{name}: error", fg="red")
                    click.echo(f"  {e}")
                    continue
                _display_observation(
                    observation,
                    state.environments.get(name, EnvironmentHistory()),
                    ledger.discrepancies(observation),
                )


def _display_observation(
    observation: Observation, history: EnvironmentHistory, notes: list[str]
) -> None:
    if observation.instance is None:
        state, color = "no instance", "red"
    elif observation.in_sync:
        state, color = "in sync", "green"
    else:
        state, color = "drift", "yellow"

    click.secho(f"{observation.environment}: {state}", fg=color)
    click.echo(f"  Upstream port: {observation.declared_port or '(none)'}")
    click.echo(f"  Actual port:   {observation.actual_port or '(none)'}")
    click.echo(f"  Instance:      {observation.instance or '(none)'}")
    active = history.active
    if active is not None:
        when = (
            f"{active.committed_at:%Y-%m-%d %H:%M:%S} UTC"
            if active.committed_at
            else "unknown time"
        )
        click.echo(
            f"  Committed:     {active.instance} by {active.source}, {when} "
            f"({active.image or 'image unknown'})"
        )
    if history.rollback_image:
        click.echo(f"  Rollback to:   {history.rollback_image}")
    for note in notes:
        click.secho(f"  Note: {note}", fg="yellow")
