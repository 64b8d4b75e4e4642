"""Switchyard command-line entry point."""

from __future__ import annotations

import click

from switchyard import __version__
from switchyard.cli.commands.delete import delete
from switchyard.cli.commands.deploy import deploy
from switchyard.cli.commands.health import health
from switchyard.cli.commands.restart import restart
from switchyard.cli.commands.status import status
from switchyard.cli.commands.sync import sync


@click.group(name="switchyard")
@click.version_option(__version__, prog_name="switchyard")
def main() -> None:
    """Zero-downtime container deployments behind nginx.

    Commands:

        deploy   Cut an environment over to a new container version

        sync     Repair drift between nginx upstreams and running containers

        status   Show upstream and running ports per environment

        health   Check container health per environment

        restart  Restart an environment's instance and re-sync nginx

        delete   Remove an environment's instances and upstream record
    """


main.add_command(deploy)
main.add_command(sync)
main.add_command(status)
main.add_command(health)
main.add_command(restart)
main.add_command(delete)


if __name__ == "__main__":
    main()
