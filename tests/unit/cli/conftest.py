"""Shared fixtures for CLI command tests."""

from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def mock_factories(request: pytest.FixtureRequest) -> Generator[MagicMock, None, None]:
    """Patch the host factories imported by a command module.

    The command module is taken from the ``module`` attribute of the test
    class, e.g. ``switchyard.cli.commands.sync``.
    """
    module = request.cls.module
    factories = MagicMock()
    with (
        patch(f"{module}.create_executor", factories.create_executor),
        patch(f"{module}.create_proxy_host", factories.create_proxy_host),
        patch(f"{module}.create_app_host", factories.create_app_host),
    ):
        yield factories
