"""Tests for the 'switchyard status' command."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import yaml
from click.testing import CliRunner

from switchyard.cli.main import main
from switchyard.deploy.state import DeploymentLedger
from switchyard.lib.errors import TransportError
from switchyard.models.deployment import CutoverResult, Observation


class TestStatusCommand:
    """Tests for status with a mocked reconciler."""

    module = "switchyard.cli.commands.status"

    def test_in_sync_and_drift(
        self,
        cli_runner: CliRunner,
        config_file: Path,
        mock_factories: MagicMock,
    ) -> None:
        observations = {
            "production": Observation(
                environment="production",
                declared_port="30042",
                actual_port="30042",
                instance="shop-production-1",
            ),
            "staging": Observation(
                environment="staging",
                declared_port="30050",
                actual_port="30051",
                instance="shop-staging-1",
            ),
        }
        with patch(f"{self.module}.DriftReconciler") as reconciler_cls:
            reconciler_cls.return_value.inspect.side_effect = observations.get

            result = cli_runner.invoke(main, ["status", "--config", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "production: in sync" in result.output
        assert "staging: drift" in result.output
        assert "Actual port:   30051" in result.output
        reconciler_cls.return_value.sync.assert_not_called()

    def test_single_environment_with_history(
        self,
        cli_runner: CliRunner,
        config_file: Path,
        mock_factories: MagicMock,
    ) -> None:
        ledger = DeploymentLedger.beside(config_file)
        for number, tag in enumerate(["v1", "v2"], start=1):
            ledger.commit(
                CutoverResult(
                    environment="production",
                    instance=f"shop-production-{number}",
                    image=f"ghcr.io/acme/shop:{tag}",
                    host_port=30040 + number,
                ),
                now=datetime(2026, 3, number, 12, 0, 0, tzinfo=timezone.utc),
            )
        with patch(f"{self.module}.DriftReconciler") as reconciler_cls:
            reconciler_cls.return_value.inspect.return_value = Observation(
                environment="production",
                declared_port="30042",
                actual_port="30042",
                instance="shop-production-2",
            )

            result = cli_runner.invoke(
                main, ["status", "production", "--config", str(config_file)]
            )

        assert result.exit_code == 0, result.output
        assert "production: in sync" in result.output
        assert (
            "Committed:     shop-production-2 by deploy, 2026-03-02 12:00:00 UTC "
            "(ghcr.io/acme/shop:v2)"
        ) in result.output
        assert "Rollback to:   ghcr.io/acme/shop:v1" in result.output
        assert "Note:" not in result.output
        assert "staging" not in result.output
        reconciler_cls.return_value.inspect.assert_called_once_with("production")

    def test_instance_started_outside_switchyard_is_flagged(
        self,
        cli_runner: CliRunner,
        config_file: Path,
        mock_factories: MagicMock,
    ) -> None:
        DeploymentLedger.beside(config_file).commit(
            CutoverResult(
                environment="production",
                instance="shop-production-1",
                image="ghcr.io/acme/shop:v1",
                host_port=30041,
            )
        )
        with patch(f"{self.module}.DriftReconciler") as reconciler_cls:
            reconciler_cls.return_value.inspect.return_value = Observation(
                environment="production",
                declared_port="30041",
                actual_port="30099",
                instance="shop-production-7",
            )

            result = cli_runner.invoke(
                main, ["status", "production", "--config", str(config_file)]
            )

        assert result.exit_code == 0, result.output
        assert "production: drift" in result.output
        assert (
            "Note: running shop-production-7, but the last committed instance is "
            "shop-production-1"
        ) in result.output

    def test_no_instance_without_history(
        self,
        cli_runner: CliRunner,
        config_file: Path,
        mock_factories: MagicMock,
    ) -> None:
        with patch(f"{self.module}.DriftReconciler") as reconciler_cls:
            reconciler_cls.return_value.inspect.return_value = Observation(
                environment="production", declared_port="30042"
            )

            result = cli_runner.invoke(
                main, ["status", "production", "--config", str(config_file)]
            )

        assert result.exit_code == 0, result.output
        assert "production: no instance" in result.output
        assert "Committed:" not in result.output

    def test_static_environment_is_skipped(
        self,
        cli_runner: CliRunner,
        tmp_path: Path,
        config_data: dict[str, Any],
        mock_factories: MagicMock,
    ) -> None:
        config_data["environments"] = {"docs": {"type": "static"}}
        path = tmp_path / "switchyard.yml"
        path.write_text(yaml.safe_dump(config_data))

        with patch(f"{self.module}.DriftReconciler") as reconciler_cls:
            result = cli_runner.invoke(main, ["status", "--config", str(path)])

        assert result.exit_code == 0
        assert "docs: skipped (static)" in result.output
        reconciler_cls.return_value.inspect.assert_not_called()

    def test_unreachable_host_is_reported_per_environment(
        self,
        cli_runner: CliRunner,
        config_file: Path,
        mock_factories: MagicMock,
    ) -> None:
        with patch(f"{self.module}.DriftReconciler") as reconciler_cls:
            reconciler_cls.return_value.inspect.side_effect = TransportError(
                "application", "docker ps", "Host unreachable"
            )

            result = cli_runner.invoke(main, ["status", "--config", str(config_file)])

        assert result.exit_code == 0
        assert result.output.count(": error") == 2
        assert "[application] Host unreachable" in result.output

    def test_unknown_environment(
        self, cli_runner: CliRunner, config_file: Path
    ) -> None:
        result = cli_runner.invoke(main, ["status", "qa", "--config", str(config_file)])

        assert result.exit_code == 2
        assert "Available: production, staging" in result.output


class TestMain:
    """Tests for the command group."""

    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert "switchyard" in result.output

    def test_help_lists_commands(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(main, ["--help"])

        assert result.exit_code == 0
        for command in ("deploy", "sync", "status", "health", "restart", "delete"):
            assert command in result.output
