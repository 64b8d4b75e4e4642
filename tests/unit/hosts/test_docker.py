"""Tests for the docker application host adapter."""

import base64

import pytest
from scripted_executor import ScriptedExecutor

from switchyard.hosts.docker import (
    DockerAppHost,
    instance_pattern,
    parse_listening_ports,
    parse_port_binding,
    parse_published_ports,
)
from switchyard.lib.errors import CommandError

SS_OUTPUT = """\
Netid State  Recv-Q Send-Q  Local Address:Port   Peer Address:Port Process
udp   UNCONN 0      0       127.0.0.53%lo:53          0.0.0.0:*
tcp   LISTEN 0      4096          0.0.0.0:30042       0.0.0.0:*
tcp   LISTEN 0      128              [::]:22             [::]:*
tcp   LISTEN 0      511         127.0.0.1:6379        0.0.0.0:*
"""


class TestParsers:
    """Tests for docker and socket output parsing."""

    def test_published_ports(self) -> None:
        output = (
            "0.0.0.0:30042->3000/tcp, :::30042->3000/tcp\n"
            "\n"
            "127.0.0.1:31000->8080/tcp\n"
            "3000/tcp\n"
        )

        assert parse_published_ports(output) == {30042, 31000}

    def test_listening_ports(self) -> None:
        assert parse_listening_ports(SS_OUTPUT) == {53, 30042, 22, 6379}

    def test_netstat_output(self) -> None:
        output = (
            "Proto Recv-Q Send-Q Local Address    Foreign Address  State\n"
            "tcp        0      0 0.0.0.0:30050    0.0.0.0:*        LISTEN\n"
        )

        assert parse_listening_ports(output) == {30050}

    @pytest.mark.parametrize(
        "output,expected",
        [
            ("0.0.0.0:30042\n:::30042\n", "30042"),
            ("[::]:30042\n", "30042"),
            ("", None),
            ("Error: No public port '3000/tcp' published\n", None),
        ],
    )
    def test_port_binding(self, output: str, expected: str | None) -> None:
        assert parse_port_binding(output) == expected

    def test_instance_pattern_rejects_longer_names(self) -> None:
        pattern = instance_pattern("shop-production")

        assert pattern.match("shop-production-20260301120000000000")
        assert not pattern.match("shop-production-eu-20260301120000000000")
        assert not pattern.match("shop-production-20260301120000000000-old")


class TestDockerAppHost:
    """Tests for DockerAppHost command construction and parsing."""

    def test_descriptor_path(self, docker_host: DockerAppHost) -> None:
        assert (
            docker_host.descriptor_path("shop-production-1")
            == "/home/deploy/apps/shop/shop-production-1.compose.yml"
        )

    def test_start_writes_descriptor_and_runs_compose(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        descriptor = "services:\n  app:\n    image: ghcr.io/acme/shop:stable\n"

        docker_host.start("shop-production-1", descriptor)

        network, command = scripted.commands
        assert "docker network inspect shop-network" in network
        assert "docker network create shop-network" in network
        assert base64.b64encode(descriptor.encode()).decode() in command
        assert command.endswith(
            "docker compose -p shop-production-1 -f "
            "/home/deploy/apps/shop/shop-production-1.compose.yml up -d"
        )

    def test_start_failure_raises(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond("compose", stderr="pull access denied", exit_code=1)

        with pytest.raises(CommandError, match="pull access denied"):
            docker_host.start("shop-production-1", "services: {}\n")

    @pytest.mark.parametrize(
        "output,expected",
        [
            ("running healthy\n", "healthy"),
            ("running starting\n", "starting"),
            ("running unhealthy\n", "unhealthy"),
            ("running none\n", "none"),
            ("exited none\n", "exited"),
            ("dead unhealthy\n", "exited"),
            ("", "missing"),
        ],
    )
    def test_health_status(
        self,
        docker_host: DockerAppHost,
        scripted: ScriptedExecutor,
        output: str,
        expected: str,
    ) -> None:
        scripted.respond("docker inspect", stdout=output)

        assert docker_host.health_status("shop-production-1") == expected

    def test_check_endpoint(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond("curl", exit_code=22)

        assert not docker_host.check_endpoint(30042, "/health", 5)
        assert "http://127.0.0.1:30042/health" in scripted.last_command
        assert "--max-time 5" in scripted.last_command

    def test_published_port(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond("docker port", stdout="0.0.0.0:30042\n:::30042\n")

        assert docker_host.published_port("shop-production-1", 3000) == "30042"
        assert "docker port shop-production-1 3000/tcp" in scripted.last_command

    def test_listening_ports(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond("ss -tuln", stdout=SS_OUTPUT)

        assert 30042 in docker_host.listening_ports()

    def test_listening_ports_without_tools_raise(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond("ss -tuln", stderr="netstat: not found", exit_code=127)

        with pytest.raises(CommandError):
            docker_host.listening_ports()

    def test_list_instances_filters_and_sorts(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond(
            "docker ps",
            stdout=(
                "shop-production-20260101000000000000\n"
                "shop-production-eu-20260401000000000000\n"
                "shop-production-20260301000000000000\n"
            ),
        )

        names = docker_host.list_instances("shop-production")

        assert names == [
            "shop-production-20260301000000000000",
            "shop-production-20260101000000000000",
        ]
        assert "docker ps -a" in scripted.last_command

    def test_list_running_instances(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        docker_host.list_instances("shop-production", running_only=True)

        assert "docker ps -a" not in scripted.last_command

    def test_observe_round_trip(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond(
            "grep -E",
            stdout="shop-production-20260301000000000000\n0.0.0.0:30042\n",
        )

        instance, port = docker_host.observe("shop-production", 3000)

        assert (instance, port) == ("shop-production-20260301000000000000", "30042")
        assert "docker port \"$name\" 3000/tcp" in scripted.last_command

    def test_observe_nothing_running(self, docker_host: DockerAppHost) -> None:
        assert docker_host.observe("shop-production", 3000) == (None, None)

    def test_observation_without_port(self, docker_host: DockerAppHost) -> None:
        output = "shop-production-20260301000000000000\n"

        assert docker_host.parse_observation("shop-production", output) == (
            "shop-production-20260301000000000000",
            None,
        )

    def test_restart(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        docker_host.restart("shop-production-1", grace=10)

        assert scripted.last_command == "docker restart --time 10 shop-production-1"

    def test_restart_failure_raises(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond("docker restart", exit_code=1, stderr="No such container")

        with pytest.raises(CommandError):
            docker_host.restart("shop-production-1", grace=10)

    def test_stop_and_remove(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        docker_host.stop_and_remove("shop-production-1", grace=30)

        command = scripted.last_command
        assert "docker stop --time 30 shop-production-1" in command
        assert "docker rm -f shop-production-1" in command
        assert "rm -f /home/deploy/apps/shop/shop-production-1.compose.yml" in command

    def test_stop_and_remove_reports_survivor(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond("docker stop", exit_code=1)

        with pytest.raises(CommandError):
            docker_host.stop_and_remove("shop-production-1", grace=0)

    def test_containers_on_port(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        scripted.respond(
            "docker ps",
            stdout=(
                "legacy-app\t0.0.0.0:30500->3000/tcp\n"
                "shop-staging-1\t0.0.0.0:30501->3000/tcp\n"
                "redis\t6379/tcp\n"
            ),
        )

        assert docker_host.containers_on_port(30500) == ["legacy-app"]

    def test_remove_containers(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        docker_host.remove_containers(["legacy-app", "old one"])

        assert scripted.last_command == "docker rm -f legacy-app 'old one'"

    def test_remove_no_containers_runs_nothing(
        self, docker_host: DockerAppHost, scripted: ScriptedExecutor
    ) -> None:
        docker_host.remove_containers([])

        assert scripted.commands == []
