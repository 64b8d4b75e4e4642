"""Docker adapter for the application host."""

from __future__ import annotations

import base64
import re
import shlex

from switchyard.hosts.base import (
    EXITED,
    MISSING,
    NO_HEALTHCHECK,
    BaseAppHost,
)
from switchyard.lib.logging_config import get_logger
from switchyard.remote.executor import BaseExecutor, CommandResult
from switchyard.remote.transport import RemoteHost

logger = get_logger(__name__)

# "0.0.0.0:30042->3000/tcp, :::30042->3000/tcp"
_PUBLISHED_PORT = re.compile(r":(\d+)->\d+/(?:tcp|udp)")
_LISTEN_ADDRESS = re.compile(r"[:.](\d+)$")
_STOPPED_STATES = frozenset({"exited", "dead"})


def instance_pattern(prefix: str) -> re.Pattern[str]:
    """Match instance ids ``<prefix>-<timestamp>`` and nothing longer."""
    return re.compile(rf"^{re.escape(prefix)}-\d+$")


def parse_published_ports(ports_output: str) -> set[int]:
    """Extract host ports from ``docker ps --format '{{.Ports}}'`` output."""
    return {int(port) for port in _PUBLISHED_PORT.findall(ports_output)}


def parse_listening_ports(output: str) -> set[int]:
    """Extract local ports from ``ss -tuln`` (or ``netstat -tuln``) output."""
    ports: set[int] = set()
    for line in output.splitlines():
        for token in line.split():
            match = _LISTEN_ADDRESS.search(token)
            if match and not token.endswith(":*"):
                ports.add(int(match.group(1)))
                break
    return ports


def parse_port_binding(output: str) -> str | None:
    """Return the host port from ``docker port`` output such as ``0.0.0.0:30042``."""
    for line in output.splitlines():
        line = line.strip()
        if line:
            port = line.rpartition(":")[2]
            return port if port.isdigit() else None
    return None


class DockerAppHost(BaseAppHost):
    """Runs deployment instances with ``docker compose`` on the application host.

    Each instance is its own compose project named after the instance id, with
    its descriptor stored at ``<deploy_path>/<instance>.compose.yml``.
    """

    def __init__(
        self,
        executor: BaseExecutor,
        host: RemoteHost,
        deploy_path: str,
        network_name: str,
        timeout: float | None = None,
    ) -> None:
        super().__init__(executor, host)
        self.deploy_path = deploy_path.rstrip("/")
        self.network_name = network_name
        self.timeout = timeout

    def descriptor_path(self, instance_id: str) -> str:
        return f"{self.deploy_path}/{instance_id}.compose.yml"

    def pull(self, image: str) -> None:
        logger.debug(f"Pulling {image}")
        self._run(f"docker pull {shlex.quote(image)}").check()

    def ensure_network(self) -> None:
        network = shlex.quote(self.network_name)
        self._run(
            f"docker network inspect {network} >/dev/null 2>&1 || "
            f"docker network create {network} >/dev/null"
        ).check()

    def start(self, instance_id: str, descriptor: str) -> None:
        self.ensure_network()
        path = shlex.quote(self.descriptor_path(instance_id))
        payload = base64.b64encode(descriptor.encode("utf-8")).decode("ascii")
        command = (
            f"mkdir -p {shlex.quote(self.deploy_path)} && "
            f"printf '%s' {shlex.quote(payload)} | base64 -d > {path} && "
            f"docker compose -p {shlex.quote(instance_id)} -f {path} up -d"
        )
        logger.debug(f"Starting instance {instance_id}")
        self._run(command).check()

    def health_status(self, instance_id: str) -> str:
        template = (
            "{{.State.Status}} "
            "{{if .State.Health}}{{.State.Health.Status}}{{else}}none{{end}}"
        )
        result = self._run(
            f"docker inspect --format {shlex.quote(template)} "
            f"{shlex.quote(instance_id)} 2>/dev/null || true"
        )
        parts = result.check().output.split()
        if not parts:
            return MISSING
        state = parts[0]
        if state in _STOPPED_STATES:
            return EXITED
        return parts[1] if len(parts) > 1 else NO_HEALTHCHECK

    def check_endpoint(self, port: int, endpoint: str, timeout: int) -> bool:
        url = shlex.quote(f"http://127.0.0.1:{port}{endpoint}")
        result = self._run(f"curl -fsS -o /dev/null --max-time {timeout} {url}")
        return result.ok

    def published_port(self, instance_id: str, container_port: int) -> str | None:
        result = self._run(
            f"docker port {shlex.quote(instance_id)} {container_port}/tcp "
            "2>/dev/null || true"
        )
        return parse_port_binding(result.check().stdout)

    def published_ports(self) -> set[int]:
        result = self._run("docker ps --format '{{.Ports}}'")
        return parse_published_ports(result.check().stdout)

    def listening_ports(self) -> set[int]:
        result = self._run("ss -tuln 2>/dev/null || netstat -tuln")
        return parse_listening_ports(result.check().stdout)

    def list_instances(self, prefix: str, running_only: bool = False) -> list[str]:
        flag = "" if running_only else " -a"
        result = self._run(
            f"docker ps{flag} --filter {shlex.quote(f'name=^{prefix}-')} "
            "--format '{{.Names}}'"
        )
        pattern = instance_pattern(prefix)
        names = [
            line.strip()
            for line in result.check().stdout.splitlines()
            if pattern.match(line.strip())
        ]
        return sorted(names, reverse=True)

    def observe_command(self, prefix: str, container_port: int) -> str:
        name_filter = shlex.quote(f"name=^{prefix}-")
        name_pattern = shlex.quote(f"^{prefix}-[0-9]+$")
        return (
            f"name=$(docker ps --filter {name_filter} --format '{{{{.Names}}}}' "
            f"| grep -E {name_pattern} | sort -r | head -n 1); "
            'if [ -n "$name" ]; then echo "$name"; '
            f'docker port "$name" {container_port}/tcp 2>/dev/null | head -n 1; fi'
        )

    def parse_observation(
        self, prefix: str, output: str
    ) -> tuple[str | None, str | None]:
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        if not lines or not instance_pattern(prefix).match(lines[0]):
            return None, None
        port = parse_port_binding("\n".join(lines[1:]))
        return lines[0], port

    def restart(self, instance_id: str, grace: int) -> None:
        logger.debug(f"Restarting instance {instance_id}")
        self._run(f"docker restart --time {grace} {shlex.quote(instance_id)}").check()

    def stop_and_remove(self, instance_id: str, grace: int) -> None:
        name = shlex.quote(instance_id)
        path = shlex.quote(self.descriptor_path(instance_id))
        logger.debug(f"Stopping instance {instance_id} (grace {grace}s)")
        self._run(
            f"docker stop --time {grace} {name} >/dev/null 2>&1; "
            f"docker rm -f {name} >/dev/null 2>&1; "
            f"rm -f {path}; "
            f"! docker ps -a --format '{{{{.Names}}}}' | grep -qx {name}"
        ).check()

    def containers_on_port(self, port: int) -> list[str]:
        result = self._run("docker ps --format '{{.Names}}\t{{.Ports}}'")
        names = []
        for line in result.check().stdout.splitlines():
            name, _, ports = line.partition("\t")
            if port in parse_published_ports(ports):
                names.append(name.strip())
        return names

    def remove_containers(self, names: list[str]) -> None:
        if not names:
            return
        logger.debug(f"Force-removing containers: {', '.join(names)}")
        quoted = " ".join(shlex.quote(name) for name in names)
        self._run(f"docker rm -f {quoted}").check()

    def _run(self, command: str) -> CommandResult:
        return self.executor.run(self.host, command, timeout=self.timeout)
