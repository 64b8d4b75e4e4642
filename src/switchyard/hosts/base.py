"""Base interfaces for the two hosts a cutover coordinates."""

from __future__ import annotations

from abc import ABC, abstractmethod

from switchyard.models.deployment import UpstreamRecord
from switchyard.remote.batch import BatchEntry
from switchyard.remote.executor import BaseExecutor, CommandResult
from switchyard.remote.transport import RemoteHost

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"
STARTING = "starting"
NO_HEALTHCHECK = "none"
EXITED = "exited"
MISSING = "missing"


class BaseProxyHost(ABC):
    """The system host running the reverse proxy.

    Owns the Upstream Record files and the proxy's validate/reload cycle.
    """

    def __init__(self, executor: BaseExecutor, host: RemoteHost) -> None:
        self.executor = executor
        self.host = host

    @abstractmethod
    def upstream_name(self, environment: str) -> str:
        """Return the upstream block name for an environment."""

    @abstractmethod
    def upstream_path(self, environment: str) -> str:
        """Return the Upstream Record file path for an environment."""

    @abstractmethod
    def read_record_command(self, environment: str) -> str:
        """Return the command that prints an environment's record text.

        Exposed so callers can submit it concurrently with other commands.
        """

    def read_record_text(self, environment: str) -> str:
        """Return the raw record text, or an empty string if none exists."""
        result = self.executor.run(self.host, self.read_record_command(environment))
        return result.check().stdout

    @abstractmethod
    def write_record(self, environment: str, text: str) -> None:
        """Replace the record file atomically.

        Raises:
            RemoteExecutionError: If the write fails
        """

    @abstractmethod
    def remove_record(self, environment: str) -> None:
        """Delete the record file if it exists."""

    @abstractmethod
    def validate(self) -> CommandResult:
        """Test the proxy configuration. Failure is reported, not raised."""

    @abstractmethod
    def reload(self) -> None:
        """Reload the proxy.

        Raises:
            RemoteExecutionError: If the reload fails
        """

    @abstractmethod
    def record_ports(self) -> set[int]:
        """Return the ports referenced by every Upstream Record on the host."""

    @abstractmethod
    def preflight(self) -> dict[str, BatchEntry]:
        """Check the host is ready for a cutover.

        Raises:
            DeploymentError: If a required check fails
        """

    def read_record(self, environment: str) -> UpstreamRecord | None:
        return UpstreamRecord.parse(self.read_record_text(environment))

    def declared_port(self, environment: str) -> str | None:
        record = self.read_record(environment)
        return record.port if record and record.port else None


class BaseAppHost(ABC):
    """The application host running the container runtime."""

    def __init__(self, executor: BaseExecutor, host: RemoteHost) -> None:
        self.executor = executor
        self.host = host

    @abstractmethod
    def pull(self, image: str) -> None:
        """Fetch ``image`` from its registry."""

    @abstractmethod
    def start(self, instance_id: str, descriptor: str) -> None:
        """Upload the descriptor and start the instance it describes.

        Raises:
            RemoteExecutionError: If the instance fails to start
        """

    @abstractmethod
    def health_status(self, instance_id: str) -> str:
        """Return the instance's health.

        One of ``healthy``, ``unhealthy``, ``starting``, ``none`` (running
        without a healthcheck), ``exited`` or ``missing``.
        """

    @abstractmethod
    def check_endpoint(self, port: int, endpoint: str, timeout: int) -> bool:
        """Return True if ``endpoint`` answers with a 2xx/3xx on ``port``."""

    @abstractmethod
    def published_port(self, instance_id: str, container_port: int) -> str | None:
        """Return the host port bound to ``container_port``, if any."""

    @abstractmethod
    def published_ports(self) -> set[int]:
        """Return the host ports published by all running containers."""

    @abstractmethod
    def listening_ports(self) -> set[int]:
        """Return every port with a listening socket on the host."""

    @abstractmethod
    def list_instances(self, prefix: str, running_only: bool = False) -> list[str]:
        """Return instance ids for ``prefix``, newest first."""

    @abstractmethod
    def observe_command(self, prefix: str, container_port: int) -> str:
        """Return the command printing the newest instance and its port."""

    @abstractmethod
    def parse_observation(
        self, prefix: str, output: str
    ) -> tuple[str | None, str | None]:
        """Parse :meth:`observe_command` output into (instance, port)."""

    @abstractmethod
    def restart(self, instance_id: str, grace: int) -> None:
        """Restart an instance in place, keeping its container and ports."""

    @abstractmethod
    def stop_and_remove(self, instance_id: str, grace: int) -> None:
        """Stop an instance gracefully, then remove it and its descriptor.

        Raises:
            RemoteExecutionError: If removal fails
        """

    @abstractmethod
    def containers_on_port(self, port: int) -> list[str]:
        """Return the names of running containers publishing ``port``."""

    @abstractmethod
    def remove_containers(self, names: list[str]) -> None:
        """Force-remove containers by name."""

    def observe(
        self, prefix: str, container_port: int
    ) -> tuple[str | None, str | None]:
        """Return the newest running instance for ``prefix`` and its port."""
        command = self.observe_command(prefix, container_port)
        result = self.executor.run(self.host, command)
        return self.parse_observation(prefix, result.check().stdout)
