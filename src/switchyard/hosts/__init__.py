"""Host adapters for the proxy (system) host and the application host."""

from __future__ import annotations

from switchyard.hosts.base import BaseAppHost, BaseProxyHost
from switchyard.lib.errors import UnsupportedEnvironmentTypeError
from switchyard.models.config import ProductType, ProjectConfig, ServerConfig
from switchyard.remote.executor import BaseExecutor, ProcessExecutor
from switchyard.remote.transport import RemoteHost, SSHTransport

APPLICATION = "application"
SYSTEM = "system"


def create_remote_host(name: str, server: ServerConfig) -> RemoteHost:
    """Build the executor-facing host description from configuration."""
    return RemoteHost(
        name=name,
        address=server.host,
        user=server.user,
        port=server.port,
        ssh_key=server.ssh_key,
        private_ip=server.private_ip,
        local=server.is_local,
    )


def create_executor(config: ProjectConfig) -> ProcessExecutor:
    """Create the process executor configured for both hosts."""
    transport = SSHTransport(
        connect_timeout=config.ssh.connect_timeout,
        multiplex=config.ssh.multiplex,
    )
    return ProcessExecutor(transport, default_timeout=config.ssh.command_timeout)


def create_proxy_host(config: ProjectConfig, executor: BaseExecutor) -> BaseProxyHost:
    """Create the adapter for the system host."""
    from switchyard.hosts.nginx import NginxProxyHost

    return NginxProxyHost(
        executor,
        create_remote_host(SYSTEM, config.servers.system),
        config.nginx,
        config.product.name,
        timeout=config.ssh.command_timeout,
    )


def create_app_host(
    config: ProjectConfig, executor: BaseExecutor, environment: str | None = None
) -> BaseAppHost:
    """Create the adapter for the application host.

    Raises:
        UnsupportedEnvironmentTypeError: If ``environment`` is not container based
    """
    if environment is not None:
        env_type = config.environment_type(environment)
        if env_type != ProductType.DOCKER:
            raise UnsupportedEnvironmentTypeError(environment, env_type.value)

    from switchyard.hosts.docker import DockerAppHost

    return DockerAppHost(
        executor,
        create_remote_host(APPLICATION, config.servers.application),
        config.servers.application.deploy_path,
        config.network_name,
        timeout=config.ssh.command_timeout,
    )


__all__ = [
    "APPLICATION",
    "SYSTEM",
    "BaseAppHost",
    "BaseProxyHost",
    "create_app_host",
    "create_executor",
    "create_proxy_host",
    "create_remote_host",
]
