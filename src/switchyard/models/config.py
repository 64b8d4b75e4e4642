"""Pydantic models for the project configuration file.

This module defines the schema of ``switchyard.yml``: the product, the two
hosts it is deployed across, container runtime settings, health-check policy,
nginx paths and the per-environment deployment targets.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PRODUCT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$|^[a-z0-9]$")
ENVIRONMENT_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")
LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


class ProductType(str, Enum):
    """Deployment unit types."""

    DOCKER = "docker"
    STATIC = "static"


class PortAssignment(str, Enum):
    """Who chooses the host port for ``host_port: auto`` environments.

    ``runtime`` publishes the bare container port and reads back whatever host
    port Docker picked. ``allocator`` reserves a port from ``port_range`` first
    and binds it explicitly.
    """

    ALLOCATOR = "allocator"
    RUNTIME = "runtime"


class ProductConfig(BaseModel):
    """Product identity.

    Attributes:
        name: Product name used in container, upstream and file names
        type: Deployment unit type (docker or static)
        description: Optional free-form description
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Product name (lowercase, '-' allowed)")
    type: ProductType = Field(default=ProductType.DOCKER)
    description: str | None = Field(default=None)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Product names end up in compose project names, which are lowercase."""
        if not PRODUCT_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid product name: {v}. "
                "Use lowercase letters, numbers and '-'"
            )
        return v


class ServerConfig(BaseModel):
    """Connection details for one remote host.

    Attributes:
        host: Hostname or IP address used to connect
        user: Login user
        ssh_key: Path to the private key (``~`` is expanded)
        port: SSH port
        private_ip: Address nginx should use to reach the host, if different
        deploy_path: Directory holding descriptors and env files
    """

    model_config = ConfigDict(extra="forbid")

    host: str = Field(..., description="Hostname or IP address")
    user: str = Field(default="deploy", description="Login user")
    ssh_key: str | None = Field(default=None, description="Private key path")
    port: int = Field(default=22, ge=1, le=65535)
    private_ip: str | None = Field(default=None)
    deploy_path: str = Field(default="/home/deploy/apps")

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Reject empty host names."""
        if not v.strip():
            raise ValueError("host must not be empty")
        return v.strip()

    @property
    def is_local(self) -> bool:
        return self.host in LOCAL_HOSTS and self.ssh_key is None


class ServersConfig(BaseModel):
    """The application host (Docker) and the system host (nginx)."""

    model_config = ConfigDict(extra="forbid")

    application: ServerConfig
    system: ServerConfig


class SSHConfig(BaseModel):
    """Remote shell transport settings."""

    model_config = ConfigDict(extra="forbid")

    connect_timeout: int = Field(default=10, ge=1, description="Seconds")
    command_timeout: int = Field(default=120, ge=1, description="Seconds")
    multiplex: bool = Field(default=True, description="Reuse SSH connections")


class RegistryConfig(BaseModel):
    """Image location. Authentication happens outside Switchyard."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = Field(default=None, description="Registry host, e.g. ghcr.io")
    repository: str = Field(..., description="Repository, e.g. org/app")

    def image_reference(self, tag: str) -> str:
        """Return the full image reference for ``tag``."""
        if not self.url:
            return f"{self.repository}:{tag}"
        return f"{self.url.rstrip('/')}/{self.repository}:{tag}"


class LoggingDriverConfig(BaseModel):
    """Container log driver settings."""

    model_config = ConfigDict(extra="forbid")

    driver: str = Field(default="json-file")
    max_size: str = Field(default="10m")
    max_file: int = Field(default=3, ge=1)


class DockerConfig(BaseModel):
    """Container runtime settings shared by every environment."""

    model_config = ConfigDict(extra="forbid")

    container_port: int = Field(default=3000, ge=1, le=65535)
    network_name: str | None = Field(default=None)
    network_alias: str | None = Field(default=None)
    restart_policy: str = Field(default="unless-stopped")
    port_assignment: PortAssignment = Field(default=PortAssignment.RUNTIME)
    env_vars: dict[str, str] = Field(default_factory=dict)
    extra_hosts: list[str] = Field(default_factory=list)
    logging: LoggingDriverConfig = Field(default_factory=LoggingDriverConfig)

    @field_validator("env_vars", mode="before")
    @classmethod
    def stringify_env_vars(cls, v: object) -> object:
        """YAML turns ``PORT: 3000`` into an int; compose wants strings."""
        if isinstance(v, dict):
            return {str(k): "" if val is None else str(val) for k, val in v.items()}
        return v


class HealthCheckConfig(BaseModel):
    """Health-check policy.

    ``interval``/``timeout``/``retries``/``start_period`` configure the Docker
    healthcheck directive; ``max_retries`` and ``retry_interval`` bound the
    polling loop that waits for a new instance to become healthy.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True)
    endpoint: str | None = Field(default="/health")
    command: list[str] | None = Field(default=None)
    interval: str = Field(default="30s")
    timeout: str = Field(default="10s")
    retries: int = Field(default=3, ge=1)
    start_period: str = Field(default="40s")
    max_retries: int = Field(default=30, ge=1)
    retry_interval: float = Field(default=2.0, ge=0)
    endpoint_timeout: int = Field(default=5, ge=1)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str | None) -> str | None:
        """Endpoints are URL paths."""
        if v is not None and v and not v.startswith("/"):
            return f"/{v}"
        return v or None


class NginxConfig(BaseModel):
    """Proxy host paths and commands."""

    model_config = ConfigDict(extra="forbid")

    config_dir: str = Field(default="/etc/nginx/switchyard.d")
    validate_command: str = Field(default="nginx -t")
    reload_command: str = Field(default="nginx -s reload")
    use_sudo: bool | None = Field(
        default=None, description="Default: sudo unless the system user is root"
    )

    @property
    def upstreams_dir(self) -> str:
        return f"{self.config_dir.rstrip('/')}/upstreams"


class PortRangeConfig(BaseModel):
    """Reserved host port range, below Docker's ephemeral range."""

    model_config = ConfigDict(extra="forbid")

    start: int = Field(default=30000, ge=1, le=65535)
    end: int = Field(default=32767, ge=1, le=65535)

    @model_validator(mode="after")
    def validate_bounds(self) -> PortRangeConfig:
        """Ensure start <= end."""
        if self.start > self.end:
            raise ValueError(
                f"port_range.start ({self.start}) must not exceed "
                f"port_range.end ({self.end})"
            )
        return self


class DeploymentSettings(BaseModel):
    """Cutover tuning."""

    model_config = ConfigDict(extra="forbid")

    graceful_shutdown_timeout: int = Field(default=30, ge=0, description="Seconds")
    port_range: PortRangeConfig = Field(default_factory=PortRangeConfig)
    max_port_attempts: int = Field(default=50, ge=1)
    sync_timeout: int = Field(
        default=120, ge=1, description="Seconds to wait for sync observations"
    )


class EnvironmentConfig(BaseModel):
    """One deployment target.

    Attributes:
        domain: Public domain served by this environment
        env_path: Env file on the application host
        image_tag: Image tag to deploy (defaults to the environment name)
        host_port: Fixed host port, or ``auto`` to pick one per deployment
        type: Overrides the product type for this environment
    """

    model_config = ConfigDict(extra="forbid")

    domain: str | None = Field(default=None)
    env_path: str | None = Field(default=None)
    image_tag: str | None = Field(default=None)
    host_port: int | Literal["auto"] = Field(default="auto")
    type: ProductType | None = Field(default=None)

    @field_validator("host_port")
    @classmethod
    def validate_host_port(cls, v: int | str) -> int | str:
        """Fixed ports must be valid TCP ports."""
        if isinstance(v, int) and not 1 <= v <= 65535:
            raise ValueError(f"host_port={v} must be between 1 and 65535")
        return v

    @property
    def fixed_port(self) -> int | None:
        return self.host_port if isinstance(self.host_port, int) else None


class ProjectConfig(BaseModel):
    """Top-level ``switchyard.yml`` schema."""

    model_config = ConfigDict(extra="forbid")

    product: ProductConfig
    servers: ServersConfig
    registry: RegistryConfig
    ssh: SSHConfig = Field(default_factory=SSHConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)
    nginx: NginxConfig = Field(default_factory=NginxConfig)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    environments: dict[str, EnvironmentConfig] = Field(default_factory=dict)

    @field_validator("environments", mode="before")
    @classmethod
    def fill_empty_environments(cls, v: object) -> object:
        """Allow ``staging:`` with no body in YAML."""
        if isinstance(v, dict):
            return {k: ({} if body is None else body) for k, body in v.items()}
        return v

    @field_validator("environments")
    @classmethod
    def validate_environment_names(
        cls, v: dict[str, EnvironmentConfig]
    ) -> dict[str, EnvironmentConfig]:
        """Environment names end up in compose project names, which are lowercase."""
        for name in v:
            if not ENVIRONMENT_NAME_PATTERN.match(name):
                raise ValueError(
                    f"Invalid environment name: {name}. "
                    "Use lowercase letters, numbers, '_' and '-'"
                )
        return v

    @property
    def environment_names(self) -> list[str]:
        return list(self.environments)

    @property
    def network_name(self) -> str:
        return self.docker.network_name or f"{self.product.name}-network"

    @property
    def upstream_ip(self) -> str:
        application = self.servers.application
        return application.private_ip or application.host

    def get_environment(self, name: str) -> EnvironmentConfig:
        """Return an environment by name.

        Raises:
            KeyError: If the environment is not configured
        """
        try:
            return self.environments[name]
        except KeyError:
            available = ", ".join(self.environments) or "(none)"
            raise KeyError(
                f"Environment '{name}' is not configured. Available: {available}"
            ) from None

    def environment_type(self, name: str) -> ProductType:
        """Return the effective deployment type of an environment."""
        return self.get_environment(name).type or self.product.type

    def image_tag(self, name: str) -> str:
        return self.get_environment(name).image_tag or name

    def env_file_path(self, name: str) -> str:
        env = self.get_environment(name)
        if env.env_path:
            return env.env_path
        deploy_path = self.servers.application.deploy_path.rstrip("/")
        return f"{deploy_path}/.env.{name}"
