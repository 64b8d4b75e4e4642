"""Compose descriptor rendering for a deployment instance."""

from __future__ import annotations

from typing import Any

import yaml

from switchyard.models.config import HealthCheckConfig, ProjectConfig

SERVICE_NAME = "app"


def port_mapping(host_port: int | None, container_port: int) -> str:
    """Return the compose port entry.

    A bound host port gives ``"30042:3000"``; without one Docker picks the
    host port and the entry is the bare container port.
    """
    if host_port is None:
        return str(container_port)
    return f"{host_port}:{container_port}"


def healthcheck_test(
    health: HealthCheckConfig, container_port: int
) -> list[str] | None:
    """Return the healthcheck ``test`` list, or None when there is nothing to run."""
    if not health.enabled:
        return None
    if health.command:
        return [
            part.replace("${container_port}", str(container_port)).replace(
                "${health_endpoint}", health.endpoint or ""
            )
            for part in health.command
        ]
    if not health.endpoint:
        return None
    return [
        "CMD",
        "wget",
        "--quiet",
        "--tries=1",
        "--spider",
        f"http://127.0.0.1:{container_port}{health.endpoint}",
    ]


def build_descriptor(
    config: ProjectConfig,
    environment: str,
    instance_id: str,
    image: str,
    host_port: int | None,
) -> dict[str, Any]:
    """Build the compose document for one instance.

    Args:
        config: Project configuration
        environment: Environment name
        instance_id: Container and compose project name
        image: Full image reference
        host_port: Host port to bind, or None to let Docker assign one

    Returns:
        Compose document as a plain dict
    """
    docker = config.docker
    network = config.network_name

    service: dict[str, Any] = {
        "container_name": instance_id,
        "image": image,
        "ports": [port_mapping(host_port, docker.container_port)],
        "env_file": [config.env_file_path(environment)],
    }
    if docker.env_vars:
        service["environment"] = dict(docker.env_vars)
    service["restart"] = docker.restart_policy
    if docker.extra_hosts:
        service["extra_hosts"] = list(docker.extra_hosts)

    service["logging"] = {
        "driver": docker.logging.driver,
        "options": {
            "max-size": docker.logging.max_size,
            "max-file": str(docker.logging.max_file),
        },
    }

    test = healthcheck_test(config.health_check, docker.container_port)
    if test:
        health = config.health_check
        service["healthcheck"] = {
            "test": test,
            "interval": health.interval,
            "timeout": health.timeout,
            "retries": health.retries,
            "start_period": health.start_period,
        }

    if docker.network_alias:
        service["networks"] = {network: {"aliases": [docker.network_alias]}}
    else:
        service["networks"] = [network]

    return {
        "services": {SERVICE_NAME: service},
        "networks": {network: {"external": True}},
    }


def render_descriptor(descriptor: dict[str, Any]) -> str:
    """Serialize a descriptor to YAML, keeping key order."""
    return yaml.safe_dump(descriptor, sort_keys=False, default_flow_style=False)
