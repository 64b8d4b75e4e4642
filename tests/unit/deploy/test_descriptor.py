"""Tests for compose descriptor rendering."""

from typing import Any

import yaml

from switchyard.deploy.descriptor import (
    SERVICE_NAME,
    build_descriptor,
    healthcheck_test,
    port_mapping,
    render_descriptor,
)
from switchyard.models.config import HealthCheckConfig, ProjectConfig

INSTANCE = "shop-production-20260301120000000000"
IMAGE = "ghcr.io/acme/shop:stable"


def _service(config: ProjectConfig, host_port: int | None = 30042) -> dict[str, Any]:
    descriptor = build_descriptor(config, "production", INSTANCE, IMAGE, host_port)
    return descriptor["services"][SERVICE_NAME]


class TestPortMapping:
    """Tests for the compose port entry."""

    def test_bound_port(self) -> None:
        assert port_mapping(30042, 3000) == "30042:3000"

    def test_runtime_assigned_port(self) -> None:
        assert port_mapping(None, 3000) == "3000"


class TestHealthcheckTest:
    """Tests for the healthcheck directive."""

    def test_default_checks_endpoint(self) -> None:
        test = healthcheck_test(HealthCheckConfig(), 3000)

        assert test is not None
        assert test[:2] == ["CMD", "wget"]
        assert test[-1] == "http://127.0.0.1:3000/health"

    def test_custom_command_is_substituted(self) -> None:
        health = HealthCheckConfig(
            endpoint="/ready",
            command=[
                "CMD",
                "curl",
                "-f",
                "http://localhost:${container_port}${health_endpoint}",
            ],
        )

        test = healthcheck_test(health, 8080)

        assert test == ["CMD", "curl", "-f", "http://localhost:8080/ready"]

    def test_disabled(self) -> None:
        assert healthcheck_test(HealthCheckConfig(enabled=False), 3000) is None

    def test_no_endpoint(self) -> None:
        assert healthcheck_test(HealthCheckConfig(endpoint=None), 3000) is None


class TestBuildDescriptor:
    """Tests for build_descriptor."""

    def test_service_basics(self, project_config: ProjectConfig) -> None:
        service = _service(project_config)

        assert service["container_name"] == INSTANCE
        assert service["image"] == IMAGE
        assert service["ports"] == ["30042:3000"]
        assert service["restart"] == "unless-stopped"
        assert service["env_file"] == ["/home/deploy/apps/shop/.env.production"]

    def test_runtime_port(self, project_config: ProjectConfig) -> None:
        assert _service(project_config, host_port=None)["ports"] == ["3000"]

    def test_logging_options_are_strings(self, project_config: ProjectConfig) -> None:
        logging = _service(project_config)["logging"]

        assert logging["driver"] == "json-file"
        assert logging["options"] == {"max-size": "10m", "max-file": "3"}

    def test_network_is_external(self, project_config: ProjectConfig) -> None:
        descriptor = build_descriptor(
            project_config, "production", INSTANCE, IMAGE, 30042
        )

        assert descriptor["networks"] == {"shop-network": {"external": True}}
        assert descriptor["services"][SERVICE_NAME]["networks"] == ["shop-network"]

    def test_network_alias(self, config_data: dict[str, Any]) -> None:
        config_data["docker"].update(network_name="edge", network_alias="shop-app")
        service = _service(ProjectConfig(**config_data))

        assert service["networks"] == {"edge": {"aliases": ["shop-app"]}}

    def test_env_vars_and_extra_hosts(self, config_data: dict[str, Any]) -> None:
        config_data["docker"].update(
            env_vars={"NODE_ENV": "production", "WORKERS": 4},
            extra_hosts=["db.internal:10.0.0.9"],
        )
        service = _service(ProjectConfig(**config_data))

        assert service["environment"] == {"NODE_ENV": "production", "WORKERS": "4"}
        assert service["extra_hosts"] == ["db.internal:10.0.0.9"]

    def test_optional_sections_are_omitted(
        self, project_config: ProjectConfig
    ) -> None:
        service = _service(project_config)

        assert "environment" not in service
        assert "extra_hosts" not in service

    def test_healthcheck_section(self, project_config: ProjectConfig) -> None:
        healthcheck = _service(project_config)["healthcheck"]

        assert healthcheck["interval"] == "30s"
        assert healthcheck["retries"] == 3
        assert healthcheck["test"][-1] == "http://127.0.0.1:3000/health"

    def test_custom_env_path(self, config_data: dict[str, Any]) -> None:
        config_data["environments"]["production"]["env_path"] = "/srv/shop/prod.env"
        service = _service(ProjectConfig(**config_data))

        assert service["env_file"] == ["/srv/shop/prod.env"]


class TestRenderDescriptor:
    """Tests for YAML rendering."""

    def test_render_is_valid_compose_yaml(self, project_config: ProjectConfig) -> None:
        descriptor = build_descriptor(
            project_config, "production", INSTANCE, IMAGE, 30042
        )

        text = render_descriptor(descriptor)

        assert text.startswith("services:")
        assert yaml.safe_load(text) == descriptor
