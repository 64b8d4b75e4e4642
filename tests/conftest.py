"""Pytest configuration and shared fixtures for Switchyard tests."""

import copy
import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
import yaml

from switchyard.models.config import ProjectConfig

BASE_CONFIG: dict[str, Any] = {
    "product": {"name": "shop"},
    "servers": {
        "application": {
            "host": "app.example.com",
            "user": "deploy",
            "private_ip": "10.0.0.5",
            "deploy_path": "/home/deploy/apps/shop",
        },
        "system": {"host": "proxy.example.com", "user": "root"},
    },
    "registry": {"url": "ghcr.io", "repository": "acme/shop"},
    "docker": {"container_port": 3000},
    "health_check": {"max_retries": 3, "retry_interval": 0},
    "environments": {
        "production": {"domain": "shop.example.com", "image_tag": "stable"},
        "staging": {"domain": "staging.shop.example.com"},
    },
}


@pytest.fixture
def config_data() -> dict[str, Any]:
    """Return a fresh copy of a valid configuration mapping."""
    return copy.deepcopy(BASE_CONFIG)


@pytest.fixture
def project_config(config_data: dict[str, Any]) -> ProjectConfig:
    """Return a validated two-environment project configuration."""
    return ProjectConfig(**config_data)


@pytest.fixture
def config_file(tmp_path: Path, config_data: dict[str, Any]) -> Path:
    """Write the configuration to ``switchyard.yml`` in a temp directory."""
    path = tmp_path / "switchyard.yml"
    path.write_text(yaml.safe_dump(config_data), encoding="utf-8")
    return path


@pytest.fixture
def isolated_env() -> Generator[dict[str, str], None, None]:
    """Restore the process environment after the test.

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()
    yield original_env
    os.environ.clear()
    os.environ.update(original_env)
