"""Fixtures for host adapter tests."""

import pytest
from scripted_executor import ScriptedExecutor

from switchyard.hosts.docker import DockerAppHost
from switchyard.hosts.nginx import NginxProxyHost
from switchyard.models.config import NginxConfig
from switchyard.remote.transport import RemoteHost


@pytest.fixture
def scripted() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest.fixture
def nginx_host(scripted: ScriptedExecutor) -> NginxProxyHost:
    host = RemoteHost(name="system", address="proxy.example.com", user="deploy")
    return NginxProxyHost(scripted, host, NginxConfig(), "shop", timeout=30)


@pytest.fixture
def docker_host(scripted: ScriptedExecutor) -> DockerAppHost:
    host = RemoteHost(name="application", address="app.example.com")
    return DockerAppHost(
        scripted, host, "/home/deploy/apps/shop/", "shop-network", timeout=30
    )
