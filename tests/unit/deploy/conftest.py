"""Fixtures wiring the cutover engine and reconciler to in-memory hosts."""

import random
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from cluster_fakes import FakeApp, FakeCluster, FakeExecutor, FakeProxy, StepClock

from switchyard.deploy.cutover import CutoverEngine
from switchyard.deploy.health import HealthChecker
from switchyard.deploy.operations import EnvironmentOperations
from switchyard.deploy.ports import PortAllocator
from switchyard.deploy.reconciler import DriftReconciler
from switchyard.deploy.state import DeploymentLedger
from switchyard.models.config import ProjectConfig


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def fake_executor(cluster: FakeCluster) -> FakeExecutor:
    return FakeExecutor(cluster)


@pytest.fixture
def proxy(cluster: FakeCluster, fake_executor: FakeExecutor) -> FakeProxy:
    return FakeProxy(cluster, fake_executor)


@pytest.fixture
def app(cluster: FakeCluster, fake_executor: FakeExecutor) -> FakeApp:
    return FakeApp(cluster, fake_executor)


@pytest.fixture
def ledger(tmp_path: Path) -> DeploymentLedger:
    return DeploymentLedger(tmp_path / "deployments.json")


@pytest.fixture
def make_engine(
    project_config: ProjectConfig,
    proxy: FakeProxy,
    app: FakeApp,
    ledger: DeploymentLedger,
) -> Callable[..., CutoverEngine]:
    """Return a factory for cutover engines wired to the fakes."""

    def _make(
        config: ProjectConfig | None = None,
        allocator: PortAllocator | None = None,
        **kwargs: Any,
    ) -> CutoverEngine:
        return CutoverEngine(
            config or project_config,
            proxy,
            app,
            allocator=allocator
            or PortAllocator(
                30000, 30100, listening=app.listening_ports, rng=random.Random(7)
            ),
            ledger=kwargs.pop("ledger", ledger),
            clock=kwargs.pop("clock", StepClock()),
            **kwargs,
        )

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., CutoverEngine]) -> CutoverEngine:
    return make_engine()


@pytest.fixture
def reconciler(
    project_config: ProjectConfig,
    proxy: FakeProxy,
    app: FakeApp,
    fake_executor: FakeExecutor,
) -> DriftReconciler:
    return DriftReconciler(project_config, proxy, app, fake_executor)


@pytest.fixture
def operations(
    project_config: ProjectConfig,
    proxy: FakeProxy,
    app: FakeApp,
    fake_executor: FakeExecutor,
    ledger: DeploymentLedger,
) -> EnvironmentOperations:
    return EnvironmentOperations(
        project_config,
        proxy,
        app,
        fake_executor,
        ledger=ledger,
        health_checker=HealthChecker(
            app, project_config.health_check, sleep=lambda seconds: None
        ),
    )
