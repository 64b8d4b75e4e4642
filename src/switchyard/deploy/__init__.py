"""Cutover engine, drift reconciler and their building blocks."""

from switchyard.deploy.cutover import CutoverEngine, make_instance_id
from switchyard.deploy.health import HealthChecker
from switchyard.deploy.operations import EnvironmentOperations
from switchyard.deploy.ports import PortAllocator
from switchyard.deploy.reconciler import DriftReconciler
from switchyard.deploy.state import DeploymentLedger
from switchyard.deploy.upstream import UpstreamSwitcher
from switchyard.models.deployment import ports_match

__all__ = [
    "CutoverEngine",
    "DeploymentLedger",
    "DriftReconciler",
    "EnvironmentOperations",
    "HealthChecker",
    "PortAllocator",
    "UpstreamSwitcher",
    "make_instance_id",
    "ports_match",
]
