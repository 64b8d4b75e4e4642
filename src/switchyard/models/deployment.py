"""Deployment runtime models: instances, upstream records and results."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

_SERVER_LINE = re.compile(r"^\s*server\s+(?P<address>[^\s;]+)\s*;", re.MULTILINE)
_UPSTREAM_NAME = re.compile(r"^\s*upstream\s+(?P<name>[^\s{]+)\s*\{", re.MULTILINE)


class InstanceState(str, Enum):
    """Lifecycle of a deployment instance."""

    STARTING = "starting"
    HEALTHY = "healthy"
    ACTIVE = "active"
    DRAINING = "draining"
    REMOVED = "removed"


class CutoverPhase(str, Enum):
    """Phases of a cutover, in order. ``ROLLED_BACK`` is terminal on failure."""

    ALLOCATING = "allocating"
    STARTING = "starting"
    HEALTH_CHECKING = "health_checking"
    SWITCHING = "switching"
    VERIFYING = "verifying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class SyncOutcome(str, Enum):
    """Per-environment result of a reconciliation."""

    NO_ACTION = "no_action"
    REPAIRED = "repaired"
    FORCED = "forced"
    FAILED = "failed"
    SKIPPED = "skipped"


class DeploymentInstance(BaseModel):
    """One running copy of the application for an environment.

    A cutover moves its new instance through ``starting``, ``healthy`` and
    ``active``; the instances it replaces go ``draining`` then ``removed``.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="<product>-<environment>-<timestamp>")
    environment: str
    image: str | None = Field(default=None, description="Unknown for old instances")
    host_port: int | None = Field(
        default=None, description="Published host port, once known"
    )
    state: InstanceState = Field(default=InstanceState.STARTING)


class UpstreamRecord(BaseModel):
    """The proxy's declaration of which backend serves an environment.

    Rendered as an nginx ``upstream`` block holding a single server line.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., description="Upstream block name")
    ip: str = Field(..., description="Address nginx connects to")
    port: str = Field(..., description="Backend port, kept as text")

    @property
    def server(self) -> str:
        return f"{self.ip}:{self.port}"

    def render(self) -> str:
        """Render the record as nginx configuration text."""
        return f"upstream {self.name} {{\n    server {self.server};\n}}\n"

    @classmethod
    def parse(cls, text: str) -> UpstreamRecord | None:
        """Parse record text written by :meth:`render`.

        Returns None when the text holds no server line. Hand-edited records
        with a missing name are still parsed so drift can be repaired.
        """
        server = _SERVER_LINE.search(text or "")
        if server is None:
            return None
        address = server.group("address")
        ip, _, port = address.rpartition(":")
        if not ip:
            ip, port = address, ""
        name_match = _UPSTREAM_NAME.search(text)
        name = name_match.group("name") if name_match else ""
        return cls(name=name, ip=ip, port=port)


class CutoverResult(BaseModel):
    """Outcome of a successful cutover."""

    model_config = ConfigDict(extra="forbid")

    environment: str
    instance: str
    image: str
    host_port: int
    previous_port: str | None = None
    removed_instances: list[str] = Field(default_factory=list)
    evicted: list[str] = Field(
        default_factory=list, description="Containers removed to free a fixed port"
    )
    deployment: DeploymentInstance | None = None
    retired: list[DeploymentInstance] = Field(default_factory=list)
    phase: CutoverPhase = CutoverPhase.COMMITTED
    warnings: list[str] = Field(default_factory=list)


def ports_match(declared: str | int | None, actual: str | int | None) -> bool:
    """Return True only if both ports are present and textually equal.

    Ports are compared exactly as written: ``" 30042"`` does not match
    ``"30042"``.
    """
    if declared is None or actual is None:
        return False
    declared_text = str(declared)
    return bool(declared_text) and declared_text == str(actual)


class Observation(BaseModel):
    """Declared and actual backend ports for an environment."""

    model_config = ConfigDict(extra="forbid")

    environment: str
    declared_port: str | None = None
    actual_port: str | None = None
    instance: str | None = None

    @property
    def in_sync(self) -> bool:
        return ports_match(self.declared_port, self.actual_port)


class SyncResult(BaseModel):
    """Outcome of reconciling one environment."""

    model_config = ConfigDict(extra="forbid")

    environment: str
    outcome: SyncOutcome
    declared_port: str | None = None
    actual_port: str | None = None
    instance: str | None = None
    error: str | None = None
    notes: list[str] = Field(
        default_factory=list, description="Differences from the deployment history"
    )

    @property
    def ok(self) -> bool:
        return self.outcome != SyncOutcome.FAILED


class RestartResult(BaseModel):
    """Outcome of restarting an environment's newest instance."""

    model_config = ConfigDict(extra="forbid")

    environment: str
    instance: str
    health: str
    sync: SyncResult


class DeleteResult(BaseModel):
    """Outcome of deleting an environment from both hosts."""

    model_config = ConfigDict(extra="forbid")

    environment: str
    record_removed: bool = False
    reloaded: bool = False
    removed_instances: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings


class HealthReport(BaseModel):
    """Container and endpoint health of one environment."""

    model_config = ConfigDict(extra="forbid")

    environment: str
    instance: str | None = None
    status: str
    host_port: str | None = None
    endpoint_ok: bool | None = Field(
        default=None, description="None when no endpoint is checked"
    )
    skipped: bool = False
    error: str | None = None

    @property
    def healthy(self) -> bool:
        if self.skipped:
            return True
        if self.error is not None or self.endpoint_ok is False:
            return False
        return self.status in ("healthy", "none")


class DeploymentRecord(BaseModel):
    """An instance Switchyard committed for an environment."""

    model_config = ConfigDict(extra="forbid")

    instance: str = Field(..., description="Instance identifier")
    image: str | None = Field(default=None, description="Image reference, if known")
    host_port: int = Field(..., description="Host port the proxy points at")
    source: Literal["deploy", "sync"] = Field(
        default="deploy", description="Which command committed the instance"
    )
    committed_at: datetime | None = Field(default=None)


class EnvironmentHistory(BaseModel):
    """The committed instance of an environment and the ones before it."""

    model_config = ConfigDict(extra="forbid")

    active: DeploymentRecord | None = None
    previous: list[DeploymentRecord] = Field(
        default_factory=list, description="Newest first"
    )

    @property
    def rollback_image(self) -> str | None:
        """Return the newest earlier image that differs from the active one."""
        current = self.active.image if self.active else None
        for record in self.previous:
            if record.image and record.image != current:
                return record.image
        return None


class DeploymentState(BaseModel):
    """Top-level deployment history stored beside the config file."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="2", description="State file version")
    environments: dict[str, EnvironmentHistory] = Field(
        default_factory=dict, description="History keyed by environment name"
    )
