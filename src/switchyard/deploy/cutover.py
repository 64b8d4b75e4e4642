"""Zero-downtime cutover engine.

A cutover moves an environment from its current instance to a new one:

    allocating -> starting -> health_checking -> switching -> verifying -> committed

Any failure ends in ``rolled_back``. Failures before the switch only remove the
new instance; failures during or after the switch first restore the previous
Upstream Record (byte-for-byte, or delete it if there was none). Problems while
retiring old instances after commit are reported as warnings.

The new instance moves ``starting -> healthy -> active``; the instances it
replaces go ``draining -> removed``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from switchyard.deploy.descriptor import build_descriptor, render_descriptor
from switchyard.deploy.health import HealthChecker
from switchyard.deploy.ports import PortAllocator
from switchyard.deploy.state import DeploymentLedger
from switchyard.deploy.upstream import UpstreamSwitcher
from switchyard.hosts.base import BaseAppHost, BaseProxyHost
from switchyard.lib.errors import (
    ConfigError,
    DeployError,
    DeploymentError,
    UnsupportedEnvironmentTypeError,
)
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import PortAssignment, ProductType, ProjectConfig
from switchyard.models.deployment import (
    CutoverPhase,
    CutoverResult,
    DeploymentInstance,
    InstanceState,
    UpstreamRecord,
)

logger = get_logger(__name__)

ACTION_NONE = "no changes were made"
ACTION_REMOVED = "new instance removed, upstream record untouched"
ACTION_RESTORED = "previous upstream record restored, new instance removed"
ACTION_RESTORE_FAILED = (
    "restoring the previous upstream record failed, new instance left running; "
    "manual intervention required"
)

ProgressCallback = Callable[[CutoverPhase, str], None]


def make_instance_id(product: str, environment: str, now: datetime) -> str:
    """Return ``<product>-<environment>-<UTC timestamp>``.

    The timestamp has microsecond precision, so ids sort chronologically.
    """
    return f"{product}-{environment}-{now.strftime('%Y%m%d%H%M%S%f')}"


@dataclass
class CutoverPlan:
    """Everything captured before a new instance is started."""

    environment: str
    instance: DeploymentInstance
    bind_port: int | None
    previous_text: str
    previous_port: str | None
    previous_instances: list[DeploymentInstance] = field(default_factory=list)
    evicted: list[str] = field(default_factory=list)

    @property
    def instance_id(self) -> str:
        return self.instance.id

    @property
    def image(self) -> str:
        return self.instance.image or ""


class CutoverEngine:
    """Runs cutovers for the environments of one project.

    ``phase`` and ``instance`` describe the most recent cutover, including
    one that failed.
    """

    def __init__(
        self,
        config: ProjectConfig,
        proxy: BaseProxyHost,
        app: BaseAppHost,
        allocator: PortAllocator | None = None,
        health_checker: HealthChecker | None = None,
        ledger: DeploymentLedger | None = None,
        clock: Callable[[], datetime] | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Project configuration
            proxy: System host adapter
            app: Application host adapter
            allocator: Port allocator for ``port_assignment: allocator``
                (default: from ``deployment`` settings, checking the
                application host's listening sockets)
            health_checker: Health poller (default: from ``health_check``)
            ledger: Deployment ledger; None disables it
            clock: Returns the current UTC time
            progress: Called with each phase and a short description
        """
        self.config = config
        self.proxy = proxy
        self.app = app
        self.allocator = allocator or PortAllocator.from_settings(
            config.deployment, listening=app.listening_ports
        )
        self.health_checker = health_checker or HealthChecker(app, config.health_check)
        self.switcher = UpstreamSwitcher(
            proxy, app, config.upstream_ip, config.docker.container_port
        )
        self.ledger = ledger
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.progress = progress
        self.phase: CutoverPhase | None = None
        self.instance: DeploymentInstance | None = None

    def instance_prefix(self, environment: str) -> str:
        return f"{self.config.product.name}-{environment}"

    def deploy(
        self,
        environment: str,
        image_tag: str | None = None,
        force: bool = False,
        image: str | None = None,
    ) -> CutoverResult:
        """Cut an environment over to a new instance.

        Args:
            environment: Environment name
            image_tag: Image tag (default: the environment's configured tag)
            force: Remove containers blocking a fixed host port
            image: Full image reference; takes precedence over ``image_tag``

        Returns:
            CutoverResult describing the committed cutover

        Raises:
            ConfigError: If the environment is not configured
            DeployError: If any phase fails; carries the phase and the
                corrective action that was taken
        """
        try:
            self.config.get_environment(environment)
        except KeyError as exc:
            raise ConfigError("environments", str(exc.args[0])) from exc

        if image is None:
            tag = image_tag or self.config.image_tag(environment)
            image = self.config.registry.image_reference(tag)
        self.instance = None

        self._enter(CutoverPhase.ALLOCATING, f"Preparing {environment} ({image})")
        try:
            plan = self._allocate(environment, image, force)
        except Exception as exc:
            raise self._abort(environment, ACTION_NONE, exc) from exc
        self.instance = plan.instance

        self._enter(CutoverPhase.STARTING, f"Starting {plan.instance_id}")
        try:
            host_port = self._start(plan)
        except Exception as exc:
            action = self._remove_new_instance(plan)
            raise self._abort(environment, action, exc, plan) from exc

        self._enter(
            CutoverPhase.HEALTH_CHECKING,
            f"Waiting for {plan.instance_id} on port {host_port}",
        )
        try:
            self.health_checker.wait_until_healthy(plan.instance_id, host_port)
        except Exception as exc:
            action = self._remove_new_instance(plan)
            raise self._abort(environment, action, exc, plan) from exc
        self._transition(plan.instance, InstanceState.HEALTHY)

        self._enter(CutoverPhase.SWITCHING, f"Switching upstream to port {host_port}")
        try:
            self.switcher.switch(environment, host_port)
        except Exception as exc:
            action = self._roll_back(plan)
            raise self._abort(environment, action, exc, plan) from exc

        self._enter(CutoverPhase.VERIFYING, "Reloading proxy and verifying")
        try:
            self.switcher.verify(environment, plan.instance_id)
        except Exception as exc:
            action = self._roll_back(plan)
            raise self._abort(environment, action, exc, plan) from exc
        self._transition(plan.instance, InstanceState.ACTIVE)

        self._enter(CutoverPhase.COMMITTED, "Retiring previous instances")
        warnings = self._retire(plan)
        result = CutoverResult(
            environment=environment,
            instance=plan.instance_id,
            image=image,
            host_port=host_port,
            previous_port=plan.previous_port,
            removed_instances=[
                previous.id
                for previous in plan.previous_instances
                if previous.state == InstanceState.REMOVED
            ],
            evicted=plan.evicted,
            deployment=plan.instance,
            retired=plan.previous_instances,
            warnings=warnings,
        )
        self._record(result)
        logger.info(
            f"Cutover of '{environment}' committed: "
            f"{plan.instance_id} on port {host_port}"
        )
        return result

    def _allocate(self, environment: str, image: str, force: bool) -> CutoverPlan:
        env_type = self.config.environment_type(environment)
        if env_type != ProductType.DOCKER:
            raise UnsupportedEnvironmentTypeError(environment, env_type.value)

        self.proxy.preflight()
        previous_text = self.proxy.read_record_text(environment)
        previous = UpstreamRecord.parse(previous_text)
        previous_ids = self.app.list_instances(self.instance_prefix(environment))

        evicted: list[str] = []
        fixed_port = self.config.get_environment(environment).fixed_port
        if fixed_port is not None:
            bind_port: int | None = fixed_port
            evicted = self._claim_fixed_port(fixed_port, force)
        elif self.config.docker.port_assignment == PortAssignment.ALLOCATOR:
            used = self.app.published_ports() | self.proxy.record_ports()
            bind_port = self.allocator.allocate_port(used)
        else:
            bind_port = None

        instance_id = make_instance_id(
            self.config.product.name, environment, self.clock()
        )
        return CutoverPlan(
            environment=environment,
            instance=DeploymentInstance(
                id=instance_id, environment=environment, image=image
            ),
            bind_port=bind_port,
            previous_text=previous_text,
            previous_port=previous.port if previous else None,
            previous_instances=[
                DeploymentInstance(
                    id=previous_id,
                    environment=environment,
                    state=InstanceState.ACTIVE,
                )
                for previous_id in previous_ids
                if previous_id != instance_id and previous_id not in evicted
            ],
            evicted=evicted,
        )

    def _claim_fixed_port(self, port: int, force: bool) -> list[str]:
        """Free a fixed host port; returns the containers that were removed."""
        blocking = self.app.containers_on_port(port)
        if not blocking:
            return []
        if not force:
            raise DeploymentError(
                operation="allocate",
                message=(
                    f"Port {port} is published by {', '.join(blocking)}. "
                    "Re-run with --force to remove the blocking containers"
                ),
            )
        blockers = ", ".join(blocking)
        logger.warning(f"Removing containers blocking port {port}: {blockers}")
        self.app.remove_containers(blocking)
        return list(blocking)

    def _start(self, plan: CutoverPlan) -> int:
        self.app.pull(plan.image)
        descriptor = build_descriptor(
            self.config,
            plan.environment,
            plan.instance_id,
            plan.image,
            plan.bind_port,
        )
        self.app.start(plan.instance_id, render_descriptor(descriptor))
        if plan.bind_port is not None:
            plan.instance.host_port = plan.bind_port
            return plan.bind_port

        published = self.app.published_port(
            plan.instance_id, self.config.docker.container_port
        )
        if not published:
            raise DeploymentError(
                operation="start",
                message=f"Could not determine the port assigned to {plan.instance_id}",
            )
        plan.instance.host_port = int(published)
        return plan.instance.host_port

    def _remove_new_instance(self, plan: CutoverPlan) -> str:
        try:
            self.app.stop_and_remove(plan.instance_id, grace=0)
        except Exception as exc:
            logger.error(f"Failed to remove new instance {plan.instance_id}: {exc}")
            return f"removing new instance {plan.instance_id} failed: {exc}"
        self._transition(plan.instance, InstanceState.REMOVED)
        return ACTION_REMOVED

    def _roll_back(self, plan: CutoverPlan) -> str:
        try:
            self.switcher.restore(plan.environment, plan.previous_text)
        except Exception as exc:
            logger.error(f"Failed to restore upstream for '{plan.environment}': {exc}")
            return ACTION_RESTORE_FAILED

        action = self._remove_new_instance(plan)
        if action != ACTION_REMOVED:
            return f"previous upstream record restored; {action}"
        return ACTION_RESTORED

    def _retire(self, plan: CutoverPlan) -> list[str]:
        grace = self.config.deployment.graceful_shutdown_timeout
        warnings: list[str] = []
        for previous in plan.previous_instances:
            self._transition(previous, InstanceState.DRAINING)
            try:
                self.app.stop_and_remove(previous.id, grace=grace)
            except Exception as exc:
                logger.warning(f"Could not retire {previous.id}: {exc}")
                warnings.append(
                    f"Could not remove previous instance {previous.id}: {exc}"
                )
            else:
                self._transition(previous, InstanceState.REMOVED)
        return warnings

    def _record(self, result: CutoverResult) -> None:
        if self.ledger is None:
            return
        try:
            self.ledger.commit(result, now=self.clock())
        except DeploymentError as exc:
            result.warnings.append(str(exc))

    def _abort(
        self,
        environment: str,
        action: str,
        exc: BaseException,
        plan: CutoverPlan | None = None,
    ) -> DeployError:
        failed_phase = self.phase or CutoverPhase.ALLOCATING
        if plan is not None and plan.evicted:
            action = (
                f"{action}; containers blocking port {plan.bind_port} were "
                f"already removed: {', '.join(plan.evicted)}"
            )
        self._enter(CutoverPhase.ROLLED_BACK, action)
        logger.error(
            f"Deployment of '{environment}' failed during {failed_phase.value}: "
            f"{exc} ({action})"
        )
        return DeployError(environment, failed_phase.value, action, exc)

    def _transition(self, instance: DeploymentInstance, state: InstanceState) -> None:
        logger.debug(f"{instance.id}: {instance.state.value} -> {state.value}")
        instance.state = state

    def _enter(self, phase: CutoverPhase, message: str) -> None:
        self.phase = phase
        logger.debug(f"[{phase.value}] {message}")
        if self.progress is not None:
            self.progress(phase, message)
