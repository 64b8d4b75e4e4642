"""Drift reconciliation between Upstream Records and running instances.

The Upstream Record on the system host declares which port an environment's
traffic goes to; the newest running instance on the application host is what
actually serves it. When they disagree, the record is rewritten to the
observed port using the same switch and verify steps as a cutover. With a
deployment ledger, each result also notes how the environment differs from
the last committed instance, and repairs are recorded as commits.
"""

from __future__ import annotations

from switchyard.deploy.state import DeploymentLedger
from switchyard.deploy.upstream import UpstreamSwitcher
from switchyard.hosts.base import BaseAppHost, BaseProxyHost
from switchyard.lib.errors import (
    ConfigError,
    DeploymentError,
    InstanceNotFoundError,
    UnsupportedEnvironmentTypeError,
)
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import ProductType, ProjectConfig
from switchyard.models.deployment import (
    Observation,
    SyncOutcome,
    SyncResult,
    UpstreamRecord,
)
from switchyard.remote.executor import BaseExecutor

logger = get_logger(__name__)


class DriftReconciler:
    """Detects and repairs drift for the environments of one project."""

    def __init__(
        self,
        config: ProjectConfig,
        proxy: BaseProxyHost,
        app: BaseAppHost,
        executor: BaseExecutor | None = None,
        ledger: DeploymentLedger | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.proxy = proxy
        self.app = app
        self.executor = executor or proxy.executor
        self.switcher = UpstreamSwitcher(
            proxy, app, config.upstream_ip, config.docker.container_port
        )

    @property
    def container_port(self) -> int:
        return self.config.docker.container_port

    def instance_prefix(self, environment: str) -> str:
        return f"{self.config.product.name}-{environment}"

    def inspect(self, environment: str) -> Observation:
        """Return the declared and actual ports without changing anything.

        Raises:
            ConfigError: If the environment is not configured
            UnsupportedEnvironmentTypeError: If it is not container based
        """
        self._require_container_environment(environment)
        observation, _ = self._observe(environment)
        return observation

    def sync(self, environment: str, force: bool = False) -> SyncResult:
        """Reconcile one environment.

        Args:
            environment: Environment name
            force: Rewrite the record even when the ports already match

        Raises:
            ConfigError: If the environment is not configured
            UnsupportedEnvironmentTypeError: If it is not container based
            SwitchyardError: If observation or repair fails
        """
        self._require_container_environment(environment)
        observation, record_text = self._observe(environment)
        return self._reconcile(observation, record_text, force)

    def sync_all(self, force: bool = False) -> list[SyncResult]:
        """Reconcile every configured environment.

        Observation commands for all environments run concurrently; repairs
        then run one environment at a time. A failure is recorded on that
        environment's result and never stops the others. Environments that
        are not container based are reported as skipped.
        """
        results: dict[str, SyncResult] = {}
        tasks: dict[str, tuple[str, str]] = {}

        for environment in self.config.environment_names:
            if self.config.environment_type(environment) != ProductType.DOCKER:
                logger.debug(f"Skipping non-container environment '{environment}'")
                results[environment] = SyncResult(
                    environment=environment, outcome=SyncOutcome.SKIPPED
                )
                continue
            record_task = self.executor.submit(
                self.proxy.host, self.proxy.read_record_command(environment)
            )
            observe_task = self.executor.submit(
                self.app.host,
                self.app.observe_command(
                    self.instance_prefix(environment), self.container_port
                ),
            )
            tasks[environment] = (record_task, observe_task)

        outputs = self.executor.wait_all(
            [task_id for pair in tasks.values() for task_id in pair],
            timeout=self.config.deployment.sync_timeout,
        )

        for environment, (record_task, observe_task) in tasks.items():
            try:
                record_text = outputs[record_task].check().stdout
                observe_output = outputs[observe_task].check().stdout
                observation = self._build_observation(
                    environment, record_text, observe_output
                )
                results[environment] = self._reconcile(observation, record_text, force)
            except Exception as exc:
                logger.error(f"Sync of '{environment}' failed: {exc}")
                results[environment] = SyncResult(
                    environment=environment,
                    outcome=SyncOutcome.FAILED,
                    error=str(exc),
                )

        return [results[name] for name in self.config.environment_names]

    def _require_container_environment(self, environment: str) -> None:
        try:
            env_type = self.config.environment_type(environment)
        except KeyError as exc:
            raise ConfigError("environments", str(exc.args[0])) from exc
        if env_type != ProductType.DOCKER:
            raise UnsupportedEnvironmentTypeError(environment, env_type.value)

    def _observe(self, environment: str) -> tuple[Observation, str]:
        record_text = self.proxy.read_record_text(environment)
        instance, port = self.app.observe(
            self.instance_prefix(environment), self.container_port
        )
        observation = self._make_observation(environment, record_text, instance, port)
        return observation, record_text

    def _build_observation(
        self, environment: str, record_text: str, observe_output: str
    ) -> Observation:
        instance, port = self.app.parse_observation(
            self.instance_prefix(environment), observe_output
        )
        return self._make_observation(environment, record_text, instance, port)

    def _make_observation(
        self,
        environment: str,
        record_text: str,
        instance: str | None,
        port: str | None,
    ) -> Observation:
        record = UpstreamRecord.parse(record_text)
        return Observation(
            environment=environment,
            declared_port=record.port if record and record.port else None,
            actual_port=port,
            instance=instance,
        )

    def _reconcile(
        self, observation: Observation, record_text: str, force: bool
    ) -> SyncResult:
        environment = observation.environment
        notes = self._notes(observation)
        if observation.instance is None:
            raise InstanceNotFoundError(environment, self.instance_prefix(environment))
        if not observation.actual_port:
            raise DeploymentError(
                operation="sync",
                message=(
                    f"Instance {observation.instance} publishes no host port for "
                    f"container port {self.container_port}"
                ),
            )

        if observation.in_sync and not force:
            logger.info(f"'{environment}' is in sync on port {observation.actual_port}")
            return self._result(observation, SyncOutcome.NO_ACTION, notes)

        outcome = SyncOutcome.FORCED if observation.in_sync else SyncOutcome.REPAIRED
        logger.info(
            f"Repairing '{environment}': declared "
            f"{observation.declared_port or '(none)'}, actual {observation.actual_port}"
        )
        try:
            self.switcher.switch(environment, observation.actual_port)
            self.switcher.verify(environment, observation.instance)
        except Exception:
            self._restore(environment, record_text)
            raise
        result = self._result(observation, outcome, notes)
        self._remember(result)
        return result

    def _notes(self, observation: Observation) -> list[str]:
        if self.ledger is None:
            return []
        try:
            return self.ledger.discrepancies(observation)
        except DeploymentError as exc:
            logger.warning(f"Deployment ledger unavailable: {exc}")
            return []

    def _remember(self, result: SyncResult) -> None:
        if self.ledger is None:
            return
        try:
            self.ledger.adopt(result)
        except DeploymentError as exc:
            logger.warning(
                f"Could not record the repair of '{result.environment}': {exc}"
            )

    def _restore(self, environment: str, record_text: str) -> None:
        try:
            self.switcher.restore(environment, record_text)
        except Exception as exc:
            logger.error(
                f"Could not restore the upstream record for '{environment}': {exc}"
            )

    def _result(
        self,
        observation: Observation,
        outcome: SyncOutcome,
        notes: list[str] | None = None,
    ) -> SyncResult:
        return SyncResult(
            environment=observation.environment,
            outcome=outcome,
            declared_port=observation.declared_port,
            actual_port=observation.actual_port,
            instance=observation.instance,
            notes=notes or [],
        )
