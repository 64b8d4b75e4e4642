"""Day-two operations on a deployed environment: restart, delete and health."""

from __future__ import annotations

from switchyard.deploy.health import HealthChecker
from switchyard.deploy.reconciler import DriftReconciler
from switchyard.deploy.state import DeploymentLedger
from switchyard.hosts.base import EXITED, MISSING, BaseAppHost, BaseProxyHost
from switchyard.lib.errors import (
    ConfigError,
    DeploymentError,
    InstanceNotFoundError,
    SwitchyardError,
    UnsupportedEnvironmentTypeError,
)
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import ProductType, ProjectConfig
from switchyard.models.deployment import DeleteResult, HealthReport, RestartResult
from switchyard.remote.executor import BaseExecutor

logger = get_logger(__name__)


class EnvironmentOperations:
    """Restarts, deletes and checks the environments of one project.

    ``restart`` bounces the newest instance in place and then syncs the
    Upstream Record, since a runtime-assigned port can change on restart.
    ``delete`` removes every instance and the Upstream Record. ``health``
    reports container health and, where configured, the HTTP endpoint.
    """

    def __init__(
        self,
        config: ProjectConfig,
        proxy: BaseProxyHost,
        app: BaseAppHost,
        executor: BaseExecutor | None = None,
        ledger: DeploymentLedger | None = None,
        health_checker: HealthChecker | None = None,
        reconciler: DriftReconciler | None = None,
    ) -> None:
        self.config = config
        self.proxy = proxy
        self.app = app
        self.ledger = ledger
        self.health_checker = health_checker or HealthChecker(app, config.health_check)
        self.reconciler = reconciler or DriftReconciler(
            config, proxy, app, executor, ledger=ledger
        )

    @property
    def container_port(self) -> int:
        return self.config.docker.container_port

    def instance_prefix(self, environment: str) -> str:
        return f"{self.config.product.name}-{environment}"

    def restart(self, environment: str) -> RestartResult:
        """Restart the newest instance of an environment and re-sync nginx.

        Raises:
            ConfigError: If the environment is not configured
            UnsupportedEnvironmentTypeError: If it is not container based
            InstanceNotFoundError: If the environment has no instance
            HealthCheckFailedError: If the instance is not healthy afterwards
            SwitchyardError: If the restart or the sync fails
        """
        self._require_container_environment(environment)
        instance_id = self._newest_instance(environment)
        if instance_id is None:
            raise InstanceNotFoundError(environment, self.instance_prefix(environment))

        logger.info(f"Restarting {instance_id}")
        self.app.restart(
            instance_id, grace=self.config.deployment.graceful_shutdown_timeout
        )
        port = self.app.published_port(instance_id, self.container_port)
        health = self.health_checker.wait_until_healthy(
            instance_id, int(port) if port else None
        )
        sync = self.reconciler.sync(environment)
        return RestartResult(
            environment=environment, instance=instance_id, health=health, sync=sync
        )

    def delete(self, environment: str) -> DeleteResult:
        """Remove every instance and the Upstream Record of an environment.

        Instances are stopped gracefully first. The record is then removed and
        nginx reloaded if its configuration still tests clean; otherwise
        nginx is left as it is and the failure is reported as a warning.
        Site configuration outside the upstreams directory is not touched.

        Raises:
            ConfigError: If the environment is not configured
            UnsupportedEnvironmentTypeError: If it is not container based
            SwitchyardError: If the hosts cannot be inspected
        """
        self._require_container_environment(environment)
        result = DeleteResult(environment=environment)
        grace = self.config.deployment.graceful_shutdown_timeout

        for instance_id in self.app.list_instances(self.instance_prefix(environment)):
            try:
                self.app.stop_and_remove(instance_id, grace=grace)
            except SwitchyardError as exc:
                logger.warning(f"Could not remove {instance_id}: {exc}")
                result.warnings.append(f"Could not remove {instance_id}: {exc}")
            else:
                result.removed_instances.append(instance_id)

        if self.proxy.read_record_text(environment):
            self.proxy.remove_record(environment)
            result.record_removed = True

        validation = self.proxy.validate()
        if validation.ok:
            self.proxy.reload()
            result.reloaded = True
        else:
            upstream = self.proxy.upstream_name(environment)
            result.warnings.append(
                "nginx configuration test failed after removing the upstream "
                "record, so nginx was not reloaded. A site configuration may "
                f"still reference '{upstream}':\n"
                f"{validation.stderr.strip() or validation.output}"
            )

        if self.ledger is not None:
            try:
                self.ledger.forget(environment)
            except DeploymentError as exc:
                result.warnings.append(str(exc))

        logger.info(
            f"Deleted '{environment}': {len(result.removed_instances)} instance(s), "
            f"record {'removed' if result.record_removed else 'absent'}"
        )
        return result

    def delete_all(self) -> list[DeleteResult]:
        """Delete every container-based environment.

        A failure in one environment is recorded as a warning on its result
        and does not stop the others.
        """
        results: list[DeleteResult] = []
        for environment in self.config.environment_names:
            if self.config.environment_type(environment) != ProductType.DOCKER:
                logger.debug(f"Skipping non-container environment '{environment}'")
                continue
            try:
                results.append(self.delete(environment))
            except SwitchyardError as exc:
                logger.error(f"Deleting '{environment}' failed: {exc}")
                results.append(
                    DeleteResult(environment=environment, warnings=[str(exc)])
                )
        return results

    def health(self, environment: str) -> HealthReport:
        """Report the health of an environment's newest instance.

        Raises:
            ConfigError: If the environment is not configured
            UnsupportedEnvironmentTypeError: If it is not container based
        """
        self._require_container_environment(environment)
        instance_id = self._newest_instance(environment)
        if instance_id is None:
            return HealthReport(environment=environment, status=MISSING)

        status = self.app.health_status(instance_id)
        port = self.app.published_port(instance_id, self.container_port)
        policy = self.config.health_check
        endpoint_ok = None
        running = status not in (MISSING, EXITED)
        if policy.enabled and policy.endpoint and port and running:
            endpoint_ok = self.app.check_endpoint(
                int(port), policy.endpoint, policy.endpoint_timeout
            )

        return HealthReport(
            environment=environment,
            instance=instance_id,
            status=status,
            host_port=port,
            endpoint_ok=endpoint_ok,
        )

    def health_all(self) -> list[HealthReport]:
        """Report every configured environment.

        Environments that are not container based are skipped; a failure to
        inspect one environment is recorded on its report.
        """
        reports: list[HealthReport] = []
        for environment in self.config.environment_names:
            env_type = self.config.environment_type(environment)
            if env_type != ProductType.DOCKER:
                reports.append(
                    HealthReport(
                        environment=environment, status=env_type.value, skipped=True
                    )
                )
                continue
            try:
                reports.append(self.health(environment))
            except SwitchyardError as exc:
                logger.error(f"Health check of '{environment}' failed: {exc}")
                reports.append(
                    HealthReport(
                        environment=environment, status="error", error=str(exc)
                    )
                )
        return reports

    def _newest_instance(self, environment: str) -> str | None:
        instances = self.app.list_instances(self.instance_prefix(environment))
        return instances[0] if instances else None

    def _require_container_environment(self, environment: str) -> None:
        try:
            env_type = self.config.environment_type(environment)
        except KeyError as exc:
            raise ConfigError("environments", str(exc.args[0])) from exc
        if env_type != ProductType.DOCKER:
            raise UnsupportedEnvironmentTypeError(environment, env_type.value)

