"""Health polling for newly started instances."""

from __future__ import annotations

import time
from collections.abc import Callable

from switchyard.hosts.base import (
    EXITED,
    HEALTHY,
    MISSING,
    NO_HEALTHCHECK,
    BaseAppHost,
)
from switchyard.lib.errors import HealthCheckFailedError
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import HealthCheckConfig

logger = get_logger(__name__)

RUNNING = "running"
ENDPOINT_FAILED = "endpoint_failed"


class HealthChecker:
    """Polls an instance until it is healthy or the retries run out.

    Docker's own healthcheck status is preferred. Without one, the HTTP
    endpoint is requested from the application host; with neither, a running
    container is accepted.
    """

    def __init__(
        self,
        app: BaseAppHost,
        policy: HealthCheckConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.app = app
        self.policy = policy
        self.sleep = sleep

    def wait_until_healthy(self, instance_id: str, host_port: int | None) -> str:
        """Block until ``instance_id`` is healthy.

        Args:
            instance_id: Instance to poll
            host_port: Published port used for HTTP checks

        Returns:
            ``healthy``, or ``running`` when there was nothing to check

        Raises:
            HealthCheckFailedError: If the instance vanished, exited or never
                became healthy within ``max_retries`` polls
        """
        max_retries = self.policy.max_retries
        last_status = ""

        for attempt in range(1, max_retries + 1):
            status = self.app.health_status(instance_id)
            last_status = status

            if status == HEALTHY:
                logger.info(f"Instance {instance_id} is healthy")
                return HEALTHY
            if status in (MISSING, EXITED):
                raise HealthCheckFailedError(instance_id, attempt, status)
            if status == NO_HEALTHCHECK:
                endpoint = self.policy.endpoint
                if not self.policy.enabled or not endpoint or host_port is None:
                    logger.info(f"Instance {instance_id} is running (no health check)")
                    return RUNNING
                timeout = self.policy.endpoint_timeout
                if self.app.check_endpoint(host_port, endpoint, timeout):
                    logger.info(f"Instance {instance_id} answered on {endpoint}")
                    return HEALTHY
                last_status = ENDPOINT_FAILED

            logger.debug(
                f"Waiting for {instance_id}: {last_status} "
                f"(attempt {attempt}/{max_retries})"
            )
            if attempt < max_retries:
                self.sleep(self.policy.retry_interval)

        raise HealthCheckFailedError(instance_id, max_retries, last_status)
