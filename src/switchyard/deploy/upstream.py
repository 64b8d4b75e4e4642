"""Upstream Record switching shared by cutovers and drift repair."""

from __future__ import annotations

from switchyard.hosts.base import BaseAppHost, BaseProxyHost
from switchyard.lib.errors import (
    ConfigValidationFailedError,
    VerificationMismatchError,
)
from switchyard.lib.logging_config import get_logger
from switchyard.models.deployment import UpstreamRecord, ports_match

logger = get_logger(__name__)


class UpstreamSwitcher:
    """Points an environment's Upstream Record at a port and proves it took.

    ``switch`` writes and validates, ``verify`` reloads and compares the
    record with the runtime, ``restore`` puts a snapshot back.
    """

    def __init__(
        self,
        proxy: BaseProxyHost,
        app: BaseAppHost,
        upstream_ip: str,
        container_port: int,
    ) -> None:
        self.proxy = proxy
        self.app = app
        self.upstream_ip = upstream_ip
        self.container_port = container_port

    def render(self, environment: str, port: int | str) -> str:
        record = UpstreamRecord(
            name=self.proxy.upstream_name(environment),
            ip=self.upstream_ip,
            port=str(port),
        )
        return record.render()

    def switch(self, environment: str, port: int | str) -> None:
        """Replace the record and validate the proxy configuration.

        Raises:
            ConfigValidationFailedError: If the proxy rejects the new config
        """
        logger.info(f"Pointing '{environment}' at port {port}")
        self.proxy.write_record(environment, self.render(environment, port))
        result = self.proxy.validate()
        if not result.ok:
            raise ConfigValidationFailedError(result.stderr.strip() or result.output)

    def verify(self, environment: str, instance_id: str) -> str:
        """Reload the proxy and confirm it declares the instance's port.

        Returns:
            The verified port

        Raises:
            VerificationMismatchError: If declared and published ports differ
        """
        self.proxy.reload()
        declared = self.proxy.declared_port(environment)
        actual = self.app.published_port(instance_id, self.container_port)
        if not ports_match(declared, actual):
            raise VerificationMismatchError(environment, declared or "", actual or "")
        logger.debug(f"Verified '{environment}' on port {actual}")
        return str(actual)

    def restore(self, environment: str, snapshot: str) -> None:
        """Put back a previous record text, or delete the record if there was none.

        The proxy is reloaded only when the restored configuration validates.

        Raises:
            ConfigValidationFailedError: If the restored config does not validate
        """
        if snapshot.strip():
            logger.info(f"Restoring previous upstream record for '{environment}'")
            self.proxy.write_record(environment, snapshot)
        else:
            logger.info(f"Removing upstream record for '{environment}'")
            self.proxy.remove_record(environment)

        result = self.proxy.validate()
        if not result.ok:
            raise ConfigValidationFailedError(result.stderr.strip() or result.output)
        self.proxy.reload()
