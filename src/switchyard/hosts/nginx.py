"""nginx adapter for the system host."""

from __future__ import annotations

import base64
import re
import shlex

from switchyard.hosts.base import BaseProxyHost
from switchyard.lib.errors import DeploymentError
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import NginxConfig
from switchyard.remote.batch import BatchEntry, CommandBatch
from switchyard.remote.executor import BaseExecutor, CommandResult
from switchyard.remote.transport import RemoteHost

logger = get_logger(__name__)

_SERVER_PORT = re.compile(r"server\s+\S+:(\d+)\s*;")


class NginxProxyHost(BaseProxyHost):
    """Manages Upstream Record files and reloads on an nginx host.

    Records live in ``<config_dir>/upstreams/<product>-<environment>.conf``
    and are included by the site configuration, which is managed elsewhere.
    """

    def __init__(
        self,
        executor: BaseExecutor,
        host: RemoteHost,
        nginx: NginxConfig,
        product: str,
        timeout: float | None = None,
    ) -> None:
        super().__init__(executor, host)
        self.nginx = nginx
        self.product = product
        self.timeout = timeout
        use_sudo = nginx.use_sudo if nginx.use_sudo is not None else not host.is_root
        self.sudo = "sudo -n " if use_sudo else ""

    def upstream_name(self, environment: str) -> str:
        return f"{self.product}_{environment}_backend"

    def upstream_path(self, environment: str) -> str:
        return f"{self.nginx.upstreams_dir}/{self.product}-{environment}.conf"

    def read_record_command(self, environment: str) -> str:
        path = shlex.quote(self.upstream_path(environment))
        return f"{self.sudo}test ! -e {path} || {self.sudo}cat {path}"

    def write_record(self, environment: str, text: str) -> None:
        path = self.upstream_path(environment)
        temp_path = f"{path}.tmp"
        payload = base64.b64encode(text.encode("utf-8")).decode("ascii")
        command = (
            f"{self.sudo}mkdir -p {shlex.quote(self.nginx.upstreams_dir)} && "
            f"printf '%s' {shlex.quote(payload)} | base64 -d | "
            f"{self.sudo}tee {shlex.quote(temp_path)} >/dev/null && "
            f"{self.sudo}mv -f {shlex.quote(temp_path)} {shlex.quote(path)}"
        )
        logger.debug(f"Writing upstream record {path}")
        self._run(command).check()

    def remove_record(self, environment: str) -> None:
        path = self.upstream_path(environment)
        logger.debug(f"Removing upstream record {path}")
        self._run(f"{self.sudo}rm -f {shlex.quote(path)}").check()

    def validate(self) -> CommandResult:
        return self._run(f"{self.sudo}{self.nginx.validate_command}")

    def reload(self) -> None:
        logger.debug("Reloading nginx")
        self._run(f"{self.sudo}{self.nginx.reload_command}").check()

    def record_ports(self) -> set[int]:
        pattern = shlex.quote(f"{self.nginx.upstreams_dir}/") + "*.conf"
        result = self._run(
            f'for f in {pattern}; do [ -e "$f" ] || continue; '
            f'{self.sudo}cat "$f" || exit 1; done'
        )
        return {int(port) for port in _SERVER_PORT.findall(result.check().stdout)}

    def preflight(self) -> dict[str, BatchEntry]:
        batch = CommandBatch()
        upstreams_dir = shlex.quote(self.nginx.upstreams_dir)
        batch.add(f"{self.sudo}mkdir -p {upstreams_dir}", "upstreams_dir")
        batch.add(f"{self.sudo}{self.nginx.validate_command}", "nginx_config")

        entries = batch.run(self.executor, self.host, timeout=self.timeout)
        failed = [entry for entry in entries.values() if not entry.ok]
        if failed:
            details = "; ".join(
                f"{entry.label}: {entry.output.strip() or f'exit {entry.exit_code}'}"
                for entry in failed
            )
            raise DeploymentError(
                operation="preflight",
                message=f"System host '{self.host.address}' is not ready: {details}",
            )
        return entries

    def _run(self, command: str) -> CommandResult:
        return self.executor.run(self.host, command, timeout=self.timeout)
