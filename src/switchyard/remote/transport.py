"""Transports turn a shell command for a host into a local argv.

``SSHTransport`` runs commands on remote hosts over key-based SSH.
``LocalTransport`` runs them through ``bash -c`` on this machine, which serves
hosts configured as ``localhost`` and the test-suite.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

SSH_UNREACHABLE_EXIT_CODE = 255
DEFAULT_SOCKET_DIR = Path("~/.switchyard/ssh-sockets")


@dataclass(frozen=True)
class RemoteHost:
    """A host commands can be sent to.

    Attributes:
        name: Role of the host (``application`` or ``system``)
        address: Hostname or IP address to connect to
        user: Login user
        port: SSH port
        ssh_key: Path to the private key, if not the agent default
        private_ip: Address other hosts use to reach this one
        local: Run commands on this machine instead of over SSH
    """

    name: str
    address: str
    user: str = "deploy"
    port: int = 22
    ssh_key: str | None = None
    private_ip: str | None = None
    local: bool = False

    @property
    def target(self) -> str:
        return f"{self.user}@{self.address}"

    @property
    def is_root(self) -> bool:
        return self.user == "root"


class Transport(ABC):
    """Builds the local process invocation for a command on a host."""

    @abstractmethod
    def build_argv(self, host: RemoteHost, command: str) -> list[str]:
        """Return the argv that runs ``command`` on ``host``."""

    def is_unreachable(self, exit_code: int | None) -> bool:
        """Whether ``exit_code`` means the host was never reached."""
        return False


class LocalTransport(Transport):
    """Runs commands locally through bash."""

    def __init__(self, shell: str = "bash") -> None:
        self.shell = shell

    def build_argv(self, host: RemoteHost, command: str) -> list[str]:
        return [self.shell, "-c", command]


class SSHTransport(Transport):
    """Runs commands over OpenSSH in batch mode.

    With ``multiplex`` enabled, connections to the same host share one master
    connection through a control socket per host role. Hosts flagged as local
    are run through bash directly.
    """

    def __init__(
        self,
        connect_timeout: int = 10,
        multiplex: bool = True,
        socket_dir: Path | None = None,
        ssh_binary: str = "ssh",
    ) -> None:
        self.connect_timeout = connect_timeout
        self.multiplex = multiplex
        self.socket_dir = (socket_dir or DEFAULT_SOCKET_DIR).expanduser()
        self.ssh_binary = ssh_binary

    def control_path(self, host: RemoteHost) -> Path:
        # %C is expanded by ssh to a hash of host, port and user
        return self.socket_dir / f"{host.name}-%C"

    def build_argv(self, host: RemoteHost, command: str) -> list[str]:
        if host.local:
            return ["bash", "-c", command]
        argv = [
            self.ssh_binary,
            "-o",
            "BatchMode=yes",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-o",
            "StrictHostKeyChecking=accept-new",
            "-p",
            str(host.port),
        ]
        if host.ssh_key:
            argv += ["-i", str(Path(host.ssh_key).expanduser())]
        if self.multiplex:
            self.socket_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
            argv += [
                "-o",
                "ControlMaster=auto",
                "-o",
                f"ControlPath={self.control_path(host)}",
                "-o",
                "ControlPersist=60s",
            ]
        argv += [host.target, command]
        return argv

    def is_unreachable(self, exit_code: int | None) -> bool:
        return exit_code == SSH_UNREACHABLE_EXIT_CODE
