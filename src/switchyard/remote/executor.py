"""Concurrent command execution on remote hosts.

Every submitted command runs as its own OS process in a new session, with
stdout and stderr redirected to temporary files. Task state (process handle,
output location, original command, target host) is tracked in separate keyed
stores and dropped as soon as the result has been collected.
"""

from __future__ import annotations

import contextlib
import itertools
import os
import signal
import subprocess  # nosec B404
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from switchyard.lib.errors import CommandError, TaskNotFoundError, TransportError
from switchyard.lib.logging_config import get_logger
from switchyard.remote.store import KeyedStore
from switchyard.remote.transport import RemoteHost, Transport

logger = get_logger(__name__)

DEFAULT_KILL_GRACE = 2.0


class TaskStatus(str, Enum):
    """Lifecycle of a remote task."""

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    UNREACHABLE = "unreachable"


@dataclass
class CommandResult:
    """Captured outcome of one remote command.

    A non-zero exit code is data, not an exception. Call :meth:`check` to turn
    failures into ``CommandError`` / ``TransportError``.

    Attributes:
        host: Name of the host the command ran on
        command: The command text
        exit_code: Process exit code, or None if it never ran to completion
        stdout: Captured standard output
        stderr: Captured standard error
        status: Final task status
    """

    host: str
    command: str
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    status: TaskStatus = TaskStatus.DONE

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.DONE and self.exit_code == 0

    @property
    def output(self) -> str:
        return self.stdout.strip()

    def check(self) -> CommandResult:
        """Return self if the command succeeded, raise otherwise.

        Raises:
            TransportError: If the host could not be reached
            CommandError: If the command failed or timed out
        """
        if self.ok:
            return self
        if self.status == TaskStatus.UNREACHABLE:
            detail = self.stderr.strip() or "connection failed"
            raise TransportError(
                self.host, self.command, f"Host unreachable: {detail}", self
            )
        if self.status == TaskStatus.TIMED_OUT:
            raise CommandError(self.host, self.command, "Command timed out", self)
        detail = self.stderr.strip() or self.stdout.strip()
        message = f"Command exited with code {self.exit_code}"
        if detail:
            message = f"{message}: {detail}"
        raise CommandError(self.host, self.command, message, self)


class BaseExecutor(ABC):
    """Abstract interface for running commands on hosts.

    ``submit`` starts a command and returns immediately with a task id;
    ``wait`` blocks (bounded by a timeout) until the result is available.
    """

    @abstractmethod
    def submit(self, host: RemoteHost, command: str) -> str:
        """Start ``command`` on ``host`` and return its task id."""

    @abstractmethod
    def poll(self, task_id: str) -> TaskStatus:
        """Return the current status of a task without blocking.

        Raises:
            TaskNotFoundError: If the task id is not tracked
        """

    @abstractmethod
    def wait(self, task_id: str, timeout: float | None = None) -> CommandResult:
        """Block until the task finishes or ``timeout`` seconds elapse.

        A task that exceeds the timeout is cancelled and reported as
        ``timed_out``. The task id is released once its result is returned.

        Raises:
            TaskNotFoundError: If the task id is not tracked
        """

    @abstractmethod
    def cancel(self, task_id: str) -> None:
        """Terminate a running task and release it.

        Raises:
            TaskNotFoundError: If the task id is not tracked
        """

    def run(
        self, host: RemoteHost, command: str, timeout: float | None = None
    ) -> CommandResult:
        """Run a command and wait for its result."""
        return self.wait(self.submit(host, command), timeout)

    def wait_all(
        self, task_ids: Iterable[str], timeout: float | None = None
    ) -> dict[str, CommandResult]:
        """Wait for several tasks against one shared deadline."""
        deadline = None if timeout is None else time.monotonic() + timeout
        results: dict[str, CommandResult] = {}
        for task_id in task_ids:
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - time.monotonic())
            results[task_id] = self.wait(task_id, remaining)
        return results


class ProcessExecutor(BaseExecutor):
    """Runs each task as an independent local process via a transport."""

    def __init__(
        self,
        transport: Transport,
        default_timeout: float | None = None,
        kill_grace: float = DEFAULT_KILL_GRACE,
    ) -> None:
        """Initialize the executor.

        Args:
            transport: Builds the argv for each command
            default_timeout: Timeout applied when ``wait`` is given none
            kill_grace: Seconds between SIGTERM and SIGKILL on cancel
        """
        self.transport = transport
        self.default_timeout = default_timeout
        self.kill_grace = kill_grace
        self._processes: KeyedStore[subprocess.Popen[bytes]] = KeyedStore("processes")
        self._outputs: KeyedStore[tuple[Path, Path]] = KeyedStore("outputs")
        self._commands: KeyedStore[str] = KeyedStore("commands")
        self._hosts: KeyedStore[RemoteHost] = KeyedStore("hosts")
        self._spawn_errors: KeyedStore[str] = KeyedStore("spawn_errors")
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()

    @property
    def active_tasks(self) -> list[str]:
        return self._commands.keys()

    def submit(self, host: RemoteHost, command: str) -> str:
        with self._counter_lock:
            task_id = f"{host.name}-{next(self._counter)}"

        stdout_path = self._create_output_file(task_id, "stdout")
        stderr_path = self._create_output_file(task_id, "stderr")
        self._commands.set(task_id, command)
        self._hosts.set(task_id, host)
        self._outputs.set(task_id, (stdout_path, stderr_path))

        argv = self.transport.build_argv(host, command)
        logger.debug(f"[{task_id}] {host.name}: {command}")
        try:
            with open(stdout_path, "wb") as out, open(stderr_path, "wb") as err:
                process = subprocess.Popen(  # noqa: S603  # nosec B603
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=err,
                    start_new_session=True,
                )
        except OSError as exc:
            logger.debug(f"[{task_id}] failed to start: {exc}")
            self._spawn_errors.set(task_id, f"{argv[0]}: {exc}")
            return task_id

        self._processes.set(task_id, process)
        return task_id

    def poll(self, task_id: str) -> TaskStatus:
        self._require(task_id)
        if self._spawn_errors.contains(task_id):
            return TaskStatus.UNREACHABLE
        if not self._processes.contains(task_id):
            return TaskStatus.PENDING
        exit_code = self._processes.get(task_id).poll()
        if exit_code is None:
            return TaskStatus.RUNNING
        return self._status_for(exit_code)

    def wait(self, task_id: str, timeout: float | None = None) -> CommandResult:
        self._require(task_id)
        if timeout is None:
            timeout = self.default_timeout

        host = self._hosts.get(task_id)
        command = self._commands.get(task_id)
        try:
            if self._spawn_errors.contains(task_id):
                return CommandResult(
                    host=host.name,
                    command=command,
                    exit_code=None,
                    stderr=self._spawn_errors.get(task_id),
                    status=TaskStatus.UNREACHABLE,
                )

            process = self._processes.get(task_id)
            try:
                exit_code = process.wait(timeout=timeout)
                status = self._status_for(exit_code)
            except subprocess.TimeoutExpired:
                logger.warning(
                    f"[{task_id}] timed out after {timeout}s on {host.name}: {command}"
                )
                self._terminate(process)
                exit_code = process.returncode
                status = TaskStatus.TIMED_OUT

            stdout, stderr = self._read_outputs(task_id)
            result = CommandResult(
                host=host.name,
                command=command,
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
                status=status,
            )
            logger.debug(f"[{task_id}] finished: {status.value} (exit {exit_code})")
            return result
        finally:
            self._forget(task_id)

    def cancel(self, task_id: str) -> None:
        self._require(task_id)
        try:
            if self._processes.contains(task_id):
                self._terminate(self._processes.get(task_id))
            logger.debug(f"[{task_id}] cancelled")
        finally:
            self._forget(task_id)

    def close(self) -> None:
        """Cancel every outstanding task."""
        for task_id in self.active_tasks:
            self.cancel(task_id)

    def __enter__(self) -> ProcessExecutor:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _status_for(self, exit_code: int) -> TaskStatus:
        if self.transport.is_unreachable(exit_code):
            return TaskStatus.UNREACHABLE
        return TaskStatus.DONE if exit_code == 0 else TaskStatus.FAILED

    def _require(self, task_id: str) -> None:
        if not self._commands.contains(task_id):
            raise TaskNotFoundError(task_id)

    def _create_output_file(self, task_id: str, stream: str) -> Path:
        fd, name = tempfile.mkstemp(
            prefix=f"switchyard-{task_id}-", suffix=f".{stream}"
        )
        os.close(fd)
        return Path(name)

    def _read_outputs(self, task_id: str) -> tuple[str, str]:
        stdout_path, stderr_path = self._outputs.get(task_id)
        return (
            stdout_path.read_text(encoding="utf-8", errors="replace"),
            stderr_path.read_text(encoding="utf-8", errors="replace"),
        )

    def _terminate(self, process: subprocess.Popen[bytes]) -> None:
        """SIGTERM the task's process group, then SIGKILL after the grace period."""
        if process.poll() is not None:
            return
        try:
            os.killpg(process.pid, signal.SIGTERM)
        except ProcessLookupError:
            process.wait()
            return
        try:
            process.wait(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            with contextlib.suppress(ProcessLookupError):
                os.killpg(process.pid, signal.SIGKILL)
            process.wait()

    def _forget(self, task_id: str) -> None:
        if self._outputs.contains(task_id):
            for path in self._outputs.get(task_id):
                path.unlink(missing_ok=True)
        for store in (
            self._processes,
            self._outputs,
            self._commands,
            self._hosts,
            self._spawn_errors,
        ):
            store.unset(task_id)
