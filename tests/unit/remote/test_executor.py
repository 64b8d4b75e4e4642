"""Tests for the process-backed remote executor."""

import time
from pathlib import Path

import pytest

from switchyard.lib.errors import CommandError, TaskNotFoundError, TransportError
from switchyard.remote.executor import CommandResult, ProcessExecutor, TaskStatus
from switchyard.remote.transport import LocalTransport, RemoteHost, SSHTransport


class TestCommandResult:
    """Tests for CommandResult.check."""

    def test_ok_result_is_returned(self) -> None:
        result = CommandResult(host="system", command="true", exit_code=0)

        assert result.check() is result

    def test_non_zero_exit_raises_command_error(self) -> None:
        result = CommandResult(
            host="system", command="nginx -t", exit_code=1, stderr="emerg\n"
        )

        with pytest.raises(CommandError) as exc_info:
            result.check()

        assert exc_info.value.exit_code == 1
        assert "emerg" in str(exc_info.value)
        assert str(exc_info.value).startswith("[system]")

    def test_unreachable_raises_transport_error(self) -> None:
        result = CommandResult(
            host="application",
            command="docker ps",
            exit_code=255,
            status=TaskStatus.UNREACHABLE,
        )

        with pytest.raises(TransportError, match="unreachable"):
            result.check()

    def test_timeout_raises_command_error(self) -> None:
        result = CommandResult(
            host="application",
            command="sleep 60",
            exit_code=-15,
            status=TaskStatus.TIMED_OUT,
        )

        with pytest.raises(CommandError, match="timed out"):
            result.check()


class TestProcessExecutor:
    """Tests for ProcessExecutor with a local shell transport."""

    def test_run_captures_output(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        result = executor.run(local_host, "echo hello; echo oops >&2")

        assert result.ok
        assert result.status == TaskStatus.DONE
        assert result.stdout == "hello\n"
        assert result.stderr == "oops\n"
        assert result.host == "application"

    def test_output_round_trips_exactly(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        result = executor.run(local_host, "printf '  a \"b\" \\n\\tc'")

        assert result.stdout == '  a "b" \n\tc'

    def test_non_zero_exit_is_data(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        result = executor.run(local_host, "exit 3")

        assert result.exit_code == 3
        assert result.status == TaskStatus.FAILED
        assert not result.ok

    def test_task_ids_are_unique_per_host(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        first = executor.submit(local_host, "true")
        second = executor.submit(local_host, "true")

        assert first != second
        assert first.startswith("application-")
        executor.wait_all([first, second])

    def test_poll_running_then_done(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        task_id = executor.submit(local_host, "sleep 0.5")

        assert executor.poll(task_id) == TaskStatus.RUNNING
        deadline = time.monotonic() + 5
        while executor.poll(task_id) == TaskStatus.RUNNING:
            assert time.monotonic() < deadline
            time.sleep(0.05)

        assert executor.poll(task_id) == TaskStatus.DONE
        executor.wait(task_id)

    def test_timeout_kills_command(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        started = time.monotonic()

        result = executor.run(local_host, "sleep 30", timeout=0.3)

        assert result.status == TaskStatus.TIMED_OUT
        assert time.monotonic() - started < 10
        assert executor.active_tasks == []

    def test_default_timeout_applies(self, local_host: RemoteHost) -> None:
        with ProcessExecutor(LocalTransport(), default_timeout=0.3) as executor:
            result = executor.run(local_host, "sleep 30")

        assert result.status == TaskStatus.TIMED_OUT

    def test_concurrent_tasks_share_deadline(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        """Three one-second commands finish together, not one after another."""
        started = time.monotonic()
        task_ids = [
            executor.submit(local_host, f"sleep 1; echo {n}") for n in range(3)
        ]

        results = executor.wait_all(task_ids, timeout=10)

        assert time.monotonic() - started < 2.5
        assert [results[t].stdout.strip() for t in task_ids] == ["0", "1", "2"]

    def test_cancel_releases_task(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        task_id = executor.submit(local_host, "sleep 30")

        executor.cancel(task_id)

        with pytest.raises(TaskNotFoundError):
            executor.poll(task_id)

    def test_result_can_only_be_collected_once(
        self, executor: ProcessExecutor, local_host: RemoteHost
    ) -> None:
        task_id = executor.submit(local_host, "true")
        executor.wait(task_id)

        with pytest.raises(TaskNotFoundError):
            executor.wait(task_id)

    def test_unknown_task(self, executor: ProcessExecutor) -> None:
        with pytest.raises(TaskNotFoundError, match="system-99"):
            executor.wait("system-99")

    def test_spawn_failure_is_unreachable(self, local_host: RemoteHost) -> None:
        executor = ProcessExecutor(LocalTransport(shell="/nonexistent/bash"))
        task_id = executor.submit(local_host, "true")

        assert executor.poll(task_id) == TaskStatus.UNREACHABLE
        result = executor.wait(task_id)

        assert result.status == TaskStatus.UNREACHABLE
        with pytest.raises(TransportError):
            result.check()

    def test_close_cancels_outstanding_tasks(self, local_host: RemoteHost) -> None:
        executor = ProcessExecutor(LocalTransport())
        executor.submit(local_host, "sleep 30")
        executor.submit(local_host, "sleep 30")

        executor.close()

        assert executor.active_tasks == []


class TestSSHTransport:
    """Tests for SSH argv construction."""

    def test_argv(self) -> None:
        transport = SSHTransport(connect_timeout=5, multiplex=False)
        host = RemoteHost(
            name="system", address="proxy.example.com", user="root", port=2222
        )

        argv = transport.build_argv(host, "nginx -t")

        assert argv[0] == "ssh"
        assert "BatchMode=yes" in argv
        assert "ConnectTimeout=5" in argv
        assert argv[argv.index("-p") + 1] == "2222"
        assert argv[-2:] == ["root@proxy.example.com", "nginx -t"]
        assert "-i" not in argv

    def test_multiplexing_uses_control_socket_per_role(self, tmp_path: Path) -> None:
        transport = SSHTransport(socket_dir=tmp_path)
        host = RemoteHost(name="application", address="10.0.0.5", ssh_key="/k/id")

        argv = transport.build_argv(host, "docker ps")

        assert "ControlMaster=auto" in argv
        assert f"ControlPath={tmp_path}/application-%C" in argv
        assert argv[argv.index("-i") + 1] == "/k/id"

    def test_local_host_skips_ssh(self) -> None:
        transport = SSHTransport(multiplex=False)
        host = RemoteHost(name="application", address="localhost", local=True)

        assert transport.build_argv(host, "docker ps") == ["bash", "-c", "docker ps"]

    def test_exit_255_means_unreachable(self) -> None:
        transport = SSHTransport(multiplex=False)

        assert transport.is_unreachable(255)
        assert not transport.is_unreachable(1)
        assert not LocalTransport().is_unreachable(255)
