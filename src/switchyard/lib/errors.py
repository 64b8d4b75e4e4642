"""Custom exception hierarchy for Switchyard configuration and operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from switchyard.remote.executor import CommandResult


class SwitchyardError(Exception):
    """Base exception for all Switchyard errors.

    All Switchyard-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(SwitchyardError):
    """Exception raised for configuration errors.

    This exception is raised when configuration loading or parsing fails.
    It includes field-specific information to help users identify and fix
    configuration issues.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class DeploymentError(SwitchyardError):
    """Exception raised when a deployment operation fails.

    Attributes:
        operation: Name of the operation that failed (deploy, sync, state, ...)
        message: Human-readable error message
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize DeploymentError with operation context."""
        self.operation = operation
        self.message = message
        super().__init__(f"{operation} failed: {message}")


class RemoteExecutionError(SwitchyardError):
    """Base class for failures reported by the remote execution substrate.

    Attributes:
        host: Name of the host the command targeted
        command: The command that was executed
        result: The captured command result, when one exists
    """

    def __init__(
        self,
        host: str,
        command: str,
        message: str,
        result: CommandResult | None = None,
    ) -> None:
        self.host = host
        self.command = command
        self.result = result
        self.message = message
        super().__init__(f"[{host}] {message}")


class TransportError(RemoteExecutionError):
    """Raised when a host cannot be reached at all."""

    pass


class CommandError(RemoteExecutionError):
    """Raised when a reachable host runs a command that exits non-zero."""

    @property
    def exit_code(self) -> int | None:
        return self.result.exit_code if self.result is not None else None


class TaskNotFoundError(SwitchyardError):
    """Raised when a remote task identifier is not tracked."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Unknown remote task: {task_id}")


class PortExhaustedError(SwitchyardError):
    """Raised when no free host port is found within the attempt limit.

    Attributes:
        start: First port of the reserved range
        end: Last port of the reserved range
        attempts: Number of random draws made before giving up
    """

    def __init__(self, start: int, end: int, attempts: int) -> None:
        self.start = start
        self.end = end
        self.attempts = attempts
        super().__init__(
            f"No available port in range {start}-{end} after {attempts} attempts"
        )


class HealthCheckFailedError(SwitchyardError):
    """Raised when a new instance never reports healthy."""

    def __init__(self, instance: str, attempts: int, last_status: str) -> None:
        self.instance = instance
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"Instance '{instance}' failed to become healthy after {attempts} "
            f"attempts (last status: {last_status})"
        )


class ConfigValidationFailedError(SwitchyardError):
    """Raised when the proxy rejects the candidate configuration."""

    def __init__(self, output: str) -> None:
        self.output = output
        super().__init__(f"Proxy configuration test failed:\n{output}".rstrip())


class VerificationMismatchError(SwitchyardError):
    """Raised when the declared upstream port disagrees with the runtime."""

    def __init__(self, environment: str, declared: str, actual: str) -> None:
        self.environment = environment
        self.declared = declared
        self.actual = actual
        super().__init__(
            f"Upstream for '{environment}' declares port {declared or '(none)'} "
            f"but the instance publishes {actual or '(none)'}"
        )


class UnsupportedEnvironmentTypeError(SwitchyardError):
    """Raised for environments that are not container based."""

    def __init__(self, environment: str, env_type: str) -> None:
        self.environment = environment
        self.env_type = env_type
        super().__init__(
            f"Environment '{environment}' has type '{env_type}'; "
            "only docker environments have ports to manage"
        )


class InstanceNotFoundError(SwitchyardError):
    """Raised when no running instance exists for an environment."""

    def __init__(self, environment: str, prefix: str) -> None:
        self.environment = environment
        self.prefix = prefix
        super().__init__(
            f"No running container found for '{environment}' "
            f"(looked for {prefix}-*)"
        )


class DeployError(SwitchyardError):
    """Raised when a cutover aborts.

    Carries the phase the cutover failed in and the corrective action that
    was taken, so callers can tell operators what state production is in.

    Attributes:
        environment: Environment being deployed
        phase: Phase in which the failure happened
        action: Corrective action taken (rolled back / restored / left as-is)
        cause: The underlying exception
    """

    def __init__(
        self,
        environment: str,
        phase: str,
        action: str,
        cause: BaseException,
    ) -> None:
        self.environment = environment
        self.phase = phase
        self.action = action
        self.cause = cause
        super().__init__(
            f"Deployment of '{environment}' failed during {phase}: {cause} "
            f"({action})"
        )
