"""Remote execution substrate: transports, concurrent tasks and batches."""

from switchyard.remote.batch import BatchEntry, CommandBatch
from switchyard.remote.executor import (
    BaseExecutor,
    CommandResult,
    ProcessExecutor,
    TaskStatus,
)
from switchyard.remote.store import KeyedStore
from switchyard.remote.transport import (
    LocalTransport,
    RemoteHost,
    SSHTransport,
    Transport,
)

__all__ = [
    "BaseExecutor",
    "BatchEntry",
    "CommandBatch",
    "CommandResult",
    "KeyedStore",
    "LocalTransport",
    "ProcessExecutor",
    "RemoteHost",
    "SSHTransport",
    "TaskStatus",
    "Transport",
]
