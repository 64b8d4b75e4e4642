"""Combine several labelled commands into one remote round trip.

Each command runs in its own subshell between a start marker and an exit
marker carrying its status, so the combined output can be split back into
per-command output and exit codes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from switchyard.remote.executor import BaseExecutor, TaskStatus
from switchyard.remote.transport import RemoteHost

_MARKER = re.compile(r"__SWITCHYARD_(?P<index>\d+)__:(?:START|EXIT:(?P<code>-?\d+))$")


@dataclass
class BatchEntry:
    """Output of one command in a batch.

    ``exit_code`` is None when the command never reported an exit marker,
    e.g. because the connection dropped part-way through the batch.
    """

    label: str
    command: str
    output: str = ""
    exit_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandBatch:
    """An ordered set of labelled shell commands."""

    def __init__(self) -> None:
        self._commands: list[tuple[str, str]] = []

    def __len__(self) -> int:
        return len(self._commands)

    @property
    def labels(self) -> list[str]:
        return [label for label, _ in self._commands]

    def add(self, command: str, label: str | None = None) -> str:
        """Append a command and return its label."""
        label = label or f"command_{len(self._commands)}"
        if label in self.labels:
            raise ValueError(f"Duplicate batch label: {label}")
        self._commands.append((label, command))
        return label

    def script(self) -> str:
        """Render the batch as a single shell script."""
        lines: list[str] = []
        for index, (_, command) in enumerate(self._commands):
            marker = f"__SWITCHYARD_{index}__"
            lines.append(f"echo '{marker}:START'")
            lines.append(f"(\n{command}\n) 2>&1")
            lines.append(f'echo "{marker}:EXIT:$?"')
        return "\n".join(lines)

    def parse(self, output: str) -> dict[str, BatchEntry]:
        """Split combined script output into per-label entries."""
        entries = {
            label: BatchEntry(label=label, command=command)
            for label, command in self._commands
        }
        buffers: dict[str, list[str]] = {label: [] for label in entries}
        current: str | None = None

        for line in output.splitlines():
            match = _MARKER.search(line)
            if match is None:
                if current is not None:
                    buffers[current].append(line)
                continue

            index = int(match.group("index"))
            if index >= len(self._commands):
                continue
            label = self._commands[index][0]
            # Output without a trailing newline shares a line with the marker
            prefix = line[: match.start()]
            if match.group("code") is None:
                current = label
            else:
                if prefix and current is not None:
                    buffers[current].append(prefix)
                entries[label].exit_code = int(match.group("code"))
                current = None

        for label, entry in entries.items():
            entry.output = "\n".join(buffers[label])
        return entries

    def run(
        self,
        executor: BaseExecutor,
        host: RemoteHost,
        timeout: float | None = None,
    ) -> dict[str, BatchEntry]:
        """Run the batch on ``host`` and return per-label entries.

        Raises:
            TransportError: If the host is unreachable
            CommandError: If the batch as a whole timed out
        """
        result = executor.run(host, self.script(), timeout=timeout)
        if result.status in (TaskStatus.UNREACHABLE, TaskStatus.TIMED_OUT):
            result.check()
        return self.parse(result.stdout)
