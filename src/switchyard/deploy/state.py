"""Deployment ledger: what Switchyard last committed for each environment.

The Upstream Record and the container runtime stay the source of truth. The
ledger remembers which instance a ``deploy`` or ``sync`` committed, so that
``status`` and ``sync`` can tell a committed instance from one started by
hand, and so ``deploy --rollback`` knows which image ran before.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from switchyard.lib.errors import DeploymentError
from switchyard.lib.logging_config import get_logger
from switchyard.models.deployment import (
    CutoverResult,
    DeploymentRecord,
    DeploymentState,
    EnvironmentHistory,
    Observation,
    SyncOutcome,
    SyncResult,
)

logger = get_logger(__name__)

HISTORY_LIMIT = 5


class DeploymentLedger:
    """Reads and updates the JSON ledger stored beside ``switchyard.yml``.

    Attributes:
        path: Ledger file location
        history_limit: Earlier records kept per environment
    """

    def __init__(self, path: Path, history_limit: int = HISTORY_LIMIT) -> None:
        self.path = path
        self.history_limit = history_limit

    @classmethod
    def beside(cls, config_path: Path) -> DeploymentLedger:
        """Return the ledger kept in ``.switchyard/`` next to a config file."""
        return cls(config_path.parent / ".switchyard" / "deployments.json")

    def load(self) -> DeploymentState:
        """Load the ledger; a missing or empty file is an empty ledger.

        Raises:
            DeploymentError: If the file cannot be read or is malformed
        """
        if not self.path.exists():
            return DeploymentState()
        try:
            content = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DeploymentError(
                operation="state",
                message=f"Failed to read deployment ledger at {self.path}: {exc}",
            ) from exc
        if not content.strip():
            return DeploymentState()

        try:
            return DeploymentState.model_validate_json(content)
        except ValidationError as exc:
            raise DeploymentError(
                operation="state",
                message=f"Invalid deployment ledger format in {self.path}: {exc}",
            ) from exc

    def history(self, environment: str) -> EnvironmentHistory:
        return self.load().environments.get(environment, EnvironmentHistory())

    def commit(
        self, result: CutoverResult, now: datetime | None = None
    ) -> DeploymentRecord:
        """Make a cutover's instance the environment's active record."""
        record = DeploymentRecord(
            instance=result.instance,
            image=result.image,
            host_port=result.host_port,
            source="deploy",
            committed_at=now or datetime.now(timezone.utc),
        )
        self._activate(result.environment, record)
        return record

    def adopt(
        self, result: SyncResult, now: datetime | None = None
    ) -> DeploymentRecord | None:
        """Record the instance a repairing sync pointed the proxy at.

        Syncs that changed nothing leave the ledger alone. When the repaired
        instance is already the active one only its port is updated.
        """
        if result.outcome not in (SyncOutcome.REPAIRED, SyncOutcome.FORCED):
            return None
        if result.instance is None or not result.actual_port:
            return None

        active = self.history(result.environment).active
        image = active.image if active and active.instance == result.instance else None
        record = DeploymentRecord(
            instance=result.instance,
            image=image,
            host_port=int(result.actual_port),
            source="sync",
            committed_at=now or datetime.now(timezone.utc),
        )
        self._activate(result.environment, record)
        return record

    def forget(self, environment: str) -> bool:
        """Drop an environment's history. Returns False if there was none."""
        state = self.load()
        if state.environments.pop(environment, None) is None:
            return False
        self._save(state)
        return True

    def discrepancies(self, observation: Observation) -> list[str]:
        """Describe how the observed environment differs from the ledger.

        Returns an empty list when nothing was ever committed.
        """
        active = self.history(observation.environment).active
        if active is None:
            return []

        notes: list[str] = []
        if observation.instance != active.instance:
            running = observation.instance or "no instance"
            notes.append(
                f"running {running}, but the last committed instance is "
                f"{active.instance}"
            )
        if observation.declared_port != str(active.host_port):
            declared = observation.declared_port or "(none)"
            notes.append(
                f"upstream port {declared} differs from the committed port "
                f"{active.host_port}"
            )
        return notes

    def _activate(self, environment: str, record: DeploymentRecord) -> None:
        state = self.load()
        history = state.environments.get(environment, EnvironmentHistory())
        previous = list(history.previous)
        if history.active is not None and history.active.instance != record.instance:
            previous.insert(0, history.active)
        state.environments[environment] = EnvironmentHistory(
            active=record, previous=previous[: self.history_limit]
        )
        self._save(state)
        logger.debug(
            f"Ledger: '{environment}' -> {record.instance} on port {record.host_port}"
        )

    def _save(self, state: DeploymentState) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(
                state.model_dump(mode="json"), indent=2, sort_keys=True
            )
            self.path.write_text(payload, encoding="utf-8")
        except OSError as exc:
            raise DeploymentError(
                operation="state",
                message=f"Failed to write deployment ledger to {self.path}: {exc}",
            ) from exc
