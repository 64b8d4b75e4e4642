"""Host port allocation for new deployment instances."""

from __future__ import annotations

import random
from collections.abc import Callable, Iterable

from switchyard.lib.errors import PortExhaustedError
from switchyard.lib.logging_config import get_logger
from switchyard.models.config import DeploymentSettings

logger = get_logger(__name__)

DEFAULT_PORT_RANGE = (30000, 32767)
DEFAULT_MAX_ATTEMPTS = 50


class PortAllocator:
    """Picks a random free host port from a reserved range.

    The default range sits below the Linux ephemeral port range, so outbound
    connections on the host never collide with allocated ports.

    Attributes:
        start: First port of the range (inclusive)
        end: Last port of the range (inclusive)
        max_attempts: Random draws before giving up
    """

    def __init__(
        self,
        start: int = DEFAULT_PORT_RANGE[0],
        end: int = DEFAULT_PORT_RANGE[1],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        listening: Callable[[], Iterable[int]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the allocator.

        Args:
            start: First port of the range
            end: Last port of the range
            max_attempts: Number of draws before ``PortExhaustedError``
            listening: Returns the ports currently listening on the target host
            rng: Random source (seeded in tests)
        """
        if start > end:
            raise ValueError(f"Invalid port range {start}-{end}")
        self.start = start
        self.end = end
        self.max_attempts = max_attempts
        self.listening = listening
        self.rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls,
        settings: DeploymentSettings,
        listening: Callable[[], Iterable[int]] | None = None,
        rng: random.Random | None = None,
    ) -> PortAllocator:
        return cls(
            start=settings.port_range.start,
            end=settings.port_range.end,
            max_attempts=settings.max_port_attempts,
            listening=listening,
            rng=rng,
        )

    def contains(self, port: int) -> bool:
        return self.start <= port <= self.end

    def allocate_port(self, exclude: Iterable[int | str] = ()) -> int:
        """Return a port in range that is neither excluded nor listening.

        Args:
            exclude: Ports already claimed by instances or Upstream Records

        Raises:
            PortExhaustedError: If no free port is drawn within max_attempts
        """
        excluded = {int(port) for port in exclude if str(port).strip()}
        listening = set(self.listening()) if self.listening is not None else set()

        for attempt in range(1, self.max_attempts + 1):
            candidate = self.rng.randint(self.start, self.end)
            if candidate in excluded:
                logger.debug(f"Port {candidate} is claimed, drawing again")
                continue
            if candidate in listening:
                logger.debug(f"Port {candidate} is listening on the host")
                continue
            logger.debug(f"Allocated port {candidate} after {attempt} attempt(s)")
            return candidate

        raise PortExhaustedError(self.start, self.end, self.max_attempts)
