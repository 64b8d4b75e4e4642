"""Switchyard - zero-downtime container cutovers behind an nginx reverse proxy.

Switchyard starts a new container version on an application host, waits for
it to become healthy, atomically points nginx on a system host at it, verifies
the switch and retires the old version. A drift reconciler repairs upstream
records that no longer match the running containers.

Main features:
- Random host port allocation from a reserved range
- Health-gated cutovers with validated rollback
- Drift detection and repair across all environments at once
- Concurrent SSH command execution
"""

from switchyard.config.loader import ConfigLoader
from switchyard.lib.errors import ConfigError, DeployError, SwitchyardError

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ConfigLoader",
    "ConfigError",
    "DeployError",
    "SwitchyardError",
]
