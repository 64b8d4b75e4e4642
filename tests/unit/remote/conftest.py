"""Fixtures running remote commands through a local shell."""

from collections.abc import Generator

import pytest

from switchyard.remote.executor import ProcessExecutor
from switchyard.remote.transport import LocalTransport, RemoteHost


@pytest.fixture
def local_host() -> RemoteHost:
    return RemoteHost(name="application", address="localhost", local=True)


@pytest.fixture
def executor() -> Generator[ProcessExecutor, None, None]:
    with ProcessExecutor(LocalTransport(), default_timeout=10, kill_grace=1) as ex:
        yield ex
