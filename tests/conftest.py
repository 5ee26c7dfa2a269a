"""
Shared fixtures. Node binaries are stood in by a small Python script that
prints its arguments and log level, then sleeps until terminated.
"""

import psutil
import pytest

from localnet.infrastructure.monitor import CancelToken
from localnet.infrastructure.registry import Registry

from tests.helpers import fake_binaries, write_fake_node


@pytest.fixture
def fake_node(tmp_path):
    return write_fake_node(str(tmp_path))


@pytest.fixture
def binaries(fake_node):
    return fake_binaries(fake_node)


@pytest.fixture
def log_dir(tmp_path):
    path = tmp_path / 'logs'
    path.mkdir()
    return path


@pytest.fixture
def token():
    return CancelToken()


@pytest.fixture
def registry():
    """Registry whose leftover processes are killed after the test."""
    registry = Registry()
    yield registry
    for handle in registry.snapshot():
        if handle.process is None:
            continue
        try:
            handle.process.kill()
            handle.process.wait(timeout=5)
        except (psutil.NoSuchProcess, psutil.TimeoutExpired, AttributeError):
            pass
