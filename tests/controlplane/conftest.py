# tests/controlplane/conftest.py
"""
Pytest fixtures for control plane tests
Shared configuration and a running in-memory engine
"""

import socket
from pathlib import Path

import pytest

from controlplane.schemas.server_config import default_server_config
from controlplane.core.translator import translate
from controlplane.core.client import ControlPlaneClient

from fake_engine import FakeEngine, run_in_thread


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def free_port():
    """A local TCP port with no listener"""
    return _free_port()


@pytest.fixture
def server_config(tmp_path: Path, free_port):
    """Default server config with every path under tmp_path"""
    config = default_server_config()
    config.grpc_addr = f"127.0.0.1:{free_port}"
    config.database.sqlite.path = str(tmp_path / "db" / "controlplane.sqlite")
    config.noise_private_key_path = str(tmp_path / "keys" / "noise_private.key")
    config.derp.server_private_key_path = str(tmp_path / "derp" / "derp_private.key")
    return config


@pytest.fixture
def engine(server_config):
    """Fake engine serving on server_config.grpc_addr"""
    fake = FakeEngine(translate(server_config))
    thread = run_in_thread(fake)

    yield fake

    fake.shutdown()
    thread.join(timeout=5)


@pytest.fixture
def client(engine, server_config):
    """Insecure client connected to the fake engine"""
    cp_client = ControlPlaneClient.connect(server_config.grpc_addr, insecure=True, timeout=5)

    yield cp_client

    cp_client.close()
