# tests/controlplane/test_engine.py
"""
Tests for the supervised-process engine and facade settings
"""

import os
import json
import stat
import threading
import time

import pytest

from controlplane.config import Settings
from controlplane.core.engine import ProcessEngine, default_engine_factory
from controlplane.core.errors import EngineError
from controlplane.core.translator import translate


def _script(path, body: str) -> str:
    path.write_text(f"#!/bin/sh\n{body}\n")
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def engine_config(server_config):
    return translate(server_config)


@pytest.fixture
def sleeper(tmp_path):
    return _script(tmp_path / "sleeper", "exec sleep 30")


class TestProcessEngine:

    def test_missing_binary(self, engine_config, tmp_path):
        with pytest.raises(EngineError, match="not found in PATH"):
            ProcessEngine(engine_config, binary="no-such-engine-binary", config_dir=str(tmp_path))

    def test_default_factory_uses_settings(self, engine_config, monkeypatch):
        monkeypatch.setattr(
            "controlplane.core.engine.get_settings",
            lambda: Settings(ENGINE_BINARY="no-such-engine-binary"),
        )

        with pytest.raises(EngineError, match="no-such-engine-binary"):
            default_engine_factory(engine_config)

    def test_command(self, engine_config, sleeper, tmp_path):
        engine = ProcessEngine(engine_config, binary=sleeper, config_dir=str(tmp_path / "conf"))

        assert engine.command == [sleeper, "serve", "-c", str(tmp_path / "conf" / "engine.json")]

    def test_write_config(self, engine_config, sleeper, tmp_path):
        engine = ProcessEngine(engine_config, binary=sleeper, config_dir=str(tmp_path / "conf"))

        path = engine.write_config()
        document = json.loads(path.read_text())

        assert document["grpc_listen_addr"] == engine_config.grpc_addr
        assert document["server_url"] == engine_config.server_url
        assert document["database"]["type"] == "sqlite"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert stat.S_IMODE(os.stat(tmp_path / "conf").st_mode) == 0o700

    def test_serve_and_shutdown(self, engine_config, sleeper, tmp_path):
        engine = ProcessEngine(
            engine_config, binary=sleeper, config_dir=str(tmp_path), shutdown_timeout=5
        )
        errors = []

        def run():
            try:
                engine.serve()
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()

        deadline = time.monotonic() + 5
        while engine._process is None and time.monotonic() < deadline:
            time.sleep(0.01)
        assert engine._process is not None

        engine.shutdown()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert engine._process.poll() is not None
        assert errors == []

    def test_kill_after_timeout(self, engine_config, tmp_path):
        stubborn = _script(tmp_path / "stubborn", "trap '' TERM\nwhile true; do sleep 1; done")
        engine = ProcessEngine(
            engine_config, binary=stubborn, config_dir=str(tmp_path), shutdown_timeout=0.2
        )
        thread = threading.Thread(target=engine.serve, daemon=True)
        thread.start()

        deadline = time.monotonic() + 5
        while engine._process is None and time.monotonic() < deadline:
            time.sleep(0.01)
        time.sleep(0.2)

        engine.shutdown()
        thread.join(timeout=5)

        assert engine._process.returncode is not None

    def test_shutdown_before_serve(self, engine_config, sleeper, tmp_path):
        engine = ProcessEngine(engine_config, binary=sleeper, config_dir=str(tmp_path))

        engine.shutdown()
        engine.serve()

        assert engine._process is None

    def test_nonzero_exit(self, engine_config, tmp_path):
        failing = _script(tmp_path / "failing", "exit 3")
        engine = ProcessEngine(engine_config, binary=failing, config_dir=str(tmp_path))

        with pytest.raises(EngineError, match="exited with status 3"):
            engine.serve()

    def test_clean_exit(self, engine_config, tmp_path):
        done = _script(tmp_path / "done", "exit 0")
        engine = ProcessEngine(engine_config, binary=done, config_dir=str(tmp_path))

        engine.serve()

        assert engine._process.returncode == 0


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in list(os.environ):
            if name.startswith("CONTROLPLANE_"):
                monkeypatch.delenv(name)

        settings = Settings(_env_file=None)

        assert settings.CLIENT_ADDRESS == "localhost:50443"
        assert settings.ENGINE_BINARY == "headscale"
        assert settings.READY_POLL_INTERVAL == 0.25

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CONTROLPLANE_CLIENT_ADDRESS", "cp.example.com:443")
        monkeypatch.setenv("CONTROLPLANE_CLIENT_INSECURE", "false")
        monkeypatch.setenv("CONTROLPLANE_ENGINE_SHUTDOWN_TIMEOUT", "2.5")

        settings = Settings(_env_file=None)

        assert settings.CLIENT_ADDRESS == "cp.example.com:443"
        assert settings.CLIENT_INSECURE is False
        assert settings.ENGINE_SHUTDOWN_TIMEOUT == 2.5
