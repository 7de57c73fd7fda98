# controlplane/core/engine.py
"""
Engine contract and supervised-process engine

The control-plane engine itself is an external program. The server only
needs something it can build from an EngineConfig, run with a blocking
serve(), and optionally ask to shut down.
"""

import json
import shutil
import logging
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from ..config import get_settings
from ..schemas.engine_config import EngineConfig
from .errors import EngineError

logger = logging.getLogger(__name__)


class Engine(Protocol):
    def serve(self) -> None:
        """Run until the engine exits; raise on failure"""
        ...


EngineFactory = Callable[[EngineConfig], Engine]


class ProcessEngine:
    """
    Runs the engine binary as a supervised child process

    The EngineConfig is written as a JSON config file and handed to
    `<binary> serve -c <file>`. shutdown() terminates the child and kills it
    if it has not exited within the shutdown timeout.
    """

    def __init__(
        self,
        config: EngineConfig,
        binary: Optional[str] = None,
        config_dir: Optional[str] = None,
        shutdown_timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.config = config
        self.binary = binary or settings.ENGINE_BINARY
        self.config_dir = Path(config_dir or settings.ENGINE_CONFIG_DIR)
        self.shutdown_timeout = (
            shutdown_timeout if shutdown_timeout is not None else settings.ENGINE_SHUTDOWN_TIMEOUT
        )
        self.config_path = self.config_dir / "engine.json"
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()
        self._stopping = False

        self.executable = shutil.which(self.binary)
        if self.executable is None:
            raise EngineError(f"engine binary {self.binary!r} not found in PATH")

    @property
    def command(self) -> List[str]:
        return [self.executable, "serve", "-c", str(self.config_path)]

    def write_config(self) -> Path:
        """Write the engine document with owner-only permissions"""
        self.config_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.config_path.write_text(json.dumps(self.config.to_engine_document(), indent=2))
        self.config_path.chmod(0o600)
        return self.config_path

    def serve(self) -> None:
        self.write_config()
        logger.debug(f"Running: {' '.join(self.command)}")

        with self._lock:
            if self._stopping:
                return
            try:
                process = subprocess.Popen(self.command)
            except OSError as e:
                raise EngineError(f"failed to launch {self.binary}: {e}") from e
            self._process = process

        returncode = process.wait()
        # Negative return codes mean we (or someone) signalled the process
        if returncode > 0:
            raise EngineError(f"{self.binary} exited with status {returncode}")
        logger.info(f"{self.binary} exited with status {returncode}")

    def shutdown(self) -> None:
        with self._lock:
            self._stopping = True
            process = self._process
        if process is None or process.poll() is not None:
            return

        process.terminate()
        try:
            process.wait(timeout=self.shutdown_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(
                f"{self.binary} did not exit within {self.shutdown_timeout}s, killing"
            )
            process.kill()
            process.wait()


def default_engine_factory(config: EngineConfig) -> Engine:
    return ProcessEngine(config)
