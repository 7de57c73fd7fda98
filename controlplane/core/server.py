# controlplane/core/server.py
"""
Control Plane Server
Owns the lifecycle of one engine instance

start() only launches the engine on a background thread; use
wait_until_ready() to block until it answers API calls.

Known limitation: stop() is a best-effort signal. Engines exposing
shutdown() (ProcessEngine does) are asked to exit, but nothing guarantees
in-flight requests were drained or listening sockets released by the time
stop() returns.
"""

import time
import logging
import threading
from typing import Optional

from ..config import get_settings
from ..schemas.server_config import ServerConfig, default_server_config
from .client import ControlPlaneClient, split_address
from .engine import Engine, EngineFactory, default_engine_factory
from .errors import (
    ConfigValidationError,
    ControlPlaneError,
    EngineError,
    ReadinessError,
    StateError,
)
from .translator import validate, translate, ensure_directories

logger = logging.getLogger(__name__)

UNSPECIFIED_HOSTS = {"0.0.0.0": "127.0.0.1", "::": "::1", "": "127.0.0.1"}


class ControlPlaneServer:
    """
    Embeddable control plane server

    State (config, engine, running flag, stop event) is only touched while
    holding self._lock.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        config = config or default_server_config()

        try:
            validate(config)
        except ConfigValidationError as e:
            raise ConfigValidationError(f"invalid configuration: {e}") from e

        ensure_directories(config)

        self._config = config
        self._engine_factory = engine_factory or default_engine_factory
        self._engine: Optional[Engine] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    def start(self) -> None:
        """
        Translate the config, build the engine and launch it

        Returns as soon as the serve thread is started.
        """
        with self._lock:
            if self._running:
                raise StateError("server is already running")

            engine_config = translate(self._config)

            try:
                engine = self._engine_factory(engine_config)
            except ControlPlaneError:
                raise
            except Exception as e:
                raise EngineError(f"failed to create engine instance: {e}") from e

            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._serve,
                args=(engine, self._stop_event),
                name="controlplane-engine",
                daemon=True,
            )
            self._thread.start()

            self._engine = engine
            self._running = True
            logger.info(
                f"Control plane server started "
                f"(grpc_addr={self._config.grpc_addr}, http_addr={self._config.listen_addr})"
            )

    def _serve(self, engine: Engine, stop_event: threading.Event) -> None:
        logger.info("Starting control plane engine")
        try:
            engine.serve()
        except Exception as e:
            if stop_event.is_set():
                logger.info(f"Control plane engine exited after stop: {e}")
            else:
                logger.error(f"Control plane engine error: {e}")

    def stop(self) -> None:
        """Signal the engine to stop and drop the handle (best effort)"""
        with self._lock:
            if not self._running:
                raise StateError("server is not running")

            logger.info("Stopping control plane server")
            self._stop_event.set()

            shutdown = getattr(self._engine, "shutdown", None)
            if callable(shutdown):
                try:
                    shutdown()
                except Exception as e:
                    logger.warning(f"Engine shutdown failed: {e}")

            self._engine = None
            self._thread = None
            self._running = False
            logger.info("Control plane server stopped")

    def address(self) -> str:
        """The configured remote-procedure listen address"""
        with self._lock:
            return self._config.grpc_addr

    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def get_config(self) -> ServerConfig:
        with self._lock:
            return self._config

    def wait_until_ready(self, timeout: float = 30.0) -> None:
        """
        Block until the engine answers a user listing or the timeout passes

        Raises:
            StateError: the server is not running
            ReadinessError: no successful probe before the deadline
        """
        if not self.is_running():
            raise StateError("server is not running")

        config = self.get_config()
        target = dial_address(self.address())
        poll_interval = get_settings().READY_POLL_INTERVAL
        deadline = time.monotonic() + timeout
        last_error: Optional[Exception] = None

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                with ControlPlaneClient.connect(
                    target, insecure=config.grpc_allow_insecure, timeout=remaining
                ) as client:
                    client.list_users(timeout=max(deadline - time.monotonic(), 0.001))
                return
            except ControlPlaneError as e:
                last_error = e

            if not self.is_running():
                raise StateError("server stopped while waiting for readiness")
            time.sleep(min(poll_interval, max(deadline - time.monotonic(), 0)))

        raise ReadinessError(f"server not ready after {timeout}s: {last_error}") from last_error

    def __enter__(self) -> "ControlPlaneServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_running():
            self.stop()


def dial_address(address: str) -> str:
    """Replace an unspecified bind host (0.0.0.0, ::) with loopback"""
    host, port = split_address(address)
    host = UNSPECIFIED_HOSTS.get(host, host)
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def new_server(
    config: Optional[ServerConfig] = None,
    engine_factory: Optional[EngineFactory] = None,
) -> ControlPlaneServer:
    return ControlPlaneServer(config, engine_factory)
