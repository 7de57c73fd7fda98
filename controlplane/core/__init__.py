"""
Control plane core: configuration translation, server lifecycle, API client
"""

from .errors import (
    ControlPlaneError,
    ConfigValidationError,
    TranslationError,
    DirectoryError,
    ConnectError,
    RemoteCallError,
    CallTimeoutError,
    NotFoundError,
    IdentityNotFoundError,
    StateError,
    EngineError,
    ReadinessError,
)
from .translator import validate, translate, ensure_directories
from .engine import Engine, EngineFactory, ProcessEngine, default_engine_factory
from .client import ControlPlaneClient, new_client
from .server import ControlPlaneServer, new_server
