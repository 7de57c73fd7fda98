"""
Embeddable Control Plane

Start, configure and administer a mesh-networking control plane engine from
a host application:

- ServerConfig + translate(): simplified configuration -> engine configuration
- ControlPlaneServer: engine lifecycle (start / stop / wait_until_ready)
- ControlPlaneClient: users, nodes, pre-auth keys, API keys and policy
"""

__version__ = "1.0.0"
__all__ = [
    "ServerConfig",
    "ClientConfig",
    "default_server_config",
    "default_client_config",
    "EngineConfig",
    "User",
    "Node",
    "PreAuthKey",
    "ApiKey",
    "translate",
    "validate",
    "ensure_directories",
    "ControlPlaneServer",
    "ControlPlaneClient",
    "new_server",
    "new_client",
    "ControlPlaneError",
    "ConfigValidationError",
    "TranslationError",
    "DirectoryError",
    "ConnectError",
    "RemoteCallError",
    "CallTimeoutError",
    "IdentityNotFoundError",
    "StateError",
    "EngineError",
    "ReadinessError",
]

from .schemas import (
    ServerConfig,
    ClientConfig,
    default_server_config,
    default_client_config,
    EngineConfig,
    User,
    Node,
    PreAuthKey,
    ApiKey,
)
from .core import (
    translate,
    validate,
    ensure_directories,
    ControlPlaneServer,
    ControlPlaneClient,
    new_server,
    new_client,
    ControlPlaneError,
    ConfigValidationError,
    TranslationError,
    DirectoryError,
    ConnectError,
    RemoteCallError,
    CallTimeoutError,
    IdentityNotFoundError,
    StateError,
    EngineError,
    ReadinessError,
)
