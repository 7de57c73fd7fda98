# controlplane/core/errors.py
"""
Exception hierarchy for the control-plane facade

Every error carries an error_code so callers can branch without
string-matching messages.
"""

from typing import Optional


class ControlPlaneError(Exception):
    """Base class for all facade errors"""

    error_code = "CONTROL_PLANE_ERROR"


class ConfigValidationError(ControlPlaneError):
    """A required configuration field is missing or contradictory"""

    error_code = "INVALID_CONFIG"


class TranslationError(ControlPlaneError):
    """A configuration value could not be converted for the engine"""

    error_code = "TRANSLATION_FAILED"

    def __init__(self, field: str, value: str, cause: object):
        self.field = field
        self.value = value
        super().__init__(f"invalid {field} {value!r}: {cause}")


class DirectoryError(ControlPlaneError):
    """A required directory could not be created"""

    error_code = "DIRECTORY_FAILED"

    def __init__(self, path: str, cause: object):
        self.path = path
        super().__init__(f"failed to create directory {path}: {cause}")


class ConnectError(ControlPlaneError):
    """The channel to the engine could not be established"""

    error_code = "CONNECT_FAILED"

    def __init__(self, address: str, cause: object):
        self.address = address
        super().__init__(f"failed to connect to control plane at {address}: {cause}")


class RemoteCallError(ControlPlaneError):
    """The engine rejected or could not complete an operation"""

    error_code = "REMOTE_CALL_FAILED"

    def __init__(self, operation: str, message: str, status_code: Optional[int] = None):
        self.operation = operation
        self.message = message
        self.status_code = status_code
        super().__init__(f"failed to {operation}: {message}")


class CallTimeoutError(RemoteCallError):
    """The per-call deadline elapsed before the engine answered"""

    error_code = "CALL_TIMEOUT"


class NotFoundError(ControlPlaneError):
    error_code = "NOT_FOUND"


class IdentityNotFoundError(NotFoundError):
    """No identity with the given id exists on the engine"""

    error_code = "USER_NOT_FOUND"

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"user with ID {user_id} not found")


class StateError(ControlPlaneError):
    """Local precondition violation (e.g. start while running)"""

    error_code = "INVALID_STATE"


class EngineError(ControlPlaneError):
    """The engine could not be constructed or exited with a failure"""

    error_code = "ENGINE_FAILED"


class ReadinessError(ControlPlaneError):
    """The engine did not answer the readiness probe before the deadline"""

    error_code = "NOT_READY"
