# controlplane/config.py
"""
Process Settings
Uses pydantic-settings for environment variable management

These are the knobs of the facade itself (client defaults, engine process
supervision). The control-plane configuration handed to the engine lives in
schemas/server_config.py.
"""

from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Facade settings loaded from CONTROLPLANE_* environment variables
    Create a .env file for local development
    """

    # === Client defaults ===
    CLIENT_ADDRESS: str = "localhost:50443"
    CLIENT_INSECURE: bool = True
    CLIENT_TIMEOUT: float = 30.0  # seconds
    CLIENT_API_KEY: Optional[str] = None

    # === Engine process ===
    ENGINE_BINARY: str = "headscale"
    ENGINE_CONFIG_DIR: str = "/tmp/controlplane"
    ENGINE_SHUTDOWN_TIMEOUT: float = 10.0  # seconds before SIGKILL
    UNIX_SOCKET: str = "/tmp/controlplane/engine.sock"

    # === Readiness probe ===
    READY_POLL_INTERVAL: float = 0.25  # seconds

    model_config = SettingsConfigDict(
        env_prefix="CONTROLPLANE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance
    Use this to get settings throughout the package
    """
    return Settings()


settings = get_settings()
