"""
Data shapes for the control-plane facade
"""

from .server_config import (
    ServerConfig,
    DatabaseConfig,
    SQLiteConfig,
    PostgresConfig,
    DERPConfig,
    TLSConfig,
    DNSConfig,
    DNSRecord,
    ClientConfig,
    DATABASE_SQLITE,
    DATABASE_POSTGRES,
    default_server_config,
    default_client_config,
)
from .engine_config import EngineConfig, LogLevel, Resolver, ResolverConfig
from .resources import User, Node, PreAuthKey, ApiKey
