# controlplane/schemas/server_config.py
"""
Caller-facing configuration

ServerConfig is the simplified surface a host application fills in;
core/translator.py turns it into the engine's full EngineConfig.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from ..config import get_settings


DATABASE_SQLITE = "sqlite"
DATABASE_POSTGRES = "postgres"


@dataclass
class SQLiteConfig:
    """Embedded-file database"""
    path: str = ""


@dataclass
class PostgresConfig:
    """Relational-server database and its connection pool tunables"""
    host: str = ""
    port: int = 5432
    database: str = ""
    username: str = ""
    password: str = ""
    ssl: str = "false"
    max_open_conns: int = 10
    max_idle_conns: int = 10
    conn_max_idle_time_secs: int = 3600


@dataclass
class DatabaseConfig:
    type: str = DATABASE_SQLITE  # "sqlite" or "postgres"
    sqlite: SQLiteConfig = field(default_factory=SQLiteConfig)
    postgres: PostgresConfig = field(default_factory=PostgresConfig)


@dataclass
class DERPConfig:
    """Relay server (DERP) configuration"""
    server_enabled: bool = False
    automatically_add_embedded_derp_region: bool = False
    server_region_id: int = 999
    server_region_code: str = ""
    server_region_name: str = ""
    server_private_key_path: str = ""
    stun_addr: str = ""
    urls: List[str] = field(default_factory=list)   # external DERP maps
    paths: List[str] = field(default_factory=list)  # local DERP map files


@dataclass
class TLSConfig:
    """Static certificate or automatic (ACME) certificate settings"""
    cert_path: str = ""
    key_path: str = ""
    letsencrypt_hostname: str = ""
    letsencrypt_cache_dir: str = ""
    letsencrypt_challenge_type: str = "HTTP-01"


@dataclass
class DNSRecord:
    name: str
    type: str
    value: str


@dataclass
class DNSConfig:
    base_domain: str = ""
    nameservers: List[str] = field(default_factory=list)
    # domain -> nameservers used only for that domain
    split_nameservers: Dict[str, List[str]] = field(default_factory=dict)
    search_domains: List[str] = field(default_factory=list)
    extra_records: List[DNSRecord] = field(default_factory=list)
    override_local_dns: bool = True
    magic_dns: bool = True


@dataclass
class ServerConfig:
    """
    Configuration needed to start a control plane server

    Only the fields below are exposed; everything else the engine needs is
    derived during translation.
    """
    server_url: str = ""            # public URL, e.g. https://cp.example.com
    listen_addr: str = ""           # HTTP listen address
    grpc_addr: str = ""             # remote-procedure listen address
    grpc_allow_insecure: bool = False
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    noise_private_key_path: str = ""
    base_domain: str = ""
    ipv4_prefix: str = ""
    ipv6_prefix: str = ""
    derp: DERPConfig = field(default_factory=DERPConfig)
    tls: TLSConfig = field(default_factory=TLSConfig)
    dns: DNSConfig = field(default_factory=DNSConfig)
    log_level: str = "info"
    ephemeral_node_inactivity_timeout: timedelta = timedelta(days=30)


@dataclass
class ClientConfig:
    """Connection parameters for ControlPlaneClient"""
    address: str = "localhost:50443"
    api_key: Optional[str] = None  # optional when the channel is insecure
    insecure: bool = False
    timeout: float = 30.0  # seconds


def default_server_config() -> ServerConfig:
    """Return a ServerConfig with sensible defaults for a single local host"""
    return ServerConfig(
        server_url="http://localhost:8080",
        listen_addr="0.0.0.0:8080",
        grpc_addr="0.0.0.0:50443",
        grpc_allow_insecure=True,
        database=DatabaseConfig(
            type=DATABASE_SQLITE,
            sqlite=SQLiteConfig(path="/tmp/controlplane/db.sqlite"),
        ),
        noise_private_key_path="/tmp/controlplane/noise_private.key",
        base_domain="controlplane.local",
        ipv4_prefix="100.64.0.0/10",
        ipv6_prefix="fd7a:115c:a1e0::/48",
        derp=DERPConfig(
            server_enabled=True,
            automatically_add_embedded_derp_region=True,
            server_region_id=999,
            server_region_code="controlplane",
            server_region_name="Embedded DERP",
            server_private_key_path="/tmp/controlplane/derp_private.key",
            stun_addr="0.0.0.0:3478",
        ),
        dns=DNSConfig(
            base_domain="controlplane.local",
            nameservers=["1.1.1.1", "8.8.8.8"],
        ),
        log_level="info",
        ephemeral_node_inactivity_timeout=timedelta(days=30),
    )


def default_client_config() -> ClientConfig:
    """Return a ClientConfig built from CONTROLPLANE_CLIENT_* settings"""
    settings = get_settings()
    return ClientConfig(
        address=settings.CLIENT_ADDRESS,
        api_key=settings.CLIENT_API_KEY,
        insecure=settings.CLIENT_INSECURE,
        timeout=settings.CLIENT_TIMEOUT,
    )
