# controlplane/schemas/engine_config.py
"""
Engine configuration model

The full configuration shape the engine consumes. Instances are produced by
core.translator.translate() only; callers never build one by hand.
"""

from datetime import timedelta
from ipaddress import IPv4Network, IPv6Network
from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class SqliteSettings(BaseModel):
    path: str


class PostgresSettings(BaseModel):
    host: str
    port: int
    name: str
    user: str
    password: str = ""
    ssl: str = "false"
    max_open_connections: int = 10
    max_idle_connections: int = 10
    conn_max_idle_time_secs: int = 3600


class EngineDatabaseConfig(BaseModel):
    type: str
    sqlite: Optional[SqliteSettings] = None
    postgres: Optional[PostgresSettings] = None


class EngineDERPConfig(BaseModel):
    server_enabled: bool = False
    automatically_add_embedded_derp_region: bool = False
    server_region_id: int = 999
    server_region_code: str = ""
    server_region_name: str = ""
    server_private_key_path: str = ""
    stun_addr: str = ""
    urls: List[str] = Field(default_factory=list)
    paths: List[str] = Field(default_factory=list)
    auto_update: bool = False
    update_frequency: timedelta = timedelta(hours=24)


class LetsEncryptConfig(BaseModel):
    hostname: str = ""
    listen: str = ""
    cache_dir: str = ""
    challenge_type: str = ""


class EngineTLSConfig(BaseModel):
    cert_path: str = ""
    key_path: str = ""
    letsencrypt: LetsEncryptConfig = Field(default_factory=LetsEncryptConfig)


class DNSRecordSettings(BaseModel):
    name: str
    type: str
    value: str


class Nameservers(BaseModel):
    global_: List[str] = Field(default_factory=list, alias="global")
    split: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class EngineDNSConfig(BaseModel):
    magic_dns: bool = True
    base_domain: str = ""
    override_local_dns: bool = True
    nameservers: Nameservers = Field(default_factory=Nameservers)
    search_domains: List[str] = Field(default_factory=list)
    extra_records: List[DNSRecordSettings] = Field(default_factory=list)


class Resolver(BaseModel):
    """A single DNS resolver: a bare IP or a DoH/DoT style URL"""
    addr: str


class ResolverConfig(BaseModel):
    """
    DNS view pushed to devices

    Either resolvers (override local DNS) or fallback_resolvers is filled,
    never both.
    """
    proxied: bool = False
    resolvers: List[Resolver] = Field(default_factory=list)
    fallback_resolvers: List[Resolver] = Field(default_factory=list)
    routes: Dict[str, List[Resolver]] = Field(default_factory=dict)
    domains: List[str] = Field(default_factory=list)
    extra_records: List[DNSRecordSettings] = Field(default_factory=list)


class LogSettings(BaseModel):
    format: str = "text"
    level: LogLevel = LogLevel.INFO


class PolicySettings(BaseModel):
    mode: str = "file"  # "file" or "database"
    path: str = ""


class CLISettings(BaseModel):
    address: str
    insecure: bool
    timeout: timedelta = timedelta(seconds=30)


class EngineConfig(BaseModel):
    server_url: str
    addr: str
    grpc_addr: str
    grpc_allow_insecure: bool
    noise_private_key_path: str
    base_domain: str
    prefix_v4: Optional[IPv4Network] = None
    prefix_v6: Optional[IPv6Network] = None
    ip_allocation: str = "sequential"
    ephemeral_node_inactivity_timeout: timedelta
    database: EngineDatabaseConfig
    derp: EngineDERPConfig
    tls: EngineTLSConfig
    dns: EngineDNSConfig
    resolver_config: ResolverConfig
    unix_socket: str
    unix_socket_permission: int = 0o770
    disable_update_check: bool = True
    randomize_client_port: bool = False
    log: LogSettings = Field(default_factory=LogSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    cli: CLISettings

    def to_engine_document(self) -> Dict[str, Any]:
        """
        Render the engine's on-disk configuration layout

        Durations are written as whole seconds ("3600s"), permissions as an
        octal string.
        """
        doc: Dict[str, Any] = {
            "server_url": self.server_url,
            "listen_addr": self.addr,
            "grpc_listen_addr": self.grpc_addr,
            "grpc_allow_insecure": self.grpc_allow_insecure,
            "noise": {"private_key_path": self.noise_private_key_path},
            "prefixes": {
                "v4": str(self.prefix_v4) if self.prefix_v4 else "",
                "v6": str(self.prefix_v6) if self.prefix_v6 else "",
                "allocation": self.ip_allocation,
            },
            "derp": {
                "server": {
                    "enabled": self.derp.server_enabled,
                    "region_id": self.derp.server_region_id,
                    "region_code": self.derp.server_region_code,
                    "region_name": self.derp.server_region_name,
                    "stun_listen_addr": self.derp.stun_addr,
                    "private_key_path": self.derp.server_private_key_path,
                    "automatically_add_embedded_derp_region":
                        self.derp.automatically_add_embedded_derp_region,
                },
                "urls": self.derp.urls,
                "paths": self.derp.paths,
                "auto_update_enabled": self.derp.auto_update,
                "update_frequency": _seconds(self.derp.update_frequency),
            },
            "disable_check_updates": self.disable_update_check,
            "ephemeral_node_inactivity_timeout": _seconds(self.ephemeral_node_inactivity_timeout),
            "database": {"type": self.database.type},
            "tls_cert_path": self.tls.cert_path,
            "tls_key_path": self.tls.key_path,
            "tls_letsencrypt_hostname": self.tls.letsencrypt.hostname,
            "tls_letsencrypt_cache_dir": self.tls.letsencrypt.cache_dir,
            "tls_letsencrypt_challenge_type": self.tls.letsencrypt.challenge_type,
            "tls_letsencrypt_listen": self.tls.letsencrypt.listen,
            "log": {"format": self.log.format, "level": self.log.level.value},
            "policy": {"mode": self.policy.mode, "path": self.policy.path},
            "dns": {
                "magic_dns": self.dns.magic_dns,
                "base_domain": self.dns.base_domain,
                "override_local_dns": self.dns.override_local_dns,
                "nameservers": {
                    "global": self.dns.nameservers.global_,
                    "split": self.dns.nameservers.split,
                },
                "search_domains": self.dns.search_domains,
                "extra_records": [r.model_dump() for r in self.dns.extra_records],
            },
            "unix_socket": self.unix_socket,
            "unix_socket_permission": f"0{self.unix_socket_permission:o}",
            "randomize_client_port": self.randomize_client_port,
        }

        if self.database.sqlite is not None:
            doc["database"]["sqlite"] = {"path": self.database.sqlite.path}
        if self.database.postgres is not None:
            pg = self.database.postgres
            doc["database"]["postgres"] = {
                "host": pg.host,
                "port": pg.port,
                "name": pg.name,
                "user": pg.user,
                "pass": pg.password,
                "ssl": pg.ssl,
                "max_open_conns": pg.max_open_connections,
                "max_idle_conns": pg.max_idle_connections,
                "conn_max_idle_time_secs": pg.conn_max_idle_time_secs,
            }

        return doc


def _seconds(value: timedelta) -> str:
    return f"{int(value.total_seconds())}s"
