# controlplane/core/translator.py
"""
Configuration Translator
Validates a ServerConfig and converts it into the engine's EngineConfig

Required fields are all-or-nothing: the first missing one stops validation.
Nameserver and DERP URL lists are best-effort: malformed entries are logged
and skipped so a partial DNS/relay setup never blocks startup.
"""

import os
import logging
import ipaddress
from datetime import timedelta
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import urlsplit

from ..config import get_settings
from ..schemas.server_config import ServerConfig, DATABASE_SQLITE, DATABASE_POSTGRES
from ..schemas.engine_config import (
    EngineConfig,
    EngineDatabaseConfig,
    SqliteSettings,
    PostgresSettings,
    EngineDERPConfig,
    EngineTLSConfig,
    LetsEncryptConfig,
    EngineDNSConfig,
    Nameservers,
    DNSRecordSettings,
    Resolver,
    ResolverConfig,
    LogLevel,
    LogSettings,
    PolicySettings,
    CLISettings,
)
from .errors import ConfigValidationError, TranslationError, DirectoryError

logger = logging.getLogger(__name__)

PRIVATE_DIR_MODE = 0o700

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def validate(config: ServerConfig) -> None:
    """
    Check required fields, reporting the first violation only

    Raises:
        ConfigValidationError naming the offending field
    """
    if not config.server_url:
        raise ConfigValidationError("ServerURL is required")

    if not config.noise_private_key_path:
        raise ConfigValidationError("NoisePrivateKeyPath is required")

    if not config.derp.server_private_key_path:
        raise ConfigValidationError("DERP.ServerPrivateKeyPath is required")

    if not config.base_domain:
        raise ConfigValidationError("BaseDomain is required")

    if not config.ipv4_prefix and not config.ipv6_prefix:
        raise ConfigValidationError("at least one of IPv4Prefix or IPv6Prefix is required")

    db = config.database
    if not db.type:
        raise ConfigValidationError("Database.Type is required")

    if db.type == DATABASE_SQLITE:
        if not db.sqlite.path:
            raise ConfigValidationError("Database.SQLite.Path is required when using SQLite")
    elif db.type == DATABASE_POSTGRES:
        if not db.postgres.host:
            raise ConfigValidationError("Database.Postgres.Host is required when using PostgreSQL")
        if not db.postgres.database:
            raise ConfigValidationError("Database.Postgres.Database is required when using PostgreSQL")
        if not db.postgres.username:
            raise ConfigValidationError("Database.Postgres.Username is required when using PostgreSQL")
    else:
        raise ConfigValidationError(f"Database.Type {db.type!r} is not supported")


def translate(config: ServerConfig) -> EngineConfig:
    """
    Convert a ServerConfig into a fully populated EngineConfig

    Raises:
        ConfigValidationError: a required field is missing
        TranslationError: a value could not be parsed
    """
    validate(config)

    prefix_v4 = parse_prefix("IPv4Prefix", config.ipv4_prefix, version=4)
    prefix_v6 = parse_prefix("IPv6Prefix", config.ipv6_prefix, version=6)
    log_level = parse_log_level(config.log_level)

    dns_config = build_dns_config(config)

    return EngineConfig(
        server_url=config.server_url,
        addr=config.listen_addr,
        grpc_addr=config.grpc_addr,
        grpc_allow_insecure=config.grpc_allow_insecure,
        noise_private_key_path=config.noise_private_key_path,
        base_domain=config.base_domain,
        prefix_v4=prefix_v4,
        prefix_v6=prefix_v6,
        ephemeral_node_inactivity_timeout=config.ephemeral_node_inactivity_timeout,
        database=build_database_config(config),
        derp=build_derp_config(config),
        tls=build_tls_config(config),
        dns=dns_config,
        resolver_config=dns_to_resolver_config(dns_config),
        unix_socket=get_settings().UNIX_SOCKET,
        log=LogSettings(format="text", level=log_level),
        policy=PolicySettings(mode="file", path=""),
        cli=CLISettings(
            address=config.grpc_addr,
            insecure=config.grpc_allow_insecure,
            timeout=timedelta(seconds=30),
        ),
    )


def parse_prefix(field: str, value: str, version: int) -> Optional[IPNetwork]:
    """
    Parse a CIDR prefix; "" means not configured

    Host bits are masked off ("100.64.0.1/10" -> 100.64.0.0/10); the engine
    only ever sees the network address.
    """
    if not value:
        return None

    if "/" not in value:
        raise TranslationError(field, value, "missing prefix length")

    try:
        network = ipaddress.ip_network(value, strict=False)
    except ValueError as e:
        raise TranslationError(field, value, e) from e

    if network.version != version:
        raise TranslationError(field, value, f"not an IPv{version} prefix")

    return network


def parse_log_level(level: str) -> LogLevel:
    try:
        return LogLevel(level)
    except ValueError as e:
        raise TranslationError("log level", level, f"unknown log level: {level}") from e


def build_database_config(config: ServerConfig) -> EngineDatabaseConfig:
    db = config.database

    if db.type == DATABASE_SQLITE:
        return EngineDatabaseConfig(
            type=DATABASE_SQLITE,
            sqlite=SqliteSettings(path=db.sqlite.path),
        )

    if db.type == DATABASE_POSTGRES:
        pg = db.postgres
        return EngineDatabaseConfig(
            type=DATABASE_POSTGRES,
            postgres=PostgresSettings(
                host=pg.host,
                port=pg.port,
                name=pg.database,
                user=pg.username,
                password=pg.password,
                ssl=pg.ssl,
                max_open_connections=pg.max_open_conns,
                max_idle_connections=pg.max_idle_conns,
                conn_max_idle_time_secs=pg.conn_max_idle_time_secs,
            ),
        )

    raise TranslationError("database type", db.type, f"unsupported database type: {db.type}")


def build_derp_config(config: ServerConfig) -> EngineDERPConfig:
    derp = config.derp

    urls = []
    for raw in derp.urls:
        parsed = _parse_url(raw)
        if parsed is None:
            logger.warning(f"Invalid DERP URL {raw!r}, ignoring")
            continue
        urls.append(parsed)

    return EngineDERPConfig(
        server_enabled=derp.server_enabled,
        automatically_add_embedded_derp_region=derp.automatically_add_embedded_derp_region,
        server_region_id=derp.server_region_id,
        server_region_code=derp.server_region_code,
        server_region_name=derp.server_region_name,
        server_private_key_path=derp.server_private_key_path,
        stun_addr=derp.stun_addr,
        urls=urls,
        paths=list(derp.paths),
        auto_update=False,
        update_frequency=timedelta(hours=24),
    )


def build_tls_config(config: ServerConfig) -> EngineTLSConfig:
    tls = config.tls
    return EngineTLSConfig(
        cert_path=tls.cert_path,
        key_path=tls.key_path,
        letsencrypt=LetsEncryptConfig(
            hostname=tls.letsencrypt_hostname,
            listen="",  # not exposed in ServerConfig
            cache_dir=tls.letsencrypt_cache_dir,
            challenge_type=tls.letsencrypt_challenge_type,
        ),
    )


def build_dns_config(config: ServerConfig) -> EngineDNSConfig:
    dns = config.dns
    return EngineDNSConfig(
        magic_dns=dns.magic_dns,
        base_domain=dns.base_domain,
        override_local_dns=dns.override_local_dns,
        nameservers=Nameservers(
            global_=list(dns.nameservers),
            split={domain: list(servers) for domain, servers in dns.split_nameservers.items()},
        ),
        search_domains=list(dns.search_domains),
        extra_records=[
            DNSRecordSettings(name=r.name, type=r.type, value=r.value)
            for r in dns.extra_records
        ],
    )


def dns_to_resolver_config(dns: EngineDNSConfig) -> ResolverConfig:
    """Build the resolver view devices receive from the DNS settings"""
    if dns.magic_dns and not dns.base_domain:
        logger.warning("dns.base_domain must be set when using MagicDNS")

    resolver_config = ResolverConfig(
        proxied=dns.magic_dns,
        extra_records=list(dns.extra_records),
        routes=split_resolvers(dns),
    )

    resolvers = global_resolvers(dns)
    if dns.override_local_dns:
        resolver_config.resolvers = resolvers
    else:
        resolver_config.fallback_resolvers = resolvers

    domains = [dns.base_domain] if dns.base_domain else []
    domains.extend(dns.search_domains)
    resolver_config.domains = domains

    return resolver_config


def global_resolvers(dns: EngineDNSConfig) -> List[Resolver]:
    return _collect_resolvers(dns.nameservers.global_, "global nameserver")


def split_resolvers(dns: EngineDNSConfig) -> Dict[str, List[Resolver]]:
    return {
        domain: _collect_resolvers(servers, f"split dns nameserver for {domain}")
        for domain, servers in dns.nameservers.split.items()
    }


def _collect_resolvers(entries: List[str], kind: str) -> List[Resolver]:
    resolvers = []
    for entry in entries:
        if _is_ip_address(entry) or _parse_url(entry) is not None:
            resolvers.append(Resolver(addr=entry))
        else:
            logger.warning(f"Invalid {kind} {entry!r}, ignoring")
    return resolvers


def _is_ip_address(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


def _parse_url(value: str) -> Optional[str]:
    """Return the normalized URL, or None unless it has a scheme and host"""
    try:
        parts = urlsplit(value)
    except ValueError:
        return None

    if not parts.scheme or not parts.netloc:
        return None
    return parts.geturl()


def ensure_directories(config: ServerConfig) -> None:
    """
    Create parent directories for key files, the SQLite file and the ACME cache

    Raises:
        DirectoryError: the first directory that could not be created
    """
    dirs = [
        os.path.dirname(config.noise_private_key_path),
        os.path.dirname(config.derp.server_private_key_path),
    ]

    if config.database.type == DATABASE_SQLITE:
        dirs.append(os.path.dirname(config.database.sqlite.path))

    if config.tls.letsencrypt_cache_dir:
        dirs.append(config.tls.letsencrypt_cache_dir)

    for directory in dirs:
        if directory in ("", ".", "/"):
            continue
        try:
            _make_private_dirs(Path(directory))
        except OSError as e:
            raise DirectoryError(directory, e) from e


def _make_private_dirs(path: Path) -> None:
    # mkdir(parents=True) only applies mode to the leaf
    for directory in [*reversed(path.parents), path]:
        if not directory.exists():
            directory.mkdir(mode=PRIVATE_DIR_MODE, exist_ok=True)
