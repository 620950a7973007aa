"""Client and relay configuration: defaults, YAML loading and validation."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Union

import yaml

from nabu.dnsconfig import (
    DEFAULT_LISTEN_ADDR,
    DEFAULT_METRICS_ADDR,
    DEFAULT_SERVER,
    PROTOCOL_DOH,
    DNSConfig,
    _validate_address,
    parse_duration,
)

DEFAULT_RELAY_LISTEN_ADDR = ":443"
DEFAULT_RELAY_CONFIG_PATH = "configs/relay.yaml"
DEFAULT_CLIENT_CONFIG_PATH = "configs/client.yaml"

DEFAULT_DEMO_RELAY_REGION = "oci-marseille-fr"
DEFAULT_DEMO_RELAY_HOST = "fr-mrs-1.nabu-relay.net"
DEFAULT_DEMO_RELAY_PORT = 443

CONFIG_MODE_FILE_ONLY = "file-only"
CONFIG_MODE_FLAGS_ONLY = "flags-only"
CONFIG_MODE_HYBRID = "hybrid"
CONFIG_MODES = (CONFIG_MODE_FILE_ONLY, CONFIG_MODE_FLAGS_ONLY, CONFIG_MODE_HYBRID)

PathLike = Union[str, "os.PathLike[str]"]


class ConfigError(ValueError):
    """Raised when a configuration cannot be parsed or is invalid."""


@dataclass
class RelaySecurity:
    wg_compatible: bool = True
    tls_profile: str = field(default="chrome-stable", metadata={"yaml": "tls_mimic_profile"})


@dataclass
class RelayConfig:
    listen: str = DEFAULT_RELAY_LISTEN_ADDR
    region: str = DEFAULT_DEMO_RELAY_REGION
    security: RelaySecurity = field(default_factory=RelaySecurity)


@dataclass
class ClientRelay:
    host: str = DEFAULT_DEMO_RELAY_HOST
    port: int = DEFAULT_DEMO_RELAY_PORT


@dataclass
class ClientSocks5:
    listen: str = "127.0.0.1:1080"


@dataclass
class ClientDNS:
    enabled: bool = False
    block_ipv6: bool = False
    protocol: str = PROTOCOL_DOH
    server: str = DEFAULT_SERVER
    listen: str = DEFAULT_LISTEN_ADDR
    metrics: str = DEFAULT_METRICS_ADDR
    timeout: str = "5s"
    blocklists: List[str] = field(default_factory=list)


@dataclass
class ClientMode:
    config_mode: str = CONFIG_MODE_HYBRID
    wg_compatible: bool = True


@dataclass
class ClientConfig:
    relay: ClientRelay = field(default_factory=ClientRelay)
    socks5: ClientSocks5 = field(default_factory=ClientSocks5)
    dns: ClientDNS = field(default_factory=ClientDNS)
    mode: ClientMode = field(default_factory=ClientMode)


def default_relay_config() -> RelayConfig:
    """Return the relay defaults."""
    return RelayConfig()


def default_client_config() -> ClientConfig:
    """Return the client defaults."""
    return ClientConfig()


def _scalar_text(value: Any, where: str) -> str:
    if isinstance(value, (dict, list)):
        raise ConfigError(f"{where}: expected a scalar, got {type(value).__name__}")
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _coerce(current: Any, value: Any, where: str) -> Any:
    if isinstance(current, bool):
        if value is None:
            return current
        if isinstance(value, bool):
            return value
        raise ConfigError(f"{where}: cannot decode {value!r} as a boolean")
    if isinstance(current, int):
        if value is None:
            return current
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f"{where}: cannot decode {value!r} as an integer")
        if isinstance(value, float) and not value.is_integer():
            raise ConfigError(f"{where}: cannot decode {value!r} as an integer")
        return int(value)
    if isinstance(current, str):
        if value is None:
            return current
        return _scalar_text(value, where)
    if isinstance(current, list):
        if value is None:
            return []
        if not isinstance(value, list):
            raise ConfigError(f"{where}: expected a list, got {type(value).__name__}")
        return [_scalar_text(item, where) for item in value]
    raise ConfigError(f"{where}: unsupported field type")


def _merge(target: Any, data: Any, where: str) -> None:
    """Overlay a parsed YAML mapping onto a dataclass instance in place."""
    if data is None:
        return
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(data).__name__}")
    by_key = {f.metadata.get("yaml", f.name): f for f in dataclasses.fields(target)}
    for key, value in data.items():
        spec = by_key.get(key) if isinstance(key, str) else None
        if spec is None:
            continue
        current = getattr(target, spec.name)
        path = f"{where}.{key}"
        if dataclasses.is_dataclass(current):
            _merge(current, value, path)
        else:
            setattr(target, spec.name, _coerce(current, value, path))


def _load_into(path: PathLike, target: Any, kind: str) -> None:
    text = Path(path).read_text(encoding="utf-8")
    try:
        _merge(target, yaml.safe_load(text), kind)
    except (yaml.YAMLError, ConfigError) as exc:
        raise ConfigError(f"{kind} config parse error: {exc}") from exc


def load_relay_config(path: PathLike) -> RelayConfig:
    """Read a relay YAML file over the defaults and validate it."""
    cfg = default_relay_config()
    _load_into(path, cfg, "relay")
    validate_relay_config(cfg)
    return cfg


def load_client_config(path: PathLike) -> ClientConfig:
    """Read a client YAML file over the defaults and validate it."""
    cfg = default_client_config()
    _load_into(path, cfg, "client")
    validate_client_config(cfg)
    return cfg


def validate_config_mode(mode: str) -> None:
    """Raise ConfigError unless mode is one of CONFIG_MODES."""
    if mode not in CONFIG_MODES:
        raise ConfigError(f"invalid config mode {mode!r} (allowed: {', '.join(CONFIG_MODES)})")


def validate_relay_config(cfg: RelayConfig) -> None:
    """Raise ConfigError if the relay configuration is unusable."""
    if not cfg.region:
        raise ConfigError("region cannot be empty")
    try:
        _validate_address(cfg.listen)
    except ValueError as exc:
        raise ConfigError(f"invalid relay listen address {cfg.listen!r}: {exc}") from exc


def validate_client_config(cfg: ClientConfig) -> None:
    """Raise ConfigError if the client configuration is unusable."""
    if not cfg.relay.host:
        raise ConfigError("relay host cannot be empty")
    if not 1 <= cfg.relay.port <= 65535:
        raise ConfigError(f"relay port out of range: {cfg.relay.port}")
    try:
        _validate_address(cfg.socks5.listen)
    except ValueError as exc:
        raise ConfigError(f"invalid socks listen address {cfg.socks5.listen!r}: {exc}") from exc
    if cfg.dns.enabled:
        try:
            build_dns_config(cfg)
        except ValueError as exc:
            raise ConfigError(f"invalid dns config: {exc}") from exc
    validate_config_mode(cfg.mode.config_mode)


def build_dns_config(cfg: ClientConfig) -> DNSConfig:
    """Build and validate the DNS sidecar configuration of a client config."""
    try:
        timeout = parse_duration(cfg.dns.timeout)
    except ValueError as exc:
        raise ConfigError(f"invalid dns timeout {cfg.dns.timeout!r}: {exc}") from exc
    dns_cfg = DNSConfig(
        enabled=cfg.dns.enabled,
        protocol=cfg.dns.protocol,
        server=cfg.dns.server,
        listen_addr=cfg.dns.listen,
        metrics_addr=cfg.dns.metrics,
        timeout=timeout,
        blocklists=list(cfg.dns.blocklists),
        block_ipv6=cfg.dns.block_ipv6,
    )
    dns_cfg.validate()
    return dns_cfg