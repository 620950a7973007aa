"""Secure DNS sidecar configuration: validation, rendering and leak rules."""

from __future__ import annotations

import re
import socket
from dataclasses import dataclass, field
from typing import List, Tuple
from urllib.parse import urlsplit

import yaml

PROTOCOL_DOH = "doh"
PROTOCOL_DOH3 = "doh3"
PROTOCOL_DOT = "dot"

DEFAULT_SERVER = "https://dns.quad9.net/dns-query"
DEFAULT_LISTEN_ADDR = "127.0.0.1:5353"
DEFAULT_METRICS_ADDR = "127.0.0.1:9153"
DEFAULT_TIMEOUT = 5.0
MIN_TIMEOUT = 1.0
MAX_TIMEOUT = 30.0

_NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_MAX_DURATION_NS = (1 << 63) - 1
_DURATION_PART = re.compile(r"([0-9]*)(?:\.([0-9]*))?([^0-9.]*)")
_NUMERIC_PORT = re.compile(r"([+-]?)([0-9]+)")


class DNSConfigError(ValueError):
    """Raised when a DNS configuration is invalid."""


def split_host_port(addr: str) -> Tuple[str, str]:
    """Split "host:port" or "[host]:port" into host and port strings."""

    def fail(reason: str) -> ValueError:
        return ValueError(f"address {addr}: {reason}")

    last = addr.rfind(":")
    if last < 0:
        raise fail("missing port in address")
    start_open, start_close = 0, 0
    if addr.startswith("["):
        end = addr.find("]")
        if end < 0:
            raise fail("missing ']' in address")
        if end + 1 == len(addr):
            raise fail("missing port in address")
        if end + 1 != last:
            if addr[end + 1] == ":":
                raise fail("too many colons in address")
            raise fail("missing port in address")
        host = addr[1:end]
        start_open, start_close = 1, end + 1
    else:
        host = addr[:last]
        if ":" in host:
            raise fail("too many colons in address")
    if "[" in addr[start_open:]:
        raise fail("unexpected '[' in address")
    if "]" in addr[start_close:]:
        raise fail("unexpected ']' in address")
    return host, addr[last + 1 :]


def _parse_port(port: str) -> int:
    if port == "":
        return 0
    match = _NUMERIC_PORT.fullmatch(port)
    if match:
        number = int(match.group(2))
        if match.group(1) == "-":
            number = -number
        if not 0 <= number <= 65535:
            raise ValueError(f"invalid port {port!r}")
        return number
    try:
        return socket.getservbyname(port)
    except OSError as exc:
        raise ValueError(f"unknown port {port!r}") from exc


def _validate_address(addr: str) -> None:
    """Check that addr is host:port with a usable port."""
    _host, port = split_host_port(addr)
    _parse_port(port)


def parse_duration(text: str) -> float:
    """Parse a duration such as "5s", "1m30s" or "300ms" into seconds."""
    invalid = ValueError(f'time: invalid duration "{text}"')
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return 0.0
    if not rest:
        raise invalid
    total = 0
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        whole, frac, unit = match.group(1), match.group(2), match.group(3)
        if not whole and not frac:
            raise invalid
        if not unit:
            raise ValueError(f'time: missing unit in duration "{text}"')
        scale = _NANOS_PER_UNIT.get(unit)
        if scale is None:
            raise ValueError(f'time: unknown unit "{unit}" in duration "{text}"')
        value = int(whole or "0") * scale
        if frac:
            value += int(frac) * scale // 10 ** len(frac)
        total += value
        if total > _MAX_DURATION_NS:
            raise invalid
        pos = match.end()
    nanos = -total if negative else total
    return nanos / 1_000_000_000


def _fraction(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    digits = f"{frac:0{precision}d}".rstrip("0")
    return f"{whole}.{digits}" if digits else str(whole)


def format_duration(seconds: float) -> str:
    """Format seconds in the compact form "1h2m3.5s", "500ms" or "0s"."""
    nanos = round(seconds * 1_000_000_000)
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    magnitude = abs(nanos)
    if magnitude < 1_000_000_000:
        if magnitude < 1_000:
            return f"{sign}{magnitude}ns"
        if magnitude < 1_000_000:
            return f"{sign}{_fraction(magnitude, 3)}\u00b5s"
        return f"{sign}{_fraction(magnitude, 6)}ms"
    secs, frac_ns = divmod(magnitude, 1_000_000_000)
    text = _fraction((secs % 60) * 1_000_000_000 + frac_ns, 9) + "s"
    minutes = secs // 60
    if minutes:
        text = f"{minutes % 60}m{text}"
        hours = minutes // 60
        if hours:
            text = f"{hours}h{text}"
    return sign + text


class _IndentedDumper(yaml.SafeDumper):
    """Indent block sequences under their parent key."""

    def increase_indent(self, flow: bool = False, indentless: bool = False):
        return super().increase_indent(flow, False)


@dataclass
class DNSConfig:
    """Settings for the local secure DNS resolver."""

    enabled: bool = False
    protocol: str = PROTOCOL_DOH
    server: str = DEFAULT_SERVER
    listen_addr: str = DEFAULT_LISTEN_ADDR
    metrics_addr: str = DEFAULT_METRICS_ADDR
    timeout: float = DEFAULT_TIMEOUT
    blocklists: List[str] = field(default_factory=list)
    block_ipv6: bool = False

    def validate(self) -> None:
        """Raise DNSConfigError if an enabled configuration is unusable."""
        if not self.enabled:
            return
        if not self.server:
            raise DNSConfigError("dns server cannot be empty")
        if self.timeout <= 0:
            raise DNSConfigError("dns timeout must be positive")
        if not MIN_TIMEOUT <= self.timeout <= MAX_TIMEOUT:
            raise DNSConfigError("dns timeout must be between 1s and 30s")
        try:
            _validate_address(self.listen_addr)
        except ValueError as exc:
            raise DNSConfigError(
                f"invalid dns listen address {self.listen_addr!r}: {exc}"
            ) from exc
        if self.metrics_addr:
            try:
                _validate_address(self.metrics_addr)
            except ValueError as exc:
                raise DNSConfigError(
                    f"invalid dns metrics address {self.metrics_addr!r}: {exc}"
                ) from exc

        if self.protocol in (PROTOCOL_DOH, PROTOCOL_DOH3):
            try:
                parts = urlsplit(self.server)
            except ValueError as exc:
                raise DNSConfigError(f"invalid dns url {self.server!r}: {exc}") from exc
            if parts.scheme != "https":
                raise DNSConfigError(
                    f"{self.protocol} requires https url, got {self.server!r}"
                )
            if not parts.netloc.rpartition("@")[2]:
                raise DNSConfigError("dns url host cannot be empty")
        elif self.protocol == PROTOCOL_DOT:
            try:
                split_host_port(self.server)
            except ValueError as exc:
                raise DNSConfigError(
                    f"dot server must be host:port, got {self.server!r}: {exc}"
                ) from exc
        else:
            raise DNSConfigError(f"unsupported dns protocol {self.protocol!r}")

    def render_labyrinth_config(self) -> str:
        """Render the resolver sidecar configuration as YAML."""
        self.validate()
        server = {"listen_addr": self.listen_addr}
        if self.protocol == PROTOCOL_DOT:
            server["dot_enabled"] = True
        document = {
            "server": server,
            "resolver": {
                "max_depth": 30,
                "qname_minimization": True,
                "prefer_ipv4": True,
                "dnssec_enabled": True,
                "upstream_timeout": format_duration(self.timeout),
            },
            "cache": {"max_entries": 100000, "min_ttl": 5, "max_ttl": 86400},
            "web": {
                "enabled": True,
                "addr": self.metrics_addr,
                "doh_enabled": self.protocol in (PROTOCOL_DOH, PROTOCOL_DOH3),
                "doh3_enabled": self.protocol == PROTOCOL_DOH3,
                "tls_enabled": False,
            },
        }
        if self.blocklists:
            document["blocklist"] = {"enabled": True, "lists": list(self.blocklists)}
        return yaml.dump(
            document,
            Dumper=_IndentedDumper,
            sort_keys=False,
            indent=4,
            default_flow_style=False,
            allow_unicode=True,
        )

    def leak_prevention_rules(self) -> List[str]:
        """Return firewall commands that block plain DNS on port 53."""
        self.validate()
        if not self.enabled:
            return []
        rules = [
            "iptables -A OUTPUT -p udp --dport 53 -j DROP",
            "iptables -A OUTPUT -p tcp --dport 53 -j REJECT",
        ]
        if self.block_ipv6:
            rules += [
                "ip6tables -A OUTPUT -p udp --dport 53 -j DROP",
                "ip6tables -A OUTPUT -p tcp --dport 53 -j REJECT",
            ]
        return rules

    def upstream_summary(self) -> str:
        """Describe the upstream for log output."""
        if not self.enabled:
            return "disabled"
        protocol = self.protocol or "unknown"
        return f"{protocol.upper()} via {self.server}"


def default_dns_config() -> DNSConfig:
    """Return the default, disabled DNS configuration."""
    return DNSConfig()