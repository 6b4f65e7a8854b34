"""Destination URL validation (SSRF guard).

Only literal hosts are inspected; hostnames are never resolved here, so a
public name that resolves to an internal address is not caught.
"""
from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

_IPV4_SHORTHAND_CHARS = frozenset("0123456789abcdefx.")

_LOOPBACK_NAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost"})

_BLOCKED_NETWORKS = tuple(
    ipaddress.ip_network(net)
    for net in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",  # carrier-grade NAT
        "127.0.0.0/8",
        "169.254.0.0/16",  # link-local, cloud metadata
        "172.16.0.0/12",
        "192.0.0.0/24",  # IETF protocol assignments, includes 192.0.0.192 metadata
        "192.168.0.0/16",
        "198.18.0.0/15",  # benchmarking
        "::/128",
        "::1/128",
        "::/96",  # IPv4-compatible
        "64:ff9b::/96",  # NAT64
        "fc00::/7",  # unique local, includes fd00:ec2::254
        "fe80::/10",
    )
)


@dataclass(frozen=True)
class UrlValidationResult:
    valid: bool
    reason: str | None = None

    def as_dict(self) -> dict[str, object]:
        if self.valid:
            return {"valid": True}
        return {"valid": False, "reason": self.reason}


_OK = UrlValidationResult(valid=True)

_NAT64 = ipaddress.ip_network("64:ff9b::/96")


def _parse_ip_literal(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        address = ipaddress.ip_address(host.split("%", 1)[0])
    except ValueError:
        # Shorthand IPv4 forms ("127.1", "2130706433", "0x7f.0.0.1") that
        # resolvers still accept.
        if not host or any(c not in _IPV4_SHORTHAND_CHARS for c in host):
            return None
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None
    if isinstance(address, ipaddress.IPv6Address):
        if address.ipv4_mapped is not None:
            return address.ipv4_mapped
        # IPv4-compatible (::a.b.c.d) and NAT64 (64:ff9b::a.b.c.d) embed an IPv4 target.
        if (int(address) >> 32 == 0 and int(address) > 1) or address in _NAT64:
            return ipaddress.IPv4Address(int(address) & 0xFFFFFFFF)
    return address


def validate_webhook_url(url: str) -> UrlValidationResult:
    """Check that ``url`` is an HTTPS URL not aimed at loopback or private hosts."""
    try:
        parts = urlsplit(url.strip())
        hostname = parts.hostname
        # Accessing .port validates it; out-of-range values raise ValueError.
        parts.port
    except (ValueError, AttributeError):
        return UrlValidationResult(False, "Invalid URL format")

    if parts.scheme.lower() != "https":
        return UrlValidationResult(False, "Webhook URL must use HTTPS")
    if not hostname:
        return UrlValidationResult(False, "Invalid URL format")

    host = hostname.lower().rstrip(".")
    if host in _LOOPBACK_NAMES or host.endswith(".localhost"):
        return UrlValidationResult(False, "Webhook URL cannot point to localhost")

    address = _parse_ip_literal(host)
    if address is None:
        return _OK
    if address.is_loopback:
        return UrlValidationResult(False, "Webhook URL cannot point to localhost")
    if not address.is_global or address.is_multicast or any(
        address in network for network in _BLOCKED_NETWORKS
    ):
        return UrlValidationResult(False, "Webhook URL cannot point to private IP addresses")
    return _OK


def normalize_webhook_url(url: str) -> str:
    """Lowercase the scheme and host of an already validated URL."""
    parts = urlsplit(url.strip())
    userinfo, at, hostport = parts.netloc.rpartition("@")
    netloc = f"{userinfo}{at}{hostport.lower()}"
    return urlunsplit(parts._replace(scheme=parts.scheme.lower(), netloc=netloc))
