"""Client IP resolution — trusted proxy check, forwarding header scan, and address policy."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from ipaddress import IPv6Address
from typing import TYPE_CHECKING

from dovecot_client_ip.cidr import IPAddress, Network, matches_any, parse_ip, parse_network_spec
from dovecot_client_ip.events import ClientIpResolved, ClientIpUndetermined

if TYPE_CHECKING:
    from dovecot_client_ip.config import ClientIpConfig
    from dovecot_client_ip.events import HookRegistry

logger = logging.getLogger("dovecot_client_ip.resolver")

# Header precedence, highest first. The peer address is scanned after these.
CLIENT_IP_HEADERS: tuple[str, ...] = (
    "Client-IP",
    "X-Forwarded-For",
    "X-Forwarded",
    "X-Cluster-Client-IP",
    "Forwarded-For",
    "Forwarded",
)

PEER_SOURCE = "peer"

# IANA special-use space that is never a real client, regardless of policy.
# Documentation ranges are deliberately absent.
RESERVED_RANGES = tuple(parse_network_spec(s) for s in (
    "0.0.0.0/8",
    "192.0.0.0/24",
    "192.88.99.0/24",
    "198.18.0.0/15",
    "224.0.0.0/4",
    "240.0.0.0/4",
    "::/128",
    "::ffff:0:0/96",
    "100::/64",
    "2001:2::/48",
    "ff00::/8",
))

# Private, shared, loopback and link-local space. Rejected unless
# allow_private_client_ip is set.
PRIVATE_RANGES = tuple(parse_network_spec(s) for s in (
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "100.64.0.0/10",
    "127.0.0.0/8",
    "169.254.0.0/16",
    "fc00::/7",
    "::1/128",
    "fe80::/10",
))


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of a resolution with the details behind the decision.

    ``source`` is the header the client IP was taken from, ``"peer"`` when the
    peer address was used, or None when nothing could be determined.
    """

    client_ip: str | None
    peer_address: str
    trusted: bool = False
    trusted_by: str | None = None
    source: str | None = None


def normalize_header_name(name: str) -> str:
    """Map 'X-Forwarded-For', 'x_forwarded_for' and 'HTTP_X_FORWARDED_FOR' to 'x-forwarded-for'."""
    key = name.strip().lower()
    if key.startswith("http_"):
        key = key[len("http_"):]
    return key.replace("_", "-")


def normalize_headers(headers: Mapping[str, str] | None) -> dict[str, str]:
    """Lower-case header names and fold CGI style names into HTTP style.

    Values of keys that normalize to the same name are joined with ', ' in
    the mapping's iteration order.
    """
    normalized: dict[str, str] = {}
    if not headers:
        return normalized

    for name, value in headers.items():
        # WSGI environs carry non-string entries (wsgi.input, ...)
        if not isinstance(name, str) or not isinstance(value, str):
            continue
        key = normalize_header_name(name)
        existing = normalized.get(key)
        if existing and value:
            normalized[key] = f"{existing}, {value}"
        elif not existing:
            normalized[key] = value
    return normalized


def _in_any(addr: IPAddress, ranges) -> bool:
    return any(addr in network for network in ranges)


def is_acceptable_client_ip(candidate: str | IPAddress | None, allow_private_client_ip: bool) -> bool:
    """Check whether a forwarded candidate may be reported as the client IP.

    The candidate must be a plain IPv4/IPv6 literal (no port, no zone index)
    outside the reserved ranges, and outside the private ranges unless
    ``allow_private_client_ip`` is set.
    """
    addr = parse_ip(candidate)
    if addr is None:
        return False
    if isinstance(addr, IPv6Address) and addr.scope_id:
        return False
    if _in_any(addr, RESERVED_RANGES):
        return False
    if not allow_private_client_ip and _in_any(addr, PRIVATE_RANGES):
        return False
    return True


def _split_candidates(value: str) -> Iterable[str]:
    for token in value.split(","):
        token = token.strip()
        if token:
            yield token


def _scan(
    peer_address: str,
    headers: dict[str, str],
    allow_private_client_ip: bool,
) -> tuple[str, str] | None:
    """Return (candidate, source) for the first acceptable forwarded address."""
    sources = [(name, headers.get(name.lower(), "")) for name in CLIENT_IP_HEADERS]
    sources.append((PEER_SOURCE, peer_address))

    for source, value in sources:
        if not value:
            continue
        for token in _split_candidates(value):
            if is_acceptable_client_ip(token, allow_private_client_ip):
                return token, source
            logger.debug("Rejected client IP candidate %r from %s", token, source)
    return None


def resolve(
    peer_address: str | None,
    trusted_proxies: Iterable[str | Network],
    allow_private_client_ip: bool,
    headers: Mapping[str, str] | None,
    *,
    hooks: HookRegistry | None = None,
) -> Resolution:
    """Resolve the client IP and report how it was determined.

    See :func:`resolve_client_ip` for the algorithm.
    """
    peer = (peer_address or "").strip()
    trusted_by = matches_any(peer, trusted_proxies, hooks=hooks) if peer else None

    resolution: Resolution | None = None
    if trusted_by is not None:
        logger.debug("Peer %s is a trusted proxy (matched %s)", peer, trusted_by)
        found = _scan(peer, normalize_headers(headers), allow_private_client_ip)
        if found is not None:
            client_ip, source = found
            resolution = Resolution(
                client_ip=client_ip, peer_address=peer,
                trusted=True, trusted_by=trusted_by, source=source,
            )

    if resolution is None:
        resolution = Resolution(
            client_ip=peer or None,
            peer_address=peer,
            trusted=trusted_by is not None,
            trusted_by=trusted_by,
            source=PEER_SOURCE if peer else None,
        )

    if hooks is not None:
        if resolution.client_ip is None:
            hooks.emit("client_ip_undetermined", ClientIpUndetermined(peer_address=peer))
        else:
            hooks.emit(
                "client_ip_resolved",
                ClientIpResolved(
                    client_ip=resolution.client_ip,
                    peer_address=peer,
                    trusted=resolution.trusted,
                    source=resolution.source,
                ),
            )

    return resolution


def resolve_client_ip(
    peer_address: str | None,
    trusted_proxies: Iterable[str | Network],
    allow_private_client_ip: bool,
    headers: Mapping[str, str] | None,
    *,
    hooks: HookRegistry | None = None,
) -> str | None:
    """Determine the real client IP of a request, respecting trusted proxies.

    Resolution order:
    1. If the peer address matches one of ``trusted_proxies`` (bare IPs or
       CIDRs), scan Client-IP, X-Forwarded-For, X-Forwarded,
       X-Cluster-Client-IP, Forwarded-For, Forwarded and finally the peer
       address itself. Each value is split on commas and the first valid,
       policy-acceptable address wins.
    2. Otherwise (or if nothing acceptable was found) → the peer address.
    3. Empty peer address → None.

    Entries of ``trusted_proxies`` may be strings or networks pre-parsed
    with :func:`~dovecot_client_ip.cidr.parse_network_spec`.

    Never raises on malformed input.
    """
    return resolve(
        peer_address, trusted_proxies, allow_private_client_ip, headers, hooks=hooks,
    ).client_ip


class ClientIpResolver:
    """Binds a ClientIpConfig (and optional hooks) for repeated resolutions.

    Usage:
        resolver = ClientIpResolver(load_config())
        client_ip = resolver.resolve(environ["REMOTE_ADDR"], environ)
    """

    def __init__(self, config: ClientIpConfig, *, hooks: HookRegistry | None = None) -> None:
        self._config = config
        self._hooks = hooks

    @property
    def config(self) -> ClientIpConfig:
        """Read-only access to the config."""
        return self._config

    def resolve(self, peer_address: str | None, headers: Mapping[str, str] | None) -> str | None:
        return self.resolve_detailed(peer_address, headers).client_ip

    def resolve_detailed(self, peer_address: str | None, headers: Mapping[str, str] | None) -> Resolution:
        return resolve(
            peer_address,
            self._config.trusted_networks,
            self._config.allow_private_client_ip,
            headers,
            hooks=self._hooks,
        )
