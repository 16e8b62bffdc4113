"""CIDR matching — family-aware membership checks for IPv4 and IPv6 network specs."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network, ip_address, ip_network
from typing import TYPE_CHECKING

from dovecot_client_ip.events import InvalidNetworkSpec

if TYPE_CHECKING:
    from dovecot_client_ip.events import HookRegistry

logger = logging.getLogger("dovecot_client_ip.cidr")

IPAddress = IPv4Address | IPv6Address
Network = IPv4Network | IPv6Network


class InvalidNetworkSpecError(ValueError):
    """Raised when a network spec is neither a bare IP nor valid CIDR notation."""

    def __init__(self, spec: str, reason: str):
        self.spec = spec
        self.reason = reason
        super().__init__(f"Invalid IP/CIDR '{spec}': {reason}")


def parse_ip(value: str | IPAddress | None) -> IPAddress | None:
    """Parse an IP literal into a typed IPv4/IPv6 address, or None if it is not one."""
    if isinstance(value, (IPv4Address, IPv6Address)):
        return value
    if not value:
        return None
    try:
        return ip_address(value.strip())
    except ValueError:
        return None


def parse_network_spec(spec: str | Network) -> Network:
    """Parse a network spec like '10.0.0.0/8', '2001:db8::/32' or '192.0.2.7'.

    A bare address becomes a /32 or /128. Host bits beyond the prefix are
    masked off ('10.1.2.3/8' is 10.0.0.0/8). Netmask notation is not accepted.

    Raises InvalidNetworkSpecError on an unparsable address or prefix.
    """
    if isinstance(spec, (IPv4Network, IPv6Network)):
        return spec
    if not isinstance(spec, str):
        raise InvalidNetworkSpecError(repr(spec), "expected a string")

    text = spec.strip()
    if not text:
        raise InvalidNetworkSpecError(spec, "empty network spec")

    address_str, sep, prefix_str = text.partition("/")
    address_str = address_str.strip()
    prefix_str = prefix_str.strip()
    if parse_ip(address_str) is None:
        raise InvalidNetworkSpecError(spec, f"'{address_str}' is not an IP address")
    if sep and not (prefix_str.isascii() and prefix_str.isdigit()):
        raise InvalidNetworkSpecError(spec, f"prefix length '{prefix_str}' is not a number")

    try:
        return ip_network(f"{address_str}/{prefix_str}" if sep else address_str, strict=False)
    except ValueError as e:
        raise InvalidNetworkSpecError(spec, str(e)) from e


def _report_invalid(error: InvalidNetworkSpecError, hooks: HookRegistry | None) -> None:
    logger.warning("Ignoring trusted proxy entry: %s", error)
    if hooks is not None:
        hooks.emit("invalid_network_spec", InvalidNetworkSpec(spec=error.spec, reason=error.reason))


def matches(
    candidate: str | IPAddress | None,
    spec: str | Network,
    *,
    hooks: HookRegistry | None = None,
) -> bool:
    """Check whether ``candidate`` lies inside the network described by ``spec``.

    Never raises: a malformed spec or candidate is a non-match. Malformed
    specs are logged (and reported to ``hooks``) so that misconfiguration
    stays visible. Addresses never match networks of the other family.
    """
    try:
        network = parse_network_spec(spec)
    except InvalidNetworkSpecError as e:
        _report_invalid(e, hooks)
        return False

    addr = parse_ip(candidate)
    if addr is None:
        return False

    return addr in network


def matches_any(
    candidate: str | IPAddress | None,
    specs: Iterable[str | Network],
    *,
    hooks: HookRegistry | None = None,
) -> str | None:
    """Return the first spec in ``specs`` that contains ``candidate``, or None.

    Pre-parsed networks are used as-is; strings are parsed on each call.
    """
    addr = parse_ip(candidate)
    if addr is None:
        return None

    for spec in specs:
        if matches(addr, spec, hooks=hooks):
            return str(spec)
    return None


def validate_network_specs(specs: Iterable[str]) -> list[tuple[str, str]]:
    """Return (spec, reason) for every spec that cannot be parsed."""
    invalid: list[tuple[str, str]] = []
    for spec in specs:
        try:
            parse_network_spec(spec)
        except InvalidNetworkSpecError as e:
            invalid.append((e.spec, e.reason))
    return invalid
