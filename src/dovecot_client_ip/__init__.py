"""dovecot-client-ip — Real client IP resolution behind reverse proxies for Dovecot IMAP logins."""

__version__ = "0.1.0"

from dovecot_client_ip.cidr import InvalidNetworkSpecError, Network, matches, parse_network_spec
from dovecot_client_ip.config import ClientIpConfig, ConfigError, load_config
from dovecot_client_ip.events import (
    ClientIpResolved,
    ClientIpUndetermined,
    HookRegistry,
    InvalidNetworkSpec,
)
from dovecot_client_ip.imap_ident import build_storage_ident, format_imap_id
from dovecot_client_ip.resolver import (
    CLIENT_IP_HEADERS,
    ClientIpResolver,
    Resolution,
    is_acceptable_client_ip,
    resolve_client_ip,
)

__all__ = [
    "CLIENT_IP_HEADERS",
    "ClientIpConfig",
    "ClientIpResolved",
    "ClientIpResolver",
    "ClientIpUndetermined",
    "ConfigError",
    "HookRegistry",
    "InvalidNetworkSpec",
    "InvalidNetworkSpecError",
    "Network",
    "Resolution",
    "build_storage_ident",
    "format_imap_id",
    "is_acceptable_client_ip",
    "load_config",
    "matches",
    "parse_network_spec",
    "resolve_client_ip",
]
