"""IMAP ID payload — attaches the client IP to the identifier sent before authentication.

Dovecot honours ``x-originating-ip`` in the IMAP ``ID`` command when the
webmail host is listed in ``login_trusted_networks``, so authentication
penalties are applied to the real client instead of the webmail server.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

IDENT_FIELD = "x-originating-ip"

# Webmail hosts from 1.5 on send a separate identifier before login;
# older ones only send "ident" after authentication.
PREAUTH_IDENT_KEY = "preauth_ident"
LEGACY_IDENT_KEY = "ident"
PREAUTH_MIN_VERSION = (1, 5)

_VERSION_RE = re.compile(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


def parse_version(value: str) -> tuple[int, int, int]:
    """Parse a loose version string like '1.6.0', '1.5-rc' or 'v1.4' into a tuple.

    Raises ValueError when no leading numeric version is present.
    """
    match = _VERSION_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid version: '{value}'")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return major, minor, patch


def ident_key_for(host_version: str | None) -> str:
    """Pick the argument key that carries the pre-authentication identifier."""
    if host_version is None:
        return PREAUTH_IDENT_KEY
    if parse_version(host_version)[:2] >= PREAUTH_MIN_VERSION:
        return PREAUTH_IDENT_KEY
    return LEGACY_IDENT_KEY


def build_storage_ident(
    client_ip: str | None,
    args: Mapping[str, object] | None = None,
    host_version: str | None = None,
) -> dict[str, dict[str, str]] | None:
    """Build the storage-connect arguments that carry the client IP.

    Existing identifier fields in ``args`` (server name, version, ...) are
    kept; ``x-originating-ip`` is added or replaced.

    Returns:
        ``{ident_key: ident}`` to merge into the connect arguments, or None
        when the client IP is undetermined (nothing should be attached).
    """
    if client_ip is None:
        return None

    key = ident_key_for(host_version)

    ident: dict[str, str] = {}
    existing = (args or {}).get(key)
    if isinstance(existing, Mapping):
        ident.update({str(k): str(v) for k, v in existing.items()})

    ident[IDENT_FIELD] = client_ip
    return {key: ident}


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_imap_id(ident: Mapping[str, str] | None) -> str:
    """Render an identifier mapping as the parameter list of an IMAP ID command (RFC 2971)."""
    if not ident:
        return "NIL"
    return "(" + " ".join(f"{_quote(k)} {_quote(v)}" for k, v in ident.items()) + ")"
