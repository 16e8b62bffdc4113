"""Vulture whitelist — false positives that are actually used by frameworks or consumers."""

# ---------------------------------------------------------------------------
# Public API (used by host applications, not internally)
# ---------------------------------------------------------------------------
from dovecot_client_ip.events import HookRegistry
from dovecot_client_ip.integrations.fastapi import (
    ClientIpMiddleware,
    create_client_ip_dep,
    create_client_ip_router,
)
from dovecot_client_ip.imap_ident import format_imap_id
from dovecot_client_ip.resolver import ClientIpResolver

HookRegistry.on
ClientIpResolver.config
ClientIpMiddleware
create_client_ip_dep
create_client_ip_router
format_imap_id

# ---------------------------------------------------------------------------
# FastAPI route handlers (registered via decorators, not called directly)
# ---------------------------------------------------------------------------
_.client_ip_endpoint

# ---------------------------------------------------------------------------
# Dataclass / pydantic fields (used for serialization, not accessed in code)
# ---------------------------------------------------------------------------
_.timestamp
_.trusted_by
