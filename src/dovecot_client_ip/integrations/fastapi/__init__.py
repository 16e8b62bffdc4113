"""FastAPI integration for client IP resolution."""

from dovecot_client_ip.integrations.fastapi.proxy import (
    ClientIpMiddleware,
    create_client_ip_dep,
    get_client_ip,
)
from dovecot_client_ip.integrations.fastapi.router import create_client_ip_router

__all__ = [
    "ClientIpMiddleware",
    "create_client_ip_dep",
    "create_client_ip_router",
    "get_client_ip",
]
