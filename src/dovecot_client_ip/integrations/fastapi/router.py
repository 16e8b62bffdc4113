"""FastAPI client IP router — reports how the server sees the caller at /client-ip."""

from fastapi import APIRouter, Request

from dovecot_client_ip.config import ClientIpConfig
from dovecot_client_ip.events import HookRegistry
from dovecot_client_ip.integrations.fastapi.proxy import resolve_request
from dovecot_client_ip.schemas import ClientIpResponse


def create_client_ip_router(config: ClientIpConfig, hooks: HookRegistry | None = None) -> APIRouter:
    """Create a FastAPI router serving the client IP diagnostics endpoint.

    Useful when setting up a reverse proxy: the response shows whether the
    proxy was trusted and which header the address was taken from.
    """
    router = APIRouter(tags=["client-ip"])

    @router.get("/client-ip", response_model=ClientIpResponse)
    async def client_ip_endpoint(request: Request):
        """Return the resolved client IP for the current request."""
        resolution = resolve_request(request, config, hooks)
        return ClientIpResponse(
            client_ip=resolution.client_ip,
            peer_address=resolution.peer_address,
            trusted=resolution.trusted,
            source=resolution.source,
        )

    return router
