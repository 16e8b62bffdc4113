"""Response models for the client IP diagnostics endpoint."""

from pydantic import BaseModel


class ClientIpResponse(BaseModel):
    """How the server resolved the caller's address."""
    client_ip: str | None
    peer_address: str
    trusted: bool
    source: str | None = None
