"""Reverse proxy IP extraction for FastAPI requests."""

from __future__ import annotations

from fastapi import Request
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from dovecot_client_ip.config import ClientIpConfig
from dovecot_client_ip.events import HookRegistry
from dovecot_client_ip.resolver import ClientIpResolver, Resolution


def resolve_request(
    request: Request, config: ClientIpConfig, hooks: HookRegistry | None = None,
) -> Resolution:
    """Resolve a request's client IP and keep the details of the decision."""
    peer = request.client.host if request.client else ""
    return ClientIpResolver(config, hooks=hooks).resolve_detailed(peer, request.headers)


def get_client_ip(
    request: Request, config: ClientIpConfig, hooks: HookRegistry | None = None,
) -> str | None:
    """Extract the real client IP, respecting the trusted proxy configuration.

    Resolution order:
    1. If request.client.host is not a trusted proxy → request.client.host.
    2. Otherwise the first valid, policy-acceptable address from Client-IP,
       X-Forwarded-For, X-Forwarded, X-Cluster-Client-IP, Forwarded-For,
       Forwarded (repeated headers are read as one comma-separated list).
    3. Nothing acceptable → request.client.host.
    4. No client → None.
    """
    return resolve_request(request, config, hooks).client_ip


def create_client_ip_dep(config: ClientIpConfig, hooks: HookRegistry | None = None):
    """Factory: create a FastAPI dependency that yields the resolved client IP."""

    async def client_ip(request: Request) -> str | None:
        return get_client_ip(request, config, hooks)

    return client_ip


class ClientIpMiddleware:
    """ASGI middleware that stores the resolved client IP on the request state.

    Handlers read it as ``request.state.client_ip`` (None when undetermined).
    """

    def __init__(
        self, app: ASGIApp, config: ClientIpConfig, hooks: HookRegistry | None = None,
    ) -> None:
        self.app = app
        self.resolver = ClientIpResolver(config, hooks=hooks)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        peer = client[0] if client else ""
        client_ip = self.resolver.resolve(peer, Headers(scope=scope))
        scope.setdefault("state", {})["client_ip"] = client_ip

        await self.app(scope, receive, send)
