"""Client IP events — typed events and a hook registry for resolution diagnostics.

Hosts register hooks via ``registry.register("event_name", callback)`` to
observe trust decisions (audit logs, metrics, alerting on misconfigured
proxy lists). Hooks run synchronously inside the resolution call and are
fail-open (errors logged, never break resolution).
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Callable

logger = logging.getLogger("dovecot_client_ip.events")


# ---------------------------------------------------------------------------
# Event dataclasses
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Event:
    """Base event — all events carry a timestamp."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class InvalidNetworkSpec(Event):
    """Fired when a trusted proxy entry cannot be parsed and is skipped."""
    spec: str = ""
    reason: str = ""


@dataclass(frozen=True, slots=True)
class ClientIpResolved(Event):
    """Fired when a client IP was determined.

    ``source`` is the header the address came from, or ``"peer"`` when the
    peer address itself was used.
    """
    client_ip: str = ""
    peer_address: str = ""
    trusted: bool = False
    source: str = "peer"


@dataclass(frozen=True, slots=True)
class ClientIpUndetermined(Event):
    """Fired when neither the headers nor the peer address yielded an IP."""
    peer_address: str = ""


# ---------------------------------------------------------------------------
# Event name mapping
# ---------------------------------------------------------------------------

EVENT_MAP: dict[str, type[Event]] = {
    "invalid_network_spec": InvalidNetworkSpec,
    "client_ip_resolved": ClientIpResolved,
    "client_ip_undetermined": ClientIpUndetermined,
}


# ---------------------------------------------------------------------------
# Hook registry
# ---------------------------------------------------------------------------

HookCallback = Callable[[Event], Any]


class HookRegistry:
    """Registry for event hook callbacks. Supports multiple listeners per event."""

    def __init__(self) -> None:
        self._hooks: dict[str, list[HookCallback]] = {}

    def register(self, event_name: str, callback: HookCallback) -> None:
        """Register a callback for an event name."""
        if event_name not in EVENT_MAP:
            raise ValueError(
                f"Unknown event '{event_name}'. "
                f"Valid events: {', '.join(sorted(EVENT_MAP))}"
            )
        if inspect.iscoroutinefunction(callback):
            raise ValueError(
                f"Hook for '{event_name}' must be a plain callable; "
                "client IP resolution is synchronous"
            )
        self._hooks.setdefault(event_name, []).append(callback)

    def on(self, event_name: str):
        """Decorator form of :meth:`register`.

        Usage:
            @hooks.on("invalid_network_spec")
            def alert(event):
                print(event.spec, event.reason)
        """
        def decorator(fn):
            self.register(event_name, fn)
            return fn
        return decorator

    def get_hooks(self, event_name: str) -> list[HookCallback]:
        """Get all registered callbacks for an event name."""
        return self._hooks.get(event_name, [])

    def emit(self, event_name: str, event: Event) -> None:
        """Fire all registered callbacks for an event. Fail-open: errors are logged."""
        for callback in self.get_hooks(event_name):
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "Hook error in '%s' handler %s.%s",
                    event_name,
                    callback.__module__,
                    getattr(callback, "__qualname__", repr(callback)),
                )
