"""Test fixtures for dovecot-client-ip."""

import pytest

from dovecot_client_ip.events import EVENT_MAP, HookRegistry


class Recorder:
    """Collects every emitted event as (event_name, event)."""

    def __init__(self) -> None:
        self.events: list = []

    def named(self, event_name: str) -> list:
        return [event for name, event in self.events if name == event_name]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def hooks(recorder: Recorder) -> HookRegistry:
    """A HookRegistry that records every event into ``recorder``."""
    registry = HookRegistry()
    for event_name in EVENT_MAP:
        registry.register(
            event_name,
            lambda event, _name=event_name: recorder.events.append((_name, event)),
        )
    return registry
