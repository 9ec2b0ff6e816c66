"""Pytest fixtures for tests."""

import os
import sys
from unittest.mock import Mock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from core.event_bus import EventBus
from fcb.leds import LedPanel
from fcb.pedals import PedalMode
from looper.osc_client import LooperOSCClient
from looper.osc_server import LooperOSCServer
from looper.state import LoopStateMachine


class Recorder:
    """Collects every event published for the given types."""

    def __init__(self, bus: EventBus, *event_types: str):
        self.events = []
        for event_type in event_types:
            bus.subscribe(event_type, lambda data, t=event_type: self._record(t, data))

    def _record(self, event_type, data):
        # Led objects are mutated in place; keep what was published
        if event_type == "led_changed":
            led = data["led"]
            data = (led.index, led.on, led.blink)
        self.events.append((event_type, data))

    def led_writes(self):
        """(index, on, blink) for every led_changed event, in order."""
        return [d for t, d in self.events if t == "led_changed"]

    def display_values(self):
        return [d["selected_loop"] for t, d in self.events if t == "display_changed"]

    def clear(self):
        self.events.clear()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def leds(bus):
    return LedPanel(bus)


@pytest.fixture
def mode():
    return PedalMode()


@pytest.fixture
def loops(leds, mode):
    return LoopStateMachine(leds, mode)


@pytest.fixture
def recorder(bus):
    return Recorder(bus, "led_changed", "display_changed")


@pytest.fixture
def osc_client():
    """LooperOSCClient stand-in that records outbound requests."""
    client = Mock(spec=LooperOSCClient)
    client.ip = "127.0.0.1"
    client.port = 9951
    return client


@pytest.fixture
def osc_server():
    server = Mock(spec=LooperOSCServer)
    server.port = 9000
    return server
