"""Foot controller LED pool and two-digit display state.

The LedPanel is the single place LED and display state is written. Every
write is published on the event bus (``led_changed`` / ``display_changed``)
so the hardware output and the remote LED mirror can follow along.
"""

import logging
from enum import Enum, IntEnum

from core.event_bus import EventBus

log = logging.getLogger("loop4r.fcb.leds")

LED_COUNT = 10

# Blink timer values understood by remote LED displays
TIMER_OFF = 0
TIMER_FASTBLINK = 1
TIMER_BLINK = 3


class BlinkMode(IntEnum):
    DARK = 0
    SOLID = 1
    BLINK = 2
    FAST_BLINK = 3


_TIMERS = {
    BlinkMode.DARK: TIMER_OFF,
    BlinkMode.SOLID: TIMER_OFF,
    BlinkMode.BLINK: TIMER_BLINK,
    BlinkMode.FAST_BLINK: TIMER_FASTBLINK,
}


class LedRole(Enum):
    LOOP_1 = "loop_1"
    LOOP_2 = "loop_2"
    LOOP_3 = "loop_3"
    LOOP_4 = "loop_4"
    RECORD = "record"
    MULTIPLY = "multiply"
    INSERT = "insert"
    REPLACE = "replace"
    SUBSTITUTE = "substitute"
    UNDO = "undo"


# Logical role → LED slot. Remap hardware here.
LED_FOR_ROLE = {
    LedRole.LOOP_1: 0,
    LedRole.LOOP_2: 1,
    LedRole.LOOP_3: 2,
    LedRole.LOOP_4: 3,
    LedRole.RECORD: 4,
    LedRole.MULTIPLY: 5,
    LedRole.INSERT: 6,
    LedRole.REPLACE: 7,
    LedRole.SUBSTITUTE: 8,
    LedRole.UNDO: 9,
}

LOOP_LEDS = (
    LED_FOR_ROLE[LedRole.LOOP_1],
    LED_FOR_ROLE[LedRole.LOOP_2],
    LED_FOR_ROLE[LedRole.LOOP_3],
    LED_FOR_ROLE[LedRole.LOOP_4],
)


def loop_led(loop_index: int) -> int | None:
    """LED slot that shows a loop's state, or None if the loop has no pedal."""
    if 0 <= loop_index < len(LOOP_LEDS):
        return LOOP_LEDS[loop_index]
    return None


class Led:
    """State for a single LED slot."""

    __slots__ = ("index", "on", "blink")

    def __init__(self, index: int):
        self.index = index
        self.on = False
        self.blink = BlinkMode.DARK

    @property
    def timer(self) -> int:
        return _TIMERS[self.blink]

    def clear(self) -> None:
        self.on = False
        self.blink = BlinkMode.DARK

    def __repr__(self) -> str:
        return f"Led({self.index}, on={self.on}, blink={self.blink.name})"


class LedPanel:
    """Fixed pool of LEDs plus the selected-loop display value."""

    def __init__(self, event_bus: EventBus, count: int = LED_COUNT):
        self.event_bus = event_bus
        self.leds = [Led(i) for i in range(count)]
        self.selected_loop = -1

    def __len__(self) -> int:
        return len(self.leds)

    def __getitem__(self, index: int) -> Led:
        return self.leds[index]

    def role(self, role: LedRole) -> Led:
        return self.leds[LED_FOR_ROLE[role]]

    def set_led(self, index: int, on: bool, blink: BlinkMode | None = None) -> None:
        """Write an LED; every write is published, redundant or not."""
        led = self.leds[index]
        led.on = on
        if blink is not None:
            led.blink = blink
        self.event_bus.publish("led_changed", {"led": led})

    def led_on(self, index: int) -> None:
        self.set_led(index, True)

    def led_off(self, index: int) -> None:
        self.set_led(index, False)

    def role_on(self, role: LedRole) -> None:
        self.led_on(LED_FOR_ROLE[role])

    def role_off(self, role: LedRole) -> None:
        self.led_off(LED_FOR_ROLE[role])

    def clear(self, index: int) -> None:
        self.set_led(index, False, BlinkMode.DARK)

    def show_selected_loop(self, value: int) -> None:
        self.selected_loop = value
        log.debug("Selected loop → %d", value)
        self.event_bus.publish("display_changed", {"selected_loop": value})


def display_digits(value: int) -> tuple[int, int]:
    """Split a display value into (tens, ones) for the two-digit display."""
    if value < 0:
        return 0, 0
    return (value // 10) % 10, value % 10
