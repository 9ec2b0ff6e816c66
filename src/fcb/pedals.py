"""FCB1010 pedal decoding and routing.

The controller runs in I/O mode and reports each pedal as a controller
change: CC 104 on press, CC 105 on release, with the pedal number as the
value. Loop pedals and the function pedals become note messages on the
virtual output the looper listens on; RECORD is kept local and flips the
pedal mode (a second note layer for the loop pedals).
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fcb.leds import LedPanel, LedRole

if TYPE_CHECKING:
    from fcb.hardware import FootControllerHardware
    from looper.state import LoopStateMachine

log = logging.getLogger("loop4r.fcb.pedals")

CC_PEDAL_DOWN = 104
CC_PEDAL_UP = 105

# Pedal slots (0-3 are the loop pedals)
LOOP_PEDALS = (0, 1, 2, 3)
RECORD = 4
MULTIPLY = 5
INSERT = 6
REPLACE = 7
SUBSTITUTE = 8
UNDO = 9
UP = 10
DOWN = 11

PEDAL_NAMES = {
    0: "loop 1", 1: "loop 2", 2: "loop 3", 3: "loop 4",
    RECORD: "record", MULTIPLY: "multiply", INSERT: "insert",
    REPLACE: "replace", SUBSTITUTE: "substitute", UNDO: "undo",
    UP: "up", DOWN: "down",
}

MODE_OFFSET = 20
NOTE_VELOCITY = 127


def pedal_index(value: int) -> int:
    """Pedal slot for a CC 104/105 value (pedal 10 reports 0)."""
    if 1 <= value <= 9:
        return value - 1
    if value == 0:
        return UNDO
    return value


def led_number(slot: int) -> int:
    """Hardware LED number for a pedal/LED slot; inverse of pedal_index()."""
    if 0 <= slot <= 8:
        return slot + 1
    if slot == UNDO:
        return 0
    return slot


class PedalMode:
    """The RECORD pedal's note layer: offset 0 or 20."""

    def __init__(self):
        self.offset = 0

    def toggle(self) -> int:
        self.offset = 0 if self.offset > 0 else MODE_OFFSET
        return self.offset

    @property
    def shifted(self) -> bool:
        return self.offset != 0


class PedalEventRouter:
    """Turns raw controller messages into notes, LED writes and mode changes."""

    def __init__(self, hardware: FootControllerHardware, leds: LedPanel,
                 loops: LoopStateMachine, mode: PedalMode, base_note: int = 64):
        self.hardware = hardware
        self.leds = leds
        self.loops = loops
        self.mode = mode
        self.base_note = base_note

    def handle_message(self, message: list[int]) -> None:
        """Route one raw MIDI message from the controller."""
        if not message:
            return
        if (message[0] & 0xF0) == 0xB0 and len(message) >= 3:
            cc, value = message[1], message[2]
            if cc == CC_PEDAL_DOWN:
                self.on_press(pedal_index(value))
                return
            if cc == CC_PEDAL_UP:
                self.on_release(pedal_index(value))
                return
        self.hardware.send_raw(message)

    def on_press(self, slot: int) -> None:
        log.debug("Pedal down: %s", PEDAL_NAMES.get(slot, slot))
        if slot in LOOP_PEDALS:
            self._note(True, self.base_note + self.mode.offset + slot)
        elif slot == RECORD:
            offset = self.mode.toggle()
            if offset:
                self.leds.role_on(LedRole.RECORD)
            else:
                self.leds.role_off(LedRole.RECORD)
            log.info("Pedal mode → %s (offset %d)",
                     "shifted" if offset else "normal", offset)
            self.loops.update_loops()
        elif slot == UNDO:
            self.leds.role_on(LedRole.UNDO)
            self._note(True, self.base_note + slot)
        else:
            self._note(True, self.base_note + slot)

    def on_release(self, slot: int) -> None:
        log.debug("Pedal up: %s", PEDAL_NAMES.get(slot, slot))
        if slot in LOOP_PEDALS:
            self._note(False, self.base_note + self.mode.offset + slot)
        elif slot == RECORD:
            return  # mode already toggled on press
        elif slot == UNDO:
            self.leds.role_off(LedRole.UNDO)
            self._note(False, self.base_note + slot)
            self.loops.update_loops()
        else:
            self._note(False, self.base_note + slot)

    def _note(self, on: bool, note: int) -> None:
        if not 0 <= note <= 127:
            log.warning("Pedal note %d out of MIDI range, dropped", note)
            return
        if on:
            self.hardware.send_note_on(note, NOTE_VELOCITY)
        else:
            self.hardware.send_note_off(note)
