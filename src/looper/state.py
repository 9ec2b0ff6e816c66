"""Looper loop state tracking.

Holds the engine's per-loop state as reported over OSC and renders it onto
the foot controller LEDs. Loop state is never inferred locally: it is only
set from ``/ctrl`` state updates, or to OFF when loops are created.
"""

from __future__ import annotations

import logging
import math
from enum import IntEnum
from typing import Callable, NamedTuple, Sequence

from core.errors import ProtocolError
from fcb.leds import BlinkMode, LedPanel, LedRole, loop_led
from fcb.pedals import PedalMode

log = logging.getLogger("loop4r.looper.state")


class LoopState(IntEnum):
    """Loop states as numbered by the engine on the wire."""

    UNKNOWN = -1
    OFF = 0
    WAIT_START = 1
    RECORDING = 2
    WAIT_STOP = 3
    PLAYING = 4
    OVERDUBBING = 5
    MULTIPLYING = 6
    INSERTING = 7
    REPLACING = 8
    DELAY = 9
    MUTED = 10
    SCRATCHING = 11
    ONE_SHOT = 12
    SUBSTITUTE = 13
    PAUSED = 14

    @classmethod
    def from_wire(cls, value: float) -> LoopState | int:
        """Convert a ``/ctrl`` state value. Unknown codes are kept as raw ints;
        NaN and infinities raise ProtocolError."""
        if not math.isfinite(value):
            raise ProtocolError(f"non-finite loop state {value!r}")
        code = int(value)
        try:
            return cls(code)
        except ValueError:
            return code


# Transient operations that share one indicator LED across all loops
MODAL_INDICATORS = {
    LoopState.INSERTING: LedRole.INSERT,
    LoopState.REPLACING: LedRole.REPLACE,
    LoopState.SUBSTITUTE: LedRole.SUBSTITUTE,
    LoopState.MULTIPLYING: LedRole.MULTIPLY,
}

_FAST_BLINK = {LoopState.WAIT_START, LoopState.WAIT_STOP} | set(MODAL_INDICATORS)
_SOLID = {LoopState.RECORDING, LoopState.OVERDUBBING, LoopState.DELAY,
          LoopState.SCRATCHING, LoopState.ONE_SHOT}
_BLINK = {LoopState.MUTED, LoopState.PAUSED}


class Rendering(NamedTuple):
    blink: BlinkMode
    modal: LedRole | None


def render_state(state: LoopState | int, mode_offset: int) -> Rendering:
    """Map a loop state to its LED blink mode and shared modal indicator.

    ``mode_offset`` is the pedal mode: PLAYING loops show solid in the
    normal layer and blink while the shifted layer is active.
    """
    if state == LoopState.PLAYING:
        return Rendering(BlinkMode.SOLID if mode_offset == 0 else BlinkMode.BLINK, None)
    if state in _FAST_BLINK:
        return Rendering(BlinkMode.FAST_BLINK, MODAL_INDICATORS.get(state))
    if state in _SOLID:
        return Rendering(BlinkMode.SOLID, None)
    if state in _BLINK:
        return Rendering(BlinkMode.BLINK, None)
    return Rendering(BlinkMode.DARK, None)


class Loop:
    """State for a single engine loop."""

    __slots__ = ("index", "state", "led")

    def __init__(self, index: int):
        self.index = index
        self.state: LoopState | int = LoopState.OFF
        self.led = loop_led(index)

    def __repr__(self) -> str:
        name = self.state.name if isinstance(self.state, LoopState) else self.state
        return f"Loop({self.index}, {name})"


# --- Modal indicator policies ---
# A policy decides which shared indicators to switch off when a loop leaves
# ``previous``. It runs after the loop's new state has been rendered but
# before it is stored, so ``loops`` still shows the loop in ``previous``.

ModalPolicy = Callable[[Loop, object, Sequence[Loop]], list]


def clear_on_exit(loop: Loop, previous, loops: Sequence[Loop]) -> list[LedRole]:
    """Leaving a modal state always clears its indicator, even if another
    loop is still in that state."""
    role = MODAL_INDICATORS.get(previous)
    return [role] if role is not None else []


def clear_when_unused(loop: Loop, previous, loops: Sequence[Loop]) -> list[LedRole]:
    """Clear an indicator only when no other loop remains in that state."""
    role = MODAL_INDICATORS.get(previous)
    if role is None:
        return []
    if any(other is not loop and other.state == previous for other in loops):
        return []
    return [role]


MODAL_POLICIES = {
    "exit": clear_on_exit,
    "refcount": clear_when_unused,
}


class LoopStateMachine:
    """Owns the loop collection and keeps loop LEDs in step with it."""

    def __init__(self, leds: LedPanel, mode: PedalMode,
                 modal_policy: ModalPolicy = clear_on_exit):
        self.leds = leds
        self.mode = mode
        self.modal_policy = modal_policy
        self.loops: list[Loop] = []

    def __len__(self) -> int:
        return len(self.loops)

    def __getitem__(self, index: int) -> Loop:
        return self.loops[index]

    # --- Collection management (driven by the session) ---

    def rebuild(self, count: int) -> list[Loop]:
        """Replace every loop with ``count`` fresh OFF loops."""
        old, self.loops = self.loops, []
        for loop in old:
            self._drop(loop)
        self.loops = [Loop(i) for i in range(count)]
        self.update_loops()
        log.info("Loops rebuilt: %d", count)
        return list(self.loops)

    def extend(self, count: int) -> list[Loop]:
        """Append OFF loops up to ``count``; existing loops keep their state."""
        added = [Loop(i) for i in range(len(self.loops), count)]
        self.loops.extend(added)
        if added:
            self.update_loops()
            log.info("Loops extended to %d", count)
        return added

    def truncate(self, count: int) -> list[Loop]:
        """Drop trailing loops so exactly ``count`` remain."""
        removed = self.loops[count:]
        self.loops = self.loops[:count]
        for loop in removed:
            self._drop(loop)
        if removed:
            log.info("Loops truncated to %d", count)
        return removed

    def _drop(self, loop: Loop) -> None:
        # self.loops already excludes the dropped loops
        for role in self.modal_policy(loop, loop.state, self.loops):
            self.leds.role_off(role)
        if loop.led is not None:
            self.leds.clear(loop.led)

    # --- State updates ---

    def set_state(self, index: int, new_state: LoopState | int) -> None:
        loop = self.loops[index]
        rendering = render_state(new_state, self.mode.offset)

        if loop.led is not None:
            self.leds.set_led(loop.led, rendering.blink != BlinkMode.DARK, rendering.blink)
        if rendering.modal is not None:
            self.leds.role_on(rendering.modal)

        if new_state != loop.state:
            for role in self.modal_policy(loop, loop.state, self.loops):
                self.leds.role_off(role)
            log.debug("Loop %d: %s → %s", index, _name(loop.state), _name(new_state))
        loop.state = new_state

    def update_loops(self) -> None:
        """Redraw every loop, e.g. after the pedal mode changed."""
        for loop in self.loops:
            self.set_state(loop.index, loop.state)

    def apply_ctrl(self, index: int, prop: str, value: float) -> None:
        """Apply a per-loop ``/ctrl`` update."""
        if not 0 <= index < len(self.loops):
            raise ProtocolError(f"/ctrl for unknown loop {index} ({len(self.loops)} loops)")
        if prop == "state":
            self.set_state(index, LoopState.from_wire(value))
        else:
            log.debug("Ignoring loop %d property '%s' = %s", index, prop, value)


def _name(state) -> str:
    return state.name if isinstance(state, LoopState) else str(state)
