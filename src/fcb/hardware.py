"""Foot controller MIDI connection and event routing.

Wraps python-rtmidi: the controller's input port (pedal events are posted
to the event bus from rtmidi's callback thread), an optional output port
back to the controller for LEDs and the two-digit display, and the virtual
output port the looper reads pedal notes from.
"""

import logging

import rtmidi

from core.errors import DeviceError
from core.event_bus import EventBus
from fcb.leds import display_digits
from fcb.pedals import led_number

log = logging.getLogger("loop4r.fcb.hardware")

CC_LED_ON = 106
CC_LED_OFF = 107
CC_DISPLAY_TENS = 113
CC_DISPLAY_ONES = 114

_PANIC_CCS = (64, 120, 123)  # sustain off, all sound off, all notes off

_RTMIDI_ERRORS = (rtmidi.RtMidiError, NotImplementedError)


def find_port(ports: list[str], name: str) -> int | None:
    """Index of the port called ``name``, else the first whose name contains it
    (case-insensitive)."""
    if not name:
        return None
    if name in ports:
        return ports.index(name)
    needle = name.lower()
    for i, port in enumerate(ports):
        if needle in port.lower():
            return i
    return None


def list_ports() -> tuple[list[str], list[str]]:
    """Available (input, output) MIDI port names."""
    midi_in = rtmidi.MidiIn()
    midi_out = rtmidi.MidiOut()
    try:
        return midi_in.get_ports(), midi_out.get_ports()
    finally:
        midi_in.delete()
        midi_out.delete()


class FootControllerHardware:
    """Manages the foot controller's MIDI ports and the virtual output."""

    def __init__(self, event_bus: EventBus, config: dict = None):
        self.event_bus = event_bus
        self.config = config or {}
        midi_cfg = self.config.get("midi", {})
        self.input_name = midi_cfg.get("input_name", "")
        self.controller_output_name = midi_cfg.get("controller_output_name", "")
        self.virtual_output_name = midi_cfg.get("virtual_output_name", "loop4r_control_out")
        self.channel = midi_cfg.get("channel", 1)

        self._midi_in: rtmidi.MidiIn | None = None
        self._input_port: str | None = None
        self._controller_out: rtmidi.MidiOut | None = None
        self._virtual_out: rtmidi.MidiOut | None = None
        self._missing_output_warned = False

    # --- Connection ---

    def connect_input(self) -> str:
        """Open the controller input port. Raises DeviceError if it is absent."""
        if self._midi_in is None:
            self._midi_in = rtmidi.MidiIn()
        ports = self._midi_in.get_ports()
        index = find_port(ports, self.input_name)
        if index is None:
            raise DeviceError(f"MIDI input port '{self.input_name}' not found")
        try:
            self._midi_in.open_port(index)
        except _RTMIDI_ERRORS as e:
            raise DeviceError(f"Could not open MIDI input '{ports[index]}': {e}") from e
        self._midi_in.set_callback(self._on_midi)
        self._input_port = ports[index]
        log.info("Connected to MIDI input port '%s'", self._input_port)
        return self._input_port

    def open_virtual_output(self) -> None:
        """Create the virtual output port the looper listens on."""
        out = rtmidi.MidiOut()
        try:
            out.open_virtual_port(self.virtual_output_name)
        except _RTMIDI_ERRORS as e:
            out.delete()
            raise DeviceError(
                f"Couldn't create virtual MIDI output port '{self.virtual_output_name}': {e}"
            ) from e
        self._virtual_out = out
        log.info("Virtual MIDI output '%s' ready", self.virtual_output_name)

    def open_controller_output(self) -> None:
        """Open the output port that drives the controller's LEDs and display."""
        out = rtmidi.MidiOut()
        ports = out.get_ports()
        index = find_port(ports, self.controller_output_name)
        if index is None:
            out.delete()
            raise DeviceError(f"MIDI output port '{self.controller_output_name}' not found")
        try:
            out.open_port(index)
        except _RTMIDI_ERRORS as e:
            out.delete()
            raise DeviceError(f"Could not open MIDI output '{ports[index]}': {e}") from e
        self._controller_out = out
        log.info("Connected to controller output port '%s'", ports[index])

    def poll(self) -> None:
        """Detect unplugged devices and retry missing ports; called every tick."""
        if self._input_port is not None:
            if self._input_port not in self._midi_in.get_ports():
                log.warning("MIDI input port '%s' got disconnected, waiting.", self._input_port)
                self._midi_in.cancel_callback()
                self._midi_in.close_port()
                self._input_port = None
        elif self.input_name:
            try:
                self.connect_input()
            except DeviceError as e:
                log.debug("%s", e)

        if self._virtual_out is None and self.virtual_output_name:
            try:
                self.open_virtual_output()
            except DeviceError as e:
                log.debug("%s", e)

        if self._controller_out is None and self.controller_output_name:
            try:
                self.open_controller_output()
            except DeviceError as e:
                log.debug("%s", e)

    def disconnect(self) -> None:
        """Release every MIDI port."""
        if self._midi_in is not None:
            self._midi_in.cancel_callback()
            self._midi_in.close_port()
            self._midi_in.delete()
            self._midi_in = None
            self._input_port = None
        for out in (self._controller_out, self._virtual_out):
            if out is not None:
                out.close_port()
                out.delete()
        self._controller_out = None
        self._virtual_out = None
        log.info("MIDI ports closed")

    @property
    def is_connected(self) -> bool:
        return self._input_port is not None

    # --- Input ---

    def _on_midi(self, event, data=None) -> None:
        # rtmidi thread: hand off to the dispatch task, never touch state here
        message, _delta = event
        log.debug("MIDI IN: %s", message)
        self.event_bus.post("midi_in", {"message": list(message)})

    # --- Output to the looper (virtual port) ---

    def send_raw(self, message: list[int]) -> None:
        if self._virtual_out is None:
            if not self._missing_output_warned:
                log.warning("No virtual MIDI output port open; dropping outbound messages")
                self._missing_output_warned = True
            return
        self._virtual_out.send_message(message)

    def send_note_on(self, note: int, velocity: int = 127) -> None:
        log.debug("Note on %d vel %d", note, velocity)
        self.send_raw([0x90 | (self.channel - 1), note, velocity])

    def send_note_off(self, note: int) -> None:
        log.debug("Note off %d", note)
        self.send_raw([0x80 | (self.channel - 1), note, 0])

    def panic(self) -> None:
        """Sustain off, all sound off, all notes off and every note off on all channels."""
        for ch in range(16):
            for cc in _PANIC_CCS:
                self.send_raw([0xB0 | ch, cc, 0])
            for note in range(128):
                self.send_raw([0x80 | ch, note, 0])
        log.info("Panic sent")

    # --- Output to the controller (LEDs / display) ---

    def send_cc(self, cc: int, value: int) -> None:
        if self._controller_out is None:
            log.debug("cc %d %d (no controller output)", cc, value)
            return
        self._controller_out.send_message([0xB0 | (self.channel - 1), cc, value & 0x7F])

    def on_led_changed(self, data: dict) -> None:
        led = data["led"]
        self.send_cc(CC_LED_ON if led.on else CC_LED_OFF, led_number(led.index))

    def on_display_changed(self, data: dict) -> None:
        tens, ones = display_digits(data["selected_loop"])
        self.send_cc(CC_DISPLAY_TENS, tens)
        self.send_cc(CC_DISPLAY_ONES, ones)
