import os
import re
import logging
from pathlib import Path

import yaml
from dotenv import load_dotenv

log = logging.getLogger("loop4r.config")

VERSION = "0.1.0"

# Project root is one level up from src/
PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"

DEFAULT_VIRTUAL_OUT_NAME = "loop4r_control_out"
DEFAULT_BASE_NOTE = 64

# Octave number of middle C (60) used when parsing note names
OCTAVE_MIDDLE_C = 3

_NOTE_RE = re.compile(r"^([A-H])([#B]?)(-?\d+)$")
_NOTE_OFFSETS = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11, "H": 11}


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def parse_number(value) -> int:
    """Parse an int, a decimal string, or a string with an H (hex) / M (decimal) suffix."""
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text[-1:] in ("H", "h"):
        return int(text[:-1], 16)
    if text[-1:] in ("M", "m"):
        return int(text[:-1])
    return int(text)


def note_number(value, octave_middle_c: int = OCTAVE_MIDDLE_C) -> int:
    """Parse a MIDI note given as a number or a name like ``E4``, ``Bb2``, ``F#1``.

    The result is clamped to 0-127.
    """
    if not isinstance(value, int):
        m = _NOTE_RE.match(str(value).strip().upper())
        if m:
            letter, accidental, octave = m.groups()
            note = _NOTE_OFFSETS[letter]
            if accidental == "B":
                note -= 1
            elif accidental == "#":
                note += 1
            note += (int(octave) + 5 - octave_middle_c) * 12
            return _clamp(note, 0, 127)
    return _clamp(parse_number(value), 0, 127)


def load_config(config_path: str = None) -> dict:
    """Load configuration from YAML file with .env overrides."""
    load_dotenv(PROJECT_ROOT / ".env")

    yaml_path = Path(config_path) if config_path else CONFIG_DIR / "default.yaml"
    if not yaml_path.exists():
        log.warning("Config file not found: %s — using defaults", yaml_path)
        config = {}
    else:
        with open(yaml_path) as f:
            config = yaml.safe_load(f) or {}

    midi = config.setdefault("midi", {})
    midi["input_name"] = os.environ.get("MIDI_INPUT", midi.get("input_name") or "")
    midi["controller_output_name"] = midi.get("controller_output_name") or ""
    midi["virtual_output_name"] = midi.get("virtual_output_name") or DEFAULT_VIRTUAL_OUT_NAME
    midi["channel"] = _clamp(
        parse_number(os.environ.get("MIDI_CHANNEL", midi.get("channel", 1))), 1, 16)
    midi["base_note"] = note_number(
        os.environ.get("BASE_NOTE", midi.get("base_note", DEFAULT_BASE_NOTE)))

    osc = config.setdefault("osc", {})
    osc["engine_host"] = os.environ.get("LOOPER_OSC_HOST", osc.get("engine_host", "127.0.0.1"))
    osc["send_port"] = int(os.environ.get("LOOPER_OSC_PORT", osc.get("send_port", 9951)))
    osc["listen_host"] = osc.get("listen_host", "0.0.0.0")
    osc["receive_port"] = int(os.environ.get("LISTEN_PORT", osc.get("receive_port", 9000)))
    osc["led_send_port"] = int(os.environ.get("LED_SEND_PORT", osc.get("led_send_port", 0)))

    session = config.setdefault("session", {})
    session["tick_interval_ms"] = int(session.get("tick_interval_ms", 200))

    looper = config.setdefault("looper", {})
    looper["modal_indicator_policy"] = looper.get("modal_indicator_policy", "exit")

    log.info(
        "Config loaded — OSC to %s:%d, listen on :%d, MIDI in '%s', base note %d ch %d",
        osc["engine_host"],
        osc["send_port"],
        osc["receive_port"],
        midi["input_name"],
        midi["base_note"],
        midi["channel"],
    )
    return config
