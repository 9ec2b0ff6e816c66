"""Tests for configuration loading and value parsing."""

import pytest

import config
from config import load_config, note_number, parse_number


class TestNumbers:

    @pytest.mark.parametrize("value, expected", [
        (64, 64), ("64", 64), ("40H", 64), ("64M", 64), (" 7 ", 7),
    ])
    def test_parse_number(self, value, expected):
        assert parse_number(value) == expected

    @pytest.mark.parametrize("name, expected", [
        ("C3", 60), ("E3", 64), ("c#3", 61), ("Bb2", 58), ("H2", 59), ("C-2", 0),
    ])
    def test_note_names(self, name, expected):
        assert note_number(name) == expected

    def test_note_number_clamped(self):
        assert note_number(200) == 127
        assert note_number("G9") == 127


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for var in ("MIDI_INPUT", "MIDI_CHANNEL", "BASE_NOTE", "LOOPER_OSC_HOST",
                "LOOPER_OSC_PORT", "LISTEN_PORT", "LED_SEND_PORT"):
        monkeypatch.delenv(var, raising=False)
    # keep a developer's .env out of the tests
    monkeypatch.setattr(config, "PROJECT_ROOT", tmp_path)
    return monkeypatch


class TestLoadConfig:

    def test_defaults(self, clean_env):
        cfg = load_config()
        assert cfg["midi"]["input_name"] == "FCB1010"
        assert cfg["midi"]["base_note"] == 64
        assert cfg["midi"]["channel"] == 1
        assert cfg["osc"]["send_port"] == 9951
        assert cfg["osc"]["receive_port"] == 9000
        assert cfg["osc"]["led_send_port"] == 0
        assert cfg["session"]["tick_interval_ms"] == 200
        assert cfg["looper"]["modal_indicator_policy"] == "exit"

    def test_missing_file_uses_defaults(self, clean_env, tmp_path):
        cfg = load_config(str(tmp_path / "nope.yaml"))
        assert cfg["midi"]["virtual_output_name"] == "loop4r_control_out"
        assert cfg["osc"]["engine_host"] == "127.0.0.1"

    def test_yaml_file(self, clean_env, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("midi:\n  base_note: C4\n  channel: 3\nosc:\n  receive_port: 9100\n")
        cfg = load_config(str(path))
        assert cfg["midi"]["base_note"] == 72
        assert cfg["midi"]["channel"] == 3
        assert cfg["osc"]["receive_port"] == 9100

    def test_env_overrides(self, clean_env):
        clean_env.setenv("MIDI_INPUT", "UM-ONE")
        clean_env.setenv("MIDI_CHANNEL", "20")
        clean_env.setenv("BASE_NOTE", "24H")
        clean_env.setenv("LOOPER_OSC_HOST", "10.0.0.2")
        clean_env.setenv("LOOPER_OSC_PORT", "9952")
        clean_env.setenv("LISTEN_PORT", "9001")
        clean_env.setenv("LED_SEND_PORT", "9500")

        cfg = load_config()
        assert cfg["midi"]["input_name"] == "UM-ONE"
        assert cfg["midi"]["channel"] == 16
        assert cfg["midi"]["base_note"] == 36
        assert cfg["osc"]["engine_host"] == "10.0.0.2"
        assert cfg["osc"]["send_port"] == 9952
        assert cfg["osc"]["receive_port"] == 9001
        assert cfg["osc"]["led_send_port"] == 9500
