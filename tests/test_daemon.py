"""End-to-end tests: OSC and MIDI events through the daemon's event wiring.

Transports are mocked; events are posted before the bus is attached to a
loop, so each post is delivered synchronously.
"""

import asyncio
from unittest.mock import Mock, patch

import pytest

from fcb.hardware import FootControllerHardware
from fcb.leds import LED_FOR_ROLE, BlinkMode, LedRole
from fcb.pedals import CC_PEDAL_DOWN, RECORD
from looper.session import HEARTBEAT_RESET
from looper.state import LoopState, clear_when_unused
from main import Loop4rDaemon, parse_args

INSERT_LED = LED_FOR_ROLE[LedRole.INSERT]
RECORD_LED = LED_FOR_ROLE[LedRole.RECORD]

CONFIG = {
    # empty port names keep rtmidi out of the tick
    "midi": {"input_name": "", "controller_output_name": "", "virtual_output_name": "",
             "channel": 1, "base_note": 64},
    "osc": {"engine_host": "127.0.0.1", "send_port": 9951, "receive_port": 9000,
            "led_send_port": 0},
    "session": {"tick_interval_ms": 10},
    "looper": {"modal_indicator_policy": "exit"},
}


@pytest.fixture
def daemon(osc_client, osc_server):
    d = Loop4rDaemon(CONFIG)
    d.session.client = osc_client
    d.session.server = osc_server
    d.router.hardware = Mock(spec=FootControllerHardware)
    return d


@pytest.fixture
def session_up(daemon, osc_client):
    """Scenario 1: connect, then the engine answers with four loops."""
    daemon.event_bus.post("tick")
    daemon.event_bus.post("osc_pingack", {
        "host_url": "osc.udp://eng/", "version": "1.0", "loop_count": 4, "engine_id": 7})
    return daemon


def ctrl(daemon, loop_index, prop, value):
    daemon.event_bus.post("osc_ctrl", {"loop_index": loop_index, "prop": prop, "value": value})


class TestScenarios:

    def test_pingack_builds_loops(self, session_up, osc_client):
        loops = session_up.loops
        assert len(loops) == 4
        assert all(loop.state == LoopState.OFF for loop in loops.loops)
        assert osc_client.register_auto_update.call_count == 4
        assert osc_client.register_update.call_count == 1

    def test_recording_loop_led_solid(self, session_up):
        leds = session_up.leds
        ctrl(session_up, 1, "state", float(LoopState.RECORDING))
        assert leds[1].on
        assert leds[1].blink == BlinkMode.SOLID
        assert not any(leds[LED_FOR_ROLE[r]].on for r in
                       (LedRole.INSERT, LedRole.REPLACE, LedRole.SUBSTITUTE, LedRole.MULTIPLY))

    def test_insert_then_off(self, session_up):
        leds = session_up.leds
        ctrl(session_up, 2, "state", float(LoopState.INSERTING))
        assert leds[INSERT_LED].on
        assert leds[2].blink == BlinkMode.FAST_BLINK

        ctrl(session_up, 2, "state", float(LoopState.OFF))
        assert not leds[INSERT_LED].on
        assert leds[2].blink == BlinkMode.DARK

    def test_record_pedal_shifts_mode(self, session_up):
        ctrl(session_up, 0, "state", float(LoopState.PLAYING))
        session_up.event_bus.post("midi_in", {"message": [0xB0, CC_PEDAL_DOWN, RECORD + 1]})

        assert session_up.mode.offset == 20
        assert session_up.leds[RECORD_LED].on
        assert session_up.leds[0].blink == BlinkMode.BLINK

    def test_loop_pedal_in_shifted_mode(self, session_up):
        session_up.mode.offset = 20
        session_up.event_bus.post("midi_in", {"message": [0xB0, CC_PEDAL_DOWN, 1]})
        session_up.router.hardware.send_note_on.assert_called_once_with(84, 127)

    def test_heartbeat_without_change(self, session_up, osc_client):
        session_up.event_bus.post("tick")
        session_up.event_bus.post("tick")
        osc_client.reset_mock()

        session_up.event_bus.post("osc_heartbeat", {
            "host_url": "eng", "version": "1.0", "loop_count": 4, "engine_id": 7})

        assert session_up.session.session.heartbeat == HEARTBEAT_RESET
        assert len(session_up.loops) == 4
        assert osc_client.method_calls == []


class TestCtrlRouting:

    def test_ctrl_resets_heartbeat(self, session_up):
        session_up.event_bus.post("tick")
        ctrl(session_up, 0, "state", 4.0)
        assert session_up.session.session.heartbeat == HEARTBEAT_RESET

    def test_selected_loop_shown_on_display(self, session_up):
        ctrl(session_up, -2, "selected_loop_num", 3.0)
        assert session_up.leds.selected_loop == 3

    def test_other_global_ctrl_ignored(self, session_up):
        ctrl(session_up, -1, "state", 2.0)
        ctrl(session_up, -2, "tempo", 120.0)
        assert session_up.leds.selected_loop == -1
        assert all(loop.state == LoopState.OFF for loop in session_up.loops.loops)

    def test_unknown_loop_logged(self, session_up, caplog):
        ctrl(session_up, 9, "state", 2.0)
        assert "Dropped /ctrl" in caplog.text


class TestLedClients:

    @patch("fcb.led_mirror.SimpleUDPClient")
    def test_mirror_follows_leds(self, udp_client, session_up):
        session_up.event_bus.post("osc_mirror_register", {"host": "viewer", "port": 9500})
        ctrl(session_up, 1, "state", float(LoopState.RECORDING))

        udp_client.return_value.send_message.assert_called_with("/led", [1, 1, 0, 1])

        session_up.event_bus.post("osc_mirror_unregister", {"host": "viewer", "port": 9500})
        assert not session_up.mirror.active

    @patch("fcb.led_mirror.SimpleUDPClient")
    def test_led_snapshot(self, udp_client, session_up):
        session_up.event_bus.post("osc_led_snapshot",
                                  {"host": "viewer", "port": 7000, "address": "/leds"})
        assert udp_client.return_value.send_message.call_count == 10

    @patch("looper.session.SimpleUDPClient")
    def test_discovery(self, udp_client, session_up):
        session_up.event_bus.post("osc_discovery",
                                  {"reply_host": "viewer", "reply_port": 7000, "reply_address": "/pong"})
        address, args = udp_client.return_value.send_message.call_args.args
        assert address == "/pong"
        assert args[:3] == ["osc.udp://localhost:9000", "0.1.0", 10]


class TestDaemon:

    def test_modal_policy_from_config(self):
        config = dict(CONFIG, looper={"modal_indicator_policy": "refcount"})
        assert Loop4rDaemon(config).loops.modal_policy is clear_when_unused

    def test_run_ticks_until_stopped(self, daemon, osc_client, osc_server):
        async def scenario():
            asyncio.get_running_loop().call_later(0.05, setattr, daemon, "_running", False)
            await daemon.run()

        with patch.object(daemon.hardware, "open_virtual_output"):
            asyncio.run(scenario())

        osc_client.ping.assert_any_call("osc.udp://localhost:9000/", "/pingack")
        osc_server.stop.assert_called()
        assert not daemon.session.connected

    def test_parse_args(self):
        args = parse_args(["--config", "my.yaml", "--panic", "--log-level", "debug"])
        assert args.config == "my.yaml"
        assert args.panic
        assert args.log_level == "debug"
        assert not args.list
