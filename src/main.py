#!/usr/bin/env python3
"""loop4r — foot controller bridge for an OSC-controlled looper.

Runs an asyncio event loop that:
  1. Ticks every 200 ms to (re)connect OSC and MIDI and track the
     looper's heartbeat
  2. Routes FCB1010 pedal events to looper notes and pedal modes
  3. Mirrors looper loop states onto the controller LEDs and display

The tick, the rtmidi callback thread and the OSC server thread only post
events; a single dispatch task applies them in arrival order.
"""

import argparse
import asyncio
import contextlib
import signal
import sys
import os
import logging

# Add src/ to path so imports work when running directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import VERSION, load_config
from core.errors import DeviceError, ProtocolError
from core.logging_config import setup_logging
from core.event_bus import EventBus
from fcb.hardware import FootControllerHardware, list_ports
from fcb.led_mirror import LedMirror
from fcb.leds import LedPanel
from fcb.pedals import PedalEventRouter, PedalMode
from looper.osc_client import SELECTED_LOOP_PROPERTY, LooperOSCClient
from looper.osc_server import GLOBAL_LOOP_INDEX, LooperOSCServer
from looper.session import SessionManager
from looper.state import MODAL_POLICIES, LoopStateMachine, clear_on_exit

log = logging.getLogger("loop4r.main")


class Loop4rDaemon:
    """Main application daemon."""

    def __init__(self, config: dict, panic: bool = False):
        self.config = config
        self.event_bus = EventBus()
        self._running = False
        self._panic = panic
        self._tick_interval = config.get("session", {}).get("tick_interval_ms", 200) / 1000.0

        midi_cfg = config.get("midi", {})
        osc_cfg = config.get("osc", {})

        # Controller state
        self.mode = PedalMode()
        self.leds = LedPanel(self.event_bus)
        policy_name = config.get("looper", {}).get("modal_indicator_policy", "exit")
        policy = MODAL_POLICIES.get(policy_name)
        if policy is None:
            log.warning("Unknown modal_indicator_policy '%s', using 'exit'", policy_name)
            policy = clear_on_exit
        self.loops = LoopStateMachine(self.leds, self.mode, modal_policy=policy)

        # MIDI
        self.hardware = FootControllerHardware(self.event_bus, config)
        self.router = PedalEventRouter(
            self.hardware, self.leds, self.loops, self.mode,
            base_note=midi_cfg.get("base_note", 64),
        )
        self.mirror = LedMirror(self.leds)

        # OSC communication
        self.osc_client = LooperOSCClient(
            ip=osc_cfg.get("engine_host", "127.0.0.1"),
            port=osc_cfg.get("send_port", 9951),
        )
        self.osc_server = LooperOSCServer(
            port=osc_cfg.get("receive_port", 9000),
            event_bus=self.event_bus,
            host=osc_cfg.get("listen_host", "0.0.0.0"),
        )
        self.session = SessionManager(
            self.osc_client, self.osc_server, self.loops,
            version=VERSION, led_count=len(self.leds),
            led_send_port=osc_cfg.get("led_send_port") or None,
        )

        self._setup_event_handlers()

    def _setup_event_handlers(self) -> None:
        """Wire bus events to the components that own the state."""
        self.event_bus.subscribe("tick", self._on_tick)
        self.event_bus.subscribe("midi_in", self._on_midi_in)

        # Looper engine
        self.event_bus.subscribe("osc_pingack", self._on_pingack)
        self.event_bus.subscribe("osc_heartbeat", self._on_heartbeat)
        self.event_bus.subscribe("osc_ctrl", self._on_ctrl)

        # Discovery and LED display clients
        self.event_bus.subscribe("osc_discovery", self._on_discovery)
        self.event_bus.subscribe("osc_led_snapshot", self._on_led_snapshot)
        self.event_bus.subscribe("osc_display_snapshot", self._on_display_snapshot)
        self.event_bus.subscribe("osc_mirror_register", self._on_mirror_register)
        self.event_bus.subscribe("osc_mirror_unregister", self._on_mirror_unregister)

        # LED surface → outputs
        self.event_bus.subscribe("led_changed", self.hardware.on_led_changed)
        self.event_bus.subscribe("led_changed", self.mirror.on_led_changed)
        self.event_bus.subscribe("display_changed", self.hardware.on_display_changed)
        self.event_bus.subscribe("display_changed", self.mirror.on_display_changed)

    # --- Event handlers ---

    def _on_tick(self, data=None) -> None:
        self.session.tick()
        self.hardware.poll()

    def _on_midi_in(self, data: dict) -> None:
        self.router.handle_message(data["message"])

    def _on_pingack(self, data: dict) -> None:
        self.session.on_pingack(**data)

    def _on_heartbeat(self, data: dict) -> None:
        self.session.on_heartbeat(**data)

    def _on_ctrl(self, data: dict) -> None:
        self.session.note_engine_activity()
        index = data["loop_index"]
        if index == GLOBAL_LOOP_INDEX:
            if data["prop"] == SELECTED_LOOP_PROPERTY:
                self.leds.show_selected_loop(int(data["value"]))
            return
        if index < 0:
            return
        try:
            self.loops.apply_ctrl(index, data["prop"], data["value"])
        except ProtocolError as e:
            log.warning("Dropped /ctrl: %s", e)

    def _on_discovery(self, data: dict) -> None:
        self.session.answer_discovery(**data)

    def _on_led_snapshot(self, data: dict) -> None:
        self.mirror.send_led_snapshot(data["host"], data["port"], data["address"])

    def _on_display_snapshot(self, data: dict) -> None:
        self.mirror.send_display_snapshot(data["host"], data["port"])

    def _on_mirror_register(self, data: dict) -> None:
        self.mirror.register(data["host"], data["port"])

    def _on_mirror_unregister(self, data: dict) -> None:
        self.mirror.unregister()

    # --- Main loop ---

    def start_devices(self) -> None:
        """Open MIDI ports; anything missing is retried by the tick."""
        try:
            self.hardware.open_virtual_output()
        except DeviceError as e:
            log.error("%s", e)
        if self.hardware.input_name:
            try:
                self.hardware.connect_input()
            except DeviceError as e:
                log.warning("%s, waiting.", e)
        else:
            log.warning("No MIDI input configured (midi.input_name)")
        if self.hardware.controller_output_name:
            try:
                self.hardware.open_controller_output()
            except DeviceError as e:
                log.warning("%s, waiting.", e)
        if self._panic:
            self.hardware.panic()
        if self.session.session.led_send_port:
            self.mirror.register("127.0.0.1", self.session.session.led_send_port)

    async def run(self) -> None:
        """Main event loop."""
        self.event_bus.attach(asyncio.get_running_loop())
        self.start_devices()
        self._running = True

        dispatcher = asyncio.create_task(self.event_bus.dispatch_forever())
        log.info("Ready! Looper at %s:%d, listening on :%d",
                 self.osc_client.ip, self.osc_client.port, self.osc_server.port)

        try:
            while self._running:
                self.event_bus.post("tick")
                await asyncio.sleep(self._tick_interval)
        except asyncio.CancelledError:
            log.info("Tick loop cancelled")
        finally:
            dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await dispatcher
            self.shutdown()

    def shutdown(self) -> None:
        """Clean shutdown."""
        self._running = False
        log.info("Shutting down...")
        self.session.shutdown()
        self.hardware.disconnect()
        log.info("Shutdown complete")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="loop4r",
        description="FCB1010 foot controller bridge for SooperLooper",
    )
    parser.add_argument("--config", help="YAML config file (default: config/default.yaml)")
    parser.add_argument("--list", action="store_true", help="list MIDI ports and exit")
    parser.add_argument("--panic", action="store_true",
                        help="send all-notes-off on the virtual output at startup")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ... (default: $LOG_LEVEL or INFO)")
    parser.add_argument("--version", action="version", version=f"loop4r {VERSION}")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    setup_logging(args.log_level)

    if args.list:
        inputs, outputs = list_ports()
        print("MIDI Input devices:")
        for name in inputs:
            print(name)
        print("MIDI Output devices:")
        for name in outputs:
            print(name)
        return

    log.info("=== loop4r %s ===", VERSION)
    config = load_config(args.config)
    daemon = Loop4rDaemon(config, panic=args.panic)

    loop = asyncio.new_event_loop()

    def signal_handler():
        log.info("Signal received, stopping...")
        daemon._running = False

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        loop.run_until_complete(daemon.run())
    finally:
        loop.close()


if __name__ == "__main__":
    main()
