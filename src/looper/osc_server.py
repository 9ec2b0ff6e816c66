"""Looper OSC feedback server.

Listens for OSC messages from the looper engine and from remote LED
displays. Runs in a background thread and never touches session state:
each handler validates the message and posts a typed event to the event
bus, where the dispatch task applies it. Malformed messages are logged and
dropped.

NOTE: python-osc's Dispatcher.map() without extra args calls
callback(address, *osc_values).
"""

import logging
import math
import threading

from pythonosc.dispatcher import Dispatcher
from pythonosc.osc_server import BlockingOSCUDPServer

from core.errors import EngineConnectionError, ProtocolError
from core.event_bus import EventBus

log = logging.getLogger("loop4r.looper.osc_server")

# Loop index used by the engine for global (not per-loop) properties
GLOBAL_LOOP_INDEX = -2

CONTROL_PREFIX = "/loop4r"

_ENGINE_INFO = (str, str, int, int)  # hostUrl, version, loopCount, engineId
_ENDPOINT = (str, int)               # host, port


def parse_args(address: str, args: tuple, types: tuple, optional: int = 0) -> tuple:
    """Check OSC argument count and types.

    The last ``optional`` entries of ``types`` may be omitted. Raises
    ProtocolError on a mismatch.
    """
    if not len(types) - optional <= len(args) <= len(types):
        raise ProtocolError(
            f"{address}: expected {len(types)} argument(s), got {len(args)}")
    for i, (value, expected) in enumerate(zip(args, types)):
        # bool is an int subclass but arrives for OSC T/F, never for int32
        if isinstance(value, bool) or not isinstance(value, expected):
            raise ProtocolError(
                f"{address}: argument {i} should be {expected.__name__}, "
                f"got {type(value).__name__} {value!r}")
    return args


class LooperOSCServer:
    """Listens for OSC messages from the looper and LED display clients."""

    def __init__(self, port: int = 9000, event_bus: EventBus = None,
                 host: str = "0.0.0.0"):
        self.host = host
        self.port = port
        self.event_bus = event_bus
        self._server: BlockingOSCUDPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Bind the receive port and serve in a background thread."""
        dispatcher = Dispatcher()
        self._setup_handlers(dispatcher)

        try:
            self._server = BlockingOSCUDPServer((self.host, self.port), dispatcher)
        except OSError as e:
            self._server = None
            raise EngineConnectionError(f"could not bind UDP port {self.port}: {e}") from e

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            kwargs={"poll_interval": 0.1},
            name="osc-server",
            daemon=True,
        )
        self._thread.start()
        log.info("OSC server listening on :%d", self.port)

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
            if self._thread is not None:
                self._thread.join(timeout=1.0)
                self._thread = None
            log.info("OSC server on :%d stopped", self.port)

    @property
    def is_running(self) -> bool:
        return self._server is not None

    def _setup_handlers(self, d: Dispatcher) -> None:
        """Register OSC message handlers."""

        # --- Engine session ---
        d.map("/pingack", self._on_pingack)
        d.map("/heartbeat", self._on_heartbeat)
        d.map("/ctrl", self._on_ctrl)

        # --- Discovery and LED display clients ---
        d.map(f"{CONTROL_PREFIX}/ping", self._on_discovery)
        d.map(f"{CONTROL_PREFIX}/leds", self._on_led_snapshot)
        d.map(f"{CONTROL_PREFIX}/display", self._on_display_snapshot)
        d.map(f"{CONTROL_PREFIX}/register_auto_update", self._on_mirror_register)
        d.map(f"{CONTROL_PREFIX}/unregister_auto_update", self._on_mirror_unregister)

        d.set_default_handler(self._on_unknown)

    def _post(self, event_type: str, data: dict) -> None:
        if self.event_bus is not None:
            self.event_bus.post(event_type, data)

    # --- Engine session handlers ---

    def _on_pingack(self, address: str, *args):
        log.debug("OSC RECV: %s %s", address, args)
        try:
            host_url, version, loop_count, engine_id = parse_args(address, args, _ENGINE_INFO)
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_pingack", {
            "host_url": host_url, "version": version,
            "loop_count": loop_count, "engine_id": engine_id,
        })

    def _on_heartbeat(self, address: str, *args):
        try:
            host_url, version, loop_count, engine_id = parse_args(address, args, _ENGINE_INFO)
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_heartbeat", {
            "host_url": host_url, "version": version,
            "loop_count": loop_count, "engine_id": engine_id,
        })

    def _on_ctrl(self, address: str, *args):
        log.debug("OSC RECV: %s %s", address, args)
        try:
            loop_index, prop, value = parse_args(address, args, (int, str, float))
            if not math.isfinite(value):
                raise ProtocolError(f"{address}: non-finite value {value!r} for '{prop}'")
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_ctrl", {"loop_index": loop_index, "prop": prop, "value": value})

    # --- Discovery / LED display handlers ---

    def _on_discovery(self, address: str, *args):
        try:
            host, port, reply_address = parse_args(address, args, (str, int, str))
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_discovery", {
            "reply_host": host, "reply_port": port, "reply_address": reply_address,
        })

    def _on_led_snapshot(self, address: str, *args):
        log.debug("OSC RECV: %s %s", address, args)
        try:
            host, port, reply_address = parse_args(address, args, (str, int, str))
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_led_snapshot", {"host": host, "port": port, "address": reply_address})

    def _on_display_snapshot(self, address: str, *args):
        log.debug("OSC RECV: %s %s", address, args)
        try:
            host, port = parse_args(address, args, _ENDPOINT + (str,), optional=1)[:2]
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_display_snapshot", {"host": host, "port": port})

    def _on_mirror_register(self, address: str, *args):
        log.debug("OSC RECV: %s %s", address, args)
        try:
            host, port = parse_args(address, args, _ENDPOINT + (str,), optional=1)[:2]
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_mirror_register", {"host": host, "port": port})

    def _on_mirror_unregister(self, address: str, *args):
        log.debug("OSC RECV: %s %s", address, args)
        try:
            host, port = parse_args(address, args, _ENDPOINT + (str,), optional=1)[:2]
        except ProtocolError as e:
            log.warning("Dropped malformed message: %s", e)
            return
        self._post("osc_mirror_unregister", {"host": host, "port": port})

    def _on_unknown(self, address: str, *args):
        log.debug("Unhandled OSC: %s %s", address, args)
