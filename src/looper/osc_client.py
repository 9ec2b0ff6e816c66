"""Looper OSC client.

Sends session and subscription requests to the looper engine
(ping, per-loop auto-update registration, state fetches, global
property registration).
"""

import logging
from pythonosc.udp_client import SimpleUDPClient

from core.errors import EngineConnectionError

log = logging.getLogger("loop4r.looper.osc_client")

# How often the engine pushes subscribed loop properties, in ms
AUTO_UPDATE_INTERVAL_MS = 100

CTRL_ADDRESS = "/ctrl"
PINGACK_ADDRESS = "/pingack"
HEARTBEAT_ADDRESS = "/heartbeat"

SELECTED_LOOP_PROPERTY = "selected_loop_num"


class LooperOSCClient:
    """Sends OSC messages to the looper engine."""

    def __init__(self, ip: str = "127.0.0.1", port: int = 9951):
        self.ip = ip
        self.port = port
        self._client: SimpleUDPClient | None = None

    def connect(self) -> None:
        try:
            self._client = SimpleUDPClient(self.ip, self.port)
        except OSError as e:
            self._client = None
            raise EngineConnectionError(
                f"could not connect to UDP {self.ip}:{self.port}: {e}") from e
        log.info("OSC client ready → %s:%d", self.ip, self.port)

    def disconnect(self) -> None:
        self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _send(self, address: str, *args) -> None:
        if self._client is None:
            log.warning("OSC client not connected, ignoring: %s", address)
            return
        value = list(args) if args else []
        log.debug("OSC SEND: %s %s", address, value)
        try:
            self._client.send_message(address, value)
        except OSError as e:
            log.warning("OSC send %s failed: %s", address, e)

    # --- Session ---

    def ping(self, reply_url: str, reply_address: str = PINGACK_ADDRESS) -> None:
        """Ask the engine to answer on ``reply_address`` (pingack or heartbeat)."""
        self._send("/ping", reply_url, reply_address)

    # --- Per-loop state subscription ---

    def register_auto_update(self, loop: int, reply_url: str, prop: str = "state") -> None:
        self._send(f"/sl/{loop}/register_auto_update",
                   prop, AUTO_UPDATE_INTERVAL_MS, reply_url, CTRL_ADDRESS)

    def unregister_auto_update(self, loop: int, reply_url: str, prop: str = "state") -> None:
        self._send(f"/sl/{loop}/unregister_auto_update",
                   prop, AUTO_UPDATE_INTERVAL_MS, reply_url, CTRL_ADDRESS)

    def get_state(self, loop: int, reply_url: str) -> None:
        """Request a one-off ``/ctrl`` with the loop's current state."""
        self._send(f"/sl/{loop}/get", "state", reply_url, CTRL_ADDRESS)

    # --- Global properties ---

    def register_update(self, reply_url: str, prop: str = SELECTED_LOOP_PROPERTY) -> None:
        self._send("/register_update", prop, reply_url, CTRL_ADDRESS)

    def unregister_update(self, reply_url: str, prop: str = SELECTED_LOOP_PROPERTY) -> None:
        self._send("/unregister_update", prop, reply_url, CTRL_ADDRESS)
