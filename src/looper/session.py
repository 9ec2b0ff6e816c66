"""Looper session management.

Keeps one logical session with the looper engine alive:

  DISCONNECTED → CONNECTING → CONNECTED → (heartbeat lost) → DISCONNECTED

The periodic tick binds whatever transport is missing and then sends a
``/ping``; the engine answers with ``/pingack`` carrying its loop count and
engine id, which (re)builds the loop collection and subscribes to every
loop's state. After that the engine sends unsolicited ``/heartbeat``s.
A local countdown, reset by every message from the engine, probes the
engine when it reaches zero and declares the session lost once it drops
below -5, after which the transports are torn down and rebuilt.
"""

import logging
import os
from enum import Enum

from pythonosc.udp_client import SimpleUDPClient

from core.errors import EngineConnectionError
from looper.osc_client import HEARTBEAT_ADDRESS, PINGACK_ADDRESS, LooperOSCClient
from looper.osc_server import LooperOSCServer
from looper.state import Loop, LoopStateMachine

log = logging.getLogger("loop4r.looper.session")

HEARTBEAT_RESET = 5
HEARTBEAT_LOST = -5


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class Session:
    """Connection state for the looper engine. Ports are None while unbound."""

    __slots__ = ("engine_id", "host_url", "version", "loop_count", "heartbeat",
                 "receive_port", "send_port", "led_send_port", "state",
                 "handshake_complete")

    def __init__(self, led_send_port: int | None = None):
        self.engine_id = 0
        self.host_url = ""
        self.version = ""
        self.loop_count = 0
        self.heartbeat = HEARTBEAT_RESET
        self.receive_port: int | None = None
        self.send_port: int | None = None
        self.led_send_port = led_send_port
        self.state = SessionState.DISCONNECTED
        self.handshake_complete = False

    @property
    def transport_ready(self) -> bool:
        return self.receive_port is not None and self.send_port is not None


class SessionManager:
    """Owns the Session and keeps the loop collection in sync with the engine."""

    def __init__(self, client: LooperOSCClient, server: LooperOSCServer,
                 loops: LoopStateMachine, version: str, led_count: int,
                 led_send_port: int | None = None):
        self.client = client
        self.server = server
        self.loops = loops
        self.version = version
        self.led_count = led_count
        self.session = Session(led_send_port=led_send_port)

    @property
    def reply_url(self) -> str:
        return f"osc.udp://localhost:{self.session.receive_port}/"

    @property
    def connected(self) -> bool:
        return self.session.state == SessionState.CONNECTED

    # --- Tick-driven connection and liveness ---

    def tick(self) -> None:
        s = self.session
        if not s.transport_ready:
            self.try_connect()
            return

        if s.heartbeat < HEARTBEAT_LOST:
            self._lose_session()
            return
        if s.heartbeat == 0:
            log.debug("No word from looper, probing")
            self.client.ping(self.reply_url, HEARTBEAT_ADDRESS)
        s.heartbeat -= 1

    def try_connect(self) -> bool:
        """Bind missing transports; ping the engine once both are up."""
        s = self.session
        if s.state == SessionState.DISCONNECTED:
            s.state = SessionState.CONNECTING

        if s.send_port is None:
            try:
                self.client.connect()
                s.send_port = self.client.port
            except EngineConnectionError as e:
                log.error("OSC send: %s", e)

        if s.receive_port is None:
            try:
                self.server.start()
                s.receive_port = self.server.port
            except EngineConnectionError as e:
                log.error("OSC receive: %s", e)

        if not s.transport_ready:
            return False

        self.client.ping(self.reply_url, PINGACK_ADDRESS)
        s.state = SessionState.CONNECTED
        s.heartbeat = HEARTBEAT_RESET
        log.info("Connected to OSC ports %d (in) and %d (out)",
                 s.receive_port, s.send_port)
        return True

    def _lose_session(self) -> None:
        s = self.session
        log.warning("Lost heartbeat from looper, reconnecting")
        self.server.stop()
        self.client.disconnect()
        s.receive_port = None
        s.send_port = None
        s.state = SessionState.DISCONNECTED
        s.handshake_complete = False
        self.try_connect()

    def note_engine_activity(self) -> None:
        self.session.heartbeat = HEARTBEAT_RESET

    # --- Engine messages ---

    def on_pingack(self, host_url: str, version: str, loop_count: int,
                   engine_id: int) -> None:
        s = self.session
        s.host_url = host_url
        s.version = version
        s.engine_id = engine_id
        s.loop_count = loop_count
        self._resync_all()
        s.handshake_complete = True
        s.heartbeat = HEARTBEAT_RESET
        log.info("Looper at %s (v%s, engine %d): %d loops",
                 host_url, version, engine_id, loop_count)

    def on_heartbeat(self, host_url: str, version: str, loop_count: int,
                     engine_id: int) -> None:
        s = self.session
        s.host_url = host_url
        s.version = version

        if engine_id != s.engine_id:
            log.warning("Looper engine changed (%d → %d), resynchronizing",
                        s.engine_id, engine_id)
            s.engine_id = engine_id
            s.loop_count = loop_count
            self._resync_all()
            s.handshake_complete = True
        elif loop_count > s.loop_count:
            for loop in self.loops.extend(loop_count):
                self._subscribe(loop)
            s.loop_count = loop_count
        elif loop_count < s.loop_count:
            for loop in self.loops.truncate(loop_count):
                self.client.unregister_auto_update(loop.index, self.reply_url)
            s.loop_count = loop_count

        s.heartbeat = HEARTBEAT_RESET

    def _resync_all(self) -> None:
        for loop in self.loops.rebuild(self.session.loop_count):
            self._subscribe(loop)
        if self.session.loop_count > 0:
            self.client.register_update(self.reply_url)

    def _subscribe(self, loop: Loop) -> None:
        self.client.register_auto_update(loop.index, self.reply_url)
        self.client.get_state(loop.index, self.reply_url)

    # --- Third-party discovery ---

    def answer_discovery(self, reply_host: str, reply_port: int, reply_address: str) -> None:
        """Tell a discovery client who we are; session state is not touched."""
        try:
            client = SimpleUDPClient(reply_host, reply_port)
            client.send_message(reply_address, [
                f"osc.udp://localhost:{self.server.port}",
                self.version,
                self.led_count,
                os.getpid(),
            ])
        except OSError as e:
            log.error("Could not answer discovery from %s:%d: %s", reply_host, reply_port, e)
            return
        log.info("Answered discovery ping from %s:%d", reply_host, reply_port)

    # --- Shutdown ---

    def shutdown(self) -> None:
        if self.connected and self.session.handshake_complete:
            for loop in self.loops.loops:
                self.client.unregister_auto_update(loop.index, self.reply_url)
            if self.loops.loops:
                self.client.unregister_update(self.reply_url)
        self.server.stop()
        self.client.disconnect()
        self.session.state = SessionState.DISCONNECTED
