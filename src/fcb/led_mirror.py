"""Remote LED mirror.

Forwards LED and display changes to one optional OSC subscriber (a remote
pedalboard view, for example). The subscription is managed by OSC requests
and is independent of the looper session.
"""

import logging

from pythonosc.udp_client import SimpleUDPClient

from fcb.leds import Led, LedPanel

log = logging.getLogger("loop4r.fcb.led_mirror")


class LedMirror:
    """Sends ``/led`` and ``/display`` updates to the active subscriber."""

    def __init__(self, leds: LedPanel):
        self.leds = leds
        self.host: str | None = None
        self.port: int | None = None
        self._client: SimpleUDPClient | None = None

    @property
    def active(self) -> bool:
        return self._client is not None

    def register(self, host: str, port: int) -> None:
        """Mirror to ``host:port``, replacing any previous subscriber."""
        if self.active and (host, port) == (self.host, self.port):
            return
        if self.active:
            self.unregister()
        try:
            self._client = SimpleUDPClient(host, port)
        except OSError as e:
            log.error("Could not connect LED mirror to %s:%d: %s", host, port, e)
            return
        self.host = host
        self.port = port
        log.info("LED mirror → %s:%d", host, port)

    def unregister(self) -> None:
        if not self.active:
            return
        log.info("LED mirror %s:%d disconnected", self.host, self.port)
        self._client = None
        self.host = None
        self.port = None

    # --- Event handlers ---

    def on_led_changed(self, data: dict) -> None:
        if self.active:
            self._send(self._client, "/led", *_led_args(data["led"]))

    def on_display_changed(self, data: dict) -> None:
        if self.active:
            self._send(self._client, "/display", int(data["selected_loop"]))

    # --- One-shot queries ---

    def send_led_snapshot(self, host: str, port: int, address: str) -> None:
        """Send the state of every LED to ``address`` at ``host:port``."""
        client = _ephemeral_client(host, port)
        if client is None:
            return
        for led in self.leds.leds:
            self._send(client, address, *_led_args(led))

    def send_display_snapshot(self, host: str, port: int) -> None:
        client = _ephemeral_client(host, port)
        if client is not None:
            self._send(client, "/display", int(self.leds.selected_loop))

    @staticmethod
    def _send(client: SimpleUDPClient, address: str, *args) -> None:
        try:
            client.send_message(address, list(args))
        except OSError as e:
            log.warning("LED mirror send %s failed: %s", address, e)


def _led_args(led: Led) -> tuple[int, int, int, int]:
    return led.index, 1 if led.on else 0, led.timer, int(led.blink)


def _ephemeral_client(host: str, port: int) -> SimpleUDPClient | None:
    try:
        return SimpleUDPClient(host, port)
    except OSError as e:
        log.error("Could not connect to UDP %s:%d: %s", host, port, e)
        return None
