"""Tests for the remote LED mirror."""

from unittest.mock import Mock, call, patch

import pytest

from fcb.led_mirror import LedMirror
from fcb.leds import TIMER_BLINK, TIMER_FASTBLINK, BlinkMode


@pytest.fixture
def udp_client():
    with patch("fcb.led_mirror.SimpleUDPClient") as client_cls:
        yield client_cls


@pytest.fixture
def mirror(leds, bus):
    m = LedMirror(leds)
    bus.subscribe("led_changed", m.on_led_changed)
    bus.subscribe("display_changed", m.on_display_changed)
    return m


class TestLedMirror:

    def test_inactive_sends_nothing(self, mirror, leds, udp_client):
        leds.led_on(3)
        udp_client.assert_not_called()
        assert not mirror.active

    def test_led_changes_forwarded(self, mirror, leds, udp_client):
        mirror.register("192.168.1.20", 9500)
        sender = udp_client.return_value

        leds.set_led(2, True, BlinkMode.FAST_BLINK)
        leds.set_led(1, True, BlinkMode.BLINK)

        assert sender.send_message.call_args_list == [
            call("/led", [2, 1, TIMER_FASTBLINK, 3]),
            call("/led", [1, 1, TIMER_BLINK, 2]),
        ]

    def test_display_changes_forwarded(self, mirror, leds, udp_client):
        mirror.register("192.168.1.20", 9500)
        leds.show_selected_loop(3)
        udp_client.return_value.send_message.assert_called_once_with("/display", [3])

    def test_register_same_endpoint_is_noop(self, mirror, udp_client):
        mirror.register("host", 9500)
        mirror.register("host", 9500)
        udp_client.assert_called_once_with("host", 9500)

    def test_register_replaces_previous(self, mirror, leds, udp_client):
        client_a, client_b = Mock(), Mock()
        udp_client.side_effect = [client_a, client_b]

        mirror.register("a", 9500)
        leds.led_on(0)
        client_a.send_message.reset_mock()

        mirror.register("b", 9600)
        leds.led_on(1)
        leds.show_selected_loop(2)

        assert (mirror.host, mirror.port) == ("b", 9600)
        assert udp_client.call_args_list == [call("a", 9500), call("b", 9600)]
        client_a.send_message.assert_not_called()
        assert client_b.send_message.call_args_list == [
            call("/led", [1, 1, 0, 0]), call("/display", [2])]

    def test_unregister(self, mirror, leds, udp_client):
        mirror.register("host", 9500)
        mirror.unregister()
        leds.led_on(0)
        assert not mirror.active
        udp_client.return_value.send_message.assert_not_called()

    def test_led_snapshot(self, mirror, leds, udp_client):
        leds.set_led(0, True, BlinkMode.SOLID)
        mirror.send_led_snapshot("host", 7000, "/leds")

        sent = udp_client.return_value.send_message.call_args_list
        assert len(sent) == len(leds)
        assert sent[0] == call("/leds", [0, 1, 0, 1])
        assert sent[9] == call("/leds", [9, 0, 0, 0])
        assert not mirror.active

    def test_display_snapshot(self, mirror, leds, udp_client):
        leds.selected_loop = 2
        mirror.send_display_snapshot("host", 7000)
        udp_client.assert_called_once_with("host", 7000)
        udp_client.return_value.send_message.assert_called_once_with("/display", [2])

    def test_send_errors_are_logged(self, mirror, leds, udp_client, caplog):
        mirror.register("host", 9500)
        udp_client.return_value.send_message.side_effect = OSError("unreachable")
        leds.led_on(1)
        assert "failed" in caplog.text
