#!/usr/bin/env python3
"""
OSC センサーストリーム テスト
"""

import threading

from pythonosc import udp_client

from tiltsynth.config import OscConfig
from tiltsynth.motion.osc_stream import OscSensorStream


class TestOscSensorStream:

    def setup_method(self):
        self.stream = OscSensorStream(OscConfig(host="127.0.0.1", port=0), clock=lambda: 5.0)

    def teardown_method(self):
        self.stream.stop()

    def test_handlers_parse_arguments(self):
        orientations, accelerations = [], []
        self.stream.subscribe(orientations.append, accelerations.append)

        self.stream._handle_orientation("/orientation", 90, "12.5", "bad")
        self.stream._handle_acceleration("/acceleration", 3.0)

        assert orientations[0].alpha == 90.0
        assert orientations[0].beta == 12.5
        assert orientations[0].gamma is None
        assert orientations[0].timestamp == 5.0
        assert (accelerations[0].x, accelerations[0].y, accelerations[0].z) == (3.0, None, None)
        assert self.stream.stats == {'orientation_messages': 1, 'acceleration_messages': 1}

    def test_udp_roundtrip(self):
        received = []
        arrived = threading.Event()

        def on_orientation(sample):
            received.append(sample)
            arrived.set()

        self.stream.subscribe(on_orientation=on_orientation)
        assert self.stream.start()
        assert self.stream.is_running()

        port = self.stream._server.server_address[1]
        client = udp_client.SimpleUDPClient("127.0.0.1", port)
        client.send_message("/orientation", [10.0, 20.0, -30.0])

        assert arrived.wait(2.0)
        assert (received[0].beta, received[0].gamma) == (20.0, -30.0)

    def test_stop_is_idempotent(self):
        assert self.stream.start()
        self.stream.stop()
        self.stream.stop()
        assert not self.stream.is_running()
