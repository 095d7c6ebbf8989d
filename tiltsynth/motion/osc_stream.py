#!/usr/bin/env python3
"""
モーション入力 - OSCセンサーストリーム

スマートフォンのセンサー送信アプリ（OSC/UDP）から姿勢と加速度を受信します。

    /orientation alpha beta gamma
    /acceleration x y z

引数の欠損や数値でない値は None として扱います。
"""

import threading
import time
from typing import Callable, Optional, Sequence

from pythonosc import dispatcher, osc_server

from .stream import ISensorStream, ListenerRegistry, Unsubscribe
from .types import AccelerationSample, OrientationSample
from ..config import OscConfig
from .. import get_logger

logger = get_logger(__name__)


def _arg(args: Sequence, index: int) -> Optional[float]:
    if index >= len(args):
        return None
    try:
        return float(args[index])
    except (TypeError, ValueError):
        return None


class OscSensorStream(ISensorStream):
    """python-osc の UDP サーバーでセンサーサンプルを受信するストリーム"""

    def __init__(self, config: Optional[OscConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or OscConfig()
        self._clock = clock
        self._registry = ListenerRegistry()

        self._dispatcher = dispatcher.Dispatcher()
        self._dispatcher.map(self.config.orientation_address, self._handle_orientation)
        self._dispatcher.map(self.config.acceleration_address, self._handle_acceleration)

        self._server: Optional[osc_server.ThreadingOSCUDPServer] = None
        self._server_thread: Optional[threading.Thread] = None
        self._running = False

        self.stats = {
            'orientation_messages': 0,
            'acceleration_messages': 0,
        }

    def subscribe(self, on_orientation=None, on_acceleration=None) -> Unsubscribe:
        return self._registry.add(on_orientation, on_acceleration)

    def start(self) -> bool:
        """UDPサーバーをバックグラウンドスレッドで開始"""
        if self._running:
            return True
        try:
            self._server = osc_server.ThreadingOSCUDPServer(
                (self.config.host, self.config.port),
                self._dispatcher
            )
        except OSError as e:
            logger.error(f"Failed to bind OSC server on {self.config.host}:{self.config.port}: {e}")
            return False

        self._running = True
        self._server_thread = threading.Thread(
            target=self._server.serve_forever,
            name="OSCSensorStream",
            daemon=True
        )
        self._server_thread.start()
        logger.info(f"OSC sensor stream listening on {self.config.host}:{self.config.port}")
        return True

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._server:
            self._server.shutdown()
            self._server.server_close()
        if self._server_thread:
            self._server_thread.join(timeout=1.0)
        logger.info("OSC sensor stream stopped")

    def is_running(self) -> bool:
        return self._running

    @property
    def listener_count(self) -> int:
        return self._registry.count()

    def _handle_orientation(self, address: str, *args) -> None:
        self.stats['orientation_messages'] += 1
        sample = OrientationSample(_arg(args, 0), _arg(args, 1), _arg(args, 2), self._clock())
        self._registry.emit_orientation(sample)

    def _handle_acceleration(self, address: str, *args) -> None:
        self.stats['acceleration_messages'] += 1
        sample = AccelerationSample(_arg(args, 0), _arg(args, 1), _arg(args, 2), self._clock())
        self._registry.emit_acceleration(sample)
