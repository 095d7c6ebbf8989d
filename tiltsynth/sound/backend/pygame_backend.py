#!/usr/bin/env python3
"""
pygame音響バックエンド

pygame.mixer にはストリーミング用コールバックが無いため、フィーダースレッドが
レンダーコールバックからブロックを引き出し、専用チャンネルのキューへ
Sound として積みます。
"""

import threading
from typing import Any, Dict, Optional

import numpy as np

from . import IAudioBackend, BackendType, RenderCallback
from ... import get_logger

logger = get_logger(__name__)

try:
    import pygame
    import pygame.mixer
    import pygame.sndarray
    pygame_available = True
except ImportError:
    pygame_available = False

# キュー1回あたりのブロック倍率（mixer バッファに対して）
FEED_BLOCKS = 4


class PygameAudioBackend(IAudioBackend):
    """pygame.mixer 出力バックエンド"""

    def __init__(self):
        if not pygame_available:
            raise RuntimeError("pygame library is not available")

        self.initialized = False
        self.running = False
        self.sample_rate = 44100
        self.channels = 2
        self.buffer_size = 256

        self._render: Optional[RenderCallback] = None
        self._channel: Optional[Any] = None
        self._feeder: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.stats = {
            'blocks_queued': 0,
        }

        logger.debug("PygameAudioBackend created")

    def initialize(self, sample_rate: int, channels: int, buffer_size: int, **kwargs) -> bool:
        """pygame.mixer を初期化"""
        try:
            pygame.mixer.pre_init(
                frequency=sample_rate,
                size=-16,  # 16ビット signed
                channels=channels,
                buffer=buffer_size
            )
            pygame.mixer.init()
        except pygame.error as e:
            logger.error(f"Failed to initialize pygame mixer: {e}")
            return False

        self.sample_rate = sample_rate
        self.channels = channels
        self.buffer_size = buffer_size
        self.initialized = True
        logger.info(f"PygameBackend initialized: {sample_rate}Hz, {channels}ch, {buffer_size} samples")
        return True

    def start(self, render: RenderCallback) -> bool:
        """フィーダースレッドを開始"""
        if not self.initialized:
            logger.error("Backend not initialized")
            return False

        self._render = render
        self._channel = pygame.mixer.Channel(0)
        self._stop_event.clear()
        self._feeder = threading.Thread(target=self._feed_loop, name="PygameFeeder", daemon=True)
        self.running = True
        self._feeder.start()

        logger.info("PygameBackend started")
        return True

    def _make_sound(self, frames: int):
        block = np.clip(self._render(frames), -1.0, 1.0)
        pcm = (block * 32767.0).astype(np.int16)
        if self.channels == 1:
            # モノラル mixer は1次元配列を要求する
            pcm = pcm.reshape(-1)
        return pygame.sndarray.make_sound(np.ascontiguousarray(pcm))

    def _feed_loop(self) -> None:
        frames = self.buffer_size * FEED_BLOCKS
        period = frames / self.sample_rate
        try:
            self._channel.play(self._make_sound(frames))
            while not self._stop_event.is_set():
                if self._channel.get_queue() is None:
                    self._channel.queue(self._make_sound(frames))
                    self.stats['blocks_queued'] += 1
                self._stop_event.wait(period / 4)
        except pygame.error as e:
            logger.error(f"Pygame feeder stopped: {e}")
            self.running = False

    def stop(self) -> bool:
        """出力を停止"""
        if not self.running and self._feeder is None:
            return True
        self._stop_event.set()
        if self._feeder is not None:
            self._feeder.join(timeout=1.0)
            self._feeder = None
        try:
            if self._channel is not None:
                self._channel.stop()
        except pygame.error as e:
            logger.error(f"Error stopping pygame channel: {e}")
            return False
        finally:
            self._channel = None
            self._render = None
            self.running = False

        logger.info("PygameBackend stopped")
        return True

    def shutdown(self) -> bool:
        """mixer を終了"""
        result = self.stop()
        if self.initialized:
            pygame.mixer.quit()
            self.initialized = False
        return result

    def get_latency_ms(self) -> float:
        return (self.buffer_size * FEED_BLOCKS / self.sample_rate) * 1000

    def get_backend_type(self) -> BackendType:
        return BackendType.PYGAME

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self.stats)
        stats.update({
            'sample_rate': self.sample_rate,
            'latency_ms': self.get_latency_ms(),
            'running': self.running,
        })
        return stats
