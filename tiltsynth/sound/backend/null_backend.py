#!/usr/bin/env python3
"""
Null音響バックエンド

デバイス出力を行わないバックエンド。
CI環境やテスト環境で使用し、呼び出し側が pull() でブロックを引き出します。
"""

import threading
from typing import Dict, Optional

import numpy as np

from . import IAudioBackend, BackendType, RenderCallback
from ... import get_logger

logger = get_logger(__name__)


class NullAudioBackend(IAudioBackend):
    """デバイスを持たないバックエンド（ブロックは呼び出し側が引き出す）"""

    def __init__(self):
        self.initialized = False
        self.running = False
        self.sample_rate = 44100
        self.channels = 2
        self.buffer_size = 256

        self._render: Optional[RenderCallback] = None
        self._lock = threading.Lock()
        self.frames_rendered = 0

        logger.debug("NullAudioBackend created")

    def initialize(self, sample_rate: int, channels: int, buffer_size: int, **kwargs) -> bool:
        """バックエンドを初期化"""
        self.sample_rate = sample_rate
        self.channels = channels
        self.buffer_size = buffer_size
        self.initialized = True
        logger.info(f"NullBackend initialized: {sample_rate}Hz, {channels}ch, {buffer_size} samples")
        return True

    def start(self, render: RenderCallback) -> bool:
        """出力を開始（実際のデバイス出力は行わない）"""
        if not self.initialized:
            logger.error("Backend not initialized")
            return False

        with self._lock:
            self._render = render
            self.running = True
        logger.info("NullBackend started (no actual audio output)")
        return True

    def stop(self) -> bool:
        """出力を停止"""
        with self._lock:
            self.running = False
            self._render = None
        logger.info("NullBackend stopped")
        return True

    def shutdown(self) -> bool:
        """バックエンドをシャットダウン"""
        self.stop()
        self.initialized = False
        logger.info("NullBackend shutdown")
        return True

    def pull(self, frames: Optional[int] = None) -> np.ndarray:
        """
        オーディオコールバックの代わりにブロックを引き出す

        Args:
            frames: フレーム数（Noneならバッファサイズ）

        Returns:
            形状 (frames, channels) の出力。停止中は無音
        """
        frames = frames or self.buffer_size
        with self._lock:
            render = self._render if self.running else None
        if render is None:
            return np.zeros((frames, self.channels), dtype=np.float32)
        block = render(frames)
        self.frames_rendered += frames
        return block

    def get_latency_ms(self) -> float:
        """レイテンシーをミリ秒で取得"""
        return (self.buffer_size / self.sample_rate) * 1000

    def get_backend_type(self) -> BackendType:
        """バックエンドタイプを取得"""
        return BackendType.NULL

    def get_stats(self) -> Dict[str, float]:
        """統計情報を取得"""
        return {
            'frames_rendered': self.frames_rendered,
            'sample_rate': self.sample_rate,
            'latency_ms': self.get_latency_ms(),
            'running': self.running
        }
