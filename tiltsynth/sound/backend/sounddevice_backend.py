#!/usr/bin/env python3
"""
sounddevice音響バックエンド

PortAudio のコールバック型 OutputStream で、レンダーコールバックの出力を
float32 ステレオとしてデバイスへ書き出します。
"""

import threading
from typing import Any, Dict, Optional

import numpy as np

from . import IAudioBackend, BackendType, RenderCallback
from ... import get_logger

logger = get_logger(__name__)

try:
    import sounddevice as sd
    HAS_SOUNDDEVICE = True
except (ImportError, OSError):
    # PortAudio 本体が無い環境では OSError になる
    HAS_SOUNDDEVICE = False
    sd = None


class SoundDeviceAudioBackend(IAudioBackend):
    """sounddevice 出力バックエンド"""

    def __init__(self):
        if not HAS_SOUNDDEVICE:
            raise RuntimeError("sounddevice library is not available")

        self.stream: Optional[Any] = None
        self.initialized = False
        self.running = False
        self.sample_rate = 44100
        self.channels = 2
        self.buffer_size = 256
        self.device: Optional[str] = None
        self.latency = "low"

        self._render: Optional[RenderCallback] = None
        self._lock = threading.Lock()
        self.stats = {
            'callbacks': 0,
            'underflows': 0,
        }

        logger.debug("SoundDeviceAudioBackend created")

    def initialize(self, sample_rate: int, channels: int, buffer_size: int, **kwargs) -> bool:
        """バックエンドを初期化（デバイス設定の検証まで行う）"""
        self.sample_rate = sample_rate
        self.channels = channels
        self.buffer_size = buffer_size
        self.device = kwargs.get('device')
        self.latency = kwargs.get('latency', 'low')

        try:
            sd.check_output_settings(
                device=self.device,
                channels=channels,
                dtype='float32',
                samplerate=sample_rate
            )
        except (sd.PortAudioError, ValueError) as e:
            logger.error(f"Output device rejected settings: {e}")
            return False

        self.initialized = True
        logger.info(f"SoundDeviceBackend initialized: {sample_rate}Hz, {channels}ch, {buffer_size} samples")
        return True

    def _callback(self, outdata, frames: int, time_info, status) -> None:
        if status:
            self.stats['underflows'] += 1
        self.stats['callbacks'] += 1

        render = self._render
        if render is None:
            outdata.fill(0)
            return
        outdata[:] = render(frames)

    def start(self, render: RenderCallback) -> bool:
        """OutputStream を開いて出力を開始"""
        if not self.initialized:
            logger.error("Backend not initialized")
            return False

        with self._lock:
            self._render = render
            try:
                self.stream = sd.OutputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype='float32',
                    blocksize=self.buffer_size,
                    device=self.device,
                    latency=self.latency,
                    callback=self._callback,
                )
                self.stream.start()
            except (sd.PortAudioError, OSError) as e:
                logger.error(f"Failed to open output stream: {e}")
                self.stream = None
                self._render = None
                return False

            self.running = True

        logger.info(f"SoundDeviceBackend started (latency {self.get_latency_ms():.1f}ms)")
        return True

    def stop(self) -> bool:
        """出力を停止"""
        with self._lock:
            if self.stream is None:
                self.running = False
                return True
            try:
                self.stream.stop()
                self.stream.close()
            except sd.PortAudioError as e:
                logger.error(f"Error closing output stream: {e}")
                return False
            finally:
                self.stream = None
                self._render = None
                self.running = False

        logger.info("SoundDeviceBackend stopped")
        return True

    def shutdown(self) -> bool:
        """バックエンドをシャットダウン"""
        result = self.stop()
        self.initialized = False
        return result

    def get_latency_ms(self) -> float:
        """レイテンシーをミリ秒で取得"""
        if self.stream is not None:
            return float(self.stream.latency) * 1000
        return (self.buffer_size / self.sample_rate) * 1000

    def get_backend_type(self) -> BackendType:
        return BackendType.SOUNDDEVICE

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self.stats)
        stats.update({
            'sample_rate': self.sample_rate,
            'latency_ms': self.get_latency_ms(),
            'running': self.running,
        })
        return stats
