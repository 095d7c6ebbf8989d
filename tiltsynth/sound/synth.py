#!/usr/bin/env python3
"""
音響生成 - ブロックレンダリング型シンセサイザーエンジン

シグナルグラフとボイス管理を所有し、バックエンドのオーディオコールバックへ
ブロックを供給します。グラフは固定長ブロック（buffer_size）で処理し、
バックエンドが要求する任意のフレーム数には内部FIFOで合わせます。

オーディオ出力を初期化できない場合はエンジンが ERROR 状態に留まり、
以後の制御呼び出しは全て何もしない安全な操作になります。
"""

import threading
from enum import Enum
from typing import Dict, Mapping, Optional, Any

import numpy as np

from .backend import IAudioBackend, BackendType, BackendUnavailableError
from .backend.factory import open_backend, parse_backend_type
from .graph import BowedSignalGraph, PadSignalGraph, SignalGraph
from .voice_mgr import AnyVoiceManager, create_voice_manager
from ..config import TiltSynthConfig
from ..constants import SMOOTHING_TIME_CONSTANT
from .. import get_logger

logger = get_logger(__name__)


class EngineState(Enum):
    """エンジン状態"""
    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"


class AudioSynthesizer:
    """シグナルグラフ＋ボイス管理＋バックエンドを束ねる音響合成エンジン"""

    def __init__(
        self,
        config: Optional[TiltSynthConfig] = None,
        mode: Optional[str] = None,
        backend_type: Optional[BackendType] = None,
        seed: Optional[int] = None
    ):
        """
        初期化

        Args:
            config: プロジェクト設定
            mode: "pad" または "bowed"（Noneなら設定値）
            backend_type: 出力バックエンド（Noneなら設定値、"auto"は自動選択）
            seed: ノイズ源・インパルス応答の乱数シード
        """
        self.config = config or TiltSynthConfig()
        self.mode = mode or self.config.mode
        if self.mode not in ("pad", "bowed"):
            raise ValueError(f"Unknown synth mode: {self.mode}")
        self._backend_type = backend_type
        self._seed = seed

        self.state = EngineState.STOPPED
        self.error: Optional[str] = None
        self.backend: Optional[IAudioBackend] = None
        self.graph: Optional[SignalGraph] = None
        self.voices: Optional[AnyVoiceManager] = None

        self._pending = np.zeros((0, 2))
        self._render_failed = False
        self._lock = threading.Lock()

        logger.info(f"AudioSynthesizer initialized: mode={self.mode}")

    @property
    def is_running(self) -> bool:
        return self.state == EngineState.RUNNING

    def _build(self) -> None:
        """グラフとボイスを構築（エンジンにつき一度だけ）"""
        audio = self.config.audio
        graph_cls = BowedSignalGraph if self.mode == "bowed" else PadSignalGraph
        self.graph = graph_cls(audio.sample_rate, audio.buffer_size,
                               master_gain=audio.master_volume, seed=self._seed)
        self.voices = create_voice_manager(self.mode, audio.sample_rate, self.config.voice)
        self.graph.attach_voices(self.voices)
        logger.info(f"Signal graph built: {graph_cls.__name__}, "
                    f"delay {self.graph.delay.delay_samples} samples")

    def start_engine(self) -> bool:
        """音響エンジンを開始"""
        with self._lock:
            if self.state == EngineState.RUNNING:
                logger.warning("Engine already running")
                return True
            if self.state == EngineState.ERROR:
                return False

            audio = self.config.audio
            backend_type = self._backend_type or parse_backend_type(audio.backend)

            if self.graph is None:
                self._build()

            try:
                self.backend = open_backend(
                    backend_type, audio.sample_rate, audio.channels, audio.buffer_size,
                    device=audio.device, latency=audio.latency,
                )
            except BackendUnavailableError as e:
                return self._fail(str(e))

            if not self.backend.start(self.render):
                self.backend.shutdown()
                self.backend = None
                return self._fail("Audio output failed to start")

            self.state = EngineState.RUNNING
            logger.info(f"Audio engine started on {self.backend.get_backend_type().value} "
                        f"({self.backend.get_latency_ms():.1f}ms)")
            return True

    def _fail(self, message: str) -> bool:
        self.state = EngineState.ERROR
        self.error = message
        logger.error(f"Audio engine unavailable: {message}")
        return False

    def stop_engine(self) -> None:
        """全ボイスを無音化して音響エンジンを停止"""
        with self._lock:
            if self.voices is not None:
                self.voices.stop_all()
            if self.state != EngineState.RUNNING:
                return
            if self.backend is not None:
                self.backend.shutdown()
            self.state = EngineState.STOPPED
            logger.info("Audio engine stopped")

    # ------------------------------------------------------------------
    # オーディオスレッド
    # ------------------------------------------------------------------

    def render(self, frames: int) -> np.ndarray:
        """
        バックエンドのコールバックから呼ばれるブロック生成

        例外はここで捕捉し、一度だけログを出して無音を返します。
        """
        channels = self.config.audio.channels
        try:
            block_size = self.graph.block_size
            parts = [self._pending]
            available = self._pending.shape[0]
            while available < frames:
                block = self.graph.render(block_size)
                parts.append(block)
                available += block_size
            buffered = np.concatenate(parts) if len(parts) > 1 else self._pending
            out, self._pending = buffered[:frames], buffered[frames:]
        except Exception:  # pylint: disable=broad-except
            if not self._render_failed:
                logger.exception("Audio render failed, outputting silence")
                self._render_failed = True
            return np.zeros((frames, channels), dtype=np.float32)

        if channels == 1:
            out = out.mean(axis=1, keepdims=True)
        return np.clip(out, -1.0, 1.0).astype(np.float32)

    # ------------------------------------------------------------------
    # 制御（停止中・エラー時は何もしない）
    # ------------------------------------------------------------------

    def note_on(self, pitch: int, velocity: Optional[float] = None) -> bool:
        if not self.is_running:
            return False
        return self.voices.note_on(pitch, velocity)

    def note_off(self, pitch: int) -> bool:
        if not self.is_running:
            return False
        return self.voices.note_off(pitch)

    def all_off(self) -> None:
        if self.is_running:
            self.voices.all_off()

    def apply_update(self, update: Mapping[str, float],
                     time_constant: float = SMOOTHING_TIME_CONSTANT) -> None:
        if self.is_running:
            self.graph.apply_update(update, time_constant)

    def set_bow(self, energy: float, onset: bool = False) -> None:
        if self.is_running and self.mode == "bowed":
            self.voices.set_bow(energy, onset)

    def get_performance_stats(self) -> Dict[str, Any]:
        """パフォーマンス統計取得"""
        stats: Dict[str, Any] = {
            'state': self.state.value,
            'mode': self.mode,
            'render_failed': self._render_failed,
        }
        if self.voices is not None:
            stats['active_voices'] = self.voices.active_voice_count()
            stats['sounding_voices'] = self.voices.sounding_voice_count()
        if self.backend is not None:
            stats['backend'] = self.backend.get_stats()
        return stats


def create_audio_synthesizer(
    config: Optional[TiltSynthConfig] = None,
    mode: Optional[str] = None,
    backend_type: Optional[BackendType] = None
) -> AudioSynthesizer:
    """
    音響合成エンジンを作成（便利関数）

    Args:
        config: プロジェクト設定
        mode: "pad" または "bowed"
        backend_type: 出力バックエンド

    Returns:
        AudioSynthesizerインスタンス
    """
    return AudioSynthesizer(config, mode, backend_type)
