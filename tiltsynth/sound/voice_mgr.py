#!/usr/bin/env python3
"""
音響生成 - ボイス管理システム

ポリフォニックパッドモードでは音高キーごとにボイスを生成・破棄し、
モノフォニック弓奏モードでは常駐ボイス1つをゲートで鳴らし分けます。
どちらもシグナルグラフの生成段を駆動する VoiceBus として振る舞います。

ノートオン/オフは冪等です。発音中の音高への重複ノートオン、
未知の音高へのノートオフは何もしません。
"""

import threading
from enum import Enum
from typing import Dict, List, Optional, Union

import numpy as np

from .graph import BiquadFilter, FilterKind, NoiseSource, Oscillator, midi_to_hz
from .smoother import ParamSmoother
from ..config import VoiceConfig
from ..constants import (
    ENVELOPE_FLOOR, VOICE_LEVEL_SCALE, VOICE_MIN_VELOCITY,
    BOW_TIME_CONSTANT, GLIDE_TIME_CONSTANT, BOW_MAX_BODY_GAIN, BOW_NOISE_LEVEL,
    BOW_ONSET_ACCENT, BOW_NOISE_CENTER_HZ, BOW_NOISE_Q,
)
from .. import get_logger

logger = get_logger(__name__)


class VoiceState(Enum):
    """ボイス状態の列挙"""
    ATTACK = "attack"
    SUSTAIN = "sustain"
    RELEASE = "release"
    FINISHED = "finished"


class StealStrategy(Enum):
    """ボイススティール戦略の列挙"""
    OLDEST = "oldest"           # 最も古いボイスを停止
    QUIETEST = "quietest"       # 最も音量の小さいボイスを停止


class PadVoice:
    """パッドモードの1音（ノコギリ波＋矩形波の2発振器と振幅エンベロープ）"""

    def __init__(
        self,
        pitch: int,
        velocity: float,
        sample_rate: int,
        config: VoiceConfig,
        wave_blend: float = 0.0,
        pitch_bend: float = 0.0,
        started_at: int = 0
    ):
        self.pitch = pitch
        self.frequency = midi_to_hz(pitch)
        self.started_at = started_at
        self.level = max(VOICE_MIN_VELOCITY, velocity) * VOICE_LEVEL_SCALE

        self.osc_a = Oscillator(config.waveform_a, sample_rate)
        self.osc_b = Oscillator(config.waveform_b, sample_rate)
        self.gain_a = ParamSmoother(1.0 - wave_blend, sample_rate, "gain_a")
        self.gain_b = ParamSmoother(wave_blend, sample_rate, "gain_b")
        self.detune = ParamSmoother(pitch_bend, sample_rate, "detune")

        self.envelope = ParamSmoother(ENVELOPE_FLOOR, sample_rate, "envelope")
        self.envelope.exponential_ramp(self.level, config.attack_time)

        self.state = VoiceState.ATTACK
        self._attack_samples = int(config.attack_time * sample_rate)
        self._release_time = config.release_time
        self._stop_samples = int(config.stop_time * sample_rate)
        self._stop_remaining = 0
        self._elapsed = 0

    @property
    def is_active(self) -> bool:
        """鳴っているか（リリース中を含む）"""
        return self.state is not VoiceState.FINISHED

    def release(self) -> None:
        """リリース経路へ移行（発振器は stop_time 経過後に停止）"""
        if self.state in (VoiceState.RELEASE, VoiceState.FINISHED):
            return
        self.envelope.exponential_ramp(ENVELOPE_FLOOR, self._release_time)
        self._stop_remaining = self._stop_samples
        self.state = VoiceState.RELEASE

    def stop(self) -> None:
        """即時停止"""
        self.state = VoiceState.FINISHED

    def render(self, n: int, vibrato_cents: np.ndarray) -> np.ndarray:
        if self.state is VoiceState.FINISHED:
            return np.zeros(n)

        detune = vibrato_cents + self.detune.render(n)
        a = self.osc_a.render(n, self.frequency, detune) * self.gain_a.render(n)
        b = self.osc_b.render(n, self.frequency, detune) * self.gain_b.render(n)
        out = (a + b) * self.envelope.render(n)

        self._elapsed += n
        if self.state is VoiceState.ATTACK and self._elapsed >= self._attack_samples:
            self.state = VoiceState.SUSTAIN
        elif self.state is VoiceState.RELEASE:
            self._stop_remaining -= n
            if self._stop_remaining <= 0:
                # 停止時刻以降のサンプルは無音
                stop_at = max(0, n + self._stop_remaining)
                out[stop_at:] = 0.0
                self.state = VoiceState.FINISHED
        return out


class VoiceManager:
    """ポリフォニックパッド用ボイス管理システム"""

    def __init__(
        self,
        sample_rate: int,
        config: Optional[VoiceConfig] = None,
        max_polyphony: Optional[int] = None,
        steal_strategy: Optional[StealStrategy] = None
    ):
        """
        初期化

        Args:
            sample_rate: サンプリングレート
            config: ボイス設定
            max_polyphony: 最大ポリフォニー数（Noneなら設定値）
            steal_strategy: ボイススティール戦略（Noneなら設定値）
        """
        self.sample_rate = sample_rate
        self.config = config or VoiceConfig()
        self.max_polyphony = max(1, max_polyphony or self.config.max_polyphony)
        self.steal_strategy = steal_strategy or StealStrategy(self.config.voice_steal_strategy)

        # 音高キー → 発音中ボイス
        self.active_voices: Dict[int, PadVoice] = {}
        self._releasing: List[PadVoice] = []
        self._wave_blend = 0.0
        self._pitch_bend = 0.0
        self._clock = 0

        self.stats = {
            'total_voices_created': 0,
            'total_voices_stolen': 0,
            'total_tails_dropped': 0,
            'max_simultaneous_voices': 0,
        }

        self._lock = threading.Lock()

        logger.info(f"VoiceManager initialized: max_polyphony={self.max_polyphony}, "
                    f"strategy={self.steal_strategy.value}")

    @property
    def current_note(self) -> Optional[int]:
        """最後に発音したボイスの音高"""
        with self._lock:
            if not self.active_voices:
                return None
            return max(self.active_voices.values(), key=lambda v: v.started_at).pitch

    def note_on(self, pitch: int, velocity: Optional[float] = None) -> bool:
        """
        ボイスを生成

        Returns:
            新しいボイスを生成した場合True（重複ノートオンはFalse）
        """
        if velocity is None:
            velocity = self.config.default_velocity

        with self._lock:
            if pitch in self.active_voices:
                logger.debug(f"note_on ignored, pitch {pitch} already sounding")
                return False

            if len(self.active_voices) >= self.max_polyphony:
                self._steal_voice()

            self.active_voices[pitch] = PadVoice(
                pitch=pitch,
                velocity=velocity,
                sample_rate=self.sample_rate,
                config=self.config,
                wave_blend=self._wave_blend,
                pitch_bend=self._pitch_bend,
                started_at=self._clock,
            )

            self.stats['total_voices_created'] += 1
            self.stats['max_simultaneous_voices'] = max(
                self.stats['max_simultaneous_voices'], len(self.active_voices)
            )

        logger.debug(f"note_on pitch={pitch} ({midi_to_hz(pitch):.1f}Hz) velocity={velocity:.2f}")
        return True

    def note_off(self, pitch: int) -> bool:
        """
        ボイスをリリース経路へ移行

        Returns:
            該当ボイスが存在した場合True
        """
        with self._lock:
            voice = self.active_voices.pop(pitch, None)
            if voice is None:
                return False
            self._retire(voice)

        logger.debug(f"note_off pitch={pitch}")
        return True

    def all_off(self) -> None:
        """全ボイスをリリース"""
        with self._lock:
            for voice in self.active_voices.values():
                self._retire(voice)
            self.active_voices.clear()

    def stop_all(self) -> None:
        """全ボイスを即時停止（テアダウン用）"""
        with self._lock:
            voice_count = len(self.active_voices) + len(self._releasing)
            for voice in list(self.active_voices.values()) + self._releasing:
                voice.stop()
            self.active_voices.clear()
            self._releasing.clear()

        logger.info(f"Stopped all {voice_count} voices.")

    def set_wave_blend(self, blend: float, time_constant: float) -> None:
        """波形ブレンドを全ボイスへ適用（以後のボイスにも引き継ぐ）"""
        self._wave_blend = blend
        with self._lock:
            for voice in self.active_voices.values():
                voice.gain_a.set_target(1.0 - blend, time_constant)
                voice.gain_b.set_target(blend, time_constant)

    def set_pitch_bend(self, cents: float, time_constant: float) -> None:
        """ピッチベンドを全ボイスへ適用（以後のボイスにも引き継ぐ）"""
        self._pitch_bend = cents
        with self._lock:
            for voice in self.active_voices.values():
                voice.detune.set_target(cents, time_constant)

    def render(self, n: int, vibrato_cents: np.ndarray) -> np.ndarray:
        """全ボイスを合算したモノラル信号を生成"""
        out = np.zeros(n)
        with self._lock:
            for voice in list(self.active_voices.values()) + self._releasing:
                out += voice.render(n, vibrato_cents)
            self._releasing = [v for v in self._releasing if v.is_active]
            self._clock += n
        return out

    def active_voice_count(self) -> int:
        """発音中（リリース中を除く）のボイス数"""
        with self._lock:
            return len(self.active_voices)

    def sounding_voice_count(self) -> int:
        """リリーステールを含めたボイス数"""
        with self._lock:
            return len(self.active_voices) + len(self._releasing)

    def _retire(self, voice: PadVoice) -> None:
        """
        ボイスをリリーステールへ移す（ロック保持中に呼ぶ）

        レンダーが回っていない間もテールは溜まり続けるため、
        max_polyphony を超えた分は古い順に即時停止して破棄します。
        """
        voice.release()
        self._releasing = [v for v in self._releasing if v.is_active]
        self._releasing.append(voice)
        while len(self._releasing) > self.max_polyphony:
            self._releasing.pop(0).stop()
            self.stats['total_tails_dropped'] += 1

    def _steal_voice(self) -> Optional[int]:
        """スティール戦略に基づいてボイスをリリース（ロック保持中に呼ぶ）"""
        if not self.active_voices:
            return None

        if self.steal_strategy is StealStrategy.QUIETEST:
            victim = min(self.active_voices.values(), key=lambda v: v.envelope.value)
        else:
            victim = min(self.active_voices.values(), key=lambda v: v.started_at)

        del self.active_voices[victim.pitch]
        self._retire(victim)
        self.stats['total_voices_stolen'] += 1
        logger.debug(f"Stole voice pitch={victim.pitch} ({self.steal_strategy.value})")
        return victim.pitch

    def get_performance_stats(self) -> dict:
        """パフォーマンス統計取得"""
        with self._lock:
            stats = self.stats.copy()
            stats.update({
                'current_active_voices': len(self.active_voices),
                'releasing_voices': len(self._releasing),
                'polyphony_usage_percent': (len(self.active_voices) / self.max_polyphony) * 100,
            })
            return stats


class BowedVoice:
    """弓奏モードの常駐ボイス（発振器ペア＋帯域通過ノイズ → ボディ）"""

    def __init__(self, sample_rate: int, config: VoiceConfig, initial_pitch: int = 60):
        self.osc_a = Oscillator(config.waveform_a, sample_rate)
        self.osc_b = Oscillator(config.waveform_b, sample_rate)
        self.gain_a = ParamSmoother(1.0, sample_rate, "gain_a")
        self.gain_b = ParamSmoother(0.0, sample_rate, "gain_b")
        self.detune = ParamSmoother(0.0, sample_rate, "detune")
        self.frequency = ParamSmoother(midi_to_hz(initial_pitch), sample_rate, "frequency")

        # 弓毛の摩擦ノイズ
        self.noise = NoiseSource()
        self.noise_filter = BiquadFilter(
            FilterKind.BANDPASS, sample_rate, BOW_NOISE_CENTER_HZ, BOW_NOISE_Q
        )
        self.noise_gain = ParamSmoother(0.0, sample_rate, "noise_gain")
        self.accent = ParamSmoother(0.0, sample_rate, "accent")

        self.body = ParamSmoother(ENVELOPE_FLOOR, sample_rate, "body")

    def render(self, n: int, vibrato_cents: np.ndarray) -> np.ndarray:
        detune = vibrato_cents + self.detune.render(n)
        freq = self.frequency.render(n)
        tone = (self.osc_a.render(n, freq, detune) * self.gain_a.render(n)
                + self.osc_b.render(n, freq, detune) * self.gain_b.render(n))
        friction = self.noise_filter.process(self.noise.render(n))
        friction = friction * (self.noise_gain.render(n) + self.accent.render(n))
        return (tone + friction) * self.body.render(n)


class MonoVoiceManager:
    """
    弓奏モード用ボイス管理

    ボイスの生成・破棄は行わず、ゲートフラグで常駐ボイスの可聴/不可聴を切り替えます。
    ボディ音量は「ゲート × 弓エネルギー」に追従します。
    """

    def __init__(self, sample_rate: int, config: Optional[VoiceConfig] = None):
        self.sample_rate = sample_rate
        self.config = config or VoiceConfig()
        self.voice = BowedVoice(sample_rate, self.config)
        self.gate = False
        self._current_note: Optional[int] = None
        self._energy = 0.0
        self._lock = threading.Lock()

        logger.info("MonoVoiceManager initialized (bowed mode)")

    @property
    def current_note(self) -> Optional[int]:
        return self._current_note if self.gate else None

    @property
    def bow_energy(self) -> float:
        return self._energy

    def note_on(self, pitch: int, velocity: Optional[float] = None) -> bool:
        """音高を設定してゲートを開く（同じ音高での重複は何もしない）"""
        with self._lock:
            if self.gate and pitch == self._current_note:
                return False
            hz = midi_to_hz(pitch)
            if self._current_note is None:
                self.voice.frequency.set_value(hz)
            else:
                self.voice.frequency.set_target(hz, GLIDE_TIME_CONSTANT)
            self._current_note = pitch
            self.gate = True
            self._update_body()

        logger.debug(f"bowed gate on pitch={pitch} ({hz:.1f}Hz)")
        return True

    def note_off(self, pitch: int) -> bool:
        """現在の音高に対するノートオフのみゲートを閉じる"""
        with self._lock:
            if not self.gate or pitch != self._current_note:
                return False
            self.gate = False
            self._update_body()

        logger.debug(f"bowed gate off pitch={pitch}")
        return True

    def all_off(self) -> None:
        with self._lock:
            self.gate = False
            self._update_body()

    def stop_all(self) -> None:
        """即時無音化（テアダウン用）"""
        with self._lock:
            self.gate = False
            self.voice.body.set_value(0.0)
            self.voice.noise_gain.set_value(0.0)
            self.voice.accent.set_value(0.0)

    def set_bow(self, energy: float, onset: bool = False) -> None:
        """
        弓エネルギーとオンセットを反映

        Args:
            energy: 弓エネルギー (0..1)
            onset: 弓返しによるアタック検出
        """
        with self._lock:
            self._energy = min(max(energy, 0.0), 1.0)
            self._update_body()
            if onset and self.gate:
                self.voice.accent.decay_from(BOW_ONSET_ACCENT, 0.0, 0.05)

    def set_wave_blend(self, blend: float, time_constant: float) -> None:
        self.voice.gain_a.set_target(1.0 - blend, time_constant)
        self.voice.gain_b.set_target(blend, time_constant)

    def set_pitch_bend(self, cents: float, time_constant: float) -> None:
        self.voice.detune.set_target(cents, time_constant)

    def render(self, n: int, vibrato_cents: np.ndarray) -> np.ndarray:
        return self.voice.render(n, vibrato_cents)

    def active_voice_count(self) -> int:
        return 1 if self.gate else 0

    def sounding_voice_count(self) -> int:
        return 1

    def _update_body(self) -> None:
        energy = self._energy if self.gate else 0.0
        self.voice.body.set_target(max(BOW_MAX_BODY_GAIN * energy, ENVELOPE_FLOOR), BOW_TIME_CONSTANT)
        self.voice.noise_gain.set_target(BOW_NOISE_LEVEL * energy, BOW_TIME_CONSTANT)


AnyVoiceManager = Union[VoiceManager, MonoVoiceManager]


def create_voice_manager(
    mode: str,
    sample_rate: int,
    config: Optional[VoiceConfig] = None
) -> AnyVoiceManager:
    """
    モードに応じたボイス管理システムを作成

    Args:
        mode: "pad" または "bowed"
        sample_rate: サンプリングレート
        config: ボイス設定
    """
    if mode == "bowed":
        return MonoVoiceManager(sample_rate, config)
    if mode == "pad":
        return VoiceManager(sample_rate, config)
    raise ValueError(f"Unknown synth mode: {mode}")
