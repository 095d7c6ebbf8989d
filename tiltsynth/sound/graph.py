#!/usr/bin/env python3
"""
音響生成 - シグナルグラフ

発振器・ノイズ源（生成段）、フィルター・ウェーブシェーパー・パンナー（整形段）、
フィードバックディレイ・畳み込みリバーブ（センド/リターン段）を
numpy ブロック処理で実装し、2種類の固定トポロジーに組み立てます。

グラフはエンジン起動時に一度だけ構築され、以後は各段のパラメータのみが変化します。
唯一の閉路はディレイのフィードバックで、その係数は1未満に制限されています。
"""

import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Protocol, Tuple, Union

import numpy as np
from scipy.signal import lfilter

from .smoother import ParamSmoother
from ..constants import (
    A4_FREQUENCY, A4_MIDI_NOTE, CENTS_PER_OCTAVE, SMOOTHING_TIME_CONSTANT,
    MASTER_GAIN_DEFAULT, FILTER_CUTOFF_DEFAULT, FILTER_Q_DEFAULT,
    DELAY_TIME, DELAY_MAX_TIME, DELAY_WET_DEFAULT, MAX_DELAY_FEEDBACK,
    REVERB_IMPULSE_DURATION, REVERB_IMPULSE_DECAY, LFO_FREQUENCY,
    WAVESHAPER_CURVE_SAMPLES,
)
from .. import get_logger

logger = get_logger(__name__)

WAVEFORMS = ("sine", "sawtooth", "square", "triangle")

FrequencyInput = Union[float, np.ndarray]


def midi_to_hz(midi_note: float) -> float:
    """MIDIノート番号を平均律の周波数に変換"""
    return A4_FREQUENCY * 2.0 ** ((midi_note - A4_MIDI_NOTE) / 12.0)


# =============================================================================
# 生成段
# =============================================================================

class Oscillator:
    """自走位相アキュムレータ型の発振器"""

    def __init__(self, waveform: str, sample_rate: int):
        if waveform not in WAVEFORMS:
            raise ValueError(f"Unknown waveform: {waveform}")
        self.waveform = waveform
        self.sample_rate = sample_rate
        self._phase = 0.0

    def render(self, n: int, frequency: FrequencyInput,
               detune_cents: Optional[np.ndarray] = None) -> np.ndarray:
        """
        n サンプル生成

        Args:
            n: サンプル数
            frequency: 周波数（スカラーまたはサンプル毎の配列）
            detune_cents: サンプル毎のデチューン量（セント）
        """
        freq = np.broadcast_to(np.asarray(frequency, dtype=np.float64), (n,))
        if detune_cents is not None:
            freq = freq * 2.0 ** (detune_cents / CENTS_PER_OCTAVE)

        phases = (self._phase + np.cumsum(freq / self.sample_rate)) % 1.0
        self._phase = float(phases[-1])
        return self._shape(phases)

    def _shape(self, phases: np.ndarray) -> np.ndarray:
        if self.waveform == "sine":
            return np.sin(2.0 * np.pi * phases)
        if self.waveform == "sawtooth":
            return 2.0 * phases - 1.0
        if self.waveform == "square":
            return np.where(phases < 0.5, 1.0, -1.0)
        return 4.0 * np.abs(phases - 0.5) - 1.0


class NoiseSource:
    """ホワイトノイズ源"""

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def render(self, n: int) -> np.ndarray:
        return self._rng.uniform(-1.0, 1.0, n)


class Lfo:
    """ビブラート用LFO。深さ（セント）を掛けた値を全ボイスのデチューン入力へ送る"""

    def __init__(self, sample_rate: int, frequency: float = LFO_FREQUENCY):
        self.frequency = frequency
        self._osc = Oscillator("sine", sample_rate)
        self.depth = ParamSmoother(0.0, sample_rate, "vibrato_depth")

    def render(self, n: int) -> np.ndarray:
        return self._osc.render(n, self.frequency) * self.depth.render(n)


# =============================================================================
# 整形段
# =============================================================================

class Gain:
    """スムージング付きゲイン段"""

    def __init__(self, initial: float, sample_rate: int, name: str = "gain"):
        self.gain = ParamSmoother(initial, sample_rate, name)

    def process(self, x: np.ndarray) -> np.ndarray:
        g = self.gain.render(x.shape[0])
        if x.ndim == 2:
            return x * g[:, None]
        return x * g


class FilterKind(Enum):
    """フィルター種別"""
    LOWPASS = "lowpass"
    BANDPASS = "bandpass"


class BiquadFilter:
    """RBJ クックブック係数のバイカッドフィルター（係数はブロック毎に更新）"""

    def __init__(self, kind: FilterKind, sample_rate: int,
                 cutoff: float = FILTER_CUTOFF_DEFAULT, q: float = FILTER_Q_DEFAULT):
        self.kind = kind
        self.sample_rate = sample_rate
        self.cutoff = ParamSmoother(cutoff, sample_rate, "filter_cutoff")
        self.q = ParamSmoother(q, sample_rate, "filter_q")
        self._zi = np.zeros(2)

    def coefficients(self, cutoff: float, q: float) -> Tuple[np.ndarray, np.ndarray]:
        """正規化済み (b, a) 係数を計算"""
        freq = min(max(cutoff, 10.0), 0.45 * self.sample_rate)
        w0 = 2.0 * math.pi * freq / self.sample_rate
        cos_w0 = math.cos(w0)
        alpha = math.sin(w0) / (2.0 * max(q, 1e-3))

        if self.kind is FilterKind.LOWPASS:
            b = np.array([(1.0 - cos_w0) / 2.0, 1.0 - cos_w0, (1.0 - cos_w0) / 2.0])
        else:
            b = np.array([alpha, 0.0, -alpha])
        a = np.array([1.0 + alpha, -2.0 * cos_w0, 1.0 - alpha])
        return b / a[0], a / a[0]

    def process(self, x: np.ndarray) -> np.ndarray:
        n = x.shape[0]
        cutoff = self.cutoff.render(n)[-1]
        q = self.q.render(n)[-1]
        b, a = self.coefficients(cutoff, q)
        y, self._zi = lfilter(b, a, x, zi=self._zi)
        return y


def make_distortion_curve(amount: float, samples: int = WAVESHAPER_CURVE_SAMPLES) -> np.ndarray:
    """ウェーブシェーパー用の歪みカーブを生成"""
    k = amount
    x = np.arange(samples) * 2.0 / samples - 1.0
    return (3.0 + k) * x * 20.0 * (np.pi / 180.0) / (np.pi + k * np.abs(x))


class WaveShaper:
    """カーブ参照型の歪み段。カーブ未設定時は恒等（バイパス）"""

    def __init__(self, samples: int = WAVESHAPER_CURVE_SAMPLES):
        self._samples = samples
        self._grid = np.linspace(-1.0, 1.0, samples)
        self._curve: Optional[np.ndarray] = None
        self.amount = 0.0

    @property
    def bypassed(self) -> bool:
        return self._curve is None

    def set_amount(self, amount: float) -> None:
        """歪み量を設定（0以下でバイパス）"""
        if float(amount) == self.amount and (amount > 0.0) != self.bypassed:
            return
        self.amount = float(amount)
        self._curve = make_distortion_curve(amount, self._samples) if amount > 0.0 else None

    def process(self, x: np.ndarray) -> np.ndarray:
        curve = self._curve
        if curve is None:
            return x
        return np.interp(x, self._grid, curve)


class StereoPanner:
    """等パワーステレオパンナー（ステレオ入力規則はWeb Audioの StereoPannerNode と同じ）"""

    def __init__(self, sample_rate: int, pan: float = 0.0):
        self.pan = ParamSmoother(pan, sample_rate, "pan")

    def process(self, stereo: np.ndarray) -> np.ndarray:
        n = stereo.shape[0]
        p = np.clip(self.pan.render(n), -1.0, 1.0)
        left, right = stereo[:, 0], stereo[:, 1]

        x = np.where(p <= 0.0, p + 1.0, p) * (np.pi / 2.0)
        gain_l = np.cos(x)
        gain_r = np.sin(x)

        out = np.empty_like(stereo)
        out[:, 0] = np.where(p <= 0.0, left + right * gain_l, left * gain_l)
        out[:, 1] = np.where(p <= 0.0, right * gain_r, right + left * gain_r)
        return out


# =============================================================================
# センド/リターン段
# =============================================================================

class FeedbackDelay:
    """フィードバック付きディレイ（グラフ内で唯一の閉路）"""

    def __init__(self, sample_rate: int, delay_time: float = DELAY_TIME,
                 max_time: float = DELAY_MAX_TIME, feedback: float = 0.0):
        self.sample_rate = sample_rate
        self._buffer = np.zeros(int(max_time * sample_rate))
        self._delay = int(round(delay_time * sample_rate))
        self._write = 0
        self.feedback = ParamSmoother(feedback, sample_rate, "delay_feedback")

    @property
    def delay_samples(self) -> int:
        return self._delay

    def process(self, x: np.ndarray) -> np.ndarray:
        """入力ブロックを書き込み、遅延出力を返す"""
        n = x.shape[0]
        if n > self._delay:
            raise ValueError(f"block of {n} samples exceeds delay of {self._delay}")

        size = self._buffer.shape[0]
        write_idx = (self._write + np.arange(n)) % size
        read_idx = (write_idx - self._delay) % size

        out = self._buffer[read_idx]
        fb = np.minimum(self.feedback.render(n), MAX_DELAY_FEEDBACK)
        self._buffer[write_idx] = x + fb * out
        self._write = (self._write + n) % size
        return out


def generate_impulse(sample_rate: int, duration: float, decay: float,
                     seed: Optional[int] = None) -> np.ndarray:
    """
    ステレオのノイズインパルス応答を生成

    Returns:
        形状 (2, L) の単位エネルギーに正規化されたインパルス
    """
    length = int(sample_rate * duration)
    rng = np.random.default_rng(seed)
    envelope = (1.0 - np.arange(length) / length) ** decay
    impulse = rng.uniform(-1.0, 1.0, (2, length)) * envelope
    impulse /= np.sqrt(np.sum(impulse ** 2, axis=1, keepdims=True))
    return impulse


class ConvolutionReverb:
    """一様分割 overlap-save FFT 畳み込みによるリバーブ（モノラル入力→ステレオ出力）"""

    def __init__(self, sample_rate: int, block_size: int,
                 duration: float = REVERB_IMPULSE_DURATION,
                 decay: float = REVERB_IMPULSE_DECAY,
                 seed: Optional[int] = None,
                 impulse: Optional[np.ndarray] = None):
        self.block_size = block_size
        if impulse is None:
            impulse = generate_impulse(sample_rate, duration, decay, seed)

        b = block_size
        partitions = max(1, math.ceil(impulse.shape[1] / b))
        padded = np.zeros((impulse.shape[0], partitions * b))
        padded[:, :impulse.shape[1]] = impulse

        # 各パーティションを 2B 点で変換: (channels, K, B+1)
        self._spectra = np.fft.rfft(padded.reshape(impulse.shape[0], partitions, b), n=2 * b, axis=2)
        self._fdl = np.zeros((partitions, b + 1), dtype=np.complex128)
        self._head = 0
        self._prev = np.zeros(b)
        self._partitions = partitions

    def process(self, x: np.ndarray) -> np.ndarray:
        b = self.block_size
        if x.shape[0] != b:
            raise ValueError(f"reverb expects blocks of {b} samples, got {x.shape[0]}")

        frame = np.concatenate([self._prev, x])
        self._prev = np.array(x, dtype=np.float64)

        self._head = (self._head + 1) % self._partitions
        self._fdl[self._head] = np.fft.rfft(frame)
        order = (self._head - np.arange(self._partitions)) % self._partitions

        acc = np.einsum('ckf,kf->cf', self._spectra, self._fdl[order])
        y = np.fft.irfft(acc, n=2 * b, axis=1)[:, b:]
        return y.T


# =============================================================================
# トポロジー
# =============================================================================

class VoiceBus(Protocol):
    """グラフの生成段を駆動するボイス群（ボイス管理側が実装）"""

    def render(self, n: int, vibrato_cents: np.ndarray) -> np.ndarray:
        ...

    def set_wave_blend(self, blend: float, time_constant: float) -> None:
        ...

    def set_pitch_bend(self, cents: float, time_constant: float) -> None:
        ...


ParamSetter = Callable[[float, float], None]


class SignalGraph(ABC):
    """固定トポロジーのシグナルグラフ基底クラス"""

    def __init__(self, sample_rate: int, block_size: int):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self._voices: Optional[VoiceBus] = None
        self._params: Dict[str, ParamSetter] = {}

    def attach_voices(self, voices: VoiceBus) -> None:
        """生成段を駆動するボイス群を接続"""
        self._voices = voices

    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(self._params)

    def apply_update(self, update: Mapping[str, float],
                     time_constant: float = SMOOTHING_TIME_CONSTANT) -> None:
        """
        パラメータ更新を各段のスムーザーへ適用

        トポロジーに存在しないパラメータは無視されます。
        """
        for name, value in update.items():
            setter = self._params.get(name)
            if setter is None:
                logger.debug(f"{type(self).__name__} has no parameter '{name}', ignored")
                continue
            setter(value, time_constant)

    def _set_wave_blend(self, value: float, tc: float) -> None:
        if self._voices is not None:
            self._voices.set_wave_blend(value, tc)

    def _set_pitch_bend(self, value: float, tc: float) -> None:
        if self._voices is not None:
            self._voices.set_pitch_bend(value, tc)

    def _render_voices(self, n: int, vibrato_cents: np.ndarray) -> np.ndarray:
        if self._voices is None:
            return np.zeros(n)
        return self._voices.render(n, vibrato_cents)

    @abstractmethod
    def render(self, n: int) -> np.ndarray:
        """n サンプルのステレオ出力 (n, 2) を生成"""
        pass


class PadSignalGraph(SignalGraph):
    """
    ポリフォニックパッド用トポロジー

    voices → lowpass → waveshaper → [delay dry + delay wet] →
    [reverb dry + reverb wet] → panner → master
    """

    def __init__(self, sample_rate: int, block_size: int,
                 master_gain: float = MASTER_GAIN_DEFAULT, seed: Optional[int] = None):
        super().__init__(sample_rate, block_size)
        sr = sample_rate

        self.lfo = Lfo(sr)
        self.filter = BiquadFilter(FilterKind.LOWPASS, sr, FILTER_CUTOFF_DEFAULT, FILTER_Q_DEFAULT)
        self.shaper = WaveShaper()
        self.delay = FeedbackDelay(sr)
        self.delay_dry = Gain(1.0, sr, "delay_dry")
        self.delay_wet = Gain(DELAY_WET_DEFAULT, sr, "delay_wet")
        self.reverb = ConvolutionReverb(sr, block_size, seed=seed)
        self.reverb_dry = Gain(1.0, sr, "reverb_dry")
        self.reverb_wet = Gain(0.0, sr, "reverb_wet")
        self.panner = StereoPanner(sr)
        self.master = Gain(master_gain, sr, "master")

        self._params = {
            "filter_cutoff": self.filter.cutoff.set_target,
            "filter_q": self.filter.q.set_target,
            "master_gain": self.master.gain.set_target,
            "vibrato_depth": self.lfo.depth.set_target,
            "reverb_wet": self.reverb_wet.gain.set_target,
            "reverb_dry": self.reverb_dry.gain.set_target,
            "delay_feedback": self.delay.feedback.set_target,
            "delay_wet": self.delay_wet.gain.set_target,
            "pan": self.panner.pan.set_target,
            "distortion_amount": lambda value, tc: self.shaper.set_amount(value),
            "wave_blend": self._set_wave_blend,
            "pitch_bend": self._set_pitch_bend,
        }

    def render(self, n: int) -> np.ndarray:
        vibrato = self.lfo.render(n)
        x = self._render_voices(n, vibrato)

        x = self.filter.process(x)
        x = self.shaper.process(x)

        delayed = self.delay.process(x)
        post_delay = self.delay_dry.process(x) + self.delay_wet.process(delayed)

        wet = self.reverb_wet.process(self.reverb.process(post_delay))
        dry = self.reverb_dry.process(post_delay)
        stereo = wet + dry[:, None]

        return self.master.process(self.panner.process(stereo))


class BowedSignalGraph(SignalGraph):
    """
    モノフォニック弓奏用トポロジー

    voice (osc pair + filtered noise → body) → resonant lowpass →
    dry + delay send + reverb send → master
    """

    def __init__(self, sample_rate: int, block_size: int,
                 master_gain: float = MASTER_GAIN_DEFAULT, seed: Optional[int] = None):
        super().__init__(sample_rate, block_size)
        sr = sample_rate

        self.lfo = Lfo(sr)
        self.filter = BiquadFilter(FilterKind.LOWPASS, sr, FILTER_CUTOFF_DEFAULT, 2.0)
        self.dry = Gain(1.0, sr, "dry")
        self.delay = FeedbackDelay(sr)
        self.delay_wet = Gain(0.1, sr, "delay_wet")
        self.reverb = ConvolutionReverb(sr, block_size, seed=seed)
        self.reverb_wet = Gain(0.3, sr, "reverb_wet")
        self.master = Gain(master_gain, sr, "master")

        self._params = {
            "filter_cutoff": self.filter.cutoff.set_target,
            "filter_q": self.filter.q.set_target,
            "master_gain": self.master.gain.set_target,
            "vibrato_depth": self.lfo.depth.set_target,
            "reverb_wet": self.reverb_wet.gain.set_target,
            "reverb_dry": self.dry.gain.set_target,
            "delay_feedback": self.delay.feedback.set_target,
            "delay_wet": self.delay_wet.gain.set_target,
            "wave_blend": self._set_wave_blend,
            "pitch_bend": self._set_pitch_bend,
        }

    def render(self, n: int) -> np.ndarray:
        vibrato = self.lfo.render(n)
        x = self.filter.process(self._render_voices(n, vibrato))

        dry = self.dry.process(x)
        delayed = self.delay_wet.process(self.delay.process(x))
        wet = self.reverb_wet.process(self.reverb.process(x))

        stereo = wet + (dry + delayed)[:, None]
        return self.master.process(stereo)
