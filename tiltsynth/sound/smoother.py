#!/usr/bin/env python3
"""
音響生成 - パラメータスムーザー

全ての制御値はこのクラスを通して音響グラフに届きます。
目標値への指数接近（ジッパーノイズ防止）と、ボイスのアタック/リリース用の
指数ランプを提供します。

書き込み側（センサー/UIスレッド）はランプ記述を丸ごと差し替えるだけで、
読み出し側（オーディオスレッド）が次ブロックの先頭でそれを採用します。
最後の書き込みが勝つため、ロックは不要です。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from ..constants import ENVELOPE_FLOOR, SMOOTHING_TIME_CONSTANT


class RampKind(Enum):
    """ランプ種別"""
    HOLD = "hold"                 # 一定値
    TARGET = "target"             # 時定数による指数接近
    EXPONENTIAL = "exponential"   # 指定時間で終点に到達する指数ランプ


@dataclass(frozen=True)
class RampSpec:
    """ランプ記述（不変。書き込みごとに新しいインスタンスを生成）"""
    kind: RampKind
    target: float
    length: float = 0.0           # サンプル数（TARGETは時定数、EXPONENTIALは所要時間）
    start: Optional[float] = None  # 採用時に現在値をこの値へジャンプ


class ParamSmoother:
    """単一パラメータの所有者となるスムーザー"""

    def __init__(self, initial: float, sample_rate: int, name: str = ""):
        """
        初期化

        Args:
            initial: 初期値
            sample_rate: サンプリングレート
            name: パラメータ名（ログ用）
        """
        self.name = name
        self.sample_rate = sample_rate
        self._value = float(initial)
        self._pending = RampSpec(RampKind.HOLD, float(initial))
        self._active = self._pending
        self._ramp_start = self._value
        self._ramp_pos = 0

    @property
    def value(self) -> float:
        """直近にレンダリングされた値"""
        return self._value

    @property
    def target(self) -> float:
        """現在のランプの終点"""
        return self._pending.target

    def set_target(self, target: float, time_constant: float = SMOOTHING_TIME_CONSTANT) -> None:
        """
        目標値への指数接近を設定

        Args:
            target: 目標値
            time_constant: 時定数（秒）。0なら即時ジャンプ
        """
        if time_constant <= 0.0:
            self._pending = RampSpec(RampKind.HOLD, float(target))
        else:
            self._pending = RampSpec(
                RampKind.TARGET, float(target), time_constant * self.sample_rate
            )

    def exponential_ramp(self, target: float, duration: float) -> None:
        """
        現在値から目標値へ指定時間で到達する指数ランプを設定

        始点・終点はどちらも ENVELOPE_FLOOR で下限処理されます。
        """
        self._pending = RampSpec(
            RampKind.EXPONENTIAL,
            max(float(target), ENVELOPE_FLOOR),
            max(duration * self.sample_rate, 1.0),
        )

    def set_value(self, value: float) -> None:
        """即時代入（ボイス生成時のみ使用）"""
        self._value = float(value)
        self._pending = RampSpec(RampKind.HOLD, float(value), start=float(value))

    def decay_from(self, start: float, target: float, time_constant: float) -> None:
        """start へジャンプしてから target へ指数接近（アクセント用）"""
        self._pending = RampSpec(
            RampKind.TARGET, float(target),
            max(time_constant * self.sample_rate, 1.0), start=float(start),
        )

    def render(self, n: int) -> np.ndarray:
        """
        次の n サンプル分の値を生成して内部状態を進める

        Args:
            n: サンプル数

        Returns:
            長さ n の値配列
        """
        spec = self._pending
        if spec is not self._active:
            self._active = spec
            if spec.start is not None:
                self._value = spec.start
            self._ramp_start = self._value
            self._ramp_pos = 0

        if n <= 0:
            return np.empty(0)

        if spec.kind is RampKind.HOLD:
            values = np.full(n, spec.target)
        elif spec.kind is RampKind.TARGET:
            decay = np.exp(-np.arange(1, n + 1) / spec.length)
            values = spec.target + (self._value - spec.target) * decay
        else:
            start = max(self._ramp_start, ENVELOPE_FLOOR)
            t = np.minimum((self._ramp_pos + np.arange(1, n + 1)) / spec.length, 1.0)
            values = start * (spec.target / start) ** t
            self._ramp_pos += n

        self._value = float(values[-1])
        return values

    def __repr__(self) -> str:
        return f"ParamSmoother({self.name!r}, value={self._value:.4f}, target={self.target:.4f})"
