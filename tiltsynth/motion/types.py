#!/usr/bin/env python3
"""
モーション入力のデータ型定義

センサーストリームから届く生サンプルと、正規化後の軸値・弓状態を表します。
生サンプルの欠損フィールドは None で表現され、処理段で 0 として扱われます。
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OrientationSample:
    """生の姿勢サンプル（度）"""
    alpha: Optional[float]        # 方位 0..360
    beta: Optional[float]         # 前後の傾き -180..180
    gamma: Optional[float]        # 左右の傾き -90..90
    timestamp: float              # 秒

    @property
    def beta_or_zero(self) -> float:
        return self.beta if self.beta is not None else 0.0

    @property
    def gamma_or_zero(self) -> float:
        return self.gamma if self.gamma is not None else 0.0


@dataclass(frozen=True)
class AccelerationSample:
    """生の加速度サンプル（m/s^2、重力除去済み）"""
    x: Optional[float]
    y: Optional[float]
    z: Optional[float]
    timestamp: float

    def axis(self, name: str) -> float:
        """指定軸の値（欠損は0）"""
        value = getattr(self, name)
        return value if value is not None else 0.0


@dataclass(frozen=True)
class MotionValues:
    """正規化・平滑化された軸値（各 -1..1）"""
    alpha: float
    beta: float
    gamma: float
    timestamp: float = 0.0

    def axis_value(self, name: str) -> float:
        return getattr(self, name)


@dataclass(frozen=True)
class SensorState:
    """
    弓奏モードの更新ごとのスナップショット

    生成直後に制御マッパーで消費され、保持されません。
    """
    energy: float                 # 弓エネルギー 0..1
    direction: int                # 弓方向 ±1
    onset: bool                   # 弓返しアタック
    tilt_x: float                 # 平滑化済み左右傾き -1..1
    tilt_y: float                 # 平滑化済み前後傾き -1..1
    timestamp: float = 0.0
