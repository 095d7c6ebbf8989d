#!/usr/bin/env python3
"""
モーション処理 - 弓速度推定

1軸の加速度を積分して弓速度とし、弓エネルギー・弓方向・オンセット（弓返し）を
導出する状態機械です。

- 減衰は damping^(dt·60) で適用し、減衰速度をサンプリングレートに依存させない
- 方向はヒステリシス付きで保持し、同符号が連続した場合のみ反転する
- オンセットは方向反転時に、最小間隔を満たす場合のみ発火する
- 一定時間サンプルが途絶えるとウォッチドッグがエネルギーを0に落とす
"""

from dataclasses import dataclass
from typing import Optional

from .fusion import MotionFusion
from .types import AccelerationSample, OrientationSample, SensorState
from ..config import BowConfig, MotionConfig
from ..constants import BOW_REFERENCE_RATE, BOW_MAX_DT_S
from .. import get_logger

logger = get_logger(__name__)

DEFAULT_DIRECTION = 1


@dataclass(frozen=True)
class BowState:
    """推定器の出力"""
    energy: float
    direction: int
    onset: bool
    velocity: float = 0.0


class BowVelocityEstimator:
    """加速度 → 弓エネルギー/方向/オンセット"""

    def __init__(self, config: Optional[BowConfig] = None,
                 watchdog_s: Optional[float] = None):
        self.config = config or BowConfig()
        self.watchdog_s = watchdog_s if watchdog_s is not None else MotionConfig().watchdog_s
        self.invert = self.config.invert_axis

        self.velocity = 0.0
        self.energy = 0.0
        self.direction = DEFAULT_DIRECTION

        self._last_timestamp: Optional[float] = None
        self._last_seen: Optional[float] = None
        self._last_onset: Optional[float] = None
        self._pending_sign = 0
        self._pending_count = 0
        self._silenced = False

        self.stats = {
            'updates': 0,
            'onsets': 0,
            'suppressed_onsets': 0,
            'watchdog_trips': 0,
        }

    @property
    def state(self) -> BowState:
        return BowState(self.energy, self.direction, False, self.velocity)

    def toggle_invert(self) -> bool:
        """軸反転フラグを切り替え、新しい値を返す"""
        self.invert = not self.invert
        logger.info(f"Bow axis invert: {self.invert}")
        return self.invert

    def update(self, sample: AccelerationSample, now: Optional[float] = None) -> BowState:
        """
        加速度サンプルで状態を更新

        Args:
            sample: 加速度サンプル
            now: 受信時刻（ウォッチドッグ用）。None ならサンプルのタイムスタンプ
        """
        cfg = self.config
        ts = sample.timestamp
        self._last_seen = now if now is not None else ts
        self._silenced = False
        self.stats['updates'] += 1

        if self._last_timestamp is None:
            dt = 1.0 / BOW_REFERENCE_RATE
        else:
            dt = min(max(ts - self._last_timestamp, 0.0), BOW_MAX_DT_S)
        self._last_timestamp = ts

        accel = sample.axis(cfg.accel_axis)
        if self.invert:
            accel = -accel

        v = self.velocity + accel * dt
        v *= cfg.damping ** (dt * BOW_REFERENCE_RATE)
        v = min(max(v, -cfg.velocity_ceiling), cfg.velocity_ceiling)
        self.velocity = v

        magnitude = abs(v) / cfg.velocity_ceiling
        if magnitude < cfg.dead_zone:
            self.energy = 0.0
        else:
            self.energy = (magnitude - cfg.dead_zone) / (1.0 - cfg.dead_zone)

        onset = self._update_direction(v, ts)
        return BowState(self.energy, self.direction, onset, v)

    def _update_direction(self, velocity: float, ts: float) -> bool:
        cfg = self.config
        sign = 1 if velocity > 0.0 else -1 if velocity < 0.0 else 0

        if sign == 0 or sign == self.direction:
            self._pending_sign = 0
            self._pending_count = 0
            return False

        if sign == self._pending_sign:
            self._pending_count += 1
        else:
            self._pending_sign = sign
            self._pending_count = 1

        if self._pending_count < cfg.flip_confirm_updates or self.energy <= cfg.hysteresis:
            return False

        self.direction = sign
        self._pending_sign = 0
        self._pending_count = 0

        if self._last_onset is not None and ts - self._last_onset < cfg.min_onset_gap_s:
            self.stats['suppressed_onsets'] += 1
            logger.debug(f"Onset suppressed ({(ts - self._last_onset) * 1000:.0f}ms since last)")
            return False

        self._last_onset = ts
        self.stats['onsets'] += 1
        logger.debug(f"Bow onset, direction={sign:+d}")
        return True

    def check_watchdog(self, now: float) -> bool:
        """
        サンプル途絶を検査

        Returns:
            今回の呼び出しでエネルギーを0に落とした場合True
        """
        if self._last_seen is None or self._silenced:
            return False
        if now - self._last_seen <= self.watchdog_s:
            return False

        self.velocity = 0.0
        self.energy = 0.0
        self.direction = DEFAULT_DIRECTION
        self._pending_sign = 0
        self._pending_count = 0
        self._last_timestamp = None
        self._silenced = True
        self.stats['watchdog_trips'] += 1
        logger.warning(f"No acceleration for {(now - self._last_seen) * 1000:.0f}ms, bow energy forced to 0")
        return True

    def reset(self) -> None:
        self.velocity = 0.0
        self.energy = 0.0
        self.direction = DEFAULT_DIRECTION
        self._last_timestamp = None
        self._last_seen = None
        self._last_onset = None
        self._pending_sign = 0
        self._pending_count = 0
        self._silenced = False


class BowedMotionFusion:
    """弓奏モード用: 姿勢融合の傾き2軸と弓速度推定を1つの SensorState にまとめる"""

    def __init__(self, motion_config: Optional[MotionConfig] = None,
                 bow_config: Optional[BowConfig] = None):
        motion_config = motion_config or MotionConfig()
        self.orientation = MotionFusion(motion_config)
        self.estimator = BowVelocityEstimator(bow_config, motion_config.watchdog_s)

    @property
    def tilt_x(self) -> float:
        return self.orientation.values.gamma

    @property
    def tilt_y(self) -> float:
        return self.orientation.values.beta

    def on_orientation(self, sample: OrientationSample) -> bool:
        """傾きを更新。間引かれなかった場合True"""
        return self.orientation.process(sample) is not None

    def on_acceleration(self, sample: AccelerationSample,
                        now: Optional[float] = None) -> SensorState:
        bow = self.estimator.update(sample, now)
        return SensorState(
            energy=bow.energy,
            direction=bow.direction,
            onset=bow.onset,
            tilt_x=self.tilt_x,
            tilt_y=self.tilt_y,
            timestamp=sample.timestamp,
        )

    def snapshot(self, timestamp: float = 0.0) -> SensorState:
        """現在値のスナップショット（オンセットなし）"""
        return SensorState(
            energy=self.estimator.energy,
            direction=self.estimator.direction,
            onset=False,
            tilt_x=self.tilt_x,
            tilt_y=self.tilt_y,
            timestamp=timestamp,
        )
