#!/usr/bin/env python3
"""
モーション処理 - 姿勢融合

生の姿勢サンプルを間引き、キャリブレーションを減算し、フルスケール角で正規化して
[-1, 1] にクランプした後、一次ローパスで平滑化します。
方位軸は初回サンプルを基準とした符号付き角度差（±180°に折り返し）として扱います。
"""

from typing import Optional

from .calibration import Calibration
from .types import MotionValues, OrientationSample
from ..config import MotionConfig
from .. import get_logger

logger = get_logger(__name__)


def clamp_unit(v: float) -> float:
    return min(max(v, -1.0), 1.0)


def wrap_degrees(delta: float) -> float:
    """角度差を [-180, 180] に折り返す"""
    if delta > 180.0:
        delta -= 360.0
    if delta < -180.0:
        delta += 360.0
    return delta


class MotionFusion:
    """姿勢サンプル → 正規化軸値"""

    def __init__(self, config: Optional[MotionConfig] = None):
        self.config = config or MotionConfig()
        self.calibration = Calibration()

        self._alpha_baseline: Optional[float] = None
        self._last_processed: Optional[float] = None
        self._alpha = 0.0
        self._beta = 0.0
        self._gamma = 0.0

        self.stats = {
            'samples_received': 0,
            'samples_processed': 0,
        }

    @property
    def values(self) -> MotionValues:
        """直近の平滑化済み軸値"""
        return MotionValues(self._alpha, self._beta, self._gamma, self._last_processed or 0.0)

    @property
    def alpha_baseline(self) -> Optional[float]:
        return self._alpha_baseline

    def set_calibration(self, calibration: Calibration) -> None:
        self.calibration = calibration

    def normalize(self, sample: OrientationSample) -> MotionValues:
        """平滑化前の正規化値（キャリブレーション減算済み）"""
        full_scale = self.config.full_scale_deg
        beta = clamp_unit((sample.beta_or_zero - self.calibration.beta) / full_scale)
        gamma = clamp_unit((sample.gamma_or_zero - self.calibration.gamma) / full_scale)

        alpha = 0.0
        if sample.alpha is not None:
            if self._alpha_baseline is None:
                self._alpha_baseline = sample.alpha
                logger.debug(f"Alpha baseline captured: {sample.alpha:.1f}°")
            alpha = clamp_unit(wrap_degrees(sample.alpha - self._alpha_baseline) / full_scale)

        return MotionValues(alpha, beta, gamma, sample.timestamp)

    def process(self, sample: OrientationSample) -> Optional[MotionValues]:
        """
        サンプルを処理

        Returns:
            平滑化後の軸値。間引かれた場合は None
        """
        self.stats['samples_received'] += 1
        if (self._last_processed is not None
                and sample.timestamp - self._last_processed < self.config.throttle_s):
            return None
        self._last_processed = sample.timestamp
        self.stats['samples_processed'] += 1

        raw = self.normalize(sample)
        k = self.config.smoothing
        self._alpha += k * (raw.alpha - self._alpha)
        self._beta += k * (raw.beta - self._beta)
        self._gamma += k * (raw.gamma - self._gamma)
        return self.values

    def reset(self) -> None:
        """平滑化状態と方位基準をリセット（キャリブレーションは保持）"""
        self._alpha_baseline = None
        self._last_processed = None
        self._alpha = self._beta = self._gamma = 0.0
