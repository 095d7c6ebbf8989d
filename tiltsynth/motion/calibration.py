#!/usr/bin/env python3
"""
モーション処理 - キャリブレーション

生の姿勢サンプルを1つ取り込み、傾き2軸のゼロ基準として保持します。
方位軸（alpha）の基準はモーション融合側が初回サンプルで独立に取得するため、
ここでは扱いません。
"""

import threading
from dataclasses import dataclass
from typing import List

from .stream import ISensorStream
from .types import OrientationSample
from ..constants import CALIBRATION_TIMEOUT_S
from .. import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Calibration:
    """傾き2軸のオフセット（度）。以後の生サンプルから減算される"""
    beta: float = 0.0
    gamma: float = 0.0

    @classmethod
    def from_sample(cls, sample: OrientationSample) -> "Calibration":
        return cls(beta=sample.beta_or_zero, gamma=sample.gamma_or_zero)

    @property
    def is_zero(self) -> bool:
        return self.beta == 0.0 and self.gamma == 0.0


def capture_calibration(stream: ISensorStream,
                        timeout: float = CALIBRATION_TIMEOUT_S) -> Calibration:
    """
    次に届く姿勢サンプルを基準として取り込む

    Args:
        stream: センサーストリーム
        timeout: 待機上限（秒）。超過時はゼロオフセットを返す

    Returns:
        新しいキャリブレーション
    """
    received: List[OrientationSample] = []
    arrived = threading.Event()

    def on_orientation(sample: OrientationSample) -> None:
        if not received:
            received.append(sample)
            arrived.set()

    unsubscribe = stream.subscribe(on_orientation=on_orientation)
    try:
        arrived.wait(timeout)
    finally:
        unsubscribe()

    if not received:
        logger.warning(f"No orientation sample within {timeout:.2f}s, using zero calibration")
        return Calibration()

    calibration = Calibration.from_sample(received[0])
    logger.info(f"Calibrated: beta={calibration.beta:.1f}°, gamma={calibration.gamma:.1f}°")
    return calibration
