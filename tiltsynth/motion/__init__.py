"""
モーション処理フェーズ

センサーストリームから届く姿勢・加速度を、正規化された軸値と弓状態に変換します。
"""

from .types import OrientationSample, AccelerationSample, MotionValues, SensorState
from .stream import (
    ISensorStream, MockSensorStream, PermissionResult, IPermissionProvider, StaticPermission,
)
from .calibration import Calibration, capture_calibration
from .fusion import MotionFusion
from .bow import BowState, BowVelocityEstimator, BowedMotionFusion
from .watchdog import SensorWatchdog

__all__ = [
    'OrientationSample',
    'AccelerationSample',
    'MotionValues',
    'SensorState',
    'ISensorStream',
    'MockSensorStream',
    'PermissionResult',
    'IPermissionProvider',
    'StaticPermission',
    'Calibration',
    'capture_calibration',
    'MotionFusion',
    'BowState',
    'BowVelocityEstimator',
    'BowedMotionFusion',
    'SensorWatchdog',
]
