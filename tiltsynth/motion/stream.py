#!/usr/bin/env python3
"""
モーション入力 - センサーストリームと許可取得の抽象化

ホスト側のセンサー配信と許可ダイアログは外部コラボレーターとして扱い、
ここではそのインターフェースと、テスト/デモ用のモック実装を提供します。
"""

import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .types import AccelerationSample, OrientationSample
from .. import get_logger

logger = get_logger(__name__)

OrientationCallback = Callable[[OrientationSample], None]
AccelerationCallback = Callable[[AccelerationSample], None]
Unsubscribe = Callable[[], None]


class PermissionResult(Enum):
    """センサー許可要求の結果"""
    GRANTED = "granted"
    DENIED = "denied"
    NOT_NEEDED = "not-needed"
    NO_SENSOR = "no-sensor"

    @property
    def allows_sensors(self) -> bool:
        return self in (PermissionResult.GRANTED, PermissionResult.NOT_NEEDED)


class IPermissionProvider(ABC):
    """許可取得コラボレーター"""

    @abstractmethod
    def request_permission(self) -> PermissionResult:
        pass


class StaticPermission(IPermissionProvider):
    """固定の結果を返す許可プロバイダー"""

    def __init__(self, result: PermissionResult = PermissionResult.NOT_NEEDED):
        self.result = result
        self.requests = 0

    def request_permission(self) -> PermissionResult:
        self.requests += 1
        return self.result


class ISensorStream(ABC):
    """センサーストリームのインターフェース"""

    @abstractmethod
    def subscribe(
        self,
        on_orientation: Optional[OrientationCallback] = None,
        on_acceleration: Optional[AccelerationCallback] = None
    ) -> Unsubscribe:
        """
        コールバックを登録

        Returns:
            登録解除関数（複数回呼んでも安全）
        """
        pass

    def start(self) -> bool:
        """配信を開始（必要なストリームのみ実装）"""
        return True

    def stop(self) -> None:
        """配信を停止"""
        pass


class ListenerRegistry:
    """コールバック登録の管理（スレッドセーフ）"""

    def __init__(self):
        self._lock = threading.Lock()
        self._orientation: List[OrientationCallback] = []
        self._acceleration: List[AccelerationCallback] = []

    def add(self, on_orientation: Optional[OrientationCallback],
            on_acceleration: Optional[AccelerationCallback]) -> Unsubscribe:
        with self._lock:
            if on_orientation is not None:
                self._orientation.append(on_orientation)
            if on_acceleration is not None:
                self._acceleration.append(on_acceleration)

        def unsubscribe() -> None:
            with self._lock:
                if on_orientation in self._orientation:
                    self._orientation.remove(on_orientation)
                if on_acceleration in self._acceleration:
                    self._acceleration.remove(on_acceleration)

        return unsubscribe

    def listeners(self) -> Tuple[Tuple[OrientationCallback, ...], Tuple[AccelerationCallback, ...]]:
        with self._lock:
            return tuple(self._orientation), tuple(self._acceleration)

    def emit_orientation(self, sample: OrientationSample) -> None:
        for callback in self.listeners()[0]:
            callback(sample)

    def emit_acceleration(self, sample: AccelerationSample) -> None:
        for callback in self.listeners()[1]:
            callback(sample)

    def count(self) -> int:
        orientation, acceleration = self.listeners()
        return len(orientation) + len(acceleration)


class MockSensorStream(ISensorStream):
    """
    同期プッシュ型のモックストリーム

    push_* を呼んだスレッドでそのままコールバックが実行されます。
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._registry = ListenerRegistry()
        self.running = False

    def subscribe(self, on_orientation=None, on_acceleration=None) -> Unsubscribe:
        return self._registry.add(on_orientation, on_acceleration)

    def start(self) -> bool:
        self.running = True
        return True

    def stop(self) -> None:
        self.running = False

    @property
    def listener_count(self) -> int:
        return self._registry.count()

    def push_orientation(self, alpha: Optional[float], beta: Optional[float],
                         gamma: Optional[float], timestamp: Optional[float] = None) -> OrientationSample:
        sample = OrientationSample(alpha, beta, gamma,
                                   timestamp if timestamp is not None else self._clock())
        self._registry.emit_orientation(sample)
        return sample

    def push_acceleration(self, x: Optional[float], y: Optional[float] = 0.0,
                          z: Optional[float] = 0.0, timestamp: Optional[float] = None) -> AccelerationSample:
        sample = AccelerationSample(x, y, z,
                                    timestamp if timestamp is not None else self._clock())
        self._registry.emit_acceleration(sample)
        return sample
