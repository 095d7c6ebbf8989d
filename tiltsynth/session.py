#!/usr/bin/env python3
"""
tiltsynth セッション

UI層が呼び出す唯一の窓口です。許可取得、音響エンジンの起動、センサー購読、
ウォッチドッグ、キャリブレーションを束ね、状態を SessionStatus として返します。

エラーは例外ではなく EngineState / MotionStatus とエラー文字列で報告されます。
teardown() 以後はどのコールバックも効果を持ちません。
"""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Union

from .config import TiltSynthConfig
from .motion.bow import BowedMotionFusion
from .motion.calibration import Calibration, capture_calibration
from .motion.fusion import MotionFusion
from .motion.stream import IPermissionProvider, ISensorStream, PermissionResult, Unsubscribe
from .motion.types import AccelerationSample, OrientationSample
from .motion.watchdog import SensorWatchdog
from .sound.backend import BackendType
from .sound.mapping import Axis, AxisMapping, BowControlMapper, ControlMapper, ControlTarget
from .sound.synth import AudioSynthesizer, EngineState
from .constants import CALIBRATION_TIMEOUT_S
from . import get_logger

logger = get_logger(__name__)


class SynthMode(Enum):
    """合成モード"""
    PAD = "pad"
    BOWED = "bowed"


class MotionStatus(Enum):
    """モーション入力の状態"""
    IDLE = "idle"                   # 未開始・停止済み
    ACTIVE = "active"               # センサー購読中
    DENIED = "denied"               # 許可拒否
    UNAVAILABLE = "unavailable"     # センサー無し


@dataclass(frozen=True)
class SessionStatus:
    """UI表示用の状態スナップショット"""
    started: bool
    engine_state: EngineState
    motion_status: MotionStatus
    mode: SynthMode
    mappings: Dict[str, str]
    current_note: Optional[int]
    bow_energy: float
    bow_direction: int
    active_voices: int
    inverted: bool
    error: Optional[str] = None


class SynthSession:
    """音響エンジンとモーション入力を束ねるセッション"""

    def __init__(
        self,
        config: Optional[TiltSynthConfig] = None,
        mode: Optional[Union[SynthMode, str]] = None,
        backend_type: Optional[BackendType] = None,
        stream: Optional[ISensorStream] = None,
        permission: Optional[IPermissionProvider] = None,
        clock: Callable[[], float] = time.monotonic,
        seed: Optional[int] = None
    ):
        """
        初期化

        設定の不整合（未知のモード、重複する候補リスト等）はここで送出されます。

        Args:
            config: プロジェクト設定
            mode: 合成モード（Noneなら設定値）
            backend_type: 出力バックエンド（Noneなら設定値）
            stream: センサーストリーム（Noneならモーション入力なし）
            permission: 許可取得コラボレーター（Noneなら許可不要扱い）
            clock: 単調増加時計（ウォッチドッグ用）
            seed: 乱数シード
        """
        self.config = config or TiltSynthConfig()
        self.mode = SynthMode(mode.value if isinstance(mode, SynthMode) else (mode or self.config.mode))
        self.config.validate()

        self.stream = stream
        self.permission = permission
        self._clock = clock

        self.synth = AudioSynthesizer(self.config, self.mode.value, backend_type, seed)
        self.mapping = AxisMapping.from_config(self.config.mapping)
        self.calibration = Calibration()

        if self.mode == SynthMode.BOWED:
            self.fusion: Union[MotionFusion, BowedMotionFusion] = BowedMotionFusion(
                self.config.motion, self.config.bow
            )
        else:
            self.fusion = MotionFusion(self.config.motion)

        self.mapper: Optional[Union[ControlMapper, BowControlMapper]] = None
        self.motion_status = MotionStatus.IDLE
        self.error: Optional[str] = None

        self._started = False
        self._torn_down = False
        self._stream_started = False
        self._unsubscribe: Optional[Unsubscribe] = None
        self._watchdog: Optional[SensorWatchdog] = None
        self._motion_lock = threading.Lock()

        logger.info(f"SynthSession created: mode={self.mode.value}")

    # ------------------------------------------------------------------
    # ライフサイクル
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._started and self.synth.is_running

    def start(self) -> bool:
        """
        許可取得 → 音響開始 → センサー購読 の順で開始

        Returns:
            音響エンジンが動作中ならTrue
        """
        if self._torn_down:
            logger.warning("start() after teardown ignored")
            return False
        if self._started:
            return self.synth.is_running

        result = self._request_permission()

        if not self.synth.start_engine():
            self.error = self.synth.error
            self._started = True
            return False

        if self.mode == SynthMode.BOWED:
            self.mapper = BowControlMapper(self.synth.graph, self.synth.voices)
        else:
            self.mapper = ControlMapper(self.synth.graph, self.mapping)

        if result.allows_sensors and self.stream is not None:
            self._attach_sensors()
        else:
            self.motion_status = (MotionStatus.DENIED if result == PermissionResult.DENIED
                                  else MotionStatus.UNAVAILABLE)
            logger.warning(f"Motion input inactive ({result.value}), discrete notes only")
            if self.mode == SynthMode.BOWED:
                self.synth.set_bow(self.config.bow.fallback_energy)

        self._started = True
        return True

    def _request_permission(self) -> PermissionResult:
        if self.stream is None:
            return PermissionResult.NO_SENSOR
        if self.permission is None:
            return PermissionResult.NOT_NEEDED
        try:
            result = self.permission.request_permission()
        except Exception:  # pylint: disable=broad-except
            logger.exception("Permission request failed")
            return PermissionResult.DENIED
        logger.info(f"Motion permission: {result.value}")
        return result

    def _attach_sensors(self) -> None:
        if not self.stream.start():
            self.motion_status = MotionStatus.UNAVAILABLE
            logger.warning("Sensor stream failed to start, discrete notes only")
            if self.mode == SynthMode.BOWED:
                self.synth.set_bow(self.config.bow.fallback_energy)
            return
        self._stream_started = True

        if self.mode == SynthMode.BOWED:
            self._unsubscribe = self.stream.subscribe(
                on_orientation=self._on_orientation,
                on_acceleration=self._on_acceleration,
            )
            self._watchdog = SensorWatchdog(
                self.check_watchdog, interval_s=self.config.motion.watchdog_poll_s
            )
            self._watchdog.start()
        else:
            self._unsubscribe = self.stream.subscribe(on_orientation=self._on_orientation)

        self.motion_status = MotionStatus.ACTIVE
        logger.info("Motion input active")

    def teardown(self) -> None:
        """全ボイスを無音化し、センサー購読とウォッチドッグを解除"""
        with self._motion_lock:
            if self._torn_down:
                return
            self._torn_down = True

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        if self._stream_started:
            self.stream.stop()
            self._stream_started = False

        self.synth.stop_engine()
        self.motion_status = MotionStatus.IDLE
        logger.info("SynthSession torn down")

    # ------------------------------------------------------------------
    # センサーコールバック（例外を外へ出さない）
    # ------------------------------------------------------------------

    def _on_orientation(self, sample: OrientationSample) -> None:
        with self._motion_lock:
            if self._torn_down or self.mapper is None:
                return
            try:
                if self.mode == SynthMode.BOWED:
                    if self.fusion.on_orientation(sample):
                        self.mapper.apply_tilt(self.fusion.tilt_x, self.fusion.tilt_y)
                else:
                    values = self.fusion.process(sample)
                    if values is not None:
                        self.mapper.apply_motion(values)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Orientation update failed")

    def _on_acceleration(self, sample: AccelerationSample) -> None:
        with self._motion_lock:
            if self._torn_down or self.mapper is None:
                return
            try:
                state = self.fusion.on_acceleration(sample, now=self._clock())
                self.mapper.apply_state(state)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Acceleration update failed")

    def check_watchdog(self) -> bool:
        """センサー途絶検査（ウォッチドッグスレッドから定期的に呼ばれる）"""
        with self._motion_lock:
            if self._torn_down or self.mode != SynthMode.BOWED:
                return False
            if self.fusion.estimator.check_watchdog(self._clock()):
                self.synth.set_bow(0.0)
                return True
            return False

    # ------------------------------------------------------------------
    # UI 呼び出し
    # ------------------------------------------------------------------

    def note_on(self, pitch: int, velocity: Optional[float] = None) -> bool:
        if self._torn_down:
            return False
        return self.synth.note_on(pitch, velocity)

    def note_off(self, pitch: int) -> bool:
        if self._torn_down:
            return False
        return self.synth.note_off(pitch)

    def all_off(self) -> None:
        if not self._torn_down:
            self.synth.all_off()

    def cycle_mapping(self, axis: Union[Axis, str]) -> Optional[ControlTarget]:
        """
        軸の割り当てを次の候補へ進める（パッドモードのみ）

        新しいターゲットには現在の軸値が直ちに適用されます。
        """
        if self._torn_down or self.mode != SynthMode.PAD:
            return None
        axis = axis if isinstance(axis, Axis) else Axis(axis)
        target = self.mapping.cycle(axis)
        if self.mapper is not None and self.motion_status == MotionStatus.ACTIVE:
            with self._motion_lock:
                self.mapper.apply_target(target, self.fusion.values.axis_value(axis.value))
        return target

    def calibrate(self, timeout: float = CALIBRATION_TIMEOUT_S) -> Calibration:
        """
        次の姿勢サンプルを傾きのゼロ基準として取り込む

        タイムアウト時はゼロオフセット。モーション入力が無効なら現在値を返す。
        """
        if self._torn_down or self.motion_status != MotionStatus.ACTIVE:
            logger.info("Calibration skipped, motion input inactive")
            return self.calibration

        calibration = capture_calibration(self.stream, timeout)
        with self._motion_lock:
            self.calibration = calibration
            orientation = (self.fusion.orientation if self.mode == SynthMode.BOWED
                           else self.fusion)
            orientation.set_calibration(calibration)
        return calibration

    def toggle_invert(self) -> bool:
        """弓の加速度軸の反転を切り替え（弓奏モードのみ）"""
        if self._torn_down or self.mode != SynthMode.BOWED:
            return False
        with self._motion_lock:
            return self.fusion.estimator.toggle_invert()

    @property
    def inverted(self) -> bool:
        if self.mode == SynthMode.BOWED:
            return self.fusion.estimator.invert
        return False

    def status(self) -> SessionStatus:
        """UI表示用の状態を取得"""
        voices = self.synth.voices
        if self.mode == SynthMode.BOWED:
            estimator = self.fusion.estimator
            if self.motion_status == MotionStatus.ACTIVE:
                energy = estimator.energy
            elif self.started:
                energy = self.config.bow.fallback_energy
            else:
                energy = 0.0
            direction = estimator.direction
            mappings = {"tilt-x": ControlTarget.VIBRATO_DEPTH.value,
                        "tilt-y": ControlTarget.FILTER_CUTOFF.value}
        else:
            energy = 0.0
            direction = 0
            mappings = self.mapping.as_dict()

        return SessionStatus(
            started=self.started and not self._torn_down,
            engine_state=self.synth.state,
            motion_status=self.motion_status,
            mode=self.mode,
            mappings=mappings,
            current_note=voices.current_note if voices is not None and self.synth.is_running else None,
            bow_energy=energy,
            bow_direction=direction,
            active_voices=voices.active_voice_count() if voices is not None else 0,
            inverted=self.inverted,
            error=self.error,
        )
