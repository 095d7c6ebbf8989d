#!/usr/bin/env python3
"""
音響生成 - 制御マッピング

正規化された軸値 v ∈ [-1, 1] から、シグナルグラフへのパラメータ更新への
変換を行う機能を提供します。各 ControlTarget は純関数で表現され、
TARGET_FUNCTIONS の表が唯一の数値契約となります。
"""

from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple

from .graph import SignalGraph
from ..config import MappingConfig
from ..constants import (
    SMOOTHING_TIME_CONSTANT, CUTOFF_MIN_HZ, CUTOFF_SWEEP_RATIO, VOLUME_MIN,
    VOLUME_RANGE, VIBRATO_MAX_CENTS, RESONANCE_MIN_Q, RESONANCE_Q_RANGE,
    REVERB_WET_SCALE, REVERB_DRY_DUCK, DISTORTION_BYPASS_THRESHOLD,
    DISTORTION_AMOUNT_SCALE, MAX_DELAY_FEEDBACK, DELAY_WET_OFFSET, DELAY_WET_CAP,
    PITCH_BEND_MAX_CENTS,
)
from ..motion.types import MotionValues, SensorState
from .. import get_logger

logger = get_logger(__name__)

ParameterUpdate = Dict[str, float]


class ControlTarget(Enum):
    """制御ターゲット（合成パラメータの次元）の列挙"""
    FILTER_CUTOFF = "filter-cutoff"
    VOLUME = "volume"
    WAVE_BLEND = "wave-blend"
    VIBRATO_DEPTH = "vibrato-depth"
    RESONANCE = "resonance"
    REVERB = "reverb"
    DISTORTION = "distortion"
    PAN = "pan"
    DELAY_FEEDBACK = "delay-feedback"
    PITCH_BEND = "pitch-bend"


class Axis(Enum):
    """物理軸の列挙"""
    BETA = "beta"       # 前後の傾き
    GAMMA = "gamma"     # 左右の傾き
    ALPHA = "alpha"     # ひねり（方位）


class MappingConfigError(ValueError):
    """軸割り当て設定の不整合"""
    pass


def _clamp(v: float) -> float:
    return min(max(float(v), -1.0), 1.0)


def filter_cutoff(v: float) -> ParameterUpdate:
    n = (v + 1.0) / 2.0
    return {"filter_cutoff": CUTOFF_MIN_HZ * CUTOFF_SWEEP_RATIO ** n}


def volume(v: float) -> ParameterUpdate:
    return {"master_gain": VOLUME_MIN + ((v + 1.0) / 2.0) * VOLUME_RANGE}


def wave_blend(v: float) -> ParameterUpdate:
    return {"wave_blend": (v + 1.0) / 2.0}


def vibrato_depth(v: float) -> ParameterUpdate:
    return {"vibrato_depth": abs(v) * VIBRATO_MAX_CENTS}


def resonance(v: float) -> ParameterUpdate:
    return {"filter_q": RESONANCE_MIN_Q + abs(v) * RESONANCE_Q_RANGE}


def reverb(v: float) -> ParameterUpdate:
    return {
        "reverb_wet": abs(v) * REVERB_WET_SCALE,
        "reverb_dry": 1.0 - abs(v) * REVERB_DRY_DUCK,
    }


def distortion(v: float) -> ParameterUpdate:
    # 閾値未満は恒等カーブ（バイパス）
    if abs(v) < DISTORTION_BYPASS_THRESHOLD:
        return {"distortion_amount": 0.0}
    return {"distortion_amount": abs(v) * DISTORTION_AMOUNT_SCALE}


def pan(v: float) -> ParameterUpdate:
    return {"pan": v}


def delay_feedback(v: float) -> ParameterUpdate:
    feedback = abs(v) * MAX_DELAY_FEEDBACK
    return {
        "delay_feedback": feedback,
        "delay_wet": min(feedback + DELAY_WET_OFFSET, DELAY_WET_CAP),
    }


def pitch_bend(v: float) -> ParameterUpdate:
    return {"pitch_bend": v * PITCH_BEND_MAX_CENTS}


TARGET_FUNCTIONS: Dict[ControlTarget, Callable[[float], ParameterUpdate]] = {
    ControlTarget.FILTER_CUTOFF: filter_cutoff,
    ControlTarget.VOLUME: volume,
    ControlTarget.WAVE_BLEND: wave_blend,
    ControlTarget.VIBRATO_DEPTH: vibrato_depth,
    ControlTarget.RESONANCE: resonance,
    ControlTarget.REVERB: reverb,
    ControlTarget.DISTORTION: distortion,
    ControlTarget.PAN: pan,
    ControlTarget.DELAY_FEEDBACK: delay_feedback,
    ControlTarget.PITCH_BEND: pitch_bend,
}


def evaluate_target(target: ControlTarget, v: float) -> ParameterUpdate:
    """入力を [-1, 1] にクランプしてターゲット関数を評価"""
    return TARGET_FUNCTIONS[target](_clamp(v))


def _parse_target(name: str) -> ControlTarget:
    try:
        return ControlTarget(name)
    except ValueError:
        raise MappingConfigError(f"Unknown control target: {name!r}") from None


class AxisMapping:
    """
    軸 → 制御ターゲットの割り当て

    各軸は固定の候補リストを持ち、cycle() で次の候補へ循環します。
    候補リストは軸間で互いに素でなければなりません。
    """

    def __init__(
        self,
        candidates: Mapping[Axis, Sequence[ControlTarget]],
        bindings: Optional[Mapping[Axis, ControlTarget]] = None
    ):
        self._candidates: Dict[Axis, Tuple[ControlTarget, ...]] = {
            axis: tuple(candidates.get(axis, ())) for axis in Axis
        }

        seen: Dict[ControlTarget, Axis] = {}
        for axis, targets in self._candidates.items():
            if not targets:
                raise MappingConfigError(f"Axis {axis.value} has no candidate targets")
            if len(set(targets)) != len(targets):
                raise MappingConfigError(f"Axis {axis.value} lists a target twice")
            for target in targets:
                if target in seen:
                    raise MappingConfigError(
                        f"Target {target.value} is a candidate for both "
                        f"{seen[target].value} and {axis.value}"
                    )
                seen[target] = axis

        self._bound: Dict[Axis, ControlTarget] = {}
        for axis in Axis:
            target = (bindings or {}).get(axis, self._candidates[axis][0])
            if target not in self._candidates[axis]:
                raise MappingConfigError(
                    f"Target {target.value} is not a candidate for axis {axis.value}"
                )
            self._bound[axis] = target

    @classmethod
    def from_config(cls, config: Optional[MappingConfig] = None) -> "AxisMapping":
        """設定（ターゲット名）から作成"""
        config = config or MappingConfig()
        candidates = {
            Axis.BETA: [_parse_target(n) for n in config.beta_candidates],
            Axis.GAMMA: [_parse_target(n) for n in config.gamma_candidates],
            Axis.ALPHA: [_parse_target(n) for n in config.alpha_candidates],
        }
        bindings = {
            Axis.BETA: _parse_target(config.beta),
            Axis.GAMMA: _parse_target(config.gamma),
            Axis.ALPHA: _parse_target(config.alpha),
        }
        return cls(candidates, bindings)

    def target_for(self, axis: Axis) -> ControlTarget:
        return self._bound[axis]

    def candidates_for(self, axis: Axis) -> Tuple[ControlTarget, ...]:
        return self._candidates[axis]

    def cycle(self, axis: Axis) -> ControlTarget:
        """軸の割り当てを次の候補へ進める（末尾の次は先頭）"""
        targets = self._candidates[axis]
        index = targets.index(self._bound[axis])
        self._bound[axis] = targets[(index + 1) % len(targets)]
        logger.info(f"Axis {axis.value} mapped to {self._bound[axis].value}")
        return self._bound[axis]

    def as_dict(self) -> Dict[str, str]:
        """表示用の {軸名: ターゲット名}"""
        return {axis.value: target.value for axis, target in self._bound.items()}


class ControlMapper:
    """パッドモード: 軸値を割り当て中のターゲット経由でグラフへ適用"""

    def __init__(
        self,
        graph: SignalGraph,
        mapping: Optional[AxisMapping] = None,
        time_constant: float = SMOOTHING_TIME_CONSTANT
    ):
        self.graph = graph
        self.mapping = mapping or AxisMapping.from_config()
        self.time_constant = time_constant

    def apply_target(self, target: ControlTarget, v: float) -> ParameterUpdate:
        update = evaluate_target(target, v)
        self.graph.apply_update(update, self.time_constant)
        return update

    def apply_motion(self, values: MotionValues) -> ParameterUpdate:
        """
        モーション値を適用

        Returns:
            適用したパラメータ更新（全軸分をまとめたもの）
        """
        applied: ParameterUpdate = {}
        for axis in Axis:
            target = self.mapping.target_for(axis)
            applied.update(self.apply_target(target, values.axis_value(axis.value)))
        return applied


class BowControlMapper:
    """弓奏モード: 傾き2軸と弓状態を固定の合成次元へ直接適用"""

    def __init__(self, graph: SignalGraph, voices,
                 time_constant: float = SMOOTHING_TIME_CONSTANT):
        self.graph = graph
        self.voices = voices
        self.time_constant = time_constant

    def apply_state(self, state: SensorState) -> ParameterUpdate:
        update = self.apply_tilt(state.tilt_x, state.tilt_y)
        self.voices.set_bow(state.energy, state.onset)
        return update

    def apply_tilt(self, tilt_x: float, tilt_y: float) -> ParameterUpdate:
        """弓エネルギーを変えずに傾きのみ適用"""
        update: ParameterUpdate = {}
        update.update(evaluate_target(ControlTarget.VIBRATO_DEPTH, tilt_x))
        update.update(evaluate_target(ControlTarget.FILTER_CUTOFF, tilt_y))
        self.graph.apply_update(update, self.time_constant)
        return update
