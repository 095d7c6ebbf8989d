#!/usr/bin/env python3
"""
tiltsynth 設定管理システム

プロジェクト全体で使用される設定値を統一管理し、
Magic Numberのハードコーディングを解消します。
"""

import yaml
from dataclasses import dataclass, field, asdict, fields
from typing import Optional, Dict, Any, List
from pathlib import Path

from . import get_logger
from .constants import (
    DEFAULT_SAMPLE_RATE, DEFAULT_BUFFER_SIZE, DEFAULT_CHANNELS,
    MASTER_GAIN_DEFAULT, VOICE_ATTACK_TIME, VOICE_RELEASE_TIME, VOICE_STOP_TIME,
    TILT_FULL_SCALE_DEG, MOTION_THROTTLE_S, MOTION_SMOOTHING, SENSOR_WATCHDOG_S,
    WATCHDOG_POLL_S, BOW_DAMPING, BOW_VELOCITY_CEILING, BOW_DEAD_ZONE,
    BOW_HYSTERESIS, BOW_MIN_ONSET_GAP_S, BOW_FLIP_CONFIRM_UPDATES,
    BOW_FALLBACK_ENERGY, DELAY_TIME,
)

logger = get_logger(__name__)


@dataclass
class AudioConfig:
    """音響システム設定"""
    # エンジン設定
    sample_rate: int = DEFAULT_SAMPLE_RATE
    buffer_size: int = DEFAULT_BUFFER_SIZE
    channels: int = DEFAULT_CHANNELS
    backend: str = "auto"               # auto / sounddevice / pygame / null
    device: Optional[str] = None
    latency: str = "low"

    master_volume: float = MASTER_GAIN_DEFAULT


@dataclass
class VoiceConfig:
    """ボイス管理設定"""
    max_polyphony: int = 16
    voice_steal_strategy: str = "oldest"
    default_velocity: float = 0.9

    waveform_a: str = "sawtooth"
    waveform_b: str = "square"

    attack_time: float = VOICE_ATTACK_TIME
    release_time: float = VOICE_RELEASE_TIME
    stop_time: float = VOICE_STOP_TIME


@dataclass
class MotionConfig:
    """姿勢センサー処理設定"""
    full_scale_deg: float = TILT_FULL_SCALE_DEG
    throttle_s: float = MOTION_THROTTLE_S
    smoothing: float = MOTION_SMOOTHING
    watchdog_s: float = SENSOR_WATCHDOG_S
    watchdog_poll_s: float = WATCHDOG_POLL_S


@dataclass
class BowConfig:
    """弓速度推定設定"""
    accel_axis: str = "x"               # x / y / z
    invert_axis: bool = False
    damping: float = BOW_DAMPING
    velocity_ceiling: float = BOW_VELOCITY_CEILING
    dead_zone: float = BOW_DEAD_ZONE
    hysteresis: float = BOW_HYSTERESIS
    min_onset_gap_s: float = BOW_MIN_ONSET_GAP_S
    flip_confirm_updates: int = BOW_FLIP_CONFIRM_UPDATES
    fallback_energy: float = BOW_FALLBACK_ENERGY


@dataclass
class MappingConfig:
    """軸→制御ターゲットの割り当て設定（ターゲット名で記述）"""
    beta: str = "filter-cutoff"
    gamma: str = "vibrato-depth"
    alpha: str = "pan"

    beta_candidates: List[str] = field(default_factory=lambda: [
        "filter-cutoff", "wave-blend", "volume",
    ])
    gamma_candidates: List[str] = field(default_factory=lambda: [
        "vibrato-depth", "resonance", "reverb", "distortion",
    ])
    alpha_candidates: List[str] = field(default_factory=lambda: [
        "pan", "delay-feedback", "pitch-bend",
    ])


@dataclass
class OscConfig:
    """OSCセンサーストリーム設定"""
    host: str = "0.0.0.0"
    port: int = 9000
    orientation_address: str = "/orientation"
    acceleration_address: str = "/acceleration"


@dataclass
class TiltSynthConfig:
    """プロジェクト全体設定"""
    audio: AudioConfig = field(default_factory=AudioConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    bow: BowConfig = field(default_factory=BowConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)
    osc: OscConfig = field(default_factory=OscConfig)

    mode: str = "pad"                   # pad / bowed

    # ログ設定
    log_level: str = "INFO"
    log_format_style: str = "detailed"

    def validate(self) -> None:
        """起動前に検出できる設定エラーをValueErrorとして送出"""
        if self.mode not in ("pad", "bowed"):
            raise ValueError(f"Unknown synth mode: {self.mode}")
        if self.audio.channels not in (1, 2):
            raise ValueError(f"channels must be 1 or 2: {self.audio.channels}")
        if self.voice.voice_steal_strategy not in ("oldest", "quietest"):
            raise ValueError(f"Unknown voice steal strategy: {self.voice.voice_steal_strategy}")
        if self.audio.buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive: {self.audio.buffer_size}")
        # フィードバックディレイはブロック単位でベクトル処理するため
        if self.audio.buffer_size >= int(DELAY_TIME * self.audio.sample_rate):
            raise ValueError("buffer_size must be shorter than the delay line")
        if self.bow.accel_axis not in ("x", "y", "z"):
            raise ValueError(f"Unknown acceleration axis: {self.bow.accel_axis}")
        if not 0.0 < self.bow.damping < 1.0:
            raise ValueError(f"bow damping must be in (0, 1): {self.bow.damping}")


_SECTIONS = ("audio", "voice", "motion", "bow", "mapping", "osc")


class ConfigManager:
    """設定管理クラス"""

    def __init__(self):
        self._config: Optional[TiltSynthConfig] = None
        self._config_file_path: Optional[Path] = None

    def load_config(self, config_file: Optional[Path] = None) -> TiltSynthConfig:
        """
        設定ファイルを読み込み

        Args:
            config_file: 設定ファイルパス（Noneの場合はデフォルト設定）

        Returns:
            読み込まれた設定
        """
        if config_file is None:
            project_root = Path(__file__).parent.parent
            default_paths = [
                project_root / "tiltsynth.yaml",
                project_root / "config.yaml",
                Path.home() / ".tiltsynth" / "config.yaml"
            ]

            for path in default_paths:
                if path.exists():
                    config_file = path
                    break

        if config_file and config_file.exists():
            try:
                with open(config_file, 'r', encoding='utf-8') as f:
                    config_dict = yaml.safe_load(f) or {}

                self._config = self._dict_to_config(config_dict)
                self._config_file_path = config_file
                logger.info(f"Configuration loaded from {config_file}")

            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load config from {config_file}: {e}")
                logger.info("Using default configuration")
                self._config = TiltSynthConfig()
        else:
            logger.info("No config file found, using default configuration")
            self._config = TiltSynthConfig()

        return self._config

    def save_config(self, config_file: Optional[Path] = None) -> bool:
        """
        設定をファイルに保存

        Args:
            config_file: 保存先ファイルパス

        Returns:
            保存成功したかどうか
        """
        if self._config is None:
            logger.error("No configuration to save")
            return False

        if config_file is None:
            config_file = self._config_file_path or Path("tiltsynth.yaml")

        try:
            config_dict = self._config_to_dict(self._config)

            config_file.parent.mkdir(parents=True, exist_ok=True)

            with open(config_file, 'w', encoding='utf-8') as f:
                yaml.dump(config_dict, f, default_flow_style=False,
                          allow_unicode=True, indent=2)

            logger.info(f"Configuration saved to {config_file}")
            return True

        except OSError as e:
            logger.error(f"Failed to save config to {config_file}: {e}")
            return False

    def get_config(self) -> TiltSynthConfig:
        """現在の設定を取得（未読み込みなら探索パスから読み込む）"""
        if self._config is None:
            self._config = self.load_config()
        return self._config

    def _dict_to_config(self, config_dict: Dict[str, Any]) -> TiltSynthConfig:
        """辞書を設定オブジェクトに変換（未知のキーは無視）"""
        config = TiltSynthConfig()

        for section in _SECTIONS:
            section_dict = config_dict.get(section)
            if not isinstance(section_dict, dict):
                continue
            target = getattr(config, section)
            known = {f.name for f in fields(target)}
            for key, value in section_dict.items():
                if key in known:
                    setattr(target, key, value)
                else:
                    logger.debug(f"Ignoring unknown config key: {section}.{key}")

        for key in ("mode", "log_level", "log_format_style"):
            if key in config_dict:
                setattr(config, key, config_dict[key])

        return config

    def _config_to_dict(self, config: TiltSynthConfig) -> Dict[str, Any]:
        """設定オブジェクトを辞書に変換"""
        return asdict(config)


# グローバル設定マネージャー
_config_manager: Optional[ConfigManager] = None

def get_config_manager() -> ConfigManager:
    """グローバル設定マネージャーを取得"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager

def get_config() -> TiltSynthConfig:
    """現在の設定を取得"""
    return get_config_manager().get_config()

def load_config(config_file: Optional[Path] = None) -> TiltSynthConfig:
    """設定を読み込み"""
    return get_config_manager().load_config(config_file)

def save_config(config_file: Optional[Path] = None) -> bool:
    """設定を保存"""
    return get_config_manager().save_config(config_file)
