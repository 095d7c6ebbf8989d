#!/usr/bin/env python3
"""
共通定数・設定値

音響グラフ、制御マッピング、モーション処理で使用される定数を一元管理します。
マッピング式の係数は挙動互換のため経験値をそのまま保持しています。
"""

from typing import Final

# =============================================================================
# 数値精度
# =============================================================================

# 指数ランプの下限（0へは指数収束しないため）
ENVELOPE_FLOOR: Final[float] = 1e-4

# =============================================================================
# オーディオ設定
# =============================================================================

DEFAULT_SAMPLE_RATE: Final[int] = 44100
DEFAULT_BUFFER_SIZE: Final[int] = 256
DEFAULT_CHANNELS: Final[int] = 2

# 音高変換（平均律）
A4_FREQUENCY: Final[float] = 440.0
A4_MIDI_NOTE: Final[int] = 69
CENTS_PER_OCTAVE: Final[float] = 1200.0

# =============================================================================
# パラメータスムージング
# =============================================================================

SMOOTHING_TIME_CONSTANT: Final[float] = 0.04   # 40ms
BOW_TIME_CONSTANT: Final[float] = 0.03         # 弓エネルギー追従
GLIDE_TIME_CONSTANT: Final[float] = 0.03       # モノフォニック音高グライド

VOICE_ATTACK_TIME: Final[float] = 0.02         # 20ms
VOICE_RELEASE_TIME: Final[float] = 0.06        # 60ms
VOICE_STOP_TIME: Final[float] = 0.08           # ノートオフから発振器停止まで

# =============================================================================
# 音響グラフ初期値
# =============================================================================

MASTER_GAIN_DEFAULT: Final[float] = 0.7
FILTER_CUTOFF_DEFAULT: Final[float] = 900.0
FILTER_Q_DEFAULT: Final[float] = 0.7
DELAY_TIME: Final[float] = 0.3
DELAY_MAX_TIME: Final[float] = 1.0
DELAY_WET_DEFAULT: Final[float] = 0.3
REVERB_IMPULSE_DURATION: Final[float] = 2.0
REVERB_IMPULSE_DECAY: Final[float] = 2.5
LFO_FREQUENCY: Final[float] = 5.0
WAVESHAPER_CURVE_SAMPLES: Final[int] = 44100

VOICE_LEVEL_SCALE: Final[float] = 0.2
VOICE_MIN_VELOCITY: Final[float] = 0.05

# =============================================================================
# 制御マッピング係数
# =============================================================================

CUTOFF_MIN_HZ: Final[float] = 200.0
CUTOFF_SWEEP_RATIO: Final[float] = 20.0        # 200Hz * 20 = 4000Hz
VOLUME_MIN: Final[float] = 0.15
VOLUME_RANGE: Final[float] = 0.75
VIBRATO_MAX_CENTS: Final[float] = 40.0
RESONANCE_MIN_Q: Final[float] = 0.5
RESONANCE_Q_RANGE: Final[float] = 14.0
REVERB_WET_SCALE: Final[float] = 0.8
REVERB_DRY_DUCK: Final[float] = 0.3
DISTORTION_BYPASS_THRESHOLD: Final[float] = 0.05
DISTORTION_AMOUNT_SCALE: Final[float] = 50.0
MAX_DELAY_FEEDBACK: Final[float] = 0.75        # 減衰保証のための上限
DELAY_WET_OFFSET: Final[float] = 0.1
DELAY_WET_CAP: Final[float] = 0.5
PITCH_BEND_MAX_CENTS: Final[float] = 200.0     # ±2半音

# =============================================================================
# モーション処理
# =============================================================================

TILT_FULL_SCALE_DEG: Final[float] = 45.0
MOTION_THROTTLE_S: Final[float] = 0.016
MOTION_SMOOTHING: Final[float] = 0.25

# 弓速度推定
BOW_DAMPING: Final[float] = 0.91               # 60Hz基準の1フレーム減衰率
BOW_REFERENCE_RATE: Final[float] = 60.0
BOW_VELOCITY_CEILING: Final[float] = 1.5       # m/s
BOW_DEAD_ZONE: Final[float] = 0.06
BOW_HYSTERESIS: Final[float] = 0.12
BOW_MIN_ONSET_GAP_S: Final[float] = 0.12
BOW_FLIP_CONFIRM_UPDATES: Final[int] = 2
BOW_MAX_DT_S: Final[float] = 0.1
SENSOR_WATCHDOG_S: Final[float] = 0.4
WATCHDOG_POLL_S: Final[float] = 0.1

# 弓奏ボイス
BOW_MAX_BODY_GAIN: Final[float] = 0.35
BOW_NOISE_LEVEL: Final[float] = 0.08
BOW_ONSET_ACCENT: Final[float] = 0.25
BOW_NOISE_CENTER_HZ: Final[float] = 2500.0
BOW_NOISE_Q: Final[float] = 1.2
BOW_FALLBACK_ENERGY: Final[float] = 0.6

CALIBRATION_TIMEOUT_S: Final[float] = 1.0
