"""
tiltsynth 音響生成フェーズ

このパッケージはモーション由来の制御値を基にリアルタイム音響合成を行う機能を提供します。
パラメータスムーザー、固定トポロジーのシグナルグラフ、ボイス管理システム、
制御マッピング、ブロックレンダリング型エンジンで構成されています。

処理フロー:
1. 制御マッピング (mapping.py) - 軸値→パラメータ更新
2. スムージング (smoother.py) - 目標値への指数接近
3. 音響合成 (graph.py, synth.py) - numpy ブロック処理
4. ボイス管理 (voice_mgr.py) - ポリフォニー/モノフォニー制御
"""

# パラメータスムーザー
from .smoother import RampKind, RampSpec, ParamSmoother

# シグナルグラフ
from .graph import (
    SignalGraph,
    PadSignalGraph,
    BowedSignalGraph,
    midi_to_hz
)

# 制御マッピング
from .mapping import (
    ControlTarget,
    Axis,
    AxisMapping,
    MappingConfigError,
    TARGET_FUNCTIONS,
    evaluate_target,
    ControlMapper,
    BowControlMapper
)

# 音響合成エンジン
from .synth import (
    EngineState,
    AudioSynthesizer,
    create_audio_synthesizer
)

# ボイス管理システム
from .voice_mgr import (
    VoiceState,
    StealStrategy,
    PadVoice,
    BowedVoice,
    VoiceManager,
    MonoVoiceManager,
    create_voice_manager
)

__all__ = [
    # パラメータスムーザー
    'RampKind',
    'RampSpec',
    'ParamSmoother',

    # シグナルグラフ
    'SignalGraph',
    'PadSignalGraph',
    'BowedSignalGraph',
    'midi_to_hz',

    # 制御マッピング
    'ControlTarget',
    'Axis',
    'AxisMapping',
    'MappingConfigError',
    'TARGET_FUNCTIONS',
    'evaluate_target',
    'ControlMapper',
    'BowControlMapper',

    # 音響合成エンジン
    'EngineState',
    'AudioSynthesizer',
    'create_audio_synthesizer',

    # ボイス管理システム
    'VoiceState',
    'StealStrategy',
    'PadVoice',
    'BowedVoice',
    'VoiceManager',
    'MonoVoiceManager',
    'create_voice_manager'
]
