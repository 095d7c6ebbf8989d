#!/usr/bin/env python3
"""
pytest共通設定とフィクスチャ

テスト実行時の共通設定、モック、フィクスチャを提供します。
音響出力は Null バックエンドからブロックを引き出して検証するため、
オーディオデバイスは不要です。
"""

import pytest

from tiltsynth import setup_logging, get_logger
from tiltsynth.config import TiltSynthConfig
from tiltsynth.motion.stream import MockSensorStream
from tiltsynth.sound.backend import BackendType
from tiltsynth.sound.synth import AudioSynthesizer

# =============================================================================
# テストロギング設定
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """テスト全体のロギング設定"""
    setup_logging(level="DEBUG")
    logger = get_logger("test")
    logger.info("=== テストセッション開始 ===")
    yield
    logger.info("=== テストセッション終了 ===")


@pytest.fixture
def test_logger():
    """テスト用ロガー"""
    return get_logger("test")


# =============================================================================
# 時計
# =============================================================================

class FakeClock:
    """手動で進める単調時計"""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def fake_clock():
    return FakeClock()


# =============================================================================
# 設定・エンジン
# =============================================================================

@pytest.fixture
def test_config():
    """テスト用設定（Nullバックエンド・小さめのブロック）"""
    config = TiltSynthConfig()
    config.audio.backend = "null"
    config.audio.sample_rate = 22050
    config.audio.buffer_size = 128
    return config


@pytest.fixture
def null_synth(test_config):
    """起動済みのパッドモードエンジン"""
    synth = AudioSynthesizer(test_config, mode="pad", backend_type=BackendType.NULL, seed=1)
    assert synth.start_engine()
    yield synth
    synth.stop_engine()


@pytest.fixture
def bowed_synth(test_config):
    """起動済みの弓奏モードエンジン"""
    synth = AudioSynthesizer(test_config, mode="bowed", backend_type=BackendType.NULL, seed=1)
    assert synth.start_engine()
    yield synth
    synth.stop_engine()


@pytest.fixture
def mock_stream(fake_clock):
    return MockSensorStream(clock=fake_clock)
