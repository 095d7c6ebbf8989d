#!/usr/bin/env python3
"""
ロギング設定 テスト
"""

import logging

import pytest

import tiltsynth
from tiltsynth import LOG_LEVEL_ENV, default_log_level, ensure_default_logging, setup_logging


@pytest.fixture
def fresh_logging(monkeypatch):
    """デフォルトロギングを未初期化に戻し、終了後にテスト用設定を復元"""
    monkeypatch.setattr(tiltsynth, "_default_logger_initialized", False)
    yield
    setup_logging(level="DEBUG")


class TestDefaultLogLevel:

    def test_env_overrides_fallback(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "WARNING")
        assert default_log_level("DEBUG") == "WARNING"

    def test_fallback_without_env(self, monkeypatch):
        monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
        assert default_log_level() == "INFO"
        assert default_log_level("ERROR") == "ERROR"


class TestEnsureDefaultLogging:

    def test_reads_env_level(self, monkeypatch, fresh_logging):
        monkeypatch.setenv(LOG_LEVEL_ENV, "warning")
        ensure_default_logging()
        assert logging.getLogger().level == logging.WARNING
        assert tiltsynth._default_logger_initialized

    def test_invalid_env_falls_back_to_info(self, monkeypatch, fresh_logging):
        monkeypatch.setenv(LOG_LEVEL_ENV, "LOUD")
        ensure_default_logging()
        assert logging.getLogger().level == logging.INFO

    def test_runs_once(self, monkeypatch, fresh_logging):
        monkeypatch.setenv(LOG_LEVEL_ENV, "ERROR")
        ensure_default_logging()
        monkeypatch.setenv(LOG_LEVEL_ENV, "DEBUG")
        ensure_default_logging()
        assert logging.getLogger().level == logging.ERROR
