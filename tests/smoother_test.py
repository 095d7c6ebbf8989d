#!/usr/bin/env python3
"""
パラメータスムーザー テスト
"""

import math

import numpy as np
import pytest

from tiltsynth.constants import ENVELOPE_FLOOR
from tiltsynth.sound.smoother import ParamSmoother, RampKind

SR = 1000


class TestParamSmoother:
    """指数接近・指数ランプのテスト"""

    def setup_method(self):
        self.smoother = ParamSmoother(0.0, SR, "test")

    def test_hold_initial_value(self):
        values = self.smoother.render(16)
        assert np.allclose(values, 0.0)
        assert self.smoother.value == 0.0

    def test_target_follows_exponential_approach(self):
        self.smoother.set_target(1.0, time_constant=0.05)
        values = self.smoother.render(50)

        # 50 サンプル = 1 時定数
        assert values[-1] == pytest.approx(1.0 - math.exp(-1.0), rel=1e-9)
        assert np.all(np.diff(values) > 0)
        assert self.smoother.target == 1.0

    def test_target_converges(self):
        self.smoother.set_target(3.0, time_constant=0.01)
        self.smoother.render(1000)
        assert self.smoother.value == pytest.approx(3.0, abs=1e-9)

    def test_zero_time_constant_jumps(self):
        self.smoother.set_target(0.5, time_constant=0.0)
        values = self.smoother.render(4)
        assert np.allclose(values, 0.5)

    def test_last_writer_wins(self):
        self.smoother.set_target(10.0, 0.01)
        self.smoother.set_target(-2.0, 0.01)
        self.smoother.render(2000)
        assert self.smoother.value == pytest.approx(-2.0, abs=1e-9)

    def test_retarget_continues_from_current_value(self):
        self.smoother.set_target(1.0, 0.01)
        first = self.smoother.render(10)
        self.smoother.set_target(0.0, 0.01)
        second = self.smoother.render(1)
        # 不連続なジャンプが無い
        assert abs(second[0] - first[-1]) < 0.1

    def test_exponential_ramp_reaches_target_on_time(self):
        ramp = ParamSmoother(ENVELOPE_FLOOR, SR, "env")
        ramp.exponential_ramp(0.2, 0.02)
        values = ramp.render(40)

        assert values[19] == pytest.approx(0.2)
        assert np.allclose(values[20:], 0.2)
        assert np.all(np.diff(values[:20]) > 0)

    def test_exponential_ramp_floors_target(self):
        ramp = ParamSmoother(0.5, SR, "env")
        ramp.exponential_ramp(0.0, 0.01)
        values = ramp.render(20)
        assert values[-1] == pytest.approx(ENVELOPE_FLOOR)
        assert np.all(values > 0.0)

    def test_exponential_ramp_is_geometric(self):
        ramp = ParamSmoother(0.01, SR, "env")
        ramp.exponential_ramp(1.0, 0.01)
        values = ramp.render(10)
        ratios = values[1:] / values[:-1]
        assert np.allclose(ratios, ratios[0])

    def test_set_value_jumps_immediately(self):
        self.smoother.set_target(5.0, 1.0)
        self.smoother.set_value(2.0)
        assert self.smoother.value == 2.0
        assert np.allclose(self.smoother.render(8), 2.0)

    def test_decay_from_restarts_at_start(self):
        self.smoother.decay_from(0.25, 0.0, 0.01)
        values = self.smoother.render(100)
        assert values[0] == pytest.approx(0.25 * math.exp(-1.0 / 10.0))
        assert values[-1] < 1e-4

    def test_pending_spec_kind(self):
        self.smoother.exponential_ramp(1.0, 0.1)
        assert self.smoother._pending.kind is RampKind.EXPONENTIAL
