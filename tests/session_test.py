#!/usr/bin/env python3
"""
セッション 統合テスト

Null バックエンドとモックセンサーストリームを使い、
許可取得から teardown までのライフサイクルを検証します。
"""

import threading

import numpy as np
import pytest

from tiltsynth.motion.stream import PermissionResult, StaticPermission
from tiltsynth.session import MotionStatus, SynthMode, SynthSession
from tiltsynth.sound import synth as synth_module
from tiltsynth.sound.backend import BackendType, BackendUnavailableError
from tiltsynth.sound.mapping import Axis, ControlTarget, MappingConfigError
from tiltsynth.sound.synth import EngineState


@pytest.fixture
def make_session(test_config, mock_stream, fake_clock):
    """セッション生成ヘルパー（テスト終了時に teardown）"""
    sessions = []
    # ウォッチドッグスレッドは手動検査と競合しないよう十分遅くする
    test_config.motion.watchdog_poll_s = 30.0

    def _make(mode="pad", permission=PermissionResult.GRANTED, stream=mock_stream):
        session = SynthSession(
            test_config, mode=mode, backend_type=BackendType.NULL, stream=stream,
            permission=StaticPermission(permission), clock=fake_clock, seed=1,
        )
        sessions.append(session)
        return session

    yield _make
    for session in sessions:
        session.teardown()


def pull(session, frames=256):
    return session.synth.backend.pull(frames)


class TestPadSession:
    """パッドモードのセッション"""

    def test_start_attaches_sensors(self, make_session, mock_stream):
        session = make_session()
        assert session.start()

        status = session.status()
        assert status.started
        assert status.engine_state == EngineState.RUNNING
        assert status.motion_status == MotionStatus.ACTIVE
        assert status.mode == SynthMode.PAD
        assert mock_stream.running
        assert mock_stream.listener_count == 1

    def test_start_twice_is_harmless(self, make_session, mock_stream):
        session = make_session()
        assert session.start()
        assert session.start()
        assert mock_stream.listener_count == 1

    def test_orientation_drives_graph(self, make_session, mock_stream):
        session = make_session()
        session.start()
        mock_stream.push_orientation(None, 45.0, 0.0)

        # 平滑化後 beta=0.25 → 200 * 20^0.625
        expected = 200.0 * 20.0 ** 0.625
        assert session.synth.graph.filter.cutoff.target == pytest.approx(expected)

    def test_notes_render_audio(self, make_session):
        session = make_session()
        session.start()
        assert session.note_on(60)
        assert not session.note_on(60)
        assert session.status().current_note == 60

        audio = np.concatenate([pull(session) for _ in range(8)])
        assert audio.shape == (2048, 2)
        assert audio.dtype == np.float32
        assert np.all(np.isfinite(audio))
        assert np.max(np.abs(audio)) > 0.0
        assert np.max(np.abs(audio)) <= 1.0

    def test_cycle_mapping_applies_current_value(self, make_session, mock_stream):
        session = make_session()
        session.start()
        mock_stream.push_orientation(None, 0.0, 45.0)

        assert session.cycle_mapping("gamma") == ControlTarget.RESONANCE
        assert session.status().mappings["gamma"] == "resonance"
        # 平滑化後 gamma=0.25 → Q = 0.5 + 0.25 * 14
        assert session.synth.graph.filter.q.target == pytest.approx(4.0)

    def test_cycle_mapping_wraps(self, make_session):
        session = make_session()
        session.start()
        for _ in range(3):
            session.cycle_mapping(Axis.ALPHA)
        assert session.status().mappings["alpha"] == "pan"

    def test_calibrate_uses_next_sample(self, make_session, mock_stream):
        session = make_session()
        session.start()

        timer = threading.Timer(0.02, mock_stream.push_orientation, args=(None, 10.0, -4.0))
        timer.start()
        try:
            calibration = session.calibrate(timeout=2.0)
        finally:
            timer.join()

        assert (calibration.beta, calibration.gamma) == (10.0, -4.0)
        assert session.fusion.calibration == calibration
        assert mock_stream.listener_count == 1

    def test_toggle_invert_ignored(self, make_session):
        session = make_session()
        session.start()
        assert not session.toggle_invert()
        assert not session.status().inverted

    def test_invalid_mapping_config_raises(self, test_config, mock_stream):
        test_config.mapping.alpha_candidates = ["pan", "volume"]
        with pytest.raises(MappingConfigError):
            SynthSession(test_config, backend_type=BackendType.NULL, stream=mock_stream)


class TestBowedSession:
    """弓奏モードのセッション"""

    def test_start_subscribes_both_streams(self, make_session, mock_stream):
        session = make_session(mode="bowed")
        assert session.start()
        assert mock_stream.listener_count == 2
        assert session.status().mappings == {"tilt-x": "vibrato-depth", "tilt-y": "filter-cutoff"}

    def test_acceleration_drives_bow_energy(self, make_session, mock_stream):
        session = make_session(mode="bowed")
        session.start()
        session.note_on(62)
        mock_stream.push_acceleration(200.0, timestamp=100.0)

        status = session.status()
        assert status.bow_energy == pytest.approx(1.0)
        assert status.current_note == 62
        assert session.synth.voices.bow_energy == pytest.approx(1.0)

    def test_watchdog_silences_bow(self, make_session, mock_stream, fake_clock):
        session = make_session(mode="bowed")
        session.start()
        mock_stream.push_orientation(None, 45.0, 0.0, timestamp=fake_clock())
        mock_stream.push_acceleration(200.0, timestamp=fake_clock())
        cutoff = session.synth.graph.filter.cutoff.target
        tilt_y = session.fusion.tilt_y
        assert tilt_y == pytest.approx(0.25)

        fake_clock.advance(0.2)
        assert not session.check_watchdog()
        fake_clock.advance(0.3)
        assert session.check_watchdog()
        assert session.status().bow_energy == 0.0
        assert session.synth.voices.bow_energy == 0.0

        # 傾き由来の制御は最後の値を保持する
        assert session.synth.graph.filter.cutoff.target == cutoff
        assert session.fusion.tilt_y == tilt_y

    def test_pitch_change_glides(self, make_session):
        session = make_session(mode="bowed")
        session.start()
        session.note_on(60)
        assert session.note_on(67)
        assert session.status().current_note == 67
        assert session.status().active_voices == 1

    def test_toggle_invert(self, make_session):
        session = make_session(mode="bowed")
        session.start()
        assert session.toggle_invert()
        assert session.status().inverted

    def test_cycle_mapping_fixed(self, make_session):
        session = make_session(mode="bowed")
        session.start()
        assert session.cycle_mapping(Axis.BETA) is None


class TestDegradedStart:
    """許可拒否・センサー無し・出力不可"""

    def test_permission_denied(self, make_session, mock_stream):
        session = make_session(permission=PermissionResult.DENIED)
        assert session.start()

        status = session.status()
        assert status.started
        assert status.motion_status == MotionStatus.DENIED
        assert mock_stream.listener_count == 0
        assert session.note_on(60)

    def test_no_sensor(self, make_session):
        session = make_session(stream=None)
        assert session.start()
        assert session.status().motion_status == MotionStatus.UNAVAILABLE
        assert session.calibrate().is_zero

    def test_bowed_fallback_energy(self, make_session):
        session = make_session(mode="bowed", permission=PermissionResult.NO_SENSOR)
        assert session.start()

        status = session.status()
        assert status.motion_status == MotionStatus.UNAVAILABLE
        assert status.bow_energy == pytest.approx(0.6)
        assert session.synth.voices.bow_energy == pytest.approx(0.6)

    def test_audio_unavailable(self, make_session, mock_stream, monkeypatch):
        def unavailable(*args, **kwargs):
            raise BackendUnavailableError("no output device")

        monkeypatch.setattr(synth_module, "open_backend", unavailable)
        session = make_session()

        assert not session.start()
        status = session.status()
        assert status.engine_state == EngineState.ERROR
        assert not status.started
        assert status.error == "no output device"
        assert mock_stream.listener_count == 0

        assert not session.note_on(60)
        session.all_off()
        assert not session.start()


class TestTeardown:
    """teardown 後は何も効果を持たない"""

    def test_teardown_silences_and_unsubscribes(self, make_session, mock_stream):
        session = make_session(mode="bowed")
        session.start()
        session.note_on(60)
        backend = session.synth.backend

        session.teardown()

        status = session.status()
        assert not status.started
        assert status.motion_status == MotionStatus.IDLE
        assert status.engine_state == EngineState.STOPPED
        assert mock_stream.listener_count == 0
        assert not mock_stream.running
        assert session._watchdog is None
        assert np.allclose(backend.pull(256), 0.0)

    def test_calls_after_teardown_are_ignored(self, make_session, mock_stream):
        session = make_session()
        session.start()
        session.teardown()
        session.teardown()

        session._on_orientation(mock_stream.push_orientation(None, 45.0, 45.0))
        assert not session.note_on(60)
        assert not session.start()
        assert session.cycle_mapping(Axis.BETA) is None
        assert session.synth.graph.filter.cutoff.target == pytest.approx(900.0)
