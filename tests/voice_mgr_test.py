#!/usr/bin/env python3
"""
ボイス管理 テスト

パッドモードのボイス生成・リリース・スティールと、
弓奏モードのゲート制御を検証します。
"""

import numpy as np
import pytest

from tiltsynth.config import VoiceConfig
from tiltsynth.constants import ENVELOPE_FLOOR, BOW_MAX_BODY_GAIN
from tiltsynth.sound.voice_mgr import (
    MonoVoiceManager, StealStrategy, VoiceManager, VoiceState, create_voice_manager,
)

SR = 8000
NO_VIBRATO = np.zeros(64)


def run(manager, seconds):
    """指定秒数分のブロックをレンダリング"""
    blocks = int(seconds * SR / 64) + 1
    return np.concatenate([manager.render(64, NO_VIBRATO) for _ in range(blocks)])


class TestVoiceManager:
    """パッドモードのボイス管理テスト"""

    def setup_method(self):
        self.manager = VoiceManager(SR, VoiceConfig(max_polyphony=4))

    def test_note_on_creates_voice(self):
        assert self.manager.note_on(60)
        assert self.manager.active_voice_count() == 1
        assert self.manager.current_note == 60

    def test_duplicate_note_on_is_noop(self):
        assert self.manager.note_on(60)
        voice = self.manager.active_voices[60]
        assert not self.manager.note_on(60)
        assert self.manager.active_voice_count() == 1
        assert self.manager.active_voices[60] is voice

    def test_note_off_unknown_pitch_is_noop(self):
        self.manager.note_on(60)
        assert not self.manager.note_off(72)
        assert self.manager.active_voice_count() == 1
        assert self.manager.sounding_voice_count() == 1

    def test_voice_level_from_velocity(self):
        self.manager.note_on(60, velocity=1.0)
        self.manager.note_on(62, velocity=0.0)
        assert self.manager.active_voices[60].level == pytest.approx(0.2)
        assert self.manager.active_voices[62].level == pytest.approx(0.05 * 0.2)

    def test_attack_reaches_level(self):
        self.manager.note_on(60, velocity=1.0)
        voice = self.manager.active_voices[60]
        assert voice.state == VoiceState.ATTACK
        run(self.manager, 0.03)
        assert voice.state == VoiceState.SUSTAIN
        assert voice.envelope.value == pytest.approx(0.2)

    def test_release_tail_then_removed(self):
        self.manager.note_on(60)
        run(self.manager, 0.05)
        voice = self.manager.active_voices[60]

        assert self.manager.note_off(60)
        assert voice.state == VoiceState.RELEASE
        assert self.manager.active_voice_count() == 0
        assert self.manager.sounding_voice_count() == 1

        tail = run(self.manager, 0.1)
        assert voice.state == VoiceState.FINISHED
        assert self.manager.sounding_voice_count() == 0
        assert np.allclose(tail[-64:], 0.0)

    def test_note_on_after_release_creates_new_voice(self):
        self.manager.note_on(60)
        self.manager.note_off(60)
        assert self.manager.note_on(60)
        assert self.manager.sounding_voice_count() == 2

    def test_release_tails_bounded_without_render(self):
        for _ in range(500):
            self.manager.note_on(60)
            self.manager.note_off(60)

        assert self.manager.sounding_voice_count() == 4
        assert self.manager.stats['total_tails_dropped'] == 496
        assert np.isfinite(run(self.manager, 0.01)).all()

    def test_all_off_releases_every_voice(self):
        for pitch in (60, 64, 67):
            self.manager.note_on(pitch)
        self.manager.all_off()
        assert self.manager.active_voice_count() == 0
        run(self.manager, 0.1)
        assert self.manager.sounding_voice_count() == 0

    def test_stop_all_is_immediate(self):
        self.manager.note_on(60)
        self.manager.note_on(64)
        self.manager.stop_all()
        assert self.manager.sounding_voice_count() == 0
        assert np.allclose(run(self.manager, 0.01), 0.0)

    def test_steal_oldest(self):
        for pitch in (60, 62, 64, 65):
            self.manager.note_on(pitch)
            run(self.manager, 0.01)
        self.manager.note_on(67)

        assert self.manager.active_voice_count() == 4
        assert 60 not in self.manager.active_voices
        assert self.manager.stats['total_voices_stolen'] == 1

    def test_steal_quietest(self):
        manager = VoiceManager(SR, VoiceConfig(max_polyphony=2),
                               steal_strategy=StealStrategy.QUIETEST)
        manager.note_on(60, velocity=1.0)
        manager.note_on(62, velocity=0.1)
        run(manager, 0.03)
        manager.note_on(64)
        assert set(manager.active_voices) == {60, 64}

    def test_wave_blend_remembered_for_new_voices(self):
        self.manager.note_on(60)
        self.manager.set_wave_blend(0.8, 0.01)
        self.manager.set_pitch_bend(100.0, 0.01)
        assert self.manager.active_voices[60].gain_b.target == 0.8
        assert self.manager.active_voices[60].detune.target == 100.0

        self.manager.note_on(64)
        voice = self.manager.active_voices[64]
        assert voice.gain_a.value == pytest.approx(0.2)
        assert voice.gain_b.value == pytest.approx(0.8)
        assert voice.detune.value == pytest.approx(100.0)

    def test_render_sums_voices(self):
        self.manager.note_on(60)
        out = run(self.manager, 0.05)
        assert out.ndim == 1
        assert np.max(np.abs(out)) > 0.01

    def test_performance_stats(self):
        self.manager.note_on(60)
        stats = self.manager.get_performance_stats()
        assert stats['total_voices_created'] == 1
        assert stats['current_active_voices'] == 1
        assert stats['polyphony_usage_percent'] == pytest.approx(25.0)


class TestMonoVoiceManager:
    """弓奏モードのゲート制御テスト"""

    def setup_method(self):
        self.manager = MonoVoiceManager(SR, VoiceConfig())

    def test_gate_controls_current_note(self):
        assert self.manager.current_note is None
        assert self.manager.note_on(62)
        assert self.manager.gate
        assert self.manager.current_note == 62

        assert not self.manager.note_off(60)
        assert self.manager.gate

        assert self.manager.note_off(62)
        assert not self.manager.gate
        assert self.manager.current_note is None

    def test_duplicate_note_on_is_noop(self):
        self.manager.note_on(62)
        assert not self.manager.note_on(62)

    def test_glide_to_new_pitch(self):
        self.manager.note_on(60)
        run(self.manager, 0.01)
        self.manager.note_on(72)
        freq = self.manager.voice.frequency
        assert freq.target == pytest.approx(523.2511, rel=1e-5)
        assert freq.value < 300.0
        run(self.manager, 0.3)
        assert freq.value == pytest.approx(523.2511, rel=1e-3)

    def test_body_follows_energy_and_gate(self):
        self.manager.set_bow(1.0)
        assert self.manager.voice.body.target == pytest.approx(ENVELOPE_FLOOR)

        self.manager.note_on(60)
        assert self.manager.voice.body.target == pytest.approx(BOW_MAX_BODY_GAIN)

        self.manager.set_bow(0.5)
        assert self.manager.voice.body.target == pytest.approx(BOW_MAX_BODY_GAIN * 0.5)

        self.manager.note_off(60)
        assert self.manager.voice.body.target == pytest.approx(ENVELOPE_FLOOR)

    def test_onset_fires_accent(self):
        self.manager.note_on(60)
        self.manager.set_bow(0.5, onset=True)
        accent = self.manager.voice.accent.render(1)
        assert accent[0] > 0.2

    def test_silent_without_energy(self):
        self.manager.note_on(60)
        out = run(self.manager, 0.2)
        assert np.max(np.abs(out[-64:])) < 1e-3

    def test_sounds_with_energy(self):
        self.manager.note_on(60)
        self.manager.set_bow(1.0)
        out = run(self.manager, 0.2)
        assert np.max(np.abs(out[-256:])) > 0.05


def test_create_voice_manager():
    assert isinstance(create_voice_manager("pad", SR), VoiceManager)
    assert isinstance(create_voice_manager("bowed", SR), MonoVoiceManager)
    with pytest.raises(ValueError):
        create_voice_manager("organ", SR)
