#!/usr/bin/env python3
"""
対話コンソール テスト
"""

import pytest

from tiltsynth import LOG_LEVEL_ENV
from tiltsynth.cli import ConsoleController, build_parser, format_status, main, parse_command
from tiltsynth.motion.stream import PermissionResult, StaticPermission
from tiltsynth.session import SynthSession
from tiltsynth.sound.backend import BackendType
from tiltsynth.sound.mapping import Axis


class TestParseCommand:

    @pytest.mark.parametrize("line, expected", [
        ("1", ("toggle", 60)),
        ("8", ("toggle", 72)),
        ("on 64", ("on", 64)),
        ("OFF 64", ("off", 64)),
        ("cycle gamma", ("cycle", Axis.GAMMA)),
        ("all", ("all", None)),
        ("cal", ("cal", None)),
        ("invert", ("invert", None)),
        ("status", ("status", None)),
        ("q", ("quit", None)),
        ("  quit  ", ("quit", None)),
    ])
    def test_valid(self, line, expected):
        assert parse_command(line) == expected

    @pytest.mark.parametrize("line", ["", "9", "on", "on 200", "on x", "cycle roll", "play"])
    def test_invalid(self, line):
        with pytest.raises(ValueError):
            parse_command(line)


class TestConsoleController:

    def setup_method(self):
        from tiltsynth.config import TiltSynthConfig
        config = TiltSynthConfig()
        config.audio.sample_rate = 22050
        config.audio.buffer_size = 128
        self.session = SynthSession(config, backend_type=BackendType.NULL, seed=1,
                                    permission=StaticPermission(PermissionResult.GRANTED))
        self.session.start()
        self.controller = ConsoleController(self.session)

    def teardown_method(self):
        self.session.teardown()

    def test_toggle_pad(self):
        assert self.controller.execute(("toggle", 60)) == "on 60"
        assert self.session.status().current_note == 60
        assert self.controller.execute(("toggle", 60)) == "off 60"
        assert self.session.status().active_voices == 0

    def test_all_clears_held(self):
        self.controller.execute(("on", 60))
        self.controller.execute(("on", 64))
        self.controller.execute(("all", None))
        assert not self.controller.held
        assert self.session.status().active_voices == 0

    def test_cycle(self):
        assert self.controller.execute(("cycle", Axis.BETA)) == "beta → wave-blend"

    def test_status(self):
        text = self.controller.execute(("status", None))
        assert "mode=pad" in text
        assert "motion=unavailable" in text
        assert text == format_status(self.session.status())


def test_parser_defaults():
    args = build_parser().parse_args([])
    assert args.mode is None
    assert args.osc_port is None

    args = build_parser().parse_args(["--mode", "bowed", "--backend", "null", "--osc-port", "9001"])
    assert args.mode == "bowed"
    assert args.backend == "null"
    assert args.osc_port == 9001


def test_main_rejects_invalid_log_level_from_env(monkeypatch):
    monkeypatch.setenv(LOG_LEVEL_ENV, "LOUD")
    assert main([]) == 2
