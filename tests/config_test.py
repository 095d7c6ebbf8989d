#!/usr/bin/env python3
"""
設定管理 テスト
"""

import pytest
import yaml

from tiltsynth import config as config_module
from tiltsynth.config import ConfigManager, TiltSynthConfig


class TestConfigManager:
    """YAML 設定の読み書き"""

    def setup_method(self):
        self.manager = ConfigManager()

    def test_missing_file_uses_defaults(self, tmp_path):
        config = self.manager.load_config(tmp_path / "missing.yaml")
        assert config == TiltSynthConfig()

    def test_load_overrides_known_keys(self, tmp_path):
        path = tmp_path / "tiltsynth.yaml"
        path.write_text(yaml.safe_dump({
            "mode": "bowed",
            "audio": {"sample_rate": 48000, "volume_knob": 11},
            "bow": {"invert_axis": True},
            "mapping": {"gamma": "reverb"},
            "unknown_section": {"x": 1},
        }), encoding="utf-8")

        config = self.manager.load_config(path)
        assert config.mode == "bowed"
        assert config.audio.sample_rate == 48000
        assert not hasattr(config.audio, "volume_knob")
        assert config.bow.invert_axis
        assert config.mapping.gamma == "reverb"
        assert config.voice.max_polyphony == 16

    def test_broken_yaml_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("audio: [unclosed", encoding="utf-8")
        assert self.manager.load_config(path) == TiltSynthConfig()

    def test_save_and_reload(self, tmp_path):
        config = self.manager.load_config(tmp_path / "none.yaml")
        config.audio.buffer_size = 512
        config.mapping.alpha = "pitch-bend"

        path = tmp_path / "out" / "config.yaml"
        assert self.manager.save_config(path)

        reloaded = ConfigManager().load_config(path)
        assert reloaded.audio.buffer_size == 512
        assert reloaded.mapping.alpha == "pitch-bend"
        assert reloaded.mapping.gamma_candidates == config.mapping.gamma_candidates

    def test_save_without_config(self, tmp_path):
        assert not self.manager.save_config(tmp_path / "x.yaml")

    def test_get_config_loads_lazily(self):
        config = self.manager.get_config()
        assert isinstance(config, TiltSynthConfig)
        assert self.manager.get_config() is config


class TestGlobalConfig:
    """モジュールレベルの設定関数"""

    @pytest.fixture(autouse=True)
    def fresh_manager(self, monkeypatch):
        monkeypatch.setattr(config_module, "_config_manager", None)

    def test_load_get_save(self, tmp_path):
        path = tmp_path / "tiltsynth.yaml"
        path.write_text(yaml.safe_dump({"audio": {"buffer_size": 128}}), encoding="utf-8")

        loaded = config_module.load_config(path)
        assert config_module.get_config() is loaded
        assert loaded.audio.buffer_size == 128

        loaded.mode = "bowed"
        assert config_module.save_config()
        assert ConfigManager().load_config(path).mode == "bowed"


class TestValidate:
    """起動前の設定検証"""

    def test_defaults_are_valid(self):
        TiltSynthConfig().validate()

    @pytest.mark.parametrize("mutate", [
        lambda c: setattr(c, "mode", "organ"),
        lambda c: setattr(c.audio, "channels", 6),
        lambda c: setattr(c.audio, "buffer_size", 0),
        lambda c: setattr(c.audio, "buffer_size", 20000),
        lambda c: setattr(c.voice, "voice_steal_strategy", "random"),
        lambda c: setattr(c.bow, "accel_axis", "w"),
        lambda c: setattr(c.bow, "damping", 1.0),
    ])
    def test_invalid_values(self, mutate):
        config = TiltSynthConfig()
        mutate(config)
        with pytest.raises(ValueError):
            config.validate()
