"""Tests for game presets."""

import pytest

from zonerunners.core.config import GameConfig
from zonerunners.core.engine import ProgressionEngine
from zonerunners.experiment.presets import (
    PRESETS,
    get_preset,
    list_presets,
)


class TestPresetRegistry:
    def test_list_presets(self):
        names = list_presets()
        assert len(names) == len(PRESETS)
        assert "default" in names
        assert "quick_start" in names

    def test_all_presets_return_config(self):
        for name, factory in PRESETS.items():
            config = factory()
            assert isinstance(config, GameConfig), f"{name} failed"
            assert config.game_name == name

    def test_get_preset(self):
        assert get_preset("seeded").random_seed == 42

    def test_unknown_preset_raises(self):
        with pytest.raises(KeyError, match="Unknown preset"):
            get_preset("nope")


class TestPresetsRun:
    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_preset_runs_ticks(self, name):
        config = get_preset(name)
        config.random_seed = 7
        engine = ProgressionEngine(config)
        engine.send_all_runners()
        engine.run(20)
        assert engine.state.tick == 20
