"""
Tests for environment configuration and per-run settings.
"""

import pytest

from highlight_reel import config
from highlight_reel.config import HighlightReelSettings, Settings, get_settings, reload_settings
from highlight_reel.models import Pace, Style


@pytest.fixture
def fresh_settings():
    yield
    reload_settings()


class TestEnvironmentSettings:

    def test_defaults(self, monkeypatch, fresh_settings):
        for name in (
            "ENVELOPE_FRAME_DURATION", "MUSIC_FRAME_DURATION", "MIN_BEAT_SPACING", "BEAT_SENSITIVITY",
            "MAX_FRAMES_PER_CLIP", "QUICK_MODE", "RANDOM_SEED", "REPAIR_DIVERSITY",
        ):
            monkeypatch.delenv(name, raising=False)
        settings = reload_settings()

        assert settings.audio.envelope_frame_duration == 0.02
        assert settings.audio.music_frame_duration == 0.01
        assert settings.audio.min_beat_spacing == 0.25
        assert settings.audio.beat_sensitivity == 0.4
        assert settings.analysis.max_frames_per_clip == 50
        assert settings.selection.quick_mode is False
        assert settings.selection.random_seed is None
        assert settings.selection.repair_diversity is True

    def test_environment_overrides(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("MIN_BEAT_SPACING", "0.5")
        monkeypatch.setenv("MAX_FRAMES_PER_CLIP", "12")
        monkeypatch.setenv("QUICK_MODE", "true")
        monkeypatch.setenv("RANDOM_SEED", "99")
        monkeypatch.setenv("REPAIR_DIVERSITY", "false")
        settings = reload_settings()

        assert settings.audio.min_beat_spacing == 0.5
        assert settings.analysis.max_frames_per_clip == 12
        assert settings.selection.quick_mode is True
        assert settings.selection.random_seed == 99
        assert settings.selection.repair_diversity is False

    def test_get_settings_is_cached(self, fresh_settings):
        assert get_settings() is get_settings()
        reloaded = reload_settings()
        assert get_settings() is reloaded
        assert config._settings is reloaded


class TestHighlightReelSettings:
    """Tests for HighlightReelSettings."""

    def test_strings_coerced(self):
        settings = HighlightReelSettings(pace="tight", style="story_arc")
        assert settings.pace == Pace.TIGHT
        assert settings.style == Style.STORY_ARC

    def test_invalid_pace(self):
        with pytest.raises(ValueError):
            HighlightReelSettings(pace="glacial")

    @pytest.mark.parametrize("target,music,expected", [
        (None, 95.0, 95.0),
        (30.0, 95.0, 30.0),
        (300.0, 95.0, 95.0),
        (0.0, 95.0, 95.0),
        (-5.0, 95.0, 95.0),
    ])
    def test_target_duration(self, target, music, expected):
        assert HighlightReelSettings(target_length=target).target_duration(music) == expected

    def test_from_settings(self, monkeypatch):
        monkeypatch.setenv("QUICK_MODE", "true")
        monkeypatch.setenv("RANDOM_SEED", "5")
        base = Settings()

        settings = HighlightReelSettings.from_settings(base, pace=Pace.RELAXED)
        assert settings.quick_mode is True
        assert settings.seed == 5
        assert settings.pace == Pace.RELAXED

    def test_from_settings_ignores_unset_overrides(self, monkeypatch):
        monkeypatch.setenv("QUICK_MODE", "true")
        settings = HighlightReelSettings.from_settings(Settings(), quick_mode=None, seed=3)
        assert settings.quick_mode is True
        assert settings.seed == 3

    def test_style_beat_parameters(self):
        assert Style.QUICK_CUTS.beat_parameters == (0.10, 0.8)
        assert Style.STORY_ARC.beat_parameters == (0.25, 0.6)
        assert Style.SPORTS.beat_parameters == (0.15, 0.7)
