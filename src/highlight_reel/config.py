"""
Centralized Configuration for Highlight Reel

Process-wide defaults come from environment variables; per-run choices made by
the user (pace, style, target length) live in HighlightReelSettings.

Usage:
    from highlight_reel.config import get_settings

    settings = get_settings()
    spacing = settings.audio.min_beat_spacing
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from .models import Pace, Style


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() == "true"


def _env_optional_int(name: str) -> Optional[int]:
    value = os.environ.get(name, "").strip()
    return int(value) if value else None


# =============================================================================
# Audio Analysis
# =============================================================================
@dataclass
class AudioConfig:
    """Envelope and beat detection defaults."""

    envelope_frame_duration: float = field(default_factory=lambda: float(os.environ.get("ENVELOPE_FRAME_DURATION", "0.02")))
    # The music track is analyzed at a finer resolution than generic audio
    music_frame_duration: float = field(default_factory=lambda: float(os.environ.get("MUSIC_FRAME_DURATION", "0.01")))
    min_beat_spacing: float = field(default_factory=lambda: float(os.environ.get("MIN_BEAT_SPACING", "0.25")))
    beat_sensitivity: float = field(default_factory=lambda: float(os.environ.get("BEAT_SENSITIVITY", "0.4")))
    sample_rate: int = field(default_factory=lambda: int(os.environ.get("AUDIO_SAMPLE_RATE", "22050")))


# =============================================================================
# Visual Analysis
# =============================================================================
@dataclass
class AnalysisConfig:
    """Frame sampling limits, timeouts and worker counts."""

    max_frames_per_clip: int = field(default_factory=lambda: int(os.environ.get("MAX_FRAMES_PER_CLIP", "50")))
    moment_window_seconds: float = field(default_factory=lambda: float(os.environ.get("MOMENT_WINDOW_SECONDS", "2.0")))
    music_analysis_timeout: float = field(default_factory=lambda: float(os.environ.get("MUSIC_ANALYSIS_TIMEOUT", "180")))
    clip_analysis_timeout: float = field(default_factory=lambda: float(os.environ.get("CLIP_ANALYSIS_TIMEOUT", "60")))
    scoring_timeout: float = field(default_factory=lambda: float(os.environ.get("SCORING_TIMEOUT", "30")))
    audio_workers: int = field(default_factory=lambda: int(os.environ.get("AUDIO_WORKERS", "4")))


# =============================================================================
# Selection
# =============================================================================
@dataclass
class SelectionConfig:
    """Candidate selection behaviour."""

    quick_mode: bool = field(default_factory=lambda: _env_bool("QUICK_MODE", "false"))
    random_seed: Optional[int] = field(default_factory=lambda: _env_optional_int("RANDOM_SEED"))
    repair_diversity: bool = field(default_factory=lambda: _env_bool("REPAIR_DIVERSITY", "true"))
    max_segments_per_clip: int = field(default_factory=lambda: int(os.environ.get("MAX_SEGMENTS_PER_CLIP", "10")))


@dataclass
class Settings:
    """Container for all environment-driven configuration sections."""

    audio: AudioConfig = field(default_factory=AudioConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)


# =============================================================================
# Per-run Settings
# =============================================================================
@dataclass
class HighlightReelSettings:
    """User choices for one highlight reel."""

    pace: Pace = Pace.NORMAL
    style: Style = Style.DYNAMIC_HIGHLIGHTS
    target_length: Optional[float] = None
    quick_mode: bool = False
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.pace, str):
            self.pace = Pace(self.pace)
        if isinstance(self.style, str):
            self.style = Style(self.style)
        if self.target_length is not None and self.target_length <= 0:
            self.target_length = None

    @classmethod
    def from_settings(cls, settings: "Settings", **overrides) -> "HighlightReelSettings":
        """Build run settings seeded from environment defaults."""
        values = {
            "quick_mode": settings.selection.quick_mode,
            "seed": settings.selection.random_seed,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def target_duration(self, music_duration: float) -> float:
        """Output length: the requested target capped by the music, else the music."""
        if self.target_length is not None:
            return min(self.target_length, music_duration)
        return music_duration


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance (lazy)."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Re-read environment variables into a fresh settings instance."""
    global _settings
    _settings = Settings()
    return _settings
