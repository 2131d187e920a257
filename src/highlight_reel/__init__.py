"""
Highlight Reel - automatic beat-synced highlight assembly

Core:
    from highlight_reel import HighlightReelPipeline, HighlightReelSettings
    result = HighlightReelPipeline(decoder, HighlightReelSettings(pace="tight")).run(clips)

Building blocks:
    audio_analysis     - envelope, beats, energy curve, intro/climax zones
    frame_analysis     - per-frame face/lighting/motion quality
    moment_detection   - windows of good frames per clip
    candidates         - strict/fallback beat-snapped candidates
    segment_scoring    - four-axis cinematic score
    story_planner      - intro/build/climax/outro durations
    selection          - diversity-aware selection and beat alignment
"""

from ._version import __version__
from .config import HighlightReelSettings
from .exceptions import (
    AnalysisFailedError,
    HighlightReelError,
    NoCandidatesError,
    NoClipsError,
    NoUsableAudioError,
)
from .models import Clip, MediaType, Pace, Segment, Style
from .pipeline import HighlightReelPipeline, PipelineResult, PipelineState

__all__ = [
    "__version__",
    "HighlightReelPipeline",
    "HighlightReelSettings",
    "PipelineResult",
    "PipelineState",
    "Clip",
    "MediaType",
    "Pace",
    "Style",
    "Segment",
    "HighlightReelError",
    "NoClipsError",
    "NoUsableAudioError",
    "NoCandidatesError",
    "AnalysisFailedError",
]
