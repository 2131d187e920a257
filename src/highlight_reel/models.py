"""
Data model shared by every stage of highlight reel assembly.

Clips come in, segments go out. In between, frames are measured, grouped into
moments, expanded into tiered candidates and scored. Each candidate carries a
stable id so a selected segment can always be traced back to it.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


# =============================================================================
# Enumerations
# =============================================================================

class MediaType(Enum):
    """What a source clip contains."""
    VIDEO = "video"
    AUDIO_ONLY = "audio_only"
    VIDEO_ONLY = "video_only"
    VIDEO_WITH_AUDIO = "video_with_audio"
    IMAGE = "image"

    @property
    def is_video(self) -> bool:
        return self in (MediaType.VIDEO, MediaType.VIDEO_ONLY, MediaType.VIDEO_WITH_AUDIO)


class Tier(Enum):
    """Candidate tier. Fallback candidates exist so no clip is silently lost."""
    STRICT = "strict"
    FALLBACK = "fallback"


class ShotType(Enum):
    """Shot size classification from face area."""
    MASTER = "master"
    WIDE = "wide"
    MEDIUM = "medium"
    CLOSE = "close"

    @classmethod
    def classify(cls, has_face: bool, face_area: float, quality: float) -> "ShotType":
        """
        Classify a shot.

        Without a face, dull footage reads as an establishing master shot and
        anything livelier as wide.
        """
        if not has_face:
            return cls.MASTER if quality < 0.2 else cls.WIDE
        if face_area < 0.03:
            return cls.MASTER
        if face_area < 0.08:
            return cls.WIDE
        if face_area < 0.15:
            return cls.MEDIUM
        return cls.CLOSE

    @property
    def is_establishing(self) -> bool:
        return self in (ShotType.MASTER, ShotType.WIDE)


@dataclass(frozen=True)
class PaceBounds:
    """Duration limits for one pace setting (seconds)."""
    min_duration: float
    max_duration: float
    photo_min: float
    photo_max: float
    average_min: float
    average_max: float


class Pace(Enum):
    RELAXED = "relaxed"
    NORMAL = "normal"
    TIGHT = "tight"

    @property
    def bounds(self) -> PaceBounds:
        return _PACE_BOUNDS[self]


_PACE_BOUNDS = {
    Pace.RELAXED: PaceBounds(2.0, 4.0, 2.0, 3.0, 2.0, 3.5),
    Pace.NORMAL: PaceBounds(1.0, 2.5, 1.2, 2.0, 1.0, 2.0),
    Pace.TIGHT: PaceBounds(0.5, 1.5, 0.7, 1.5, 0.5, 1.2),
}


class Style(Enum):
    """Editing style. Controls how eagerly beats are detected."""
    QUICK_CUTS = "quick_cuts"
    DYNAMIC_HIGHLIGHTS = "dynamic_highlights"
    STORY_ARC = "story_arc"
    SPORTS = "sports"
    EVENTS = "events"

    @property
    def beat_parameters(self) -> Tuple[float, float]:
        """(min_beat_spacing, sensitivity) for this style."""
        return _STYLE_BEAT_PARAMETERS.get(self, (0.15, 0.7))


_STYLE_BEAT_PARAMETERS = {
    Style.QUICK_CUTS: (0.10, 0.8),
    Style.DYNAMIC_HIGHLIGHTS: (0.15, 0.7),
    Style.STORY_ARC: (0.25, 0.6),
}


class StoryPhase(Enum):
    INTRO = "intro"
    BUILD = "build"
    CLIMAX = "climax"
    OUTRO = "outro"


# =============================================================================
# Geometry
# =============================================================================

@dataclass(frozen=True)
class TimeRange:
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    def overlap(self, other: "TimeRange") -> float:
        return max(0.0, min(self.end, other.end) - max(self.start, other.start))


@dataclass(frozen=True)
class NormalizedRect:
    """Rectangle in 0..1 frame coordinates, origin top-left."""
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def is_clipped(self, margin: float = 0.05) -> bool:
        """True when the rectangle touches the frame edge within ``margin``."""
        return (
            self.x < margin
            or self.y < margin
            or self.x + self.width > 1.0 - margin
            or self.y + self.height > 1.0 - margin
        )


# =============================================================================
# Inputs
# =============================================================================

@dataclass
class Clip:
    """A source clip as delivered by the import stage."""
    id: str
    media_type: MediaType
    duration: float
    has_audio_track: bool = False
    path: Optional[str] = None
    nominal_size: Optional[Tuple[int, int]] = None

    def __post_init__(self) -> None:
        if isinstance(self.media_type, str):
            self.media_type = MediaType(self.media_type)


# =============================================================================
# Visual analysis results
# =============================================================================

@dataclass
class FrameMeasurement:
    """Visual measurement of one sampled frame."""
    timestamp: float
    has_face: bool = False
    face_count: int = 0
    primary_face_centered: bool = False
    face_bounds: Optional[NormalizedRect] = None
    framing_score: float = 0.0
    lighting_score: float = 0.0
    motion_score: float = 0.0
    quality_score: float = 0.0
    is_stable: bool = True
    has_good_lighting: bool = False
    has_motion: bool = False
    is_landscape_shot: bool = False


@dataclass
class Moment:
    """A short, clip-local range worth considering."""
    clip_id: str
    start: float
    duration: float
    has_faces: bool
    motion_level: float
    quality_score: float
    shot_type: ShotType

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass
class PhotoMoment:
    clip_id: str
    has_faces: bool
    score: float
    subject_rect: NormalizedRect


@dataclass(frozen=True)
class KenBurnsTransform:
    """Pan/zoom applied to a still over the segment's lifetime."""
    start_scale: float
    end_scale: float
    start_offset: Tuple[float, float]
    end_offset: Tuple[float, float]


@dataclass
class Candidate:
    """A prospective output segment."""
    id: str
    clip_id: str
    media_type: MediaType
    start: float
    duration: float
    tier: Tier
    has_faces: bool = False
    motion_level: float = 0.0
    shot_type: Optional[ShotType] = None
    score: float = 0.0
    beat_index: Optional[int] = None
    transform: Optional[KenBurnsTransform] = None

    @property
    def end(self) -> float:
        return self.start + self.duration

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start, self.end)


@dataclass(frozen=True)
class CinematicScore:
    """Four-axis verdict for one candidate interval."""
    overall: float
    face_score: float
    composition_score: float
    stability_score: float
    exposure_score: float
    is_rejected: bool
    rejection_reason: Optional[str] = None

    WEIGHTS = (0.30, 0.25, 0.25, 0.20)
    MIN_STABILITY = 0.2
    MIN_EXPOSURE = 0.2

    @classmethod
    def create(
        cls,
        face: float,
        composition: float,
        stability: float,
        exposure: float,
        reason: Optional[str] = None,
    ) -> "CinematicScore":
        """Weight the axes and apply the hard rejection rule."""
        face, composition, stability, exposure = (
            _clamp01(v) for v in (face, composition, stability, exposure)
        )
        w_face, w_comp, w_stab, w_exp = cls.WEIGHTS
        overall = face * w_face + composition * w_comp + stability * w_stab + exposure * w_exp

        rejection = None
        if stability < cls.MIN_STABILITY:
            rejection = reason or f"Stability too low ({stability:.2f})"
        elif exposure < cls.MIN_EXPOSURE:
            rejection = reason or f"Exposure too low ({exposure:.2f})"

        return cls(
            overall=_clamp01(overall),
            face_score=face,
            composition_score=composition,
            stability_score=stability,
            exposure_score=exposure,
            is_rejected=rejection is not None,
            rejection_reason=rejection,
        )

    @classmethod
    def zero(cls, reason: str) -> "CinematicScore":
        return cls.create(0.0, 0.0, 0.0, 0.0, reason=reason)

    @classmethod
    def fallback(cls) -> "CinematicScore":
        """Used when scoring itself failed; keeps the candidate in play."""
        return cls.create(0.4, 0.4, 0.6, 0.5)

    @classmethod
    def quick_default(cls) -> "CinematicScore":
        return cls.create(0.5, 0.5, 0.8, 0.7)


@dataclass
class ScoredCandidate:
    candidate: Candidate
    score: CinematicScore

    @property
    def id(self) -> str:
        return self.candidate.id

    @property
    def clip_id(self) -> str:
        return self.candidate.clip_id

    @property
    def tier(self) -> Tier:
        return self.candidate.tier

    @property
    def time_range(self) -> TimeRange:
        return self.candidate.time_range


# =============================================================================
# Planning and output
# =============================================================================

@dataclass
class StoryStructure:
    intro_duration: float
    build_duration: float
    climax_duration: float
    outro_duration: float
    pace: Pace = Pace.NORMAL

    @property
    def total_duration(self) -> float:
        return self.intro_duration + self.build_duration + self.climax_duration + self.outro_duration

    def phases(self) -> List[Tuple[StoryPhase, float]]:
        return [
            (StoryPhase.INTRO, self.intro_duration),
            (StoryPhase.BUILD, self.build_duration),
            (StoryPhase.CLIMAX, self.climax_duration),
            (StoryPhase.OUTRO, self.outro_duration),
        ]


@dataclass(frozen=True)
class Segment:
    """One cut of the finished edit."""
    id: str
    candidate_id: str
    source_clip_id: str
    source_start: float
    source_end: float
    order: int
    phase: Optional[StoryPhase] = None
    timeline_start: float = 0.0
    beat_index: Optional[int] = None
    transform: Optional[KenBurnsTransform] = None

    @property
    def duration(self) -> float:
        return self.source_end - self.source_start

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "candidate_id": self.candidate_id,
            "source_clip_id": self.source_clip_id,
            "source_start": round(self.source_start, 3),
            "source_end": round(self.source_end, 3),
            "order": self.order,
            "phase": self.phase.value if self.phase else None,
            "timeline_start": round(self.timeline_start, 3),
            "beat_index": self.beat_index,
        }


def _clamp01(value: float) -> float:
    if value is None or math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, float(value)))
