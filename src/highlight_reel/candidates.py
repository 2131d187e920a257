"""
Candidate generation.

Moments (video) and photo moments (stills) become beat-snapped, duration
bounded candidates in one of two tiers. The strict tier covers moments of a
normal length; anything else lands in the fallback tier so that no clip is
silently lost. Both tiers are further bounded by the pace.
"""

import bisect
import itertools
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .logger import logger, log_warning
from .models import (
    Candidate,
    KenBurnsTransform,
    MediaType,
    Moment,
    Pace,
    PhotoMoment,
    Tier,
)


TIER_BOUNDS = {
    Tier.STRICT: (0.5, 10.0),
    Tier.FALLBACK: (0.5, 30.0),
}
MAX_SPLITS = 10
BEAT_SNAP_TOLERANCE = 0.2
KEN_BURNS_MOTION = 0.6


def tier_bounds(tier: Tier, pace: Pace) -> Tuple[float, float]:
    """Duration bounds of a tier intersected with the pace bounds."""
    low, high = TIER_BOUNDS[tier]
    bounds = pace.bounds
    return max(low, bounds.min_duration), min(high, bounds.max_duration)


def nearest_beat_index(beat_times: Sequence[float], time: float) -> Optional[int]:
    if not beat_times:
        return None
    pos = bisect.bisect_left(beat_times, time)
    if pos == 0:
        return 0
    if pos == len(beat_times):
        return len(beat_times) - 1
    before, after = beat_times[pos - 1], beat_times[pos]
    return pos if after - time < time - before else pos - 1


def ken_burns_transform(photo: PhotoMoment, motion_intensity: float = KEN_BURNS_MOTION) -> KenBurnsTransform:
    """Zoom toward the subject when there is a face, otherwise a slow lateral pan."""
    zoom = 0.08 + 0.07 * motion_intensity
    if photo.has_faces:
        mid_x, mid_y = photo.subject_rect.center
        return KenBurnsTransform(
            start_scale=1.0,
            end_scale=1.0 + zoom,
            start_offset=(0.0, 0.0),
            end_offset=(-(mid_x - 0.5) * 0.3, -(mid_y - 0.5) * 0.3),
        )
    return KenBurnsTransform(
        start_scale=1.0,
        end_scale=1.0 + zoom * 0.5,
        start_offset=(-0.1, 0.0),
        end_offset=(0.1, 0.0),
    )


class CandidateGenerator:
    """
    Builds tiered candidates for one run.

    Args:
        beat_times: Music beat grid (seconds, increasing)
        pace: Active pace
        seed: Seed for photo durations; same seed, same output
        clip_durations: Optional clip lengths used to keep candidates inside their clip
    """

    def __init__(
        self,
        beat_times: Sequence[float],
        pace: Pace = Pace.NORMAL,
        seed: Optional[int] = None,
        clip_durations: Optional[Dict[str, float]] = None,
    ):
        self.beat_times = list(beat_times)
        self.pace = pace
        self.clip_durations = clip_durations or {}
        self._rng = np.random.default_rng(seed)
        self._ids = itertools.count(1)

    def _next_id(self, clip_id: str, tier: Tier) -> str:
        return f"{clip_id}#{tier.value}-{next(self._ids):04d}"

    # -------------------------------------------------------------------------
    # Video
    # -------------------------------------------------------------------------

    def generate(self, moments: Sequence[Moment]) -> Tuple[List[Candidate], List[Candidate]]:
        """
        Returns:
            (strict, fallback) candidate lists
        """
        strict: List[Candidate] = []
        fallback: List[Candidate] = []
        strict_low, strict_high = TIER_BOUNDS[Tier.STRICT]
        fallback_low, fallback_high = TIER_BOUNDS[Tier.FALLBACK]

        for moment in moments:
            duration = moment.duration
            if not math.isfinite(duration) or duration < strict_low:
                continue

            if duration > fallback_high:
                fallback.extend(self._split(moment))
            elif strict_low <= duration <= strict_high:
                strict.append(self._create(moment, moment.start, duration, Tier.STRICT))
            elif fallback_low <= duration <= fallback_high:
                fallback.append(self._create(moment, moment.start, duration, Tier.FALLBACK))

        logger.debug(f"Generated {len(strict)} strict + {len(fallback)} fallback candidates")
        return strict, fallback

    def _split(self, moment: Moment) -> List[Candidate]:
        """Equal pieces no longer than the fallback maximum, at most MAX_SPLITS."""
        splits = math.ceil(moment.duration / TIER_BOUNDS[Tier.FALLBACK][1])
        if splits > MAX_SPLITS:
            log_warning(
                f"Moment of {moment.duration:.0f}s in clip {moment.clip_id} needs {splits} pieces; "
                f"spreading {MAX_SPLITS} pieces across it instead"
            )
            splits = MAX_SPLITS
        piece = moment.duration / splits
        return [
            self._create(moment, moment.start + i * piece, piece, Tier.FALLBACK)
            for i in range(splits)
        ]

    def _create(self, moment: Moment, start: float, duration: float, tier: Tier) -> Candidate:
        low, high = tier_bounds(tier, self.pace)

        beat_index = nearest_beat_index(self.beat_times, start)
        if beat_index is not None and abs(self.beat_times[beat_index] - start) <= BEAT_SNAP_TOLERANCE:
            start = self.beat_times[beat_index]

        duration = max(low, min(duration, high))
        following = bisect.bisect_right(self.beat_times, start)
        if following < len(self.beat_times):
            interval = self.beat_times[following] - start
            if low <= interval <= high:
                duration = interval

        clip_duration = self.clip_durations.get(moment.clip_id)
        if clip_duration is not None and start + duration > clip_duration:
            start = max(0.0, clip_duration - duration)
            # A clip shorter than the pace minimum yields its whole length
            duration = min(duration, clip_duration - start)

        return Candidate(
            id=self._next_id(moment.clip_id, tier),
            clip_id=moment.clip_id,
            media_type=MediaType.VIDEO,
            start=start,
            duration=duration,
            tier=tier,
            has_faces=moment.has_faces,
            motion_level=moment.motion_level,
            shot_type=moment.shot_type,
            score=moment.quality_score,
            beat_index=nearest_beat_index(self.beat_times, start),
        )

    # -------------------------------------------------------------------------
    # Photos
    # -------------------------------------------------------------------------

    def generate_photo(self, photo: PhotoMoment) -> Candidate:
        bounds = self.pace.bounds
        duration = float(self._rng.uniform(bounds.photo_min, bounds.photo_max))
        start = self.beat_times[0] if self.beat_times else 0.0

        return Candidate(
            id=self._next_id(photo.clip_id, Tier.STRICT),
            clip_id=photo.clip_id,
            media_type=MediaType.IMAGE,
            start=start,
            duration=duration,
            tier=Tier.STRICT,
            has_faces=photo.has_faces,
            score=photo.score,
            beat_index=0 if self.beat_times else None,
            transform=ken_burns_transform(photo),
        )
