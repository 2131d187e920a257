"""
Moment detection: group a clip's measured frames into short candidate ranges.

Acceptance is deliberately permissive; fine quality filtering happens at
selection time. Every clip yields at least one moment.
"""

from typing import List, Optional, Sequence

import numpy as np

from .config import get_settings
from .logger import logger
from .models import Clip, FrameMeasurement, Moment, ShotType


QUALITY_JUMP_THRESHOLD = 0.3
MIN_ACCEPT_QUALITY = 0.1
PLAIN_ACCEPT_QUALITY = 0.2

QUICK_MIN_INTERVAL = 0.5
QUICK_MAX_INTERVAL = 4.0
QUICK_DEFAULT_DURATIONS = (1.5, 2.0, 2.5, 1.0, 2.0)


def sample_interval(duration: float) -> float:
    """Seconds between sampled frames; sparser for long clips."""
    if duration > 300:
        return 3.0
    if duration > 120:
        return 2.0
    if duration > 60:
        return 1.0
    return 0.5


def sample_times(duration: float, max_frames: Optional[int] = None) -> List[float]:
    """
    Timestamps to decode for a clip, never more than ``max_frames``.
    """
    if max_frames is None:
        max_frames = get_settings().analysis.max_frames_per_clip
    if duration <= 0:
        return []

    interval = sample_interval(duration)
    count = int(duration / interval)
    if count > max_frames:
        interval = duration / max_frames
        count = max_frames
    count = max(1, count)
    return [i * interval for i in range(count)]


class MomentDetector:
    """
    Slides a time window over frame measurements.

    A window closes after ``window_seconds`` or early when quality jumps by
    more than 0.3 between consecutive frames (a likely cut or whip pan).
    """

    def __init__(self, window_seconds: Optional[float] = None, jump_threshold: float = QUALITY_JUMP_THRESHOLD):
        if window_seconds is None:
            window_seconds = get_settings().analysis.moment_window_seconds
        self.window_seconds = window_seconds
        self.jump_threshold = jump_threshold

    def detect(self, clip: Clip, measurements: Sequence[FrameMeasurement]) -> List[Moment]:
        """All accepted moments for the clip, or one synthesized fallback."""
        frames = sorted(measurements, key=lambda m: m.timestamp)
        moments: List[Moment] = []

        window: List[FrameMeasurement] = []
        window_start = 0.0
        previous_quality: Optional[float] = None

        for frame in frames:
            if not window:
                window = [frame]
                window_start = frame.timestamp
                previous_quality = frame.quality_score
                continue

            jump = abs(frame.quality_score - previous_quality)
            if frame.timestamp - window_start >= self.window_seconds or jump > self.jump_threshold:
                moment = self._close_window(clip.id, window, window_start, frame.timestamp - window_start)
                if moment is not None:
                    moments.append(moment)
                window = [frame]
                window_start = frame.timestamp
            else:
                window.append(frame)
            previous_quality = frame.quality_score

        if window:
            # The last window runs to the end of the clip
            end = max(clip.duration, window[-1].timestamp)
            moment = self._close_window(clip.id, window, window_start, end - window_start)
            if moment is not None:
                moments.append(moment)

        if not moments:
            logger.debug(f"Clip {clip.id}: every window rejected, using midpoint fallback")
            moments = [self.fallback_moment(clip, frames)]
        return moments

    def _close_window(
        self,
        clip_id: str,
        window: List[FrameMeasurement],
        start: float,
        duration: float,
    ) -> Optional[Moment]:
        if duration <= 0:
            return None

        qualities = [f.quality_score for f in window]
        average_quality = float(np.mean(qualities))
        has_faces = any(f.has_face for f in window)
        landscape = any(f.is_landscape_shot for f in window)

        if average_quality < MIN_ACCEPT_QUALITY:
            return None
        if not (has_faces or landscape or average_quality >= PLAIN_ACCEPT_QUALITY):
            return None

        variation = float(np.mean(np.abs(np.diff(qualities)))) if len(qualities) > 1 else 0.0
        first_face = next((f.face_bounds for f in window if f.face_bounds is not None), None)
        face_area = first_face.area if first_face is not None else 0.0

        return Moment(
            clip_id=clip_id,
            start=start,
            duration=duration,
            has_faces=has_faces,
            motion_level=variation,
            quality_score=average_quality,
            shot_type=ShotType.classify(has_faces, face_area, average_quality),
        )

    @staticmethod
    def fallback_moment(clip: Clip, measurements: Sequence[FrameMeasurement] = ()) -> Moment:
        """Two seconds around the clip's middle frame."""
        frames = sorted(measurements, key=lambda m: m.timestamp)
        if frames:
            middle = frames[len(frames) // 2]
            center, quality, has_face = middle.timestamp, middle.quality_score, middle.has_face
        else:
            center, quality, has_face = clip.duration / 2.0, 0.0, False

        start = max(0.0, min(center - 1.0, clip.duration - 2.0))
        return Moment(
            clip_id=clip.id,
            start=start,
            duration=max(0.0, min(2.0, clip.duration - start)),
            has_faces=has_face,
            motion_level=0.0,
            quality_score=max(0.1, quality),
            shot_type=ShotType.MEDIUM,
        )


def quick_moments(clip: Clip, beat_times: Sequence[float]) -> List[Moment]:
    """
    Beat-paced moments laid end to end across a clip, without frame analysis.
    """
    durations = [
        b - a for a, b in zip(beat_times, beat_times[1:])
        if QUICK_MIN_INTERVAL <= b - a <= QUICK_MAX_INTERVAL
    ]
    if not durations:
        durations = list(QUICK_DEFAULT_DURATIONS)

    moments = []
    current = 0.0
    index = 0
    while current < clip.duration - 0.5:
        end = min(current + durations[index % len(durations)], clip.duration)
        if end - current >= 0.5:
            moments.append(Moment(
                clip_id=clip.id,
                start=current,
                duration=end - current,
                has_faces=False,
                motion_level=0.5,
                quality_score=0.5,
                shot_type=ShotType.MEDIUM,
            ))
        current = end
        index += 1

    if not moments:
        return [MomentDetector.fallback_moment(clip)]
    return moments
