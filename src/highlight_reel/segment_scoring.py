"""
Cinematic scoring of one candidate interval.

Five frames are sampled across the interval and judged on face framing,
composition, exposure and (from frame to frame consistency) stability.
"""

from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from .exceptions import DecodeError
from .frame_analysis import (
    FaceDetector,
    HaarFaceDetector,
    lighting_score,
    mean_luma,
    primary_face,
    sharpness_score,
    to_gray,
)
from .logger import logger
from .models import Candidate, CinematicScore, NormalizedRect


MIN_SEGMENT_DURATION = 0.5
MAX_SEGMENT_DURATION = 10.0
FRAMES_PER_SEGMENT = 5
CLIP_END_PADDING = 0.1

FACE_SIZE_BAND = (0.08, 0.40)
THIRDS_POINTS = (1.0 / 3.0, 2.0 / 3.0, 0.5)
THIRDS_TOLERANCE = 0.15
CORNER_LOW, CORNER_HIGH = 0.1, 0.9
CLIP_MARGIN = 0.05

NEUTRAL_FRAME = (0.5, 0.5, 0.5)

FrameProvider = Callable[[float], np.ndarray]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def face_size_score(face: NormalizedRect) -> float:
    score = 0.5
    low, high = FACE_SIZE_BAND
    if low <= face.area <= high:
        score += 0.3
    elif face.area < low:
        score -= 0.2
    else:
        score -= 0.1

    score += -0.3 if face.is_clipped(CLIP_MARGIN) else 0.2
    return _clamp(score)


def composition_score(face: NormalizedRect) -> float:
    """Reward rule-of-thirds placement, punish corners and clipping."""
    cx, cy = face.center
    dx = min(abs(cx - p) for p in THIRDS_POINTS)
    dy = min(abs(cy - p) for p in THIRDS_POINTS)

    score = 0.5
    if dx <= THIRDS_TOLERANCE and dy <= THIRDS_TOLERANCE:
        score += 0.3
    elif dx <= THIRDS_TOLERANCE or dy <= THIRDS_TOLERANCE:
        score += 0.15

    in_corner_x = cx < CORNER_LOW or cx > CORNER_HIGH
    in_corner_y = cy < CORNER_LOW or cy > CORNER_HIGH
    if in_corner_x and in_corner_y:
        score -= 0.3
    if face.is_clipped(CLIP_MARGIN):
        score -= 0.2
    return _clamp(score)


def stability_from_composition(compositions: List[float]) -> float:
    """Low variance of frame-to-frame composition change means a steady shot."""
    if len(compositions) < 2:
        return 0.5
    diffs = np.diff(np.asarray(compositions, dtype=np.float64))
    return 1.0 - min(1.0, float(np.var(diffs)) * 2.0)


class SegmentScorer:
    """
    Scores candidate intervals.

    Frames come from a provider callable so the caller decides where decoding
    runs (the pipeline routes it through the serial executor).
    """

    def __init__(self, face_detector: Optional[FaceDetector] = None):
        self.face_detector = face_detector or HaarFaceDetector()

    def score_frame(self, image: np.ndarray) -> Tuple[float, float, float]:
        """(face, composition, exposure) for one frame."""
        face = primary_face(self.face_detector(image))
        if face is None:
            face_value, composition = 0.3, 0.5
        else:
            face_value, composition = face_size_score(face), composition_score(face)

        lighting, _ = lighting_score(mean_luma(image))
        exposure = 0.7 * lighting + 0.3 * sharpness_score(to_gray(image))
        return face_value, composition, _clamp(exposure)

    def score_interval(
        self,
        clip_duration: float,
        start: float,
        end: float,
        frame_at: FrameProvider,
    ) -> CinematicScore:
        start = max(0.0, min(start, clip_duration - CLIP_END_PADDING))
        end = max(start + CLIP_END_PADDING, min(end, clip_duration))
        duration = end - start

        if duration < MIN_SEGMENT_DURATION or duration > MAX_SEGMENT_DURATION:
            return CinematicScore.zero(f"Invalid duration ({duration:.2f}s)")

        faces, compositions, exposures = [], [], []
        for i in range(FRAMES_PER_SEGMENT):
            t = start + duration * i / (FRAMES_PER_SEGMENT - 1)
            try:
                f, c, e = self.score_frame(frame_at(t))
            except (DecodeError, cv2.error) as err:
                logger.debug(f"Frame at {t:.2f}s unavailable for scoring: {err}")
                f, c, e = NEUTRAL_FRAME
            faces.append(f)
            compositions.append(c)
            exposures.append(e)

        return CinematicScore.create(
            face=float(np.mean(faces)),
            composition=float(np.mean(compositions)),
            stability=stability_from_composition(compositions),
            exposure=float(np.mean(exposures)),
        )

    def score_candidate(
        self,
        candidate: Candidate,
        clip_duration: float,
        frame_at: FrameProvider,
    ) -> CinematicScore:
        """Score a candidate, substituting a neutral verdict if scoring breaks."""
        try:
            return self.score_interval(clip_duration, candidate.start, candidate.end, frame_at)
        except Exception as e:
            logger.warning(f"Scoring failed for {candidate.id}, using fallback score: {e}")
            return CinematicScore.fallback()
