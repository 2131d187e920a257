"""
Frame Quality Analysis

Measures a single decoded frame: faces and how well they are framed, lighting,
edge density as a motion/detail proxy, sharpness, and whether the frame looks
like a landscape shot. The measurements are folded into one 0..1 quality score.

All functions take BGR uint8 images as produced by cv2.
"""

from typing import Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .logger import logger
from .models import FrameMeasurement, NormalizedRect, PhotoMoment


# Lighting
GOOD_LIGHTING_RANGE = (0.3, 0.8)
# Edge density
EDGE_LOW_THRESHOLD = 50
EDGE_HIGH_THRESHOLD = 150
MOTION_RANGE = (0.1, 0.4)
MOTION_TARGET = 0.25
# Faces
CENTER_RANGE = (0.15, 0.85)
FACE_SIZE_RANGE = (0.03, 0.5)
EDGE_MARGIN = 0.05
# Landscape heuristic
LANDSCAPE_MIN_ASPECT = 1.5
LANDSCAPE_MIN_COVERAGE = 0.7
# Laplacian variance below this reads as shaken / smeared
STABILITY_MIN_SHARPNESS = 20.0
SHARPNESS_FULL_SCALE = 500.0

DEFAULT_SUBJECT = NormalizedRect(0.25, 0.25, 0.5, 0.5)

FaceDetector = Callable[[np.ndarray], List[NormalizedRect]]


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


# =============================================================================
# Face Detection
# =============================================================================

class HaarFaceDetector:
    """
    Frontal face detector on OpenCV's bundled Haar cascade.

    Not thread-safe; run it on the shared serial executor.
    """

    def __init__(
        self,
        cascade_path: Optional[str] = None,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
    ):
        self.cascade_path = cascade_path or (
            cv2.data.haarcascades + "haarcascade_frontalface_default.xml"
        )
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self._cascade = None

    def _load(self):
        if self._cascade is None:
            cascade = cv2.CascadeClassifier(self.cascade_path)
            if cascade.empty():
                raise RuntimeError(f"Cannot load face cascade: {self.cascade_path}")
            self._cascade = cascade
        return self._cascade

    def __call__(self, image: np.ndarray) -> List[NormalizedRect]:
        gray = to_gray(image)
        height, width = gray.shape[:2]
        if width == 0 or height == 0:
            return []

        faces = self._load().detectMultiScale(gray, self.scale_factor, self.min_neighbors)
        return [
            NormalizedRect(x / width, y / height, w / width, h / height)
            for (x, y, w, h) in faces
        ]


def primary_face(faces: Sequence[NormalizedRect]) -> Optional[NormalizedRect]:
    """Largest face by area."""
    if not faces:
        return None
    return max(faces, key=lambda f: f.area)


# =============================================================================
# Individual Measurements
# =============================================================================

def framing_score(face: NormalizedRect) -> Tuple[float, bool]:
    """
    Score how well the primary face is framed.

    Returns:
        (score, centered) where centered means every framing check passed
    """
    cx, cy = face.center
    low, high = CENTER_RANGE
    centered_x = low <= cx <= high
    centered_y = low <= cy <= high
    good_size = FACE_SIZE_RANGE[0] <= face.area <= FACE_SIZE_RANGE[1]
    not_clipped = not face.is_clipped(EDGE_MARGIN)

    score = 0.5
    score += 0.15 if centered_x else 0.0
    score += 0.15 if centered_y else 0.0
    score += 0.1 if good_size else 0.0
    score += 0.1 if not_clipped else 0.0
    return min(1.0, score), centered_x and centered_y and good_size and not_clipped


def mean_luma(image: np.ndarray) -> float:
    """Mean Rec.601 luma in 0..1."""
    if image.size == 0:
        return 0.0
    if image.ndim == 2:
        return float(image.mean()) / 255.0
    b, g, r = (image[:, :, i].astype(np.float64) for i in range(3))
    return float((0.299 * r + 0.587 * g + 0.114 * b).mean()) / 255.0


def lighting_score(brightness: float) -> Tuple[float, bool]:
    """Peaks at mid-grey; (score, has_good_lighting)."""
    good = GOOD_LIGHTING_RANGE[0] <= brightness <= GOOD_LIGHTING_RANGE[1]
    return _clamp(1.0 - abs(brightness - 0.5) * 2.0), good


def edge_density(gray: np.ndarray) -> float:
    if gray.size == 0:
        return 0.0
    edges = cv2.Canny(gray, EDGE_LOW_THRESHOLD, EDGE_HIGH_THRESHOLD)
    return float(np.count_nonzero(edges)) / edges.size


def motion_score(density: float) -> Tuple[float, bool]:
    """Edge density as a detail/motion proxy; (score, has_motion)."""
    has_motion = MOTION_RANGE[0] <= density <= MOTION_RANGE[1]
    return _clamp(1.0 - abs(density - MOTION_TARGET) * 2.0), has_motion


def laplacian_variance(gray: np.ndarray) -> float:
    if gray.size == 0:
        return 0.0
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def sharpness_score(gray: np.ndarray) -> float:
    return _clamp(laplacian_variance(gray) / SHARPNESS_FULL_SCALE)


def is_landscape(image: np.ndarray, nominal_size: Optional[Tuple[int, int]] = None) -> bool:
    """Wide frame that covers most of the source's nominal area."""
    height, width = image.shape[:2]
    if height == 0:
        return False
    aspect = width / height
    coverage = 1.0
    if nominal_size and nominal_size[0] > 0 and nominal_size[1] > 0:
        coverage = (width * height) / float(nominal_size[0] * nominal_size[1])
    return aspect >= LANDSCAPE_MIN_ASPECT and coverage > LANDSCAPE_MIN_COVERAGE


def combine_quality(
    has_face: bool,
    framing: float,
    lighting: float,
    motion: float,
    is_stable: bool,
) -> float:
    """
    Fold the measurements into one quality score.

    Dark, faceless, unstable frames are usually behind-the-scenes footage and
    get crushed by an extra 0.3 factor.
    """
    if has_face:
        score = framing * 0.4
    else:
        score = 0.05 if lighting < 0.3 else 0.2

    score += lighting * (0.15 if lighting < 0.2 else 0.3)
    score += motion * (0.1 if motion > 0.8 and not is_stable else 0.2)
    score += 0.1 if is_stable else 0.02

    if lighting < 0.25 and not has_face and not is_stable:
        score *= 0.3
    return min(1.0, score)


# =============================================================================
# Analyzer
# =============================================================================

class FrameQualityAnalyzer:
    """
    Measures frames for moment detection and photo scoring.

    Args:
        face_detector: callable returning normalized face boxes
            (default: HaarFaceDetector)
    """

    def __init__(self, face_detector: Optional[FaceDetector] = None):
        self.face_detector = face_detector or HaarFaceDetector()

    def detect_faces(self, image: np.ndarray) -> List[NormalizedRect]:
        try:
            return list(self.face_detector(image))
        except cv2.error as e:
            logger.debug(f"Face detection failed: {e}")
            return []

    def analyze(
        self,
        image: np.ndarray,
        timestamp: float,
        nominal_size: Optional[Tuple[int, int]] = None,
    ) -> FrameMeasurement:
        gray = to_gray(image)
        faces = self.detect_faces(image)
        face = primary_face(faces)

        if face is not None:
            framing, centered = framing_score(face)
            landscape = False
        else:
            framing, centered = 0.0, False
            landscape = is_landscape(image, nominal_size)

        lighting, good_lighting = lighting_score(mean_luma(image))
        motion, has_motion = motion_score(edge_density(gray))
        stable = laplacian_variance(gray) >= STABILITY_MIN_SHARPNESS

        return FrameMeasurement(
            timestamp=timestamp,
            has_face=face is not None,
            face_count=len(faces),
            primary_face_centered=centered,
            face_bounds=face,
            framing_score=framing,
            lighting_score=lighting,
            motion_score=motion,
            quality_score=combine_quality(face is not None, framing, lighting, motion, stable),
            is_stable=stable,
            has_good_lighting=good_lighting,
            has_motion=has_motion,
            is_landscape_shot=landscape,
        )

    def analyze_photo(self, clip_id: str, image: np.ndarray) -> PhotoMoment:
        """Score a still image and locate its subject for pan/zoom."""
        faces = self.detect_faces(image)
        face = primary_face(faces)
        _, good_lighting = lighting_score(mean_luma(image))

        score = 0.5
        if face is not None:
            score += 0.3
        if good_lighting:
            score += 0.2

        return PhotoMoment(
            clip_id=clip_id,
            has_faces=face is not None,
            score=min(1.0, score),
            subject_rect=face or DEFAULT_SUBJECT,
        )
