"""
Media decoding collaborators.

The assembly core never parses containers itself. It asks a MediaDecoder for
mono audio samples or for a single frame at a time point. OpenCVMediaDecoder
is the stock implementation: cv2.VideoCapture for video frames, cv2.imread for
stills and an ffmpeg subprocess for audio.
"""

import os
import subprocess
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Optional, Protocol, Tuple

import cv2
import numpy as np

from .config import get_settings
from .exceptions import DecodeError
from .logger import logger
from .models import Clip, MediaType


@dataclass
class DecodedFrame:
    """A BGR frame plus the source's orientation-corrected nominal size."""
    image: np.ndarray
    nominal_size: Optional[Tuple[int, int]] = None


class MediaDecoder(Protocol):
    """What the pipeline needs from a decoding backend."""

    def decode_audio(self, clip: Clip) -> Tuple[np.ndarray, int]:
        """Return (mono float samples, sample_rate). Raise DecodeError on failure."""
        ...

    def decode_frame(self, clip: Clip, time: float) -> DecodedFrame:
        """Return the frame at ``time`` seconds. Raise DecodeError on failure."""
        ...


# =============================================================================
# Capture pool
# =============================================================================

@dataclass
class _PooledCapture:
    capture: cv2.VideoCapture
    last_access: float = field(default_factory=time.time)
    size: Tuple[int, int] = (0, 0)


class CapturePool:
    """Small LRU cache of open cv2.VideoCapture handles keyed by path."""

    def __init__(self, max_size: int = 8):
        self.max_size = max_size
        self._pool: "OrderedDict[str, _PooledCapture]" = OrderedDict()
        self._lock = threading.RLock()

    def acquire(self, path: str) -> _PooledCapture:
        abs_path = os.path.abspath(path)
        with self._lock:
            pooled = self._pool.get(abs_path)
            if pooled is not None and pooled.capture.isOpened():
                pooled.last_access = time.time()
                self._pool.move_to_end(abs_path)
                return pooled

            while len(self._pool) >= self.max_size:
                _, evicted = self._pool.popitem(last=False)
                evicted.capture.release()

            cap = cv2.VideoCapture(abs_path)
            if not cap.isOpened():
                raise IOError(f"Cannot open video: {path}")
            size = (
                int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
                int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            )
            pooled = _PooledCapture(capture=cap, size=size)
            self._pool[abs_path] = pooled
            logger.debug(f"Capture pool opened: {os.path.basename(abs_path)} {size[0]}x{size[1]}")
            return pooled

    def clear(self) -> None:
        with self._lock:
            for pooled in self._pool.values():
                pooled.capture.release()
            self._pool.clear()


# =============================================================================
# OpenCV / ffmpeg decoder
# =============================================================================

class OpenCVMediaDecoder:
    """
    Decoder backed by OpenCV and ffmpeg.

    Not thread-safe for frames; the pipeline calls decode_frame only from its
    serial executor.
    """

    def __init__(self, sample_rate: Optional[int] = None, pool_size: int = 8):
        self.sample_rate = sample_rate or get_settings().audio.sample_rate
        self._captures = CapturePool(max_size=pool_size)

    def decode_audio(self, clip: Clip) -> Tuple[np.ndarray, int]:
        if not clip.path:
            raise DecodeError(clip.id, "clip has no file path")

        cmd = [
            "ffmpeg", "-v", "error", "-i", clip.path,
            "-vn", "-ac", "1", "-ar", str(self.sample_rate),
            "-f", "f32le", "-",
        ]
        timeout = get_settings().analysis.music_analysis_timeout
        try:
            result = subprocess.run(cmd, capture_output=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DecodeError(clip.id, f"ffmpeg failed: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise DecodeError(clip.id, f"ffmpeg exited {result.returncode}: {stderr[:200]}")

        samples = np.frombuffer(result.stdout, dtype=np.float32)
        if samples.size == 0:
            raise DecodeError(clip.id, "no audio samples decoded")
        return samples, self.sample_rate

    def decode_frame(self, clip: Clip, time: float) -> DecodedFrame:
        if not clip.path:
            raise DecodeError(clip.id, "clip has no file path", time)

        if clip.media_type == MediaType.IMAGE:
            image = cv2.imread(clip.path, cv2.IMREAD_COLOR)
            if image is None:
                raise DecodeError(clip.id, "cannot read image", time)
            height, width = image.shape[:2]
            return DecodedFrame(image=image, nominal_size=clip.nominal_size or (width, height))

        try:
            pooled = self._captures.acquire(clip.path)
        except IOError as e:
            raise DecodeError(clip.id, str(e), time) from e

        pooled.capture.set(cv2.CAP_PROP_POS_MSEC, max(0.0, time) * 1000.0)
        ok, frame = pooled.capture.read()
        if not ok or frame is None:
            raise DecodeError(clip.id, "no frame at position", time)
        return DecodedFrame(image=frame, nominal_size=clip.nominal_size or pooled.size)

    def close(self) -> None:
        self._captures.clear()
