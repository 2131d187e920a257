"""Shared fixtures: synthetic audio, images and an in-memory decoder."""

from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from highlight_reel.decoding import DecodedFrame
from highlight_reel.exceptions import DecodeError
from highlight_reel.models import Clip, MediaType, NormalizedRect
from highlight_reel.resource_pool import SerialExecutor


def click_track(
    duration: float = 10.0,
    sample_rate: int = 10000,
    interval: float = 0.5,
    offset: float = 0.25,
    click_length: float = 0.01,
) -> np.ndarray:
    """Silence with a full-scale click every ``interval`` seconds."""
    samples = np.zeros(int(duration * sample_rate), dtype=np.float32)
    click = int(round(click_length * sample_rate))
    t = offset
    while t < duration - click_length:
        start = int(round(t * sample_rate))
        samples[start:start + click] = 1.0
        t += interval
    return samples


def noise_image(seed: int = 0, height: int = 240, width: int = 320) -> np.ndarray:
    """Mid-grey textured BGR frame: sharp, well exposed."""
    rng = np.random.default_rng(seed)
    return rng.integers(60, 196, size=(height, width, 3), dtype=np.uint8)


class FakeDecoder:
    """In-memory MediaDecoder. Clips listed in ``broken`` fail every frame."""

    def __init__(
        self,
        audio: Dict[str, np.ndarray],
        sample_rate: int = 10000,
        broken: Sequence[str] = (),
    ):
        self.audio = audio
        self.sample_rate = sample_rate
        self.broken = set(broken)
        self.frame_calls = 0
        self._image = noise_image()

    def decode_audio(self, clip: Clip):
        if clip.id not in self.audio:
            raise DecodeError(clip.id, "no audio")
        return self.audio[clip.id], self.sample_rate

    def decode_frame(self, clip: Clip, time: float) -> DecodedFrame:
        self.frame_calls += 1
        if clip.id in self.broken:
            raise DecodeError(clip.id, "corrupt stream", time)
        return DecodedFrame(image=self._image, nominal_size=(320, 240))


class FixedFaces:
    """Face detector stub returning the same boxes for every frame."""

    def __init__(self, faces: Optional[List[NormalizedRect]] = None):
        self.faces = faces or []
        self.calls = 0

    def __call__(self, image):
        self.calls += 1
        return list(self.faces)


CENTERED_FACE = NormalizedRect(0.4, 0.35, 0.2, 0.25)


@pytest.fixture
def centered_face_detector():
    return FixedFaces([CENTERED_FACE])


@pytest.fixture
def no_face_detector():
    return FixedFaces([])


@pytest.fixture
def serial_executor():
    executor = SerialExecutor(name="test-frames")
    yield executor
    executor.shutdown(wait=True)


@pytest.fixture
def music_clip():
    return Clip(id="song", media_type=MediaType.AUDIO_ONLY, duration=30.0, has_audio_track=True)


@pytest.fixture
def video_clips():
    return [
        Clip(id="beach", media_type=MediaType.VIDEO, duration=20.0),
        Clip(id="party", media_type=MediaType.VIDEO, duration=20.0),
    ]
