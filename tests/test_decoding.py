"""
Tests for the OpenCV decoder on files written to a temp directory.
"""

import cv2
import numpy as np
import pytest

from highlight_reel.decoding import CapturePool, OpenCVMediaDecoder
from highlight_reel.exceptions import DecodeError
from highlight_reel.models import Clip, MediaType


@pytest.fixture
def decoder():
    decoder = OpenCVMediaDecoder(sample_rate=8000, pool_size=2)
    yield decoder
    decoder.close()


class TestImageFrames:

    def test_reads_still(self, decoder, tmp_path):
        path = tmp_path / "photo.png"
        image = np.full((40, 60, 3), 90, dtype=np.uint8)
        assert cv2.imwrite(str(path), image)

        frame = decoder.decode_frame(Clip(id="photo", media_type=MediaType.IMAGE, duration=0.0, path=str(path)), 0.0)
        assert frame.image.shape == (40, 60, 3)
        assert frame.nominal_size == (60, 40)

    def test_nominal_size_from_clip(self, decoder, tmp_path):
        path = tmp_path / "photo.png"
        cv2.imwrite(str(path), np.zeros((10, 10, 3), dtype=np.uint8))
        clip = Clip(id="photo", media_type=MediaType.IMAGE, duration=0.0, path=str(path), nominal_size=(1920, 1080))
        assert decoder.decode_frame(clip, 0.0).nominal_size == (1920, 1080)

    def test_unreadable_image(self, decoder, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"garbage")
        clip = Clip(id="photo", media_type=MediaType.IMAGE, duration=0.0, path=str(path))
        with pytest.raises(DecodeError):
            decoder.decode_frame(clip, 0.0)


class TestDecodeErrors:

    def test_frame_without_path(self, decoder):
        with pytest.raises(DecodeError):
            decoder.decode_frame(Clip(id="v", media_type=MediaType.VIDEO, duration=5.0), 1.0)

    def test_audio_without_path(self, decoder):
        with pytest.raises(DecodeError):
            decoder.decode_audio(Clip(id="a", media_type=MediaType.AUDIO_ONLY, duration=5.0))

    def test_missing_video(self, decoder, tmp_path):
        clip = Clip(id="v", media_type=MediaType.VIDEO, duration=5.0, path=str(tmp_path / "missing.mp4"))
        with pytest.raises(DecodeError) as excinfo:
            decoder.decode_frame(clip, 1.0)
        assert excinfo.value.time == 1.0


class TestCapturePool:

    def test_missing_file_raises_ioerror(self, tmp_path):
        pool = CapturePool(max_size=1)
        with pytest.raises(IOError):
            pool.acquire(str(tmp_path / "missing.mp4"))
        pool.clear()
