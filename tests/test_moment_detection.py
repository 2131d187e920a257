"""
Tests for moment detection and frame sampling.
"""

import pytest

from highlight_reel.models import Clip, FrameMeasurement, MediaType, NormalizedRect, ShotType
from highlight_reel.moment_detection import (
    MomentDetector,
    quick_moments,
    sample_interval,
    sample_times,
)


def _frames(duration, step, quality, face=None):
    frames = []
    t = 0.0
    i = 0
    while t < duration:
        frames.append(FrameMeasurement(
            timestamp=t,
            has_face=face is not None,
            face_count=1 if face is not None else 0,
            face_bounds=face,
            quality_score=quality,
        ))
        i += 1
        t = i * step
    return frames


class TestSampling:
    """Tests for sample_interval / sample_times."""

    @pytest.mark.parametrize("duration,expected", [
        (30.0, 0.5),
        (90.0, 1.0),
        (200.0, 2.0),
        (600.0, 3.0),
    ])
    def test_interval_grows_with_duration(self, duration, expected):
        assert sample_interval(duration) == expected

    def test_short_clip(self):
        times = sample_times(10.0, max_frames=50)
        assert len(times) == 20
        assert times[0] == 0.0
        assert times[1] == pytest.approx(0.5)

    def test_frame_cap(self):
        times = sample_times(30.0, max_frames=50)
        assert len(times) == 50
        assert times[-1] < 30.0

    def test_zero_duration(self):
        assert sample_times(0.0, max_frames=50) == []

    def test_very_short_clip_gets_one_frame(self):
        assert sample_times(0.2, max_frames=50) == [0.0]


class TestMomentDetector:
    """Tests for MomentDetector.detect."""

    def test_windows_of_two_seconds(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=10.0)
        face = NormalizedRect(0.35, 0.3, 0.3, 0.33)
        frames = _frames(10.0, 0.5, 0.6, face=face)

        moments = MomentDetector(window_seconds=2.0).detect(clip, frames)

        assert len(moments) == 5
        assert [m.start for m in moments] == pytest.approx([0.0, 2.0, 4.0, 6.0, 8.0])
        for moment in moments:
            assert moment.duration == pytest.approx(2.0)
            assert moment.has_faces is True
            assert moment.shot_type == ShotType.MEDIUM
            assert moment.quality_score == pytest.approx(0.6)
            assert moment.motion_level == 0.0

    def test_last_window_runs_to_clip_end(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=3.0)
        frames = _frames(1.0, 0.5, 0.5)
        moments = MomentDetector(window_seconds=2.0).detect(clip, frames)
        assert len(moments) == 1
        assert moments[0].end == pytest.approx(3.0)

    def test_quality_jump_closes_window(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=4.0)
        frames = [
            FrameMeasurement(timestamp=0.0, quality_score=0.8),
            FrameMeasurement(timestamp=0.5, quality_score=0.8),
            FrameMeasurement(timestamp=1.0, quality_score=0.3),
            FrameMeasurement(timestamp=1.5, quality_score=0.3),
        ]
        moments = MomentDetector(window_seconds=2.0).detect(clip, frames)

        assert len(moments) == 2
        assert moments[0].start == 0.0
        assert moments[0].duration == pytest.approx(1.0)
        assert moments[1].start == pytest.approx(1.0)
        assert moments[1].end == pytest.approx(4.0)

    def test_dull_faceless_window_rejected(self):
        """Quality between 0.1 and 0.2 needs a face or a landscape."""
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=4.0)
        frames = _frames(4.0, 0.5, 0.15)
        frames[0].is_landscape_shot = True
        moments = MomentDetector(window_seconds=2.0).detect(clip, frames)

        assert len(moments) == 1
        assert moments[0].start == 0.0
        assert moments[0].shot_type == ShotType.MASTER

    def test_motion_level_is_mean_quality_change(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=2.0)
        frames = [
            FrameMeasurement(timestamp=0.0, quality_score=0.5),
            FrameMeasurement(timestamp=0.5, quality_score=0.7),
            FrameMeasurement(timestamp=1.0, quality_score=0.5),
        ]
        moments = MomentDetector(window_seconds=2.0).detect(clip, frames)
        assert moments[0].motion_level == pytest.approx(0.2)

    def test_all_poor_frames_fall_back_to_midpoint(self):
        """Every window rejected: one 2s moment around the middle frame."""
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=10.0)
        frames = _frames(10.0, 0.5, 0.05)
        moments = MomentDetector(window_seconds=2.0).detect(clip, frames)

        assert len(moments) == 1
        moment = moments[0]
        assert moment.start == pytest.approx(4.0)
        assert moment.duration == pytest.approx(2.0)
        assert moment.quality_score == pytest.approx(0.1)

    def test_no_measurements_still_yields_moment(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=1.0)
        moments = MomentDetector(window_seconds=2.0).detect(clip, [])
        assert len(moments) == 1
        assert moments[0].start == 0.0
        assert moments[0].duration == pytest.approx(1.0)


class TestQuickMoments:
    """Tests for quick_moments."""

    def test_beat_paced(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=5.0)
        moments = quick_moments(clip, [0.0, 1.0, 2.0, 3.0])
        assert len(moments) == 5
        assert all(m.duration == pytest.approx(1.0) for m in moments)
        assert moments[-1].end == pytest.approx(5.0)

    def test_default_cycle_without_beats(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=5.0)
        moments = quick_moments(clip, [])
        assert [m.duration for m in moments] == pytest.approx([1.5, 2.0, 1.5])

    def test_ignores_implausible_intervals(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=4.0)
        moments = quick_moments(clip, [0.0, 0.1, 10.0])
        assert moments[0].duration == pytest.approx(1.5)

    def test_very_short_clip_gets_fallback(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=0.4)
        moments = quick_moments(clip, [])
        assert len(moments) == 1
        assert moments[0].start == 0.0
        assert moments[0].duration == pytest.approx(0.4)

    def test_moments_are_contiguous(self):
        clip = Clip(id="c", media_type=MediaType.VIDEO, duration=12.0)
        moments = quick_moments(clip, [])
        for a, b in zip(moments, moments[1:]):
            assert b.start == pytest.approx(a.end)
