"""
Tests for audio analysis.

Covers the loudness envelope, beat detection, energy curve, section
boundaries and intro/climax zone detection.
"""

import math

import numpy as np
import pytest

from highlight_reel.audio_analysis import (
    EnergyPoint,
    Envelope,
    MusicAnalysis,
    analyze_music,
    build_envelope,
    compute_energy_curve,
    detect_beats,
    detect_sections,
    find_climax_zone,
    find_intro_zone,
)

from conftest import click_track


class TestBuildEnvelope:
    """Tests for build_envelope."""

    def test_length_includes_partial_frame(self):
        """Envelope length is ceil(samples / samples_per_frame)."""
        samples = np.ones(1001)
        envelope = build_envelope(samples, sample_rate=4000, frame_duration=0.02)
        assert len(envelope) == math.ceil(1001 / 80)

    def test_normalized_to_loudest_frame(self):
        """The loudest frame becomes 1.0, the rest scale with it."""
        samples = np.concatenate([np.full(20, 2.0), np.ones(90)])
        envelope = build_envelope(samples, sample_rate=1000, frame_duration=0.02)
        assert len(envelope) == 6
        assert envelope.rms_values.max() == pytest.approx(1.0)
        assert envelope.rms_values[0] == pytest.approx(1.0)
        assert envelope.rms_values[1:] == pytest.approx([0.5] * 5)

    def test_all_zero_samples(self):
        """Silence stays zero: no division by zero, no NaN."""
        envelope = build_envelope(np.zeros(5000), sample_rate=1000, frame_duration=0.02)
        assert len(envelope) == 250
        assert not np.isnan(envelope.rms_values).any()
        assert np.all(envelope.rms_values == 0.0)
        assert detect_beats(envelope) == []

    def test_empty_input(self):
        envelope = build_envelope(np.array([]), sample_rate=1000)
        assert len(envelope) == 0
        assert envelope.duration == 0.0

    def test_deterministic(self):
        samples = click_track(duration=3.0)
        a = build_envelope(samples, 10000, 0.01)
        b = build_envelope(samples, 10000, 0.01)
        np.testing.assert_array_equal(a.rms_values, b.rms_values)

    def test_invalid_sample_rate(self):
        with pytest.raises(ValueError):
            build_envelope(np.ones(10), sample_rate=0)


class TestDetectBeats:
    """Tests for detect_beats."""

    def test_click_track_beats(self):
        """Every click becomes a beat at its own time."""
        envelope = build_envelope(click_track(duration=10.0), 10000, 0.01)
        beats = detect_beats(envelope, min_beat_spacing=0.25, sensitivity=0.4)
        assert len(beats) == 20
        assert beats[0] == pytest.approx(0.25)
        assert beats[1] == pytest.approx(0.75)

    def test_spacing_enforced(self):
        """Clicks closer than the minimum spacing are thinned out."""
        envelope = build_envelope(click_track(duration=5.0, interval=0.1), 10000, 0.01)
        beats = detect_beats(envelope, min_beat_spacing=0.25, sensitivity=0.4)
        assert len(beats) > 1
        diffs = np.diff(beats)
        assert np.all(diffs >= 0.25 - 1e-9)

    def test_spacing_exact_in_frames(self):
        """Clicks exactly one minimum spacing apart all survive, whole frames apart."""
        envelope = build_envelope(click_track(duration=60.0, interval=0.25, offset=0.1), 10000, 0.01)
        beats = detect_beats(envelope, min_beat_spacing=0.25, sensitivity=0.4)

        assert len(beats) > 200
        frames = np.round(np.array(beats) / envelope.frame_duration).astype(int)
        assert np.all(np.diff(frames) >= 25)
        assert np.diff(beats).min() == pytest.approx(0.25, abs=1e-9)

    def test_strictly_increasing(self):
        envelope = build_envelope(click_track(duration=8.0, interval=0.3), 10000, 0.01)
        beats = detect_beats(envelope, min_beat_spacing=0.15, sensitivity=0.7)
        assert all(b > a for a, b in zip(beats, beats[1:]))

    def test_too_short_envelope(self):
        """Ten frames or fewer never yield beats."""
        envelope = Envelope(frame_duration=0.01, rms_values=[0, 1, 0, 1, 0, 1, 0, 1, 0, 1])
        assert detect_beats(envelope) == []

    def test_constant_signal_has_no_beats(self):
        envelope = Envelope(frame_duration=0.01, rms_values=np.ones(500))
        assert detect_beats(envelope) == []


class TestEnergyCurve:
    """Tests for compute_energy_curve."""

    def test_sampled_every_tenth_second(self):
        envelope = build_envelope(click_track(duration=10.0), 10000, 0.01)
        curve = compute_energy_curve(envelope)
        assert len(curve) == 100
        assert curve[1].time == pytest.approx(0.1)

    def test_normalized(self):
        envelope = Envelope(frame_duration=0.01, rms_values=np.linspace(0, 0.5, 1000))
        curve = compute_energy_curve(envelope)
        energies = [p.energy for p in curve]
        assert max(energies) <= 1.0 + 1e-9
        assert min(energies) >= 0.0

    def test_empty(self):
        assert compute_energy_curve(Envelope(frame_duration=0.01)) == []


class TestSections:
    """Tests for detect_sections."""

    def test_boundary_at_loudness_jump(self):
        values = np.concatenate([np.full(1000, 0.2), np.full(1000, 1.0)])
        boundaries = detect_sections(Envelope(frame_duration=0.01, rms_values=values))
        assert boundaries == pytest.approx([0.0, 10.0, 20.0])

    def test_steady_track_has_single_section(self):
        boundaries = detect_sections(Envelope(frame_duration=0.01, rms_values=np.full(3000, 0.5)))
        assert boundaries == pytest.approx([0.0, 30.0])


def _curve(energy_fn, duration=10.0):
    return [EnergyPoint(time=k * 0.1, energy=energy_fn(k * 0.1)) for k in range(int(duration * 10))]


class TestZones:
    """Tests for climax and intro zones."""

    def test_climax_zone_finds_loudest_window(self):
        curve = _curve(lambda t: 1.0 if 6.0 <= t < 9.0 else 0.1)
        zone = find_climax_zone(curve, 10.0)
        assert zone.start == pytest.approx(6.0)
        assert zone.end == pytest.approx(9.0)

    def test_climax_zone_capped_at_duration(self):
        curve = _curve(lambda t: 1.0 if t >= 8.0 else 0.1)
        zone = find_climax_zone(curve, 10.0)
        assert zone.end <= 10.0

    def test_climax_zone_empty_curve(self):
        assert find_climax_zone([], 10.0) is None

    def test_intro_zone_when_calm(self):
        curve = _curve(lambda t: 0.1 if t < 3.0 else 0.9)
        zone = find_intro_zone(curve, 10.0)
        assert zone.start == 0.0
        assert zone.end == pytest.approx(1.5)

    def test_no_intro_zone_when_loud(self):
        curve = _curve(lambda t: 0.9)
        assert find_intro_zone(curve, 10.0) is None


class TestAnalyzeMusic:
    """End-to-end analysis of a synthetic track."""

    def test_click_track_summary(self):
        analysis = analyze_music(click_track(duration=10.0), 10000, min_beat_spacing=0.25, sensitivity=0.4)
        assert isinstance(analysis, MusicAnalysis)
        assert analysis.duration == pytest.approx(10.0)
        assert analysis.beat_count == 20
        assert analysis.tempo == pytest.approx(120.0, rel=0.01)
        assert analysis.section_boundaries[0] == 0.0
        assert analysis.section_boundaries[-1] == pytest.approx(10.0)

    def test_energy_at_clamps_to_curve(self):
        analysis = MusicAnalysis(
            beat_times=[],
            section_boundaries=[0.0, 1.0],
            energy_curve=[EnergyPoint(0.0, 0.2), EnergyPoint(0.1, 0.8)],
            duration=0.2,
        )
        assert analysis.energy_at(0.1) == 0.8
        assert analysis.energy_at(50.0) == 0.8
        assert analysis.tempo == 0.0
