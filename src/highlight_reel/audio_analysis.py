"""
Audio Analysis Module for Highlight Reel

Turns decoded mono samples into a loudness envelope, then derives the beat
grid, coarse section boundaries, a smoothed energy curve and the calm intro /
high-energy climax zones used to shape the story.

Usage:
    from highlight_reel.audio_analysis import analyze_music

    analysis = analyze_music(samples, sample_rate=22050)
    print(analysis.beat_times[:8], analysis.climax_zone)
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .config import get_settings
from .logger import logger
from .models import TimeRange


ENERGY_SAMPLE_INTERVAL = 0.1
BEAT_SMOOTHING_HALF_WINDOW = 2      # 5 frame centered window
ENERGY_SMOOTHING_HALF_WINDOW = 5
SECTION_WINDOW_SECONDS = 5.0
SECTION_CHANGE_THRESHOLD = 0.15
CLIMAX_FRACTION = 0.3
INTRO_FRACTION = 0.15
INTRO_MAX_ENERGY = 0.4


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class Envelope:
    """Normalized loudness curve, one RMS value per frame."""

    frame_duration: float
    rms_values: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def __post_init__(self):
        self.rms_values = np.asarray(self.rms_values, dtype=np.float64)

    def __len__(self) -> int:
        return len(self.rms_values)

    @property
    def duration(self) -> float:
        return len(self.rms_values) * self.frame_duration


@dataclass
class EnergyPoint:
    time: float
    energy: float


@dataclass
class MusicAnalysis:
    """Beat and energy summary of the music track."""

    beat_times: List[float]
    section_boundaries: List[float]
    energy_curve: List[EnergyPoint]
    duration: float
    intro_zone: Optional[TimeRange] = None
    climax_zone: Optional[TimeRange] = None

    @property
    def beat_count(self) -> int:
        return len(self.beat_times)

    @property
    def beat_intervals(self) -> List[float]:
        return [b - a for a, b in zip(self.beat_times, self.beat_times[1:])]

    @property
    def tempo(self) -> float:
        """Rough BPM from the median beat interval (0 when unknown)."""
        intervals = self.beat_intervals
        if not intervals:
            return 0.0
        median = float(np.median(intervals))
        return 60.0 / median if median > 0 else 0.0

    def energy_at(self, time: float) -> float:
        """Energy of the curve sample nearest to ``time``."""
        if not self.energy_curve:
            return 0.0
        index = int(round(time / ENERGY_SAMPLE_INTERVAL))
        index = max(0, min(len(self.energy_curve) - 1, index))
        return self.energy_curve[index].energy


# =============================================================================
# Envelope
# =============================================================================

def build_envelope(
    samples: np.ndarray,
    sample_rate: int,
    frame_duration: Optional[float] = None,
) -> Envelope:
    """
    Aggregate samples into per-frame RMS and normalize by the loudest frame.

    The final, possibly partial, chunk gets its own frame, so the envelope has
    ceil(len(samples) / samples_per_frame) values.

    Args:
        samples: Mono PCM samples (any numeric dtype)
        sample_rate: Samples per second
        frame_duration: Seconds per envelope frame (default 20 ms)
    """
    if frame_duration is None:
        frame_duration = get_settings().audio.envelope_frame_duration
    if sample_rate <= 0 or frame_duration <= 0:
        raise ValueError(f"Invalid sample_rate={sample_rate} / frame_duration={frame_duration}")

    data = np.asarray(samples, dtype=np.float64).ravel()
    if data.size == 0:
        return Envelope(frame_duration=frame_duration)

    samples_per_frame = max(1, int(frame_duration * sample_rate))
    starts = np.arange(0, data.size, samples_per_frame)
    lengths = np.minimum(samples_per_frame, data.size - starts)

    sums = np.add.reduceat(data * data, starts)
    rms = np.sqrt(sums / lengths)

    peak = float(rms.max())
    if peak > 0:
        rms = rms / peak

    return Envelope(frame_duration=frame_duration, rms_values=rms)


def _centered_mean(values: np.ndarray, half_window: int) -> np.ndarray:
    """Moving average over [i - half, i + half], clipped at the edges."""
    n = len(values)
    if n == 0:
        return values.copy()
    cumsum = np.concatenate(([0.0], np.cumsum(values)))
    idx = np.arange(n)
    lo = np.maximum(0, idx - half_window)
    hi = np.minimum(n, idx + half_window + 1)
    return (cumsum[hi] - cumsum[lo]) / (hi - lo)


# =============================================================================
# Beats
# =============================================================================

def detect_beats(
    envelope: Envelope,
    min_beat_spacing: Optional[float] = None,
    sensitivity: Optional[float] = None,
    min_frames: int = 10,
) -> List[float]:
    """
    Find beats as sharp local rises above the smoothed loudness.

    A frame is a beat when its normalized positive deviation from the 5-frame
    moving average exceeds ``sensitivity``, it is a strict local maximum and it
    lies at least ``min_beat_spacing`` seconds after the previous beat.

    Returns:
        Strictly increasing beat times in seconds
    """
    audio_cfg = get_settings().audio
    if min_beat_spacing is None:
        min_beat_spacing = audio_cfg.min_beat_spacing
    if sensitivity is None:
        sensitivity = audio_cfg.beat_sensitivity

    values = envelope.rms_values
    n = len(values)
    if n <= min_frames:
        return []

    smoothed = _centered_mean(values, BEAT_SMOOTHING_HALF_WINDOW)
    deviation = np.maximum(0.0, values - smoothed)
    peak = float(deviation.max())
    if peak <= 0:
        return []
    deviation = deviation / peak

    fd = envelope.frame_duration
    # Spacing is enforced in whole frames, so gaps in seconds are exact up to float rounding
    spacing_frames = max(1, math.ceil(min_beat_spacing / fd - 1e-9))

    beats: List[float] = []
    last_index: Optional[int] = None
    for i in range(1, n - 1):
        d = deviation[i]
        if d <= sensitivity:
            continue
        if d <= deviation[i - 1] or d <= deviation[i + 1]:
            continue
        if last_index is not None and i - last_index < spacing_frames:
            continue
        beats.append(i * fd)
        last_index = i

    return beats


# =============================================================================
# Energy, Sections and Zones
# =============================================================================

def compute_energy_curve(
    envelope: Envelope,
    interval: float = ENERGY_SAMPLE_INTERVAL,
) -> List[EnergyPoint]:
    """Smoothed, normalized energy resampled every ``interval`` seconds."""
    values = envelope.rms_values
    if len(values) == 0:
        return []

    smoothed = _centered_mean(values, ENERGY_SMOOTHING_HALF_WINDOW)
    peak = float(smoothed.max())
    if peak > 0:
        smoothed = smoothed / peak

    curve = []
    duration = envelope.duration
    k = 0
    while k * interval < duration:
        t = k * interval
        index = int(t / envelope.frame_duration)
        if index < len(smoothed):
            curve.append(EnergyPoint(time=t, energy=float(smoothed[index])))
        k += 1
    return curve


def detect_sections(
    envelope: Envelope,
    window_seconds: float = SECTION_WINDOW_SECONDS,
    threshold: float = SECTION_CHANGE_THRESHOLD,
) -> List[float]:
    """
    Coarse section boundaries where the windowed loudness jumps.

    Always starts with 0.0 and ends with the envelope duration.
    """
    values = envelope.rms_values
    duration = envelope.duration
    boundaries = [0.0]

    window = int(window_seconds / envelope.frame_duration)
    if window > 0 and len(values) >= 2 * window:
        previous = float(values[:window].mean())
        for i in range(window, len(values) - window + 1, window):
            average = float(values[i:i + window].mean())
            if abs(average - previous) > threshold:
                boundaries.append(i * envelope.frame_duration)
            previous = average

    if duration > boundaries[-1]:
        boundaries.append(duration)
    return boundaries


def find_climax_zone(
    curve: List[EnergyPoint],
    duration: float,
    fraction: float = CLIMAX_FRACTION,
    interval: float = ENERGY_SAMPLE_INTERVAL,
) -> Optional[TimeRange]:
    """The contiguous ``fraction``-of-duration window with the highest mean energy."""
    zone_length = fraction * duration
    width = int(zone_length / interval)
    if not curve or width <= 0:
        return None

    energies = np.array([p.energy for p in curve])
    if len(energies) <= width:
        start = curve[0].time
    else:
        sums = np.convolve(energies, np.ones(width), mode="valid")
        start = curve[int(np.argmax(sums))].time

    return TimeRange(start, min(start + zone_length, duration))


def find_intro_zone(
    curve: List[EnergyPoint],
    duration: float,
    fraction: float = INTRO_FRACTION,
    max_energy: float = INTRO_MAX_ENERGY,
    interval: float = ENERGY_SAMPLE_INTERVAL,
) -> Optional[TimeRange]:
    """The opening window, reported only when it is calm."""
    width = int(fraction * duration / interval)
    if width <= 0 or width > len(curve):
        return None
    average = float(np.mean([p.energy for p in curve[:width]]))
    if average < max_energy:
        return TimeRange(0.0, fraction * duration)
    return None


# =============================================================================
# Public API
# =============================================================================

def analyze_envelope(
    envelope: Envelope,
    min_beat_spacing: Optional[float] = None,
    sensitivity: Optional[float] = None,
) -> MusicAnalysis:
    """Derive the full beat/energy summary from an envelope."""
    duration = envelope.duration
    beats = detect_beats(envelope, min_beat_spacing, sensitivity)
    curve = compute_energy_curve(envelope)

    analysis = MusicAnalysis(
        beat_times=beats,
        section_boundaries=detect_sections(envelope),
        energy_curve=curve,
        duration=duration,
        intro_zone=find_intro_zone(curve, duration),
        climax_zone=find_climax_zone(curve, duration),
    )
    logger.debug(
        f"Music analysis: {analysis.beat_count} beats, "
        f"{len(analysis.section_boundaries) - 1} sections, {duration:.1f}s"
    )
    return analysis


def analyze_music(
    samples: np.ndarray,
    sample_rate: int,
    frame_duration: Optional[float] = None,
    min_beat_spacing: Optional[float] = None,
    sensitivity: Optional[float] = None,
) -> MusicAnalysis:
    """
    Analyze a music track from raw samples.

    Uses the finer music frame duration (10 ms by default).
    """
    if frame_duration is None:
        frame_duration = get_settings().audio.music_frame_duration
    envelope = build_envelope(samples, sample_rate, frame_duration)
    return analyze_envelope(envelope, min_beat_spacing, sensitivity)


__all__ = [
    "Envelope",
    "EnergyPoint",
    "MusicAnalysis",
    "build_envelope",
    "detect_beats",
    "compute_energy_curve",
    "detect_sections",
    "find_climax_zone",
    "find_intro_zone",
    "analyze_envelope",
    "analyze_music",
]
