"""
Highlight Reel Pipeline

Runs the whole assembly for one set of clips:

    IDLE → AUDIO_ANALYZED → VISUALLY_ANALYZED → CANDIDATES_GENERATED
         → SCORED → SELECTED → BEAT_ALIGNED → DONE

Any unrecoverable error moves the run to FAILED and is raised to the caller.
Any failure inside one clip's analysis only degrades that clip.

Usage:
    from highlight_reel.pipeline import HighlightReelPipeline
    from highlight_reel.decoding import OpenCVMediaDecoder

    pipeline = HighlightReelPipeline(OpenCVMediaDecoder(), HighlightReelSettings(pace="tight"))
    result = pipeline.run(clips)
    for segment in result.segments:
        print(segment.source_clip_id, segment.source_start, segment.source_end)
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

import cv2

from .audio_analysis import MusicAnalysis, analyze_music
from .candidates import CandidateGenerator
from .config import HighlightReelSettings, Settings, get_settings
from .decoding import MediaDecoder
from .exceptions import (
    AnalysisFailedError,
    AnalysisTimeoutError,
    DecodeError,
    HighlightReelError,
    NoCandidatesError,
    NoClipsError,
    NoUsableAudioError,
    PipelineCancelledError,
)
from .frame_analysis import DEFAULT_SUBJECT, FrameQualityAnalyzer
from .logger import log_clip_skipped, log_error, log_phase, log_step, log_success, log_warning, logger
from .models import (
    Candidate,
    CinematicScore,
    Clip,
    FrameMeasurement,
    MediaType,
    Moment,
    PhotoMoment,
    ScoredCandidate,
    Segment,
    StoryStructure,
)
from .moment_detection import MomentDetector, quick_moments, sample_times
from .resource_pool import SerialExecutor, get_frame_executor
from .segment_scoring import SegmentScorer
from .selection import DiversitySelector
from .story_planner import StoryPlanner


class PipelineState(Enum):
    IDLE = 0
    AUDIO_ANALYZED = 1
    VISUALLY_ANALYZED = 2
    CANDIDATES_GENERATED = 3
    SCORED = 4
    SELECTED = 5
    BEAT_ALIGNED = 6
    DONE = 7
    FAILED = 8


@dataclass
class PipelineResult:
    segments: List[Segment]
    music: MusicAnalysis
    structure: StoryStructure
    music_clip_id: str
    scored_candidates: List[ScoredCandidate] = field(default_factory=list)
    moments: Dict[str, List[Moment]] = field(default_factory=dict)


def resolve_music_track(clips: Sequence[Clip]) -> Clip:
    """
    Pick the clip whose audio drives the edit.

    Preference: a dedicated audio clip, then a clip that carries an audio
    track despite its type, then the first video with audio.
    """
    for clip in clips:
        if clip.media_type == MediaType.AUDIO_ONLY:
            return clip
    for clip in clips:
        if clip.has_audio_track and clip.media_type not in (MediaType.VIDEO_WITH_AUDIO, MediaType.IMAGE):
            return clip
    for clip in clips:
        if clip.media_type == MediaType.VIDEO_WITH_AUDIO:
            return clip
    raise NoUsableAudioError(len(clips))


class HighlightReelPipeline:
    """
    Orchestrates analysis, candidate generation, scoring and selection.

    Args:
        decoder: MediaDecoder collaborator
        settings: Per-run choices (pace, style, target length, quick mode, seed)
        config: Environment-driven settings (default: get_settings())
        analyzer: Frame analyzer (default: Haar faces + OpenCV measurements)
        scorer: Segment scorer (default: Haar faces)
        executor: Serial executor for everything that touches frames
        on_scored_candidates: Receives every scored candidate, selected or not
        cancel_event: Set to abandon the run between clips
    """

    def __init__(
        self,
        decoder: MediaDecoder,
        settings: Optional[HighlightReelSettings] = None,
        config: Optional[Settings] = None,
        analyzer: Optional[FrameQualityAnalyzer] = None,
        scorer: Optional[SegmentScorer] = None,
        executor: Optional[SerialExecutor] = None,
        on_scored_candidates: Optional[Callable[[List[ScoredCandidate]], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.decoder = decoder
        self.config = config or get_settings()
        self.settings = settings or HighlightReelSettings.from_settings(self.config)
        self.analyzer = analyzer or FrameQualityAnalyzer()
        self.scorer = scorer or SegmentScorer(self.analyzer.face_detector)
        self.executor = executor or get_frame_executor()
        self.on_scored_candidates = on_scored_candidates
        self.cancel_event = cancel_event or threading.Event()

        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]
        self.error: Optional[HighlightReelError] = None

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def _advance(self, state: PipelineState) -> None:
        if state.value <= self.state.value:
            raise RuntimeError(f"Illegal transition {self.state.name} → {state.name}")
        self.state = state
        self.history.append(state)
        logger.debug(f"Pipeline state: {state.name}")

    def _check_cancelled(self, stage: str) -> None:
        if self.cancel_event.is_set():
            raise PipelineCancelledError(stage)

    def cancel(self) -> None:
        self.cancel_event.set()

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self, clips: Sequence[Clip]) -> PipelineResult:
        """Assemble the highlight reel. Raises HighlightReelError on fatal problems."""
        self.state = PipelineState.IDLE
        self.history = [PipelineState.IDLE]
        self.error = None
        stage = "setup"

        try:
            if not clips:
                raise NoClipsError()

            stage = "music analysis"
            log_phase("🎵 Analyzing music")
            music_clip = resolve_music_track(clips)
            music = self._analyze_music(music_clip)
            self._advance(PipelineState.AUDIO_ANALYZED)

            target = self.settings.target_duration(music.duration)
            structure = StoryPlanner().plan(target, music, self.settings.pace)
            visual_clips = [c for c in clips if c.media_type.is_video or c.media_type == MediaType.IMAGE]

            stage = "visual analysis"
            log_phase("🎬 Analyzing footage")
            moments, photos = self._analyze_visuals(visual_clips, music.beat_times)
            self._advance(PipelineState.VISUALLY_ANALYZED)

            stage = "candidate generation"
            candidates = self._generate_candidates(visual_clips, moments, photos, music.beat_times)
            self._advance(PipelineState.CANDIDATES_GENERATED)

            stage = "scoring"
            log_phase("⭐ Scoring candidates")
            scored = self._score_candidates(visual_clips, candidates)
            self._advance(PipelineState.SCORED)
            if self.on_scored_candidates is not None:
                self.on_scored_candidates(list(scored))

            stage = "selection"
            log_phase("✂️  Selecting segments")
            selector = DiversitySelector(
                beat_times=music.beat_times,
                max_segments_per_clip=self.config.selection.max_segments_per_clip,
                repair_diversity=self.config.selection.repair_diversity,
            )
            picks = selector.select(scored, structure)
            self._advance(PipelineState.SELECTED)

            stage = "beat alignment"
            segments = selector.assemble(picks)
            self._advance(PipelineState.BEAT_ALIGNED)

            self._advance(PipelineState.DONE)
            log_success(
                f"{len(segments)} segments from {len({s.source_clip_id for s in segments})} clips, "
                f"{sum(s.duration for s in segments):.1f}s of {target:.1f}s target"
            )
            return PipelineResult(
                segments=segments,
                music=music,
                structure=structure,
                music_clip_id=music_clip.id,
                scored_candidates=scored,
                moments=moments,
            )

        except HighlightReelError as e:
            self._fail(e)
            raise
        except Exception as e:
            error = AnalysisFailedError(stage, str(e))
            self._fail(error)
            raise error from e

    def _fail(self, error: HighlightReelError) -> None:
        self.error = error
        self.state = PipelineState.FAILED
        self.history.append(PipelineState.FAILED)
        log_error(error.user_message)

    # -------------------------------------------------------------------------
    # Audio
    # -------------------------------------------------------------------------

    def _decode_and_analyze(self, clip: Clip) -> MusicAnalysis:
        samples, sample_rate = self.decoder.decode_audio(clip)
        min_spacing, sensitivity = self.settings.style.beat_parameters
        return analyze_music(samples, sample_rate, min_beat_spacing=min_spacing, sensitivity=sensitivity)

    def _analyze_music(self, clip: Clip) -> MusicAnalysis:
        timeout = self.config.analysis.music_analysis_timeout
        log_step(f"Music track: {clip.id}")

        executor = ThreadPoolExecutor(max_workers=self.config.analysis.audio_workers, thread_name_prefix="audio")
        try:
            future = executor.submit(self._decode_and_analyze, clip)
            music = future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise AnalysisFailedError("music analysis", f"timed out after {timeout:.0f}s") from e
        except DecodeError as e:
            raise AnalysisFailedError("music analysis", e.user_message) from e
        finally:
            executor.shutdown(wait=False)

        if not music.beat_times:
            raise AnalysisFailedError("music analysis", "no beats detected in the music track")

        log_success(f"{music.beat_count} beats (~{music.tempo:.0f} BPM), {music.duration:.1f}s")
        return music

    # -------------------------------------------------------------------------
    # Visual analysis
    # -------------------------------------------------------------------------

    def _measure_frame(self, clip: Clip, time_point: float) -> FrameMeasurement:
        frame = self.decoder.decode_frame(clip, time_point)
        return self.analyzer.analyze(frame.image, time_point, frame.nominal_size)

    def _measure_clip(self, clip: Clip, measurements: List[FrameMeasurement]) -> None:
        """Fill ``measurements`` frame by frame until done or out of time."""
        timeout = self.config.analysis.clip_analysis_timeout
        deadline = time.monotonic() + timeout

        for t in sample_times(clip.duration, self.config.analysis.max_frames_per_clip):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise AnalysisTimeoutError(clip.id, "Frame analysis", timeout)
            try:
                measurements.append(self.executor.run(self._measure_frame, clip, t, timeout=remaining))
            except FutureTimeoutError as e:
                raise AnalysisTimeoutError(clip.id, "Frame analysis", timeout) from e
            except (DecodeError, cv2.error) as e:
                logger.debug(f"Skipping frame {t:.2f}s of {clip.id}: {e}")

    def _analyze_photo(self, clip: Clip) -> PhotoMoment:
        frame = self.decoder.decode_frame(clip, 0.0)
        return self.analyzer.analyze_photo(clip.id, frame.image)

    def _analyze_visuals(self, clips: Sequence[Clip], beat_times: Sequence[float]):
        detector = MomentDetector(self.config.analysis.moment_window_seconds)
        moments: Dict[str, List[Moment]] = {}
        photos: Dict[str, PhotoMoment] = {}
        quick = self.settings.quick_mode

        for index, clip in enumerate(clips, 1):
            self._check_cancelled("visual analysis")
            log_step(f"[{index}/{len(clips)}] {clip.id}")

            if clip.media_type == MediaType.IMAGE:
                photos[clip.id] = self._photo_moment(clip, quick)
                continue

            if quick:
                moments[clip.id] = quick_moments(clip, beat_times)
                continue

            measurements: List[FrameMeasurement] = []
            try:
                moments[clip.id] = self._detect_moments(detector, clip, measurements)
            except Exception as e:
                log_clip_skipped(clip.id, "visual analysis", e)
                moments[clip.id] = [MomentDetector.fallback_moment(clip, measurements)]
            logger.debug(f"{clip.id}: {len(measurements)} frames, {len(moments[clip.id])} moments")

        return moments, photos

    def _detect_moments(self, detector: MomentDetector, clip: Clip, measurements: List[FrameMeasurement]):
        try:
            self._measure_clip(clip, measurements)
        except AnalysisTimeoutError as e:
            log_warning(f"{e.user_message}; keeping {len(measurements)} measured frames")
        return detector.detect(clip, measurements)

    def _photo_moment(self, clip: Clip, quick: bool) -> PhotoMoment:
        default = PhotoMoment(clip_id=clip.id, has_faces=False, score=0.5, subject_rect=DEFAULT_SUBJECT)
        if quick:
            return default
        try:
            return self.executor.run(
                self._analyze_photo, clip, timeout=self.config.analysis.clip_analysis_timeout
            )
        except Exception as e:
            log_clip_skipped(clip.id, "photo analysis", e)
            return default

    # -------------------------------------------------------------------------
    # Candidates and scoring
    # -------------------------------------------------------------------------

    def _generate_candidates(self, clips, moments, photos, beat_times) -> List[Candidate]:
        generator = CandidateGenerator(
            beat_times,
            pace=self.settings.pace,
            seed=self.settings.seed,
            clip_durations={c.id: c.duration for c in clips},
        )
        candidates: List[Candidate] = []
        for clip in clips:
            if clip.id in photos:
                candidates.append(generator.generate_photo(photos[clip.id]))
                continue
            strict, fallback = generator.generate(moments.get(clip.id, []))
            if not strict and not fallback:
                log_warning(f"Clip {clip.id} produced no candidates")
            candidates.extend(strict)
            candidates.extend(fallback)

        if not candidates:
            raise NoCandidatesError(len(clips))
        log_success(f"{len(candidates)} candidates")
        return candidates

    def _score_candidates(self, clips: Sequence[Clip], candidates: Sequence[Candidate]) -> List[ScoredCandidate]:
        by_id = {c.id: c for c in clips}
        scored: List[ScoredCandidate] = []
        timeout = self.config.analysis.scoring_timeout
        current_clip = None

        for candidate in candidates:
            if candidate.clip_id != current_clip:
                self._check_cancelled("scoring")
                current_clip = candidate.clip_id

            if self.settings.quick_mode:
                scored.append(ScoredCandidate(candidate, CinematicScore.quick_default()))
                continue

            clip = by_id[candidate.clip_id]
            clip_duration = clip.duration
            if clip.media_type == MediaType.IMAGE:
                # A still has no timeline of its own
                clip_duration = max(clip_duration, candidate.end)

            def frame_at(t: float, clip: Clip = clip):
                return self.decoder.decode_frame(clip, t).image

            try:
                score = self.executor.run(
                    self.scorer.score_candidate, candidate, clip_duration, frame_at, timeout=timeout
                )
            except FutureTimeoutError:
                log_warning(f"Scoring {candidate.id} timed out, using fallback score")
                score = CinematicScore.fallback()
            scored.append(ScoredCandidate(candidate, score))

        rejected = sum(1 for s in scored if s.score.is_rejected)
        log_success(f"Scored {len(scored)} candidates ({rejected} rejected)")
        return scored
