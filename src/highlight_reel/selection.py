"""
Diversity-aware segment selection.

Walks the four story phases and greedily picks scored candidates under a
per-clip cap, phase-specific filters and a same-clip separation rule. When
more than one video clip produced candidates, selection runs in diversity
mode: clips that have not contributed yet get relaxed thresholds and are
always considered first, so every source is represented.
"""

import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Set

from .logger import logger, log_warning
from .models import (
    MediaType,
    ScoredCandidate,
    Segment,
    ShotType,
    StoryPhase,
    StoryStructure,
    Tier,
    TimeRange,
)


DEFAULT_MAX_PER_CLIP = 10
NO_VIDEO_CAP = 3
AVERAGE_SEGMENT_SECONDS = 3

OPENING_MIN_SCORE = 0.5
BASE_THRESHOLD = 0.5
UNUSED_CLIP_THRESHOLD = 0.3
BUILD_MIN_SCORE = 0.55
CLIMAX_MIN_SCORE = 0.6
CLIMAX_MIN_MOTION = 0.3
MIN_SEPARATION = 2.0
OVERSHOOT = 1.1
MIN_REMAINING_INTRO = 0.5

# Multi-clip pre-pass
PREPASS_PER_CLIP = 5
PREPASS_FALLBACK_PER_CLIP = 2
DUPLICATE_OVERLAP = 0.8
DOMINANCE_WARNING = 0.6


def per_clip_cap(total_duration: float, video_clip_count: int, limit: int = DEFAULT_MAX_PER_CLIP) -> int:
    """
    Max segments any clip may contribute.

    Assumes roughly one segment every three seconds, spread over the video
    clips with 50% headroom, clamped to [1, limit].
    """
    if video_clip_count <= 0:
        return NO_VIDEO_CAP
    estimated = int(total_duration) // AVERAGE_SEGMENT_SECONDS
    share = math.floor(estimated / video_clip_count * 1.5 + 0.5)
    return max(1, min(limit, share))


def selection_score(item: ScoredCandidate) -> float:
    return item.candidate.score


def _is_duplicate(item: ScoredCandidate, ranges: Sequence[TimeRange]) -> bool:
    span = item.time_range
    for existing in ranges:
        if span.duration > 0 and span.overlap(existing) / span.duration > DUPLICATE_OVERLAP:
            return True
    return False


def _too_close(item: ScoredCandidate, ranges: Sequence[TimeRange]) -> bool:
    return any(abs(item.candidate.start - r.start) < MIN_SEPARATION for r in ranges)


def build_multi_clip_pool(
    scored: Sequence[ScoredCandidate],
    per_clip: int = PREPASS_PER_CLIP,
    fallback_per_clip: int = PREPASS_FALLBACK_PER_CLIP,
) -> List[ScoredCandidate]:
    """
    Narrow the candidates before phase selection.

    Keeps up to ``per_clip`` of each clip's best strict, non-rejected
    candidates (no near-duplicates, starts at least 2 s apart). Any clip left
    unrepresented escalates to its best fallback candidates, then to whatever
    it has, so no clip that produced a candidate is missing from the pool.
    """
    ranked = sorted(scored, key=lambda s: s.score.overall, reverse=True)
    pool: List[ScoredCandidate] = []
    counts: Counter = Counter()
    ranges: Dict[str, List[TimeRange]] = defaultdict(list)

    def admit(item: ScoredCandidate, limit: int) -> bool:
        clip_ranges = ranges[item.clip_id]
        if counts[item.clip_id] >= limit:
            return False
        if _is_duplicate(item, clip_ranges) or _too_close(item, clip_ranges):
            return False
        pool.append(item)
        counts[item.clip_id] += 1
        clip_ranges.append(item.time_range)
        return True

    for item in ranked:
        if item.tier == Tier.STRICT and not item.score.is_rejected:
            admit(item, per_clip)

    clip_order = list(dict.fromkeys(s.clip_id for s in scored))
    for clip_id in clip_order:
        if counts[clip_id]:
            continue
        own = [s for s in ranked if s.clip_id == clip_id]
        escalation = [
            [s for s in own if s.tier == Tier.FALLBACK and not s.score.is_rejected],
            [s for s in own if not s.score.is_rejected],
            own,
        ]
        for tier_pool in escalation:
            for item in tier_pool:
                admit(item, fallback_per_clip)
            if counts[clip_id]:
                break
        if counts[clip_id]:
            logger.debug(f"Pre-pass: clip {clip_id} represented by {counts[clip_id]} fallback candidate(s)")

    return pool


@dataclass
class PhasePick:
    """A chosen candidate and the phase it fills."""
    item: ScoredCandidate
    phase: StoryPhase


@dataclass
class _SelectionState:
    counts: Counter = field(default_factory=Counter)
    ranges: Dict[str, List[TimeRange]] = field(default_factory=lambda: defaultdict(list))
    used_ids: Set[str] = field(default_factory=set)

    def accept(self, item: ScoredCandidate) -> None:
        self.counts[item.clip_id] += 1
        self.ranges[item.clip_id].append(item.time_range)
        self.used_ids.add(item.id)


class DiversitySelector:
    """
    Phase-by-phase greedy selection plus the final beat alignment.

    Args:
        beat_times: Music beat grid
        max_segments_per_clip: Upper limit for the per-clip cap
        repair_diversity: Swap in a segment for any clip missing after selection
    """

    def __init__(
        self,
        beat_times: Sequence[float] = (),
        max_segments_per_clip: int = DEFAULT_MAX_PER_CLIP,
        repair_diversity: bool = True,
    ):
        self.beat_times = list(beat_times)
        self.max_segments_per_clip = max_segments_per_clip
        self.repair_diversity = repair_diversity

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def select(self, scored: Sequence[ScoredCandidate], structure: StoryStructure) -> List[PhasePick]:
        """Ordered picks covering the story structure. Never raises on thin input."""
        if not scored:
            return []

        video_clips = {s.clip_id for s in scored if s.candidate.media_type != MediaType.IMAGE}
        enforce = len(video_clips) > 1
        cap = per_clip_cap(structure.total_duration, len(video_clips), self.max_segments_per_clip)

        if enforce:
            pool = build_multi_clip_pool(scored)
        else:
            pool = [s for s in scored if not s.score.is_rejected] or list(scored)

        logger.info(
            f"   🎞️  Selecting from {len(pool)} candidates across {len(video_clips)} video clips "
            f"(max {cap} per clip{', diversity on' if enforce else ''})"
        )

        state = _SelectionState()
        picks: List[PhasePick] = []
        for phase, duration in structure.phases():
            target = duration
            if phase == StoryPhase.INTRO:
                opening = self._opening_shot(pool, cap, state)
                if opening is not None:
                    state.accept(opening)
                    picks.append(PhasePick(opening, phase))
                    target = duration - opening.candidate.duration
                    if target <= MIN_REMAINING_INTRO:
                        continue
            picks.extend(self._select_phase(pool, phase, target, cap, enforce, state))

        if enforce:
            picks = self._validate_diversity(picks, pool, cap)
        return picks

    def assemble(self, picks: Sequence[PhasePick]) -> List[Segment]:
        """Turn picks into beat-aligned output segments."""
        segments = []
        for order, pick in enumerate(picks):
            candidate = pick.item.candidate
            segments.append(Segment(
                id=f"{candidate.id}@{order}",
                candidate_id=candidate.id,
                source_clip_id=candidate.clip_id,
                source_start=candidate.start,
                source_end=candidate.end,
                order=order,
                phase=pick.phase,
                transform=candidate.transform,
            ))
        return align_to_beats(segments, self.beat_times)

    # -------------------------------------------------------------------------
    # Phase selection
    # -------------------------------------------------------------------------

    def _opening_shot(self, pool, cap, state) -> Optional[ScoredCandidate]:
        """Best establishing shot to open the reel."""
        options = [
            s for s in pool
            if s.candidate.shot_type is not None
            and s.candidate.shot_type.is_establishing
            and selection_score(s) >= OPENING_MIN_SCORE
            and state.counts[s.clip_id] < cap
        ]
        if not options:
            logger.debug("No master/wide opening shot, intro uses regular selection")
            return None
        return max(options, key=selection_score)

    def _eligible(self, item: ScoredCandidate, phase: StoryPhase, cap: int, enforce: bool, state) -> bool:
        candidate = item.candidate
        count = state.counts[item.clip_id]
        if item.id in state.used_ids or count >= cap:
            return False

        relaxed = enforce and count == 0
        score = selection_score(item)
        if score < (UNUSED_CLIP_THRESHOLD if relaxed else BASE_THRESHOLD):
            return False

        shot = candidate.shot_type
        establishing = shot is not None and shot.is_establishing
        if not relaxed and not (candidate.has_faces or establishing):
            return False

        if _too_close(item, state.ranges[item.clip_id]):
            return False

        if relaxed:
            return True
        if phase in (StoryPhase.INTRO, StoryPhase.OUTRO):
            return shot in (ShotType.MASTER, ShotType.WIDE, ShotType.MEDIUM)
        if phase == StoryPhase.BUILD:
            return score >= BUILD_MIN_SCORE and candidate.has_faces
        return (candidate.motion_level > CLIMAX_MIN_MOTION or candidate.has_faces) and score >= CLIMAX_MIN_SCORE

    @staticmethod
    def _ranking(enforce: bool, state):
        """Sort key: unused and least-used clips first when enforcing diversity, else best score."""
        def key(item: ScoredCandidate):
            count = state.counts[item.clip_id]
            if enforce:
                return (count > 0, count, -selection_score(item))
            return (-selection_score(item), count)
        return key

    def _select_phase(self, pool, phase, target, cap, enforce, state) -> List[PhasePick]:
        picks: List[PhasePick] = []
        accumulated = 0.0
        limit = target * OVERSHOOT

        while accumulated < target:
            eligible = [s for s in pool if self._eligible(s, phase, cap, enforce, state)]
            eligible.sort(key=self._ranking(enforce, state))
            choice = next((s for s in eligible if accumulated + s.candidate.duration <= limit), None)
            if choice is None:
                break
            state.accept(choice)
            picks.append(PhasePick(choice, phase))
            accumulated += choice.candidate.duration

        logger.debug(f"Phase {phase.value}: {len(picks)} segments, {accumulated:.1f}/{target:.1f}s")
        return picks

    # -------------------------------------------------------------------------
    # Diversity validation
    # -------------------------------------------------------------------------

    def _validate_diversity(self, picks: List[PhasePick], pool: Sequence[ScoredCandidate], cap: int) -> List[PhasePick]:
        """Make sure every clip in the pool made it into the selection."""
        picks = list(picks)
        represented = Counter(p.item.clip_id for p in picks)
        missing = [c for c in dict.fromkeys(s.clip_id for s in pool) if not represented[c]]

        for clip_id in missing:
            if not self.repair_diversity:
                log_warning(f"Clip {clip_id} produced candidates but has no segment")
                continue

            replacement = max((s for s in pool if s.clip_id == clip_id), key=selection_score)
            donor, donor_count = represented.most_common(1)[0] if represented else (None, 0)

            if donor is not None and donor_count > 1:
                index = min(
                    (i for i, p in enumerate(picks) if p.item.clip_id == donor),
                    key=lambda i: selection_score(picks[i].item),
                )
                phase = picks[index].phase
                picks[index] = PhasePick(replacement, phase)
                represented[donor] -= 1
                logger.info(f"   🔁 Replaced a {donor} segment with one from unused clip {clip_id}")
            else:
                picks.append(PhasePick(replacement, StoryPhase.OUTRO))
                logger.info(f"   ➕ Added a segment from unused clip {clip_id}")
            represented[clip_id] += 1

        if picks:
            top_clip, top_count = Counter(p.item.clip_id for p in picks).most_common(1)[0]
            if top_count / len(picks) > DOMINANCE_WARNING and len(represented) > 1:
                log_warning(f"{top_count}/{len(picks)} segments come from clip {top_clip}")
        return picks


def align_to_beats(segments: Sequence[Segment], beat_times: Sequence[float]) -> List[Segment]:
    """
    Place segments on the output timeline, one beat per segment.

    The beat cursor only moves forward. A segment starts on the cursor's beat
    when that beat is not behind the running time; otherwise it follows the
    previous segment directly. Once the grid runs out, segments simply follow
    one another.
    """
    aligned = []
    current = 0.0
    beat_index = 0
    for segment in segments:
        if beat_index < len(beat_times):
            beat = beat_times[beat_index]
            if beat >= current:
                segment = replace(segment, timeline_start=beat, beat_index=beat_index)
                current = beat + segment.duration
            else:
                segment = replace(segment, timeline_start=current, beat_index=None)
                current += segment.duration
            beat_index += 1
        else:
            segment = replace(segment, timeline_start=current)
            current += segment.duration
        aligned.append(segment)
    return aligned
