"""Four-phase story plan (intro, build, climax, outro) over the target duration."""

from dataclasses import dataclass
from typing import Optional, Tuple

from .audio_analysis import MusicAnalysis
from .models import Pace, StoryStructure


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    if value < low:
        return low
    if value > high:
        return high
    return value


@dataclass
class PhaseProportions:
    """Fractions of the total duration given to each phase."""

    intro: float = 0.15
    build: float = 0.40
    climax: float = 0.30
    outro: float = 0.15

    def __post_init__(self) -> None:
        total = self.intro + self.build + self.climax + self.outro
        if total <= 0:
            self.intro, self.build, self.climax, self.outro = 0.15, 0.40, 0.30, 0.15
            return
        self.intro /= total
        self.build /= total
        self.climax /= total
        self.outro /= total


# Zone-derived boundaries are kept to sane fractions of the whole
MAX_INTRO_FRACTION = 0.2
MIN_CLIMAX_START_FRACTION = 0.5
MAX_CLIMAX_END_FRACTION = 0.85


class StoryPlanner:
    """Splits the target duration into phases, following the music when it can."""

    def __init__(self, proportions: Optional[PhaseProportions] = None):
        self.proportions = proportions or PhaseProportions()

    def plan(
        self,
        target_duration: float,
        music: Optional[MusicAnalysis] = None,
        pace: Pace = Pace.NORMAL,
    ) -> StoryStructure:
        total = max(0.0, target_duration)
        zones = self._zone_boundaries(total, music)

        if zones is not None:
            intro_end, climax_start, climax_end = zones
            return StoryStructure(
                intro_duration=intro_end,
                build_duration=climax_start - intro_end,
                climax_duration=climax_end - climax_start,
                outro_duration=total - climax_end,
                pace=pace,
            )

        p = self.proportions
        return StoryStructure(
            intro_duration=total * p.intro,
            build_duration=total * p.build,
            climax_duration=total * p.climax,
            outro_duration=total * p.outro,
            pace=pace,
        )

    @staticmethod
    def _zone_boundaries(
        total: float, music: Optional[MusicAnalysis]
    ) -> Optional[Tuple[float, float, float]]:
        if music is None or music.intro_zone is None or music.climax_zone is None or total <= 0:
            return None

        intro_end = min(music.intro_zone.end, MAX_INTRO_FRACTION * total)
        climax_start = max(music.climax_zone.start, MIN_CLIMAX_START_FRACTION * total)
        climax_end = min(music.climax_zone.end, MAX_CLIMAX_END_FRACTION * total)

        # A climax found late in a long track can fall past a shorter target
        climax_start = _clamp(climax_start, intro_end, MAX_CLIMAX_END_FRACTION * total)
        climax_end = max(climax_end, climax_start)
        return intro_end, climax_start, climax_end
