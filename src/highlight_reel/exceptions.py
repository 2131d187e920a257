"""
Highlight Reel Exception Hierarchy

All exceptions carry a human-readable message plus optional technical details
and a suggestion, and inherit from HighlightReelError for easy catching.

Usage:
    from highlight_reel.exceptions import HighlightReelError, NoUsableAudioError

    try:
        segments = pipeline.run(clips)
    except HighlightReelError as e:
        logger.error(e.user_message)
        logger.debug(e.technical_details)
"""

from typing import Optional


class HighlightReelError(Exception):
    """Base exception for all highlight reel errors."""

    def __init__(
        self,
        user_message: str,
        technical_details: Optional[str] = None,
        suggestion: Optional[str] = None
    ):
        """
        Args:
            user_message: Human-readable error message
            technical_details: Debug info (not shown to users)
            suggestion: How to fix or work around the error
        """
        self.user_message = user_message
        self.technical_details = technical_details or ""
        self.suggestion = suggestion or ""

        full_msg = user_message
        if suggestion:
            full_msg += f"\n💡 Try: {suggestion}"

        super().__init__(full_msg)

    def __str__(self) -> str:
        return self.user_message


# =============================================================================
# Run-level (fatal) errors
# =============================================================================

class NoClipsError(HighlightReelError):
    """The clip list is empty."""

    def __init__(self):
        super().__init__(
            user_message="No clips were provided to build a highlight reel from.",
            suggestion="Import at least one video or image clip.",
        )


class NoUsableAudioError(HighlightReelError):
    """No clip could serve as the music track."""

    def __init__(self, clip_count: int = 0):
        super().__init__(
            user_message="No music track found. A highlight reel needs music to cut on the beat.",
            technical_details=f"Searched {clip_count} clips for an audio-only or audio-bearing clip",
            suggestion="Add an audio file or a video clip with an audio track.",
        )


class AnalysisFailedError(HighlightReelError):
    """A named analysis stage failed unrecoverably."""

    def __init__(self, stage: str, reason: str):
        self.stage = stage
        self.reason = reason
        super().__init__(
            user_message=f"Analysis failed during {stage}: {reason}",
            technical_details=f"stage={stage}",
        )


class NoCandidatesError(HighlightReelError):
    """Analysis finished but no clip produced a usable segment candidate."""

    def __init__(self, clip_count: int):
        super().__init__(
            user_message="None of the clips produced usable footage for the highlight reel.",
            technical_details=f"0 candidates from {clip_count} clips",
            suggestion="Check that the clips decode and are at least half a second long.",
        )


class PipelineCancelledError(HighlightReelError):
    """The run was cancelled between clips."""

    def __init__(self, stage: str):
        self.stage = stage
        super().__init__(user_message=f"Highlight reel cancelled during {stage}.")


# =============================================================================
# Per-clip errors (caught and degraded by the pipeline)
# =============================================================================

class DecodeError(HighlightReelError):
    """The decoder could not produce samples or a frame."""

    def __init__(self, clip_id: str, reason: str, time: Optional[float] = None):
        self.clip_id = clip_id
        self.time = time
        where = f" at {time:.2f}s" if time is not None else ""
        super().__init__(
            user_message=f"Could not decode clip {clip_id}{where}: {reason}",
            technical_details=reason,
        )


class AnalysisTimeoutError(HighlightReelError):
    """Analysis of a single clip exceeded its time budget."""

    def __init__(self, clip_id: str, stage: str, timeout: float):
        self.clip_id = clip_id
        self.stage = stage
        self.timeout = timeout
        super().__init__(
            user_message=f"{stage} of clip {clip_id} timed out after {timeout:.0f}s",
            suggestion="Increase CLIP_ANALYSIS_TIMEOUT or enable quick mode.",
        )
