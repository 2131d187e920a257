import json
import os
import sys
import time
from pathlib import Path
from typing import Optional, Tuple

import click

from .config import HighlightReelSettings, get_settings
from .logger import configure_file_logging, detach_file_logging
from .models import Clip, MediaType, Pace, Style

# Lazy load rich to keep startup fast
_console = None

VIDEO_EXTENSIONS = {".mp4", ".mov", ".m4v", ".mkv", ".avi", ".webm"}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".heic", ".bmp", ".webp"}
AUDIO_EXTENSIONS = {".mp3", ".wav", ".m4a", ".aac", ".flac", ".ogg"}


def get_console():
    global _console
    if _console is None:
        from rich.console import Console
        _console = Console()
    return _console


def clip_from_path(path: str, media_type: Optional[MediaType] = None) -> Clip:
    """Probe a file with OpenCV and describe it as a Clip."""
    import cv2

    ext = os.path.splitext(path)[1].lower()
    clip_id = os.path.basename(path)

    if media_type is None:
        if ext in AUDIO_EXTENSIONS:
            media_type = MediaType.AUDIO_ONLY
        elif ext in IMAGE_EXTENSIONS:
            media_type = MediaType.IMAGE
        else:
            media_type = MediaType.VIDEO

    if media_type == MediaType.AUDIO_ONLY:
        return Clip(id=clip_id, media_type=media_type, duration=0.0, has_audio_track=True, path=path)

    if media_type == MediaType.IMAGE:
        image = cv2.imread(path)
        size = (image.shape[1], image.shape[0]) if image is not None else None
        return Clip(id=clip_id, media_type=media_type, duration=0.0, path=path, nominal_size=size)

    cap = cv2.VideoCapture(path)
    try:
        fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
        frames = cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        size = (int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)), int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)))
    finally:
        cap.release()
    duration = frames / fps if fps > 0 else 0.0
    return Clip(id=clip_id, media_type=media_type, duration=duration, path=path, nominal_size=size)


@click.group()
def cli():
    """Highlight Reel - beat-synced automatic edits"""
    pass


@cli.command()
@click.argument("music", type=click.Path(exists=True, dir_okay=False))
@click.argument("clips", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--pace", type=click.Choice([p.value for p in Pace]), default=Pace.NORMAL.value)
@click.option("--style", type=click.Choice([s.value for s in Style]), default=Style.DYNAMIC_HIGHLIGHTS.value)
@click.option("--target-length", type=float, default=None, help="Output length in seconds (default: music length)")
@click.option("--quick/--full", default=None, help="Skip frame analysis")
@click.option("--seed", type=int, default=None, help="Seed for reproducible photo durations")
@click.option("--json", "as_json", is_flag=True, help="Print segments as JSON")
@click.option("--log-dir", type=click.Path(file_okay=False), default=None, help="Also write a debug log here")
def build(music: str, clips: Tuple[str, ...], pace: str, style: str, target_length: Optional[float],
          quick: Optional[bool], seed: Optional[int], as_json: bool, log_dir: Optional[str]):
    """Build a highlight reel from MUSIC and CLIPS."""
    from .decoding import OpenCVMediaDecoder
    from .exceptions import HighlightReelError
    from .pipeline import HighlightReelPipeline

    console = get_console()
    if log_dir:
        log_file = configure_file_logging(Path(log_dir), time.strftime("%Y%m%d_%H%M%S"))
        console.print(f"[dim]Logging to {log_file}[/]")
    settings = HighlightReelSettings.from_settings(
        get_settings(),
        pace=Pace(pace),
        style=Style(style),
        target_length=target_length,
        quick_mode=quick,
        seed=seed,
    )

    all_clips = [clip_from_path(music, MediaType.AUDIO_ONLY)] + [clip_from_path(p) for p in clips]
    decoder = OpenCVMediaDecoder()
    try:
        result = HighlightReelPipeline(decoder, settings).run(all_clips)
    except HighlightReelError as e:
        console.print(f"[bold red]❌ {e.user_message}[/]")
        if e.suggestion:
            console.print(f"💡 {e.suggestion}")
        sys.exit(1)
    finally:
        decoder.close()
        if log_dir:
            detach_file_logging()

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in result.segments], indent=2))
        return

    from rich.table import Table
    table = Table(title=f"Highlight reel ({len(result.segments)} segments)")
    for column in ("#", "Clip", "Source", "Timeline", "Beat", "Phase"):
        table.add_column(column)
    for s in result.segments:
        table.add_row(
            str(s.order + 1),
            s.source_clip_id,
            f"{s.source_start:.2f}–{s.source_end:.2f}",
            f"{s.timeline_start:.2f}",
            "-" if s.beat_index is None else str(s.beat_index),
            s.phase.value if s.phase else "",
        )
    console.print(table)


@cli.command("analyze-music")
@click.argument("music", type=click.Path(exists=True, dir_okay=False))
@click.option("--style", type=click.Choice([s.value for s in Style]), default=Style.DYNAMIC_HIGHLIGHTS.value)
def analyze_music_command(music: str, style: str):
    """Show beats, sections and energy zones of a music file."""
    from .audio_analysis import analyze_music
    from .decoding import OpenCVMediaDecoder
    from .exceptions import HighlightReelError

    console = get_console()
    spacing, sensitivity = Style(style).beat_parameters
    try:
        samples, rate = OpenCVMediaDecoder().decode_audio(clip_from_path(music, MediaType.AUDIO_ONLY))
    except HighlightReelError as e:
        console.print(f"[bold red]❌ {e.user_message}[/]")
        sys.exit(1)

    analysis = analyze_music(samples, rate, min_beat_spacing=spacing, sensitivity=sensitivity)
    console.print(f"Duration: [bold]{analysis.duration:.1f}s[/]  Beats: [bold]{analysis.beat_count}[/]  "
                  f"Tempo: ~{analysis.tempo:.0f} BPM")
    console.print(f"Sections: {', '.join(f'{t:.1f}' for t in analysis.section_boundaries)}")
    if analysis.intro_zone:
        console.print(f"Intro zone: {analysis.intro_zone.start:.1f}–{analysis.intro_zone.end:.1f}s")
    if analysis.climax_zone:
        console.print(f"Climax zone: {analysis.climax_zone.start:.1f}–{analysis.climax_zone.end:.1f}s")


def main():
    cli()


if __name__ == "__main__":
    main()
