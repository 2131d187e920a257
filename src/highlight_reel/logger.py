"""
Logging for Highlight Reel

Progress goes to stderr so that ``highlight-reel build --json`` keeps stdout
for the segment list. A run can additionally be mirrored into a debug log
file whose lines carry the run id.

Usage:
    from highlight_reel.logger import logger, log_step

    log_step("Analyzing music")
    logger.debug("Envelope has 12000 frames")
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "highlight_reel"


def get_log_level() -> int:
    """Console level from LOG_LEVEL; unknown names fall back to INFO."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


class ReelFormatter(logging.Formatter):
    """
    Console formatter.

    INFO lines stay clean for user-facing progress; everything else gets a
    timestamp and level tag.
    """

    FORMATS = {
        logging.DEBUG: "%(asctime)s [DEBUG] %(name)s: %(message)s",
        logging.INFO: "%(message)s",
        logging.WARNING: "%(asctime)s [WARN] %(message)s",
        logging.ERROR: "%(asctime)s [ERROR] %(message)s",
        logging.CRITICAL: "%(asctime)s [CRITICAL] %(message)s",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_fmt = self.FORMATS.get(record.levelno, self.FORMATS[logging.INFO])
        return logging.Formatter(log_fmt, datefmt="%H:%M:%S").format(record)


class RunLogHandler(logging.FileHandler):
    """Debug log file for one assembly run; every line is tagged with the run id."""

    def __init__(self, log_file: Path, run_id: str):
        super().__init__(log_file, encoding="utf-8")
        self.run_id = run_id
        self.setLevel(logging.DEBUG)
        self.setFormatter(logging.Formatter(
            fmt=f"%(asctime)s | {run_id} | %(levelname)-8s | %(module)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))


def setup_logger(name: str = LOGGER_NAME, level: Optional[int] = None) -> logging.Logger:
    """Create the package logger with its stderr console handler."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    console_level = level or get_log_level()
    # The logger itself passes DEBUG so a run log file sees everything;
    # the console handler filters to the configured level.
    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ReelFormatter())
    logger.addHandler(console_handler)
    return logger


def configure_file_logging(output_dir: Path, run_id: str) -> Path:
    """
    Mirror the package logger into ``output_dir/highlight_reel_<run_id>.log``.

    Only one run log is attached at a time; a previous one is closed first.

    Returns:
        Path of the log file that was attached
    """
    detach_file_logging()
    output_dir.mkdir(parents=True, exist_ok=True)
    log_file = output_dir / f"highlight_reel_{run_id}.log"
    logger.addHandler(RunLogHandler(log_file, run_id))
    return log_file


def detach_file_logging() -> None:
    """Close and remove the run log handler, if any."""
    for handler in [h for h in logger.handlers if isinstance(h, RunLogHandler)]:
        logger.removeHandler(handler)
        handler.close()


logger = setup_logger()


# =============================================================================
# Progress helpers
# =============================================================================
def log_phase(phase: str) -> None:
    """Log a major phase transition with visual separator."""
    separator = "═" * 60
    logger.info(separator)
    logger.info(f"  {phase}")
    logger.info(separator)


def log_step(step: str, emoji: str = "▶") -> None:
    logger.info(f"{emoji} {step}")


def log_success(message: str) -> None:
    logger.info(f"   ✅ {message}")


def log_error(message: str) -> None:
    logger.error(f"   ❌ {message}")


def log_warning(message: str) -> None:
    logger.warning(f"   ⚠️  {message}")


def log_clip_skipped(clip_id: str, stage: str, reason: object) -> None:
    """A single clip lost (part of) its contribution; the run goes on."""
    logger.warning(f"   ⚠️  {clip_id}: {stage} failed ({reason}), using fallback")
