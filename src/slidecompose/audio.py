"""Background audio — candidate discovery and duration probing.

A run picks one track from a directory of candidates. No candidate is not
an error: the composition simply goes out video-only.

Durations are probed with moviepy (imageio-ffmpeg does not bundle
ffprobe). An unknown duration is treated as "shorter than the video", so
the track gets looped and trimmed rather than risking early silence.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from moviepy import AudioFileClip

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {".mp3", ".m4a", ".aac", ".wav", ".flac", ".ogg", ".opus"}


@dataclass(frozen=True)
class AudioCandidate:
    path: Path
    duration: float | None = None


def find_audio_candidates(directory: str | Path | None) -> list[Path]:
    """List audio files in *directory*, sorted by name. Missing dir → []."""
    if directory is None:
        return []
    directory = Path(directory)
    if not directory.is_dir():
        logger.info("Audio directory %s does not exist; composing without audio", directory)
        return []
    return sorted(
        (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in AUDIO_EXTENSIONS),
        key=lambda p: p.name.lower(),
    )


def probe_duration(path: str | Path) -> float | None:
    """Audio duration in seconds, or None if the file cannot be probed."""
    try:
        with AudioFileClip(str(path)) as clip:
            return float(clip.duration) if clip.duration else None
    except (OSError, KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning("Could not probe audio duration of %s: %s", path, e)
        return None


def select_audio(directory: str | Path | None, picker) -> AudioCandidate | None:
    """Pick one candidate from *directory* with *picker*, or None if empty."""
    candidates = find_audio_candidates(directory)
    if not candidates:
        return None
    chosen = picker.pick(candidates)
    duration = probe_duration(chosen)
    logger.info("Selected audio track %s (%s)", chosen.name,
                f"{duration:.1f}s" if duration is not None else "unknown length")
    return AudioCandidate(path=chosen, duration=duration)
