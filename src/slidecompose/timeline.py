"""Timeline builder — per-segment timing for an ordered image list.

Two timing policies are supported; exactly one is chosen per build and
recorded on the Timeline.

  - additive (default): every image is held for the full display duration
    D and each transition of length T is *inserted* between neighbours:

        total   = N*D + (N-1)*T
        start_i = i*(D+T)          (moment image i is fully on screen)

    Each segment's encoder stream is padded by T on every side that has a
    neighbour, and the xfade for segment i begins at start_i - T.

  - overlap: neighbours share the transition window, eating into the held
    time on both sides:

        total   = N*D - (N-1)*T
        start_i = i*(D-T)          (moment image i starts fading in)

The total runtime is what the encoder is asked to trim the output to, so
it must agree with the last segment's end. ``Timeline.check`` verifies
that.
"""

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .audio import AudioCandidate
from .catalog import (
    COLOR_GRADE_NAMES,
    COLOR_GRADES,
    PAN_ZOOM_NAMES,
    PAN_ZOOMS,
    TRANSITION_NAMES,
    TRANSITIONS,
    RandomPicker,
)
from .common import fmt_number
from .errors import GraphCompileError, InvalidInput

logger = logging.getLogger(__name__)

_EPS = 1e-6


class TimingPolicy(enum.Enum):
    ADDITIVE = "additive"
    OVERLAP = "overlap"


@dataclass(frozen=True)
class Segment:
    """One image's timed appearance.

    ``lead_in``/``lead_out`` are seconds added to the segment's own stream
    before/after its display duration (additive policy only).
    ``fade_in``/``fade_out`` are seconds of that stream covered by the
    incoming/outgoing transition. Times on the stream are local: 0 is the
    first frame of this segment's input.
    """

    index: int
    path: Path
    duration: float
    start: float
    size: tuple[int, int] | None = None
    lead_in: float = 0.0
    lead_out: float = 0.0
    fade_in: float = 0.0
    fade_out: float = 0.0
    transition: str | None = None
    pan_zoom: str | None = None
    color_grade: str | None = None
    text: str | None = None

    @property
    def clip_duration(self) -> float:
        """Length of this segment's encoder input stream."""
        return self.lead_in + self.duration + self.lead_out

    @property
    def stream_start(self) -> float:
        """Output time at which this segment's stream begins."""
        return self.start - self.lead_in

    @property
    def stream_end(self) -> float:
        return self.stream_start + self.clip_duration

    @property
    def hold_window(self) -> tuple[float, float]:
        """Local span where this segment alone is on screen."""
        return (self.fade_in, self.clip_duration - self.fade_out)


@dataclass(frozen=True)
class AudioTrack:
    path: Path
    duration: float
    fade_in: float = 1.0
    fade_out: float = 2.0
    loop: bool = True

    @property
    def fade_out_start(self) -> float:
        return max(0.0, self.duration - self.fade_out)


@dataclass(frozen=True)
class Timeline:
    segments: tuple[Segment, ...]
    transition_duration: float
    policy: TimingPolicy
    total_runtime: float
    audio: AudioTrack | None = None

    def __len__(self) -> int:
        return len(self.segments)

    @property
    def starts(self) -> list[float]:
        return [s.start for s in self.segments]

    def check(self) -> None:
        """Raise GraphCompileError if timing is internally inconsistent."""
        prev = None
        for seg in self.segments:
            if prev is not None:
                if seg.start < prev.start:
                    raise GraphCompileError(f"Segment {seg.index} starts before segment {prev.index}")
                if abs(seg.stream_start - (prev.stream_end - self.transition_duration)) >= _EPS:
                    raise GraphCompileError(
                        f"Segment {seg.index} stream does not meet segment {prev.index}"
                    )
            prev = seg
        if self.segments:
            end = self.segments[-1].stream_end
            if abs(end - self.total_runtime) >= _EPS:
                raise GraphCompileError(
                    f"Last segment ends at {fmt_number(end)}s, total runtime is "
                    f"{fmt_number(self.total_runtime)}s"
                )
        if self.audio is not None and abs(self.audio.duration - self.total_runtime) >= _EPS:
            raise GraphCompileError(
                f"Audio span {fmt_number(self.audio.duration)}s differs from runtime "
                f"{fmt_number(self.total_runtime)}s"
            )


# ── Closed forms ──────────────────────────────────────────────────


def total_runtime(
    count: int,
    image_duration: float,
    transition_duration: float,
    policy: TimingPolicy = TimingPolicy.ADDITIVE,
) -> float:
    """Total runtime for *count* segments under *policy*."""
    if count <= 0:
        return 0.0
    if policy is TimingPolicy.ADDITIVE:
        return count * image_duration + (count - 1) * transition_duration
    return count * image_duration - (count - 1) * transition_duration


def start_offset(
    index: int,
    image_duration: float,
    transition_duration: float,
    policy: TimingPolicy = TimingPolicy.ADDITIVE,
) -> float:
    if policy is TimingPolicy.ADDITIVE:
        return index * (image_duration + transition_duration)
    return index * (image_duration - transition_duration)


# ── Builder ───────────────────────────────────────────────────────


def _normalize_image(item) -> tuple[Path, tuple[int, int] | None]:
    """Accept a PreparedImage, a (path, (w, h)) pair, or a bare path."""
    if hasattr(item, "path") and hasattr(item, "width"):
        return Path(item.path), (item.width, item.height)
    if isinstance(item, tuple) and len(item) == 2:
        path, size = item
        return Path(path), tuple(size) if size is not None else None
    return Path(item), None


def _choose(setting: str | None, names: tuple[str, ...], table, picker, family: str,
            allow_none: bool) -> str | None:
    """Resolve a style setting: 'random', 'none', or a catalog name."""
    if setting is None or setting == "none":
        if not allow_none:
            raise InvalidInput(f"{family} cannot be 'none'", stage="timeline")
        return None
    if setting == "random":
        return picker.pick(names)
    if setting not in table:
        raise InvalidInput(
            f"Unknown {family} '{setting}'. Valid: {sorted(names)}", stage="timeline",
        )
    return setting


def build(
    images: Sequence,
    image_duration: float,
    transition_duration: float,
    audio: AudioCandidate | None = None,
    *,
    policy: TimingPolicy | str = TimingPolicy.ADDITIVE,
    picker=None,
    transition_style: str = "random",
    pan_zoom: str | None = "random",
    color_grade: str | None = "random",
    texts: Sequence[str | None] | None = None,
    audio_fade_in: float = 1.0,
    audio_fade_out: float = 2.0,
) -> Timeline:
    """Build a Timeline from an ordered image list.

    Args:
        images: PreparedImages, (path, (w, h)) pairs, or paths, in order.
        image_duration: Seconds each image is held (D, > 0).
        transition_duration: Seconds per transition (T, >= 0).
        audio: Selected audio candidate, or None for a silent video.
        policy: Timing policy, see module docstring.
        picker: Selection strategy for "random" styles. Defaults to an
            unseeded RandomPicker.
        transition_style: "random" or a transition name.
        pan_zoom: "random", "none", or a Ken Burns name.
        color_grade: "random", "none", or a color grade name.
        texts: Optional overlay text per image (shorter lists are padded
            with None).
        audio_fade_in: Audio fade-in seconds (clamped to half the runtime).
        audio_fade_out: Audio fade-out seconds (clamped likewise).

    Raises:
        InvalidInput: Empty image list, bad durations, unknown style name,
            or more texts than images.
    """
    if not images:
        raise InvalidInput("No images to compose", stage="timeline")
    if not image_duration or image_duration <= 0:
        raise InvalidInput(
            f"Image duration must be > 0, got {image_duration!r}", stage="timeline",
        )
    if transition_duration is None or transition_duration < 0:
        raise InvalidInput(
            f"Transition duration must be >= 0, got {transition_duration!r}", stage="timeline",
        )
    try:
        policy = TimingPolicy(policy)
    except ValueError:
        raise InvalidInput(
            f"Unknown timing policy {policy!r}. Valid: {[p.value for p in TimingPolicy]}",
            stage="timeline",
        ) from None
    n = len(images)
    if policy is TimingPolicy.OVERLAP and n > 1 and transition_duration >= image_duration:
        raise InvalidInput(
            f"Overlap timing needs transition ({transition_duration}s) shorter than "
            f"image duration ({image_duration}s)",
            stage="timeline",
        )
    texts = list(texts or [])
    if len(texts) > n:
        raise InvalidInput(f"{len(texts)} texts given for {n} images", stage="timeline")
    texts += [None] * (n - len(texts))

    picker = picker or RandomPicker()
    d = float(image_duration)
    t = float(transition_duration)
    additive = policy is TimingPolicy.ADDITIVE

    segments = []
    for i, item in enumerate(images):
        path, size = _normalize_image(item)
        has_prev = i > 0
        has_next = i < n - 1
        fade_in = t if has_prev else 0.0
        fade_out = t if has_next else 0.0
        segments.append(Segment(
            index=i,
            path=path,
            duration=d,
            start=start_offset(i, d, t, policy),
            size=size,
            lead_in=fade_in if additive else 0.0,
            lead_out=fade_out if additive else 0.0,
            fade_in=fade_in,
            fade_out=fade_out,
            transition=(
                _choose(transition_style, TRANSITION_NAMES, TRANSITIONS, picker,
                        "transition style", allow_none=False)
                if has_next else None
            ),
            pan_zoom=_choose(pan_zoom, PAN_ZOOM_NAMES, PAN_ZOOMS, picker,
                             "Ken Burns effect", allow_none=True),
            color_grade=_choose(color_grade, COLOR_GRADE_NAMES, COLOR_GRADES, picker,
                                "color grade", allow_none=True),
            text=texts[i] or None,
        ))

    total = total_runtime(n, d, t, policy)

    track = None
    if audio is not None:
        half = total / 2
        track = AudioTrack(
            path=Path(audio.path),
            duration=total,
            fade_in=min(max(audio_fade_in, 0.0), half),
            fade_out=min(max(audio_fade_out, 0.0), half),
            loop=audio.duration is None or audio.duration < total,
        )

    timeline = Timeline(
        segments=tuple(segments),
        transition_duration=t,
        policy=policy,
        total_runtime=total,
        audio=track,
    )
    logger.debug(
        "Built %s timeline: %d segments, %.3fs total, audio=%s",
        policy.value, n, total, track.path.name if track else None,
    )
    return timeline
