"""Effect catalog — transitions, Ken Burns motions, and color grades.

All tables are process-wide, read-only data: frozen dataclasses behind
``MappingProxyType``. A run never mutates them, so they are shared freely
across threads.

Selection goes through a ``Picker``: anything with a ``pick(entries)``
method. The default draws uniformly at random from a per-run
``random.Random``; tests inject a seeded or fixed picker instead.

Transition styles map onto ffmpeg ``xfade`` transitions. Ken Burns entries
describe a linear move from a start (zoom, x, y, angle) to an end
(zoom, x, y, angle) across the segment; x/y are fractions of the free
margin left by the zoom (0 = left/top edge, 0.5 = centered, 1 = right/
bottom edge). Color grades are ``eq`` adjustments plus an optional
``colorbalance`` midtone shift.
"""

import random
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol, Sequence, TypeVar

T = TypeVar("T")


# ── Entry types ───────────────────────────────────────────────────


@dataclass(frozen=True)
class TransitionStyle:
    name: str
    xfade: str


@dataclass(frozen=True)
class PanZoom:
    name: str
    zoom: tuple[float, float] = (1.0, 1.0)
    x: tuple[float, float] = (0.5, 0.5)
    y: tuple[float, float] = (0.5, 0.5)
    rotate: tuple[float, float] = (0.0, 0.0)   # degrees

    @property
    def rotates(self) -> bool:
        return self.rotate != (0.0, 0.0)


@dataclass(frozen=True)
class ColorGrade:
    name: str
    brightness: float = 0.0
    contrast: float = 1.0
    saturation: float = 1.0
    gamma: float = 1.0
    # colorbalance midtone shifts (rm, gm, bm), each in [-1, 1].
    balance: tuple[float, float, float] = field(default=(0.0, 0.0, 0.0))

    @property
    def is_identity(self) -> bool:
        return (
            self.brightness == 0.0 and self.contrast == 1.0
            and self.saturation == 1.0 and self.gamma == 1.0
            and self.balance == (0.0, 0.0, 0.0)
        )


# ── Tables ────────────────────────────────────────────────────────

_TRANSITIONS = [
    TransitionStyle("crossfade", "fade"),
    TransitionStyle("dissolve", "dissolve"),
    TransitionStyle("fade_black", "fadeblack"),
    TransitionStyle("fade_white", "fadewhite"),
    TransitionStyle("wipe_left", "wipeleft"),
    TransitionStyle("wipe_right", "wiperight"),
    TransitionStyle("wipe_up", "wipeup"),
    TransitionStyle("wipe_down", "wipedown"),
    TransitionStyle("slide_left", "slideleft"),
    TransitionStyle("slide_right", "slideright"),
    TransitionStyle("smooth_left", "smoothleft"),
    TransitionStyle("smooth_right", "smoothright"),
    TransitionStyle("circle_open", "circleopen"),
    TransitionStyle("circle_close", "circleclose"),
    TransitionStyle("radial", "radial"),
]

# Pans keep a fixed 1.15 zoom so there is margin to travel across.
# Rotations zoom past 1.1 so the rotated corners stay off-canvas.
_PAN_ZOOMS = [
    PanZoom("zoom_in", zoom=(1.0, 1.2)),
    PanZoom("zoom_out", zoom=(1.2, 1.0)),
    PanZoom("zoom_in_left", zoom=(1.0, 1.25), x=(0.5, 0.0)),
    PanZoom("zoom_in_right", zoom=(1.0, 1.25), x=(0.5, 1.0)),
    PanZoom("pan_left", zoom=(1.15, 1.15), x=(1.0, 0.0)),
    PanZoom("pan_right", zoom=(1.15, 1.15), x=(0.0, 1.0)),
    PanZoom("pan_up", zoom=(1.15, 1.15), y=(1.0, 0.0)),
    PanZoom("pan_down", zoom=(1.15, 1.15), y=(0.0, 1.0)),
    PanZoom("rotate_cw", zoom=(1.15, 1.2), rotate=(-2.0, 2.0)),
    PanZoom("rotate_ccw", zoom=(1.15, 1.2), rotate=(2.0, -2.0)),
    PanZoom("static"),
]

_COLOR_GRADES = [
    ColorGrade("natural"),
    ColorGrade("warm", saturation=1.1, balance=(0.08, 0.02, -0.08)),
    ColorGrade("cool", saturation=1.05, balance=(-0.06, 0.0, 0.08)),
    ColorGrade("vivid", contrast=1.1, saturation=1.4),
    ColorGrade("vintage", contrast=1.1, saturation=0.7, balance=(0.05, 0.02, -0.08)),
    ColorGrade("faded", brightness=0.04, contrast=0.85, saturation=0.8),
    ColorGrade("mono", saturation=0.0),
    ColorGrade("noir", brightness=-0.05, contrast=1.3, saturation=0.0),
    ColorGrade("bright", brightness=0.06, gamma=1.1),
]

TRANSITIONS = MappingProxyType({t.name: t for t in _TRANSITIONS})
PAN_ZOOMS = MappingProxyType({p.name: p for p in _PAN_ZOOMS})
COLOR_GRADES = MappingProxyType({c.name: c for c in _COLOR_GRADES})

TRANSITION_NAMES = tuple(TRANSITIONS)
PAN_ZOOM_NAMES = tuple(PAN_ZOOMS)
COLOR_GRADE_NAMES = tuple(COLOR_GRADES)


# ── Selection strategies ──────────────────────────────────────────


class Picker(Protocol):
    def pick(self, entries: Sequence[T]) -> T: ...


class RandomPicker:
    """Uniform random choice; seed it for reproducible runs."""

    def __init__(self, seed: int | None = None):
        self._rng = random.Random(seed)
        self._lock = threading.Lock()

    def pick(self, entries: Sequence[T]) -> T:
        if not entries:
            raise ValueError("Cannot pick from an empty catalog")
        with self._lock:
            return self._rng.choice(entries)


class CyclePicker:
    """Walk the entries in order, wrapping around. Deterministic."""

    def __init__(self, start: int = 0):
        self._next = start

    def pick(self, entries: Sequence[T]) -> T:
        if not entries:
            raise ValueError("Cannot pick from an empty catalog")
        entry = entries[self._next % len(entries)]
        self._next += 1
        return entry


class FixedPicker:
    """Always pick the entry named *name* when present, else the first one."""

    def __init__(self, name: str):
        self.name = name

    def pick(self, entries: Sequence[T]) -> T:
        if not entries:
            raise ValueError("Cannot pick from an empty catalog")
        return self.name if self.name in entries else entries[0]


# ── Lookup ────────────────────────────────────────────────────────


def describe_catalog() -> dict[str, tuple[str, ...]]:
    """Names per family, for listings and validation messages."""
    return {
        "transitions": TRANSITION_NAMES,
        "ken_burns": PAN_ZOOM_NAMES,
        "color_grades": COLOR_GRADE_NAMES,
    }
