"""slidecompose — turn an ordered set of still images into one composed video.

Each image becomes a timed segment (optional Ken Burns motion, color grade,
text overlay), neighbours are joined by cross-fades or wipes, and an optional
looping music bed is trimmed to the total runtime. The whole timeline is
compiled into a single ffmpeg filter graph and encoded in one subprocess.
"""

from .compose import ComposeResult, Composer, compose
from .errors import (
    CleanupWarning,
    ComposeError,
    EncodeError,
    GraphCompileError,
    InvalidImage,
    InvalidInput,
)

__all__ = [
    "CleanupWarning",
    "ComposeError",
    "ComposeResult",
    "Composer",
    "EncodeError",
    "GraphCompileError",
    "InvalidImage",
    "InvalidInput",
    "compose",
]
