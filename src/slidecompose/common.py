"""slidecompose.common — shared utilities for composition.

Contains: color parsing, path variable resolution, font loading for
caption images, the ffmpeg binary location, and number formatting for
filter options.
"""

import re
from pathlib import Path

import imageio_ffmpeg
from PIL import ImageFont


# ── Font paths ─────────────────────────────────────────────────────
# Inter preferred, DejaVu Sans as fallback, then Pillow's built-in font.

FONT_PATHS = [
    Path.home() / ".local/share/fonts/Inter.ttc",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
    Path("/usr/share/fonts/dejavu/DejaVuSans.ttf"),
    Path("/Library/Fonts/Arial.ttf"),
    Path("C:/Windows/Fonts/arial.ttf"),
]

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}


# ── Color utilities ────────────────────────────────────────────────

def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    if len(hex_str) != 6 or not all(c in "0123456789abcdefABCDEF" for c in hex_str):
        raise ValueError(f"Invalid hex color: '{hex_str}'")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return str(paths[key])
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Font loading ───────────────────────────────────────────────────

def load_font(size: int, font_file: Path | None = None) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load *font_file*, or else the first usable FONT_PATHS entry, at *size*.

    Inter.ttc is a font collection; index 0 is Regular.
    """
    candidates = [Path(font_file)] if font_file is not None else []
    for font_path in [*candidates, *FONT_PATHS]:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size, index=0)
            except (OSError, IndexError):
                continue
    # Last resort: Pillow default bitmap font.
    return ImageFont.load_default()


# ── ffmpeg ─────────────────────────────────────────────────────────

def ffmpeg_exe() -> str:
    """Path to the ffmpeg binary bundled with imageio-ffmpeg.

    Honors IMAGEIO_FFMPEG_EXE, so a system ffmpeg can be swapped in.
    """
    return imageio_ffmpeg.get_ffmpeg_exe()


def fmt_number(value: float, places: int = 4) -> str:
    """Format a number for a filter option or expression: no trailing zeros."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    text = f"{value:.{places}f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text
