"""Caption images — segment text rendered with Pillow.

Each caption is a full-canvas transparent PNG: a semi-transparent dark
rounded box near the bottom edge with the text centered in it. The
compiler loops the PNG as an extra input and overlays it on the
segment during its hold window.
"""

import logging
from pathlib import Path

from PIL import Image, ImageDraw

from .common import load_font
from .graph import TextStyle
from .timeline import Timeline

logger = logging.getLogger(__name__)

CAPTION_MAX_WIDTH = 0.9         # fraction of frame width, box included
CAPTION_BORDER_RADIUS = 8


def _fit_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: int) -> str:
    """Truncate with an ellipsis until *text* fits in *max_width* pixels."""
    bbox = draw.textbbox((0, 0), text, font=font)
    while bbox[2] - bbox[0] > max_width and len(text) > 5:
        text = text[:-4] + "..."
        bbox = draw.textbbox((0, 0), text, font=font)
    return text


def render_caption(
    text: str,
    size: tuple[int, int],
    style: TextStyle,
    out_path: str | Path,
) -> Path:
    """Render one caption to a transparent RGBA PNG of the full frame size.

    Args:
        text: Caption text, drawn literally.
        size: (width, height) of the output frame.
        style: Font, color, box opacity and margin.
        out_path: Where to write the PNG.

    Returns:
        The written path.
    """
    width, height = size
    font = load_font(style.font_size, style.font_file)
    pad = max(4, style.font_size // 3)

    img = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(img)

    text = _fit_text(draw, text, font, int(width * CAPTION_MAX_WIDTH) - 2 * pad)
    bbox = draw.textbbox((0, 0), text, font=font)
    text_w = bbox[2] - bbox[0]
    text_h = bbox[3] - bbox[1]

    box_w = text_w + 2 * pad
    box_h = text_h + 2 * pad
    x0 = (width - box_w) // 2
    y0 = max(0, height - int(height * style.bottom_margin) - box_h)

    draw.rounded_rectangle(
        [(x0, y0), (x0 + box_w - 1, y0 + box_h - 1)],
        radius=CAPTION_BORDER_RADIUS,
        fill=(0, 0, 0, round(255 * style.box_opacity)),
    )
    # textbbox is offset by the font's bearing; cancel it so the ink sits
    # inside the padding.
    draw.text((x0 + pad - bbox[0], y0 + pad - bbox[1]), text,
              fill=(*style.color, 255), font=font)

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    img.save(out_path, format="PNG")
    return out_path


def render_captions(
    timeline: Timeline,
    scope,
    size: tuple[int, int],
    style: TextStyle,
) -> dict[int, Path]:
    """Render every captioned segment into *scope*'s run directory.

    Segments with no hold window get no image, since the compiler drops
    their text. Returns ``{segment index: png path}``.
    """
    captions = {}
    for seg in timeline.segments:
        if not seg.text:
            continue
        a, b = seg.hold_window
        if b - a <= 0:
            continue
        captions[seg.index] = render_caption(
            seg.text, size, style, scope.path(f"caption-{seg.index:03d}.png"),
        )
    if captions:
        logger.debug("Rendered %d caption image(s)", len(captions))
    return captions
