#!/usr/bin/env python3
"""Generate synthetic photos and a music bed for the slidecompose demo.

Creates 6 images with different sizes and aspect ratios in
examples/demo-images/, each a color gradient with a big number in the
middle so ordering, letterboxing and Ken Burns motion are easy to see.
Also writes a 6-second tone to examples/demo-music/ (shorter than the
video, so the looped audio path gets exercised).

Usage:
    python examples/generate_demo_images.py
    # Then render:
    slidecompose compose --manifest examples/demo-slideshow.yaml \
        --output examples/demo-renders/
"""

import subprocess
from pathlib import Path

import imageio_ffmpeg
import numpy as np
from PIL import Image, ImageDraw, ImageFont

ROOT = Path(__file__).resolve().parent
IMAGE_DIR = ROOT / "demo-images"
MUSIC_DIR = ROOT / "demo-music"

# Mixed landscape/portrait/square sizes so the canvas padding shows up.
IMAGES = [
    ("photo-01.jpg", (1600, 1200), (180, 60, 60)),   # red, 4:3
    ("photo-02.jpg", (1080, 1440), (60, 60, 180)),   # blue, portrait
    ("photo-03.jpg", (2400, 1000), (60, 160, 60)),   # green, panorama
    ("photo-04.png", (1200, 1200), (200, 130, 40)),  # orange, square
    ("photo-05.jpg", (3000, 2000), (130, 60, 180)),  # purple, larger than 1080p
    ("photo-06.jpg", (640, 360), (40, 170, 170)),    # cyan, smaller than 1080p
]


def _make_image(size: tuple[int, int], color: tuple[int, int, int], label: str) -> Image.Image:
    w, h = size
    ramp = np.linspace(0.35, 1.0, w)[np.newaxis, :, np.newaxis]
    frame = (np.ones((h, w, 3)) * np.array(color) * ramp).astype(np.uint8)
    img = Image.fromarray(frame)
    draw = ImageDraw.Draw(img)
    try:
        font = ImageFont.truetype(
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf", h // 3
        )
    except OSError:
        font = ImageFont.load_default()
    bbox = draw.textbbox((0, 0), label, font=font)
    tw, th = bbox[2] - bbox[0], bbox[3] - bbox[1]
    draw.text(((w - tw) / 2, (h - th) / 2), label, fill=(255, 255, 255), font=font)
    return img


def main():
    IMAGE_DIR.mkdir(parents=True, exist_ok=True)
    for i, (name, size, color) in enumerate(IMAGES, start=1):
        out = IMAGE_DIR / name
        if out.exists():
            print(f"  skip {name} (exists)")
            continue
        _make_image(size, color, str(i)).save(out)
        print(f"  wrote {name} ({size[0]}x{size[1]})")

    MUSIC_DIR.mkdir(parents=True, exist_ok=True)
    tone = MUSIC_DIR / "tone.wav"
    if not tone.exists():
        subprocess.run(
            [
                imageio_ffmpeg.get_ffmpeg_exe(), "-y",
                "-f", "lavfi", "-i", "sine=frequency=330:duration=6",
                str(tone),
            ],
            check=True,
            capture_output=True,
        )
        print(f"  wrote {tone.name}")

    print(f"\nDone. {len(IMAGES)} images in {IMAGE_DIR}")


if __name__ == "__main__":
    main()
