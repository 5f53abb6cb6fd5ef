"""Slideshow manifest loader — YAML description of one composition.

Manifest schema:
  video:
    resolution: [1920, 1080]    # even width/height (yuv420p)
    fps: 30
    image_duration: 3           # seconds each image is held, > 0
    transition: 2               # seconds per transition, >= 0
    timing: additive            # "additive" or "overlap"
    transition_style: random    # "random" or a transition name
    ken_burns: random           # "random", "none", or an effect name
    color_grade: random         # "random", "none", or a grade name
    seed: 7                     # optional, makes "random" reproducible
    codec: libx264
    preset: medium
    crf: 20
    timeout: 600                # optional, seconds before ffmpeg is killed
  text:
    font_size: 48
    color: "#FFFFFF"
    fade: 0.5
  audio:
    dir: "${media}/music"       # optional; no candidates → silent video
    fade_in: 1.0
    fade_out: 2.0
  paths:
    media: "/data"
  work_dir: "/tmp/slidecompose"
  output: "${media}/teaser.mp4" # optional; file or directory, --output wins
  log_dir: "${media}/logs"      # optional ffmpeg diagnostic logs
  images:
    - path: "${media}/a.jpg"
      text: "Day one"           # optional overlay
"""

from dataclasses import dataclass
from pathlib import Path

import yaml

from .catalog import COLOR_GRADES, PAN_ZOOMS, TRANSITIONS
from .common import parse_hex_color, resolve_path_vars
from .graph import TextStyle
from .timeline import TimingPolicy

VALID_TIMINGS = {p.value for p in TimingPolicy}


@dataclass
class VideoSettings:
    """Everything a run needs besides its images. Defaults match the web app."""

    width: int = 1920
    height: int = 1080
    fps: int = 30
    image_duration: float = 3.0
    transition: float = 2.0
    timing: str = "additive"
    transition_style: str = "random"
    ken_burns: str = "random"
    color_grade: str = "random"
    seed: int | None = None
    codec: str = "libx264"
    preset: str = "medium"
    crf: int = 20
    max_image_size: tuple[int, int] = (1920, 1080)
    text_font_size: int = 48
    text_color: tuple[int, int, int] = (255, 255, 255)
    text_fade: float = 0.5
    audio_fade_in: float = 1.0
    audio_fade_out: float = 2.0
    encode_timeout: float | None = None

    @property
    def resolution(self) -> tuple[int, int]:
        return (self.width, self.height)

    def text_style(self) -> TextStyle:
        return TextStyle(
            font_size=self.text_font_size,
            color=self.text_color,
            fade=self.text_fade,
        )


def _number(section: str, key: str, value, minimum: float, exclusive: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"Manifest: {section}.{key} must be a number, got {value!r}")
    if value < minimum or (exclusive and value == minimum):
        op = ">" if exclusive else ">="
        raise ValueError(f"Manifest: {section}.{key} must be {op} {minimum}, got {value!r}")
    return value


def _style(key: str, value, table, allow_none: bool) -> str:
    valid = {"random", *table} | ({"none"} if allow_none else set())
    if value not in valid:
        raise ValueError(
            f"Manifest: invalid video.{key} '{value}'. Valid: {sorted(valid)}"
        )
    return value


def load_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize a slideshow manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Validate video/text/audio settings into a VideoSettings.
      3. Resolve ${path} variables in image, audio, work and log paths.
      4. Validate each image entry.

    Returns:
        Dict with keys: settings (VideoSettings), images (list of dicts
        with path and text), audio_dir, work_dir, log_dir, output.

    Raises:
        ValueError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ValueError("Manifest: top level must be a mapping")

    paths = raw.get("paths", {}) or {}
    video = raw.get("video", {}) or {}
    text = raw.get("text", {}) or {}
    audio = raw.get("audio", {}) or {}

    settings = VideoSettings()

    if "resolution" in video:
        res = video["resolution"]
        if (not isinstance(res, (list, tuple)) or len(res) != 2
                or not all(isinstance(v, int) and v > 0 and v % 2 == 0 for v in res)):
            raise ValueError(
                f"Manifest: video.resolution must be [width, height] with even "
                f"positive integers, got {res!r}"
            )
        settings.width, settings.height = res

    if "fps" in video:
        fps = video["fps"]
        if not isinstance(fps, int) or isinstance(fps, bool) or fps <= 0:
            raise ValueError(f"Manifest: video.fps must be a positive integer, got {fps!r}")
        settings.fps = fps

    if "image_duration" in video:
        settings.image_duration = _number("video", "image_duration", video["image_duration"], 0, exclusive=True)
    if "transition" in video:
        settings.transition = _number("video", "transition", video["transition"], 0)

    timing = video.get("timing", settings.timing)
    if timing not in VALID_TIMINGS:
        raise ValueError(
            f"Manifest: invalid video.timing '{timing}'. Valid: {sorted(VALID_TIMINGS)}"
        )
    settings.timing = timing

    settings.transition_style = _style(
        "transition_style", video.get("transition_style", "random"), TRANSITIONS, allow_none=False)
    settings.ken_burns = _style("ken_burns", video.get("ken_burns", "random"), PAN_ZOOMS, allow_none=True)
    settings.color_grade = _style(
        "color_grade", video.get("color_grade", "random"), COLOR_GRADES, allow_none=True)

    if video.get("seed") is not None:
        if not isinstance(video["seed"], int):
            raise ValueError(f"Manifest: video.seed must be an integer, got {video['seed']!r}")
        settings.seed = video["seed"]

    settings.codec = str(video.get("codec", settings.codec))
    settings.preset = str(video.get("preset", settings.preset))
    if "crf" in video:
        settings.crf = int(_number("video", "crf", video["crf"], 0))
    if video.get("timeout") is not None:
        settings.encode_timeout = _number("video", "timeout", video["timeout"], 0, exclusive=True)

    if "font_size" in text:
        settings.text_font_size = int(_number("text", "font_size", text["font_size"], 1))
    if "color" in text:
        settings.text_color = parse_hex_color(str(text["color"]))
    if "fade" in text:
        settings.text_fade = _number("text", "fade", text["fade"], 0)

    if "fade_in" in audio:
        settings.audio_fade_in = _number("audio", "fade_in", audio["fade_in"], 0)
    if "fade_out" in audio:
        settings.audio_fade_out = _number("audio", "fade_out", audio["fade_out"], 0)

    def _resolve(value):
        return resolve_path_vars(str(value), paths) if value is not None else None

    images = []
    for i, entry in enumerate(raw.get("images", []) or []):
        if isinstance(entry, str):
            entry = {"path": entry}
        if not isinstance(entry, dict) or "path" not in entry:
            raise ValueError(f"Image {i}: missing required field 'path'")
        caption = entry.get("text")
        if caption is not None and not isinstance(caption, str):
            raise ValueError(f"Image {i}: 'text' must be a string")
        images.append({"path": _resolve(entry["path"]), "text": caption})

    return {
        "settings": settings,
        "images": images,
        "audio_dir": _resolve(audio.get("dir")),
        "work_dir": _resolve(raw.get("work_dir")),
        "log_dir": _resolve(raw.get("log_dir")),
        "output": _resolve(raw.get("output")),
    }


def validate_manifest_paths(config: dict) -> None:
    """Check that every image path exists on disk.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    missing = [img["path"] for img in config["images"] if not Path(img["path"]).exists()]
    if missing:
        msg = f"Missing {len(missing)} image file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)
