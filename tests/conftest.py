"""Shared test fixtures for slidecompose tests."""

import subprocess

import numpy as np
import pytest
import imageio_ffmpeg
from PIL import Image

from slidecompose.catalog import FixedPicker
from slidecompose.manifest import VideoSettings

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


def make_image(path, size=(320, 240), color=(200, 80, 60)):
    """Write a gradient test image (so scaling and panning are visible)."""
    w, h = size
    ramp = np.linspace(0, 255, w, dtype=np.uint8)
    frame = np.zeros((h, w, 3), dtype=np.uint8)
    frame[:, :, 0] = color[0]
    frame[:, :, 1] = ramp[np.newaxis, :]
    frame[:, :, 2] = color[2]
    Image.fromarray(frame).save(path)
    return path


@pytest.fixture
def image_files(tmp_path):
    """Three small JPEGs of different aspect ratios."""
    src = tmp_path / "uploads"
    src.mkdir()
    return [
        make_image(src / "a.jpg", (320, 240), (200, 60, 60)),
        make_image(src / "b.jpg", (240, 320), (60, 200, 60)),
        make_image(src / "c.jpg", (400, 200), (60, 60, 200)),
    ]


@pytest.fixture
def audio_dir(tmp_path):
    """A music directory holding one 2-second sine tone (shorter than any video)."""
    d = tmp_path / "music"
    d.mkdir()
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=2",
            "-c:a", "pcm_s16le",
            str(d / "tone.wav"),
        ],
        check=True,
        capture_output=True,
    )
    return d


@pytest.fixture
def small_settings():
    """Tiny, fast settings for real encodes."""
    return VideoSettings(
        width=160,
        height=120,
        fps=10,
        image_duration=3.0,
        transition=2.0,
        transition_style="crossfade",
        ken_burns="zoom_in",
        color_grade="none",
        preset="ultrafast",
        crf=35,
        max_image_size=(320, 240),
    )


@pytest.fixture
def fixed_picker():
    return FixedPicker("crossfade")


@pytest.fixture
def failing_ffmpeg(tmp_path):
    """A fake ffmpeg that writes a partial output file, complains, and exits 1."""
    script = tmp_path / "fake-ffmpeg.sh"
    script.write_text(
        "#!/bin/sh\n"
        "for last; do :; done\n"
        "echo 'partial' > \"$last\"\n"
        "echo 'Error initializing complex filters.' >&2\n"
        "echo 'Invalid argument' >&2\n"
        "exit 1\n"
    )
    script.chmod(0o755)
    return str(script)
