"""Image preprocessing — normalize source images before composition.

Each source image is EXIF-rotated, converted to RGB, shrunk to fit inside
the configured bounds (never enlarged), and written as PNG into the run's
work directory. Preprocessing fans out across a thread pool; results are
reassembled in input order before the timeline is built.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import InvalidImage

logger = logging.getLogger(__name__)

MAX_SIZE = (1920, 1080)


@dataclass(frozen=True)
class PreparedImage:
    """A normalized image ready for the timeline."""

    path: Path
    width: int
    height: int
    source: Path

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)


def fit_within(width: int, height: int, max_size: tuple[int, int]) -> tuple[int, int]:
    """Scale (width, height) to fit inside max_size, keeping aspect ratio.

    Images already inside the bounds are left as they are.
    """
    max_w, max_h = max_size
    ratio = min(max_w / width, max_h / height, 1.0)
    return max(1, int(width * ratio)), max(1, int(height * ratio))


def preprocess_image(
    path: str | Path,
    out_path: str | Path,
    max_size: tuple[int, int] = MAX_SIZE,
) -> PreparedImage:
    """Normalize one image and write it to *out_path* as PNG.

    Raises:
        InvalidImage: The file is unreadable or has no usable dimensions.
            Any partially written output is removed first.
    """
    path = Path(path)
    out_path = Path(out_path)
    try:
        with Image.open(path) as img:
            if not img.width or not img.height:
                raise ValueError("Invalid image dimensions")
            img = ImageOps.exif_transpose(img)
            if img.mode != "RGB":
                img = img.convert("RGB")
            new_size = fit_within(img.width, img.height, max_size)
            if new_size != img.size:
                img = img.resize(new_size, Image.LANCZOS)
            out_path.parent.mkdir(parents=True, exist_ok=True)
            img.save(out_path, format="PNG", compress_level=9)
            width, height = img.size
    except (OSError, ValueError, UnidentifiedImageError, Image.DecompressionBombError) as e:
        out_path.unlink(missing_ok=True)
        raise InvalidImage(f"Failed to process image {path.name}: {e}") from e

    logger.debug("Preprocessed %s -> %s (%dx%d)", path.name, out_path.name, width, height)
    return PreparedImage(path=out_path, width=width, height=height, source=path)


def preprocess_all(
    paths: list[str | Path],
    scope,
    max_workers: int = 4,
    max_size: tuple[int, int] = MAX_SIZE,
) -> list[PreparedImage]:
    """Preprocess every image in parallel, returning results in input order.

    Output files are registered with *scope* (a ``lifecycle.RunScope``)
    before they are written, so a failure anywhere still cleans them up.

    Raises:
        InvalidImage: The first image (by input order) that failed.
    """
    if not paths:
        return []

    targets = [scope.path(f"resized-{i:03d}.png") for i in range(len(paths))]
    effective_workers = max(1, min(max_workers, len(paths)))

    results: list[PreparedImage | None] = [None] * len(paths)
    errors: dict[int, InvalidImage] = {}
    with ThreadPoolExecutor(max_workers=effective_workers) as pool:
        futures = {
            pool.submit(preprocess_image, p, t, max_size): i
            for i, (p, t) in enumerate(zip(paths, targets))
        }
        for future in as_completed(futures):
            i = futures[future]
            try:
                results[i] = future.result()
            except InvalidImage as e:
                errors[i] = e

    if errors:
        raise errors[min(errors)]
    return results
