"""Composition run — preprocess, build timeline, compile, encode.

A Composer owns the shared, read-only parts of the pipeline (settings,
encoder configuration, artifact manager) and a cap on concurrent runs.
Each ``compose()`` call is one run: it takes a slot, opens a RunScope,
and walks the stages in order. Whatever happens, the scope's cleanup runs
on the way out; on failure the output file goes too.

Every error leaving ``compose()`` is a ComposeError whose ``stage`` says
where it came from: input, preprocess, timeline, compile or encode.
"""

import contextlib
import datetime
import logging
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path

from . import timeline as timeline_mod
from .audio import select_audio
from .captions import render_captions
from .catalog import RandomPicker
from .encoder import EncoderDriver
from .errors import CleanupWarning, ComposeError, InvalidInput
from .graph import compile_timeline
from .lifecycle import ArtifactLifecycle
from .manifest import VideoSettings
from .preprocess import preprocess_all

logger = logging.getLogger(__name__)


@dataclass
class ComposeResult:
    output_path: Path
    duration: float
    run_id: str
    timeline: timeline_mod.Timeline
    warnings: list[CleanupWarning] = field(default_factory=list)


@contextlib.contextmanager
def _stage(name: str):
    """Tag anything escaping this block with the stage name."""
    logger.debug("Stage %s", name)
    try:
        yield
    except ComposeError:
        raise
    except (OSError, ValueError, RuntimeError) as e:
        raise ComposeError(f"{type(e).__name__}: {e}", stage=name) from e


def default_output_name() -> str:
    """teaser-<timestamp>.mp4, for callers that pass a directory."""
    stamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    return f"teaser-{stamp}.mp4"


class Composer:
    """Composes image lists into videos, at most N runs at a time.

    Args:
        settings: Video settings shared by every run.
        work_dir: Parent of the per-run scratch directories.
            Defaults to a ``slidecompose`` dir in the system temp dir.
        log_dir: Where to write ffmpeg diagnostic logs, or None.
        max_concurrent_runs: Runs allowed to execute at once.
        max_preprocess_workers: Thread cap for per-run image preprocessing.
        encoder: Pre-configured EncoderDriver (mainly for tests).
    """

    def __init__(
        self,
        settings: VideoSettings | None = None,
        work_dir: str | Path | None = None,
        log_dir: str | Path | None = None,
        max_concurrent_runs: int = 2,
        max_preprocess_workers: int = 4,
        encoder: EncoderDriver | None = None,
    ):
        self.settings = settings or VideoSettings()
        work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir()) / "slidecompose"
        self.lifecycle = ArtifactLifecycle(work_dir)
        self.max_preprocess_workers = max_preprocess_workers
        self.encoder = encoder or EncoderDriver(
            codec=self.settings.codec,
            preset=self.settings.preset,
            crf=self.settings.crf,
            timeout=self.settings.encode_timeout,
            log_dir=log_dir,
        )
        self._slots = threading.BoundedSemaphore(max_concurrent_runs)

    def _check_inputs(self, images, texts) -> None:
        s = self.settings
        if not images:
            raise InvalidInput("No images to compose")
        if s.image_duration <= 0:
            raise InvalidInput(f"Image duration must be > 0, got {s.image_duration!r}")
        if s.transition < 0:
            raise InvalidInput(f"Transition duration must be >= 0, got {s.transition!r}")
        if texts is not None and len(texts) > len(images):
            raise InvalidInput(f"{len(texts)} texts given for {len(images)} images")
        missing = [str(p) for p in images if not Path(p).is_file()]
        if missing:
            raise InvalidInput(f"Image file(s) not found: {', '.join(missing)}")

    def compose(
        self,
        images: list[str | Path],
        output_path: str | Path,
        *,
        texts: list[str | None] | None = None,
        audio_dir: str | Path | None = None,
        seed: int | None = None,
        picker=None,
        remove_sources: bool = False,
    ) -> ComposeResult:
        """Compose *images* (in order) into one video at *output_path*.

        Args:
            images: Source image paths, in display order.
            output_path: Target mp4 path, or an existing directory to get a
                ``teaser-<timestamp>.mp4`` inside it.
            texts: Optional overlay text per image.
            audio_dir: Directory of background-music candidates.
            seed: Seed for effect and track selection. Falls back to the
                settings' seed; None means truly random.
            picker: Explicit selection strategy, overriding *seed*.
            remove_sources: Delete the source images when the run ends
                (uploads are single-use).

        Returns:
            ComposeResult with the output path and the timeline used.

        Raises:
            ComposeError: Subclass and ``stage`` identify the failing step.
        """
        self._check_inputs(images, texts)
        s = self.settings

        output_path = Path(output_path)
        if output_path.is_dir():
            output_path = output_path / default_output_name()

        if picker is None:
            picker = RandomPicker(seed if seed is not None else s.seed)

        with self._slots:
            scope = self.lifecycle.begin(output_path)
            logger.info("Run %s: %d images -> %s", scope.run_id, len(images), output_path)
            with scope:
                if remove_sources:
                    for p in images:
                        scope.register(p)

                with _stage("preprocess"):
                    prepared = preprocess_all(
                        images, scope,
                        max_workers=self.max_preprocess_workers,
                        max_size=s.max_image_size,
                    )

                with _stage("timeline"):
                    audio = select_audio(audio_dir, picker)
                    tl = timeline_mod.build(
                        prepared,
                        s.image_duration,
                        s.transition,
                        audio,
                        policy=s.timing,
                        picker=picker,
                        transition_style=s.transition_style,
                        pan_zoom=s.ken_burns,
                        color_grade=s.color_grade,
                        texts=texts,
                        audio_fade_in=s.audio_fade_in,
                        audio_fade_out=s.audio_fade_out,
                    )

                with _stage("compile"):
                    captions = render_captions(tl, scope, (s.width, s.height), s.text_style())
                    graph = compile_timeline(
                        tl, width=s.width, height=s.height, fps=s.fps,
                        text_style=s.text_style(),
                        captions=captions,
                    )

                with _stage("encode"):
                    self.encoder.run(graph, output_path, run_id=scope.run_id)

            logger.info("Run %s done: %s (%.1fs)", scope.run_id, output_path, tl.total_runtime)
            return ComposeResult(
                output_path=output_path,
                duration=tl.total_runtime,
                run_id=scope.run_id,
                timeline=tl,
                warnings=list(scope.warnings),
            )


def compose(
    images: list[str | Path],
    output_path: str | Path,
    settings: VideoSettings | None = None,
    **kwargs,
) -> ComposeResult:
    """One-shot composition with a throwaway Composer."""
    work_dir = kwargs.pop("work_dir", None)
    log_dir = kwargs.pop("log_dir", None)
    return Composer(settings, work_dir=work_dir, log_dir=log_dir).compose(
        images, output_path, **kwargs,
    )
