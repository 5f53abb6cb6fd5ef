"""Artifact lifecycle — per-run ownership and cleanup of intermediate files.

Every path a run creates (preprocessed images, its work directory, and
optionally the uploaded originals) is registered with that run's
``RunScope``. ``end()`` deletes all of them whatever the outcome; on
failure it also deletes the output file. Deletion failures become
CleanupWarnings: logged and returned, never raised, so cleanup can't mask
the real result of a run.

Runs never share paths: each gets its own ``run-<id>`` directory under
the manager's work dir, so any number of runs may be active at once.

Usage:
    lifecycle = ArtifactLifecycle("/tmp/slidecompose")
    with lifecycle.begin("out/teaser.mp4") as scope:
        png = scope.path("resized-000.png")
        ...
"""

import enum
import logging
import shutil
import threading
import uuid
from pathlib import Path

from .errors import CleanupWarning

logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


class RunScope:
    """Artifacts owned by one run. Created by ``ArtifactLifecycle.begin``."""

    def __init__(self, manager: "ArtifactLifecycle", run_id: str, work_dir: Path,
                 output_path: Path | None):
        self.manager = manager
        self.run_id = run_id
        self.work_dir = work_dir
        self.output_path = output_path
        self.outcome: Outcome | None = None
        self.warnings: list[CleanupWarning] = []
        self.removed: list[Path] = []
        self._paths: list[Path] = []
        self._lock = threading.Lock()

    @property
    def registered(self) -> list[Path]:
        with self._lock:
            return list(self._paths)

    @property
    def ended(self) -> bool:
        return self.outcome is not None

    def register(self, path: str | Path) -> Path:
        """Register *path* for deletion when the run ends."""
        path = Path(path)
        with self._lock:
            if self.outcome is not None:
                raise RuntimeError(f"Run {self.run_id} already ended")
            if path not in self._paths:
                self._paths.append(path)
        return path

    def path(self, name: str) -> Path:
        """A registered path inside this run's work directory."""
        return self.register(self.work_dir / name)

    def end(self, outcome: Outcome) -> list[CleanupWarning]:
        """Delete every registered path; on failure also the output.

        Safe to call more than once; only the first call does anything.
        """
        with self._lock:
            if self.outcome is not None:
                return self.warnings
            self.outcome = outcome
            targets = list(reversed(self._paths))

        if outcome is Outcome.FAILURE and self.output_path is not None:
            targets.insert(0, self.output_path)

        for path in targets:
            try:
                if _remove(path):
                    self.removed.append(path)
            except OSError as e:
                warning = CleanupWarning(path, e)
                logger.warning("Run %s cleanup: %s", self.run_id, warning)
                self.warnings.append(warning)

        self.manager._release(self)
        logger.debug("Run %s ended (%s), %d paths removed",
                     self.run_id, outcome.value, len(self.removed))
        return self.warnings

    def __enter__(self) -> "RunScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.end(Outcome.FAILURE if exc_type is not None else Outcome.SUCCESS)
        return False


def _remove(path: Path) -> bool:
    """Remove a file or directory tree. False if nothing was there."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


class ArtifactLifecycle:
    """Hands out RunScopes with disjoint work directories."""

    def __init__(self, work_dir: str | Path):
        self.work_dir = Path(work_dir)
        self._active: dict[str, RunScope] = {}
        self._lock = threading.Lock()

    @property
    def active_runs(self) -> list[str]:
        with self._lock:
            return list(self._active)

    def begin(self, output_path: str | Path | None = None) -> RunScope:
        run_id = uuid.uuid4().hex[:12]
        run_dir = self.work_dir / f"run-{run_id}"
        run_dir.mkdir(parents=True, exist_ok=False)
        scope = RunScope(self, run_id, run_dir, Path(output_path) if output_path else None)
        scope.register(run_dir)
        with self._lock:
            self._active[run_id] = scope
        logger.debug("Run %s started in %s", run_id, run_dir)
        return scope

    def _release(self, scope: RunScope) -> None:
        with self._lock:
            self._active.pop(scope.run_id, None)
