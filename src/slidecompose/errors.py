"""Error taxonomy for a composition run.

Every error that reaches a caller names the stage it came from, so a failed
request can be told apart as a preprocessing, timeline, compilation or
encoding failure from the message alone.
"""


class ComposeError(Exception):
    """Base class for composition failures. ``stage`` names the failing step."""

    default_stage = "compose"

    def __init__(self, message: str, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        return f"{self.stage}: {self.message}"


class InvalidInput(ComposeError, ValueError):
    """Bad run parameters: no images, non-positive duration, unknown style."""

    default_stage = "input"


class InvalidImage(ComposeError, ValueError):
    """The preprocessor could not read an image or its dimensions."""

    default_stage = "preprocess"


class GraphCompileError(ComposeError):
    """The compiled filter graph would be invalid.

    Should not happen for a Timeline produced by ``timeline.build``; seeing
    one means the builder and compiler disagree.
    """

    default_stage = "compile"


class EncodeError(ComposeError, RuntimeError):
    """The ffmpeg subprocess failed.

    Attributes:
        stderr_tail: Last diagnostic lines ffmpeg printed before exiting.
        exit_info: Human-readable exit status ("exit code 1", "timed out
            after 30s", ...).
    """

    default_stage = "encode"

    def __init__(
        self,
        message: str,
        stderr_tail: str = "",
        exit_info: str = "",
        stage: str | None = None,
    ):
        super().__init__(message, stage=stage)
        self.stderr_tail = stderr_tail
        self.exit_info = exit_info


class CleanupWarning(UserWarning):
    """A registered artifact could not be deleted. Logged, never raised."""

    def __init__(self, path, error: OSError):
        super().__init__(f"could not remove {path}: {error}")
        self.path = path
        self.error = error
