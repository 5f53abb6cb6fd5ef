"""Encoder driver — render the compiled graph and run ffmpeg once.

This is the only place ffmpeg filter syntax is produced. Option values are
escaped for both levels ffmpeg parses them at: first the filter's own
option parser (``key=value:key=value``, backslash escapes), then the graph
parser (``'…'`` quoting to protect ``, ; [ ]``).

One ``run`` spawns one ffmpeg process, streams its stderr to observers,
and either returns normally or raises a single EncodeError. On any failure
the partially written output is deleted.
"""

import collections
import datetime
import logging
import subprocess
import threading
from pathlib import Path

from .common import ffmpeg_exe, fmt_number
from .errors import EncodeError
from .graph import CompiledGraph, Filter, GraphNode

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 40

# Characters the graph parser treats specially outside quotes.
_GRAPH_SPECIAL = set("[],;'\\ \t\n")


# ── Rendering ─────────────────────────────────────────────────────


def escape_option_value(value) -> str:
    """Render one option value safely for ``-filter_complex``."""
    if isinstance(value, (int, float)):
        text = fmt_number(value)
    else:
        text = str(value)
    # Level 2: the filter's option parser.
    text = text.replace("\\", "\\\\").replace("'", "\\'").replace(":", "\\:")
    # Level 1: the graph parser. Inside quotes everything is literal except
    # the quote itself, which is closed, escaped, and reopened.
    if any(c in _GRAPH_SPECIAL for c in text):
        text = "'" + text.replace("'", "'\\''") + "'"
    return text


def render_filter(flt: Filter) -> str:
    if not flt.options:
        return flt.name
    opts = ":".join(f"{k}={escape_option_value(v)}" for k, v in flt.options)
    return f"{flt.name}={opts}"


def render_node(node: GraphNode) -> str:
    ins = "".join(f"[{label}]" for label in node.inputs)
    outs = "".join(f"[{label}]" for label in node.outputs)
    chain = ",".join(render_filter(f) for f in node.filters)
    return f"{ins}{chain}{outs}"


def render_filter_graph(nodes) -> str:
    """Join rendered nodes into one ``-filter_complex`` argument."""
    return ";".join(render_node(n) for n in nodes)


# ── Observers ─────────────────────────────────────────────────────
# Side channels for diagnostics. They never decide the outcome of a run.


class LoggingObserver:
    """Forward every ffmpeg line to the module logger at DEBUG."""

    def on_start(self, cmd: list[str]) -> None:
        logger.debug("ffmpeg: %s", " ".join(cmd))

    def on_line(self, line: str) -> None:
        logger.debug("ffmpeg> %s", line)

    def on_exit(self, returncode: int | None) -> None:
        logger.debug("ffmpeg exited with %s", returncode)


class DiagnosticLog:
    """Write the invocation and every ffmpeg line to a timestamped file.

    Best-effort: the first OSError disables the log for the rest of the run.
    """

    def __init__(self, log_dir: str | Path, run_id: str | None = None):
        stamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
        suffix = f"-{run_id}" if run_id else ""
        self.path = Path(log_dir) / f"ffmpeg-{stamp}{suffix}.log"
        self._fh = None
        self._disabled = False

    def _write(self, text: str) -> None:
        if self._disabled:
            return
        try:
            if self._fh is None:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._fh = open(self.path, "w", encoding="utf-8")
            self._fh.write(text)
        except OSError as e:
            logger.debug("Diagnostic log %s disabled: %s", self.path, e)
            self._disabled = True

    def on_start(self, cmd: list[str]) -> None:
        started = datetime.datetime.now().isoformat(timespec="seconds")
        self._write(f"# started {started}\n# command:\n{subprocess.list2cmdline(cmd)}\n\n")

    def on_line(self, line: str) -> None:
        self._write(line + "\n")

    def on_exit(self, returncode: int | None) -> None:
        self._write(f"\n# exit code: {returncode}\n")
        self.close()

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


def _notify(observers, method: str, *args) -> None:
    for obs in observers:
        try:
            getattr(obs, method)(*args)
        except Exception as e:  # observers must not affect the run
            logger.debug("Observer %r.%s failed: %s", obs, method, e)


# ── Driver ────────────────────────────────────────────────────────


def _codec_params(codec: str, crf: int) -> list[str]:
    """Quality flag for the codec: NVENC takes -cq, x264 takes -crf."""
    if codec.endswith("_nvenc"):
        return ["-cq", str(crf)]
    return ["-crf", str(crf)]


class EncoderDriver:
    """Runs ffmpeg for one compiled graph.

    Args:
        ffmpeg: Binary to run. Defaults to imageio-ffmpeg's bundled build.
        codec: Video codec ("libx264", or "h264_nvenc" for GPU).
        preset: Encoder preset.
        crf: Constant quality value.
        timeout: Seconds before ffmpeg is killed. None waits forever.
        log_dir: Directory for per-run diagnostic logs, or None.
    """

    def __init__(
        self,
        ffmpeg: str | None = None,
        codec: str = "libx264",
        preset: str = "medium",
        crf: int = 20,
        timeout: float | None = None,
        log_dir: str | Path | None = None,
        audio_bitrate: str = "192k",
    ):
        self.ffmpeg = ffmpeg or ffmpeg_exe()
        self.codec = codec
        self.preset = preset
        self.crf = crf
        self.timeout = timeout
        self.log_dir = Path(log_dir) if log_dir else None
        self.audio_bitrate = audio_bitrate

    def output_options(self, graph: CompiledGraph) -> list[str]:
        opts = [
            "-c:v", self.codec,
            "-preset", self.preset,
            *_codec_params(self.codec, self.crf),
            "-pix_fmt", "yuv420p",
            "-r", str(graph.fps),
            "-movflags", "+faststart",
            "-t", fmt_number(graph.duration, 3),
        ]
        if graph.audio_output_label:
            opts += ["-c:a", "aac", "-b:a", self.audio_bitrate]
        else:
            opts += ["-an"]
        return opts

    def build_command(self, graph: CompiledGraph, output_path: str | Path) -> list[str]:
        cmd = [self.ffmpeg, "-hide_banner", "-nostdin", "-y"]
        for inp in graph.inputs:
            cmd += [*inp.options, "-i", str(inp.path)]
        cmd += ["-filter_complex", render_filter_graph(graph.nodes)]
        cmd += ["-map", f"[{graph.output_label}]"]
        if graph.audio_output_label:
            cmd += ["-map", f"[{graph.audio_output_label}]"]
        cmd += self.output_options(graph)
        cmd.append(str(output_path))
        return cmd

    def run(
        self,
        graph: CompiledGraph,
        output_path: str | Path,
        run_id: str | None = None,
        observers: list | None = None,
    ) -> Path:
        """Encode *graph* to *output_path*.

        Returns:
            The output path, which exists and is non-empty.

        Raises:
            EncodeError: ffmpeg could not start, exited non-zero, timed out,
                or left no output. The output path is removed first.
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(graph, output_path)

        observers = [LoggingObserver(), *(observers or [])]
        if self.log_dir is not None:
            observers.append(DiagnosticLog(self.log_dir, run_id))

        tail: collections.deque[str] = collections.deque(maxlen=STDERR_TAIL_LINES)
        _notify(observers, "on_start", cmd)

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as e:
            _notify(observers, "on_exit", None)
            output_path.unlink(missing_ok=True)
            raise EncodeError(
                f"Could not start ffmpeg ({self.ffmpeg}): {e}", exit_info="not started",
            ) from e

        timed_out = threading.Event()

        def _on_timeout():
            timed_out.set()
            proc.kill()

        watchdog = None
        if self.timeout is not None:
            watchdog = threading.Timer(self.timeout, _on_timeout)
            watchdog.daemon = True
            watchdog.start()

        try:
            for line in proc.stderr:
                line = line.rstrip()
                if not line:
                    continue
                tail.append(line)
                _notify(observers, "on_line", line)
            returncode = proc.wait()
        except BaseException:
            # Caller abandoned the run (Ctrl-C, cancellation): no orphans.
            proc.kill()
            proc.wait()
            _notify(observers, "on_exit", proc.returncode)
            output_path.unlink(missing_ok=True)
            raise
        finally:
            if watchdog is not None:
                watchdog.cancel()
            proc.stderr.close()

        _notify(observers, "on_exit", returncode)
        stderr_tail = "\n".join(tail)

        # A kill that lands after ffmpeg already exited cleanly is not a timeout.
        if timed_out.is_set() and returncode != 0:
            exit_info = f"timed out after {fmt_number(self.timeout)}s"
        elif returncode != 0:
            exit_info = f"exit code {returncode}"
        elif not output_path.exists() or output_path.stat().st_size == 0:
            exit_info = "exit code 0, no output written"
        else:
            logger.info("Encoded %s (%.1fs)", output_path, graph.duration)
            return output_path

        output_path.unlink(missing_ok=True)
        last = tail[-1] if tail else "no diagnostic output"
        raise EncodeError(f"ffmpeg failed ({exit_info}): {last}",
                          stderr_tail=stderr_tail, exit_info=exit_info)
