"""Filter graph compiler — Timeline → typed ffmpeg filter graph.

The compiled program is a list of GraphNodes. Each node is a short filter
chain with the stream labels it consumes and produces; nothing here is a
string of ffmpeg syntax. Rendering to text happens in ``encoder``.

Per segment i (labels shown for segment 2, no audio):

    [2:v] canvas    → [s2c]    scale to fit, pad to canvas, fps, yuv420p
    [s2c] color     → [s2g]    eq + colorbalance          (if graded)
    [s2g] pan_zoom  → [s2k]    zoompan (+ rotate)         (if animated)
    [k:v] caption   → [s2o]    caption PNG, alpha fade in/out
    [s2k][s2o] text → [s2t]    overlay, hold window only  (if captioned)

Transitions are a strict left fold over the segments:

    acc = s0*;  for i in 1..N-1:  [acc][si*] xfade → [x{i}];  acc = x{i}

followed by a single ``format`` node producing [vout]. With audio, the
music is input 0, every image input index shifts by one, and an audio
node produces [aout]. Caption PNGs follow the image inputs, one per
captioned segment in segment order.
"""

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .catalog import COLOR_GRADES, PAN_ZOOMS, TRANSITIONS, ColorGrade, PanZoom
from .common import fmt_number
from .errors import GraphCompileError
from .timeline import Segment, Timeline, TimingPolicy

logger = logging.getLogger(__name__)

VIDEO_OUT = "vout"
AUDIO_OUT = "aout"


# ── Node types ────────────────────────────────────────────────────


class NodeKind(enum.Enum):
    CANVAS = "canvas"
    COLOR = "color"
    PAN_ZOOM = "pan_zoom"
    CAPTION = "caption"
    TEXT = "text"
    TRANSITION = "transition"
    OUTPUT = "output"
    AUDIO = "audio"


@dataclass(frozen=True)
class Filter:
    """One ffmpeg filter with ordered, typed options."""

    name: str
    options: tuple[tuple[str, object], ...] = ()

    @classmethod
    def of(cls, name: str, **options) -> "Filter":
        return cls(name, tuple(options.items()))

    def option(self, key: str):
        for k, v in self.options:
            if k == key:
                return v
        raise KeyError(key)


@dataclass(frozen=True)
class GraphNode:
    kind: NodeKind
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]
    filters: tuple[Filter, ...]
    segment: int | None = None

    @property
    def output(self) -> str:
        return self.outputs[0]


@dataclass(frozen=True)
class EncoderInput:
    """One ``-i`` input with the options that precede it."""

    path: Path
    options: tuple[str, ...] = ()


@dataclass(frozen=True)
class TextStyle:
    font_size: int = 48
    color: tuple[int, int, int] = (255, 255, 255)
    fade: float = 0.5
    box_opacity: float = 0.45
    bottom_margin: float = 0.08     # fraction of frame height
    font_file: Path | None = None


@dataclass(frozen=True)
class CompiledGraph:
    nodes: tuple[GraphNode, ...]
    output_label: str
    audio_output_label: str | None
    inputs: tuple[EncoderInput, ...]
    duration: float
    fps: int = 30
    stream_labels: frozenset[str] = field(default_factory=frozenset)

    def nodes_of(self, kind: NodeKind) -> list[GraphNode]:
        return [n for n in self.nodes if n.kind is kind]


# ── Expression helpers ────────────────────────────────────────────


def _lerp(start: float, end: float, var: str, span: float | int) -> str:
    """Linear ramp from start to end as *var* goes 0 → span."""
    if start == end:
        return fmt_number(start)
    return f"{fmt_number(start)}+({fmt_number(end - start)})*{var}/{fmt_number(span)}"


# ── Per-segment nodes ─────────────────────────────────────────────


def _canvas_node(src: str, out: str, seg: Segment, width: int, height: int, fps: int) -> GraphNode:
    return GraphNode(
        kind=NodeKind.CANVAS,
        inputs=(src,),
        outputs=(out,),
        filters=(
            Filter.of("scale", w=width, h=height, force_original_aspect_ratio="decrease"),
            Filter.of("pad", w=width, h=height, x="(ow-iw)/2", y="(oh-ih)/2", color="black"),
            Filter.of("setsar", sar=1),
            Filter.of("fps", fps=fps),
            Filter.of("format", pix_fmts="yuv420p"),
        ),
        segment=seg.index,
    )


def _color_node(src: str, out: str, seg: Segment, grade: ColorGrade) -> GraphNode:
    filters = [Filter.of(
        "eq",
        brightness=grade.brightness,
        contrast=grade.contrast,
        saturation=grade.saturation,
        gamma=grade.gamma,
    )]
    if grade.balance != (0.0, 0.0, 0.0):
        rm, gm, bm = grade.balance
        filters.append(Filter.of("colorbalance", rm=rm, gm=gm, bm=bm))
    return GraphNode(NodeKind.COLOR, (src,), (out,), tuple(filters), segment=seg.index)


def _pan_zoom_node(src: str, out: str, seg: Segment, effect: PanZoom,
                   width: int, height: int, fps: int) -> GraphNode:
    # The looped image input yields one frame per output frame (d=1), so
    # the output frame counter `on` runs 0 → frames across the segment.
    frames = max(1, round(seg.clip_duration * fps))
    z0, z1 = effect.zoom
    x0, x1 = effect.x
    y0, y1 = effect.y
    filters = [Filter.of(
        "zoompan",
        z=_lerp(z0, z1, "on", frames),
        x=f"(iw-iw/zoom)*({_lerp(x0, x1, 'on', frames)})",
        y=f"(ih-ih/zoom)*({_lerp(y0, y1, 'on', frames)})",
        d=1,
        s=f"{width}x{height}",
        fps=fps,
    )]
    if effect.rotates:
        r0, r1 = effect.rotate
        filters.append(Filter.of(
            "rotate",
            a=f"({_lerp(r0, r1, 't', seg.clip_duration)})*PI/180",
            c="black",
        ))
    return GraphNode(NodeKind.PAN_ZOOM, (src,), (out,), tuple(filters), segment=seg.index)


def _caption_nodes(src: str, caption: str, out: str, seg: Segment,
                   style: TextStyle) -> tuple[GraphNode, GraphNode]:
    """Fade the caption stream in and out, then overlay it during the hold window."""
    a, b = seg.hold_window
    fade = min(style.fade, (b - a) / 2)
    faded = f"s{seg.index}o"
    filters = [Filter.of("format", pix_fmts="rgba")]
    if fade > 0:
        filters.append(Filter.of("fade", t="in", st=a, d=fade, alpha=1))
        filters.append(Filter.of("fade", t="out", st=b - fade, d=fade, alpha=1))
    caption_node = GraphNode(NodeKind.CAPTION, (caption,), (faded,), tuple(filters), segment=seg.index)
    text_node = GraphNode(
        NodeKind.TEXT,
        (src, faded),
        (out,),
        (
            Filter.of("overlay", x=0, y=0,
                      enable=f"between(t,{fmt_number(a)},{fmt_number(b)})"),
            Filter.of("format", pix_fmts="yuv420p"),
        ),
        segment=seg.index,
    )
    return caption_node, text_node


# ── Transitions and sinks ─────────────────────────────────────────


def transition_offset(timeline: Timeline, seg: Segment) -> float:
    """Output time at which the transition into *seg* begins.

    Additive: segment i is fully on screen at start_i, so its fade-in
    begins T earlier. Overlap: start_i already is the fade-in start.
    """
    if timeline.policy is TimingPolicy.ADDITIVE:
        return seg.start - timeline.transition_duration
    return seg.start


def _transition_node(acc: str, src: str, out: str, timeline: Timeline, seg: Segment,
                     style_name: str) -> GraphNode:
    t = timeline.transition_duration
    if t <= 0:
        flt = Filter.of("concat", n=2, v=1, a=0)
    else:
        flt = Filter.of(
            "xfade",
            transition=TRANSITIONS[style_name].xfade,
            duration=t,
            offset=transition_offset(timeline, seg),
        )
    return GraphNode(NodeKind.TRANSITION, (acc, src), (out,), (flt,), segment=seg.index)


def _audio_node(src: str, timeline: Timeline) -> GraphNode:
    track = timeline.audio
    filters = [
        Filter.of("atrim", duration=track.duration),
        Filter.of("asetpts", expr="PTS-STARTPTS"),
    ]
    if track.fade_in > 0:
        filters.append(Filter.of("afade", t="in", st=0, d=track.fade_in))
    if track.fade_out > 0:
        filters.append(Filter.of("afade", t="out", st=track.fade_out_start, d=track.fade_out))
    return GraphNode(NodeKind.AUDIO, (src,), (AUDIO_OUT,), tuple(filters))


# ── Compiler ──────────────────────────────────────────────────────


def _lookup(table, name: str, family: str, seg: Segment):
    try:
        return table[name]
    except KeyError:
        raise GraphCompileError(
            f"Segment {seg.index}: unknown {family} '{name}'"
        ) from None


def _image_input(path: Path, seg: Segment, fps: int) -> EncoderInput:
    return EncoderInput(path, (
        "-loop", "1",
        "-framerate", str(fps),
        "-t", fmt_number(seg.clip_duration, 3),
    ))


def build_inputs(
    timeline: Timeline,
    fps: int,
    captions: list[tuple[Segment, Path]] | None = None,
) -> tuple[EncoderInput, ...]:
    """Ordered encoder inputs matching the compiled graph's stream indices.

    Audio (if any) first, then one looped input per image, then one per
    caption image in the order given.
    """
    inputs = []
    if timeline.audio is not None:
        opts = ("-stream_loop", "-1") if timeline.audio.loop else ()
        inputs.append(EncoderInput(timeline.audio.path, opts))
    for seg in timeline.segments:
        inputs.append(_image_input(seg.path, seg, fps))
    for seg, path in captions or ():
        inputs.append(_image_input(path, seg, fps))
    return tuple(inputs)


def _captioned(timeline: Timeline, captions: dict[int, Path]) -> list[tuple[Segment, Path]]:
    """Segments that get a caption overlay, paired with their caption image."""
    pairs = []
    for seg in timeline.segments:
        if not seg.text:
            continue
        a, b = seg.hold_window
        if b - a <= 0:
            logger.debug("Segment %d has no hold window; dropping its text overlay", seg.index)
            continue
        if seg.index not in captions:
            raise GraphCompileError(f"Segment {seg.index} has text but no caption image")
        pairs.append((seg, Path(captions[seg.index])))
    return pairs


def compile_timeline(
    timeline: Timeline,
    *,
    width: int = 1920,
    height: int = 1080,
    fps: int = 30,
    text_style: TextStyle | None = None,
    captions: dict[int, Path] | None = None,
) -> CompiledGraph:
    """Compile a Timeline into a CompiledGraph.

    *captions* maps segment index to the caption image rendered for it
    (see ``captions.render_captions``); every segment with text and a
    non-empty hold window needs one.

    Raises:
        GraphCompileError: Empty or inconsistent timeline, unknown catalog
            name, missing caption image, or a graph that fails
            ``validate_dag``.
    """
    if not timeline.segments:
        raise GraphCompileError("Timeline has no segments")
    timeline.check()

    text_style = text_style or TextStyle()
    shift = 1 if timeline.audio is not None else 0
    captioned = _captioned(timeline, captions or {})
    caption_labels = {
        seg.index: f"{shift + len(timeline.segments) + j}:v"
        for j, (seg, _) in enumerate(captioned)
    }
    nodes: list[GraphNode] = []
    seg_labels: list[str] = []

    for seg in timeline.segments:
        i = seg.index
        label = f"{i + shift}:v"

        canvas = _canvas_node(label, f"s{i}c", seg, width, height, fps)
        nodes.append(canvas)
        label = canvas.output

        if seg.color_grade is not None:
            grade = _lookup(COLOR_GRADES, seg.color_grade, "color grade", seg)
            if not grade.is_identity:
                node = _color_node(label, f"s{i}g", seg, grade)
                nodes.append(node)
                label = node.output

        if seg.pan_zoom is not None:
            effect = _lookup(PAN_ZOOMS, seg.pan_zoom, "Ken Burns effect", seg)
            node = _pan_zoom_node(label, f"s{i}k", seg, effect, width, height, fps)
            nodes.append(node)
            label = node.output

        if i in caption_labels:
            caption_node, text_node = _caption_nodes(
                label, caption_labels[i], f"s{i}t", seg, text_style,
            )
            nodes.extend((caption_node, text_node))
            label = text_node.output

        seg_labels.append(label)

    # Left fold: the accumulator is everything composed so far.
    acc = seg_labels[0]
    for prev, seg, label in zip(timeline.segments, timeline.segments[1:], seg_labels[1:]):
        if prev.transition is None:
            raise GraphCompileError(f"Segment {prev.index} has no transition into segment {seg.index}")
        _lookup(TRANSITIONS, prev.transition, "transition", prev)
        node = _transition_node(acc, label, f"x{seg.index}", timeline, seg, prev.transition)
        nodes.append(node)
        acc = node.output

    nodes.append(GraphNode(
        NodeKind.OUTPUT, (acc,), (VIDEO_OUT,), (Filter.of("format", pix_fmts="yuv420p"),),
    ))

    audio_label = None
    if timeline.audio is not None:
        nodes.append(_audio_node("0:a", timeline))
        audio_label = AUDIO_OUT

    inputs = build_inputs(timeline, fps, captioned)
    stream_labels = frozenset(
        f"{i}:v" for i in range(shift, len(inputs))
    ) | (frozenset({"0:a"}) if shift else frozenset())

    validate_dag(nodes, stream_labels)

    return CompiledGraph(
        nodes=tuple(nodes),
        output_label=VIDEO_OUT,
        audio_output_label=audio_label,
        inputs=inputs,
        duration=timeline.total_runtime,
        fps=fps,
        stream_labels=stream_labels,
    )


def validate_dag(nodes: list[GraphNode], stream_labels=frozenset()) -> None:
    """Check that the node list is a valid, forward-only DAG.

    Every consumed label must be an input stream or the output of a
    strictly earlier node; produced labels are unique and each is consumed
    at most once.

    Raises:
        GraphCompileError: On the first violation found.
    """
    produced: set[str] = set()
    consumed: set[str] = set()
    for pos, node in enumerate(nodes):
        for label in node.inputs:
            if label in stream_labels:
                continue
            if label not in produced:
                raise GraphCompileError(
                    f"Node {pos} ({node.kind.value}) consumes [{label}] before it is produced"
                )
            if label in consumed:
                raise GraphCompileError(f"Label [{label}] consumed twice")
            consumed.add(label)
        for label in node.outputs:
            if label in produced or label in stream_labels:
                raise GraphCompileError(f"Label [{label}] produced twice")
            produced.add(label)
