"""Tests for the filter graph compiler.

These inspect the typed graph (nodes, labels, filter options) directly;
nothing here renders or runs ffmpeg.
"""

from pathlib import Path

import pytest

from slidecompose.audio import AudioCandidate
from slidecompose.catalog import CyclePicker, FixedPicker
from slidecompose.errors import GraphCompileError
from slidecompose.graph import (
    AUDIO_OUT,
    VIDEO_OUT,
    Filter,
    GraphNode,
    NodeKind,
    TextStyle,
    compile_timeline,
    transition_offset,
    validate_dag,
)
from slidecompose.timeline import Timeline, TimingPolicy, build

def _captions(*indices):
    return {i: Path(f"/w/caption-{i:03d}.png") for i in indices}


def _timeline(n=3, d=3.0, t=2.0, audio=None, **kwargs):
    kwargs.setdefault("picker", FixedPicker("crossfade"))
    kwargs.setdefault("transition_style", "crossfade")
    kwargs.setdefault("pan_zoom", "none")
    kwargs.setdefault("color_grade", "none")
    images = [(f"/w/resized-{i:03d}.png", (320, 240)) for i in range(n)]
    return build(images, d, t, audio, **kwargs)


def _music(duration=60.0):
    return AudioCandidate(Path("/music/song.mp3"), duration=duration)


class TestStructure:
    @pytest.mark.parametrize("n", [1, 2, 3, 7])
    def test_node_counts(self, n):
        graph = compile_timeline(_timeline(n))
        assert len(graph.nodes_of(NodeKind.CANVAS)) == n
        assert len(graph.nodes_of(NodeKind.TRANSITION)) == n - 1
        assert len(graph.nodes_of(NodeKind.OUTPUT)) == 1

    def test_transitions_fold_left(self):
        graph = compile_timeline(_timeline(4))
        transitions = graph.nodes_of(NodeKind.TRANSITION)
        assert [n.output for n in transitions] == ["x1", "x2", "x3"]
        assert transitions[0].inputs == ("s0c", "s1c")
        assert transitions[1].inputs == ("x1", "s2c")
        assert transitions[2].inputs == ("x2", "s3c")
        assert graph.nodes_of(NodeKind.OUTPUT)[0].inputs == ("x3",)

    def test_single_image_goes_straight_to_output(self):
        graph = compile_timeline(_timeline(1))
        assert graph.nodes_of(NodeKind.OUTPUT)[0].inputs == ("s0c",)

    def test_sinks(self):
        graph = compile_timeline(_timeline(2))
        assert graph.output_label == VIDEO_OUT
        assert graph.audio_output_label is None
        assert graph.nodes[-1].outputs == (VIDEO_OUT,)

    def test_graph_is_a_valid_dag(self):
        tl = _timeline(5, pan_zoom="random", color_grade="random",
                       transition_style="random", picker=CyclePicker(),
                       texts=["one", None, "three"])
        graph = compile_timeline(tl, captions=_captions(0, 2))
        validate_dag(list(graph.nodes), graph.stream_labels)

    def test_canvas_fits_and_pads(self):
        graph = compile_timeline(_timeline(1), width=640, height=360, fps=25)
        canvas = graph.nodes_of(NodeKind.CANVAS)[0]
        scale, pad, _, fps, fmt = canvas.filters
        assert scale.option("w") == 640 and scale.option("h") == 360
        assert scale.option("force_original_aspect_ratio") == "decrease"
        assert pad.name == "pad"
        assert fps.option("fps") == 25
        assert fmt.option("pix_fmts") == "yuv420p"

    def test_duration_and_fps_carried(self):
        graph = compile_timeline(_timeline(3), fps=24)
        assert graph.duration == 13
        assert graph.fps == 24


class TestInputs:
    def test_image_inputs_without_audio(self):
        graph = compile_timeline(_timeline(3))
        canvases = graph.nodes_of(NodeKind.CANVAS)
        assert [c.inputs[0] for c in canvases] == ["0:v", "1:v", "2:v"]
        assert len(graph.inputs) == 3

    def test_audio_shifts_image_indices(self):
        graph = compile_timeline(_timeline(3, audio=_music()))
        canvases = graph.nodes_of(NodeKind.CANVAS)
        assert [c.inputs[0] for c in canvases] == ["1:v", "2:v", "3:v"]
        assert graph.inputs[0].path == Path("/music/song.mp3")
        assert graph.inputs[1].path == Path("/w/resized-000.png")

    def test_image_input_options(self):
        graph = compile_timeline(_timeline(3), fps=10)
        first, middle, _ = graph.inputs
        assert first.options == ("-loop", "1", "-framerate", "10", "-t", "5")
        assert middle.options[-1] == "7"

    def test_long_track_is_not_looped(self):
        graph = compile_timeline(_timeline(2, audio=_music(60.0)))
        assert graph.inputs[0].options == ()

    def test_short_track_is_looped(self):
        graph = compile_timeline(_timeline(2, audio=_music(1.0)))
        assert graph.inputs[0].options == ("-stream_loop", "-1")


class TestTransitions:
    def test_additive_xfade_offsets(self):
        tl = _timeline(3, d=3, t=2)
        graph = compile_timeline(tl)
        xfades = [n.filters[0] for n in graph.nodes_of(NodeKind.TRANSITION)]
        assert [f.name for f in xfades] == ["xfade", "xfade"]
        assert [f.option("offset") for f in xfades] == [3, 8]
        assert all(f.option("duration") == 2 for f in xfades)
        assert all(f.option("transition") == "fade" for f in xfades)

    def test_overlap_xfade_offsets(self):
        tl = _timeline(3, d=3, t=1, policy=TimingPolicy.OVERLAP)
        graph = compile_timeline(tl)
        offsets = [n.filters[0].option("offset") for n in graph.nodes_of(NodeKind.TRANSITION)]
        assert offsets == [2, 4]
        assert offsets == [transition_offset(tl, s) for s in tl.segments[1:]]

    def test_fold_length_matches_runtime(self):
        # Each xfade yields offset + duration of the incoming stream.
        tl = _timeline(4, d=2.5, t=0.5)
        length = tl.segments[0].clip_duration
        for seg in tl.segments[1:]:
            offset = transition_offset(tl, seg)
            assert offset + tl.transition_duration <= length + 1e-9
            length = offset + seg.clip_duration
        assert length == pytest.approx(tl.total_runtime)

    def test_zero_transition_is_concat(self):
        graph = compile_timeline(_timeline(3, t=0))
        concat = [n.filters[0] for n in graph.nodes_of(NodeKind.TRANSITION)]
        assert [f.name for f in concat] == ["concat", "concat"]
        assert concat[0].option("n") == 2

    def test_transition_style_from_previous_segment(self):
        tl = _timeline(3, transition_style="wipe_left")
        graph = compile_timeline(tl)
        styles = [n.filters[0].option("transition") for n in graph.nodes_of(NodeKind.TRANSITION)]
        assert styles == ["wipeleft", "wipeleft"]


class TestEffects:
    def test_ken_burns_spans_segment_frames(self):
        tl = _timeline(2, d=3, t=2, pan_zoom="zoom_in")
        graph = compile_timeline(tl, width=320, height=240, fps=10)
        node = graph.nodes_of(NodeKind.PAN_ZOOM)[0]
        zoompan = node.filters[0]
        assert zoompan.name == "zoompan"
        assert zoompan.option("d") == 1
        assert zoompan.option("s") == "320x240"
        assert zoompan.option("z") == "1+(0.2)*on/50"
        assert node.inputs == ("s0c",) and node.output == "s0k"

    def test_rotation_adds_rotate_filter(self):
        graph = compile_timeline(_timeline(1, pan_zoom="rotate_cw"))
        names = [f.name for f in graph.nodes_of(NodeKind.PAN_ZOOM)[0].filters]
        assert names == ["zoompan", "rotate"]

    def test_color_grade_node(self):
        graph = compile_timeline(_timeline(1, color_grade="warm"))
        node = graph.nodes_of(NodeKind.COLOR)[0]
        assert [f.name for f in node.filters] == ["eq", "colorbalance"]
        assert node.filters[0].option("saturation") == 1.1

    def test_identity_grade_is_skipped(self):
        graph = compile_timeline(_timeline(2, color_grade="natural"))
        assert graph.nodes_of(NodeKind.COLOR) == []

    def test_chain_order(self):
        tl = _timeline(1, color_grade="mono", pan_zoom="pan_left", texts=["Hi"])
        graph = compile_timeline(tl, captions=_captions(0))
        chain = [n for n in graph.nodes if n.segment == 0]
        assert [n.kind for n in chain] == [
            NodeKind.CANVAS, NodeKind.COLOR, NodeKind.PAN_ZOOM, NodeKind.CAPTION, NodeKind.TEXT,
        ]
        assert [n.output for n in chain] == ["s0c", "s0g", "s0k", "s0o", "s0t"]


class TestText:
    def test_caption_confined_to_hold_window(self):
        tl = _timeline(3, d=3, t=2, texts=[None, "Middle"])
        graph = compile_timeline(tl, captions=_captions(1))
        (node,) = graph.nodes_of(NodeKind.TEXT)
        overlay = node.filters[0]
        assert node.segment == 1
        assert node.inputs == ("s1c", "s1o")
        assert overlay.name == "overlay"
        assert overlay.option("enable") == "between(t,2,5)"
        assert node.filters[-1].option("pix_fmts") == "yuv420p"

    def test_caption_is_an_extra_looped_input(self):
        tl = _timeline(3, d=3, t=2, texts=[None, "Middle"])
        graph = compile_timeline(tl, captions=_captions(1))
        (node,) = graph.nodes_of(NodeKind.CAPTION)
        assert node.inputs == ("3:v",)
        caption = graph.inputs[3]
        assert caption.path == Path("/w/caption-001.png")
        assert caption.options == ("-loop", "1", "-framerate", "30", "-t", "7")

    def test_caption_index_follows_audio_and_images(self):
        tl = _timeline(3, audio=_music(), texts=["a", None, "c"])
        graph = compile_timeline(tl, captions=_captions(0, 2))
        assert [n.inputs for n in graph.nodes_of(NodeKind.CAPTION)] == [("4:v",), ("5:v",)]
        assert len(graph.inputs) == 6
        assert "5:v" in graph.stream_labels

    def test_caption_fades_with_alpha(self):
        tl = _timeline(3, d=3, t=2, texts=[None, "Middle"])
        graph = compile_timeline(tl, text_style=TextStyle(fade=0.5), captions=_captions(1))
        fmt, fade_in, fade_out = graph.nodes_of(NodeKind.CAPTION)[0].filters
        assert fmt.option("pix_fmts") == "rgba"
        assert fade_in.options == (("t", "in"), ("st", 2.0), ("d", 0.5), ("alpha", 1))
        assert fade_out.options == (("t", "out"), ("st", 4.5), ("d", 0.5), ("alpha", 1))

    def test_text_dropped_without_hold_window(self):
        # Overlap with T close to D/2: the middle segment is always in a
        # transition.
        tl = _timeline(3, d=2, t=1, policy="overlap", texts=[None, "gone"])
        graph = compile_timeline(tl)
        assert graph.nodes_of(NodeKind.TEXT) == []
        assert graph.nodes_of(NodeKind.CAPTION) == []
        assert len(graph.inputs) == 3

    def test_fade_never_exceeds_half_window(self):
        tl = _timeline(1, d=0.4, t=0, texts=["quick"])
        graph = compile_timeline(tl, text_style=TextStyle(fade=1.0), captions=_captions(0))
        _, fade_in, fade_out = graph.nodes_of(NodeKind.CAPTION)[0].filters
        assert fade_in.option("d") == pytest.approx(0.2)
        assert fade_out.option("st") == pytest.approx(0.2)

    def test_zero_fade_has_no_fade_filters(self):
        tl = _timeline(1, texts=["still"])
        graph = compile_timeline(tl, text_style=TextStyle(fade=0), captions=_captions(0))
        (node,) = graph.nodes_of(NodeKind.CAPTION)
        assert [f.name for f in node.filters] == ["format"]

    def test_missing_caption_image(self):
        tl = _timeline(2, texts=["one", "two"])
        with pytest.raises(GraphCompileError, match="Segment 1 has text but no caption image"):
            compile_timeline(tl, captions=_captions(0))


class TestAudio:
    def test_audio_sink(self):
        graph = compile_timeline(_timeline(3, audio=_music()))
        (node,) = graph.nodes_of(NodeKind.AUDIO)
        assert node.inputs == ("0:a",)
        assert node.outputs == (AUDIO_OUT,)
        assert graph.audio_output_label == AUDIO_OUT

    def test_audio_trimmed_and_faded(self):
        graph = compile_timeline(_timeline(3, audio=_music()))
        filters = graph.nodes_of(NodeKind.AUDIO)[0].filters
        assert filters[0].name == "atrim"
        assert filters[0].option("duration") == 13
        fades = [f for f in filters if f.name == "afade"]
        assert [f.option("t") for f in fades] == ["in", "out"]
        assert fades[1].option("st") == 11

    def test_no_audio_node_without_track(self):
        graph = compile_timeline(_timeline(3))
        assert graph.nodes_of(NodeKind.AUDIO) == []


class TestErrors:
    def test_empty_timeline(self):
        tl = Timeline(segments=(), transition_duration=1, policy=TimingPolicy.ADDITIVE,
                      total_runtime=0)
        with pytest.raises(GraphCompileError, match="no segments"):
            compile_timeline(tl)

    def test_unknown_effect_name(self):
        import dataclasses

        tl = _timeline(2)
        bad = dataclasses.replace(tl.segments[0], pan_zoom="wobble")
        tl = dataclasses.replace(tl, segments=(bad, tl.segments[1]))
        with pytest.raises(GraphCompileError, match="wobble") as exc_info:
            compile_timeline(tl)
        assert exc_info.value.stage == "compile"

    def test_missing_transition(self):
        import dataclasses

        tl = _timeline(2)
        bad = dataclasses.replace(tl.segments[0], transition=None)
        tl = dataclasses.replace(tl, segments=(bad, tl.segments[1]))
        with pytest.raises(GraphCompileError, match="no transition"):
            compile_timeline(tl)

    def test_runtime_disagreeing_with_segments(self):
        import dataclasses

        tl = dataclasses.replace(_timeline(3), total_runtime=14.0)
        with pytest.raises(GraphCompileError, match="total runtime is 14s"):
            compile_timeline(tl)

    def test_segment_stream_gap(self):
        import dataclasses

        tl = _timeline(2)
        late = dataclasses.replace(tl.segments[1], start=tl.segments[1].start + 1)
        tl = dataclasses.replace(tl, segments=(tl.segments[0], late))
        with pytest.raises(GraphCompileError, match="does not meet segment 0"):
            compile_timeline(tl)

    def test_audio_span_disagreeing_with_runtime(self):
        import dataclasses

        tl = _timeline(2, audio=_music())
        short = dataclasses.replace(tl.audio, duration=tl.total_runtime - 1)
        with pytest.raises(GraphCompileError, match="Audio span"):
            compile_timeline(dataclasses.replace(tl, audio=short))


class TestValidateDag:
    def _node(self, ins, outs):
        return GraphNode(NodeKind.CANVAS, tuple(ins), tuple(outs), (Filter("null"),))

    def test_forward_reference(self):
        nodes = [self._node(["a"], ["b"]), self._node(["0:v"], ["a"])]
        with pytest.raises(GraphCompileError, match="before it is produced"):
            validate_dag(nodes, frozenset({"0:v"}))

    def test_double_consumption(self):
        nodes = [
            self._node(["0:v"], ["a"]),
            self._node(["a"], ["b"]),
            self._node(["a"], ["c"]),
        ]
        with pytest.raises(GraphCompileError, match="consumed twice"):
            validate_dag(nodes, frozenset({"0:v"}))

    def test_double_production(self):
        nodes = [self._node(["0:v"], ["a"]), self._node(["1:v"], ["a"])]
        with pytest.raises(GraphCompileError, match="produced twice"):
            validate_dag(nodes, frozenset({"0:v", "1:v"}))

    def test_self_reference(self):
        with pytest.raises(GraphCompileError):
            validate_dag([self._node(["a"], ["a"])], frozenset())
