"""CLI for slideshow composition.

Reads a YAML manifest, validates image paths, and composes the images into
one mp4 with transitions, Ken Burns motion, color grades, captions and an
optional music bed.

Usage:
    # Compose
    slidecompose compose --manifest slideshow.yaml --output teaser.mp4

    # Reproducible effect selection
    slidecompose compose --manifest slideshow.yaml --output teaser.mp4 --seed 7

    # Print the timeline and ffmpeg filter graph without encoding
    slidecompose compose --manifest slideshow.yaml --dry-run

    # Validate only (no rendering)
    slidecompose compose --manifest slideshow.yaml --validate
"""

import argparse
import logging
import sys
import tempfile
import time

from .captions import render_captions
from .catalog import RandomPicker
from .compose import Composer
from .encoder import EncoderDriver, render_filter_graph
from .errors import ComposeError
from .graph import compile_timeline
from .lifecycle import ArtifactLifecycle
from .manifest import load_manifest, validate_manifest_paths
from .timeline import build


def _print_timeline(tl) -> None:
    print(f"Timeline ({tl.policy.value}): {len(tl)} images, {tl.total_runtime:.1f}s total")
    for seg in tl.segments:
        effects = ", ".join(
            e for e in (seg.pan_zoom, seg.color_grade) if e
        ) or "no effects"
        into = f" -> {seg.transition}" if seg.transition else ""
        caption = f"  \"{seg.text}\"" if seg.text else ""
        print(f"  [{seg.index}] {seg.start:6.2f}s  {seg.path.name}  ({effects}){into}{caption}")
    if tl.audio is not None:
        loop = ", looped" if tl.audio.loop else ""
        print(f"  audio: {tl.audio.path.name}{loop}")


def dry_run(config: dict, seed: int | None) -> None:
    """Build and print the timeline and filter graph from the raw images."""
    from .audio import select_audio

    s = config["settings"]
    picker = RandomPicker(seed if seed is not None else s.seed)
    audio = select_audio(config["audio_dir"], picker)
    tl = build(
        [img["path"] for img in config["images"]],
        s.image_duration, s.transition, audio,
        policy=s.timing, picker=picker,
        transition_style=s.transition_style, pan_zoom=s.ken_burns,
        color_grade=s.color_grade,
        texts=[img["text"] for img in config["images"]],
        audio_fade_in=s.audio_fade_in, audio_fade_out=s.audio_fade_out,
    )
    _print_timeline(tl)
    with tempfile.TemporaryDirectory() as tmp:
        with ArtifactLifecycle(tmp).begin() as scope:
            style = s.text_style()
            captions = render_captions(tl, scope, (s.width, s.height), style)
            graph = compile_timeline(tl, width=s.width, height=s.height, fps=s.fps,
                                     text_style=style, captions=captions)
    print("\nFilter graph:")
    print(render_filter_graph(graph.nodes).replace(";", ";\n"))
    cmd = EncoderDriver(ffmpeg="ffmpeg", codec=s.codec, preset=s.preset, crf=s.crf) \
        .build_command(graph, "OUTPUT.mp4")
    print(f"\n{len(graph.inputs)} inputs, output options: "
          f"{' '.join(cmd[cmd.index('-c:v'):-1])}")


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Compose a YAML slideshow manifest into an mp4.",
    )
    parser.add_argument(
        "--manifest", required=True,
        help="Path to YAML manifest file",
    )
    parser.add_argument(
        "--output",
        help="Output mp4 path or directory (overrides manifest 'output')",
    )
    parser.add_argument(
        "--seed", type=int, default=None,
        help="Seed for random effect/track selection (overrides manifest)",
    )
    parser.add_argument(
        "--work-dir", default=None,
        help="Scratch directory for intermediate files",
    )
    parser.add_argument(
        "--workers", type=int, default=4,
        help="Parallel image preprocessing workers (default: 4)",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Print the timeline and filter graph, don't encode",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only — check paths, don't render",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Show ffmpeg output and debug logging",
    )
    args = parser.parse_args(args)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s  %(levelname)-5s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    config = load_manifest(args.manifest)
    validate_manifest_paths(config)

    if args.validate:
        print(f"Manifest valid: {len(config['images'])} images")
        for i, img in enumerate(config["images"]):
            caption = f" — {img['text']}" if img["text"] else ""
            print(f"  {i}: {img['path']}{caption}")
        print("All paths verified.")
        return

    if args.dry_run:
        dry_run(config, args.seed)
        return

    output = args.output or config["output"]
    if not output:
        parser.error("--output is required (unless the manifest sets 'output')")

    composer = Composer(
        config["settings"],
        work_dir=args.work_dir or config["work_dir"],
        log_dir=config["log_dir"],
        max_preprocess_workers=args.workers,
    )

    print(f"Composing {len(config['images'])} images...")
    t0 = time.monotonic()
    try:
        result = composer.compose(
            [img["path"] for img in config["images"]],
            output,
            texts=[img["text"] for img in config["images"]],
            audio_dir=config["audio_dir"],
            seed=args.seed,
        )
    except ComposeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    _print_timeline(result.timeline)
    elapsed = time.monotonic() - t0
    print(f"\nDone: {result.output_path} ({result.duration:.1f}s video, {elapsed:.1f}s wall)")


if __name__ == "__main__":
    main()
