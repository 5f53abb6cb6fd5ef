"""Subcommand dispatcher for slidecompose.

Usage:
    slidecompose compose  --manifest ... --output ...
    slidecompose effects
"""

import argparse
import sys


def list_effects() -> None:
    from .catalog import describe_catalog

    for family, names in describe_catalog().items():
        print(f"{family}:")
        for name in names:
            print(f"  {name}")


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="slidecompose",
        description="Compose still images into a video with transitions and effects.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("compose", help="Compose images from a YAML manifest")
    subparsers.add_parser("effects", help="List transitions, Ken Burns effects and color grades")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "compose":
        from .cli import main as compose_main
        compose_main(remaining)
    elif parsed.command == "effects":
        list_effects()


if __name__ == "__main__":
    main()
