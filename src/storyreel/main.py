"""Subcommand dispatcher for storyreel.

Usage:
    storyreel compile   --manifest scenes.yaml --output story.mp4
    storyreel compile   --manifest scenes.yaml --validate
    storyreel recompile assets/My_Story --settings video.yaml
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="storyreel",
        description="Compile narrated story scenes into a single video.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("compile", help="Compile scenes from a YAML manifest")
    subparsers.add_parser("recompile", help="Rebuild the video of a story assets directory")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "compile":
        from .compile_cli import main as compile_main
        compile_main(remaining)
    elif parsed.command == "recompile":
        from .recompile_cli import main as recompile_main
        recompile_main(remaining)


if __name__ == "__main__":
    main()
