"""Default child launcher.

Usage:
    python -m exercise_runner.launcher --env-file=PATH ENTRY [ARGS...]

Loads PATH into the environment (existing variables win), then runs ENTRY
as __main__ with its own directory first on sys.path.
"""

from __future__ import annotations

import argparse
import runpy
import sys
from pathlib import Path

from dotenv import load_dotenv

__all__ = ["main", "build_parser"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="exercise_runner.launcher",
        description="Run an exercise entry file with an env file loaded",
    )
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("entry", type=Path, help="Entry script to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the entry script")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Launcher entry point."""
    args = build_parser().parse_args(argv)

    if args.env_file is not None:
        if args.env_file.is_file():
            load_dotenv(dotenv_path=args.env_file, override=False)
        else:
            print(f"Env file not found: {args.env_file}", file=sys.stderr)

    entry = args.entry.resolve()
    sys.argv = [str(entry), *args.args]
    sys.path.insert(0, str(entry.parent))

    runpy.run_path(str(entry), run_name="__main__")


if __name__ == "__main__":
    main()
