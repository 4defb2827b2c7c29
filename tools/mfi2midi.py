#!/usr/bin/env python3
"""Convert an MFi (.mld) ring tone into a Standard MIDI File.

    python tools/mfi2midi.py song.mld song.mid
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from mfi.convert import convert_file  # noqa: E402
from mfi.errors import MfiError  # noqa: E402


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        description="Convert an MFi file into a Standard MIDI File",
    )
    parser.add_argument("input", type=Path, help="Path to the .mld input")
    parser.add_argument("output", type=Path, help="Path to the .mid output")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    try:
        song = convert_file(args.input, args.output)
    except (MfiError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    events = sum(len(track) for track in song.tracks)
    print(f"Wrote {args.output}")
    print(f"  tracks={len(song.tracks)} events={events} notes={song.note_mode.name.lower()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
