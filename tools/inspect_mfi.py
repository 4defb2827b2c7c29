#!/usr/bin/env python3
"""Human-readable MFi event dump.

Prints the container header, the retained header sub-chunks and one line
per decoded track event with its absolute tick.  Decoding stops at the
first malformed track; the error is printed after the events read so far.
"""

from __future__ import annotations

import argparse
from pathlib import Path
import sys
from typing import Iterator, List

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from mfi.container import CONTENT_MELODY, CONTENT_SONG, MfiFile  # noqa: E402
from mfi.decoder import read_event  # noqa: E402
from mfi.errors import MfiError  # noqa: E402
from mfi.events import ControlEvent, NoteEvent  # noqa: E402
from mfi.structs import ByteReader, fourcc_text  # noqa: E402


CONTENT_TYPE_NAMES = {
    CONTENT_MELODY: "melody",
    CONTENT_SONG: "song",
}

CONTROL_NAMES = {
    0xB0: "master volume",
    0xDF: "end of track",
    0xE0: "program",
    0xE1: "bank",
    0xE2: "volume",
    0xE3: "pan",
    0xE4: "pitch bend",
    0xEA: "modulation",
}


def _control_name(event: ControlEvent) -> str:
    if event.event_class != 3:
        return "?"
    if event.event_id & 0xF0 == 0xC0:
        return f"tempo (timebase {event.event_id & 0x0F})"
    return CONTROL_NAMES.get(event.event_id, "?")


def iter_event_lines(payload: bytes, note_mode) -> Iterator[str]:
    cursor = ByteReader(payload)
    now = 0
    while not cursor.at_end():
        offset = cursor.pos
        event = read_event(cursor, note_mode)
        now += event.delta
        if isinstance(event, NoteEvent):
            text = (
                f"note ch{event.channel} key 0x{event.key:02X} gate {event.gate} "
                f"vel {event.velocity} oct {event.octave_shift}"
            )
        elif isinstance(event, ControlEvent):
            text = (
                f"control class {event.event_class:X} 0x{event.event_id:02X} "
                f"data 0x{event.data:02X}  {_control_name(event)}"
            )
        else:
            text = (
                f"extended class {event.event_class:X} 0x{event.event_id:02X} "
                f"size {len(event.payload)}"
            )
        yield f"  0x{offset:04X}  {now:>8}  {text}"
        if isinstance(event, ControlEvent) and event.is_end_of_track():
            return


def render(mfi: MfiFile) -> List[str]:
    header = mfi.header
    lines = [
        f"content: {CONTENT_TYPE_NAMES.get(header.content_type, '?')} "
        f"(0x{header.content_type:02X}/0x{header.content_subtype:02X})",
        f"note encoding: {header.note_mode.name.lower()}",
        f"tracks: {len(mfi.tracks)} (declared {header.declared_tracks})",
        f"adpcm chunks: {header.adpcm_chunks}",
    ]
    for tag, payload in header.subchunks.items():
        lines.append(f"sub-chunk `{fourcc_text(tag)}`: {payload[:32].hex()}")
    for index, payload in enumerate(mfi.tracks):
        lines.append(f"track {index}: {len(payload)} bytes")
        try:
            lines.extend(iter_event_lines(payload, header.note_mode))
        except MfiError as exc:
            lines.append(f"  !! {exc}")
            break
    return lines


def main() -> int:
    parser = argparse.ArgumentParser(description="Dump the events of an MFi file")
    parser.add_argument("input", type=Path, help="Path to the .mld file")
    args = parser.parse_args()

    try:
        mfi = MfiFile.from_bytes(args.input.read_bytes())
    except MfiError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print("\n".join(render(mfi)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
