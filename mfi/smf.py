"""Standard MIDI File framing.

  MThd [len=6 u32 BE] [format u16] [track count u16] [division u16]
  MTrk [len u32 BE] [delta VLQ + event]*

Chunk lengths exclude the 8-byte tag + length prefix.  Track chunks are
written with a placeholder length that is patched once the body is done.
"""

from __future__ import annotations

import struct
from typing import Tuple

HEADER_TAG = b"MThd"
TRACK_TAG = b"MTrk"
HEADER_LENGTH = 6
FORMAT_MULTI_TRACK = 1
MAX_VLQ = 0x0FFFFFFF

_LENGTH_PLACEHOLDER = b"\x00\x00\x00\x00"


def encode_vlq(value: int) -> bytes:
    """Encode `value` as a variable-length quantity, most significant group first."""

    if value < 0 or value > MAX_VLQ:
        raise ValueError(f"value {value} out of VLQ range 0..0x{MAX_VLQ:X}")
    groups = [value & 0x7F]
    value >>= 7
    while value:
        groups.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(groups))


def decode_vlq(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Return ``(value, next_offset)`` for the VLQ starting at `offset`."""

    value = 0
    for idx in range(offset, min(len(data), offset + 4)):
        byte = data[idx]
        value = (value << 7) | (byte & 0x7F)
        if not byte & 0x80:
            return value, idx + 1
    raise ValueError(f"unterminated variable-length quantity at offset {offset}")


def build_header(track_count: int, division: int) -> bytes:
    if not 0 < division <= 0x7FFF:
        raise ValueError(f"division must be 1..0x7FFF ticks per quarter, got {division}")
    return (
        HEADER_TAG
        + struct.pack(">I", HEADER_LENGTH)
        + struct.pack(">HHH", FORMAT_MULTI_TRACK, track_count, division)
    )


def begin_chunk(buf: bytearray, tag: bytes = TRACK_TAG) -> int:
    """Append `tag` and a placeholder length; return the length field offset."""

    if len(tag) != 4:
        raise ValueError(f"chunk tag must be 4 bytes, got {tag!r}")
    buf.extend(tag)
    length_offset = len(buf)
    buf.extend(_LENGTH_PLACEHOLDER)
    return length_offset


def end_chunk(buf: bytearray, length_offset: int) -> int:
    """Patch the length field at `length_offset`; return the body length."""

    length = len(buf) - length_offset - 4
    buf[length_offset : length_offset + 4] = struct.pack(">I", length)
    return length
