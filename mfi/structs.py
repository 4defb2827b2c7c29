from __future__ import annotations

import struct

from .errors import MalformedStream


MAGIC = b"melo"
NOTE_CHUNK = b"note"
ADPCM_INFO_CHUNK = b"ainf"
TRACK_CHUNK = b"trac"


def fourcc_text(tag: bytes) -> str:
    """Printable form of a FOURCC for messages."""

    return "".join(chr(b) if 0x20 <= b < 0x7F else "." for b in tag)


class ByteReader:
    """Sequential big-endian reader over an in-memory buffer.

    Every read that would run past the end of the buffer raises
    `MalformedStream`; nothing is ever silently zero-filled.
    """

    def __init__(self, data: bytes, pos: int = 0) -> None:
        self.data = bytes(data)
        self.pos = pos

    def __len__(self) -> int:
        return len(self.data)

    @property
    def remaining(self) -> int:
        return len(self.data) - self.pos

    def at_end(self) -> bool:
        return self.pos >= len(self.data)

    def _take(self, size: int) -> bytes:
        if size < 0 or self.pos + size > len(self.data):
            raise MalformedStream(
                f"unexpected end of data at offset 0x{self.pos:X} "
                f"(need {size} bytes, {self.remaining} left)"
            )
        chunk = self.data[self.pos : self.pos + size]
        self.pos += size
        return chunk

    def read_u8(self) -> int:
        return self._take(1)[0]

    def read_u16(self) -> int:
        return struct.unpack(">H", self._take(2))[0]

    def read_u16le(self) -> int:
        return struct.unpack("<H", self._take(2))[0]

    def read_u32(self) -> int:
        return struct.unpack(">I", self._take(4))[0]

    def read_bytes(self, size: int) -> bytes:
        return self._take(size)

    def skip(self, size: int) -> None:
        self._take(size)
