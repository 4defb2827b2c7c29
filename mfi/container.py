"""Outer MFi (i-melody / .mld) container.

  'melo' [file length u32 BE]
    [header length u16 BE]
      [content type u8] [content sub-type u8] [track count u8]
      sub-chunks: [FOURCC] [size u16 BE] [payload]
        'note' — u16 BE note encoding (0 short, 1 long)
        'ainf' — u16 LE number of ADPCM chunks
    ADPCM chunks: [FOURCC] [size u32 BE] [payload]      (skipped)
    track chunks: 'trac' [size u32 BE] [event stream]

Both lengths count the bytes that follow their own field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from .errors import MalformedStream
from .events import NoteMode
from .structs import (
    ADPCM_INFO_CHUNK,
    MAGIC,
    NOTE_CHUNK,
    TRACK_CHUNK,
    ByteReader,
    fourcc_text,
)

logger = logging.getLogger(__name__)

CONTENT_MELODY = 1
CONTENT_SONG = 2


@dataclass(frozen=True)
class MfiHeader:
    content_type: int
    content_subtype: int
    declared_tracks: int
    note_mode: NoteMode = NoteMode.SHORT
    adpcm_chunks: int = 0
    subchunks: Dict[bytes, bytes] = field(default_factory=dict)

    @classmethod
    def read(cls, cursor: ByteReader) -> "MfiHeader":
        header_length = cursor.read_u16()
        header_start = cursor.pos
        content_type = cursor.read_u8()
        content_subtype = cursor.read_u8()
        declared_tracks = cursor.read_u8()

        note_mode = NoteMode.SHORT
        adpcm_chunks = 0
        subchunks: Dict[bytes, bytes] = {}
        while cursor.pos - header_start < header_length:
            tag = cursor.read_bytes(4)
            size = cursor.read_u16()
            logger.debug("sub-chunk `%s` (%d bytes)", fourcc_text(tag), size)
            if tag == NOTE_CHUNK:
                if size != 2:
                    raise MalformedStream(f"note sub-chunk has size {size}, expected 2")
                value = cursor.read_u16()
                try:
                    note_mode = NoteMode(value)
                except ValueError:
                    raise MalformedStream(f"unknown note encoding {value}") from None
            elif tag == ADPCM_INFO_CHUNK:
                if size != 2:
                    raise MalformedStream(f"ainf sub-chunk has size {size}, expected 2")
                adpcm_chunks = cursor.read_u16le()
            else:
                subchunks[tag] = cursor.read_bytes(size)

        if cursor.pos - header_start != header_length:
            raise MalformedStream(
                f"header sub-chunks overran header length {header_length}"
            )

        return cls(
            content_type=content_type,
            content_subtype=content_subtype,
            declared_tracks=declared_tracks,
            note_mode=note_mode,
            adpcm_chunks=adpcm_chunks,
            subchunks=subchunks,
        )


@dataclass(frozen=True)
class MfiFile:
    """Container split into header and raw track chunk payloads."""

    header: MfiHeader
    tracks: List[bytes]

    @property
    def note_mode(self) -> NoteMode:
        return self.header.note_mode

    @classmethod
    def from_bytes(cls, data: bytes) -> "MfiFile":
        cursor = ByteReader(data)
        magic = cursor.read_bytes(4) if len(data) >= 4 else b""
        if magic != MAGIC:
            raise MalformedStream(f"bad magic: {bytes(data[:4]).hex()}")

        file_length = cursor.read_u32()
        file_start = cursor.pos
        if file_start + file_length > len(data):
            raise MalformedStream(
                f"file length {file_length} exceeds data ({len(data) - file_start} bytes)"
            )

        header = MfiHeader.read(cursor)

        for _ in range(header.adpcm_chunks):
            tag = cursor.read_bytes(4)
            size = cursor.read_u32()
            logger.debug("skipping ADPCM chunk `%s` (%d bytes)", fourcc_text(tag), size)
            cursor.skip(size)

        tracks: List[bytes] = []
        while cursor.pos - file_start < file_length:
            tag = cursor.read_bytes(4)
            size = cursor.read_u32()
            if tag != TRACK_CHUNK:
                raise MalformedStream(
                    f"invalid chunk `{fourcc_text(tag)}` at offset 0x{cursor.pos - 8:X}"
                )
            tracks.append(cursor.read_bytes(size))

        if len(tracks) != header.declared_tracks:
            logger.warning(
                "header declares %d tracks, found %d", header.declared_tracks, len(tracks)
            )
        return cls(header=header, tracks=tracks)

    def iter_track_cursors(self) -> Iterator[ByteReader]:
        for payload in self.tracks:
            yield ByteReader(payload)
