from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from .container import MfiFile
from .decoder import decode_track
from .encoder import CHANNELS_PER_TRACK, MIDI_CHANNELS, encode_track, global_timebase
from .events import Song
from .smf import build_header

logger = logging.getLogger(__name__)

MAX_TRACKS = MIDI_CHANNELS // CHANNELS_PER_TRACK


def read_song(data: bytes) -> Song:
    """Parse an MFi file and decode every track chunk."""

    mfi = MfiFile.from_bytes(data)
    song = Song(note_mode=mfi.note_mode)
    for index, cursor in enumerate(mfi.iter_track_cursors()):
        logger.debug("decoding track %d (%d bytes)", index, len(cursor))
        song.tracks.append(decode_track(cursor, mfi.note_mode))
    return song


def write_smf(song: Song) -> bytes:
    """Encode `song` as a format 1 Standard MIDI File."""

    if len(song.tracks) > MAX_TRACKS:
        raise ValueError(
            f"{len(song.tracks)} tracks cannot be mapped onto {MIDI_CHANNELS} channels "
            f"(max {MAX_TRACKS})"
        )
    timebase = global_timebase(song.tracks[0] if song.tracks else None)
    buf = bytearray(build_header(len(song.tracks), timebase))
    for index, track in enumerate(song.tracks):
        length = encode_track(track, index * CHANNELS_PER_TRACK, buf)
        logger.debug("track %d: %d events -> %d bytes", index, len(track), length)
    return bytes(buf)


def convert(data: bytes) -> bytes:
    return write_smf(read_song(data))


def convert_file(src: Union[str, Path], dst: Union[str, Path]) -> Song:
    """Convert the MFi file at `src` and write the MIDI file to `dst`.

    Nothing is written unless the whole song converts.
    """
    song = read_song(Path(src).read_bytes())
    smf = write_smf(song)
    Path(dst).write_bytes(smf)
    return song
