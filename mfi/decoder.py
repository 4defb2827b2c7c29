"""Decode the event stream of one MFi track chunk.

Record layout (all fields one byte unless noted):

  [delta] [status]
    status bits 7-6 — channel (notes) or event class (escapes)
    status bits 5-0 — key index, or 0x3F for an escape

  Note (key != 0x3F):
    [gate]                       short form
    [gate] [velocity<<2 | oct]   long form

  Escape (key == 0x3F), dispatched on the next byte:
    0xF0-0xFF  extended data: [id] [size u16 BE] [payload * size]
    0x80-0xEF  control:       [id] [data]
    0x00-0x7F  not defined

The control with class 3 / id 0xDF ends the track.  It is kept as the
final event and nothing after it is read.
"""

from __future__ import annotations

import logging
from typing import Union

from .errors import MalformedStream, UnsupportedEvent
from .events import (
    DEFAULT_VELOCITY,
    ControlEvent,
    Event,
    ExtendedDataEvent,
    NoteEvent,
    NoteMode,
    Track,
)
from .structs import ByteReader

logger = logging.getLogger(__name__)

ESCAPE_KEY = 0x3F


def read_event(cursor: ByteReader, note_mode: NoteMode = NoteMode.SHORT) -> Event:
    """Read a single record at the cursor position."""

    start = cursor.pos
    delta = cursor.read_u8()
    status = cursor.read_u8()
    channel = (status >> 6) & 0x03
    key = status & 0x3F

    if key != ESCAPE_KEY:
        gate = cursor.read_u8()
        velocity = DEFAULT_VELOCITY
        octave_shift = 0
        if note_mode == NoteMode.LONG:
            packed = cursor.read_u8()
            velocity = packed >> 2
            octave_shift = packed & 0x03
        return NoteEvent(
            delta=delta,
            channel=channel,
            key=key,
            gate=gate,
            velocity=velocity,
            octave_shift=octave_shift,
        )

    event_id = cursor.read_u8()
    if event_id & 0xF0 == 0xF0:
        size = cursor.read_u16()
        payload = cursor.read_bytes(size)
        return ExtendedDataEvent(
            delta=delta, event_class=channel, event_id=event_id, payload=payload
        )
    if event_id & 0x80:
        data = cursor.read_u8()
        return ControlEvent(
            delta=delta, event_class=channel, event_id=event_id, data=data
        )
    raise UnsupportedEvent(
        f"unsupported escape record (class {channel:X}, id 0x{event_id:02X})", start
    )


def _describe(event: Event) -> str:
    if isinstance(event, NoteEvent):
        return (
            f"note ch {event.channel} key {event.key:02x} gate {event.gate} "
            f"vel {event.velocity} oct {event.octave_shift}"
        )
    if isinstance(event, ControlEvent):
        return (
            f"control (class {event.event_class:x}) "
            f"{event.event_id:02x}: {event.data:02x}"
        )
    return (
        f"extended data (class {event.event_class:x}) "
        f"{event.event_id:02x}: size {len(event.payload)}"
    )


def decode_track(
    cursor: Union[ByteReader, bytes],
    note_mode: NoteMode = NoteMode.SHORT,
) -> Track:
    """Decode records until the end-of-track control.

    Parameters
    ----------
    cursor : ByteReader or bytes
        Positioned at the first record of the track.  Bytes are wrapped in
        a fresh reader.
    note_mode : NoteMode
        Note encoding declared by the file's `note` sub-chunk.

    Raises
    ------
    MalformedStream
        The data ran out before the end-of-track control.
    UnsupportedEvent
        An escape record with an undefined id byte.
    """
    if not isinstance(cursor, ByteReader):
        cursor = ByteReader(cursor)

    track = Track()
    now = 0
    while True:
        if cursor.at_end():
            raise MalformedStream(
                f"track ended at offset 0x{cursor.pos:X} without end-of-track marker"
            )
        event = read_event(cursor, note_mode)
        now += event.delta
        track.events.append(event)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%-10u: %s", now, _describe(event))
        if isinstance(event, ControlEvent) and event.is_end_of_track():
            break

    if cursor.remaining:
        logger.debug("%d trailing bytes after end of track", cursor.remaining)
    return track
