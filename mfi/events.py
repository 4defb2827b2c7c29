"""Decoded MFi events.

A track is a list of events in file order.  Each event carries the number
of ticks elapsed since the previous event of the same track (0-255).

Three record kinds exist:
  NoteEvent          — key press with its own gate duration
  ControlEvent       — one data byte addressed by (class, id)
  ExtendedDataEvent  — opaque variable-length payload addressed by (class, id)

Control class 3 holds the channel/transport controls (tempo, bank,
program, volume, pan, bend, end of track).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Union


DEFAULT_VELOCITY = 63

TRANSPORT_CLASS = 3
END_OF_TRACK_ID = 0xDF


class NoteMode(IntEnum):
    """Value of the `note` header sub-chunk."""

    SHORT = 0  # no velocity/octave byte; velocity 63, octave shift 0
    LONG = 1  # extra byte: velocity (6 bits) << 2 | octave shift (2 bits)


@dataclass(frozen=True)
class NoteEvent:
    delta: int
    channel: int  # 0-3, before the per-track channel offset
    key: int  # 6-bit key index
    gate: int  # ticks until the note stops
    velocity: int = DEFAULT_VELOCITY  # 6-bit
    octave_shift: int = 0  # 0-3


@dataclass(frozen=True)
class ControlEvent:
    delta: int
    event_class: int
    event_id: int
    data: int

    @property
    def sub_channel(self) -> int:
        """Top 2 bits of the data byte (channel-addressed controls)."""
        return (self.data >> 6) & 0x03

    @property
    def value(self) -> int:
        """Bottom 6 bits of the data byte."""
        return self.data & 0x3F

    def is_end_of_track(self) -> bool:
        return self.event_class == TRANSPORT_CLASS and self.event_id == END_OF_TRACK_ID


@dataclass(frozen=True)
class ExtendedDataEvent:
    delta: int
    event_class: int
    event_id: int
    payload: bytes = b""


Event = Union[NoteEvent, ControlEvent, ExtendedDataEvent]


@dataclass
class Track:
    events: List[Event] = field(default_factory=list)

    @property
    def total_ticks(self) -> int:
        return sum(ev.delta for ev in self.events)

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(self.events)


@dataclass
class Song:
    tracks: List[Track] = field(default_factory=list)
    note_mode: NoteMode = NoteMode.SHORT
