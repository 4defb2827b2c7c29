"""Re-encode decoded MFi tracks as Standard MIDI File track chunks.

Each MFi track owns four output channels: track i writes to channels
4*i .. 4*i+3.  Delta-times are rebuilt from absolute ticks, so records that
produce no output (unknown controls, extended data) still advance time.

Note stops are not present in the source.  Every note start schedules a
stop at start + gate; stops are emitted at their expiry tick, earliest
first, before the source event that reaches or passes that tick.

Key mapping: 45 + key index, then the octave shift code
  0 → +0   1 → +12   2 → -24   3 → -12

Class 3 control mapping:
  0xB0       master volume   → universal sys-ex 7F 7F 04 01 00 vv
  0xC0-0xCF  tempo/timebase  → set_tempo (data byte = beats per minute)
  0xDF       end of track    → end_of_track
  0xE0       program select  → program_change (+64 when the channel's bank is 3)
  0xE1       bank select     → CC 0 (banks 2, 3, 0x3F collapse to 0)
  0xE2       channel volume  → CC 7
  0xE3       pan             → CC 10
  0xE4       pitch bend      → pitchwheel (6-bit value << 8)
  0xEA       modulation      → CC 1
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

import mido

from .errors import UnknownControl
from .events import (
    TRANSPORT_CLASS,
    ControlEvent,
    Event,
    ExtendedDataEvent,
    NoteEvent,
    Track,
)
from .scheduler import NoteOffScheduler, PendingNoteOff
from .smf import begin_chunk, encode_vlq, end_chunk

logger = logging.getLogger(__name__)

DEFAULT_TIMEBASE = 48
KEY_BASE = 45
OCTAVE_SHIFT = {0: 0, 1: 12, 2: -24, 3: -12}
RELEASE_VELOCITY = 64
CHANNELS_PER_TRACK = 4
MIDI_CHANNELS = 16
MAX_TEMPO = 0xFFFFFF
MASTER_VOLUME_SIGNATURE = (0x7F, 0x7F, 0x04, 0x01)
DRUM_BANK = 3
DRUM_PROGRAM_OFFSET = 64
GM_BANK_REMAP = frozenset({0x02, 0x03, 0x3F})

CC_BANK_SELECT = 0
CC_MODULATION = 1
CC_VOLUME = 7
CC_PAN = 10


def convert_timebase(index: int) -> int:
    """Ticks per quarter note for a 4-bit timebase index."""

    index &= 0x0F
    if index >= 8:
        return 15 << (index - 8)
    return 6 << index


def is_tempo_control(event: ControlEvent) -> bool:
    return event.event_class == TRANSPORT_CLASS and event.event_id & 0xF0 == 0xC0


def global_timebase(first_track: Optional[Track]) -> int:
    """Timebase of the first tempo control in `first_track`, else 48."""

    if first_track is None:
        return DEFAULT_TIMEBASE
    for event in first_track.events:
        if isinstance(event, ControlEvent) and is_tempo_control(event):
            return convert_timebase(event.event_id & 0x0F)
    return DEFAULT_TIMEBASE


def remap_bank(bank: int) -> int:
    """Collapse vendor banks onto bank 0; other 6-bit values pass through."""

    return 0 if bank in GM_BANK_REMAP else bank


def note_key(key: int, octave_shift: int) -> int:
    return KEY_BASE + key + OCTAVE_SHIFT[octave_shift & 0x03]


def _sysex_file_bytes(data: List[int]) -> bytes:
    raw = mido.Message("sysex", data=data).bytes()
    # SMF stores sys-ex as F0 <length> <data...> F7
    return bytes(raw[:1]) + encode_vlq(len(raw) - 1) + bytes(raw[1:])


class TrackEncoder:
    """Per-track encode state: clock, bank memory and pending note stops."""

    def __init__(self, channel_offset: int) -> None:
        if not 0 <= channel_offset <= MIDI_CHANNELS - CHANNELS_PER_TRACK:
            raise ValueError(
                f"channel offset {channel_offset} leaves no room for "
                f"{CHANNELS_PER_TRACK} channels"
            )
        self.channel_offset = channel_offset
        self.now = 0
        self.emitted_until = 0
        self.banks = [0] * MIDI_CHANNELS
        self.note_offs = NoteOffScheduler()
        self.body = bytearray()
        self._class3: Dict[int, Callable[[ControlEvent], None]] = {
            0xB0: self._master_volume,
            0xDF: self._end_of_track,
            0xE0: self._program_select,
            0xE1: self._bank_select,
            0xE2: self._channel_volume,
            0xE3: self._pan,
            0xE4: self._pitch_bend,
            0xEA: self._modulation,
        }
        for event_id in range(0xC0, 0xD0):
            self._class3[event_id] = self._tempo

    # -- output ----------------------------------------------------------

    def _emit(self, tick: int, data: bytes) -> None:
        delta = max(0, tick - self.emitted_until)
        self.body.extend(encode_vlq(delta))
        self.body.extend(data)
        self.emitted_until = max(self.emitted_until, tick)

    def _emit_message(self, msg: mido.Message) -> None:
        self._emit(self.now, bytes(msg.bytes()))

    def _control_change(self, channel: int, control: int, value: int) -> None:
        self._emit_message(
            mido.Message("control_change", channel=channel, control=control, value=value)
        )

    def _note_stop(self, pending: PendingNoteOff) -> None:
        msg = mido.Message(
            "note_off",
            channel=pending.channel,
            note=pending.key,
            velocity=RELEASE_VELOCITY,
        )
        self._emit(pending.expiry, bytes(msg.bytes()))

    def flush_due(self) -> None:
        for pending in self.note_offs.drain_due(self.now):
            self._note_stop(pending)

    def flush_all(self) -> None:
        for pending in self.note_offs.drain_all():
            self._note_stop(pending)

    # -- events ----------------------------------------------------------

    def feed(self, event: Event) -> None:
        if not isinstance(event, (NoteEvent, ControlEvent, ExtendedDataEvent)):
            raise TypeError(f"not an MFi event: {event!r}")
        self.now += event.delta
        self.flush_due()

        if isinstance(event, NoteEvent):
            self._note(event)
        elif isinstance(event, ControlEvent):
            try:
                handler = self._handler_for(event)
            except UnknownControl as exc:
                logger.warning("tick %d: dropping %s", self.now, exc)
                return
            handler(event)
        else:
            logger.info(
                "tick %d: dropping extended data (class %X) 0x%02X, %d bytes",
                self.now,
                event.event_class,
                event.event_id,
                len(event.payload),
            )

    def finish(self) -> bytes:
        self.flush_all()
        return bytes(self.body)

    def _handler_for(self, event: ControlEvent) -> Callable[[ControlEvent], None]:
        if event.event_class == TRANSPORT_CLASS:
            handler = self._class3.get(event.event_id)
            if handler is not None:
                return handler
        raise UnknownControl(event.event_class, event.event_id)

    def _note(self, event: NoteEvent) -> None:
        channel = self.channel_offset + event.channel
        key = note_key(event.key, event.octave_shift)
        self._emit_message(
            mido.Message("note_on", channel=channel, note=key, velocity=event.velocity * 2)
        )
        self.note_offs.schedule(channel, key, self.now + event.gate)

    def _master_volume(self, event: ControlEvent) -> None:
        data = [*MASTER_VOLUME_SIGNATURE, 0x00, event.data & 0x7F]
        self._emit(self.now, _sysex_file_bytes(data))

    def _tempo(self, event: ControlEvent) -> None:
        if event.data == 0:
            logger.warning("tick %d: dropping tempo control with zero tempo", self.now)
            return
        tempo = min(60_000_000 // event.data, MAX_TEMPO)
        self._emit(self.now, bytes(mido.MetaMessage("set_tempo", tempo=tempo).bytes()))

    def _end_of_track(self, event: ControlEvent) -> None:
        # Stops still sounding must precede the end-of-track meta event.
        self.flush_all()
        self._emit(self.now, bytes(mido.MetaMessage("end_of_track").bytes()))

    def _program_select(self, event: ControlEvent) -> None:
        channel = self.channel_offset + event.sub_channel
        program = event.value
        if self.banks[channel] == DRUM_BANK:
            program += DRUM_PROGRAM_OFFSET
        self._emit_message(
            mido.Message("program_change", channel=channel, program=program)
        )

    def _bank_select(self, event: ControlEvent) -> None:
        channel = self.channel_offset + event.sub_channel
        self.banks[channel] = event.value
        self._control_change(channel, CC_BANK_SELECT, remap_bank(event.value))

    def _channel_volume(self, event: ControlEvent) -> None:
        channel = self.channel_offset + event.sub_channel
        self._control_change(channel, CC_VOLUME, event.value * 2)

    def _pan(self, event: ControlEvent) -> None:
        channel = self.channel_offset + event.sub_channel
        self._control_change(channel, CC_PAN, event.value * 2)

    def _pitch_bend(self, event: ControlEvent) -> None:
        channel = self.channel_offset + event.sub_channel
        value = event.value << 8
        self._emit_message(
            mido.Message("pitchwheel", channel=channel, pitch=value - 8192)
        )

    def _modulation(self, event: ControlEvent) -> None:
        channel = self.channel_offset + event.sub_channel
        self._control_change(channel, CC_MODULATION, event.value * 2)


def encode_track_body(track: Track, channel_offset: int) -> bytes:
    """Encode the events of `track` without the chunk prefix."""

    encoder = TrackEncoder(channel_offset)
    for event in track.events:
        encoder.feed(event)
    return encoder.finish()


def encode_track(track: Track, channel_offset: int, sink: bytearray) -> int:
    """Append one complete ``MTrk`` chunk for `track` to `sink`.

    Returns the chunk body length written into the length field.
    """
    length_offset = begin_chunk(sink)
    sink.extend(encode_track_body(track, channel_offset))
    return end_chunk(sink, length_offset)
