"""Tests for MFi → SMF track encoding."""

from __future__ import annotations

import io
import logging
import random

import mido
import pytest

from mfi.encoder import (
    DEFAULT_TIMEBASE,
    TrackEncoder,
    convert_timebase,
    encode_track,
    encode_track_body,
    global_timebase,
    note_key,
    remap_bank,
)
from mfi.events import ControlEvent, ExtendedDataEvent, NoteEvent, Song, Track
from mfi.convert import write_smf

EOT_META = b"\xFF\x2F\x00"


def _eot(delta: int = 0) -> ControlEvent:
    return ControlEvent(delta=delta, event_class=3, event_id=0xDF, data=0)


def _ctl(delta: int, event_id: int, data: int, event_class: int = 3) -> ControlEvent:
    return ControlEvent(delta=delta, event_class=event_class, event_id=event_id, data=data)


def _parse_smf(data: bytes) -> mido.MidiFile:
    return mido.MidiFile(file=io.BytesIO(data))


# ── scenarios ───────────────────────────────────────────────────────


class TestScenarios:
    def test_single_note_then_end_of_track(self):
        track = Track([NoteEvent(delta=0, channel=0, key=10, gate=20), _eot(20)])
        buf = bytearray()
        length = encode_track(track, 0, buf)

        body = (
            b"\x00\x90\x37\x7E"  # note on, key 55, velocity 126
            b"\x14\x80\x37\x40"  # note off after 20 ticks
            b"\x00" + EOT_META
        )
        assert length == len(body) == 12
        assert bytes(buf) == b"MTrk\x00\x00\x00\x0C" + body

    def test_end_of_track_before_gate_expires_still_stops_note_first(self):
        track = Track([NoteEvent(delta=0, channel=0, key=10, gate=20), _eot(0)])
        body = encode_track_body(track, 0)
        assert body == b"\x00\x90\x37\x7E" b"\x14\x80\x37\x40" b"\x00" + EOT_META

    def test_drum_bank_offsets_program(self):
        track = Track(
            [
                _ctl(0, 0xE1, (1 << 6) | 3),  # bank 3 on sub-channel 1
                _ctl(0, 0xE0, (1 << 6) | 5),  # program 5 on sub-channel 1
                _eot(),
            ]
        )
        body = encode_track_body(track, 0)
        assert body == (
            b"\x00\xB1\x00\x00"  # bank select collapsed to 0
            b"\x00\xC1\x45"  # program 5 + 64
            b"\x00" + EOT_META
        )

    def test_overlapping_notes_stop_in_expiry_order(self):
        track = Track(
            [
                NoteEvent(delta=0, channel=0, key=0, gate=100),
                NoteEvent(delta=10, channel=0, key=2, gate=20),
                _eot(200),
            ]
        )
        body = encode_track_body(track, 0)
        assert body == (
            b"\x00\x90\x2D\x7E"
            b"\x0A\x90\x2F\x7E"
            b"\x14\x80\x2F\x40"  # second note stops at tick 30
            b"\x46\x80\x2D\x40"  # first note stops at tick 100
            b"\x6E" + EOT_META  # end of track at tick 210
        )


# ── control mapping ─────────────────────────────────────────────────


class TestControls:
    def test_bank_remap_table(self):
        for bank in range(0x40):
            expected = 0 if bank in (2, 3, 0x3F) else bank
            assert remap_bank(bank) == expected
            assert remap_bank(remap_bank(bank)) == expected

    def test_bank_other_than_drums_keeps_program(self):
        track = Track([_ctl(0, 0xE1, 0x01), _ctl(0, 0xE0, 0x07), _eot()])
        body = encode_track_body(track, 4)
        assert body == b"\x00\xB4\x00\x01" b"\x00\xC4\x07" b"\x00" + EOT_META

    def test_bank_memory_is_per_channel(self):
        track = Track([_ctl(0, 0xE1, 0x03), _ctl(0, 0xE0, 0x45), _eot()])
        body = encode_track_body(track, 0)
        # bank 3 on sub-channel 0, program on sub-channel 1
        assert b"\xC1\x05" in body

    def test_bank_memory_resets_between_tracks(self):
        song = Song(
            tracks=[
                Track([_ctl(0, 0xE1, 0x03), _eot()]),
                Track([_ctl(0, 0xE0, 0x05), _eot()]),
            ]
        )
        mid = _parse_smf(write_smf(song))
        programs = [m for m in mid.tracks[1] if m.type == "program_change"]
        assert programs[0].channel == 4
        assert programs[0].program == 5

    @pytest.mark.parametrize(
        "event_id, control",
        [
            (0xE2, 7),
            (0xE3, 10),
            (0xEA, 1),
        ],
    )
    def test_continuous_controllers_double_value(self, event_id, control):
        track = Track([_ctl(3, event_id, (2 << 6) | 0x21), _eot()])
        body = encode_track_body(track, 8)
        assert body == bytes([0x03, 0xBA, control, 0x42, 0x00]) + EOT_META

    def test_pitch_bend_splits_14_bit_value(self):
        track = Track([_ctl(0, 0xE4, (3 << 6) | 0x20), _eot()])
        body = encode_track_body(track, 4)
        # 0x20 << 8 = 0x2000: LSB 0x00, MSB 0x40
        assert body == b"\x00\xE7\x00\x40" b"\x00" + EOT_META

    def test_tempo_control(self):
        track = Track([_ctl(0, 0xC3, 120), _eot()])
        body = encode_track_body(track, 0)
        assert body == b"\x00\xFF\x51\x03\x07\xA1\x20" b"\x00" + EOT_META

    def test_tempo_is_capped_for_tiny_bpm(self):
        track = Track([_ctl(0, 0xC0, 1), _eot()])
        body = encode_track_body(track, 0)
        assert body[:7] == b"\x00\xFF\x51\x03\xFF\xFF\xFF"

    def test_zero_tempo_is_dropped(self, caplog):
        track = Track([_ctl(5, 0xC0, 0), _eot(5)])
        with caplog.at_level(logging.WARNING, logger="mfi.encoder"):
            body = encode_track_body(track, 0)
        assert body == b"\x0A" + EOT_META
        assert "zero tempo" in caplog.text

    def test_master_volume_sysex(self):
        track = Track([_ctl(0, 0xB0, 0x64), _eot()])
        body = encode_track_body(track, 0)
        assert body == (
            b"\x00\xF0\x07\x7F\x7F\x04\x01\x00\x64\xF7"
            b"\x00" + EOT_META
        )

    def test_unknown_control_dropped_without_losing_time(self, caplog):
        track = Track(
            [
                _ctl(10, 0xE5, 0x00),  # unmapped class 3 id
                _ctl(20, 0xE2, 0x3F, event_class=1),  # unmapped class
                NoteEvent(delta=5, channel=0, key=0, gate=1),
                _eot(1),
            ]
        )
        with caplog.at_level(logging.WARNING, logger="mfi.encoder"):
            body = encode_track_body(track, 0)
        assert body == (
            b"\x23\x90\x2D\x7E"  # 35 ticks
            b"\x01\x80\x2D\x40"
            b"\x00" + EOT_META
        )
        assert "0xE5" in caplog.text
        assert "class 1" in caplog.text

    def test_extended_data_is_dropped(self, caplog):
        track = Track(
            [
                ExtendedDataEvent(delta=7, event_class=3, event_id=0xF1, payload=b"\x01\x02"),
                _eot(1),
            ]
        )
        with caplog.at_level(logging.INFO, logger="mfi.encoder"):
            body = encode_track_body(track, 0)
        assert body == b"\x08" + EOT_META
        assert "extended data" in caplog.text


# ── notes ───────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "octave_shift, expected",
    [(0, 55), (1, 67), (2, 31), (3, 43)],
)
def test_octave_shift_table(octave_shift, expected):
    assert note_key(10, octave_shift) == expected


def test_note_uses_channel_offset_and_velocity():
    track = Track([NoteEvent(delta=0, channel=2, key=0, gate=0, velocity=40), _eot(1)])
    body = encode_track_body(track, 12)
    assert body[:4] == bytes([0x00, 0x9E, 45, 80])
    assert body[4:8] == bytes([0x00, 0x8E, 45, 64])


def test_zero_gate_stops_at_next_event():
    track = Track(
        [
            NoteEvent(delta=3, channel=0, key=1, gate=0),
            NoteEvent(delta=4, channel=0, key=2, gate=0),
            _eot(0),
        ]
    )
    body = encode_track_body(track, 0)
    assert body == (
        b"\x03\x90\x2E\x7E"
        b"\x00\x80\x2E\x40"
        b"\x04\x90\x2F\x7E"
        b"\x00\x80\x2F\x40"
        b"\x00" + EOT_META
    )


def test_track_without_end_marker_flushes_at_expiry():
    track = Track([NoteEvent(delta=0, channel=0, key=0, gate=200)])
    body = encode_track_body(track, 0)
    assert body == b"\x00\x90\x2D\x7E" b"\x81\x48\x80\x2D\x40"


def test_invalid_channel_offset():
    with pytest.raises(ValueError):
        TrackEncoder(13)


def test_feed_rejects_foreign_objects():
    with pytest.raises(TypeError):
        TrackEncoder(0).feed("not an event")


# ── timing properties ───────────────────────────────────────────────


def _random_track(rng: random.Random) -> Track:
    events = []
    for _ in range(rng.randrange(1, 60)):
        if rng.random() < 0.8:
            events.append(
                NoteEvent(
                    delta=rng.randrange(0, 256),
                    channel=rng.randrange(4),
                    key=rng.randrange(0x3F),
                    gate=rng.randrange(0, 256),
                    velocity=rng.randrange(64),
                    octave_shift=rng.randrange(4),
                )
            )
        else:
            events.append(_ctl(rng.randrange(0, 256), 0xE2, rng.randrange(256)))
    # pad so that every gate has expired before the end marker
    events.append(_ctl(255, 0xE3, 0x20))
    events.append(_eot(255))
    return Track(events)


@pytest.mark.parametrize("seed", range(10))
def test_time_is_conserved(seed):
    rng = random.Random(seed)
    track = _random_track(rng)
    mid = _parse_smf(write_smf(Song(tracks=[track])))
    assert sum(msg.time for msg in mid.tracks[0]) == track.total_ticks


@pytest.mark.parametrize("seed", range(10))
def test_every_note_stopped_once_after_its_start(seed):
    rng = random.Random(100 + seed)
    track = _random_track(rng)
    mid = _parse_smf(write_smf(Song(tracks=[track])))

    sounding: dict[tuple[int, int], int] = {}
    starts = stops = 0
    for msg in mid.tracks[0]:
        if msg.type == "note_on":
            sounding[(msg.channel, msg.note)] = sounding.get((msg.channel, msg.note), 0) + 1
            starts += 1
        elif msg.type == "note_off":
            assert sounding.get((msg.channel, msg.note), 0) > 0
            sounding[(msg.channel, msg.note)] -= 1
            stops += 1
    assert starts == stops == sum(isinstance(e, NoteEvent) for e in track.events)
    assert mid.tracks[0][-1].type == "end_of_track"


# ── timebase ────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "index, ticks",
    [
        (0, 6),
        (1, 12),
        (2, 24),
        (3, 48),
        (4, 96),
        (5, 192),
        (6, 384),
        (7, 768),
        (8, 15),
        (9, 30),
        (10, 60),
        (11, 120),
        (12, 240),
        (13, 480),
        (14, 960),
        (15, 1920),
    ],
)
def test_convert_timebase(index, ticks):
    assert convert_timebase(index) == ticks


def test_global_timebase_uses_first_tempo_control():
    track = Track([_ctl(0, 0xE2, 0), _ctl(0, 0xCA, 100), _ctl(0, 0xC2, 100), _eot()])
    assert global_timebase(track) == 60


def test_global_timebase_ignores_other_classes():
    track = Track([_ctl(0, 0xC2, 100, event_class=2), _eot()])
    assert global_timebase(track) == DEFAULT_TIMEBASE


def test_global_timebase_default():
    assert global_timebase(Track([_eot()])) == 48
    assert global_timebase(None) == 48


def test_write_smf_header_uses_first_track_only():
    song = Song(
        tracks=[
            Track([_eot()]),
            Track([_ctl(0, 0xC4, 120), _eot()]),
        ]
    )
    mid = _parse_smf(write_smf(song))
    assert mid.type == 1
    assert mid.ticks_per_beat == 48
    assert len(mid.tracks) == 2
    tempos = [m for m in mid.tracks[1] if m.type == "set_tempo"]
    assert tempos[0].tempo == 500000


def test_write_smf_rejects_too_many_tracks():
    song = Song(tracks=[Track([_eot()]) for _ in range(5)])
    with pytest.raises(ValueError):
        write_smf(song)
