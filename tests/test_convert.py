"""End-to-end conversion: XMIDI container in, Standard MIDI file out."""

from __future__ import annotations

import io
import json
from pathlib import Path
import sys

import mido
import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from xmi.convert import (  # noqa: E402
    ConversionOptions,
    convert,
    convert_track,
    load_options,
    options_from_dict,
)
from xmi.errors import (  # noqa: E402
    CapacityExceeded,
    MalformedContainer,
    MalformedEvent,
    TruncatedInput,
    XMIError,
)
from xmi.smf import build_header, build_smf, midi_path_for  # noqa: E402
from xmi_fixtures import SAMPLE_EVENTS, SAMPLE_TRACK, build_xmi  # noqa: E402


def _read_midi(data: bytes) -> mido.MidiFile:
    return mido.MidiFile(file=io.BytesIO(data))


# ── SMF framing ───────────────────────────────────────────────────────


def test_header_layout() -> None:
    assert build_header(960) == bytes.fromhex("4D546864 00000006 0000 0001 03C0")


@pytest.mark.parametrize("timebase", [0, -1, 0x8000])
def test_header_rejects_bad_timebase(timebase: int) -> None:
    with pytest.raises(ValueError):
        build_header(timebase)


def test_build_smf_wraps_track() -> None:
    smf = build_smf(SAMPLE_TRACK, 960)
    assert smf[:14] == build_header(960)
    assert smf[14:18] == b"MTrk"
    assert int.from_bytes(smf[18:22], "big") == len(SAMPLE_TRACK)
    assert smf[22:] == SAMPLE_TRACK


@pytest.mark.parametrize(
    "source, expected",
    [
        ("music/intro.xmi", Path("music/intro.mid")),
        ("INTRO.XMI", Path("INTRO.mid")),
        ("song", Path("song.mid")),
        ("dir.v2/track.01.xmi", Path("dir.v2/track.01.mid")),
    ],
)
def test_midi_path_for(source: str, expected: Path) -> None:
    assert midi_path_for(source) == expected


# ── full pipeline ─────────────────────────────────────────────────────


def test_sample_scenario_bytes() -> None:
    smf = convert(build_xmi(SAMPLE_EVENTS))
    assert smf == (
        bytes.fromhex("4D546864 00000006 0000 0001 03C0")
        + b"MTrk"
        + (13).to_bytes(4, "big")
        + SAMPLE_TRACK
    )


def test_sample_scenario_reads_back_with_mido() -> None:
    mid = _read_midi(convert(build_xmi(SAMPLE_EVENTS)))
    assert mid.type == 0
    assert mid.ticks_per_beat == 960
    assert len(mid.tracks) == 1
    messages = list(mid.tracks[0])
    assert messages[0].type == "note_on"
    assert (messages[0].channel, messages[0].note, messages[0].velocity) == (0, 60, 100)
    assert messages[0].time == 0
    assert messages[1].type == "note_off"
    assert (messages[1].note, messages[1].velocity, messages[1].time) == (60, 127, 1920)
    assert messages[2].type == "end_of_track"
    assert messages[2].time == 0
    # 1920 ticks at 960 ppqn and 120 bpm is one second, matching 120 XMIDI ticks.
    assert mid.length == pytest.approx(1.0)


def test_track_without_notes_is_only_end_of_track() -> None:
    assert convert_track(build_xmi(bytes.fromhex("FF 2F 00"))) == bytes.fromhex("00 FF 2F 00")


def test_custom_timebase() -> None:
    options = ConversionOptions(timebase=480)
    smf = convert(build_xmi(SAMPLE_EVENTS), options)
    assert smf[12:14] == (480).to_bytes(2, "big")
    mid = _read_midi(smf)
    assert mid.ticks_per_beat == 480
    assert mid.tracks[0][1].time == 960


def test_tempo_change_mid_track() -> None:
    events = bytes.fromhex(
        "90 3C 64 3C"  # note: 60 ticks
        "3C"  # wait 60
        "FF 51 03 0F 42 40"  # 1 s per quarter
        "90 3E 64 3C"
        "3C"
        "FF 2F 00"
    )
    mid = _read_midi(convert(build_xmi(events)))
    timeline = []
    now = 0
    for msg in mid.tracks[0]:
        now += msg.time
        timeline.append((now, msg.type, getattr(msg, "note", None)))
    # The first note ends on the tick of the tempo change, so its note-off
    # follows the events written at that tick.
    assert timeline == [
        (0, "note_on", 60),
        (960, "set_tempo", None),
        (960, "note_on", 62),
        (960, "note_off", 60),
        (1440, "note_off", 62),
        (1440, "end_of_track", None),
    ]
    # 0.5 s before the tempo change plus 0.5 s after it.
    assert mid.length == pytest.approx(1.0)


def test_legacy_flush_option() -> None:
    options = ConversionOptions(hold_final_notes=False)
    track = convert_track(build_xmi(SAMPLE_EVENTS), options)
    assert track == bytes.fromhex("00 90 3C 64 00 80 3C 7F 00 FF 2F 00")


def test_multichannel_song_parses_with_mido() -> None:
    events = bytes.fromhex(
        "C0 00 C1 21 B0 07 64"
        "90 3C 64 1E 91 28 50 3C"
        "0F"
        "90 40 64 1E"
        "1E"
        "E1 00 48 B1 0A 20"
        "1E"
        "FF 2F 00"
    )
    mid = _read_midi(convert(build_xmi(events, timbres=[(0, 0), (33, 0)])))
    counts: dict[str, int] = {}
    for msg in mid.tracks[0]:
        counts[msg.type] = counts.get(msg.type, 0) + 1
    assert counts["note_on"] == 3
    assert counts["note_off"] == 3
    assert counts["program_change"] == 2
    assert counts["pitchwheel"] == 1
    assert counts["end_of_track"] == 1


def test_no_partial_output_on_error() -> None:
    events = bytes.fromhex("90 3C 64 78 F4 FF 2F 00")
    with pytest.raises(MalformedEvent):
        convert(build_xmi(events))


def test_lenient_mode_recovers() -> None:
    data = bytearray(build_xmi(bytes.fromhex("90 3C 64 78 F4 FF 2F 00")))
    data[8:12] = b"XXXX"
    warnings: list[str] = []
    track = convert_track(bytes(data), ConversionOptions(strict=False), warn=warnings.append)
    assert track == SAMPLE_TRACK
    assert len(warnings) == 2


def test_strict_mode_rejects_non_xmidi() -> None:
    with pytest.raises(MalformedContainer):
        convert(b"MThd" + bytes(60))


def test_truncated_file() -> None:
    with pytest.raises(TruncatedInput):
        convert(build_xmi(SAMPLE_EVENTS)[:30])


def test_capacity_error_propagates() -> None:
    events = bytes.fromhex("90 3C 64 0A") * 1001 + bytes.fromhex("FF 2F 00")
    with pytest.raises(CapacityExceeded):
        convert(build_xmi(events))


def test_all_errors_are_value_errors() -> None:
    for exc in (MalformedContainer, CapacityExceeded, TruncatedInput, MalformedEvent):
        assert issubclass(exc, XMIError)
        assert issubclass(exc, ValueError)


# ── options ───────────────────────────────────────────────────────────


def test_default_options() -> None:
    options = ConversionOptions()
    assert options.timebase == 960
    assert options.strict is True
    assert options.hold_final_notes is True


@pytest.mark.parametrize(
    "kwargs",
    [{"timebase": 0}, {"timebase": 0x8000}, {"timebase": "960"}, {"timebase": True}, {"strict": 1}],
)
def test_invalid_options(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        ConversionOptions(**kwargs)


def test_options_from_dict_merges_over_base() -> None:
    base = ConversionOptions(timebase=480, strict=False)
    options = options_from_dict({"hold_final_notes": False}, base=base)
    assert options == ConversionOptions(timebase=480, strict=False, hold_final_notes=False)


def test_options_from_dict_rejects_unknown_keys() -> None:
    with pytest.raises(ValueError, match="tempo"):
        options_from_dict({"tempo": 120})


def test_options_from_dict_requires_mapping() -> None:
    with pytest.raises(ValueError):
        options_from_dict([("timebase", 480)])


def test_load_options(tmp_path: Path) -> None:
    path = tmp_path / "options.json"
    path.write_text(json.dumps({"timebase": 192, "strict": False}), encoding="utf-8")
    assert load_options(path) == ConversionOptions(timebase=192, strict=False)
