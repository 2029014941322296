from __future__ import annotations

import struct
from pathlib import Path
from typing import Union

MTHD = b"MThd"
MTRK = b"MTrk"
MTHD_LENGTH = 6
FORMAT_0 = 0
MAX_DIVISION = 0x7FFF  # high bit set would mean SMPTE timing


def build_header(timebase: int) -> bytes:
    """Return the 14-byte ``MThd`` chunk of a single-track Format-0 file."""

    if not (1 <= timebase <= MAX_DIVISION):
        raise ValueError(f"timebase must be in [1, {MAX_DIVISION}], got {timebase}")
    return MTHD + struct.pack(">IHHH", MTHD_LENGTH, FORMAT_0, 1, timebase)


def build_smf(track: bytes, timebase: int) -> bytes:
    """Wrap raw track bytes into a complete Standard MIDI Format-0 file."""

    if len(track) > 0xFFFFFFFF:
        raise ValueError(f"track too long for an MTrk chunk ({len(track)} bytes)")
    return build_header(timebase) + MTRK + struct.pack(">I", len(track)) + track


def midi_path_for(path: Union[str, Path]) -> Path:
    """``music/intro.xmi`` -> ``music/intro.mid``."""

    return Path(path).with_suffix(".mid")
