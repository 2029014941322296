"""Rescale delta-times from the XMIDI clock to a Standard MIDI timebase.

XMIDI runs at a fixed 120 ticks per second, i.e. 60 ticks per quarter note
at the reference tempo of 500000 microseconds per quarter.  A delta of ``d``
XMIDI ticks becomes::

    d * timebase * 500000 / (quarter_note_us * 60)

target ticks, rounded half up.  ``quarter_note_us`` follows the most recent
``FF 51`` tempo event, so a tempo change only affects the deltas after it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .container import WarnSink
from .cursor import ByteCursor
from .decoder import CHANNEL_EVENT_SIZES, META, SYSEX, SYSEX_ESCAPE
from .errors import MalformedEvent
from .varlen import encode_varlen, read_varlen

logger = logging.getLogger(__name__)

XMI_FREQ = 120
DEFAULT_TEMPO_BPM = 120
REFERENCE_TIMEBASE = XMI_FREQ * 60 // DEFAULT_TEMPO_BPM  # 60
REFERENCE_QUARTER_NOTE_US = 60 * 1_000_000 // DEFAULT_TEMPO_BPM  # 500000
DEFAULT_TIMEBASE = 960
SET_TEMPO = 0x51


@dataclass
class TempoState:
    timebase: int = DEFAULT_TIMEBASE
    quarter_note_us: int = REFERENCE_QUARTER_NOTE_US

    def scale(self, delta: int) -> int:
        return scale_delta(delta, self.timebase, self.quarter_note_us)


def scale_delta(
    delta: int,
    timebase: int = DEFAULT_TIMEBASE,
    quarter_note_us: int = REFERENCE_QUARTER_NOTE_US,
) -> int:
    """Convert ``delta`` XMIDI ticks to ``timebase`` ticks, rounding half up."""

    if quarter_note_us <= 0:
        raise ValueError(f"quarter_note_us must be positive, got {quarter_note_us}")
    numerator = delta * timebase * REFERENCE_QUARTER_NOTE_US
    denominator = quarter_note_us * REFERENCE_TIMEBASE
    return (2 * numerator + denominator) // (2 * denominator)


def _update_tempo(
    tempo: TempoState, payload: bytes, offset: int, *, strict: bool, warn: WarnSink
) -> None:
    if len(payload) < 3:
        message = f"tempo event at offset 0x{offset:X} has {len(payload)} data bytes, need 3"
    elif int.from_bytes(payload[:3], "big") == 0:
        message = f"zero tempo at offset 0x{offset:X}"
    else:
        tempo.quarter_note_us = int.from_bytes(payload[:3], "big")
        return
    if strict:
        raise MalformedEvent(message)
    warn(f"{message}; keeping {tempo.quarter_note_us} us/quarter")


def retime_track(
    stream: bytes,
    timebase: int = DEFAULT_TIMEBASE,
    *,
    strict: bool = True,
    warn: Optional[WarnSink] = None,
) -> bytes:
    """Rewrite every delta of a decoded stream; event bytes pass through."""

    if warn is None:
        warn = logger.warning
    tempo = TempoState(timebase=timebase)
    cursor = ByteCursor(stream)
    out = bytearray()
    # XMIDI ticks in front of a skipped byte, added to the next delta.
    carried = 0

    while not cursor.at_end():
        delta = carried + read_varlen(cursor)
        carried = 0
        scaled = encode_varlen(tempo.scale(delta))

        start = cursor.pos
        status = cursor.peek()
        if status & 0xF0 in CHANNEL_EVENT_SIZES:
            cursor.skip(CHANNEL_EVENT_SIZES[status & 0xF0])
        elif status in (SYSEX, SYSEX_ESCAPE):
            cursor.skip(1)
            cursor.skip(read_varlen(cursor))
        elif status == META:
            cursor.skip(1)
            meta_type = cursor.read_u8()
            length = cursor.read_u8()
            payload = cursor.read_bytes(length)
            if meta_type == SET_TEMPO:
                _update_tempo(tempo, payload, start, strict=strict, warn=warn)
                logger.debug(
                    "tempo %d us/quarter at output offset 0x%X",
                    tempo.quarter_note_us,
                    len(out),
                )
        else:
            message = f"unknown status byte 0x{status:02X} at offset 0x{start:X}"
            if strict:
                raise MalformedEvent(message)
            warn(f"{message}; skipping")
            cursor.skip(1)
            carried = delta
            continue
        out += scaled
        out += stream[start : cursor.pos]

    return bytes(out)
