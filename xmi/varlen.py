"""Variable-length integers found in XMIDI and Standard MIDI streams.

Two encodings are in play:

* MIDI variable-length quantity (VLQ): 7 data bits per byte, most
  significant group first, high bit set on every byte but the last.  Used
  for SMF delta-times, SysEx lengths and XMIDI note durations.
* XMIDI interval: a run of literal ``0x7F`` bytes (127 ticks each) closed by
  one byte below ``0x7F`` carrying the remainder.  Only appears between
  events in an XMIDI ``EVNT`` chunk.
"""

from __future__ import annotations

from .cursor import ByteCursor

XMI_DELAY_STEP = 0x7F


def encode_varlen(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"variable-length value must be non-negative, got {value}")
    groups = [value & 0x7F]
    value >>= 7
    while value:
        groups.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(groups))


def read_varlen(cursor: ByteCursor) -> int:
    value = 0
    while True:
        byte = cursor.read_u8()
        value = (value << 7) | (byte & 0x7F)
        if not byte & 0x80:
            return value


def read_xmi_delay(cursor: ByteCursor) -> int:
    """Read one XMIDI interval starting at a byte below ``0x80``.

    A status byte directly after a ``0x7F`` run ends the interval without
    being consumed.
    """

    delay = 0
    while cursor.peek() == XMI_DELAY_STEP:
        delay += cursor.read_u8()
        if cursor.at_end():
            return delay
    if cursor.peek() < 0x80:
        delay += cursor.read_u8()
    return delay
