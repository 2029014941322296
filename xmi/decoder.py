"""Turn an XMIDI ``EVNT`` stream into a MIDI-style event stream.

XMIDI stores no Note-Off events: every Note-On carries its duration as a
variable-length tick count right after the velocity byte.  The decoder keeps
the sounding notes in a queue ordered by the tick at which they end and
writes a Note-Off (velocity 0x7F) into the output as soon as the timeline
passes that tick.  Delta-times in the output are MIDI varints but still
count XMIDI ticks (120 per second); see :mod:`xmi.retime` for rescaling.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from .container import WarnSink
from .cursor import ByteCursor
from .errors import CapacityExceeded, MalformedEvent
from .varlen import encode_varlen, read_varlen, read_xmi_delay

logger = logging.getLogger(__name__)

MAX_PENDING = 1000
NOTE_OFF_VELOCITY = 0x7F
END_OF_TRACK = b"\xFF\x2F\x00"

META = 0xFF
SYSEX = 0xF0
SYSEX_ESCAPE = 0xF7
NOTE_ON = 0x90

# Channel message sizes including the status byte, keyed by high nibble.
CHANNEL_EVENT_SIZES = {
    0x80: 3,  # note off
    0x90: 3,  # note on (+ XMIDI duration)
    0xA0: 3,  # key pressure
    0xB0: 3,  # control change
    0xC0: 2,  # program change
    0xD0: 2,  # channel pressure
    0xE0: 3,  # pitch bend
}


@dataclass(order=True)
class PendingNoteOff:
    """A sounding note.  Ordering is by end tick, then by arrival."""

    due: int  # absolute XMIDI tick at which the note ends
    seq: int
    status: int = field(compare=False)
    note: int = field(compare=False)

    def remaining_ticks(self, now: int) -> int:
        return self.due - now

    def to_bytes(self) -> bytes:
        return bytes((self.status & 0x8F, self.note, NOTE_OFF_VELOCITY))


class NoteOffQueue:
    """Bounded min-heap of :class:`PendingNoteOff`."""

    def __init__(self, capacity: int = MAX_PENDING) -> None:
        self.capacity = capacity
        self._heap: List[PendingNoteOff] = []
        self._seq = 0

    def __len__(self) -> int:
        return len(self._heap)

    def push(self, due: int, status: int, note: int) -> PendingNoteOff:
        if len(self._heap) >= self.capacity:
            raise CapacityExceeded(
                f"more than {self.capacity} notes sounding at once "
                f"(note 0x{note:02X} on status 0x{status:02X})"
            )
        entry = PendingNoteOff(due=due, seq=self._seq, status=status, note=note)
        self._seq += 1
        heapq.heappush(self._heap, entry)
        return entry

    def next_due(self) -> Optional[int]:
        return self._heap[0].due if self._heap else None

    def pop_before(self, tick: int) -> Iterator[PendingNoteOff]:
        """Yield, in order, every entry ending strictly before ``tick``."""
        while self._heap and self._heap[0].due < tick:
            yield heapq.heappop(self._heap)

    def drain(self) -> Iterator[PendingNoteOff]:
        while self._heap:
            yield heapq.heappop(self._heap)


class EventDecoder:
    def __init__(
        self,
        data: bytes,
        start: int = 0,
        length: Optional[int] = None,
        *,
        strict: bool = True,
        warn: Optional[WarnSink] = None,
        hold_final_notes: bool = True,
        capacity: int = MAX_PENDING,
    ) -> None:
        end = None if length is None else start + length
        self.cursor = ByteCursor(data, pos=start, end=end)
        self.strict = strict
        self.warn = warn if warn is not None else logger.warning
        self.hold_final_notes = hold_final_notes
        self.pending = NoteOffQueue(capacity)
        self.out = bytearray()
        self.now = 0
        self.last_emit = 0

    def decode(self) -> bytes:
        cursor = self.cursor
        while not cursor.at_end():
            lead = cursor.peek()
            if lead < 0x80:
                self._advance(read_xmi_delay(cursor))
            elif lead == META and cursor.peek(1) == 0x2F:
                self._end_of_track()
                return bytes(self.out)
            else:
                self._event(lead)
        logger.debug("event stream ended at 0x%X without end-of-track", cursor.pos)
        self._end_of_track()
        return bytes(self.out)

    def _emit(self, tick: int, event: bytes) -> None:
        self.out += encode_varlen(tick - self.last_emit)
        self.out += event
        self.last_emit = tick

    def _advance(self, delay: int) -> None:
        target = self.now + delay
        for off in self.pending.pop_before(target):
            self._emit(off.due, off.to_bytes())
        self.now = target

    def _event(self, lead: int) -> None:
        cursor = self.cursor
        start = cursor.pos
        if lead == META:
            cursor.skip(2)
            cursor.skip(cursor.read_u8())
        elif lead in (SYSEX, SYSEX_ESCAPE):
            cursor.skip(1)
            cursor.skip(read_varlen(cursor))
        elif lead & 0xF0 in CHANNEL_EVENT_SIZES:
            cursor.skip(CHANNEL_EVENT_SIZES[lead & 0xF0])
            if lead & 0xF0 == NOTE_ON:
                note = cursor.data[start + 1]
                duration = read_varlen(cursor)
                self._emit(self.now, cursor.data[start : start + 3])
                self.pending.push(self.now + duration, lead, note)
                return
        else:
            message = f"unknown status byte 0x{lead:02X} at offset 0x{start:X}"
            if self.strict:
                raise MalformedEvent(message)
            self.warn(f"{message}; skipping")
            cursor.skip(1)
            return
        self._emit(self.now, cursor.data[start : cursor.pos])

    def _end_of_track(self) -> None:
        flushed = 0
        for off in self.pending.drain():
            if self.hold_final_notes:
                self.now = max(self.now, off.due)
            self._emit(self.now, off.to_bytes())
            flushed += 1
        logger.debug("flushed %d note-offs at end of track", flushed)
        self._emit(self.now, END_OF_TRACK)


def decode_events(
    data: bytes,
    start: int = 0,
    length: Optional[int] = None,
    *,
    strict: bool = True,
    warn: Optional[WarnSink] = None,
    hold_final_notes: bool = True,
) -> bytes:
    """Decode ``length`` bytes of XMIDI events starting at ``start``.

    Returns delta/event pairs with explicit Note-Offs, timed in XMIDI ticks
    and terminated by ``FF 2F 00``.
    """

    decoder = EventDecoder(
        data,
        start,
        length,
        strict=strict,
        warn=warn,
        hold_final_notes=hold_final_notes,
    )
    return decoder.decode()
