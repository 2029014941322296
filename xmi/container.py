"""Walk the IFF chunk layout of an ``.xmi`` file down to its ``EVNT`` data.

Layout of a single-sequence XMIDI file (all chunk lengths big-endian)::

    FORM <len> XDIR
      INFO <len> <sequence count u16 LE>
    CAT  <len> XMID
      FORM <len> XMID
        TIMB <len> (patch, bank) * n
        RBRN <len> <count u16 LE> (id u16 LE, dest u32 LE) * count   [optional]
        EVNT <len> <event stream>

Only the first sequence is located; further ``FORM XMID`` entries in the
``CAT `` are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .cursor import ByteCursor
from .errors import MalformedContainer, TruncatedInput

logger = logging.getLogger(__name__)

WarnSink = Callable[[str], None]


@dataclass(frozen=True)
class Timbre:
    patch: int
    bank: int


@dataclass(frozen=True)
class Branch:
    """One ``RBRN`` entry: a branch id and its byte offset into ``EVNT``."""

    id: int
    destination: int


@dataclass(frozen=True)
class XMIContainer:
    event_start: int  # offset of the first event byte in the file
    event_len: int
    sequence_count: int
    timbres: Tuple[Timbre, ...] = ()
    branches: Tuple[Branch, ...] = ()

    @property
    def event_range(self) -> Tuple[int, int]:
        return self.event_start, self.event_len

    def event_bytes(self, data: bytes) -> bytes:
        return bytes(data[self.event_start : self.event_start + self.event_len])


def _expect_tag(
    cursor: ByteCursor, tag: bytes, *, strict: bool, warn: WarnSink
) -> None:
    offset = cursor.pos
    found = cursor.read_tag()
    if found == tag:
        return
    message = (
        f"not an XMIDI file: expected {tag.decode('ascii')!r} at 0x{offset:X}, "
        f"found {found!r}"
    )
    if strict:
        raise MalformedContainer(message)
    warn(message)


def parse_container(
    data: bytes,
    *,
    strict: bool = True,
    warn: Optional[WarnSink] = None,
) -> XMIContainer:
    """Locate the event stream of the first sequence in ``data``.

    In lenient mode (``strict=False``) a wrong chunk tag is reported through
    ``warn`` and parsing continues at the fixed offset the tag should have
    occupied.
    """

    if warn is None:
        warn = logger.warning
    cursor = ByteCursor(data)

    def expect(tag: bytes) -> None:
        _expect_tag(cursor, tag, strict=strict, warn=warn)

    expect(b"FORM")
    form_len = cursor.read_u32_be()
    expect(b"XDIR")
    expect(b"INFO")
    info_len = cursor.read_u32_be()
    sequence_count = cursor.read_u16_le()
    logger.debug(
        "FORM XDIR len=%d INFO len=%d sequences=%d", form_len, info_len, sequence_count
    )

    expect(b"CAT ")
    cat_len = cursor.read_u32_be()
    expect(b"XMID")
    expect(b"FORM")
    seq_form_len = cursor.read_u32_be()
    expect(b"XMID")
    logger.debug("CAT len=%d FORM XMID len=%d", cat_len, seq_form_len)

    expect(b"TIMB")
    timb_len = cursor.read_u32_be()
    timb = cursor.read_bytes(timb_len)
    timbres: List[Timbre] = [
        Timbre(patch=timb[i], bank=timb[i + 1]) for i in range(0, timb_len - 1, 2)
    ]
    logger.debug("TIMB len=%d timbres=%d", timb_len, len(timbres))

    branches: List[Branch] = []
    if cursor.remaining >= 4 and cursor.data[cursor.pos : cursor.pos + 4] == b"RBRN":
        cursor.skip(4)
        rbrn_len = cursor.read_u32_be()
        count = cursor.read_u16_le()
        for _ in range(count):
            branch_id = cursor.read_u16_le()
            destination = cursor.read_u32_le()
            branches.append(Branch(id=branch_id, destination=destination))
        logger.debug("RBRN len=%d branches=%d", rbrn_len, count)

    expect(b"EVNT")
    event_len = cursor.read_u32_be()
    event_start = cursor.pos
    if event_start + event_len > len(data):
        raise TruncatedInput(
            f"EVNT chunk at 0x{event_start:X} declares {event_len} bytes, "
            f"only {len(data) - event_start} present"
        )
    logger.debug("EVNT start=0x%X len=%d", event_start, event_len)

    return XMIContainer(
        event_start=event_start,
        event_len=event_len,
        sequence_count=sequence_count,
        timbres=tuple(timbres),
        branches=tuple(branches),
    )
