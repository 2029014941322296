from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import TruncatedInput


@dataclass
class ByteCursor:
    """Forward-only read position into ``data``.

    ``end`` bounds the readable range (defaults to ``len(data)``); every read
    past it raises :class:`TruncatedInput` instead of returning short data.
    """

    data: bytes
    pos: int = 0
    end: Optional[int] = None

    def __post_init__(self) -> None:
        if self.end is None or self.end > len(self.data):
            self.end = len(self.data)
        if self.pos < 0 or self.pos > len(self.data):
            raise TruncatedInput(
                f"start offset {self.pos} outside buffer of {len(self.data)} bytes"
            )

    @property
    def remaining(self) -> int:
        return max(0, self.end - self.pos)

    def at_end(self) -> bool:
        return self.pos >= self.end

    def _need(self, count: int, what: str) -> None:
        if self.pos + count > self.end:
            raise TruncatedInput(
                f"{what} at offset 0x{self.pos:X} needs {count} bytes, "
                f"{self.remaining} left"
            )

    def peek(self, offset: int = 0) -> int:
        self._need(offset + 1, "peek")
        return self.data[self.pos + offset]

    def read_u8(self) -> int:
        self._need(1, "byte")
        value = self.data[self.pos]
        self.pos += 1
        return value

    def read_bytes(self, count: int) -> bytes:
        self._need(count, f"{count}-byte field")
        chunk = self.data[self.pos : self.pos + count]
        self.pos += count
        return bytes(chunk)

    def skip(self, count: int) -> None:
        self._need(count, f"skip of {count} bytes")
        self.pos += count

    def read_tag(self) -> bytes:
        return self.read_bytes(4)

    def read_u16_le(self) -> int:
        return int.from_bytes(self.read_bytes(2), "little")

    def read_u32_le(self) -> int:
        return int.from_bytes(self.read_bytes(4), "little")

    def read_u32_be(self) -> int:
        return int.from_bytes(self.read_bytes(4), "big")
