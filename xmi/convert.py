"""End-to-end XMIDI -> Standard MIDI conversion."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Mapping, Optional

from .container import WarnSink, parse_container
from .decoder import decode_events
from .retime import DEFAULT_TIMEBASE, retime_track
from .smf import MAX_DIVISION, build_smf

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionOptions:
    timebase: int = DEFAULT_TIMEBASE
    strict: bool = True
    # Place leftover note-offs at their real end time instead of at the
    # end-of-track position.
    hold_final_notes: bool = True

    def __post_init__(self) -> None:
        _int_in_range(self.timebase, where="timebase", low=1, high=MAX_DIVISION)
        _require_bool(self.strict, where="strict")
        _require_bool(self.hold_final_notes, where="hold_final_notes")


def _int_in_range(value: object, *, where: str, low: int, high: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{where} must be an integer")
    if not (low <= value <= high):
        raise ValueError(f"{where} must be in [{low}, {high}]")
    return value


def _require_bool(value: object, *, where: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{where} must be true or false")
    return value


def options_from_dict(
    raw: object, *, base: Optional[ConversionOptions] = None
) -> ConversionOptions:
    """Build options from a JSON-style mapping, starting from ``base``."""

    if not isinstance(raw, Mapping):
        raise ValueError("options must be an object")
    known = {f.name for f in fields(ConversionOptions)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"unknown option(s): {', '.join(unknown)}")
    merged = dict(vars(base or ConversionOptions()))
    merged.update(raw)
    return ConversionOptions(**merged)


def load_options(
    path: Path, *, base: Optional[ConversionOptions] = None
) -> ConversionOptions:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return options_from_dict(raw, base=base)


def convert_track(
    data: bytes,
    options: Optional[ConversionOptions] = None,
    *,
    warn: Optional[WarnSink] = None,
) -> bytes:
    """Return the ``MTrk`` payload for the first sequence in ``data``."""

    options = options or ConversionOptions()
    container = parse_container(data, strict=options.strict, warn=warn)
    decoded = decode_events(
        data,
        container.event_start,
        container.event_len,
        strict=options.strict,
        warn=warn,
        hold_final_notes=options.hold_final_notes,
    )
    track = retime_track(decoded, options.timebase, strict=options.strict, warn=warn)
    logger.debug(
        "decoded %d event bytes -> %d intermediate -> %d track bytes",
        container.event_len,
        len(decoded),
        len(track),
    )
    return track


def convert(
    data: bytes,
    options: Optional[ConversionOptions] = None,
    *,
    warn: Optional[WarnSink] = None,
) -> bytes:
    """Convert a whole ``.xmi`` file into a Standard MIDI Format-0 file."""

    options = options or ConversionOptions()
    return build_smf(convert_track(data, options, warn=warn), options.timebase)
