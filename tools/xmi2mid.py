#!/usr/bin/env python3
"""Convert an XMIDI (.xmi) file into a Standard MIDI Format-0 file.

Examples
--------
    python tools/xmi2mid.py music/intro.xmi                 # writes music/intro.mid
    python tools/xmi2mid.py intro.xmi -o out/intro.mid --timebase 480
    python tools/xmi2mid.py intro.xmi --info                # inspect, write nothing
"""

from __future__ import annotations

import argparse
import io
import logging
from collections import Counter
from pathlib import Path
import sys
from typing import List

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import mido

from xmi.container import XMIContainer, parse_container
from xmi.convert import ConversionOptions, convert, load_options, options_from_dict
from xmi.errors import XMIError
from xmi.smf import midi_path_for


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Convert an XMIDI file to a Standard MIDI Format-0 file",
    )
    parser.add_argument("input", type=Path, help="Path to the .xmi file")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output .mid path (default: input path with a .mid extension)",
    )
    parser.add_argument(
        "--timebase",
        type=int,
        default=None,
        help="Ticks per quarter note of the output file (default 960)",
    )
    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Warn about bad chunk tags and unknown events instead of failing",
    )
    parser.add_argument(
        "--legacy-flush",
        action="store_true",
        help="Flush notes still sounding at end-of-track with delta 0",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with conversion options (flags override it)",
    )
    parser.add_argument(
        "--info",
        action="store_true",
        help="Print container and MIDI summary without writing output",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _resolve_options(args: argparse.Namespace) -> ConversionOptions:
    options = ConversionOptions()
    if args.config is not None:
        options = load_options(args.config, base=options)
    overrides = {}
    if args.timebase is not None:
        overrides["timebase"] = args.timebase
    if args.lenient:
        overrides["strict"] = False
    if args.legacy_flush:
        overrides["hold_final_notes"] = False
    return options_from_dict(overrides, base=options)


def summarize_container(container: XMIContainer) -> List[str]:
    lines = [
        f"sequences: {container.sequence_count}",
        f"timbres:   {len(container.timbres)}",
    ]
    for timbre in container.timbres:
        lines.append(f"  patch@bank: {timbre.patch:3d}@{timbre.bank:3d}")
    if container.branches:
        lines.append(f"branches:  {len(container.branches)}")
        for branch in container.branches:
            lines.append(f"  id/dest: {branch.id:04X}@{branch.destination:08X}")
    lines.append(
        f"events:    {container.event_len} bytes @ 0x{container.event_start:X}"
    )
    return lines


def summarize_midi(midi_bytes: bytes) -> List[str]:
    """Read the converted file back with mido and describe it."""

    mid = mido.MidiFile(file=io.BytesIO(midi_bytes))
    counts: Counter[str] = Counter()
    notes = 0
    for track in mid.tracks:
        for msg in track:
            counts[msg.type] += 1
            if msg.type == "note_on" and msg.velocity > 0:
                notes += 1
    lines = [
        f"midi type {mid.type}, {len(mid.tracks)} track(s), "
        f"{mid.ticks_per_beat} ticks/beat, {mid.length:.2f}s",
        f"notes: {notes}",
    ]
    for kind, count in sorted(counts.items()):
        lines.append(f"  {kind:<18} {count}")
    return lines


def main(argv: List[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        options = _resolve_options(args)
    except (OSError, ValueError) as exc:
        print(f"error: bad options: {exc}", file=sys.stderr)
        return 1

    try:
        data = args.input.read_bytes()
    except OSError as exc:
        print(f"error: cannot read {args.input}: {exc}", file=sys.stderr)
        return 1

    try:
        midi_bytes = convert(data, options)
    except XMIError as exc:
        print(f"error: {args.input}: {exc}", file=sys.stderr)
        return 1

    if args.info:
        # convert() has already reported any tag warnings.
        container = parse_container(data, strict=options.strict, warn=lambda message: None)
        for line in summarize_container(container):
            print(line)
        for line in summarize_midi(midi_bytes):
            print(line)
        return 0

    out_path = args.output if args.output is not None else midi_path_for(args.input)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(midi_bytes)
    except OSError as exc:
        print(f"error: cannot write {out_path}: {exc}", file=sys.stderr)
        return 1

    print(f"Converted {args.input} -> {out_path} ({len(midi_bytes)} bytes)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
