"""Pitch conversions: MIDI note number <-> frequency, note name -> MIDI.

Note names accept three conventions, all numbered so that octave 4 holds
middle C (MIDI 60):
- Anglo: C, D, E, F, G, A, B with optional accidental (C#4, Bb3)
- French solfege: do, re, mi, fa, sol, la, si with optional b/# (sib4)
- Indian sargam: sa, re, ga, ma, pa, dha, ni (sa4)

MIDI = (octave + 1) * 12 + semitone for every convention.
"""

from __future__ import annotations

import re

from ral.ast_nodes import ValueType
from ral.components.base import Component, ComponentContext
from ral.errors import ComponentArgumentError

# --- French solfege (do = C) ---
_FR_BASE: dict[str, int] = {
    "do": 0, "re": 2, "mi": 4, "fa": 5,
    "sol": 7, "la": 9, "si": 11,
    "dob": -1, "do#": 1,
    "reb": 1, "re#": 3,
    "mib": 3, "mi#": 5,
    "fab": 4, "fa#": 6,
    "solb": 6, "sol#": 8,
    "lab": 8, "la#": 10,
    "sib": 10, "si#": 12,
}

# --- Indian sargam (sa = C) ---
_INDIAN_BASE: dict[str, int] = {
    "sa": 0, "ga": 4, "ma": 5,
    "pa": 7, "dha": 9, "ni": 11,
}

# --- Anglo (C = 0) ---
_ANGLO_BASE: dict[str, int] = {
    "C": 0, "D": 2, "E": 4, "F": 5,
    "G": 7, "A": 9, "B": 11,
    "C#": 1, "Db": 1, "D#": 3, "Eb": 3,
    "E#": 5, "Fb": 4, "F#": 6, "Gb": 6,
    "G#": 8, "Ab": 8, "A#": 10, "Bb": 10,
    "B#": 12, "Cb": -1,
}

RE_NOTE = re.compile(r"^([A-Za-z]+[#b]?)(-?\d+)$")


def note_to_midi(name: str, octave: int) -> int:
    """Convert a note name + octave to a MIDI note number.

    Raises ValueError for names outside the three conventions.
    """
    if name in _ANGLO_BASE:
        return (octave + 1) * 12 + _ANGLO_BASE[name]
    lower = name.lower()
    if lower in _FR_BASE:
        return (octave + 1) * 12 + _FR_BASE[lower]
    if lower in _INDIAN_BASE:
        return (octave + 1) * 12 + _INDIAN_BASE[lower]
    raise ValueError(f"Unknown note name: {name!r}")


def parse_note(text: str) -> int:
    """Parse a combined note string like ``"C#4"`` or ``"sib3"``."""
    m = RE_NOTE.match(text.strip())
    if not m:
        raise ValueError(f"Not a note: {text!r}")
    return note_to_midi(m.group(1), int(m.group(2)))


def midi_to_freq(midi: float, a4_freq: float = 440.0) -> float:
    return a4_freq * 2.0 ** ((midi - 69.0) / 12.0)


class Mtof(Component):
    name = "Mtof"
    params = (ValueType.INT,)
    returns = (ValueType.FLOAT,)

    def process(self, state, args, ctx: ComponentContext):
        return (midi_to_freq(args[0], ctx.a4_freq),)


class Ntom(Component):
    name = "Ntom"
    params = (ValueType.STRING,)
    returns = (ValueType.INT,)

    def process(self, state, args, ctx: ComponentContext):
        try:
            return (parse_note(args[0]),)
        except ValueError as exc:
            raise ComponentArgumentError(f"Ntom: {exc}") from exc
