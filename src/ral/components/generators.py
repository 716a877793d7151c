"""Signal generators: oscillators, envelopes and noise.

All generators advance their state by exactly one sample per call.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from ral.ast_nodes import ValueType
from ral.components.base import Component, ComponentContext
from ral.errors import ComponentArgumentError

TWO_PI = 2.0 * math.pi

# Oscil shape selectors
SHAPE_SINE = 0
SHAPE_SAW = 1
SHAPE_SQUARE = 2
SHAPE_TRI = 3

_NOISE_BLOCK = 1024


@dataclass
class PhaseState:
    phase: float = 0.0


@dataclass
class ClockState:
    clock: int = 0


@dataclass
class NoiseState:
    rng: np.random.Generator
    block: np.ndarray = field(default_factory=lambda: np.empty(0))
    index: int = 0


def _advance(state: PhaseState, freq: float, sample_rate: int) -> None:
    state.phase += freq / sample_rate
    if state.phase >= 1.0 or state.phase < 0.0:
        state.phase -= math.floor(state.phase)


class Sine(Component):
    name = "Sine"
    params = (ValueType.FLOAT, ValueType.FLOAT)
    returns = (ValueType.AUDIO,)
    stateful = True

    def create_state(self, ctx, call_site):
        return PhaseState()

    def process(self, state: PhaseState, args, ctx: ComponentContext):
        amp, freq = args
        value = math.sin(TWO_PI * state.phase) * amp
        _advance(state, freq, ctx.sample_rate)
        return (value,)


class Oscil(Component):
    """Amplitude, frequency, shape (0 sine, 1 saw, 2 square, 3 triangle)."""
    name = "Oscil"
    params = (ValueType.FLOAT, ValueType.FLOAT, ValueType.INT)
    returns = (ValueType.AUDIO,)
    stateful = True

    def create_state(self, ctx, call_site):
        return PhaseState()

    def process(self, state: PhaseState, args, ctx: ComponentContext):
        amp, freq, shape = args
        p = state.phase
        if shape == SHAPE_SINE:
            value = math.sin(TWO_PI * p)
        elif shape == SHAPE_SAW:
            value = 2.0 * p - 1.0
        elif shape == SHAPE_SQUARE:
            value = -1.0 if p < 0.5 else 1.0
        elif shape == SHAPE_TRI:
            value = 1.0 - 4.0 * abs(p - 0.5)
        else:
            raise ComponentArgumentError(
                f"Oscil: no shape for value {shape} (expected 0-3)")
        _advance(state, freq, ctx.sample_rate)
        return (value * amp,)


def adsr_level(clock: float, attack: float, decay: float, sustain: float,
               release: float, total: float) -> float:
    """Envelope level at ``clock``; all times are in samples."""
    if clock < attack:
        return clock / attack
    if clock - attack < decay:
        level = 1.0 - (clock - attack) / decay
        return sustain + (1.0 - sustain) * level
    release_start = total - release
    if clock < release_start:
        return sustain
    if clock - release_start < release:
        return sustain * (1.0 - (clock - release_start) / release)
    return 0.0


class Adsr(Component):
    """Attack, decay, sustain level, release, total (seconds) -> control level."""
    name = "Adsr"
    params = (ValueType.FLOAT,) * 5
    returns = (ValueType.FLOAT,)
    stateful = True

    def create_state(self, ctx, call_site):
        return ClockState()

    def process(self, state: ClockState, args, ctx: ComponentContext):
        attack, decay, sustain, release, total = args
        sr = ctx.sample_rate
        value = adsr_level(state.clock, attack * sr, decay * sr, sustain,
                           release * sr, total * sr)
        state.clock += 1
        return (value,)


class Padsr(Adsr):
    """Audio-rate variant of Adsr."""
    name = "Padsr"
    returns = (ValueType.AUDIO,)


class Noise(Component):
    """Uniform white noise in [-amp, amp)."""
    name = "Noise"
    params = (ValueType.FLOAT,)
    returns = (ValueType.AUDIO,)
    stateful = True

    def create_state(self, ctx, call_site):
        return NoiseState(rng=np.random.default_rng([ctx.seed, call_site]))

    def process(self, state: NoiseState, args, ctx: ComponentContext):
        if state.index >= len(state.block):
            state.block = state.rng.uniform(-1.0, 1.0, _NOISE_BLOCK)
            state.index = 0
        value = float(state.block[state.index])
        state.index += 1
        return (value * args[0],)
