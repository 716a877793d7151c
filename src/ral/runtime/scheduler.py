"""Scheduler and output bus.

The scheduler owns the global sample clock. Events are sorted by start
sample (stable, so ties keep declaration order) and each becomes a Voice.
For every sample index the scheduler starts the voices due at that index,
then asks every performing voice for exactly one sample, then retires the
voices that finished. Contributions are added in that fixed order, so the
rendered buffer is bit-reproducible.

Stretches of the timeline with no active voice are skipped outright: the bus
is zero there already.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

import numpy as np

from ral.ast_nodes import Program, ScoreEvent
from ral.components.base import ComponentContext
from ral.components.registry import ComponentRegistry, default_registry
from ral.errors import RenderError
from ral.grammar.analyzer import output_channel_count
from ral.runtime.voice import TraceSink, Voice, VoiceState, voice_seed
from ral.settings import RenderSettings

logger = logging.getLogger(__name__)


def seconds_to_samples(seconds: float, sample_rate: int) -> int:
    """Convert a time in seconds to a sample count, rounding half up."""
    return math.floor(seconds * sample_rate + 0.5)


class OutputBus:
    """Multichannel accumulation buffer shared by every voice of a render."""

    def __init__(self, frames: int, channels: int):
        self.buffer = np.zeros((frames, channels), dtype=np.float64)

    @property
    def frames(self) -> int:
        return self.buffer.shape[0]

    @property
    def channels(self) -> int:
        return self.buffer.shape[1]

    def add(self, channel: int, index: int, value: float) -> None:
        self.buffer[index, channel] += value


@dataclass
class RenderResult:
    buffer: np.ndarray
    sample_rate: int
    trace: list[str] = field(default_factory=list)

    @property
    def frames(self) -> int:
        return self.buffer.shape[0]

    @property
    def channels(self) -> int:
        return self.buffer.shape[1]

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate

    def trace_text(self) -> str:
        return "".join(self.trace)

    def peak(self) -> float:
        if self.buffer.size == 0:
            return 0.0
        return float(np.max(np.abs(self.buffer)))


@dataclass
class _Scheduled:
    event: ScoreEvent
    start: int
    duration: int


class Scheduler:
    """Renders one analyzed program."""

    def __init__(self, program: Program, settings: RenderSettings | None = None,
                 registry: ComponentRegistry | None = None,
                 trace: TraceSink | None = None):
        self.program = program
        self.settings = settings or RenderSettings()
        self.registry = registry or default_registry()
        self.trace_sink = trace
        self.trace: list[str] = []

        sr = self.settings.sample_rate
        self.timeline = sorted(
            (_Scheduled(e, seconds_to_samples(e.start, sr),
                        seconds_to_samples(e.duration, sr))
             for e in program.score),
            key=lambda s: s.start,
        )
        frames = max((s.start + s.duration for s in self.timeline), default=0)
        self.bus = OutputBus(frames, output_channel_count(program))

    def _emit(self, text: str) -> None:
        self.trace.append(text)
        if self.trace_sink is not None:
            self.trace_sink(text)

    def _voice(self, item: _Scheduled) -> Voice:
        instrument = self.program.instrument(item.event.instrument)
        if instrument is None:
            raise RenderError(f"No instrument named '{item.event.instrument}'",
                              item.event.index, item.event.instrument, item.start)
        ctx = ComponentContext(
            sample_rate=self.settings.sample_rate,
            a4_freq=self.settings.a4_freq,
            seed=voice_seed(self.settings.seed, instrument.name, item.start),
            sample_dir=self.settings.sample_dir,
        )
        return Voice(instrument, item.event, item.start, item.duration,
                     self.registry, ctx, self._emit)

    def run(self) -> RenderResult:
        pending = list(self.timeline)
        pending.reverse()           # pop() yields the earliest event
        active: list[Voice] = []
        sample = 0

        logger.info("Rendering %d event(s): %d channel(s), %d frame(s) at %d Hz",
                    len(self.timeline), self.bus.channels, self.bus.frames,
                    self.settings.sample_rate)

        while pending or active:
            if not active and pending[-1].start > sample:
                sample = pending[-1].start

            while pending and pending[-1].start == sample:
                voice = self._voice(pending.pop())
                voice.start(sample)
                if voice.state is VoiceState.PERFORMING:
                    active.append(voice)

            for voice in active:
                voice.perform(self.bus, sample)
            active = [v for v in active if v.state is not VoiceState.DONE]
            sample += 1

        return RenderResult(self.bus.buffer, self.settings.sample_rate, self.trace)


def render(program: Program, settings: RenderSettings | None = None,
           registry: ComponentRegistry | None = None,
           trace: TraceSink | None = None) -> RenderResult:
    """Render an analyzed program into a ``(frames, channels)`` buffer.

    Raises RenderError on the first runtime failure; nothing is returned in
    that case.
    """
    return Scheduler(program, settings, registry, trace).run()
