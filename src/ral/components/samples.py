"""Sample-file playback.

Files are decoded once per resolved path with soundfile and shared
read-only between every voice that plays them. Each call site keeps its own
playhead; past the end of the file the players output silence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

import numpy as np
import soundfile as sf

from ral.ast_nodes import ValueType
from ral.components.base import Component, ComponentContext
from ral.errors import ScoreReferenceError

logger = logging.getLogger(__name__)


@dataclass
class PlayheadState:
    index: int = 0


@lru_cache(maxsize=None)
def load_sample(path: str) -> np.ndarray:
    """Decode a sound file into a read-only ``(frames, channels)`` float64 array."""
    try:
        data, sr = sf.read(path, dtype="float64", always_2d=True)
    except (RuntimeError, OSError) as exc:
        raise ScoreReferenceError(f"Cannot load sample file '{path}': {exc}") from exc
    logger.debug("Loaded %s: %d frames, %d channel(s), %d Hz",
                 path, data.shape[0], data.shape[1], sr)
    data.flags.writeable = False
    return data


def resolve_sample_path(path: str, ctx: ComponentContext) -> str:
    p = Path(path)
    if not p.is_absolute() and ctx.sample_dir is not None:
        p = ctx.sample_dir / p
    return str(p)


def _frame(state: PlayheadState, path: str, ctx: ComponentContext) -> np.ndarray | None:
    data = load_sample(resolve_sample_path(path, ctx))
    if state.index >= data.shape[0]:
        return None
    frame = data[state.index]
    state.index += 1
    return frame


class WavPlayer(Component):
    """Stereo player: returns (left, right). Mono files feed both sides."""
    name = "WavPlayer"
    params = (ValueType.STRING,)
    returns = (ValueType.AUDIO, ValueType.AUDIO)
    stateful = True

    def create_state(self, ctx, call_site):
        return PlayheadState()

    def process(self, state: PlayheadState, args, ctx: ComponentContext):
        frame = _frame(state, args[0], ctx)
        if frame is None:
            return (0.0, 0.0)
        if frame.shape[0] == 1:
            value = float(frame[0])
            return (value, value)
        return (float(frame[0]), float(frame[1]))


class Sample(Component):
    """Mono player: all channels of the file summed into one signal."""
    name = "Sample"
    params = (ValueType.STRING,)
    returns = (ValueType.AUDIO,)
    stateful = True

    def create_state(self, ctx, call_site):
        return PlayheadState()

    def process(self, state: PlayheadState, args, ctx: ComponentContext):
        frame = _frame(state, args[0], ctx)
        if frame is None:
            return (0.0,)
        return (float(frame.sum()),)
