"""Sample-accurate rendering of analyzed programs."""

from ral.runtime.scheduler import OutputBus, RenderResult, Scheduler, render, seconds_to_samples
from ral.runtime.voice import Voice, VoiceState

__all__ = [
    "OutputBus",
    "RenderResult",
    "Scheduler",
    "Voice",
    "VoiceState",
    "render",
    "seconds_to_samples",
]
