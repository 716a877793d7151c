"""Voice runtime: one running instance of an instrument for one score event.

Lifecycle::

    PENDING --start()--> INITIALIZING --(init done)--> PERFORMING
    PERFORMING --(duration reached)--> DONE
    any state --(RenderError)--> DONE, error propagates

One ``perf`` invocation produces exactly one output sample. Member storage
and generator states belong to the voice alone and are dropped when it
reaches DONE. Generator states are keyed by the call site number the parser
gave each component call, so two textually identical calls never share
state while one call keeps its state across samples.
"""

from __future__ import annotations

import logging
import zlib
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from ral.ast_nodes import (
    Instrument, Function, ScoreEvent,
    LocalDecl, Assign, Print, Output, CallStatement, Statement,
    IntLiteral, FloatLiteral, StringLiteral, Identifier,
    UnaryOp, BinaryOp, ComponentCall, Expr,
    ValueType, SymbolKind,
)
from ral.components.base import Component, ComponentContext, Scalar
from ral.components.registry import ComponentRegistry
from ral.errors import (
    DivisionByZeroError, RenderError, UndefinedComponentStateError,
)
from ral.grammar.analyzer import collect_call_sites

logger = logging.getLogger(__name__)

TraceSink = Callable[[str], None]

_DEFAULTS: dict[ValueType, Scalar] = {
    ValueType.INT: 0,
    ValueType.FLOAT: 0.0,
    ValueType.STRING: "",
    ValueType.AUDIO: 0.0,
}


class VoiceState(Enum):
    PENDING = "pending"
    INITIALIZING = "initializing"
    PERFORMING = "performing"
    DONE = "done"


class Bus(Protocol):
    def add(self, channel: int, index: int, value: float) -> None:
        ...


@dataclass
class Frame:
    """Storage for one function invocation."""
    params: dict[str, Scalar] = field(default_factory=dict)
    locals: dict[str, Scalar] = field(default_factory=dict)


def coerce(vtype: ValueType, value: Scalar) -> Scalar:
    if vtype is ValueType.FLOAT or vtype is ValueType.AUDIO:
        return float(value)
    return value


def format_value(value: Scalar) -> str:
    return str(value)


def voice_seed(seed: int, instrument: str, start_sample: int) -> int:
    """Seed for a voice's random generators, independent of other events."""
    return zlib.crc32(f"{seed}:{instrument}:{start_sample}".encode("utf-8"))


def _int_div(left: int, right: int) -> int:
    # Truncates toward zero
    q = abs(left) // abs(right)
    return q if (left >= 0) == (right > 0) else -q


class Voice:
    """Executes an instrument's ``init`` once and its ``perf`` per sample."""

    def __init__(self, instrument: Instrument, event: ScoreEvent,
                 start_sample: int, duration_samples: int,
                 registry: ComponentRegistry, ctx: ComponentContext,
                 trace: TraceSink | None = None):
        self.instrument = instrument
        self.event = event
        self.start_sample = start_sample
        self.duration_samples = duration_samples
        self.registry = registry
        self.ctx = ctx
        self.trace = trace or (lambda text: None)

        self.state = VoiceState.PENDING
        self.samples_done = 0
        self.members: dict[str, Scalar] = {}
        self.generator_states: dict[int, Any] = {}
        self._components: dict[int, Component] = {}
        self._perf_params: dict[str, Scalar] = {}
        self._sample_index = start_sample

    @property
    def end_sample(self) -> int:
        return self.start_sample + self.duration_samples

    def _fail(self, error: RenderError) -> RenderError:
        self._release()
        return error.with_context(self.event.index, self.instrument.name,
                                  self._sample_index)

    # ---------- Lifecycle ----------

    def start(self, sample_index: int) -> None:
        """PENDING -> INITIALIZING -> PERFORMING (or DONE for an empty span)."""
        if self.state is not VoiceState.PENDING:
            raise RuntimeError(f"Voice for event #{self.event.index} already started")
        self._sample_index = sample_index
        self.state = VoiceState.INITIALIZING
        logger.debug("Voice start: event #%d '%s' at sample %d for %d samples",
                     self.event.index, self.instrument.name, sample_index,
                     self.duration_samples)
        try:
            self._allocate()
            init = self.instrument.init
            if init is not None:
                frame = Frame(params=self._bind_args(init, self.event.init_args))
                self._run(init.body, frame, None)
            perf = self.instrument.perf
            if perf is not None:
                self._perf_params = self._bind_args(perf, self.event.perf_args)
        except RenderError as exc:
            raise self._fail(exc)

        if self.duration_samples <= 0:
            self._release()
        else:
            self.state = VoiceState.PERFORMING

    def perform(self, bus: Bus, sample_index: int) -> None:
        """Run ``perf`` once, writing this sample's outputs into ``bus``."""
        if self.state is not VoiceState.PERFORMING:
            raise RuntimeError(f"Voice for event #{self.event.index} is {self.state.value}")
        self._sample_index = sample_index
        perf = self.instrument.perf
        if perf is not None:
            try:
                self._run(perf.body, Frame(params=dict(self._perf_params)), bus)
            except RenderError as exc:
                raise self._fail(exc)

        self.samples_done += 1
        if self.samples_done >= self.duration_samples:
            self._release()

    def _release(self) -> None:
        if self.state is not VoiceState.DONE:
            logger.debug("Voice done: event #%d '%s' after %d samples",
                         self.event.index, self.instrument.name, self.samples_done)
        self.state = VoiceState.DONE
        self.members.clear()
        self.generator_states.clear()
        self._components.clear()

    def _allocate(self) -> None:
        self.members = {m.name: _DEFAULTS[m.type] for m in self.instrument.members}
        for func in self.instrument.functions:
            for call in collect_call_sites(func):
                component = self.registry.get(call.name)
                if component is None:
                    continue
                self._components[call.call_site] = component
                if component.stateful:
                    self.generator_states[call.call_site] = component.create_state(
                        self.ctx, call.call_site)

    def _bind_args(self, func: Function, args: list[Expr] | None) -> dict[str, Scalar]:
        # Score arguments are constant expressions evaluated at control rate
        frame = Frame()
        values = [self._eval(arg, frame) for arg in args or []]
        return {p.name: coerce(p.type, v) for p, v in zip(func.params, values)}

    # ---------- Statements ----------

    def _run(self, body: list[Statement], frame: Frame, bus: Bus | None) -> None:
        for stmt in body:
            if isinstance(stmt, Output):
                for channel, expr in enumerate(stmt.channels):
                    value = self._eval(expr, frame)
                    bus.add(channel, self._sample_index, float(value))
            elif isinstance(stmt, LocalDecl):
                if isinstance(stmt.value, ComponentCall):
                    values = self._call(stmt.value, frame)
                else:
                    values = (self._eval(stmt.value, frame),)
                for name, value in zip(stmt.names, values):
                    frame.locals[name] = coerce(stmt.type, value)
            elif isinstance(stmt, Assign):
                target = stmt.target
                value = coerce(target.vtype, self._eval(stmt.value, frame))
                if target.kind is SymbolKind.MEMBER:
                    self.members[target.name] = value
                else:
                    frame.locals[target.name] = value
            elif isinstance(stmt, CallStatement):
                self._call(stmt.call, frame)
            elif isinstance(stmt, Print):
                if stmt.value is None:
                    self.trace("\n" if stmt.newline else "\t")
                else:
                    text = format_value(self._eval(stmt.value, frame))
                    self.trace(text + "\n" if stmt.newline else text)

    # ---------- Expressions ----------

    def _eval(self, expr: Expr, frame: Frame) -> Scalar:
        if isinstance(expr, (FloatLiteral, IntLiteral, StringLiteral)):
            return expr.value

        if isinstance(expr, Identifier):
            if expr.kind is SymbolKind.LOCAL:
                return frame.locals[expr.name]
            if expr.kind is SymbolKind.PARAM:
                return frame.params[expr.name]
            return self.members[expr.name]

        if isinstance(expr, BinaryOp):
            left = self._eval(expr.left, frame)
            right = self._eval(expr.right, frame)
            return self._binary(expr, left, right)

        if isinstance(expr, ComponentCall):
            return self._call(expr, frame)[0]

        if isinstance(expr, UnaryOp):
            return -self._eval(expr.operand, frame)

        raise TypeError(f"Unexpected expression node: {expr!r}")

    def _binary(self, expr: BinaryOp, left: Scalar, right: Scalar) -> Scalar:
        op = expr.op
        if expr.vtype is ValueType.STRING:
            return left + right
        if op == "/" and right == 0:
            raise DivisionByZeroError("Division by zero")
        if expr.vtype is ValueType.INT:
            if op == "+":
                return left + right
            if op == "-":
                return left - right
            if op == "*":
                return left * right
            return _int_div(left, right)
        # Float and Audio arithmetic
        left = float(left)
        right = float(right)
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        return left / right

    def _call(self, call: ComponentCall, frame: Frame) -> tuple[Scalar, ...]:
        component = self._components.get(call.call_site)
        if component is None:
            raise UndefinedComponentStateError(
                f"No component bound to call site {call.call_site} ('{call.name}')")
        args = [coerce(p, self._eval(a, frame)) for p, a in zip(component.params, call.args)]
        state = None
        if component.stateful:
            state = self.generator_states.get(call.call_site)
            if state is None:
                raise UndefinedComponentStateError(
                    f"No generator state for call site {call.call_site} ('{call.name}')")
        return component.process(state, args, self.ctx)
