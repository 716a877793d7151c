"""Semantic analysis for parsed RAL programs.

Two passes: the first collects instrument definitions by name, the second
type-checks every ``init``/``perf`` body against a scope made of parameters,
locals declared so far and member variables, then checks score events
against the instruments they name.

Every expression node is annotated in place with its ValueType and Rate.
All errors are collected; if any were found the whole program is rejected
with a single SemanticAnalysisError.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

from ral.ast_nodes import (
    Program, Instrument, Function, FunctionKind, ScoreEvent,
    LocalDecl, Assign, Print, Output, CallStatement, Statement,
    IntLiteral, FloatLiteral, StringLiteral, Identifier,
    UnaryOp, BinaryOp, ComponentCall, Expr,
    ValueType, Rate, SymbolKind, SourcePos,
)
from ral.components.registry import ComponentRegistry, default_registry
from ral.errors import SemanticAnalysisError, SemanticError, SemanticErrorKind

NUMERIC = frozenset({ValueType.INT, ValueType.FLOAT, ValueType.AUDIO})

# What each declared/parameter type accepts
_ASSIGNABLE: dict[ValueType, frozenset[ValueType]] = {
    ValueType.INT: frozenset({ValueType.INT}),
    ValueType.FLOAT: frozenset({ValueType.INT, ValueType.FLOAT}),
    ValueType.STRING: frozenset({ValueType.STRING}),
    ValueType.AUDIO: frozenset({ValueType.INT, ValueType.FLOAT, ValueType.AUDIO}),
}

# Built-in Float inputs may also be driven by audio-rate signals
_COMPONENT_ACCEPTS: dict[ValueType, frozenset[ValueType]] = {
    ValueType.INT: frozenset({ValueType.INT}),
    ValueType.FLOAT: NUMERIC,
    ValueType.STRING: frozenset({ValueType.STRING}),
    ValueType.AUDIO: NUMERIC,
}


def is_assignable(target: ValueType, value: ValueType) -> bool:
    return value in _ASSIGNABLE[target]


def rate_of(vtype: ValueType | None) -> Rate:
    return Rate.AUDIO if vtype is ValueType.AUDIO else Rate.CONTROL


@dataclass
class Scope:
    """Names visible inside one function body."""
    members: dict[str, ValueType] = field(default_factory=dict)
    params: dict[str, ValueType] = field(default_factory=dict)
    locals: dict[str, ValueType] = field(default_factory=dict)

    def lookup(self, name: str) -> tuple[SymbolKind, ValueType] | None:
        if name in self.locals:
            return SymbolKind.LOCAL, self.locals[name]
        if name in self.params:
            return SymbolKind.PARAM, self.params[name]
        if name in self.members:
            return SymbolKind.MEMBER, self.members[name]
        return None

    def __contains__(self, name: str) -> bool:
        return self.lookup(name) is not None


def analyze(program: Program, registry: ComponentRegistry | None = None) -> Program:
    """Validate and annotate ``program``; raise SemanticAnalysisError on failure."""
    analyzer = Analyzer(program, registry)
    analyzer.run()
    if analyzer.errors:
        raise SemanticAnalysisError(analyzer.errors)
    return program


class Analyzer:
    """Type checker and name resolver for one program."""

    def __init__(self, program: Program, registry: ComponentRegistry | None = None):
        self.program = program
        self.registry = registry or default_registry()
        self.errors: list[SemanticError] = []
        self._instruments: dict[str, Instrument] = {}
        self._function: Function | None = None

    def _error(self, kind: SemanticErrorKind, message: str,
               pos: SourcePos | None) -> None:
        self.errors.append(SemanticError(kind, message, pos))

    def run(self) -> list[SemanticError]:
        # Pass 1: collect instruments
        for instrument in self.program.instruments:
            if instrument.name in self._instruments:
                self._error(SemanticErrorKind.DUPLICATE_DECLARATION,
                            f"Instrument '{instrument.name}' is already defined",
                            instrument.pos)
                continue
            self._instruments[instrument.name] = instrument

        # Pass 2: bodies, then the score
        for instrument in self.program.instruments:
            self._check_instrument(instrument)
        for event in self.program.score:
            self._check_event(event)

        return self.errors

    # ---------- Instruments ----------

    def _check_instrument(self, instrument: Instrument) -> None:
        members: dict[str, ValueType] = {}
        for member in instrument.members:
            if member.name in members:
                self._error(SemanticErrorKind.DUPLICATE_DECLARATION,
                            f"Member '{member.name}' is already declared in "
                            f"instrument '{instrument.name}'", member.pos)
                continue
            members[member.name] = member.type

        seen: set[FunctionKind] = set()
        for func in instrument.functions:
            if func.kind in seen:
                self._error(SemanticErrorKind.DUPLICATE_DECLARATION,
                            f"Instrument '{instrument.name}' already has a "
                            f"'{func.kind.value}' function", func.pos)
                continue
            seen.add(func.kind)
            self._check_function(func, Scope(members=dict(members)))

    def _check_function(self, func: Function, scope: Scope) -> None:
        self._function = func
        for param in func.params:
            if param.name in scope:
                self._error(SemanticErrorKind.DUPLICATE_DECLARATION,
                            f"Parameter '{param.name}' is already declared", param.pos)
                continue
            scope.params[param.name] = param.type

        for stmt in func.body:
            self._check_statement(stmt, scope)
        self._function = None

    def _check_statement(self, stmt: Statement, scope: Scope) -> None:
        if isinstance(stmt, LocalDecl):
            self._check_local(stmt, scope)
        elif isinstance(stmt, Assign):
            self._check_assign(stmt, scope)
        elif isinstance(stmt, Print):
            if stmt.value is not None:
                self._expr(stmt.value, scope)
        elif isinstance(stmt, Output):
            if self._function is not None and self._function.kind is FunctionKind.INIT:
                self._error(SemanticErrorKind.INVALID_OUTPUT_IN_INIT,
                            "'output' is not allowed inside 'init'", stmt.pos)
            for channel in stmt.channels:
                vtype = self._expr(channel, scope)
                if vtype is ValueType.STRING:
                    self._error(SemanticErrorKind.TYPE_MISMATCH,
                                "Cannot output a String", channel.pos)
        elif isinstance(stmt, CallStatement):
            self._call(stmt.call, scope)

    def _check_local(self, stmt: LocalDecl, scope: Scope) -> None:
        if isinstance(stmt.value, ComponentCall):
            returns = self._call(stmt.value, scope)
        else:
            vtype = self._expr(stmt.value, scope)
            returns = (vtype,) if vtype is not None else None

        if returns is not None:
            if len(returns) != len(stmt.names):
                self._error(SemanticErrorKind.ARITY_MISMATCH,
                            f"Declaration binds {len(stmt.names)} name(s) but the "
                            f"initializer produces {len(returns)} value(s)", stmt.pos)
            else:
                for name, vtype in zip(stmt.names, returns):
                    if not is_assignable(stmt.type, vtype):
                        self._error(SemanticErrorKind.TYPE_MISMATCH,
                                    f"Cannot initialize '{name}: {stmt.type}' "
                                    f"with a {vtype} value", stmt.pos)

        # Declare even on error so later uses do not cascade
        for name in stmt.names:
            if name in scope:
                self._error(SemanticErrorKind.DUPLICATE_DECLARATION,
                            f"'{name}' is already declared in this scope", stmt.pos)
                continue
            scope.locals[name] = stmt.type

    def _check_assign(self, stmt: Assign, scope: Scope) -> None:
        value_type = self._expr(stmt.value, scope)
        target = stmt.target
        found = scope.lookup(target.name)
        if found is None:
            self._error(SemanticErrorKind.UNDECLARED_IDENTIFIER,
                        f"Cannot find variable '{target.name}' in this scope", target.pos)
            return

        kind, target_type = found
        target.kind = kind
        target.vtype = target_type
        target.rate = rate_of(target_type)
        if kind is SymbolKind.PARAM:
            self._error(SemanticErrorKind.INVALID_ASSIGNMENT,
                        f"Cannot reassign parameter '{target.name}'", target.pos)
            return
        if value_type is not None and not is_assignable(target_type, value_type):
            self._error(SemanticErrorKind.TYPE_MISMATCH,
                        f"Cannot assign a {value_type} value to "
                        f"'{target.name}: {target_type}'", stmt.pos)

    # ---------- Expressions ----------

    def _expr(self, expr: Expr, scope: Scope) -> ValueType | None:
        """Infer and record the type of a single-valued expression.

        Returns None when the expression is ill-formed (already reported).
        """
        vtype = self._infer(expr, scope)
        expr.vtype = vtype
        expr.rate = rate_of(vtype)
        return vtype

    def _infer(self, expr: Expr, scope: Scope) -> ValueType | None:
        if isinstance(expr, IntLiteral):
            return ValueType.INT
        if isinstance(expr, FloatLiteral):
            return ValueType.FLOAT
        if isinstance(expr, StringLiteral):
            return ValueType.STRING

        if isinstance(expr, Identifier):
            found = scope.lookup(expr.name)
            if found is None:
                self._error(SemanticErrorKind.UNDECLARED_IDENTIFIER,
                            f"Couldn't find variable '{expr.name}' in this scope", expr.pos)
                return None
            expr.kind, vtype = found
            return vtype

        if isinstance(expr, UnaryOp):
            vtype = self._expr(expr.operand, scope)
            if vtype is not None and vtype not in NUMERIC:
                self._error(SemanticErrorKind.TYPE_MISMATCH,
                            f"Cannot negate a {vtype} value", expr.pos)
                return None
            return vtype

        if isinstance(expr, BinaryOp):
            left = self._expr(expr.left, scope)
            right = self._expr(expr.right, scope)
            if left is None or right is None:
                return None
            return self._binary_type(expr, left, right)

        if isinstance(expr, ComponentCall):
            returns = self._call(expr, scope)
            if returns is None:
                return None
            if len(returns) != 1:
                self._error(SemanticErrorKind.ARITY_MISMATCH,
                            f"'{expr.name}' returns {len(returns)} values but is used "
                            "where one value is expected", expr.pos)
                return None
            return returns[0]

        raise TypeError(f"Unexpected expression node: {expr!r}")

    def _binary_type(self, expr: BinaryOp, left: ValueType,
                     right: ValueType) -> ValueType | None:
        if ValueType.STRING in (left, right):
            if expr.op == "+" and left is right:
                return ValueType.STRING
            self._error(SemanticErrorKind.TYPE_MISMATCH,
                        f"Operator '{expr.op}' is not defined for {left} and {right}",
                        expr.pos)
            return None
        if ValueType.AUDIO in (left, right):
            return ValueType.AUDIO
        if ValueType.FLOAT in (left, right):
            return ValueType.FLOAT
        return ValueType.INT

    def _call(self, call: ComponentCall, scope: Scope) -> tuple[ValueType, ...] | None:
        arg_types = [self._expr(arg, scope) for arg in call.args]

        component = self.registry.get(call.name)
        if component is None:
            self._error(SemanticErrorKind.UNKNOWN_COMPONENT,
                        f"Unknown component '{call.name}'", call.pos)
            return None

        if len(call.args) != component.arity:
            self._error(SemanticErrorKind.ARITY_MISMATCH,
                        f"'{call.name}' expects {component.arity} argument(s) "
                        f"but got {len(call.args)}", call.pos)
        else:
            for i, (arg, expected, actual) in enumerate(
                    zip(call.args, component.params, arg_types)):
                if actual is not None and actual not in _COMPONENT_ACCEPTS[expected]:
                    self._error(SemanticErrorKind.TYPE_MISMATCH,
                                f"'{call.name}' argument {i + 1} expects {expected} "
                                f"but got {actual}", arg.pos)

        call.return_types = component.returns
        call.vtype = component.returns[0]
        call.rate = Rate.AUDIO if ValueType.AUDIO in component.returns else Rate.CONTROL
        return component.returns

    # ---------- Score ----------

    def _check_event(self, event: ScoreEvent) -> None:
        scope = Scope()
        init_types = [self._expr(arg, scope) for arg in event.init_args or []]
        perf_types = [self._expr(arg, scope) for arg in event.perf_args or []]

        if event.start < 0:
            self._error(SemanticErrorKind.INVALID_EVENT_TIMING,
                        f"Start time must be >= 0, got {event.start}", event.pos)
        if event.duration <= 0:
            self._error(SemanticErrorKind.INVALID_EVENT_TIMING,
                        f"Duration must be > 0, got {event.duration}", event.pos)

        instrument = self._instruments.get(event.instrument)
        if instrument is None:
            self._error(SemanticErrorKind.UNDECLARED_INSTRUMENT,
                        f"No instrument named '{event.instrument}'", event.pos)
            return

        self._check_event_args(event, instrument.init, "init", event.init_args, init_types)
        self._check_event_args(event, instrument.perf, "perf", event.perf_args, perf_types)

    def _check_event_args(self, event: ScoreEvent, func: Function | None, label: str,
                          args: list[Expr] | None,
                          types: list[ValueType | None]) -> None:
        params = func.params if func is not None else []
        given = args or []
        if len(given) != len(params):
            self._error(SemanticErrorKind.ARITY_MISMATCH,
                        f"Instrument '{event.instrument}' expects {len(params)} "
                        f"{label} arg(s) but got {len(given)} in score event", event.pos)
            return
        for i, (arg, param, actual) in enumerate(zip(given, params, types)):
            if actual is not None and not is_assignable(param.type, actual):
                self._error(SemanticErrorKind.TYPE_MISMATCH,
                            f"Instrument '{event.instrument}' expected {param.type} for "
                            f"{label} arg at position {i} but got {actual}", arg.pos)


# ---------- Program walkers ----------

def walk_expr(expr: Expr) -> Iterator[Expr]:
    """Yield ``expr`` and every nested sub-expression, depth first."""
    yield expr
    if isinstance(expr, UnaryOp):
        yield from walk_expr(expr.operand)
    elif isinstance(expr, BinaryOp):
        yield from walk_expr(expr.left)
        yield from walk_expr(expr.right)
    elif isinstance(expr, ComponentCall):
        for arg in expr.args:
            yield from walk_expr(arg)


def statement_exprs(stmt: Statement) -> list[Expr]:
    if isinstance(stmt, (LocalDecl, Assign)):
        return [stmt.value]
    if isinstance(stmt, Print):
        return [stmt.value] if stmt.value is not None else []
    if isinstance(stmt, Output):
        return list(stmt.channels)
    if isinstance(stmt, CallStatement):
        return [stmt.call]
    return []


def collect_call_sites(func: Function) -> list[ComponentCall]:
    """All component calls in a function body, in source order."""
    calls: list[ComponentCall] = []
    for stmt in func.body:
        for root in statement_exprs(stmt):
            calls.extend(e for e in walk_expr(root) if isinstance(e, ComponentCall))
    return calls


def output_channel_count(program: Program) -> int:
    """Widest ``output(...)`` anywhere in the program."""
    width = 0
    for instrument in program.instruments:
        for func in instrument.functions:
            for stmt in func.body:
                if isinstance(stmt, Output):
                    width = max(width, len(stmt.channels))
    return width
