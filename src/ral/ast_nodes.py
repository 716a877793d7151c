"""AST node definitions for RAL orchestra/score programs.

A program is an optional ``instruments`` block and an optional ``score``
block. Expression nodes carry two slots the semantic analyzer fills in:
``vtype`` (the inferred ValueType) and ``rate`` (Audio or Control). The
runtime reads these tags instead of inspecting values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ValueType(Enum):
    INT = "Int"
    FLOAT = "Float"
    STRING = "String"
    AUDIO = "Audio"

    def __str__(self) -> str:
        return self.value


class Rate(Enum):
    CONTROL = "control"
    AUDIO = "audio"


class FunctionKind(Enum):
    INIT = "init"
    PERF = "perf"


class SymbolKind(Enum):
    """Where an identifier resolved to."""
    MEMBER = "member"
    PARAM = "param"
    LOCAL = "local"


@dataclass(frozen=True)
class SourcePos:
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


# --- Expressions ---

@dataclass
class IntLiteral:
    value: int
    pos: SourcePos | None = None
    vtype: ValueType | None = field(default=None, repr=False, compare=False)
    rate: Rate | None = field(default=None, repr=False, compare=False)


@dataclass
class FloatLiteral:
    value: float
    pos: SourcePos | None = None
    vtype: ValueType | None = field(default=None, repr=False, compare=False)
    rate: Rate | None = field(default=None, repr=False, compare=False)


@dataclass
class StringLiteral:
    value: str
    pos: SourcePos | None = None
    vtype: ValueType | None = field(default=None, repr=False, compare=False)
    rate: Rate | None = field(default=None, repr=False, compare=False)


@dataclass
class Identifier:
    name: str
    pos: SourcePos | None = None
    vtype: ValueType | None = field(default=None, repr=False, compare=False)
    rate: Rate | None = field(default=None, repr=False, compare=False)
    kind: SymbolKind | None = field(default=None, repr=False, compare=False)


@dataclass
class UnaryOp:
    op: str             # "-"
    operand: Expr
    pos: SourcePos | None = None
    vtype: ValueType | None = field(default=None, repr=False, compare=False)
    rate: Rate | None = field(default=None, repr=False, compare=False)


@dataclass
class BinaryOp:
    op: str             # "+", "-", "*", "/"
    left: Expr
    right: Expr
    pos: SourcePos | None = None
    vtype: ValueType | None = field(default=None, repr=False, compare=False)
    rate: Rate | None = field(default=None, repr=False, compare=False)


@dataclass
class ComponentCall:
    """Call to a built-in generator.

    ``call_site`` is unique per lexical position in the program and keys the
    generator state a voice keeps for this call.
    """
    name: str
    args: list[Expr] = field(default_factory=list)
    call_site: int = 0
    pos: SourcePos | None = None
    vtype: ValueType | None = field(default=None, repr=False, compare=False)
    rate: Rate | None = field(default=None, repr=False, compare=False)
    # One entry per returned value, filled by the analyzer
    return_types: tuple[ValueType, ...] = field(default=(), repr=False, compare=False)


Expr = (
    IntLiteral | FloatLiteral | StringLiteral | Identifier
    | UnaryOp | BinaryOp | ComponentCall
)


# --- Statements ---

@dataclass
class LocalDecl:
    """``local a, b: Type = expr;`` -- binds 1..N names positionally."""
    names: list[str]
    type: ValueType
    value: Expr
    pos: SourcePos | None = None


@dataclass
class Assign:
    target: Identifier
    value: Expr
    pos: SourcePos | None = None


@dataclass
class Print:
    value: Expr | None = None
    newline: bool = False
    pos: SourcePos | None = None


@dataclass
class Output:
    channels: list[Expr] = field(default_factory=list)
    pos: SourcePos | None = None


@dataclass
class CallStatement:
    call: ComponentCall
    pos: SourcePos | None = None


Statement = LocalDecl | Assign | Print | Output | CallStatement


# --- Instruments ---

@dataclass
class MemberVar:
    name: str
    type: ValueType
    pos: SourcePos | None = None


@dataclass
class Param:
    name: str
    type: ValueType
    pos: SourcePos | None = None


@dataclass
class Function:
    kind: FunctionKind
    params: list[Param] = field(default_factory=list)
    body: list[Statement] = field(default_factory=list)
    pos: SourcePos | None = None


@dataclass
class Instrument:
    name: str
    members: list[MemberVar] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    pos: SourcePos | None = None

    @property
    def init(self) -> Function | None:
        return next((f for f in self.functions if f.kind is FunctionKind.INIT), None)

    @property
    def perf(self) -> Function | None:
        return next((f for f in self.functions if f.kind is FunctionKind.PERF), None)


# --- Score ---

@dataclass
class ScoreEvent:
    instrument: str
    start: float                # seconds
    duration: float             # seconds
    init_args: list[Expr] | None = None   # None when init(...) was omitted
    perf_args: list[Expr] | None = None
    index: int = 0              # declaration order within the score
    pos: SourcePos | None = None


# --- Top-level program ---

@dataclass
class Program:
    instruments: list[Instrument] = field(default_factory=list)
    score: list[ScoreEvent] = field(default_factory=list)

    def instrument(self, name: str) -> Instrument | None:
        return next((i for i in self.instruments if i.name == name), None)
