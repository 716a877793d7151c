"""Error taxonomy for compiling and rendering RAL programs.

Compile-time errors (LexError, ParseError, SemanticAnalysisError) carry a
source position; render-time errors carry the event index, instrument name
and sample index at which the render was aborted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ral.ast_nodes import SourcePos


class RalError(Exception):
    """Base error for the ral package."""


class SettingsError(RalError):
    """Raised when render settings cannot be loaded or are invalid."""


# --- Compile time ---

class CompileError(RalError):
    """A source-level error. ``text`` is the offending token, if any."""

    def __init__(self, message: str, pos: SourcePos | None = None,
                 text: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.pos = pos
        self.text = text

    def __str__(self) -> str:
        if self.pos is None:
            return self.message
        return f"{self.pos}: {self.message}"


class LexError(CompileError):
    pass


class ParseError(CompileError):
    pass


class SemanticErrorKind(Enum):
    UNDECLARED_IDENTIFIER = "UndeclaredIdentifier"
    DUPLICATE_DECLARATION = "DuplicateDeclaration"
    TYPE_MISMATCH = "TypeMismatch"
    UNKNOWN_COMPONENT = "UnknownComponent"
    ARITY_MISMATCH = "ArityMismatch"
    INVALID_OUTPUT_IN_INIT = "InvalidOutputInInit"
    UNDECLARED_INSTRUMENT = "UndeclaredInstrument"
    INVALID_ASSIGNMENT = "InvalidAssignment"
    INVALID_EVENT_TIMING = "InvalidEventTiming"


@dataclass
class SemanticError:
    """A single diagnostic produced by the semantic analyzer."""
    kind: SemanticErrorKind
    message: str
    pos: SourcePos | None = None

    def __str__(self) -> str:
        loc = f"{self.pos} " if self.pos is not None else ""
        return f"[{self.kind.value}] {loc}{self.message}"


class SemanticAnalysisError(CompileError):
    """All semantic errors found in a program, reported together."""

    def __init__(self, errors: list[SemanticError]) -> None:
        first = errors[0] if errors else None
        super().__init__(
            f"{len(errors)} semantic error(s)",
            pos=first.pos if first else None,
        )
        self.errors = errors

    def kinds(self) -> set[SemanticErrorKind]:
        return {e.kind for e in self.errors}

    def __str__(self) -> str:
        return "\n".join(str(e) for e in self.errors)


# --- Render time ---

class RenderError(RalError):
    """Aborts the whole render. Context is filled in by the scheduler."""

    def __init__(self, message: str, event_index: int | None = None,
                 instrument: str | None = None,
                 sample_index: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.event_index = event_index
        self.instrument = instrument
        self.sample_index = sample_index

    def with_context(self, event_index: int, instrument: str,
                     sample_index: int) -> RenderError:
        if self.event_index is None:
            self.event_index = event_index
        if self.instrument is None:
            self.instrument = instrument
        if self.sample_index is None:
            self.sample_index = sample_index
        return self

    def __str__(self) -> str:
        parts = []
        if self.event_index is not None:
            parts.append(f"event #{self.event_index}")
        if self.instrument is not None:
            parts.append(f"instrument '{self.instrument}'")
        if self.sample_index is not None:
            parts.append(f"sample {self.sample_index}")
        if not parts:
            return self.message
        return f"{self.message} ({', '.join(parts)})"


class DivisionByZeroError(RenderError):
    pass


class UndefinedComponentStateError(RenderError):
    """Internal invariant violation: a stateful call site has no state."""


class ScoreReferenceError(RenderError):
    """A resource referenced by the program (e.g. a sample file) is unusable."""


class ComponentArgumentError(RenderError):
    """An argument value is outside the domain a built-in accepts."""


# --- Formatting ---

def format_error(error: CompileError, source: str, path: str = "<input>") -> str:
    """Format a compile error with the offending source line and a caret."""
    if isinstance(error, SemanticAnalysisError):
        return "\n".join(
            _format_located(str(e.kind.value) + ": " + e.message, e.pos, "", source, path)
            for e in error.errors
        )
    return _format_located(error.message, error.pos, error.text, source, path)


def _format_located(message: str, pos: SourcePos | None, text: str,
                    source: str, path: str) -> str:
    lines = [f"error: {message}"]
    if pos is None:
        lines.append(f"  --> {path}")
        return "\n".join(lines)

    lines.append(f"  --> {path}:{pos.line}:{pos.column}")
    source_lines = source.split("\n")
    code = source_lines[pos.line - 1] if 0 < pos.line <= len(source_lines) else ""
    gutter = " " * len(str(pos.line))
    lines.append(f"{gutter} |")
    lines.append(f"{pos.line} | {code}")
    marker = "^" * max(1, len(text.split("\n")[0]))
    lines.append(f"{gutter} | {' ' * (pos.column - 1)}{marker}")
    return "\n".join(lines)
