"""ral: compiler and offline renderer for an orchestra/score synthesis language."""

from __future__ import annotations

from pathlib import Path

from ral.ast_nodes import Program
from ral.components.registry import ComponentRegistry
from ral.grammar.analyzer import analyze
from ral.grammar.parser import parse_text
from ral.runtime.scheduler import RenderResult, render
from ral.runtime.voice import TraceSink
from ral.settings import RenderSettings

__version__ = "0.1.0"


def compile_text(text: str, registry: ComponentRegistry | None = None) -> Program:
    """Parse and analyze source text. Raises a CompileError subclass on failure."""
    return analyze(parse_text(text), registry)


def compile_file(path: str | Path, registry: ComponentRegistry | None = None) -> Program:
    return compile_text(Path(path).read_text(encoding="utf-8"), registry)


def render_text(text: str, settings: RenderSettings | None = None,
                registry: ComponentRegistry | None = None,
                trace: TraceSink | None = None) -> RenderResult:
    program = compile_text(text, registry)
    return render(program, settings, registry, trace)


def render_file(path: str | Path, settings: RenderSettings | None = None,
                registry: ComponentRegistry | None = None,
                trace: TraceSink | None = None) -> RenderResult:
    """Compile and render a source file.

    Relative sample paths resolve against the file's directory unless
    ``settings.sample_dir`` says otherwise.
    """
    path = Path(path)
    settings = settings or RenderSettings()
    if settings.sample_dir is None:
        settings = settings.with_overrides(sample_dir=path.parent)
    return render_text(path.read_text(encoding="utf-8"), settings, registry, trace)
