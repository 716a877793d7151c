"""CLI entry point for ral: compile and render orchestra/score programs."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import soundfile as sf

from ral import compile_text
from ral.ast_nodes import (
    Program, Function,
    IntLiteral, FloatLiteral, StringLiteral, Identifier,
    UnaryOp, BinaryOp, ComponentCall,
)
from ral.errors import CompileError, RenderError, SettingsError, format_error
from ral.grammar.analyzer import collect_call_sites, output_channel_count
from ral.runtime.scheduler import render
from ral.settings import RenderSettings, parse_settings_file


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="ral",
        description="Compile a RAL orchestra/score program and render it to a sound file",
    )
    parser.add_argument(
        "input",
        help="Path to the RAL source file",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output sound file (e.g. out.wav). Without it, print a render summary",
    )
    parser.add_argument(
        "--settings",
        default=None,
        help="JSON settings file (sample_rate, seed, a4_freq, sample_dir, subtype)",
    )
    parser.add_argument(
        "--sample-rate",
        type=int,
        default=None,
        help="Output sample rate in Hz (overrides the settings file)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for noise generators (overrides the settings file)",
    )
    parser.add_argument(
        "--list-instruments",
        action="store_true",
        help="List instruments and score events, then exit",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Compile only: report errors without rendering",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log voice activity and sample loading",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Error: file not found: {input_path}", file=sys.stderr)
        sys.exit(1)

    # Settings
    try:
        settings = parse_settings_file(args.settings) if args.settings else RenderSettings()
        settings = settings.with_overrides(sample_rate=args.sample_rate, seed=args.seed)
    except SettingsError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    if settings.sample_dir is None:
        settings = settings.with_overrides(sample_dir=input_path.parent)

    # Compile
    source = input_path.read_text(encoding="utf-8")
    try:
        program = compile_text(source)
    except CompileError as e:
        print(format_error(e, source, str(input_path)), file=sys.stderr)
        sys.exit(1)

    if args.list_instruments:
        _print_program(program)
        return

    if args.check:
        print(f"{input_path}: OK ({len(program.instruments)} instrument(s), "
              f"{len(program.score)} event(s))")
        return

    # Render
    try:
        result = render(program, settings, trace=lambda text: sys.stdout.write(text))
    except RenderError as e:
        print(f"Error rendering {input_path}: {e}", file=sys.stderr)
        sys.exit(1)

    # Output
    if args.output:
        if result.channels == 0:
            print(f"Error: {input_path} has no output channels; nothing to write",
                  file=sys.stderr)
            sys.exit(1)
        output_path = Path(args.output)
        try:
            sf.write(str(output_path), result.buffer, result.sample_rate,
                     subtype=settings.subtype)
        except (RuntimeError, ValueError, TypeError) as e:
            print(f"Error writing {output_path}: {e}", file=sys.stderr)
            sys.exit(1)
        print(f"Written: {output_path}", file=sys.stderr)
    else:
        print(f"{result.frames} frames, {result.channels} channel(s), "
              f"{result.sample_rate} Hz, peak {result.peak():.6f}")


def _print_program(program: Program) -> None:
    """Print instruments and score events in a readable format."""
    print(f"Instruments: {len(program.instruments)}")
    print(f"Output channels: {output_channel_count(program)}")
    for instrument in program.instruments:
        print(f"\n{'=' * 60}")
        print(f"Instrument {instrument.name}")
        print(f"{'=' * 60}")
        for member in instrument.members:
            print(f"  member {member.name}: {member.type}")
        for func in instrument.functions:
            print(f"  {_signature(func)}")
            for call in collect_call_sites(func):
                returns = ", ".join(str(t) for t in call.return_types)
                print(f"    call #{call.call_site} {_expr_str(call)} -> {returns}")

    print(f"\nScore: {len(program.score)} event(s)")
    for event in program.score:
        parts = [f"  [{event.index}] {event.instrument} {event.start} {event.duration}"]
        if event.init_args is not None:
            parts.append(f"init({', '.join(_expr_str(a) for a in event.init_args)})")
        if event.perf_args is not None:
            parts.append(f"perf({', '.join(_expr_str(a) for a in event.perf_args)})")
        print(" ".join(parts))


def _signature(func: Function) -> str:
    params = ", ".join(f"{p.name}: {p.type}" for p in func.params)
    return f"{func.kind.value}({params})"


def _expr_str(e) -> str:
    if isinstance(e, (IntLiteral, FloatLiteral)):
        return str(e.value)
    if isinstance(e, StringLiteral):
        return f'"{e.value}"'
    if isinstance(e, Identifier):
        return e.name
    if isinstance(e, UnaryOp):
        return f"-{_expr_str(e.operand)}"
    if isinstance(e, BinaryOp):
        return f"({_expr_str(e.left)} {e.op} {_expr_str(e.right)})"
    if isinstance(e, ComponentCall):
        return f"{e.name}({', '.join(_expr_str(a) for a in e.args)})"
    return repr(e)


if __name__ == "__main__":
    main()
