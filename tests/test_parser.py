"""Tests for the RAL recursive-descent parser."""

import pytest

from ral.ast_nodes import (
    Assign, BinaryOp, CallStatement, ComponentCall, FloatLiteral, FunctionKind,
    Identifier, IntLiteral, LocalDecl, Output, Print, StringLiteral, UnaryOp,
    ValueType,
)
from ral.errors import ParseError
from ral.grammar.parser import parse_text


def _perf_body(body: str):
    """Parse statements inside a single perf() and return the body."""
    ast = parse_text(f"instruments {{ T {{ perf() {{ {body} }} }} }}")
    return ast.instruments[0].perf.body


def _expr(text: str):
    return _perf_body(f"output({text});")[0].channels[0]


class TestParseProgram:
    def test_empty(self):
        ast = parse_text("")
        assert ast.instruments == []
        assert ast.score == []

    def test_only_score(self):
        ast = parse_text("score { }")
        assert ast.instruments == []
        assert ast.score == []

    def test_blocks_in_any_order(self):
        ast = parse_text("score { A(0 1) } instruments { A { } }")
        assert ast.instruments[0].name == "A"
        assert ast.score[0].instrument == "A"

    def test_duplicate_block(self):
        with pytest.raises(ParseError, match="Duplicate 'score' block"):
            parse_text("score { } score { }")

    def test_garbage_at_top_level(self):
        with pytest.raises(ParseError, match="top level"):
            parse_text("Kick { }")


class TestParseInstruments:
    def test_members_and_functions(self):
        ast = parse_text("""
            instruments {
                Osc {
                    freq: Float;
                    name: String;
                    init(note: Int, label: String) { }
                    perf(amp: Float) { }
                }
            }
        """)
        osc = ast.instruments[0]
        assert osc.name == "Osc"
        assert [(m.name, m.type) for m in osc.members] == [
            ("freq", ValueType.FLOAT), ("name", ValueType.STRING)]
        assert osc.init.kind is FunctionKind.INIT
        assert [(p.name, p.type) for p in osc.init.params] == [
            ("note", ValueType.INT), ("label", ValueType.STRING)]
        assert [p.name for p in osc.perf.params] == ["amp"]

    def test_functions_optional(self):
        ast = parse_text("instruments { Empty { } }")
        assert ast.instruments[0].init is None
        assert ast.instruments[0].perf is None

    def test_audio_parameter_rejected(self):
        with pytest.raises(ParseError, match="cannot be Audio"):
            parse_text("instruments { A { perf(x: Audio) { } } }")

    def test_audio_member_allowed(self):
        ast = parse_text("instruments { A { sig: Audio; } }")
        assert ast.instruments[0].members[0].type is ValueType.AUDIO

    def test_output_in_init_parses(self):
        # Rejected later by the analyzer
        ast = parse_text("instruments { A { init() { output(1.0); } } }")
        assert isinstance(ast.instruments[0].init.body[0], Output)

    def test_unknown_type(self):
        with pytest.raises(ParseError, match="type name"):
            parse_text("instruments { A { x: Double; } }")


class TestParseStatements:
    def test_local_single(self):
        stmt = _perf_body("local x: Float = 1.5;")[0]
        assert isinstance(stmt, LocalDecl)
        assert stmt.names == ["x"]
        assert stmt.type is ValueType.FLOAT
        assert isinstance(stmt.value, FloatLiteral)

    def test_local_multi_binding(self):
        stmt = _perf_body('local left, right: Audio = WavPlayer("a.wav");')[0]
        assert stmt.names == ["left", "right"]
        assert isinstance(stmt.value, ComponentCall)
        assert stmt.value.name == "WavPlayer"
        assert isinstance(stmt.value.args[0], StringLiteral)

    def test_assignment(self):
        stmt = _perf_body("x = x + 1;")[0]
        assert isinstance(stmt, Assign)
        assert stmt.target.name == "x"
        assert isinstance(stmt.value, BinaryOp)

    def test_print_and_println(self):
        body = _perf_body('print("a"); println(); println(3);')
        assert isinstance(body[0], Print) and not body[0].newline
        assert body[1].value is None and body[1].newline
        assert isinstance(body[2].value, IntLiteral)

    def test_output_channels(self):
        stmt = _perf_body("output(a, b, c);")[0]
        assert [c.name for c in stmt.channels] == ["a", "b", "c"]

    def test_call_statement(self):
        stmt = _perf_body("Sine(1.0, 440.0);")[0]
        assert isinstance(stmt, CallStatement)
        assert stmt.call.name == "Sine"

    def test_missing_semicolon(self):
        with pytest.raises(ParseError, match="';'") as exc_info:
            _perf_body("local x: Int = 1 output(x);")
        assert exc_info.value.text == "output"

    def test_bare_identifier_statement(self):
        with pytest.raises(ParseError, match="Expected '=' or '\\('"):
            _perf_body("x;")


class TestParseExpressions:
    def test_precedence(self):
        expr = _expr("1 + 2 * 3")
        assert expr.op == "+"
        assert isinstance(expr.left, IntLiteral)
        assert expr.right.op == "*"

    def test_left_associative(self):
        expr = _expr("a - b - c")
        assert expr.op == "-"
        assert expr.left.op == "-"
        assert expr.left.left.name == "a"
        assert expr.right.name == "c"

    def test_division_left_associative(self):
        expr = _expr("a / b * c")
        assert expr.op == "*"
        assert expr.left.op == "/"

    def test_parentheses_override(self):
        expr = _expr("(1 + 2) * 3")
        assert expr.op == "*"
        assert expr.left.op == "+"

    def test_unary_minus(self):
        expr = _expr("-x * 2")
        assert expr.op == "*"
        assert isinstance(expr.left, UnaryOp)
        assert isinstance(expr.left.operand, Identifier)

    def test_nested_calls(self):
        expr = _expr("Sine(0.5, Mtof(60))")
        assert expr.name == "Sine"
        assert expr.args[1].name == "Mtof"

    def test_call_sites_sequential(self):
        body = _perf_body("""
            local a: Audio = Sine(1.0, 440.0);
            local b: Audio = Sine(1.0, 440.0);
        """)
        assert body[0].value.call_site != body[1].value.call_site

    def test_call_sites_unique_across_instruments(self):
        ast = parse_text("""
            instruments {
                A { perf() { Noise(1.0); } }
                B { perf() { Noise(1.0); } }
            }
        """)
        a = ast.instruments[0].perf.body[0].call
        b = ast.instruments[1].perf.body[0].call
        assert a.call_site != b.call_site

    def test_unclosed_paren(self):
        with pytest.raises(ParseError):
            _expr("(1 + 2")


class TestParseScore:
    def test_event_with_perf(self):
        ast = parse_text("score { Kick(0.0 0.2 perf(0.4)) }")
        event = ast.score[0]
        assert event.instrument == "Kick"
        assert event.start == 0.0
        assert event.duration == 0.2
        assert event.init_args is None
        assert [a.value for a in event.perf_args] == [0.4]

    def test_integer_times(self):
        event = parse_text("score { A(1 2) }").score[0]
        assert event.start == 1.0
        assert event.duration == 2.0

    def test_init_and_perf_any_order(self):
        event = parse_text("score { A(0 1 perf(1) init(2, 3)) }").score[0]
        assert [a.value for a in event.init_args] == [2, 3]
        assert [a.value for a in event.perf_args] == [1]

    def test_constant_expressions(self):
        event = parse_text('score { A(0 1 init(60 + 7, -0.5, "x")) }').score[0]
        assert isinstance(event.init_args[0], BinaryOp)
        assert isinstance(event.init_args[1], UnaryOp)
        assert isinstance(event.init_args[2], StringLiteral)

    def test_optional_semicolons_and_indices(self):
        ast = parse_text("score { A(0 1); B(1 1) C(2 1); }")
        assert [e.instrument for e in ast.score] == ["A", "B", "C"]
        assert [e.index for e in ast.score] == [0, 1, 2]

    def test_identifier_argument_rejected(self):
        with pytest.raises(ParseError, match="constant"):
            parse_text("score { A(0 1 perf(amp)) }")

    def test_duplicate_perf_args(self):
        with pytest.raises(ParseError, match="Duplicate 'perf'"):
            parse_text("score { A(0 1 perf(1) perf(2)) }")

    def test_missing_duration(self):
        with pytest.raises(ParseError, match="duration"):
            parse_text("score { A(0) }")

    def test_error_position(self):
        with pytest.raises(ParseError) as exc_info:
            parse_text("score {\n  A(0 1\n}")
        assert exc_info.value.pos.line == 3
