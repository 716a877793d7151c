"""Tests for the semantic analyzer: scoping, typing, rates and score checks."""

import pytest

from ral.ast_nodes import Rate, SymbolKind, ValueType
from ral.errors import SemanticAnalysisError, SemanticErrorKind as K
from ral.grammar.analyzer import analyze, is_assignable, output_channel_count
from ral.grammar.parser import parse_text


def _analyze(src: str):
    return analyze(parse_text(src))


def _kinds(src: str) -> list:
    with pytest.raises(SemanticAnalysisError) as exc_info:
        _analyze(src)
    return [e.kind for e in exc_info.value.errors]


def _perf(body: str, members: str = "", params: str = "") -> str:
    return f"instruments {{ T {{ {members} perf({params}) {{ {body} }} }} }}"


def _perf_body(body: str, **kw):
    return _analyze(_perf(body, **kw)).instruments[0].perf.body


class TestRateInference:
    def test_audio_operand_makes_audio(self):
        body = _perf_body("local x: Audio = Sine(1.0, 440.0) * 0.5;")
        expr = body[0].value
        assert expr.vtype is ValueType.AUDIO
        assert expr.rate is Rate.AUDIO
        assert expr.right.rate is Rate.CONTROL

    def test_scalar_expression_is_control(self):
        expr = _perf_body("local x: Float = 2 * 0.5 + 1;")[0].value
        assert expr.vtype is ValueType.FLOAT
        assert expr.rate is Rate.CONTROL

    def test_audio_member_propagates(self):
        body = _perf_body("output(sig * 2);", members="sig: Audio;")
        assert body[0].channels[0].rate is Rate.AUDIO

    def test_control_component(self):
        expr = _perf_body("local f: Float = Mtof(69);")[0].value
        assert expr.rate is Rate.CONTROL
        assert expr.vtype is ValueType.FLOAT

    def test_negated_audio(self):
        expr = _perf_body("output(-Noise(1.0));")[0].channels[0]
        assert expr.rate is Rate.AUDIO


class TestTyping:
    @pytest.mark.parametrize("expr,expected", [
        ("1 + 2", ValueType.INT),
        ("7 / 2", ValueType.INT),
        ("1 + 2.0", ValueType.FLOAT),
        ("-3", ValueType.INT),
        ('"a" + "b"', ValueType.STRING),
    ])
    def test_binary_types(self, expr, expected):
        body = _perf_body(f"println({expr});")
        assert body[0].value.vtype is expected

    @pytest.mark.parametrize("target,value,ok", [
        (ValueType.INT, ValueType.INT, True),
        (ValueType.FLOAT, ValueType.INT, True),
        (ValueType.INT, ValueType.FLOAT, False),
        (ValueType.AUDIO, ValueType.FLOAT, True),
        (ValueType.FLOAT, ValueType.AUDIO, False),
        (ValueType.STRING, ValueType.INT, False),
    ])
    def test_assignability(self, target, value, ok):
        assert is_assignable(target, value) is ok

    def test_identifier_kinds_resolved(self):
        body = _perf_body("local y: Float = x + p; output(y);",
                          members="x: Float;", params="p: Float")
        value = body[0].value
        assert value.left.kind is SymbolKind.MEMBER
        assert value.right.kind is SymbolKind.PARAM
        assert body[1].channels[0].kind is SymbolKind.LOCAL

    def test_multi_binding(self):
        body = _perf_body('local l, r: Audio = WavPlayer("x.wav"); output(l, r);')
        assert body[0].value.return_types == (ValueType.AUDIO, ValueType.AUDIO)

    def test_audio_drives_float_parameter(self):
        _analyze(_perf("output(Sine(Sine(1.0, 2.0), 440.0));"))


class TestSemanticErrors:
    def test_undeclared_identifier(self):
        assert _kinds(_perf("output(missing);")) == [K.UNDECLARED_IDENTIFIER]

    def test_undeclared_assignment_target(self):
        assert _kinds(_perf("y = 1;")) == [K.UNDECLARED_IDENTIFIER]

    def test_local_not_visible_across_functions(self):
        src = "instruments { T { init() { local x: Int = 1; } perf() { output(x); } } }"
        assert _kinds(src) == [K.UNDECLARED_IDENTIFIER]

    def test_use_before_declaration(self):
        assert _kinds(_perf("output(x); local x: Float = 1.0;")) == [K.UNDECLARED_IDENTIFIER]

    def test_members_are_per_instrument(self):
        src = "instruments { A { x: Float; } B { perf() { output(x); } } }"
        assert _kinds(src) == [K.UNDECLARED_IDENTIFIER]

    def test_duplicate_instrument(self):
        assert _kinds("instruments { A { } A { } }") == [K.DUPLICATE_DECLARATION]

    def test_duplicate_member(self):
        assert _kinds("instruments { A { x: Int; x: Float; } }") == [K.DUPLICATE_DECLARATION]

    def test_duplicate_parameter(self):
        assert _kinds(_perf("", params="a: Int, a: Float")) == [K.DUPLICATE_DECLARATION]

    def test_duplicate_local(self):
        src = _perf("local a: Int = 1; local a: Int = 2;")
        assert _kinds(src) == [K.DUPLICATE_DECLARATION]

    def test_local_shadowing_member(self):
        assert _kinds(_perf("local x: Int = 1;", members="x: Int;")) == [K.DUPLICATE_DECLARATION]

    def test_duplicate_perf(self):
        assert _kinds("instruments { A { perf() { } perf() { } } }") == [K.DUPLICATE_DECLARATION]

    def test_type_mismatch_local(self):
        assert _kinds(_perf("local x: Int = 1.5;")) == [K.TYPE_MISMATCH]

    def test_type_mismatch_assignment(self):
        assert _kinds(_perf("x = Sine(1.0, 2.0);", members="x: Float;")) == [K.TYPE_MISMATCH]

    def test_string_arithmetic(self):
        assert _kinds(_perf('println("a" * 2);')) == [K.TYPE_MISMATCH]

    def test_string_output(self):
        assert _kinds(_perf('output("a");')) == [K.TYPE_MISMATCH]

    def test_component_argument_type(self):
        assert _kinds(_perf("output(Oscil(1.0, 440.0, 1.5));")) == [K.TYPE_MISMATCH]

    def test_unknown_component(self):
        assert _kinds(_perf("output(Reverb(1.0));")) == [K.UNKNOWN_COMPONENT]

    def test_component_arity(self):
        assert _kinds(_perf("output(Sine(1.0));")) == [K.ARITY_MISMATCH]

    def test_two_outputs_to_one_name(self):
        assert _kinds(_perf('local x: Audio = WavPlayer("a.wav");')) == [K.ARITY_MISMATCH]

    def test_two_outputs_in_expression(self):
        assert _kinds(_perf('output(WavPlayer("a.wav") * 2);')) == [K.ARITY_MISMATCH]

    def test_three_names_for_one_output(self):
        src = _perf("local a, b, c: Audio = Sine(1.0, 2.0);")
        assert _kinds(src) == [K.ARITY_MISMATCH]

    def test_output_in_init(self):
        src = "instruments { A { init() { output(1.0); } } }"
        assert _kinds(src) == [K.INVALID_OUTPUT_IN_INIT]

    def test_assign_to_parameter(self):
        assert _kinds(_perf("p = 2.0;", params="p: Float")) == [K.INVALID_ASSIGNMENT]


class TestScoreChecks:
    INSTRUMENTS = """
        instruments {
            Kick { init(note: Int) { } perf(amps: Float) { output(amps); } }
        }
    """

    def _score(self, events: str) -> str:
        return self.INSTRUMENTS + f"score {{ {events} }}"

    def test_valid(self):
        program = _analyze(self._score("Kick(0 1 init(60) perf(0.5))"))
        assert program.score[0].perf_args[0].vtype is ValueType.FLOAT

    def test_int_argument_for_float_parameter(self):
        _analyze(self._score("Kick(0 1 init(60) perf(1))"))

    def test_undeclared_instrument(self):
        assert _kinds(self._score("Snare(0 1)")) == [K.UNDECLARED_INSTRUMENT]

    def test_missing_perf_args(self):
        assert _kinds(self._score("Kick(0 1 init(60))")) == [K.ARITY_MISMATCH]

    def test_extra_init_args(self):
        assert _kinds(self._score("Kick(0 1 init(60, 61) perf(0.5))")) == [K.ARITY_MISMATCH]

    def test_argument_type(self):
        assert _kinds(self._score('Kick(0 1 init("C4") perf(0.5))')) == [K.TYPE_MISMATCH]

    def test_zero_duration(self):
        assert _kinds(self._score("Kick(0 0 init(60) perf(0.5))")) == [K.INVALID_EVENT_TIMING]

    def test_args_for_missing_function(self):
        src = "instruments { A { } } score { A(0 1 perf(1.0)) }"
        assert _kinds(src) == [K.ARITY_MISMATCH]


class TestErrorCollection:
    def test_all_errors_reported(self):
        src = """
            instruments {
                A {
                    init() { output(1.0); }
                    perf() { output(nope); local x: Int = 0.5; }
                }
            }
            score { B(0 1) }
        """
        kinds = _kinds(src)
        assert kinds == [
            K.INVALID_OUTPUT_IN_INIT,
            K.UNDECLARED_IDENTIFIER,
            K.TYPE_MISMATCH,
            K.UNDECLARED_INSTRUMENT,
        ]

    def test_error_positions(self):
        with pytest.raises(SemanticAnalysisError) as exc_info:
            _analyze("instruments {\n  A {\n    perf() { output(zz); }\n  }\n}")
        error = exc_info.value.errors[0]
        assert (error.pos.line, error.pos.column) == (3, 21)
        assert "zz" in error.message


class TestOutputChannels:
    def test_widest_output_wins(self):
        program = _analyze("""
            instruments {
                A { perf() { output(1.0); } }
                B { perf() { output(1.0, 2.0, 3.0); } }
            }
        """)
        assert output_channel_count(program) == 3

    def test_no_output(self):
        assert output_channel_count(_analyze("instruments { A { } }")) == 0
