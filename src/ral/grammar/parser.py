"""Recursive-descent parser for RAL programs.

Grammar (informal):

    program     := (instruments | score)*          each block at most once
    instruments := 'instruments' '{' instrument* '}'
    instrument  := IDENT '{' (member | function)* '}'
    member      := IDENT ':' TYPE ';'
    function    := ('init' | 'perf') '(' [param (',' param)*] ')' '{' body '}'
    param       := IDENT ':' TYPE                  TYPE may not be Audio
    body        := (local | statement)*
    local       := 'local' IDENT (',' IDENT)* ':' TYPE '=' expr ';'
    statement   := ('print' | 'println') '(' [expr] ')' ';'
                 | 'output' '(' expr (',' expr)* ')' ';'
                 | IDENT '=' expr ';'
                 | call ';'
    expr        := term (('+' | '-') term)*
    term        := unary (('*' | '/') unary)*
    unary       := '-' unary | primary
    primary     := INT | FLOAT | STRING | IDENT | call | '(' expr ')'
    call        := IDENT '(' [expr (',' expr)*] ')'
    score       := 'score' '{' event* '}'
    event       := IDENT '(' NUMBER NUMBER [args] [args] ')' [';']
    args        := ('init' | 'perf') '(' [const (',' const)*] ')'

Score arguments are constant expressions: literals, arithmetic and
parentheses only. There is no error recovery; the first ParseError aborts.
"""

from __future__ import annotations

from pathlib import Path

from ral.ast_nodes import (
    Program, Instrument, MemberVar, Param, Function, FunctionKind,
    LocalDecl, Assign, Print, Output, CallStatement, Statement,
    IntLiteral, FloatLiteral, StringLiteral, Identifier,
    UnaryOp, BinaryOp, ComponentCall, Expr,
    ScoreEvent, ValueType,
)
from ral.errors import ParseError
from ral.grammar.lexer import Token, TokenType, tokenize


def parse_file(path: str | Path) -> Program:
    """Parse a RAL source file and return its AST."""
    text = Path(path).read_text(encoding="utf-8")
    return parse_text(text)


def parse_text(text: str) -> Program:
    """Parse RAL source text and return its AST."""
    return Parser(tokenize(text)).parse_program()


class Parser:
    """Builds a Program from a token list ending in EOF."""

    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.index = 0
        # Call sites are numbered in source order across the whole program
        self._next_call_site = 0

    # ---------- Token helpers ----------

    def _peek(self, ahead: int = 0) -> Token:
        i = min(self.index + ahead, len(self.tokens) - 1)
        return self.tokens[i]

    def _check(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _advance(self) -> Token:
        token = self._peek()
        if token.type is not TokenType.EOF:
            self.index += 1
        return token

    def _match(self, *types: TokenType) -> Token | None:
        if self._check(*types):
            return self._advance()
        return None

    def _expect(self, token_type: TokenType, what: str) -> Token:
        if self._check(token_type):
            return self._advance()
        self._error(f"Expected {what}")

    def _error(self, expected: str):
        token = self._peek()
        raise ParseError(f"{expected} but found {token.describe()}", token.pos, token.text)

    # ---------- Program ----------

    def parse_program(self) -> Program:
        program = Program()
        seen: set[TokenType] = set()

        while not self._check(TokenType.EOF):
            token = self._peek()
            if token.type not in (TokenType.INSTRUMENTS, TokenType.SCORE):
                self._error("Expected 'instruments' or 'score' at top level")
            if token.type in seen:
                raise ParseError(f"Duplicate '{token.text}' block", token.pos, token.text)
            seen.add(token.type)
            self._advance()

            if token.type is TokenType.INSTRUMENTS:
                program.instruments = self._instruments_block()
            else:
                program.score = self._score_block()

        return program

    # ---------- Instruments ----------

    def _instruments_block(self) -> list[Instrument]:
        self._expect(TokenType.LBRACE, "'{' after 'instruments'")
        instruments: list[Instrument] = []
        while not self._match(TokenType.RBRACE):
            instruments.append(self._instrument())
        return instruments

    def _instrument(self) -> Instrument:
        name = self._expect(TokenType.IDENT, "instrument name")
        self._expect(TokenType.LBRACE, f"'{{' after instrument name '{name.text}'")
        instrument = Instrument(name=name.text, pos=name.pos)

        while not self._match(TokenType.RBRACE):
            if self._check(TokenType.IDENT):
                instrument.members.append(self._member())
            elif self._check(TokenType.INIT, TokenType.PERF):
                instrument.functions.append(self._function())
            else:
                self._error("Expected member variable, 'init' or 'perf' in instrument body")

        return instrument

    def _member(self) -> MemberVar:
        name = self._advance()
        self._expect(TokenType.COLON, "':' after member name")
        vtype = self._type()
        self._expect(TokenType.SEMICOLON, "';' after member declaration")
        return MemberVar(name=name.text, type=vtype, pos=name.pos)

    def _type(self) -> ValueType:
        token = self._expect(TokenType.TYPE, "type name (Int, Float, String or Audio)")
        return ValueType(token.text)

    def _function(self) -> Function:
        keyword = self._advance()
        kind = FunctionKind.INIT if keyword.type is TokenType.INIT else FunctionKind.PERF
        func = Function(kind=kind, pos=keyword.pos)

        self._expect(TokenType.LPAREN, f"'(' after '{keyword.text}'")
        if not self._check(TokenType.RPAREN):
            func.params.append(self._param())
            while self._match(TokenType.COMMA):
                func.params.append(self._param())
        self._expect(TokenType.RPAREN, "',' or ')' in parameter list")

        self._expect(TokenType.LBRACE, f"'{{' to open '{keyword.text}' body")
        while not self._match(TokenType.RBRACE):
            func.body.append(self._declaration())
        return func

    def _param(self) -> Param:
        name = self._expect(TokenType.IDENT, "parameter name")
        self._expect(TokenType.COLON, "':' after parameter name")
        type_token = self._peek()
        vtype = self._type()
        if vtype is ValueType.AUDIO:
            raise ParseError(
                f"Parameter '{name.text}' cannot be Audio; parameters are "
                "Int, Float or String", type_token.pos, type_token.text)
        return Param(name=name.text, type=vtype, pos=name.pos)

    # ---------- Statements ----------

    def _declaration(self) -> Statement:
        if self._check(TokenType.LOCAL):
            return self._local_decl()
        return self._statement()

    def _local_decl(self) -> LocalDecl:
        keyword = self._advance()
        names = [self._expect(TokenType.IDENT, "local variable name").text]
        while self._match(TokenType.COMMA):
            names.append(self._expect(TokenType.IDENT, "local variable name").text)
        self._expect(TokenType.COLON, "':' after local variable name")
        vtype = self._type()
        self._expect(TokenType.EQUAL, "'=' in local declaration")
        value = self._expression()
        self._expect(TokenType.SEMICOLON, "';' after local declaration")
        return LocalDecl(names=names, type=vtype, value=value, pos=keyword.pos)

    def _statement(self) -> Statement:
        token = self._peek()

        if token.type in (TokenType.PRINT, TokenType.PRINTLN):
            self._advance()
            self._expect(TokenType.LPAREN, f"'(' after '{token.text}'")
            value = None if self._check(TokenType.RPAREN) else self._expression()
            self._expect(TokenType.RPAREN, "')'")
            self._expect(TokenType.SEMICOLON, "';' after print statement")
            return Print(value=value, newline=token.type is TokenType.PRINTLN, pos=token.pos)

        if token.type is TokenType.OUTPUT:
            self._advance()
            self._expect(TokenType.LPAREN, "'(' after 'output'")
            channels = [self._expression()]
            while self._match(TokenType.COMMA):
                channels.append(self._expression())
            self._expect(TokenType.RPAREN, "',' or ')' in output")
            self._expect(TokenType.SEMICOLON, "';' after output statement")
            return Output(channels=channels, pos=token.pos)

        if token.type is TokenType.IDENT:
            nxt = self._peek(1)
            if nxt.type is TokenType.EQUAL:
                self._advance()
                self._advance()
                value = self._expression()
                self._expect(TokenType.SEMICOLON, "';' after assignment")
                return Assign(target=Identifier(token.text, pos=token.pos), value=value,
                              pos=token.pos)
            if nxt.type is TokenType.LPAREN:
                call = self._call()
                self._expect(TokenType.SEMICOLON, "';' after component call")
                return CallStatement(call=call, pos=token.pos)
            self.index += 1
            self._error(f"Expected '=' or '(' after '{token.text}'")

        self._error("Expected statement")

    # ---------- Expressions ----------

    def _expression(self, constant: bool = False) -> Expr:
        expr = self._term(constant)
        while self._check(TokenType.PLUS, TokenType.MINUS):
            op = self._advance()
            right = self._term(constant)
            expr = BinaryOp(op=op.text, left=expr, right=right, pos=op.pos)
        return expr

    def _term(self, constant: bool) -> Expr:
        expr = self._unary(constant)
        while self._check(TokenType.STAR, TokenType.SLASH):
            op = self._advance()
            right = self._unary(constant)
            expr = BinaryOp(op=op.text, left=expr, right=right, pos=op.pos)
        return expr

    def _unary(self, constant: bool) -> Expr:
        op = self._match(TokenType.MINUS)
        if op:
            return UnaryOp(op="-", operand=self._unary(constant), pos=op.pos)
        return self._primary(constant)

    def _primary(self, constant: bool) -> Expr:
        token = self._peek()

        if token.type is TokenType.INT:
            self._advance()
            return IntLiteral(value=token.value, pos=token.pos)
        if token.type is TokenType.FLOAT:
            self._advance()
            return FloatLiteral(value=token.value, pos=token.pos)
        if token.type is TokenType.STRING:
            self._advance()
            return StringLiteral(value=token.value, pos=token.pos)
        if token.type is TokenType.LPAREN:
            self._advance()
            expr = self._expression(constant)
            self._expect(TokenType.RPAREN, "')'")
            return expr
        if token.type is TokenType.IDENT:
            if constant:
                raise ParseError(
                    f"Score arguments must be constant expressions, found '{token.text}'",
                    token.pos, token.text)
            if self._peek(1).type is TokenType.LPAREN:
                return self._call()
            self._advance()
            return Identifier(name=token.text, pos=token.pos)

        self._error("Expected expression")

    def _call(self) -> ComponentCall:
        name = self._advance()
        self._expect(TokenType.LPAREN, f"'(' after '{name.text}'")
        args: list[Expr] = []
        if not self._check(TokenType.RPAREN):
            args.append(self._expression())
            while self._match(TokenType.COMMA):
                args.append(self._expression())
        self._expect(TokenType.RPAREN, f"',' or ')' in call to '{name.text}'")

        call = ComponentCall(name=name.text, args=args,
                             call_site=self._next_call_site, pos=name.pos)
        self._next_call_site += 1
        return call

    # ---------- Score ----------

    def _score_block(self) -> list[ScoreEvent]:
        self._expect(TokenType.LBRACE, "'{' after 'score'")
        events: list[ScoreEvent] = []
        while not self._match(TokenType.RBRACE):
            events.append(self._score_event(len(events)))
        return events

    def _score_event(self, index: int) -> ScoreEvent:
        name = self._expect(TokenType.IDENT, "instrument name in score event")
        self._expect(TokenType.LPAREN, f"'(' after '{name.text}'")
        start = self._event_number("start time")
        duration = self._event_number("duration")
        event = ScoreEvent(instrument=name.text, start=start, duration=duration,
                           index=index, pos=name.pos)

        while self._check(TokenType.INIT, TokenType.PERF):
            keyword = self._advance()
            args = self._score_args(keyword)
            if keyword.type is TokenType.INIT:
                if event.init_args is not None:
                    raise ParseError("Duplicate 'init' arguments in score event",
                                     keyword.pos, keyword.text)
                event.init_args = args
            else:
                if event.perf_args is not None:
                    raise ParseError("Duplicate 'perf' arguments in score event",
                                     keyword.pos, keyword.text)
                event.perf_args = args

        self._expect(TokenType.RPAREN, "'init(...)', 'perf(...)' or ')' in score event")
        self._match(TokenType.SEMICOLON)
        return event

    def _event_number(self, what: str) -> float:
        token = self._match(TokenType.INT, TokenType.FLOAT)
        if token is None:
            self._error(f"Expected number for {what}")
        return float(token.value)

    def _score_args(self, keyword: Token) -> list[Expr]:
        self._expect(TokenType.LPAREN, f"'(' after '{keyword.text}'")
        args: list[Expr] = []
        if not self._check(TokenType.RPAREN):
            args.append(self._expression(constant=True))
            while self._match(TokenType.COMMA):
                args.append(self._expression(constant=True))
        self._expect(TokenType.RPAREN, f"',' or ')' in '{keyword.text}' arguments")
        return args
