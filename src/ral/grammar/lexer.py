"""Lexer for RAL source text.

Regex-driven scanner producing a flat token list. The Lexer object is
restartable after an error: a LexError is raised only after the offending
character has been consumed, so calling ``next_token()`` again resumes
scanning with the rest of the input.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass
from enum import Enum

from ral.ast_nodes import SourcePos
from ral.errors import LexError


class TokenType(Enum):
    # Keywords
    INSTRUMENTS = "instruments"
    SCORE = "score"
    INIT = "init"
    PERF = "perf"
    PRINT = "print"
    PRINTLN = "println"
    OUTPUT = "output"
    LOCAL = "local"
    TYPE = "type"           # Int, Float, String, Audio
    # Literals and names
    IDENT = "identifier"
    INT = "integer"
    FLOAT = "float"
    STRING = "string"
    # Operators
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    # Punctuation
    LBRACE = "{"
    RBRACE = "}"
    LPAREN = "("
    RPAREN = ")"
    COLON = ":"
    COMMA = ","
    EQUAL = "="
    SEMICOLON = ";"
    EOF = "end of input"


KEYWORDS: dict[str, TokenType] = {
    "instruments": TokenType.INSTRUMENTS,
    "score": TokenType.SCORE,
    "init": TokenType.INIT,
    "perf": TokenType.PERF,
    "print": TokenType.PRINT,
    "println": TokenType.PRINTLN,
    "output": TokenType.OUTPUT,
    "local": TokenType.LOCAL,
}

TYPE_NAMES = frozenset({"Int", "Float", "String", "Audio"})

SYMBOLS: dict[str, TokenType] = {
    "+": TokenType.PLUS,
    "-": TokenType.MINUS,
    "*": TokenType.STAR,
    "/": TokenType.SLASH,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ":": TokenType.COLON,
    ",": TokenType.COMMA,
    "=": TokenType.EQUAL,
    ";": TokenType.SEMICOLON,
}


# ---------- Regex patterns ----------

RE_SKIP = re.compile(r"(?:[ \t\r\n]+|//[^\n]*)+")
RE_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
# Both sides of the point need at least one digit: "1." and ".5" are rejected
RE_FLOAT = re.compile(r"[0-9]+\.[0-9]+")
RE_INT = re.compile(r"[0-9]+")


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    pos: SourcePos
    value: int | float | str | None = None

    def describe(self) -> str:
        if self.type is TokenType.EOF:
            return "end of input"
        return f"'{self.text}'"


class Lexer:
    """Incremental tokenizer over one source string."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.offset = 0
        self._line_starts = [0] + [m.end() for m in re.finditer(r"\n", text)]

    def position(self, offset: int) -> SourcePos:
        line = bisect.bisect_right(self._line_starts, offset)
        return SourcePos(line, offset - self._line_starts[line - 1] + 1)

    def next_token(self) -> Token:
        """Return the next token, or an EOF token once the input is exhausted."""
        text = self.text
        m = RE_SKIP.match(text, self.offset)
        if m:
            self.offset = m.end()

        start = self.offset
        pos = self.position(start)
        if start >= len(text):
            return Token(TokenType.EOF, "", pos)

        ch = text[start]

        m = RE_IDENT.match(text, start)
        if m:
            self.offset = m.end()
            word = m.group(0)
            if word in KEYWORDS:
                return Token(KEYWORDS[word], word, pos)
            if word in TYPE_NAMES:
                return Token(TokenType.TYPE, word, pos, value=word)
            return Token(TokenType.IDENT, word, pos, value=word)

        m = RE_FLOAT.match(text, start)
        if m:
            self.offset = m.end()
            return Token(TokenType.FLOAT, m.group(0), pos, value=float(m.group(0)))

        m = RE_INT.match(text, start)
        if m:
            self.offset = m.end()
            return Token(TokenType.INT, m.group(0), pos, value=int(m.group(0)))

        if ch == '"':
            close = text.find('"', start + 1)
            if close < 0:
                self.offset = len(text)
                raise LexError("Unterminated string", pos, text[start:])
            self.offset = close + 1
            raw = text[start:close + 1]
            return Token(TokenType.STRING, raw, pos, value=raw[1:-1])

        if ch in SYMBOLS:
            self.offset = start + 1
            return Token(SYMBOLS[ch], ch, pos)

        self.offset = start + 1
        raise LexError(f"Unrecognized character {ch!r}", pos, ch)

    def __iter__(self):
        while True:
            token = self.next_token()
            yield token
            if token.type is TokenType.EOF:
                return


def tokenize(text: str) -> list[Token]:
    """Tokenize a whole program. The list always ends with an EOF token.

    Raises LexError on the first unterminated string or unknown character.
    """
    return list(Lexer(text))
