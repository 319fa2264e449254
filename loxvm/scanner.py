"""Lexical analysis of Lox source text."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator


class TokenType(enum.IntEnum):
    """Kinds of tokens produced by the scanner."""

    # Single-character tokens.
    LEFT_PAREN = 0
    RIGHT_PAREN = enum.auto()
    LEFT_BRACE = enum.auto()
    RIGHT_BRACE = enum.auto()
    COMMA = enum.auto()
    DOT = enum.auto()
    MINUS = enum.auto()
    PLUS = enum.auto()
    SEMICOLON = enum.auto()
    SLASH = enum.auto()
    STAR = enum.auto()
    # One or two character tokens.
    BANG = enum.auto()
    BANG_EQUAL = enum.auto()
    EQUAL = enum.auto()
    EQUAL_EQUAL = enum.auto()
    GREATER = enum.auto()
    GREATER_EQUAL = enum.auto()
    LESS = enum.auto()
    LESS_EQUAL = enum.auto()
    # Literals.
    IDENTIFIER = enum.auto()
    STRING = enum.auto()
    NUMBER = enum.auto()
    # Keywords.
    AND = enum.auto()
    CLASS = enum.auto()
    ELSE = enum.auto()
    FALSE = enum.auto()
    FOR = enum.auto()
    FUN = enum.auto()
    IF = enum.auto()
    NIL = enum.auto()
    OR = enum.auto()
    PRINT = enum.auto()
    RETURN = enum.auto()
    SUPER = enum.auto()
    THIS = enum.auto()
    TRUE = enum.auto()
    VAR = enum.auto()
    WHILE = enum.auto()

    ERROR = enum.auto()
    EOF = enum.auto()


@dataclass(frozen=True)
class Token:
    """A token; for error tokens the lexeme holds the error message."""

    type: TokenType
    lexeme: str
    line: int


_KEYWORDS = {
    "and": TokenType.AND,
    "class": TokenType.CLASS,
    "else": TokenType.ELSE,
    "false": TokenType.FALSE,
    "for": TokenType.FOR,
    "fun": TokenType.FUN,
    "if": TokenType.IF,
    "nil": TokenType.NIL,
    "or": TokenType.OR,
    "print": TokenType.PRINT,
    "return": TokenType.RETURN,
    "super": TokenType.SUPER,
    "this": TokenType.THIS,
    "true": TokenType.TRUE,
    "var": TokenType.VAR,
    "while": TokenType.WHILE,
}

_SINGLE = {
    "(": TokenType.LEFT_PAREN,
    ")": TokenType.RIGHT_PAREN,
    "{": TokenType.LEFT_BRACE,
    "}": TokenType.RIGHT_BRACE,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
    ".": TokenType.DOT,
    "-": TokenType.MINUS,
    "+": TokenType.PLUS,
    "/": TokenType.SLASH,
    "*": TokenType.STAR,
}

# character -> (type when followed by '=', type otherwise)
_DOUBLE = {
    "!": (TokenType.BANG_EQUAL, TokenType.BANG),
    "=": (TokenType.EQUAL_EQUAL, TokenType.EQUAL),
    "<": (TokenType.LESS_EQUAL, TokenType.LESS),
    ">": (TokenType.GREATER_EQUAL, TokenType.GREATER),
}

_NUL = "\0"


def _is_alpha(c: str) -> bool:
    return ("a" <= c <= "z") or ("A" <= c <= "Z") or c == "_"


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


class Scanner:
    """Produces tokens from source text on demand."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._start = 0
        self._current = 0
        self._line = 1

    def _at_end(self) -> bool:
        return self._current >= len(self._source)

    def _advance(self) -> str:
        c = self._source[self._current]
        self._current += 1
        return c

    def _peek(self) -> str:
        return _NUL if self._at_end() else self._source[self._current]

    def _peek_next(self) -> str:
        if self._current + 1 >= len(self._source):
            return _NUL
        return self._source[self._current + 1]

    def _match(self, expected: str) -> bool:
        if self._at_end() or self._source[self._current] != expected:
            return False
        self._current += 1
        return True

    def _make_token(self, kind: TokenType) -> Token:
        return Token(kind, self._source[self._start:self._current], self._line)

    def _error_token(self, message: str) -> Token:
        return Token(TokenType.ERROR, message, self._line)

    def _skip_whitespace(self) -> None:
        while True:
            c = self._peek()
            if c in " \r\t" and not self._at_end():
                self._advance()
            elif c == "\n":
                self._line += 1
                self._advance()
            elif c == "/" and self._peek_next() == "/":
                while self._peek() != "\n" and not self._at_end():
                    self._advance()
            else:
                return

    def _identifier(self) -> Token:
        while _is_alpha(self._peek()) or _is_digit(self._peek()):
            self._advance()
        text = self._source[self._start:self._current]
        return self._make_token(_KEYWORDS.get(text, TokenType.IDENTIFIER))

    def _number(self) -> Token:
        while _is_digit(self._peek()):
            self._advance()
        if self._peek() == "." and _is_digit(self._peek_next()):
            self._advance()
            while _is_digit(self._peek()):
                self._advance()
        return self._make_token(TokenType.NUMBER)

    def _string(self) -> Token:
        while self._peek() != '"' and not self._at_end():
            if self._peek() == "\n":
                self._line += 1
            self._advance()
        if self._at_end():
            return self._error_token("Unterminated string")
        self._advance()
        return self._make_token(TokenType.STRING)

    def scan_token(self) -> Token:
        """Return the next token; EOF is returned again once input is exhausted."""
        self._skip_whitespace()
        self._start = self._current
        if self._at_end():
            return self._make_token(TokenType.EOF)

        c = self._advance()
        if _is_alpha(c):
            return self._identifier()
        if _is_digit(c):
            return self._number()
        if c in _SINGLE:
            return self._make_token(_SINGLE[c])
        if c in _DOUBLE:
            with_equal, alone = _DOUBLE[c]
            return self._make_token(with_equal if self._match("=") else alone)
        if c == '"':
            return self._string()
        return self._error_token("Unexpected character.")

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.scan_token()
            yield token
            if token.type is TokenType.EOF:
                return


def tokenize(source: str) -> list[Token]:
    """Scan the whole source, returning every token up to and including EOF."""
    return list(Scanner(source))