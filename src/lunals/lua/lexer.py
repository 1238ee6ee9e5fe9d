"""Tokenizer for the Lua subset understood by lunals."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum

from lunals.contract import ParseFailure

KEYWORDS = frozenset(
    {
        "and", "break", "do", "else", "elseif", "end", "false", "for",
        "function", "goto", "if", "in", "local", "nil", "not", "or",
        "repeat", "return", "then", "true", "until", "while",
    }
)

# Longest first so that "..." wins over ".." and ".".
SYMBOLS = (
    "...", "..", "==", "~=", "<=", ">=", "//", "::", "<<", ">>",
    "+", "-", "*", "/", "%", "^", "#", "&", "~", "|", "<", ">", "=",
    "(", ")", "{", "}", "[", "]", ";", ":", ",", ".",
)

UTF8_MAX = 0x7FFFFFFF

_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "a": "\a", "b": "\b", "f": "\f",
    "v": "\v", "\\": "\\", '"': '"', "'": "'", "\n": "\n",
}


class LuaSyntaxError(ParseFailure):
    def __init__(self, line: int, column: int, message: str):
        super().__init__(f"{line}:{column}: {message}")
        self.line = line
        self.column = column
        self.message = message


class TokenKind(Enum):
    NAME = "name"
    KEYWORD = "keyword"
    NUMBER = "number"
    STRING = "string"
    SYMBOL = "symbol"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: int
    column: int
    text: str = ""
    is_float: bool = False

    def is_(self, value: str) -> bool:
        return self.kind in (TokenKind.KEYWORD, TokenKind.SYMBOL) and self.value == value

    def near(self) -> str:
        if self.kind is TokenKind.EOF:
            return "<eof>"
        return self.text or self.value


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9" and len(ch) == 1


def _is_hex(ch: str) -> bool:
    return _is_digit(ch) or (len(ch) == 1 and ch in "abcdefABCDEF")


def _is_name_start(ch: str) -> bool:
    return ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def _is_name_char(ch: str) -> bool:
    return _is_name_start(ch) or _is_digit(ch)


class Lexer:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.line = 1
        self.column = 1

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def _advance(self, count: int = 1) -> str:
        consumed = self.text[self.pos : self.pos + count]
        for ch in consumed:
            if ch == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
        self.pos += len(consumed)
        return consumed

    def _error(self, message: str, line: int | None = None, column: int | None = None):
        return LuaSyntaxError(
            self.line if line is None else line,
            self.column if column is None else column,
            message,
        )

    def tokens(self) -> list[Token]:
        result: list[Token] = []
        while True:
            token = self._next()
            result.append(token)
            if token.kind is TokenKind.EOF:
                return result

    def _next(self) -> Token:
        self._skip_space_and_comments()
        line, column = self.line, self.column
        ch = self._peek()
        if not ch:
            return Token(TokenKind.EOF, "", line, column)
        if _is_name_start(ch):
            start = self.pos
            while _is_name_char(self._peek()):
                self._advance()
            word = self.text[start : self.pos]
            kind = TokenKind.KEYWORD if word in KEYWORDS else TokenKind.NAME
            return Token(kind, word, line, column, word)
        if _is_digit(ch) or (ch == "." and _is_digit(self._peek(1))):
            return self._number(line, column)
        if ch in "\"'":
            return self._short_string(line, column)
        if ch == "[":
            level = self._long_bracket_level()
            if level >= 0:
                start = self.pos
                value = self._long_bracket(level, line, column, "string")
                return Token(TokenKind.STRING, value, line, column, self.text[start : self.pos])
        for symbol in SYMBOLS:
            if self.text.startswith(symbol, self.pos):
                self._advance(len(symbol))
                return Token(TokenKind.SYMBOL, symbol, line, column, symbol)
        raise self._error(f"unexpected symbol near '{ch}'")

    def _skip_space_and_comments(self) -> None:
        while True:
            ch = self._peek()
            if ch and ch in " \t\r\n\f\v":
                self._advance()
                continue
            if ch == "-" and self._peek(1) == "-":
                line, column = self.line, self.column
                self._advance(2)
                if self._peek() == "[":
                    level = self._long_bracket_level()
                    if level >= 0:
                        self._long_bracket(level, line, column, "comment")
                        continue
                while self._peek() and self._peek() != "\n":
                    self._advance()
                continue
            return

    def _long_bracket_level(self) -> int:
        """Return the level of a ``[==[`` opener at the cursor, or -1."""
        offset = 1
        while self._peek(offset) == "=":
            offset += 1
        if self._peek(offset) == "[":
            return offset - 1
        return -1

    def _long_bracket(self, level: int, line: int, column: int, what: str) -> str:
        self._advance(level + 2)
        # A newline right after the opener is not part of the content.
        if self._peek() == "\r":
            self._advance()
        if self._peek() == "\n":
            self._advance()
        closer = "]" + "=" * level + "]"
        end = self.text.find(closer, self.pos)
        if end < 0:
            self._advance(len(self.text) - self.pos)
            raise self._error(f"unfinished long {what} (starting at line {line}) near '<eof>'")
        value = self.text[self.pos : end]
        self._advance(end - self.pos + len(closer))
        return value

    def _number(self, line: int, column: int) -> Token:
        start = self.pos
        is_float = False
        if self._peek() == "0" and self._peek(1) in ("x", "X"):
            self._advance(2)
            exponent = "pP"
            digit = _is_hex
        else:
            exponent = "eE"
            digit = _is_digit
        while True:
            ch = self._peek()
            if ch and digit(ch):
                self._advance()
            elif ch == ".":
                is_float = True
                self._advance()
            elif ch and ch in exponent:
                is_float = True
                self._advance()
                if self._peek() in ("+", "-"):
                    self._advance()
                digit = _is_digit
            else:
                break
        if _is_name_char(self._peek()):
            while _is_name_char(self._peek()):
                self._advance()
        text = self.text[start : self.pos]
        try:
            if text[:2].lower() == "0x":
                value = repr(float.fromhex(text)) if is_float else str(int(text, 16))
            else:
                value = repr(float(text)) if is_float else str(int(text))
        except (ValueError, OverflowError):
            raise LuaSyntaxError(line, column, f"malformed number near '{text}'") from None
        return Token(TokenKind.NUMBER, value, line, column, text, is_float)

    def _short_string(self, line: int, column: int) -> Token:
        start = self.pos
        quote = self._advance()
        chars: list[str] = []
        while True:
            ch = self._peek()
            if not ch or ch == "\n":
                near = self.text[start : self.pos]
                raise LuaSyntaxError(line, column, f"unfinished string near '{near}'")
            if ch == quote:
                self._advance()
                break
            if ch == "\\":
                self._advance()
                chars.append(self._escape())
                continue
            chars.append(self._advance())
        return Token(TokenKind.STRING, "".join(chars), line, column, self.text[start : self.pos])

    def _escape(self) -> str:
        ch = self._peek()
        if ch in _ESCAPES:
            self._advance()
            return _ESCAPES[ch]
        if ch == "z":
            self._advance()
            while self._peek() and self._peek() in " \t\r\n\f\v":
                self._advance()
            return ""
        if ch == "x":
            self._advance()
            digits = self._advance(2)
            if len(digits) != 2 or not all(_is_hex(c) for c in digits):
                raise self._error("hexadecimal digit expected")
            return chr(int(digits, 16))
        if _is_digit(ch):
            digits = ""
            while len(digits) < 3 and _is_digit(self._peek()):
                digits += self._advance()
            if int(digits) > 255:
                raise self._error("decimal escape too large")
            return chr(int(digits))
        if ch == "u" and self._peek(1) == "{":
            self._advance(2)
            digits = ""
            while _is_hex(self._peek()):
                digits += self._advance()
                if int(digits, 16) > UTF8_MAX:
                    raise self._error("UTF-8 value too large")
            if not digits:
                raise self._error("hexadecimal digit expected")
            if self._peek() != "}":
                raise self._error("missing '}' in \\u{xxxx}")
            self._advance()
            value = int(digits, 16)
            # Lua allows code points past Unicode; Python strings cannot hold them.
            return chr(value) if value <= sys.maxunicode else "\ufffd"
        raise self._error(f"invalid escape sequence '\\{ch}'")


def tokenize(text: str) -> list[Token]:
    return Lexer(text).tokens()
