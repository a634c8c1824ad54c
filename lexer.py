from __future__ import annotations
from dataclasses import dataclass
from typing import List


class OBPIError(Exception):
    """Base class for toolchain errors."""


class OBPILexError(OBPIError):
    """Raised when the source cannot be scanned."""


class OBPIParseError(OBPIError):
    """Raised when parsing fails."""

    def __init__(self, message: str, *, expected: str = "", found: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.expected = expected
        self.found = found


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int


KEYWORDS = {
    "let": "LET",
    "func": "FUNC",
    "if": "IF",
    "else": "ELSE",
    "while": "WHILE",
    "return": "RETURN",
    "import": "IMPORT",
    "true": "TRUE",
    "false": "FALSE",
    "null": "NULL",
}

SYMBOLS = {
    "(": "LPAREN",
    ")": "RPAREN",
    "{": "LBRACE",
    "}": "RBRACE",
    ";": "SEMICOLON",
    ",": "COMMA",
}

DIGITS = "0123456789"


class Lexer:
    def __init__(self, text: str, filename: str = "<string>") -> None:
        self.text = text
        self.filename = filename
        self.index = 0
        self.line = 1
        self.column = 1

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        symbols = SYMBOLS
        text = self.text
        n = len(text)

        while self.index < n:
            ch: str = text[self.index]
            if ch in " \t\r\n":
                _advance()
                continue
            if ch in symbols:
                tokens_append(Token(symbols[ch], ch, self.line, self.column))
                _advance()
                continue
            if ch == "/" and self._peek_at(1) == "/":
                self._consume_comment()
                continue
            if ch in "+-*/":
                tokens_append(Token("BINARY_OP", ch, self.line, self.column))
                _advance()
                continue
            if ch in "=<>!":
                tokens_append(self._consume_operator())
                continue
            if ch == '"':
                tokens_append(self._consume_string())
                continue
            if ch in DIGITS:
                tokens_append(self._consume_number())
                continue
            if self._is_identifier_start(ch):
                tokens_append(self._consume_identifier())
                continue
            raise OBPILexError(
                f"Unexpected character '{ch}' at {self.filename}:{self.line}:{self.column}"
            )
        tokens_append(Token("EOF", "EOF", self.line, self.column))
        return tokens

    def _consume_comment(self) -> None:
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] != "\n":
            _advance()

    def _consume_operator(self) -> Token:
        line, col = self.line, self.column
        ch = self._peek()
        self._advance()
        followed_by_equals = not self._eof and self._peek() == "="
        if followed_by_equals:
            self._advance()
            return Token("COMPARISON", ch + "=", line, col)
        if ch == "=":
            return Token("EQUALS", "=", line, col)
        if ch == "!":
            # Only '!=' exists; a bare '!' has no meaning in the language.
            raise OBPILexError(
                f"Unexpected character '!' at {self.filename}:{line}:{col}"
            )
        return Token("COMPARISON", ch, line, col)

    def _consume_string(self) -> Token:
        line, col = self.line, self.column
        self._advance()  # consume opening quote
        chars: List[str] = []
        while not self._eof:
            ch = self._peek()
            if ch == '"':
                self._advance()
                return Token("STRING", "".join(chars), line, col)
            chars.append(ch)
            self._advance()
        raise OBPILexError(
            f"Unterminated string literal at {self.filename}:{line}:{col}"
        )

    def _consume_number(self) -> Token:
        line, col = self.line, self.column
        whole = self._consume_digits()
        # A '.' is a radix point only when a digit follows it.
        after_dot = self._peek_at(1)
        if self._peek_at(0) == "." and after_dot != "" and after_dot in DIGITS:
            self._advance()  # consume '.'
            frac = self._consume_digits()
            return Token("NUMBER", f"{whole}.{frac}", line, col)
        return Token("NUMBER", whole, line, col)

    def _consume_digits(self) -> str:
        digits: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] in DIGITS:
            digits.append(text[self.index])
            _advance()
        return "".join(digits)

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and self._is_identifier_part(text[self.index]):
            chars.append(text[self.index])
            _advance()
        value = "".join(chars)
        token_type: str = KEYWORDS.get(value, "IDENT")
        return Token(token_type, value, line, col)

    def _is_identifier_start(self, ch: str) -> bool:
        return ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z")

    def _is_identifier_part(self, ch: str) -> bool:
        return self._is_identifier_start(ch) or ch in DIGITS

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.index]

    def _peek_at(self, offset: int) -> str:
        pos = self.index + offset
        if pos >= len(self.text):
            return ""
        return self.text[pos]

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1


def tokenize(source: str, filename: str = "<string>") -> List[Token]:
    return Lexer(source, filename).tokenize()
