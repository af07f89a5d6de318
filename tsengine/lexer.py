from typing import List, Optional

from resource_graph.errors import ParseError, SourceLocation
from .tokentypes import KEYWORDS, Token, TokenType

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '0': '\0', 'b': '\b', 'f': '\f', 'v': '\v'}


class TSLexer:
    def __init__(self, source: str, line: int = 1, column: int = 1, file: Optional[str] = None):
        self.source = source
        self.pos = 0
        self.line = line
        self.column = column
        self.file = file
        self.tokens: List[Token] = []

        self.operators = {op.value: op for op in TokenType
                          if op not in KEYWORDS.values() and not op.value.isupper()}
        # Longest operators first so '===' wins over '==' and '='
        self._operator_order = sorted(self.operators, key=lambda op: -len(op))

    def error(self, message: str, line: Optional[int] = None, column: Optional[int] = None) -> ParseError:
        return ParseError(message, SourceLocation(line or self.line, column or self.column, self.file))

    def tokenize(self) -> List[Token]:
        while self.pos < len(self.source):
            char = self.source[self.pos]

            if char.isspace():
                self._advance()
                continue

            if self.source.startswith('//', self.pos):
                while self.pos < len(self.source) and self.source[self.pos] != '\n':
                    self._advance()
                continue

            if self.source.startswith('/*', self.pos):
                end = self.source.find('*/', self.pos + 2)
                if end == -1:
                    raise self.error("Unterminated block comment")
                self._advance(end + 2 - self.pos)
                continue

            if char.isalpha() or char in '_$':
                self._handle_identifier()
                continue

            if char.isdigit() or (char == '.' and (self.peek() or '').isdigit()):
                self._handle_number()
                continue

            if char in '"\'':
                self._handle_string(char)
                continue

            if char == '`':
                self._handle_template()
                continue

            if self._handle_operator():
                continue

            raise self.error(f"Unknown character '{char}'")

        self.tokens.append(Token(TokenType.EOF, '', self.line, self.column))
        return self.tokens

    def peek(self, offset=1) -> Optional[str]:
        if self.pos + offset < len(self.source):
            return self.source[self.pos + offset]
        return None

    def _advance(self, count: int = 1):
        for _ in range(count):
            if self.pos >= len(self.source):
                return
            if self.source[self.pos] == '\n':
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.pos += 1

    def _handle_identifier(self):
        start_column = self.column
        start = self.pos
        while self.pos < len(self.source) and (self.source[self.pos].isalnum() or self.source[self.pos] in '_$'):
            self._advance()
        identifier = self.source[start:self.pos]
        token_type = KEYWORDS.get(identifier, TokenType.IDENTIFIER)
        self.tokens.append(Token(token_type, identifier, self.line, start_column))

    def _handle_number(self):
        start_column = self.column
        start = self.pos
        while self.pos < len(self.source) and (self.source[self.pos].isdigit() or self.source[self.pos] == '_'):
            self._advance()
        if self.source[self.pos:self.pos + 1] == '.' and (self.peek() or '').isdigit():
            self._advance()
            while self.pos < len(self.source) and self.source[self.pos].isdigit():
                self._advance()
        if self.source[self.pos:self.pos + 1] in ('e', 'E'):
            self._advance()
            if self.source[self.pos:self.pos + 1] in ('+', '-'):
                self._advance()
            if not self.source[self.pos:self.pos + 1].isdigit():
                raise self.error("Malformed number exponent")
            while self.pos < len(self.source) and self.source[self.pos].isdigit():
                self._advance()
        text = self.source[start:self.pos].replace('_', '')
        self.tokens.append(Token(TokenType.NUMBER, text, self.line, start_column))

    def _handle_string(self, quote: str):
        start_line, start_column = self.line, self.column
        self._advance()
        chars = []
        while True:
            if self.pos >= len(self.source) or self.source[self.pos] == '\n':
                raise self.error("Unterminated string literal", start_line, start_column)
            char = self.source[self.pos]
            if char == quote:
                self._advance()
                break
            if char == '\\':
                chars.append(self._escape())
                continue
            chars.append(char)
            self._advance()
        self.tokens.append(Token(TokenType.STRING, ''.join(chars), start_line, start_column))

    def _escape(self) -> str:
        nxt = self.peek() or ''
        if nxt in _ESCAPES:
            self._advance(2)
            return _ESCAPES[nxt]
        if nxt == 'u':
            if self.source.startswith('{', self.pos + 2):
                end = self.source.find('}', self.pos + 3)
                digits = self.source[self.pos + 3:end] if end != -1 else ''
                length = end + 1 - self.pos
            else:
                digits = self.source[self.pos + 2:self.pos + 6]
                length = 6
            try:
                value = chr(int(digits, 16))
            except ValueError:
                raise self.error("Invalid unicode escape") from None
            self._advance(length)
            return value
        if nxt == '\n':
            self._advance(2)
            return ''
        self._advance(2)
        return nxt

    def _handle_template(self):
        """Keep template literal text raw; the parser splits out ``${...}`` parts"""
        start_line, start_column = self.line, self.column
        self._advance()
        start = self.pos
        depth = 0
        while True:
            if self.pos >= len(self.source):
                raise self.error("Unterminated template literal", start_line, start_column)
            char = self.source[self.pos]
            if char == '\\':
                self._advance(2)
                continue
            if depth == 0 and char == '`':
                break
            if self.source.startswith('${', self.pos):
                depth += 1
                self._advance(2)
                continue
            if depth and char == '{':
                depth += 1
            elif depth and char == '}':
                depth -= 1
            self._advance()
        raw = self.source[start:self.pos]
        self._advance()
        self.tokens.append(Token(TokenType.TEMPLATE, raw, start_line, start_column + 1))

    def _handle_operator(self) -> bool:
        start_column = self.column
        for op in self._operator_order:
            if self.source.startswith(op, self.pos):
                # `a?.5:b` is a ternary, not optional chaining
                if op == '?.' and (self.peek(2) or '').isdigit():
                    continue
                self.tokens.append(Token(self.operators[op], op, self.line, start_column))
                self._advance(len(op))
                return True
        return False
