from typing import List, Optional

from resource_graph.errors import ParseError, SourceLocation
from .tokentypes import Token, TokenType


class HCLLexer:
    def __init__(self, source: str, line: int = 1, column: int = 1, file: Optional[str] = None):
        self.source = source
        self.pos = 0
        self.line = line
        self.column = column
        self.file = file
        self.tokens: List[Token] = []

        self.keywords = {
            'for': TokenType.FOR,
            'in': TokenType.IN,
            'if': TokenType.IF,
            'null': TokenType.NULL,
            'true': TokenType.TRUE,
            'false': TokenType.FALSE,
        }

        self.operators = {
            '...': TokenType.ELLIPSIS,
            '==': TokenType.EQUAL_EQUAL,
            '!=': TokenType.NOT_EQUAL,
            '&&': TokenType.AND,
            '||': TokenType.OR,
            '>=': TokenType.GREATER_EQUAL,
            '<=': TokenType.LESS_EQUAL,
            '=>': TokenType.FAT_ARROW,
            '>': TokenType.GREATER_THAN,
            '<': TokenType.LESS_THAN,
            '=': TokenType.EQUALS,
            '+': TokenType.PLUS,
            '-': TokenType.MINUS,
            '*': TokenType.MULTIPLY,
            '/': TokenType.DIVIDE,
            '%': TokenType.MODULO,
            '!': TokenType.NOT,
            '?': TokenType.QUESTION,
            ':': TokenType.COLON,
            ',': TokenType.COMMA,
            '.': TokenType.DOT,
            '(': TokenType.LPAREN,
            ')': TokenType.RPAREN,
            '{': TokenType.LBRACE,
            '}': TokenType.RBRACE,
            '[': TokenType.LBRACKET,
            ']': TokenType.RBRACKET,
        }
        # Longest operators first so '...' wins over '.'
        self._operator_order = sorted(self.operators, key=lambda op: -len(op))

    def error(self, message: str, line: Optional[int] = None, column: Optional[int] = None) -> ParseError:
        return ParseError(message, SourceLocation(line or self.line, column or self.column, self.file))

    def tokenize(self) -> List[Token]:
        while self.pos < len(self.source):
            char = self.source[self.pos]

            if char.isspace():
                self._advance()
                continue

            if char == '#' or self.source.startswith('//', self.pos):
                self._handle_line_comment()
                continue

            if self.source.startswith('/*', self.pos):
                self._handle_block_comment()
                continue

            if char.isalpha() or char == '_':
                self._handle_identifier()
                continue

            if char.isdigit():
                self._handle_number()
                continue

            if char == '"':
                self._handle_string()
                continue

            if self.source.startswith('<<', self.pos) and self._looks_like_heredoc():
                self._handle_heredoc()
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

    def _handle_line_comment(self):
        while self.pos < len(self.source) and self.source[self.pos] != '\n':
            self._advance()

    def _handle_block_comment(self):
        start_line, start_column = self.line, self.column
        end = self.source.find('*/', self.pos + 2)
        if end == -1:
            raise self.error("Unterminated block comment", start_line, start_column)
        self._advance(end + 2 - self.pos)

    def _handle_identifier(self):
        start_column = self.column
        start = self.pos
        while (self.pos < len(self.source) and
               (self.source[self.pos].isalnum() or self.source[self.pos] in '_-')):
            self._advance()
        identifier = self.source[start:self.pos]
        token_type = self.keywords.get(identifier, TokenType.IDENTIFIER)
        self.tokens.append(Token(token_type, identifier, self.line, start_column))

    def _handle_number(self):
        start_column = self.column
        start = self.pos
        while self.pos < len(self.source) and self.source[self.pos].isdigit():
            self._advance()
        # A fractional part needs a digit after the dot, otherwise the dot is a traversal
        if self.source[self.pos:self.pos + 1] == '.' and (self.peek() or '').isdigit():
            self._advance()
            while self.pos < len(self.source) and self.source[self.pos].isdigit():
                self._advance()
        if self.source[self.pos:self.pos + 1] in ('e', 'E'):
            lookahead = self.pos + 1
            if self.source[lookahead:lookahead + 1] in ('+', '-'):
                lookahead += 1
            if self.source[lookahead:lookahead + 1].isdigit():
                self._advance(lookahead - self.pos)
                while self.pos < len(self.source) and self.source[self.pos].isdigit():
                    self._advance()
        self.tokens.append(Token(TokenType.NUMBER, self.source[start:self.pos], self.line, start_column))

    def _handle_string(self):
        """Quoted template; the raw text (escapes and interpolations intact) becomes the token value"""
        start_line, start_column = self.line, self.column
        self._advance()
        content_line, content_column = self.line, self.column
        start = self.pos
        self._skip_quoted_body(start_line, start_column)
        raw = self.source[start:self.pos]
        self._advance()  # closing quote
        self.tokens.append(Token(TokenType.STRING, raw, content_line, content_column))

    def _skip_quoted_body(self, start_line: int, start_column: int):
        while self.pos < len(self.source):
            char = self.source[self.pos]
            if char == '\\':
                self._advance(2)
            elif char == '"':
                return
            elif char == '\n':
                break
            elif self.source.startswith('$${', self.pos) or self.source.startswith('%%{', self.pos):
                self._advance(3)
            elif self.source.startswith('${', self.pos) or self.source.startswith('%{', self.pos):
                self._skip_interpolation()
            else:
                self._advance()
        raise self.error("Unterminated string", start_line, start_column)

    def _skip_interpolation(self):
        start_line, start_column = self.line, self.column
        self._advance(2)
        depth = 1
        while self.pos < len(self.source):
            char = self.source[self.pos]
            if char == '"':
                quote_line, quote_column = self.line, self.column
                self._advance()
                self._skip_quoted_body(quote_line, quote_column)
                self._advance()
                continue
            if char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    self._advance()
                    return
            self._advance()
        raise self.error("Unterminated template sequence", start_line, start_column)

    def _looks_like_heredoc(self) -> bool:
        rest = self.source[self.pos + 2:]
        if rest.startswith('-'):
            rest = rest[1:]
        return bool(rest) and (rest[0].isalpha() or rest[0] == '_')

    def _handle_heredoc(self):
        start_line, start_column = self.line, self.column
        self._advance(2)
        indented = False
        if self.source[self.pos] == '-':
            indented = True
            self._advance()
        marker_start = self.pos
        while self.pos < len(self.source) and (self.source[self.pos].isalnum() or self.source[self.pos] == '_'):
            self._advance()
        marker = self.source[marker_start:self.pos]
        if self.source[self.pos:self.pos + 1] != '\n':
            raise self.error(f"Heredoc marker {marker} must be followed by a newline", start_line, start_column)
        self._advance()
        content_line = self.line

        lines = []
        while True:
            if self.pos >= len(self.source):
                raise self.error(f"Unterminated heredoc; expected closing marker {marker}", start_line, start_column)
            end = self.source.find('\n', self.pos)
            if end == -1:
                end = len(self.source)
            line = self.source[self.pos:end]
            if line.strip() == marker:
                self._advance(len(line))
                break
            lines.append(line)
            self._advance(end + 1 - self.pos)

        if indented:
            widths = [len(line) - len(line.lstrip()) for line in lines if line.strip()]
            trim = min(widths) if widths else 0
            lines = [line[trim:] for line in lines]
        content = ''.join(line + '\n' for line in lines)
        self.tokens.append(Token(TokenType.HEREDOC, content, content_line, 1))

    def _handle_operator(self) -> bool:
        start_column = self.column
        for op in self._operator_order:
            if self.source.startswith(op, self.pos):
                self.tokens.append(Token(self.operators[op], op, self.line, start_column))
                self._advance(len(op))
                return True
        return False
