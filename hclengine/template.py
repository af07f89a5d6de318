"""Parser for HCL string templates: ``${...}`` interpolations, ``%{...}`` directives, ``~`` trim markers."""

import re
from typing import List, Optional, Tuple

from resource_graph.errors import ParseError, SourceLocation
from .ast_nodes import (
    InterpolationNode,
    LiteralNode,
    TemplateForNode,
    TemplateIfNode,
    TemplateNode,
)
from .lexer import HCLLexer
from .tokentypes import TokenType

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '"': '"', '\\': '\\'}
_UNICODE_ESCAPE = re.compile(r'u([0-9a-fA-F]{4})|U([0-9a-fA-F]{8})')


class _TemplateScanner:
    def __init__(self, raw: str, line: int, column: int, file: Optional[str], heredoc: bool):
        self.raw = raw
        self.line = line
        self.column = column
        self.file = file
        self.heredoc = heredoc

    def location(self, offset: int) -> SourceLocation:
        before = self.raw[:offset]
        newlines = before.count('\n')
        if newlines:
            return SourceLocation(self.line + newlines, offset - before.rfind('\n'), self.file)
        return SourceLocation(self.line, self.column + offset, self.file)

    def error(self, message: str, offset: int) -> ParseError:
        return ParseError(message, self.location(offset))

    def scan(self) -> List[tuple]:
        """Flat item list: ('lit', text) | ('interp', node, strip_l, strip_r) | ('dir', words, node, strip_l, strip_r, offset)"""
        items = []
        literal = []
        pos = 0
        raw = self.raw
        while pos < len(raw):
            if raw.startswith('$${', pos) or raw.startswith('%%{', pos):
                literal.append(raw[pos + 1:pos + 3])
                pos += 3
            elif raw.startswith('${', pos) or raw.startswith('%{', pos):
                if literal:
                    items.append(('lit', ''.join(literal)))
                    literal = []
                close = self._find_closing(pos + 2)
                items.append(self._sequence(raw[pos], pos, close))
                pos = close + 1
            elif raw[pos] == '\\' and not self.heredoc:
                text, pos = self._escape(pos)
                literal.append(text)
            else:
                literal.append(raw[pos])
                pos += 1
        if literal:
            items.append(('lit', ''.join(literal)))
        return items

    def _escape(self, pos: int) -> Tuple[str, int]:
        nxt = self.raw[pos + 1:pos + 2]
        if nxt in _ESCAPES:
            return _ESCAPES[nxt], pos + 2
        match = _UNICODE_ESCAPE.match(self.raw, pos + 1)
        if match:
            return chr(int(match.group(1) or match.group(2), 16)), match.end()
        raise self.error(f"Invalid escape sequence '\\{nxt}'", pos)

    def _find_closing(self, pos: int) -> int:
        depth = 1
        raw = self.raw
        while pos < len(raw):
            char = raw[pos]
            if char == '"':
                pos += 1
                while pos < len(raw) and raw[pos] != '"':
                    pos += 2 if raw[pos] == '\\' else 1
            elif char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    return pos
            pos += 1
        raise self.error("Unterminated template sequence", pos)

    def _sequence(self, marker: str, start: int, close: int) -> tuple:
        content_start = start + 2
        content_end = close
        strip_left = self.raw[content_start:content_start + 1] == '~'
        if strip_left:
            content_start += 1
        strip_right = content_end > content_start and self.raw[content_end - 1] == '~'
        if strip_right:
            content_end -= 1

        location = self.location(content_start)
        tokens = HCLLexer(self.raw[content_start:content_end], location.line, location.column, self.file).tokenize()

        from .parser import HCLParser

        parser = HCLParser(tokens, self.file)
        if marker == '$':
            expression = parser.parse_expression()
            if not parser.match(TokenType.EOF):
                raise parser.error("Unexpected text after interpolated expression")
            return ('interp', InterpolationNode(expression, self.location(start)), strip_left, strip_right)
        return self._directive(parser, start, strip_left, strip_right)

    def _directive(self, parser, start: int, strip_left: bool, strip_right: bool) -> tuple:
        token = parser.current_token
        if token.type == TokenType.IF:
            parser.consume(TokenType.IF)
            condition = parser.parse_expression()
            payload = ('if', condition)
        elif token.type == TokenType.FOR:
            parser.consume(TokenType.FOR)
            first = parser.consume(TokenType.IDENTIFIER).value
            key_var, value_var = None, first
            if parser.match(TokenType.COMMA):
                parser.consume(TokenType.COMMA)
                key_var, value_var = first, parser.consume(TokenType.IDENTIFIER).value
            parser.consume(TokenType.IN)
            payload = ('for', key_var, value_var, parser.parse_expression())
        elif token.type == TokenType.IDENTIFIER and token.value in ('else', 'endif', 'endfor'):
            parser.consume(TokenType.IDENTIFIER)
            payload = (token.value,)
        else:
            raise parser.error(f"Unknown template directive '{token.value}'")
        if not parser.match(TokenType.EOF):
            raise parser.error("Unexpected text in template directive")
        return ('dir', payload, strip_left, strip_right, start)


def _apply_trim_markers(items: List[tuple]) -> List[tuple]:
    items = list(items)
    for index, item in enumerate(items):
        if item[0] == 'lit':
            continue
        strip_left, strip_right = item[2], item[3]
        if strip_left and index > 0 and items[index - 1][0] == 'lit':
            items[index - 1] = ('lit', items[index - 1][1].rstrip())
        if strip_right and index + 1 < len(items) and items[index + 1][0] == 'lit':
            items[index + 1] = ('lit', items[index + 1][1].lstrip())
    return [item for item in items if item[0] != 'lit' or item[1]]


def _build(items: List[tuple], scanner: _TemplateScanner, pos: int, closers: Tuple[str, ...]):
    """Build nested parts until one of ``closers`` (returned alongside the parts)"""
    parts = []
    while pos < len(items):
        item = items[pos]
        if item[0] == 'lit':
            parts.append(LiteralNode(item[1]))
            pos += 1
        elif item[0] == 'interp':
            parts.append(item[1])
            pos += 1
        else:
            payload, offset = item[1], item[4]
            keyword = payload[0]
            if keyword in closers:
                return parts, pos, keyword
            if keyword == 'if':
                then_parts, pos, closer = _build(items, scanner, pos + 1, ('else', 'endif'))
                else_parts = []
                if closer == 'else':
                    else_parts, pos, closer = _build(items, scanner, pos + 1, ('endif',))
                if closer != 'endif':
                    raise scanner.error("Missing %{ endif } for %{ if }", offset)
                parts.append(TemplateIfNode(payload[1], then_parts, else_parts, scanner.location(offset)))
                pos += 1
            elif keyword == 'for':
                body, pos, closer = _build(items, scanner, pos + 1, ('endfor',))
                if closer != 'endfor':
                    raise scanner.error("Missing %{ endfor } for %{ for }", offset)
                parts.append(TemplateForNode(payload[1], payload[2], payload[3], body, scanner.location(offset)))
                pos += 1
            else:
                raise scanner.error(f"Unexpected %{{ {keyword} }}", offset)
    return parts, pos, None


def parse_template(raw: str, line: int, column: int, file: Optional[str] = None, heredoc: bool = False) -> TemplateNode:
    scanner = _TemplateScanner(raw, line, column, file, heredoc)
    items = _apply_trim_markers(scanner.scan())
    parts, _, closer = _build(items, scanner, 0, ())
    if closer is not None:
        raise scanner.error(f"Unexpected %{{ {closer} }}", 0)
    return TemplateNode(parts, SourceLocation(line, column, file))
