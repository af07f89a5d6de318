from typing import List, Optional, Set, Union

from resource_graph.errors import ParseError, SourceLocation
from resource_graph.values import format_number
from .tokentypes import KEYWORDS, Token, TokenType
from .ast_nodes import *
from .lexer import TSLexer

_TEMPLATE_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '0': '\0', '`': '`', '$': '$', '\\': '\\'}

_OPENERS = {TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE, TokenType.LESS_THAN}
_CLOSERS = {TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE, TokenType.GREATER_THAN}


class TSParser:
    def __init__(self, tokens: List[Token], file: Optional[str] = None):
        self.tokens = tokens
        self.pos = 0
        self.file = file

        self.precedences = {
            TokenType.NULLISH: 1,
            TokenType.OR: 1,
            TokenType.AND: 2,
            TokenType.STRICT_EQUAL: 3,
            TokenType.STRICT_NOT_EQUAL: 3,
            TokenType.EQUAL_EQUAL: 3,
            TokenType.NOT_EQUAL: 3,
            TokenType.GREATER_THAN: 4,
            TokenType.GREATER_EQUAL: 4,
            TokenType.LESS_THAN: 4,
            TokenType.LESS_EQUAL: 4,
            TokenType.PLUS: 5,
            TokenType.MINUS: 5,
            TokenType.MULTIPLY: 6,
            TokenType.DIVIDE: 6,
            TokenType.MODULO: 6,
        }

    @property
    def current_token(self) -> Token:
        return self.tokens[self.pos]

    def location(self, token: Optional[Token] = None) -> SourceLocation:
        token = token or self.current_token
        return SourceLocation(token.line, token.column, self.file)

    def error(self, message: str, token: Optional[Token] = None) -> ParseError:
        return ParseError(message, self.location(token))

    def consume(self, token_type: TokenType) -> Token:
        if self.match(token_type):
            token = self.tokens[self.pos]
            self.pos += 1
            return token
        current = self.current_token
        found = repr(current.value) if current.value else current.type.value
        raise self.error(f"Expected '{token_type.value}', got {found}")

    def match(self, token_type: TokenType) -> bool:
        return self.current_token.type == token_type

    def peek(self, offset=1) -> Optional[Token]:
        if self.pos + offset < len(self.tokens):
            return self.tokens[self.pos + offset]
        return None

    def _optional_semicolon(self):
        if self.match(TokenType.SEMICOLON):
            self.consume(TokenType.SEMICOLON)

    def _property_name(self) -> Token:
        """Identifiers and keywords are both valid after '.' and as object keys"""
        token = self.current_token
        if token.type == TokenType.IDENTIFIER or token.type in KEYWORDS.values():
            self.pos += 1
            return token
        raise self.error(f"Expected a property name, got '{token.value or token.type.value}'")

    # ------------------------------
    # Statements
    # ------------------------------

    def parse(self) -> ProgramNode:
        location = self.location()
        statements = []
        while not self.match(TokenType.EOF):
            statement = self.parse_statement()
            if statement is not None:
                statements.append(statement)
        return ProgramNode(statements, location)

    def parse_statement(self) -> Optional[ASTNode]:
        token = self.current_token
        if token.type == TokenType.SEMICOLON:
            self.consume(TokenType.SEMICOLON)
            return None
        if token.type == TokenType.IMPORT:
            self._skip_import()
            return None
        if token.type == TokenType.EXPORT:
            self.consume(TokenType.EXPORT)
            if self.current_token.type not in (TokenType.CONST, TokenType.LET, TokenType.VAR):
                raise self.error("Only 'export const' / 'export let' declarations are supported")
            return self.parse_declaration(exported=True)
        if token.type in (TokenType.CONST, TokenType.LET, TokenType.VAR):
            return self.parse_declaration()
        if token.type == TokenType.FOR:
            return self.parse_for_of()
        if token.type == TokenType.IF:
            return self.parse_if()
        if token.type == TokenType.RETURN:
            self.consume(TokenType.RETURN)
            value = None
            if self.current_token.type not in (TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF):
                value = self.parse_expression()
            self._optional_semicolon()
            return ReturnNode(value, self.location(token))
        if token.type == TokenType.LBRACE:
            return self.parse_block_statement()

        follower = self.peek()
        if token.type == TokenType.IDENTIFIER and follower and follower.type in (TokenType.EQUALS, TokenType.PLUS_EQUALS):
            self.consume(TokenType.IDENTIFIER)
            operator = self.consume(follower.type).value
            value = self.parse_expression()
            self._optional_semicolon()
            return AssignmentNode(token.value, operator, value, self.location(token))

        expression = self.parse_expression()
        self._optional_semicolon()
        return ExpressionStatementNode(expression, self.location(token))

    def _skip_import(self):
        start = self.consume(TokenType.IMPORT)
        while not self.match(TokenType.STRING):
            if self.match(TokenType.EOF):
                raise self.error("Unterminated import statement", start)
            self.pos += 1
        self.consume(TokenType.STRING)
        self._optional_semicolon()

    def parse_declaration(self, exported: bool = False) -> VariableDeclarationNode:
        kind_token = self.consume(self.current_token.type)
        target = self.parse_pattern()
        if self.match(TokenType.COLON):
            self.consume(TokenType.COLON)
            self._skip_type({TokenType.EQUALS, TokenType.SEMICOLON, TokenType.EOF})
        value = None
        if self.match(TokenType.EQUALS):
            self.consume(TokenType.EQUALS)
            value = self.parse_expression()
        elif kind_token.type == TokenType.CONST:
            raise self.error("'const' declarations must be initialized", kind_token)
        self._optional_semicolon()
        return VariableDeclarationNode(kind_token.value, target, value, exported, self.location(kind_token))

    def parse_pattern(self) -> Pattern:
        if self.match(TokenType.LBRACKET):
            self.consume(TokenType.LBRACKET)
            elements = []
            while not self.match(TokenType.RBRACKET):
                elements.append(self.parse_pattern())
                if not self.match(TokenType.COMMA):
                    break
                self.consume(TokenType.COMMA)
            self.consume(TokenType.RBRACKET)
            return ArrayPattern(elements)
        if self.match(TokenType.LBRACE):
            self.consume(TokenType.LBRACE)
            properties = []
            while not self.match(TokenType.RBRACE):
                key = self._property_name().value
                target = key
                if self.match(TokenType.COLON):
                    self.consume(TokenType.COLON)
                    target = self.parse_pattern()
                properties.append((key, target))
                if not self.match(TokenType.COMMA):
                    break
                self.consume(TokenType.COMMA)
            self.consume(TokenType.RBRACE)
            return ObjectPattern(properties)
        return self.consume(TokenType.IDENTIFIER).value

    def _skip_type(self, stops: Set[TokenType]):
        """Step over a type annotation; types carry no runtime meaning here"""
        depth = 0
        while True:
            token = self.current_token
            if token.type == TokenType.EOF:
                return
            if depth == 0 and token.type in stops:
                return
            if token.type in _OPENERS:
                depth += 1
            elif token.type in _CLOSERS:
                if depth == 0:
                    return
                depth -= 1
            self.pos += 1

    def parse_block_statement(self) -> BlockStatementNode:
        start = self.consume(TokenType.LBRACE)
        statements = []
        while not self.match(TokenType.RBRACE):
            if self.match(TokenType.EOF):
                raise self.error("Missing '}' to close block", start)
            statement = self.parse_statement()
            if statement is not None:
                statements.append(statement)
        self.consume(TokenType.RBRACE)
        return BlockStatementNode(statements, self.location(start))

    def parse_for_of(self) -> ForOfNode:
        start = self.consume(TokenType.FOR)
        self.consume(TokenType.LPAREN)
        if self.current_token.type not in (TokenType.CONST, TokenType.LET, TokenType.VAR):
            raise self.error("Expected 'const' or 'let' in for...of loop")
        kind = self.consume(self.current_token.type).value
        target = self.parse_pattern()
        if not self.match(TokenType.OF):
            raise self.error("Only 'for (... of ...)' loops are supported")
        self.consume(TokenType.OF)
        iterable = self.parse_expression()
        self.consume(TokenType.RPAREN)
        body = self.parse_statement()
        return ForOfNode(kind, target, iterable, body or BlockStatementNode([]), self.location(start))

    def parse_if(self) -> IfNode:
        start = self.consume(TokenType.IF)
        self.consume(TokenType.LPAREN)
        condition = self.parse_expression()
        self.consume(TokenType.RPAREN)
        then_branch = self.parse_statement() or BlockStatementNode([])
        else_branch = None
        if self.match(TokenType.ELSE):
            self.consume(TokenType.ELSE)
            else_branch = self.parse_statement() or BlockStatementNode([])
        return IfNode(condition, then_branch, else_branch, self.location(start))

    # ------------------------------
    # Expressions
    # ------------------------------

    def parse_expression(self) -> ASTNode:
        if self._at_arrow_function():
            return self.parse_arrow_function()
        start = self.current_token
        condition = self.parse_binary(0)
        if self.match(TokenType.QUESTION):
            self.consume(TokenType.QUESTION)
            true_expr = self.parse_expression()
            self.consume(TokenType.COLON)
            false_expr = self.parse_expression()
            return ConditionalNode(condition, true_expr, false_expr, self.location(start))
        return condition

    def _at_arrow_function(self) -> bool:
        token = self.current_token
        if token.type == TokenType.IDENTIFIER:
            follower = self.peek()
            return follower is not None and follower.type == TokenType.FAT_ARROW
        if token.type != TokenType.LPAREN:
            return False
        depth = 0
        index = self.pos
        while index < len(self.tokens):
            kind = self.tokens[index].type
            if kind in (TokenType.LPAREN, TokenType.LBRACKET, TokenType.LBRACE):
                depth += 1
            elif kind in (TokenType.RPAREN, TokenType.RBRACKET, TokenType.RBRACE):
                depth -= 1
                if depth == 0:
                    break
            elif kind == TokenType.EOF:
                return False
            index += 1
        following = self.tokens[index + 1].type if index + 1 < len(self.tokens) else TokenType.EOF
        if following == TokenType.FAT_ARROW:
            return True
        if following != TokenType.COLON:
            return False
        # `(x): Type => ...` has a return type annotation
        index += 2
        depth = 0
        while index < len(self.tokens):
            kind = self.tokens[index].type
            if depth == 0 and kind == TokenType.FAT_ARROW:
                return True
            if kind in _OPENERS:
                depth += 1
            elif kind in _CLOSERS:
                if depth == 0:
                    return False
                depth -= 1
            elif depth == 0 and kind in (TokenType.SEMICOLON, TokenType.COMMA, TokenType.EOF, TokenType.QUESTION):
                return False
            index += 1
        return False

    def parse_arrow_function(self) -> ArrowFunctionNode:
        start = self.current_token
        params = []
        if self.match(TokenType.IDENTIFIER):
            params.append(self.consume(TokenType.IDENTIFIER).value)
        else:
            self.consume(TokenType.LPAREN)
            while not self.match(TokenType.RPAREN):
                params.append(self.parse_pattern())
                if self.match(TokenType.QUESTION):
                    self.consume(TokenType.QUESTION)
                if self.match(TokenType.COLON):
                    self.consume(TokenType.COLON)
                    self._skip_type({TokenType.COMMA})
                if not self.match(TokenType.COMMA):
                    break
                self.consume(TokenType.COMMA)
            self.consume(TokenType.RPAREN)
            if self.match(TokenType.COLON):
                self.consume(TokenType.COLON)
                self._skip_type({TokenType.FAT_ARROW})
        self.consume(TokenType.FAT_ARROW)
        if self.match(TokenType.LBRACE):
            body = self.parse_block_statement()
        else:
            body = self.parse_expression()
        return ArrowFunctionNode(params, body, self.location(start))

    def parse_binary(self, precedence: int) -> ASTNode:
        left = self.parse_unary()
        while True:
            current = self.current_token
            current_precedence = self.precedences.get(current.type, -1)
            if current_precedence < 0 or current_precedence < precedence:
                break
            op = self.consume(current.type)
            right = self.parse_binary(current_precedence + 1)
            left = BinaryNode(left, op, right, self.location(op))
        return left

    def parse_unary(self) -> ASTNode:
        if self.current_token.type in (TokenType.NOT, TokenType.MINUS, TokenType.PLUS):
            op = self.consume(self.current_token.type)
            operand = self.parse_unary()
            return UnaryNode(op, operand, self.location(op))
        return self.parse_postfix(self.parse_primary())

    def parse_postfix(self, node: ASTNode) -> ASTNode:
        while True:
            token = self.current_token
            if token.type == TokenType.DOT:
                self.consume(TokenType.DOT)
                name = self._property_name()
                node = MemberNode(node, name.value, False, self.location(name))
            elif token.type == TokenType.OPTIONAL_CHAIN:
                self.consume(TokenType.OPTIONAL_CHAIN)
                if self.match(TokenType.LBRACKET):
                    self.consume(TokenType.LBRACKET)
                    index = self.parse_expression()
                    self.consume(TokenType.RBRACKET)
                    node = IndexNode(node, index, True, self.location(token))
                elif self.match(TokenType.LPAREN):
                    node = CallNode(node, self.parse_arguments(), self.location(token))
                else:
                    name = self._property_name()
                    node = MemberNode(node, name.value, True, self.location(name))
            elif token.type == TokenType.LBRACKET:
                self.consume(TokenType.LBRACKET)
                index = self.parse_expression()
                self.consume(TokenType.RBRACKET)
                node = IndexNode(node, index, False, self.location(token))
            elif token.type == TokenType.LPAREN:
                node = CallNode(node, self.parse_arguments(), self.location(token))
            elif token.type == TokenType.TEMPLATE:
                self.consume(TokenType.TEMPLATE)
                node = TemplateLiteralNode(self._template_parts(token), node, self.location(token))
            elif token.type == TokenType.NOT:
                # Non-null assertion `value!`
                self.consume(TokenType.NOT)
            elif token.type == TokenType.IDENTIFIER and token.value == 'as':
                self.consume(TokenType.IDENTIFIER)
                self._skip_type_reference()
            else:
                return node

    def _skip_type_reference(self):
        if self.match(TokenType.CONST):
            self.consume(TokenType.CONST)
            return
        self._property_name()
        while self.match(TokenType.DOT):
            self.consume(TokenType.DOT)
            self._property_name()
        if self.match(TokenType.LESS_THAN):
            self.consume(TokenType.LESS_THAN)
            self._skip_type({TokenType.GREATER_THAN})
            self.consume(TokenType.GREATER_THAN)
        while self.match(TokenType.LBRACKET) and self.peek() and self.peek().type == TokenType.RBRACKET:
            self.consume(TokenType.LBRACKET)
            self.consume(TokenType.RBRACKET)

    def parse_arguments(self) -> List[ASTNode]:
        self.consume(TokenType.LPAREN)
        args = []
        while not self.match(TokenType.RPAREN):
            args.append(self._element())
            if not self.match(TokenType.COMMA):
                break
            self.consume(TokenType.COMMA)
        self.consume(TokenType.RPAREN)
        return args

    def _element(self) -> ASTNode:
        if self.match(TokenType.ELLIPSIS):
            start = self.consume(TokenType.ELLIPSIS)
            return SpreadNode(self.parse_expression(), self.location(start))
        return self.parse_expression()

    def parse_primary(self) -> ASTNode:
        token = self.current_token
        location = self.location(token)
        if token.type == TokenType.NUMBER:
            self.consume(TokenType.NUMBER)
            if '.' in token.value or 'e' in token.value.lower():
                return LiteralNode(float(token.value), location)
            return LiteralNode(int(token.value), location)
        elif token.type == TokenType.STRING:
            self.consume(TokenType.STRING)
            return LiteralNode(token.value, location)
        elif token.type == TokenType.TEMPLATE:
            self.consume(TokenType.TEMPLATE)
            return TemplateLiteralNode(self._template_parts(token), None, location)
        elif token.type == TokenType.TRUE:
            self.consume(TokenType.TRUE)
            return LiteralNode(True, location)
        elif token.type == TokenType.FALSE:
            self.consume(TokenType.FALSE)
            return LiteralNode(False, location)
        elif token.type in (TokenType.NULL, TokenType.UNDEFINED):
            self.consume(token.type)
            return LiteralNode(None, location)
        elif token.type == TokenType.IDENTIFIER:
            self.consume(TokenType.IDENTIFIER)
            return IdentifierNode(token.value, location)
        elif token.type == TokenType.LPAREN:
            self.consume(TokenType.LPAREN)
            expr = self.parse_expression()
            self.consume(TokenType.RPAREN)
            return expr
        elif token.type == TokenType.LBRACKET:
            return self.parse_array()
        elif token.type == TokenType.LBRACE:
            return self.parse_object()
        elif token.type == TokenType.NEW:
            return self.parse_new()
        raise self.error(f"Unexpected token '{token.value or token.type.value}' in expression", token)

    def parse_new(self) -> NewNode:
        start = self.consume(TokenType.NEW)
        name = self.consume(TokenType.IDENTIFIER)
        callee: ASTNode = IdentifierNode(name.value, self.location(name))
        while self.match(TokenType.DOT):
            self.consume(TokenType.DOT)
            member = self._property_name()
            callee = MemberNode(callee, member.value, False, self.location(member))
        if self.match(TokenType.LESS_THAN):
            self.consume(TokenType.LESS_THAN)
            self._skip_type({TokenType.GREATER_THAN})
            self.consume(TokenType.GREATER_THAN)
        args = self.parse_arguments() if self.match(TokenType.LPAREN) else []
        return NewNode(callee, args, self.location(start))

    def parse_array(self) -> ArrayNode:
        start = self.consume(TokenType.LBRACKET)
        elements = []
        while not self.match(TokenType.RBRACKET):
            elements.append(self._element())
            if not self.match(TokenType.COMMA):
                break
            self.consume(TokenType.COMMA)
        self.consume(TokenType.RBRACKET)
        return ArrayNode(elements, self.location(start))

    def parse_object(self) -> ObjectNode:
        start = self.consume(TokenType.LBRACE)
        properties = []
        while not self.match(TokenType.RBRACE):
            token = self.current_token
            if token.type == TokenType.ELLIPSIS:
                properties.append(self._element())
            elif token.type == TokenType.LBRACKET:
                self.consume(TokenType.LBRACKET)
                key = self.parse_expression()
                self.consume(TokenType.RBRACKET)
                self.consume(TokenType.COLON)
                properties.append((key, self.parse_expression()))
            elif token.type in (TokenType.STRING, TokenType.NUMBER):
                self.consume(token.type)
                self.consume(TokenType.COLON)
                key = token.value if token.type == TokenType.STRING else format_number(float(token.value))
                properties.append((key, self.parse_expression()))
            else:
                name = self._property_name()
                if self.match(TokenType.COLON):
                    self.consume(TokenType.COLON)
                    properties.append((name.value, self.parse_expression()))
                elif name.type == TokenType.IDENTIFIER:
                    properties.append((name.value, IdentifierNode(name.value, self.location(name))))
                else:
                    raise self.error(f"Expected ':' after property '{name.value}'", name)
            if not self.match(TokenType.COMMA):
                break
            self.consume(TokenType.COMMA)
        self.consume(TokenType.RBRACE)
        return ObjectNode(properties, self.location(start))

    # ------------------------------
    # Template literals
    # ------------------------------

    def _template_location(self, token: Token, raw: str, offset: int) -> SourceLocation:
        before = raw[:offset]
        newlines = before.count('\n')
        if newlines:
            return SourceLocation(token.line + newlines, offset - before.rfind('\n'), self.file)
        return SourceLocation(token.line, token.column + offset, self.file)

    def _template_parts(self, token: Token) -> List[Union[str, ASTNode]]:
        raw = token.value
        parts: List[Union[str, ASTNode]] = []
        literal = []
        pos = 0
        while pos < len(raw):
            char = raw[pos]
            if char == '\\' and pos + 1 < len(raw):
                nxt = raw[pos + 1]
                literal.append(_TEMPLATE_ESCAPES.get(nxt, nxt))
                pos += 2
            elif raw.startswith('${', pos):
                if literal:
                    parts.append(''.join(literal))
                    literal = []
                close = self._template_close(raw, pos + 2, token)
                location = self._template_location(token, raw, pos + 2)
                tokens = TSLexer(raw[pos + 2:close], location.line, location.column, self.file).tokenize()
                sub = TSParser(tokens, self.file)
                parts.append(sub.parse_expression())
                if not sub.match(TokenType.EOF):
                    raise sub.error("Unexpected text after template expression")
                pos = close + 1
            else:
                literal.append(char)
                pos += 1
        if literal:
            parts.append(''.join(literal))
        return parts

    def _template_close(self, raw: str, pos: int, token: Token) -> int:
        depth = 1
        while pos < len(raw):
            char = raw[pos]
            if char in '"\'`':
                pos += 1
                while pos < len(raw) and raw[pos] != char:
                    pos += 2 if raw[pos] == '\\' else 1
            elif char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    return pos
            pos += 1
        raise ParseError("Unterminated '${' in template literal", self._template_location(token, raw, pos))


def parse_ts(source: str, file: Optional[str] = None) -> ProgramNode:
    tokens = TSLexer(source, file=file).tokenize()
    return TSParser(tokens, file).parse()
