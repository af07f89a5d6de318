from typing import List, Optional

from resource_graph.errors import ParseError, SourceLocation
from .tokentypes import Token, TokenType
from .ast_nodes import *
from .lexer import HCLLexer
from .template import parse_template


class HCLParser:
    def __init__(self, tokens: List[Token], file: Optional[str] = None):
        self.tokens = tokens
        self.pos = 0
        self.file = file

        self.precedences = {
            TokenType.OR: 1,
            TokenType.AND: 2,
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

    # ------------------------------
    # Bodies and blocks
    # ------------------------------

    def parse(self) -> BlockNode:
        body = self.parse_body()
        if not self.match(TokenType.EOF):
            raise self.error(f"Unexpected '{self.current_token.value}' at top level")
        return body

    def parse_body(self) -> BlockNode:
        location = self.location()
        statements = []
        while not self.match(TokenType.EOF) and not self.match(TokenType.RBRACE):
            statements.append(self.parse_statement())
        return BlockNode(statements, location)

    def parse_statement(self) -> ASTNode:
        token = self.current_token
        if token.type != TokenType.IDENTIFIER:
            raise self.error(f"Expected an attribute or block name, got '{token.value or token.type.value}'")
        name_token = self.consume(TokenType.IDENTIFIER)

        if self.match(TokenType.EQUALS):
            self.consume(TokenType.EQUALS)
            value = self.parse_expression()
            return KeyValueNode(name_token.value, value, self.location(name_token))

        labels = []
        while self.current_token.type in (TokenType.STRING, TokenType.IDENTIFIER):
            label_token = self.consume(self.current_token.type)
            if label_token.type == TokenType.STRING and ('${' in label_token.value or '%{' in label_token.value):
                raise self.error("Block labels cannot contain template sequences", label_token)
            labels.append(label_token.value)

        if not self.match(TokenType.LBRACE):
            raise self.error(f"Expected '=' or '{{' after '{name_token.value}'")
        block = self.parse_block()
        return NamedBlockNode(name_token.value, labels, block, self.location(name_token))

    def parse_block(self) -> BlockNode:
        self.consume(TokenType.LBRACE)
        body = self.parse_body()
        self.consume(TokenType.RBRACE)
        return body

    # ------------------------------
    # Expressions
    # ------------------------------

    def parse_expression(self) -> ASTNode:
        start = self.current_token
        condition = self.parse_binary(0)
        if self.match(TokenType.QUESTION):
            self.consume(TokenType.QUESTION)
            true_expr = self.parse_expression()
            self.consume(TokenType.COLON)
            false_expr = self.parse_expression()
            return TernaryExpressionNode(condition, true_expr, false_expr, self.location(start))
        return condition

    def parse_binary(self, precedence: int) -> ASTNode:
        left = self.parse_unary()
        while True:
            current = self.current_token
            current_precedence = self.precedences.get(current.type, -1)
            if current_precedence < 0 or current_precedence < precedence:
                break
            op = self.consume(current.type)
            right = self.parse_binary(current_precedence + 1)
            left = ExpressionNode(left, op, right, self.location(op))
        return left

    def parse_unary(self) -> ASTNode:
        if self.current_token.type in (TokenType.NOT, TokenType.MINUS):
            op = self.consume(self.current_token.type)
            operand = self.parse_unary()
            return UnaryNode(op, operand, self.location(op))
        return self.parse_postfix(self.parse_primary())

    def parse_postfix(self, node: ASTNode) -> ASTNode:
        while True:
            if self.match(TokenType.DOT):
                dot = self.consume(TokenType.DOT)
                if self.match(TokenType.MULTIPLY):
                    self.consume(TokenType.MULTIPLY)
                    node = SplatNode(node, self._parse_splat_traversal(legacy=True), True, self.location(dot))
                elif self.match(TokenType.NUMBER):
                    index = self.consume(TokenType.NUMBER)
                    node = IndexNode(node, LiteralNode(int(index.value), self.location(index)), self.location(dot))
                else:
                    attr = self.consume(TokenType.IDENTIFIER)
                    node = AttributeAccessNode(node, attr.value, self.location(attr))
            elif self.match(TokenType.LBRACKET):
                bracket = self.consume(TokenType.LBRACKET)
                if self.match(TokenType.MULTIPLY) and self.peek() and self.peek().type == TokenType.RBRACKET:
                    self.consume(TokenType.MULTIPLY)
                    self.consume(TokenType.RBRACKET)
                    node = SplatNode(node, self._parse_splat_traversal(legacy=False), False, self.location(bracket))
                else:
                    index = self.parse_expression()
                    self.consume(TokenType.RBRACKET)
                    node = IndexNode(node, index, self.location(bracket))
            else:
                return node

    def _parse_splat_traversal(self, legacy: bool) -> list:
        traversal = []
        while True:
            if self.match(TokenType.DOT) and self.peek() and self.peek().type == TokenType.IDENTIFIER:
                self.consume(TokenType.DOT)
                traversal.append(self.consume(TokenType.IDENTIFIER).value)
            elif not legacy and self.match(TokenType.LBRACKET):
                if self.peek() and self.peek().type == TokenType.MULTIPLY:
                    break
                self.consume(TokenType.LBRACKET)
                traversal.append(self.parse_expression())
                self.consume(TokenType.RBRACKET)
            else:
                return traversal
        return traversal

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
            return parse_template(token.value, token.line, token.column, self.file, heredoc=False)
        elif token.type == TokenType.HEREDOC:
            self.consume(TokenType.HEREDOC)
            return parse_template(token.value, token.line, token.column, self.file, heredoc=True)
        elif token.type == TokenType.TRUE:
            self.consume(TokenType.TRUE)
            return LiteralNode(True, location)
        elif token.type == TokenType.FALSE:
            self.consume(TokenType.FALSE)
            return LiteralNode(False, location)
        elif token.type == TokenType.NULL:
            self.consume(TokenType.NULL)
            return LiteralNode(None, location)
        elif token.type == TokenType.LPAREN:
            self.consume(TokenType.LPAREN)
            expr = self.parse_expression()
            self.consume(TokenType.RPAREN)
            return expr
        elif token.type == TokenType.LBRACKET:
            if self.peek() and self.peek().type == TokenType.FOR:
                return self.parse_for_expression(TokenType.LBRACKET, TokenType.RBRACKET)
            return self.parse_list()
        elif token.type == TokenType.LBRACE:
            if self.peek() and self.peek().type == TokenType.FOR:
                return self.parse_for_expression(TokenType.LBRACE, TokenType.RBRACE)
            return self.parse_object()
        elif token.type == TokenType.IDENTIFIER:
            self.consume(TokenType.IDENTIFIER)
            if self.match(TokenType.LPAREN):
                return self.parse_function_call(token)
            return IdentifierNode(token.value, location)
        raise self.error(f"Unexpected token '{token.value or token.type.value}' in expression", token)

    def parse_function_call(self, name_token: Token) -> FunctionCallNode:
        self.consume(TokenType.LPAREN)
        args = []
        expand_final = False
        while not self.match(TokenType.RPAREN):
            args.append(self.parse_expression())
            if self.match(TokenType.ELLIPSIS):
                self.consume(TokenType.ELLIPSIS)
                expand_final = True
                break
            if self.match(TokenType.COMMA):
                self.consume(TokenType.COMMA)
            else:
                break
        self.consume(TokenType.RPAREN)
        return FunctionCallNode(name_token.value, args, expand_final, self.location(name_token))

    def parse_list(self) -> ListNode:
        start = self.consume(TokenType.LBRACKET)
        elements = []
        while not self.match(TokenType.RBRACKET):
            elements.append(self.parse_expression())
            if self.match(TokenType.COMMA):
                self.consume(TokenType.COMMA)
            else:
                break
        self.consume(TokenType.RBRACKET)
        return ListNode(elements, self.location(start))

    def parse_object(self) -> ObjectNode:
        start = self.consume(TokenType.LBRACE)
        items = []
        while not self.match(TokenType.RBRACE):
            key_token = self.current_token
            follower = self.peek()
            if key_token.type == TokenType.IDENTIFIER and follower and follower.type in (TokenType.EQUALS, TokenType.COLON):
                self.consume(TokenType.IDENTIFIER)
                key = LiteralNode(key_token.value, self.location(key_token))
            else:
                key = self.parse_expression()
            if self.match(TokenType.EQUALS):
                self.consume(TokenType.EQUALS)
            else:
                self.consume(TokenType.COLON)
            value = self.parse_expression()
            items.append((key, value))
            if self.match(TokenType.COMMA):
                self.consume(TokenType.COMMA)
        self.consume(TokenType.RBRACE)
        return ObjectNode(items, self.location(start))

    def parse_for_expression(self, open_type: TokenType, close_type: TokenType) -> ForExpressionNode:
        start = self.consume(open_type)
        self.consume(TokenType.FOR)
        first = self.consume(TokenType.IDENTIFIER).value
        key_var, value_var = None, first
        if self.match(TokenType.COMMA):
            self.consume(TokenType.COMMA)
            key_var, value_var = first, self.consume(TokenType.IDENTIFIER).value
        self.consume(TokenType.IN)
        collection = self.parse_expression()
        self.consume(TokenType.COLON)

        key_expr = None
        grouping = False
        if open_type == TokenType.LBRACE:
            key_expr = self.parse_expression()
            self.consume(TokenType.FAT_ARROW)
        value_expr = self.parse_expression()
        if self.match(TokenType.ELLIPSIS):
            if key_expr is None:
                raise self.error("Grouping '...' is only valid in a map for expression")
            self.consume(TokenType.ELLIPSIS)
            grouping = True

        condition = None
        if self.match(TokenType.IF):
            self.consume(TokenType.IF)
            condition = self.parse_expression()
        self.consume(close_type)
        return ForExpressionNode(key_var, value_var, collection, value_expr, key_expr,
                                 condition, grouping, self.location(start))


def parse_hcl(source: str, file: Optional[str] = None) -> BlockNode:
    tokens = HCLLexer(source, file=file).tokenize()
    return HCLParser(tokens, file).parse()
