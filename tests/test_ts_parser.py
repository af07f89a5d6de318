"""Tests for the target-language lexer and parser."""

import pytest

from resource_graph.errors import ParseError
from tsengine.ast_nodes import (
    ArrayPattern,
    ArrowFunctionNode,
    BinaryNode,
    CallNode,
    ConditionalNode,
    ExpressionStatementNode,
    ForOfNode,
    MemberNode,
    NewNode,
    ObjectNode,
    ObjectPattern,
    TemplateLiteralNode,
    VariableDeclarationNode,
)
from tsengine.lexer import TSLexer
from tsengine.parser import parse_ts
from tsengine.tokentypes import TokenType


def declaration_value(source):
    program = parse_ts(f"const x = {source};")
    statement = program.statements[0]
    assert isinstance(statement, VariableDeclarationNode)
    return statement.value


class TestLexer:
    def test_keywords_and_operators(self):
        types = [t.type for t in TSLexer("const a = b ?? c?.d === e").tokenize()]
        assert types[0] == TokenType.CONST
        assert TokenType.NULLISH in types
        assert TokenType.OPTIONAL_CHAIN in types
        assert TokenType.STRICT_EQUAL in types

    def test_optional_chain_before_digit_is_conditional(self):
        types = [t.type for t in TSLexer("a?.5:1").tokenize()]
        assert TokenType.OPTIONAL_CHAIN not in types
        assert TokenType.QUESTION in types

    def test_numbers(self):
        values = [t.value for t in TSLexer("1_000 2.5e3 0.5").tokenize() if t.type == TokenType.NUMBER]
        assert values == ["1000", "2.5e3", "0.5"]

    def test_string_escapes(self):
        token = TSLexer(r"'it\'s \u{41}\n'").tokenize()[0]
        assert token.type == TokenType.STRING
        assert token.value == "it's A\n"

    def test_comments(self):
        types = [t.type for t in TSLexer("// line\n/* block */ a").tokenize()]
        assert types == [TokenType.IDENTIFIER, TokenType.EOF]

    def test_unterminated_template(self):
        with pytest.raises(ParseError):
            TSLexer("`abc").tokenize()


class TestParser:
    def test_imports_are_skipped(self):
        program = parse_ts('import * as aws from "@pulumi/aws";\nimport { Config } from "@pulumi/pulumi";\n')
        assert program.statements == []

    def test_type_annotations_are_ignored(self):
        program = parse_ts("const ports: Array<number> = [80];\nlet name: string | undefined;")
        assert [s.target for s in program.statements] == ["ports", "name"]

    def test_exported_declaration(self):
        statement = parse_ts("export const url = bucket.websiteEndpoint;").statements[0]
        assert statement.exported
        assert isinstance(statement.value, MemberNode)

    def test_new_expression(self):
        node = declaration_value('new aws.s3.Bucket("logs", { acl: "private" })')
        assert isinstance(node, NewNode)
        assert isinstance(node.callee, MemberNode)
        assert len(node.arguments) == 2

    def test_arrow_functions(self):
        node = declaration_value("(a: number, b?: string): number => a")
        assert isinstance(node, ArrowFunctionNode)
        assert node.params == ["a", "b"]
        block = declaration_value("x => { return x; }")
        assert isinstance(block, ArrowFunctionNode)

    def test_parenthesised_expression_is_not_arrow(self):
        assert isinstance(declaration_value("(a + b) * c"), BinaryNode)

    def test_nullish_binds_loosest(self):
        node = declaration_value("a ?? b || c")
        assert isinstance(node, BinaryNode)

    def test_conditional(self):
        assert isinstance(declaration_value("a ? b : c"), ConditionalNode)

    def test_template_literal(self):
        node = declaration_value("`name-${env}-${i + 1}`")
        assert isinstance(node, TemplateLiteralNode)
        assert node.parts[0] == "name-"
        assert isinstance(node.parts[3], BinaryNode)

    def test_tagged_template(self):
        node = declaration_value("pulumi.interpolate`https://${bucket.domain}`")
        assert isinstance(node, TemplateLiteralNode)
        assert isinstance(node.tag, MemberNode)

    def test_object_literal_forms(self):
        node = declaration_value('{ a: 1, "b-c": 2, 3: 4, [key]: 5, short, ...rest }')
        assert isinstance(node, ObjectNode)
        keys = [prop[0] for prop in node.properties[:3]]
        assert keys == ["a", "b-c", "3"]

    def test_as_casts_and_non_null(self):
        node = declaration_value("config.get('x')! as string")
        assert isinstance(node, CallNode)

    def test_destructuring(self):
        statement = parse_ts("const [first, { id }] = items;").statements[0]
        assert isinstance(statement.target, ArrayPattern)
        assert isinstance(statement.target.elements[1], ObjectPattern)

    def test_for_of(self):
        statement = parse_ts("for (const [k, v] of Object.entries(m)) { f(k); }").statements[0]
        assert isinstance(statement, ForOfNode)
        assert isinstance(statement.target, ArrayPattern)

    def test_expression_statement(self):
        statement = parse_ts('new aws.s3.Bucket("b");').statements[0]
        assert isinstance(statement, ExpressionStatementNode)

    def test_const_needs_initializer(self):
        with pytest.raises(ParseError):
            parse_ts("const a;")

    def test_unsupported_loop(self):
        with pytest.raises(ParseError):
            parse_ts("for (let i in items) {}")

    def test_error_location(self):
        with pytest.raises(ParseError) as exc:
            parse_ts("const a = ;", file="index.ts")
        assert exc.value.location.file == "index.ts"
        assert exc.value.location.line == 1
