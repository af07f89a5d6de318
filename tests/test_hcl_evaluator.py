"""Tests for HCL evaluation into a resource graph."""

import pytest

from conftest import attributes
from resource_graph.errors import (
    DependencyCycleError,
    DuplicateKeyError,
    EvaluationError,
    ParseError,
    SchemaValidationError,
    TypeMismatchError,
    UnboundVariableError,
)
from resource_graph.values import RefTemplate, ResourceRef


def output_of(hcl, expression, bindings=None):
    graph = hcl(f'output "o" {{\n  value = {expression}\n}}\n', bindings)
    return graph.outputs["o"]


class TestVariablesAndLocals:
    def test_binding_wins_over_default(self, hcl):
        source = 'variable "env" {\n  default = "dev"\n}\noutput "o" {\n  value = var.env\n}\n'
        assert hcl(source).outputs["o"] == "dev"
        assert hcl(source, {"env": "prod"}).outputs["o"] == "prod"

    def test_unbound_variable(self, hcl):
        with pytest.raises(UnboundVariableError) as exc:
            output_of(hcl, "var.region")
        assert exc.value.name == "var.region"
        assert exc.value.location is not None

    def test_locals_may_reference_each_other_in_any_order(self, hcl):
        source = (
            'locals {\n  full = "${local.prefix}-app"\n  prefix = upper(var.env)\n}\n'
            'output "o" {\n  value = local.full\n}\n'
        )
        assert hcl(source, {"env": "dev"}).outputs["o"] == "DEV-app"

    def test_local_cycle(self, hcl):
        source = 'locals {\n  a = local.b\n  b = local.a\n}\noutput "o" {\n  value = local.a\n}\n'
        with pytest.raises(DependencyCycleError):
            hcl(source)

    def test_namespace_is_not_a_value(self, hcl):
        with pytest.raises(TypeMismatchError):
            output_of(hcl, "var")

    def test_duplicate_variable(self, hcl):
        with pytest.raises(ParseError):
            hcl('variable "a" {}\nvariable "a" {}\n')

    def test_unsupported_block(self, hcl):
        with pytest.raises(ParseError):
            hcl('widget "a" {}\n')

    def test_provider_blocks_are_skipped(self, hcl):
        graph = hcl('provider "aws" {\n  region = "us-east-1"\n}\n')
        assert len(graph) == 0


class TestExpressions:
    def test_arithmetic_and_comparison(self, hcl):
        assert output_of(hcl, "1 + 2 * 3") == 7
        assert output_of(hcl, "7 / 2") == 3.5
        assert output_of(hcl, "-var.n", {"n": 4}) == -4
        assert output_of(hcl, "2 < 3 && !false") is True

    def test_logical_operators_need_bools(self, hcl):
        with pytest.raises(TypeMismatchError):
            output_of(hcl, "true && 1")

    def test_logical_operators_evaluate_both_sides(self, hcl):
        with pytest.raises(UnboundVariableError):
            output_of(hcl, "false && var.missing")

    def test_ternary_evaluates_only_the_chosen_branch(self, hcl):
        assert output_of(hcl, 'true ? "yes" : var.missing') == "yes"
        assert output_of(hcl, "false ? var.missing : 2") == 2

    def test_ternary_needs_bool(self, hcl):
        with pytest.raises(TypeMismatchError):
            output_of(hcl, '"true" ? 1 : 2')

    def test_equality_is_structural(self, hcl):
        assert output_of(hcl, '{ a = [1, 2] } == { a = [1, 2] }') is True
        assert output_of(hcl, '1 == "1"') is False

    def test_division_by_zero(self, hcl):
        with pytest.raises(TypeMismatchError):
            output_of(hcl, "1 / 0")

    def test_functions(self, hcl):
        assert output_of(hcl, 'join("-", ["a", "b"])') == "a-b"
        assert output_of(hcl, "length(var.items)", {"items": [1, 2, 3]}) == 3
        assert output_of(hcl, "max(var.items...)", {"items": [4, 9, 2]}) == 9
        assert output_of(hcl, 'merge({ a = 1 }, { a = 2, b = 3 })') == {"a": 2, "b": 3}
        assert output_of(hcl, 'lookup({ a = 1 }, "b", 0)') == 0
        assert output_of(hcl, 'jsonencode({ b = 1, a = [true] })') == '{"a":[true],"b":1}'

    def test_unknown_function(self, hcl):
        with pytest.raises(EvaluationError):
            output_of(hcl, "frobnicate(1)")


class TestForExpressions:
    def test_list_form(self, hcl):
        assert output_of(hcl, "[for x in [1, 2, 3] : x * 2 if x != 2]") == [2, 6]

    def test_map_form(self, hcl):
        assert output_of(hcl, '{for k, v in { a = 1, b = 2 } : upper(k) => v}') == {"A": 1, "B": 2}

    def test_duplicate_key_without_grouping(self, hcl):
        with pytest.raises(DuplicateKeyError) as exc:
            output_of(hcl, '{for x in ["a", "a"] : x => 1}')
        assert exc.value.key == "a"

    def test_grouping_collects_values(self, hcl):
        expression = "{for o in var.items : o.az => o.id...}"
        items = [{"az": "a", "id": "1"}, {"az": "a", "id": "2"}, {"az": "b", "id": "3"}]
        assert output_of(hcl, expression, {"items": items}) == {"a": ["1", "2"], "b": ["3"]}

    def test_list_index_is_key(self, hcl):
        assert output_of(hcl, '{for i, v in ["x", "y"] : v => i}') == {"x": 0, "y": 1}


class TestSplat:
    def test_splat_over_list_of_objects(self, hcl):
        items = [{"id": "a"}, {"id": "b"}]
        assert output_of(hcl, "var.items[*].id", {"items": items}) == ["a", "b"]

    def test_splat_over_null_is_empty(self, hcl):
        assert output_of(hcl, "var.nothing[*].id", {"nothing": None}) == []

    def test_splat_wraps_single_value(self, hcl):
        assert output_of(hcl, "var.item[*].id", {"item": {"id": "a"}}) == ["a"]

    def test_splat_over_empty_list_is_empty(self, hcl):
        assert output_of(hcl, "var.items[*].id", {"items": []}) == []
        assert output_of(hcl, "var.items.*.id", {"items": []}) == []

    def test_attribute_splat_over_list_of_objects(self, hcl):
        items = [{"id": "a"}, {"id": "b"}]
        assert output_of(hcl, "var.items.*.id", {"items": items}) == ["a", "b"]

    def test_absent_fields_become_null(self, hcl):
        assert output_of(hcl, "[{ a = 1 }, { b = 2 }].*.a") == [1, None]
        assert output_of(hcl, "[{ a = 1 }, { b = 2 }][*].a") == [1, None]


class TestResources:
    def test_references_create_dependencies(self, hcl):
        graph = hcl(
            'resource "aws_subnet" "a" {\n  vpc_id = aws_vpc.main.id\n}\n'
            'resource "aws_vpc" "main" {\n  cidr_block = "10.0.0.0/16"\n}\n'
        )
        assert graph.keys() == [("aws_vpc", "main"), ("aws_subnet", "a")]
        assert attributes(graph, "aws_subnet", "a")["vpc_id"] == ResourceRef("aws_vpc", "main", ("id",))
        assert graph.edges() == {(("aws_subnet", "a"), ("aws_vpc", "main"))}

    def test_null_attributes_are_omitted(self, hcl):
        graph = hcl('resource "aws_vpc" "main" {\n  cidr_block = "10.0.0.0/16"\n  tags = null\n}\n')
        assert attributes(graph, "aws_vpc", "main") == {"cidr_block": "10.0.0.0/16"}

    def test_count(self, hcl):
        graph = hcl(
            'resource "aws_instance" "web" {\n  count = 2\n  ami = "ami-${count.index}"\n}\n'
            'output "ids" {\n  value = aws_instance.web[*].id\n}\n'
        )
        assert [name for _, name in graph.keys()] == ["web[0]", "web[1]"]
        assert attributes(graph, "aws_instance", "web[1]") == {"ami": "ami-1"}
        assert graph.outputs["ids"] == [
            ResourceRef("aws_instance", "web[0]", ("id",)),
            ResourceRef("aws_instance", "web[1]", ("id",)),
        ]

    def test_count_zero_creates_nothing(self, hcl):
        graph = hcl('resource "aws_instance" "web" {\n  count = 0\n  ami = "x"\n}\n')
        assert len(graph) == 0

    def test_for_each(self, hcl):
        graph = hcl(
            'resource "aws_s3_bucket" "b" {\n  for_each = { logs = "private", site = "public" }\n'
            '  bucket = each.key\n  acl = each.value\n}\n'
            'output "site" {\n  value = aws_s3_bucket.b["site"].arn\n}\n'
        )
        assert attributes(graph, "aws_s3_bucket", 'b["logs"]') == {"bucket": "logs", "acl": "private"}
        assert graph.outputs["site"] == ResourceRef("aws_s3_bucket", 'b["site"]', ("arn",))

    def test_count_and_for_each_conflict(self, hcl):
        with pytest.raises(ParseError):
            hcl('resource "a" "b" {\n  count = 1\n  for_each = ["x"]\n}\n')

    def test_depends_on(self, hcl):
        graph = hcl(
            'resource "aws_vpc" "main" {\n  cidr_block = "10.0.0.0/16"\n}\n'
            'resource "aws_instance" "web" {\n  ami = "x"\n  depends_on = [aws_vpc.main]\n}\n'
        )
        assert graph.get("aws_instance", "web").depends_on == (("aws_vpc", "main"),)
        assert "depends_on" not in attributes(graph, "aws_instance", "web")

    def test_resource_cycle(self, hcl):
        source = (
            'resource "aws_security_group" "a" {\n  peer = aws_security_group.b.id\n}\n'
            'resource "aws_security_group" "b" {\n  peer = aws_security_group.a.id\n}\n'
        )
        with pytest.raises(DependencyCycleError) as exc:
            hcl(source)
        assert exc.value.cycle[0] == exc.value.cycle[-1]

    def test_reference_template_attribute(self, hcl):
        graph = hcl(
            'resource "aws_vpc" "main" {\n  cidr_block = "10.0.0.0/16"\n}\n'
            'resource "aws_route53_record" "r" {\n  name = "vpc-${aws_vpc.main.id}"\n}\n'
        )
        value = attributes(graph, "aws_route53_record", "r")["name"]
        assert isinstance(value, RefTemplate)

    def test_evaluation_is_pure(self, hcl):
        source = 'resource "aws_vpc" "main" {\n  cidr_block = var.cidr\n  tags = { Name = "x" }\n}\n'
        first = hcl(source, {"cidr": "10.0.0.0/16"}).to_dict()
        second = hcl(source, {"cidr": "10.0.0.0/16"}).to_dict()
        assert first == second


class TestBlocks:
    def test_nested_blocks_become_lists(self, hcl):
        graph = hcl(
            'resource "aws_security_group" "web" {\n'
            '  ingress {\n    from_port = 80\n  }\n'
            '  ingress {\n    from_port = 443\n  }\n'
            '  lifecycle {\n    prevent_destroy = true\n  }\n'
            '}\n'
        )
        assert attributes(graph, "aws_security_group", "web") == {
            "ingress": [{"from_port": 80}, {"from_port": 443}],
        }

    def test_dynamic_blocks(self, hcl):
        graph = hcl(
            'resource "aws_security_group" "web" {\n'
            '  dynamic "ingress" {\n    for_each = var.ports\n    iterator = port\n'
            '    content {\n      from_port = port.value\n      index = port.key\n    }\n  }\n'
            '}\n',
            {"ports": [80, 443]},
        )
        assert attributes(graph, "aws_security_group", "web")["ingress"] == [
            {"from_port": 80, "index": 0},
            {"from_port": 443, "index": 1},
        ]

    def test_nested_dynamic_blocks_see_outer_iterator(self, hcl):
        graph = hcl(
            'resource "aws_lb_listener" "l" {\n'
            '  dynamic "rule" {\n    for_each = var.rules\n    content {\n'
            '      dynamic "host" {\n        for_each = rule.value.hosts\n'
            '        content {\n          name = "${rule.key}:${host.value}"\n        }\n      }\n'
            '    }\n  }\n'
            '}\n',
            {"rules": {"api": {"hosts": ["a", "b"]}}},
        )
        assert attributes(graph, "aws_lb_listener", "l")["rule"] == [
            {"host": [{"name": "api:a"}, {"name": "api:b"}]},
        ]

    def test_empty_dynamic_block_is_omitted(self, hcl):
        graph = hcl(
            'resource "aws_security_group" "web" {\n  name = "web"\n'
            '  dynamic "ingress" {\n    for_each = []\n    content {\n      from_port = 1\n    }\n  }\n'
            '}\n'
        )
        assert attributes(graph, "aws_security_group", "web") == {"name": "web"}

    def test_dynamic_needs_content(self, hcl):
        with pytest.raises(ParseError):
            hcl('resource "a" "b" {\n  dynamic "x" {\n    for_each = []\n  }\n}\n')

    def test_single_block_collapses_with_schema(self, hcl, provider_schema):
        graph = hcl(
            'resource "aws_instance" "web" {\n  ami = "ami-1"\n'
            '  root_block_device {\n    volume_size = 20\n  }\n}\n',
            schema=provider_schema,
        )
        assert attributes(graph, "aws_instance", "web")["root_block_device"] == {"volume_size": 20}

    def test_schema_validation(self, hcl, provider_schema):
        with pytest.raises(SchemaValidationError) as exc:
            hcl('resource "aws_instance" "web" {\n  instance_type = 3\n}\n', schema=provider_schema)
        assert any("ami" in problem for problem in exc.value.problems)
        assert any("instance_type" in problem for problem in exc.value.problems)

    def test_attribute_defined_twice(self, hcl):
        with pytest.raises(ParseError):
            hcl('resource "a" "b" {\n  x = 1\n  x = 2\n}\n')
