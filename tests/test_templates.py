"""Tests for HCL string templates, directives and heredocs."""

import pytest

from hclengine import evaluate_hcl
from resource_graph.errors import ParseError, TypeMismatchError
from resource_graph.values import RefTemplate, ResourceRef


def output_of(expression, bindings=None, prelude=""):
    source = f'{prelude}\noutput "o" {{\n  value = {expression}\n}}\n'
    return evaluate_hcl(source, bindings).outputs["o"]


class TestInterpolation:
    def test_single_interpolation_keeps_type(self):
        assert output_of('"${var.n}"', {"n": 5}) == 5
        assert output_of('"${var.items}"', {"items": ["a"]}) == ["a"]

    def test_mixed_template_renders_string(self):
        assert output_of('"n=${var.n}"', {"n": 5}) == "n=5"
        assert output_of('"${var.flag}!"', {"flag": True}) == "true!"

    def test_float_rendering(self):
        assert output_of('"${1.5 * 2}/${1 / 4}"') == "3/0.25"

    def test_escaped_sequences(self):
        assert output_of('"$${literal} and %%{directive}"') == "${literal} and %{directive}"
        assert output_of('"tab\\there"') == "tab\there"

    def test_null_cannot_be_interpolated(self):
        with pytest.raises(TypeMismatchError):
            output_of('"value: ${var.nothing}"', {"nothing": None})

    def test_list_cannot_be_interpolated(self):
        with pytest.raises(TypeMismatchError):
            output_of('"value: ${var.items}"', {"items": [1]})

    def test_resource_attribute_makes_reference_template(self):
        prelude = 'resource "aws_vpc" "main" {\n  cidr_block = "10.0.0.0/16"\n}\n'
        value = output_of('"arn:${aws_vpc.main.arn}"', prelude=prelude)
        assert value == RefTemplate(("arn:", ResourceRef("aws_vpc", "main", ("arn",))))


class TestDirectives:
    def test_if_else(self):
        template = '"%{ if var.flag }yes%{ else }no%{ endif }"'
        assert output_of(template, {"flag": True}) == "yes"
        assert output_of(template, {"flag": False}) == "no"

    def test_for(self):
        assert output_of('"%{ for x in var.items }${x},%{ endfor }"', {"items": ["a", "b"]}) == "a,b,"

    def test_for_with_key(self):
        template = '"%{ for k, v in var.m }${k}=${v};%{ endfor }"'
        assert output_of(template, {"m": {"a": 1, "b": 2}}) == "a=1;b=2;"

    def test_trim_markers(self):
        assert output_of('"a  ${~ "b" ~}  c"') == "abc"

    def test_if_needs_bool(self):
        with pytest.raises(TypeMismatchError):
            output_of('"%{ if var.flag }yes%{ endif }"', {"flag": "yes"})

    def test_missing_endif(self):
        with pytest.raises(ParseError):
            output_of('"%{ if true }yes"')

    def test_stray_endfor(self):
        with pytest.raises(ParseError):
            output_of('"oops%{ endfor }"')


class TestHeredoc:
    def test_heredoc_interpolates(self):
        expression = "<<EOT\nhello ${var.name}\nEOT"
        assert output_of(expression, {"name": "world"}) == "hello world\n"

    def test_heredoc_keeps_backslashes(self):
        assert output_of("<<EOT\nC:\\temp\nEOT") == "C:\\temp\n"
