"""Tests for the resource graph and the shared value model."""

import copy

import pytest

from resource_graph.errors import (
    DanglingReferenceError,
    DuplicateResourceError,
    GraphFinalizedError,
    TypeMismatchError,
)
from resource_graph.model import ResourceGraph
from resource_graph.values import (
    RefTemplate,
    ResourceRef,
    arithmetic,
    canonical_json,
    format_number,
    snake_case,
    to_plain,
    values_equal,
)


def vpc_graph():
    graph = ResourceGraph()
    graph.add_resource("aws_vpc", "main", {"cidr_block": "10.0.0.0/16"})
    graph.add_resource("aws_subnet", "a", {"vpc_id": ResourceRef("aws_vpc", "main", ("id",))})
    return graph


class TestResourceGraph:
    def test_edges_follow_references(self):
        graph = vpc_graph()
        assert graph.edges() == {(("aws_subnet", "a"), ("aws_vpc", "main"))}
        assert len(graph) == 2
        assert ("aws_vpc", "main") in graph

    def test_insertion_order(self):
        assert vpc_graph().keys() == [("aws_vpc", "main"), ("aws_subnet", "a")]

    def test_duplicate_key(self):
        graph = vpc_graph()
        with pytest.raises(DuplicateResourceError):
            graph.add_resource("aws_vpc", "main", {})

    def test_same_name_different_type_is_allowed(self):
        graph = vpc_graph()
        graph.add_resource("aws_s3_bucket", "main", {})
        assert len(graph) == 3

    def test_dangling_reference(self):
        graph = ResourceGraph()
        with pytest.raises(DanglingReferenceError):
            graph.add_resource("aws_subnet", "a", {"vpc_id": ResourceRef("aws_vpc", "main", ("id",))})

    def test_dangling_explicit_dependency(self):
        graph = ResourceGraph()
        with pytest.raises(DanglingReferenceError):
            graph.add_resource("aws_instance", "web", {}, depends_on=[("aws_vpc", "main")])

    def test_finalized_graph_is_read_only(self):
        graph = vpc_graph().finalize()
        with pytest.raises(GraphFinalizedError):
            graph.add_resource("aws_s3_bucket", "b", {})
        with pytest.raises(GraphFinalizedError):
            graph.set_output("x", 1)

    def test_attributes_are_copied(self):
        attributes = {"cidr_block": "10.0.0.0/16"}
        graph = ResourceGraph()
        graph.add_resource("aws_vpc", "main", attributes)
        attributes["cidr_block"] = "changed"
        assert graph.get("aws_vpc", "main").attributes["cidr_block"] == "10.0.0.0/16"

    def test_attributes_are_read_only(self):
        graph = ResourceGraph()
        graph.add_resource("aws_instance", "web", {"tags": {"a": "1"}, "ports": [80]})
        resource = graph.finalize().get("aws_instance", "web")
        with pytest.raises(TypeError):
            resource.attributes["ami"] = "x"
        with pytest.raises(TypeError):
            resource.attributes["tags"].update(b="2")
        with pytest.raises(TypeError):
            resource.attributes["ports"].append(443)
        assert resource.attributes == {"tags": {"a": "1"}, "ports": [80]}

    def test_copies_of_attributes_are_mutable(self):
        graph = vpc_graph()
        attributes = copy.deepcopy(graph.get("aws_vpc", "main").attributes)
        attributes["cidr_block"] = "changed"
        assert graph.get("aws_vpc", "main").attributes["cidr_block"] == "10.0.0.0/16"

    def test_to_dict(self):
        graph = vpc_graph()
        graph.set_output("id", ResourceRef("aws_vpc", "main", ("id",)))
        data = graph.to_dict()
        assert data["resources"][1] == {
            "type": "aws_subnet",
            "name": "a",
            "attributes": {"vpc_id": "${aws_vpc.main.id}"},
            "depends_on": ["aws_vpc.main"],
        }
        assert data["outputs"] == {"id": "${aws_vpc.main.id}"}


class TestValues:
    def test_deep_equality_ignores_map_order(self):
        assert values_equal({"a": [1, {"b": 2}], "c": None}, {"c": None, "a": [1, {"b": 2}]})

    def test_list_order_matters(self):
        assert not values_equal([1, 2], [2, 1])

    def test_numbers_compare_by_value(self):
        assert values_equal(1, 1.0)
        assert not values_equal(True, 1)
        assert not values_equal("1", 1)

    def test_references_respect_mapping(self):
        left = ResourceRef("aws_vpc", "main", ("id",))
        right = ResourceRef("aws_vpc", "primary", ("id",))
        assert not values_equal(left, right)
        assert values_equal(left, right, {("aws_vpc", "main"): ("aws_vpc", "primary")})
        assert not values_equal(left, right.child("x"), {("aws_vpc", "main"): ("aws_vpc", "primary")})

    def test_ref_template_merges_literals(self):
        ref = ResourceRef("aws_vpc", "main", ("id",))
        assert RefTemplate.build(["a", "", "b"]) == "ab"
        built = RefTemplate.build(["x-", ref, "-", "y"])
        assert built == RefTemplate(("x-", ref, "-y"))
        assert str(built) == "x-${aws_vpc.main.id}-y"

    def test_to_plain(self):
        ref = ResourceRef("aws_instance", "web[0]", ("ebs", 0))
        assert to_plain({"r": ref, "n": 2.0}) == {"r": "${aws_instance.web[0].ebs[0]}", "n": 2}

    def test_canonical_json_rejects_references(self):
        with pytest.raises(TypeMismatchError):
            canonical_json({"id": ResourceRef("aws_vpc", "main", ("id",))})

    def test_arithmetic_rejects_unknown_values(self):
        with pytest.raises(TypeMismatchError):
            arithmetic("+", ResourceRef("aws_vpc", "main", ("cidr",)), 1)

    @pytest.mark.parametrize("name,expected", [
        ("privateIp", "private_ip"),
        ("cidrBlock", "cidr_block"),
        ("already_snake", "already_snake"),
        ("HTTPSListener", "https_listener"),
    ])
    def test_snake_case(self, name, expected):
        assert snake_case(name) == expected

    def test_format_number(self):
        assert format_number(3.0) == "3"
        assert format_number(0.5) == "0.5"
