"""Tests for the structural graph comparison."""

import pytest

from resource_graph.equivalence import compare, diff_values
from resource_graph.errors import DeadlineExceededError, TooManyResourcesError
from resource_graph.model import ResourceGraph
from resource_graph.values import ResourceRef


def build(resources, outputs=None):
    """resources: list of (type, name, attributes[, depends_on])"""
    graph = ResourceGraph()
    for entry in resources:
        resource_type, name, attributes = entry[:3]
        depends_on = entry[3] if len(entry) > 3 else ()
        graph.add_resource(resource_type, name, attributes, depends_on)
    for key, value in (outputs or {}).items():
        graph.set_output(key, value)
    return graph.finalize()


def ref(resource_type, name, *path):
    return ResourceRef(resource_type, name, tuple(path))


def network(vpc_name="main", subnet_names=("a", "b")):
    resources = [("aws_vpc", vpc_name, {"cidr_block": "10.0.0.0/16"})]
    for index, name in enumerate(subnet_names):
        resources.append(("aws_subnet", name, {
            "vpc_id": ref("aws_vpc", vpc_name, "id"),
            "cidr_block": f"10.0.{index}.0/24",
        }))
    return build(resources)


def buckets(count, prefix="b"):
    return build([("aws_s3_bucket", f"{prefix}{i}", {"bucket": f"bucket-{i}"}) for i in range(count)])


class TestSameName:
    def test_reflexive(self):
        result = compare(network(), network())
        assert result.equivalent
        assert result.strategy == "same-name"
        assert result.pairing[("aws_vpc", "main")] == ("aws_vpc", "main")

    def test_empty_graphs(self):
        result = compare(build([]), build([]))
        assert result.equivalent

    def test_attribute_difference(self):
        left = build([("aws_s3_bucket", "b", {"acl": "private", "tags": {"a": "1"}})])
        right = build([("aws_s3_bucket", "b", {"acl": "public-read", "tags": {"a": "1"}})])
        result = compare(left, right)
        assert not result.equivalent
        assert result.strategy == "none"
        assert len(result.changed) == 1
        diff = result.changed[0].attributes[0]
        assert (diff.path, diff.kind, diff.left, diff.right) == ("acl", "changed", "private", "public-read")

    def test_missing_attribute_is_not_null(self):
        left = build([("aws_s3_bucket", "b", {"acl": "private"})])
        right = build([("aws_s3_bucket", "b", {})])
        result = compare(left, right)
        assert not result.equivalent
        assert result.changed[0].attributes[0].kind == "removed"

    def test_dependency_difference(self):
        left = build([
            ("aws_vpc", "main", {}),
            ("aws_instance", "web", {}, [("aws_vpc", "main")]),
        ])
        right = build([
            ("aws_vpc", "main", {}),
            ("aws_instance", "web", {}),
        ])
        result = compare(left, right)
        assert not result.equivalent
        assert result.changed[0].dependencies_only_left == [("aws_vpc", "main")]

    def test_extra_resource(self):
        result = compare(network(subnet_names=("a",)), network())
        assert not result.equivalent
        assert result.added == [("aws_subnet", "b")]
        assert result.removed == []

    def test_outputs_ignored_by_default(self):
        left = build([], {"url": "a"})
        right = build([], {"url": "b"})
        assert compare(left, right).equivalent
        result = compare(left, right, compare_outputs=True)
        assert not result.equivalent
        assert result.outputs[0].path == "url"


class TestRenamingSearch:
    def test_renamed_resources_are_paired(self):
        left = network("main", ("a", "b"))
        right = network("primary", ("first", "second"))
        result = compare(left, right)
        assert result.equivalent
        assert result.strategy == "search"
        assert result.pairing[("aws_vpc", "main")] == ("aws_vpc", "primary")
        assert result.pairing[("aws_subnet", "b")] == ("aws_subnet", "second")

    def test_search_respects_references(self):
        left = build([
            ("aws_vpc", "x", {"cidr_block": "10.0.0.0/16"}),
            ("aws_vpc", "y", {"cidr_block": "10.1.0.0/16"}),
            ("aws_subnet", "s", {"vpc_id": ref("aws_vpc", "x", "id")}),
        ])
        right = build([
            ("aws_vpc", "p", {"cidr_block": "10.0.0.0/16"}),
            ("aws_vpc", "q", {"cidr_block": "10.1.0.0/16"}),
            ("aws_subnet", "t", {"vpc_id": ref("aws_vpc", "q", "id")}),
        ])
        result = compare(left, right)
        assert not result.equivalent

    def test_symmetric(self):
        left = network("main", ("a", "b"))
        right = network("primary", ("first", "second"))
        forward = compare(left, right)
        backward = compare(right, left)
        assert forward.equivalent == backward.equivalent
        assert backward.pairing == forward.swapped().pairing

    def test_symmetric_mismatch(self):
        left = build([("aws_s3_bucket", "b", {"acl": "private"})])
        right = build([("aws_s3_bucket", "b", {"acl": "public"}), ("aws_s3_bucket", "c", {})])
        forward = compare(left, right)
        backward = compare(right, left)
        assert forward.to_dict() == backward.swapped().to_dict()

    def test_too_many_resources(self):
        left = build([("aws_s3_bucket", f"a{i}", {}) for i in range(3)])
        right = build([("aws_s3_bucket", f"b{i}", {}) for i in range(3)])
        with pytest.raises(TooManyResourcesError) as exc:
            compare(left, right, max_resources=2)
        assert exc.value.count == 3
        assert exc.value.limit == 2

    def test_limit_does_not_apply_to_same_name_pairing(self):
        assert compare(buckets(10), buckets(10), max_resources=2).equivalent

    def test_drift_in_large_graph_is_a_mismatch(self):
        left = buckets(9)
        right = build([("aws_s3_bucket", f"b{i}", {"bucket": "renamed" if i == 0 else f"bucket-{i}"}) for i in range(9)])
        result = compare(left, right)
        assert not result.equivalent
        assert [diff.left for diff in result.changed] == [("aws_s3_bucket", "b0")]

    def test_unambiguous_renames_ignore_the_limit(self):
        result = compare(buckets(9, "a"), buckets(9, "b"), max_resources=2)
        assert result.equivalent
        assert result.strategy == "search"

    def test_step_budget(self):
        # Pairing six renamed resources takes at least six steps
        with pytest.raises(DeadlineExceededError):
            compare(buckets(6, "a"), buckets(6, "b"), step_budget=5)

    def test_deadline(self):
        with pytest.raises(DeadlineExceededError):
            compare(buckets(6, "a"), buckets(6, "b"), deadline=-1)

    def test_different_type_census_skips_search(self):
        left = build([("aws_s3_bucket", "a", {})])
        right = build([("aws_sqs_queue", "b", {})])
        result = compare(left, right, max_resources=0)
        assert not result.equivalent
        assert result.removed == [("aws_s3_bucket", "a")]
        assert result.added == [("aws_sqs_queue", "b")]


class TestDiffValues:
    def test_nested_paths(self):
        diffs = diff_values({"a": {"b": [1, 2]}}, {"a": {"b": [1, 3]}})
        assert [(d.path, d.left, d.right) for d in diffs] == [("a.b[1]", 2, 3)]

    def test_length_change_is_single_diff(self):
        diffs = diff_values({"l": [1]}, {"l": [1, 2]})
        assert [(d.path, d.kind) for d in diffs] == [("l", "changed")]
