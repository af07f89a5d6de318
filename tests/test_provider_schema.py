"""Tests for the mock provider model."""

import pytest

from resource_graph.errors import BindingsError
from resource_graph.provider import ProviderSchema, conventional_type_name, load_provider_schema
from resource_graph.values import RefTemplate, ResourceRef


class TestLoading:
    def test_fixture_schema(self, provider_schema):
        assert set(provider_schema.resources) == {"aws_vpc", "aws_subnet", "aws_security_group", "aws_instance"}
        instance = provider_schema.get("aws_instance")
        assert instance.attributes["ami"].required
        assert instance.blocks["root_block_device"].single

    def test_block_lookup(self, provider_schema):
        ingress = provider_schema.block_of("aws_security_group", ["ingress"])
        assert "from_port" in ingress.attributes
        assert provider_schema.block_of("aws_security_group", ["egress"]) is None
        assert provider_schema.block_of("aws_nothing", ["ingress"]) is None

    def test_unknown_attribute_type(self):
        with pytest.raises(BindingsError):
            ProviderSchema.from_dict({"resources": {"aws_vpc": {"attributes": {"cidr_block": "cidr"}}}})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("resources: [unclosed\n")
        with pytest.raises(BindingsError):
            load_provider_schema(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("- aws_vpc\n")
        with pytest.raises(BindingsError):
            load_provider_schema(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "schema.yaml"
        path.write_text("")
        assert load_provider_schema(path).resources == {}


class TestTargetTypes:
    def test_explicit_target_type(self, provider_schema):
        assert provider_schema.resolve_target_type("aws.ec2.SecurityGroup") == "aws_security_group"

    def test_conventional_names(self, provider_schema):
        assert provider_schema.resolve_target_type("aws.s3.Bucket") == "aws_s3_bucket"
        assert conventional_type_name("aws.ec2.Vpc") == "aws_vpc"
        assert conventional_type_name("aws.iam.RolePolicyAttachment") == "aws_iam_role_policy_attachment"

    def test_empty_schema_uses_convention(self):
        assert ProviderSchema().resolve_target_type("aws.ec2.Instance") == "aws_instance"


class TestValidation:
    def test_valid_resource(self, provider_schema):
        assert provider_schema.validate("aws_instance", {
            "ami": "ami-1",
            "root_block_device": {"volume_size": 20},
        }) == []

    def test_missing_required(self, provider_schema):
        problems = provider_schema.validate("aws_instance", {"instance_type": "t3.micro"})
        assert problems == ["missing required attribute 'ami'"]

    def test_wrong_type(self, provider_schema):
        problems = provider_schema.validate("aws_vpc", {"cidr_block": 10})
        assert len(problems) == 1
        assert "cidr_block" in problems[0]

    def test_references_and_templates_pass_type_checks(self, provider_schema):
        vpc_id = ResourceRef("aws_vpc", "main", ("id",))
        assert provider_schema.validate("aws_subnet", {"vpc_id": vpc_id}) == []
        assert provider_schema.validate("aws_subnet", {"vpc_id": RefTemplate(("vpc-", vpc_id))}) == []

    def test_unsupported_attribute(self, provider_schema):
        problems = provider_schema.validate("aws_vpc", {"cidr_block": "10.0.0.0/16", "colour": "red"})
        assert problems == ["unsupported attribute 'colour'"]

    def test_nested_block_problems_carry_a_path(self, provider_schema):
        problems = provider_schema.validate("aws_security_group", {"ingress": [{"from_port": "80"}]})
        assert len(problems) == 1
        assert problems[0].startswith("ingress[0].")

    def test_max_items(self, provider_schema):
        problems = provider_schema.validate("aws_instance", {
            "ami": "ami-1",
            "root_block_device": [{"volume_size": 1}, {"volume_size": 2}],
        })
        assert any("at most 1" in problem for problem in problems)

    def test_unknown_type_is_not_validated(self, provider_schema):
        assert provider_schema.validate("aws_s3_bucket", {"anything": 1}) == []
