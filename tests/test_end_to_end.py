"""End-to-end checks of HCL configurations against target programs."""

import pytest

from CLI.error_mapping.diagnostics import DiagnosticMapper, DiagnosticSeverity, format_diagnostic
from CLI.executors.check import ParityCheckExecutor, check_sources, evaluate_file, language_of
from resource_graph.errors import DependencyCycleError, ParseError, UnboundVariableError

INSTANCES = [
    {"id": "i-0a1", "private_ip": "10.0.1.10"},
    {"id": "i-0b2", "private_ip": "10.0.1.11"},
    {"id": "i-0c3", "private_ip": "10.0.1.12"},
]

INSTANCE_MAP_HCL = """
variable "instances" {}

resource "aws_ssm_parameter" "ips" {
  name = "instance-ips"
  type = "StringMap"
  tags = {for i in var.instances : i.id => i.private_ip}
}
"""

INSTANCE_MAP_TS = """
import * as pulumi from "@pulumi/pulumi";
import * as aws from "@pulumi/aws";

const config = new pulumi.Config();
const instances = config.requireObject("instances");

new aws.ssm.Parameter("ips", {
    name: "instance-ips",
    type: "StringMap",
    tags: instances.map(i => [i.id, i.privateIp]).toMap(),
});
"""


class TestCheckSources:
    def test_for_expression_matches_to_map(self):
        result = check_sources(INSTANCE_MAP_HCL, INSTANCE_MAP_TS, {"instances": INSTANCES})
        assert result.equivalent, result.to_dict()
        assert result.pairing == {("aws_ssm_parameter", "ips"): ("aws_ssm_parameter", "ips")}

    def test_changed_binding_is_seen_by_both_sides(self):
        instances = INSTANCES[:1]
        assert check_sources(INSTANCE_MAP_HCL, INSTANCE_MAP_TS, {"instances": instances}).equivalent

    def test_network_fixtures(self, fixtures_dir):
        result = check_sources(
            (fixtures_dir / "network.tf").read_text(),
            (fixtures_dir / "network.ts").read_text(),
        )
        assert result.equivalent
        assert len(result.pairing) == 4

    def test_drift_is_reported(self, fixtures_dir):
        result = check_sources(
            (fixtures_dir / "network.tf").read_text(),
            (fixtures_dir / "network_drift.ts").read_text(),
        )
        assert not result.equivalent
        (changed,) = result.changed
        assert changed.left == ("aws_security_group", "web")
        assert {diff.path for diff in changed.attributes} == {"ingress[1].from_port", "ingress[1].to_port"}

    def test_renamed_resources(self):
        hcl = 'resource "aws_s3_bucket" "logs" {\n  bucket = "logs"\n}\n'
        ts = 'new aws.s3.Bucket("logBucket", { bucket: "logs" });'
        result = check_sources(hcl, ts)
        assert result.equivalent
        assert result.strategy == "search"

    def test_errors_carry_file_names(self):
        with pytest.raises(UnboundVariableError) as exc:
            check_sources('resource "a_b" "c" {\n  x = var.nope\n}\n', "", hcl_file="main.tf", target_file="index.ts")
        assert exc.value.location.file == "main.tf"

        with pytest.raises(ParseError) as exc:
            check_sources("", "const = 1;", hcl_file="main.tf", target_file="index.ts")
        assert exc.value.location.file == "index.ts"

    def test_bindings_are_not_mutated(self):
        bindings = {"instances": [dict(i) for i in INSTANCES]}
        check_sources(INSTANCE_MAP_HCL, INSTANCE_MAP_TS, bindings)
        assert bindings == {"instances": INSTANCES}


class TestExecutor:
    def test_execute_check(self, fixtures_dir):
        executor = ParityCheckExecutor(fixtures_dir / "network.tf", fixtures_dir / "network.ts")
        result, elapsed = executor.execute_check()
        assert result.equivalent
        assert elapsed >= 0

    def test_arguments_in_wrong_order(self, fixtures_dir):
        executor = ParityCheckExecutor(fixtures_dir / "network.ts", fixtures_dir / "network.tf")
        with pytest.raises(ValueError):
            executor.execute_check()

    def test_evaluate_file(self, fixtures_dir, provider_schema):
        graph = evaluate_file(fixtures_dir / "network.ts", {"ports": [22]}, provider_schema)
        ingress = graph.get("aws_security_group", "web").attributes["ingress"]
        assert [rule["from_port"] for rule in ingress] == [22]

    @pytest.mark.parametrize("name,language", [
        ("main.tf", "hcl"),
        ("config.HCL", "hcl"),
        ("index.ts", "target"),
        ("index.js", "target"),
    ])
    def test_language_of(self, name, language):
        assert language_of(name) == language

    def test_unknown_language(self):
        with pytest.raises(ValueError):
            language_of("main.py")


class TestDiagnostics:
    def test_known_error_gets_a_suggestion(self):
        error = UnboundVariableError("var.region")
        diagnostic = DiagnosticMapper().map_error(error)
        assert diagnostic.severity == DiagnosticSeverity.ERROR
        assert diagnostic.kind == "UnboundVariableError"
        assert "--bindings" in diagnostic.suggestion

    def test_subclass_lookup_and_rendering(self):
        error = DependencyCycleError(["aws_vpc.a", "aws_vpc.b", "aws_vpc.a"])
        text = format_diagnostic(DiagnosticMapper().map_error(error))
        assert "DependencyCycleError" in text
        assert "Suggestion:" in text

    def test_other_errors_have_no_suggestion(self):
        diagnostic = DiagnosticMapper().map_error(OSError("disk full"))
        assert diagnostic.suggestion is None
        assert diagnostic.message == "disk full"
