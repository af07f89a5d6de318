"""Pytest configuration and fixtures."""
from pathlib import Path

import pytest

from hclengine import evaluate_hcl
from resource_graph.provider import load_provider_schema
from tsengine import evaluate_ts

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep settings and log files out of the real home directory."""
    home = tmp_path / "tfparity-home"
    monkeypatch.setenv("TFPARITY_HOME", str(home))
    return home


@pytest.fixture
def fixtures_dir():
    return FIXTURES


@pytest.fixture
def provider_schema():
    """Mock AWS provider model shared by the schema-aware tests."""
    return load_provider_schema(FIXTURES / "provider.yaml")


@pytest.fixture
def hcl():
    """Evaluate HCL source text into a graph."""
    def run(source, bindings=None, schema=None):
        return evaluate_hcl(source, bindings, schema)
    return run


@pytest.fixture
def ts():
    """Evaluate target-language source text into a graph."""
    def run(source, bindings=None, schema=None):
        return evaluate_ts(source, bindings, schema)
    return run


def attributes(graph, resource_type, name):
    resource = graph.get(resource_type, name)
    assert resource is not None, f"{resource_type}.{name} missing from {graph.keys()}"
    return resource.attributes
