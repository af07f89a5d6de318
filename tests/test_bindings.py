"""Tests for loading binding contexts and the settings file."""

import pytest
import yaml

from CLI.utils.bindings import load_bindings, parse_bindings
from CLI.utils.settings import Settings, config_file, init_config_dir, load_settings
from resource_graph.errors import BindingsError


class TestBindings:
    def test_yaml(self, fixtures_dir):
        bindings = load_bindings(fixtures_dir / "bindings.yaml")
        assert bindings["env"] == "prod"
        assert len(bindings["subnet_cidrs"]) == 3

    def test_json(self, fixtures_dir):
        assert load_bindings(fixtures_dir / "bindings.json") == {"env": "staging", "ports": [22]}

    def test_tfvars(self, fixtures_dir):
        bindings = load_bindings(fixtures_dir / "bindings.tfvars")
        assert bindings["env"] == "qa"
        assert bindings["subnet_cidrs"] == ["10.2.1.0/24"]

    def test_unknown_suffix(self, tmp_path):
        path = tmp_path / "vars.toml"
        path.write_text("env = 'x'\n")
        with pytest.raises(BindingsError):
            load_bindings(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(BindingsError):
            load_bindings(tmp_path / "absent.yaml")

    def test_top_level_must_be_mapping(self):
        with pytest.raises(BindingsError):
            parse_bindings("[1, 2]", "json")
        with pytest.raises(BindingsError):
            parse_bindings("- a\n", "yaml")

    def test_empty_documents(self):
        assert parse_bindings("", "json") == {}
        assert parse_bindings("", "yaml") == {}

    def test_malformed_json(self):
        with pytest.raises(BindingsError) as exc:
            parse_bindings("{", "json", "vars.json")
        assert "vars.json" in str(exc.value)


class TestSettings:
    def test_defaults_without_file(self):
        settings = load_settings()
        assert settings == Settings()

    def test_init_writes_defaults(self, isolated_home):
        path = init_config_dir()
        assert path == isolated_home / "config.yaml"
        data = yaml.safe_load(path.read_text())
        assert data["deadline_seconds"] == 10
        assert load_settings() == Settings()

    def test_init_keeps_existing_file(self):
        path = init_config_dir()
        path.write_text("max_resources: 3\n")
        init_config_dir()
        assert load_settings().max_resources == 3

    def test_unknown_keys_are_ignored(self):
        init_config_dir()
        config_file().write_text("max_resources: 4\nflavour: mint\n")
        settings = load_settings()
        assert settings.max_resources == 4
        assert not hasattr(settings, "flavour")

    def test_override_ignores_missing_values(self):
        settings = Settings().override(max_resources=2, step_budget=None)
        assert settings.max_resources == 2
        assert settings.step_budget == Settings().step_budget
