"""
Tests for kickstart.yaml parsing.
"""

import pytest
import yaml

from kickstart.config import CONFIG_FILENAME, Config, ConfigError, load_config, parse_config
from kickstart.environment import DEFAULT_PACKAGES
from tests.conftest import TEMPLATE_DIR


class TestLoadConfig:
    def test_missing_file_means_defaults(self, tmp_path):
        config = load_config(tmp_path)

        assert config == Config()
        assert config.project.placeholder == "PROJECT_NAME"
        assert config.project.manifest == "Cargo.toml"
        assert config.git.branch == "master"
        assert config.git.commit_message == "Init"
        assert config.git.stage == (".envrc", ".gitignore", "flake.nix")
        assert config.environment.packages == DEFAULT_PACKAGES

    def test_explicit_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path, tmp_path / "elsewhere.yaml")

    def test_template_config_spells_out_the_defaults(self):
        assert load_config(TEMPLATE_DIR) == Config()

    def test_file_values_are_used(self, tmp_path):
        data = {
            "project": {"placeholder": "__NAME__", "manifest": "package.json", "name": "app"},
            "git": {"branch": "main", "stage": ["README.md"], "trigger": "init.sh"},
            "environment": {"packages": ["nodejs", "yarn"], "variables": {}, "tools": ["node"]},
        }
        (tmp_path / CONFIG_FILENAME).write_text(yaml.safe_dump(data), encoding="utf-8")

        config = load_config(tmp_path)

        assert config.project.placeholder == "__NAME__"
        assert config.project.name == "app"
        assert config.git.branch == "main"
        assert config.git.remote == "origin"
        assert config.git.stage == ("README.md",)
        assert config.git.trigger == "init.sh"
        assert config.environment.packages == ("nodejs", "yarn")
        assert config.environment.variables == {}

    def test_empty_file_means_defaults(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("", encoding="utf-8")

        assert load_config(tmp_path) == Config()

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("project: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(tmp_path)

    def test_top_level_must_be_mapping(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(tmp_path)


class TestParseConfig:
    def test_section_must_be_mapping(self):
        with pytest.raises(ConfigError, match="git"):
            parse_config({"git": "master"})

    def test_stage_must_be_list(self):
        with pytest.raises(ConfigError, match="stage"):
            parse_config({"git": {"stage": ".envrc"}})

    def test_empty_value_rejected(self):
        with pytest.raises(ConfigError, match="placeholder"):
            parse_config({"project": {"placeholder": "  "}})

    def test_branch_and_temp_branch_differ(self):
        with pytest.raises(ConfigError):
            parse_config({"git": {"branch": "work", "temp_branch": "work"}})

    def test_invalid_package_name(self):
        with pytest.raises(ConfigError, match="environment"):
            parse_config({"environment": {"packages": ["gcc; rm -rf /"]}})

    def test_unknown_keys_ignored(self):
        assert parse_config({"extra": 1, "project": {"unused": True}}) == Config()

    def test_require_remote_flag(self):
        assert parse_config({"git": {"require_remote": True}}).git.require_remote is True

    def test_quoted_boolean_rejected(self):
        # "false" in quotes is a string, which would otherwise read as true.
        with pytest.raises(ConfigError, match="require_remote"):
            parse_config({"git": {"require_remote": "false"}})

    def test_unrecognised_section_ignored(self):
        assert parse_config({"github": {"owner": "acme"}}) == Config()
