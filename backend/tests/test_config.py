"""
Tests for configuration loading.
"""

import os
from unittest.mock import patch

import pytest

from config import find_config_path, load_config_from_directory, parse_config
from errors import ConfigError

CONFIG_YAML = """
workspacePath: ~/work
identities:
  acme:
    name: Acme Corp
    username: acme-corp
    scope: acme
    token: ghp_example
    npmjs:
      scopes: ["@acme", "@acme-labs"]
  solo:
    username: solo-dev
cacheTtl:
  scanSeconds: 60
registry:
  maxWorkers: 4
  requestsPerSecond: 5
"""


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / ".runghost"
    directory.mkdir()
    (directory / "config.yaml").write_text(CONFIG_YAML)
    return directory


class TestLoadConfig:
    def test_loads_yaml(self, config_dir):
        with patch("env.RUNGHOST_WORKSPACE_PATH", None):
            config = load_config_from_directory(str(config_dir))

        assert config.workspace_path == os.path.expanduser("~/work")
        assert config.cache_ttl.scan_seconds == 60
        assert config.cache_ttl.registry_listing_seconds == 3600
        assert config.registry.max_workers == 4
        assert config.registry.requests_per_second == 5
        assert config.registry.max_attempts == 5
        assert config.refresh_timeout_seconds == 600

    def test_identities_projection(self, config_dir):
        with patch("env.RUNGHOST_WORKSPACE_PATH", None):
            config = load_config_from_directory(str(config_dir))

        identities = config.to_identities()

        assert [(i.id, i.username, i.scopes) for i in identities] == [
            ("acme", "acme-corp", ["@acme", "@acme-labs"]),
            ("solo", "solo-dev", []),
        ]
        assert config.configured_scopes() == ["@acme", "@acme-labs"]

    def test_env_workspace_overrides_config(self, config_dir, tmp_path):
        with patch("env.RUNGHOST_WORKSPACE_PATH", str(tmp_path / "override")):
            config = load_config_from_directory(str(config_dir))

        assert config.workspace_path == str(tmp_path / "override")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_from_directory(str(tmp_path))

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "config.yaml").write_text("identities: [unclosed")
        with pytest.raises(ConfigError):
            load_config_from_directory(str(tmp_path))

    def test_non_mapping(self, tmp_path):
        (tmp_path / "config.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config_from_directory(str(tmp_path))


class TestParseConfig:
    def test_missing_workspace_path(self):
        with pytest.raises(ConfigError, match="workspacePath"):
            parse_config({"identities": {}})

    def test_malformed_identity(self):
        with pytest.raises(ConfigError):
            parse_config({"workspacePath": "/w", "identities": {"acme": {"scope": "@acme"}}})

    def test_rejects_bad_registry_settings(self):
        with pytest.raises(ConfigError):
            parse_config({"workspacePath": "/w", "registry": {"maxWorkers": 0}})


class TestFindConfigPath:
    def test_walks_up_the_tree(self, config_dir, tmp_path):
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config_path(str(nested)) == config_dir.resolve()
