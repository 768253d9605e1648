"""
Tests for configuration loading and saving.
"""

import json

import pytest

from viewx.config import (
    CONFIG_ENV_VAR, ViewxConfig, ensure_config_exists, get_config_path, load_config,
    save_config, update_config,
)


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "viewx" / "config.json"
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    return path


class TestConfigPath:
    def test_env_var(self, config_path):
        assert get_config_path() == config_path

    def test_xdg_config_home(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert get_config_path() == tmp_path / "viewx" / "config.json"


class TestLoadSave:
    """Test reading and writing the config file."""

    def test_defaults_when_missing(self, config_path):
        config = load_config()
        assert config.compiler.strict_xml_first
        assert config.cache.backend == "memory"
        assert config.store.default_priority == 16
        assert config.slots.max_depth == 8

    def test_round_trip(self, config_path):
        config = ViewxConfig()
        config.compiler.parse_cache_size = 4
        config.render.template_dir = "/srv/templates"
        assert save_config(config) == config_path

        loaded = load_config()
        assert loaded.compiler.parse_cache_size == 4
        assert loaded.render.template_dir == "/srv/templates"

    def test_unknown_keys_ignored(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text(json.dumps({"compiler": {"parse_cache_size": 2, "turbo": True}, "legacy": {}}))
        assert load_config().compiler.parse_cache_size == 2

    def test_corrupt_file_falls_back(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{not json")
        assert load_config().to_dict() == ViewxConfig().to_dict()

    def test_ensure_exists(self, config_path):
        assert ensure_config_exists() == config_path
        assert json.loads(config_path.read_text())["cache"]["enabled"] is True

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "other.json"
        save_config(ViewxConfig(), path)
        assert load_config(path).cli.color is True


class TestUpdateConfig:
    def test_only_given_values_change(self, config_path):
        update_config(parse_cache_size=8)
        config = update_config(cache_backend="database", max_slot_depth=3)
        assert config.compiler.parse_cache_size == 8
        assert config.cache.backend == "database"
        assert config.slots.max_depth == 3
        assert load_config().cache.backend == "database"

    def test_unknown_backend(self, config_path):
        with pytest.raises(ValueError):
            update_config(cache_backend="redis")
        assert not config_path.exists()
