"""Unit tests for configuration and data directory resolution."""

import json

import pytest

from codex_cli import config
from codex_cli.config import (
    Config,
    get_data_dir,
    get_setting,
    load_config,
    save_config,
    set_setting,
)
from codex_cli.errors import InvalidShapeError


class TestGetDataDir:
    """Tests for get_data_dir."""

    def test_override_wins(self, temp_data_dir):
        assert get_data_dir(temp_data_dir / "other") == temp_data_dir / "other"

    def test_env(self, temp_data_dir):
        assert get_data_dir() == temp_data_dir

    def test_default(self, monkeypatch):
        monkeypatch.delenv("CODEX_DATA_DIR")
        assert get_data_dir() == config.DEFAULT_DATA_DIR
        assert get_data_dir().name == ".codexcli"


class TestLoadConfig:
    """Tests for load_config / save_config."""

    def test_defaults_without_writing(self, temp_data_dir):
        assert load_config() == Config()
        assert not (temp_data_dir / "config.json").exists()

    def test_missing_data_dir_is_not_created(self, temp_data_dir):
        data_dir = temp_data_dir / "fresh"
        assert load_config(data_dir) == Config()
        assert not data_dir.exists()

    def test_first_change_writes_file(self, temp_data_dir):
        set_setting("theme", "dark")
        saved = json.loads((temp_data_dir / "config.json").read_text())
        assert saved == {"colors": True, "theme": "dark", "pretty": True}

    def test_round_trip(self, temp_data_dir):
        save_config(Config(colors=False, theme="dark", pretty=False))
        assert load_config() == Config(colors=False, theme="dark", pretty=False)

    def test_missing_keys_default(self, temp_data_dir):
        (temp_data_dir / "config.json").write_text('{"theme": "dark"}')
        assert load_config() == Config(theme="dark")

    def test_unknown_keys_ignored(self, temp_data_dir):
        (temp_data_dir / "config.json").write_text('{"colors": false, "legacy": 1}')
        assert load_config() == Config(colors=False)

    @pytest.mark.parametrize("content", ["{broken", "[1, 2]"])
    def test_invalid_file(self, temp_data_dir, content):
        (temp_data_dir / "config.json").write_text(content)
        with pytest.raises(InvalidShapeError):
            load_config()


class TestSettings:
    """Tests for get_setting / set_setting."""

    def test_get_setting(self):
        assert get_setting("theme") == "default"

    def test_unknown_setting(self):
        with pytest.raises(KeyError):
            get_setting("nope")
        with pytest.raises(KeyError):
            set_setting("nope", "x")

    @pytest.mark.parametrize("raw,expected", [("false", False), ("TRUE", True), (" true ", True)])
    def test_bool_coercion(self, raw, expected):
        set_setting("colors", raw)
        assert get_setting("colors") is expected

    def test_bool_rejects_other_values(self):
        with pytest.raises(ValueError):
            set_setting("pretty", "maybe")

    def test_string_setting(self):
        updated = set_setting("theme", "solarized")
        assert updated.theme == "solarized"
        assert get_setting("theme") == "solarized"
