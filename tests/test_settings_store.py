"""Tests for paths and application preferences."""

import json
from pathlib import Path

import pytest

from niri_settings.settings_models import ConfigPaths, default_app_preferences
from niri_settings.settings_store import (
    PreferencesStore,
    deep_merge_defaults,
    dot_get,
    dot_set,
    resolve_paths_with_preferences,
)


class TestConfigPaths:
    def test_layout(self, tmp_path):
        paths = ConfigPaths(niri_dir=tmp_path / "niri")
        root = (tmp_path / "niri").resolve()
        assert paths.niri_config == root / "config.kdl"
        assert paths.managed_dir == root / "niri-settings"
        assert paths.main_kdl == root / "niri-settings" / "main.kdl"
        assert paths.window_rules_kdl == root / "niri-settings" / "advanced" / "window-rules.kdl"
        assert paths.preferences_json == root / "niri-settings" / "app-prefs.json"
        assert paths.backup_dir == root / "backups"
        assert paths.managed_dir not in paths.backup_dir.parents

    def test_from_environment(self, tmp_path):
        paths = ConfigPaths.from_environment({"XDG_CONFIG_HOME": str(tmp_path)})
        assert paths.niri_dir == (tmp_path / "niri").resolve()

    def test_home_fallback(self, tmp_path):
        paths = ConfigPaths.from_environment({"HOME": str(tmp_path)})
        assert paths.niri_dir == (tmp_path / ".config" / "niri").resolve()

    def test_backup_dir_env_override(self, tmp_path):
        paths = ConfigPaths.from_environment(
            {"XDG_CONFIG_HOME": str(tmp_path), "NIRI_SETTINGS_BACKUP_DIR": str(tmp_path / "safe")}
        )
        assert paths.backup_dir == (tmp_path / "safe").resolve()

    def test_frozen(self, tmp_path):
        paths = ConfigPaths(niri_dir=tmp_path)
        with pytest.raises(AttributeError):
            paths.niri_dir = Path("/")


class TestHelpers:
    def test_deep_merge_keeps_user_values(self):
        merged = deep_merge_defaults({"logging": {"level": "DEBUG"}}, default_app_preferences())
        assert merged["logging"]["level"] == "DEBUG"
        assert "theme" not in merged
        assert merged["backups"] == {"directory": ""}

    def test_dot_access(self):
        data = {}
        dot_set(data, "a.b.c", 1)
        assert data == {"a": {"b": {"c": 1}}}
        assert dot_get(data, "a.b.c") == 1
        assert dot_get(data, "a.x", "fallback") == "fallback"
        with pytest.raises(ValueError):
            dot_set(data, "", 1)


class TestPreferencesStore:
    def test_missing_file_uses_defaults(self, tmp_path):
        store = PreferencesStore(tmp_path / "app-prefs.json")
        data = store.load()
        assert data == default_app_preferences()
        assert store.dirty

    def test_save_and_reload(self, tmp_path):
        path = tmp_path / "prefs" / "app-prefs.json"
        store = PreferencesStore(path)
        store.load()
        assert store.set("logging.level", "INFO")
        assert not store.set("logging.level", "INFO")
        store.save()
        assert not store.dirty

        reloaded = PreferencesStore(path)
        reloaded.load()
        assert reloaded.get("logging.level") == "INFO"
        assert json.loads(path.read_text())["logging"]["level"] == "INFO"

    def test_legacy_keys_are_migrated(self, tmp_path):
        path = tmp_path / "app-prefs.json"
        path.write_text(json.dumps({"backup_dir": "/srv/backups", "log_level": "INFO"}))
        store = PreferencesStore(path)
        store.load()
        assert store.get("backups.directory") == "/srv/backups"
        assert store.get("logging.level") == "INFO"
        assert "backup_dir" not in store.data
        assert store.dirty

    def test_unknown_keys_are_kept(self, tmp_path):
        path = tmp_path / "app-prefs.json"
        path.write_text(json.dumps({"window": {"width": 900}}))
        store = PreferencesStore(path)
        store.load()
        assert store.get("window.width") == 900
        assert store.get("logging.level") == "WARNING"
        assert not store.dirty

    def test_broken_file_is_reported_not_rewritten(self, tmp_path):
        path = tmp_path / "app-prefs.json"
        path.write_text("{not json")
        store = PreferencesStore(path)
        data = store.load()
        assert data == default_app_preferences()
        assert store.last_error
        assert path.read_text() == "{not json"

    def test_non_object_root(self, tmp_path):
        path = tmp_path / "app-prefs.json"
        path.write_text("[1, 2]")
        store = PreferencesStore(path)
        store.load()
        assert "JSON object" in store.last_error


def test_backup_dir_from_preferences(tmp_path):
    env = {"XDG_CONFIG_HOME": str(tmp_path)}
    prefs = tmp_path / "niri" / "niri-settings" / "app-prefs.json"
    prefs.parent.mkdir(parents=True)
    prefs.write_text(json.dumps({"backups": {"directory": str(tmp_path / "kept")}}))

    paths, store = resolve_paths_with_preferences(env)
    assert paths.backup_dir == (tmp_path / "kept").resolve()
    assert store.get("backups.directory") == str(tmp_path / "kept")

    env["NIRI_SETTINGS_BACKUP_DIR"] = str(tmp_path / "env")
    paths, _ = resolve_paths_with_preferences(env)
    assert paths.backup_dir == (tmp_path / "env").resolve()
