from __future__ import annotations

import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

from niri_settings.services import file_io
from niri_settings.settings_models import (
    BACKUP_DIR_ENV,
    AppPreferences,
    ConfigPaths,
    default_app_preferences,
)

logger = logging.getLogger(__name__)

# Keys written by older releases, mapped to where they live now.
LEGACY_KEYS = {
    "log_level": "logging.level",
    "backup_dir": "backups.directory",
}


class SettingsStoreError(RuntimeError):
    """Raised when a preferences file cannot be saved."""


def deep_merge_defaults(data: Mapping[str, Any], defaults: Mapping[str, Any]) -> dict[str, Any]:
    """Fill keys missing from ``data`` with copies of ``defaults``."""
    merged = deepcopy(dict(data))
    for key, default_value in defaults.items():
        if key not in merged:
            merged[key] = deepcopy(default_value)
        elif isinstance(merged[key], dict) and isinstance(default_value, dict):
            merged[key] = deep_merge_defaults(merged[key], default_value)
    return merged


def dot_get(data: Mapping[str, Any], key: str, default: Any = None) -> Any:
    current: Any = data
    for part in key.split(".") if key else ():
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def dot_set(data: dict[str, Any], key: str, value: Any) -> None:
    if not key:
        raise ValueError("Key cannot be empty.")
    *parents, leaf = key.split(".")
    current = data
    for part in parents:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[leaf] = value


def migrate_legacy_keys(raw: dict[str, Any]) -> bool:
    changed = False
    for old_key, new_key in LEGACY_KEYS.items():
        if old_key not in raw:
            continue
        value = raw.pop(old_key)
        if dot_get(raw, new_key) is None:
            dot_set(raw, new_key, value)
        changed = True
        logger.info("Migrated preference %r to %r", old_key, new_key)
    return changed


class PreferencesStore:
    """Application preferences kept as JSON in the managed directory."""

    def __init__(self, path: str | Path, defaults: AppPreferences | None = None) -> None:
        self.path = Path(path)
        self.defaults: dict[str, Any] = deepcopy(dict(defaults or default_app_preferences()))
        self.data: dict[str, Any] = deepcopy(self.defaults)
        self.dirty = False
        self.last_error: str | None = None

    def load(self) -> dict[str, Any]:
        """Read the file; an unreadable file leaves defaults in place.

        The broken file is never rewritten here, only reported through
        ``last_error``.
        """
        self.last_error = None
        if not self.path.exists():
            self.data = deepcopy(self.defaults)
            self.dirty = True
            return self.data

        try:
            raw = json.loads(file_io.read_text(self.path))
        except (file_io.FileIOError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            self.last_error = str(exc)
            logger.warning("Could not load preferences from %s: %s", self.path, exc)
            self.data = deepcopy(self.defaults)
            self.dirty = False
            return self.data

        if not isinstance(raw, dict):
            self.last_error = (
                f"Preferences root in '{self.path}' must be a JSON object, found {type(raw).__name__}."
            )
            logger.warning(self.last_error)
            self.data = deepcopy(self.defaults)
            self.dirty = False
            return self.data

        migrated = migrate_legacy_keys(raw)
        self.data = deep_merge_defaults(raw, self.defaults)
        self.dirty = migrated
        return self.data

    def save(self) -> None:
        text = json.dumps(self.data, indent=2, sort_keys=True) + "\n"
        try:
            file_io.atomic_write_text(self.path, text)
        except file_io.FileIOError as exc:
            raise SettingsStoreError(f"Could not write preferences file '{self.path}': {exc}") from exc
        self.dirty = False
        self.last_error = None

    def get(self, key: str, default: Any = None) -> Any:
        return dot_get(self.data, key, default)

    def set(self, key: str, value: Any) -> bool:
        if self.get(key) == value:
            return False
        dot_set(self.data, key, value)
        self.dirty = True
        return True

    def restore_defaults(self) -> None:
        self.data = deepcopy(self.defaults)
        self.dirty = True

    def snapshot(self) -> dict[str, Any]:
        return deepcopy(self.data)


def resolve_paths_with_preferences(
    env: Mapping[str, str] | None = None,
) -> tuple[ConfigPaths, PreferencesStore]:
    """Paths for this session plus the loaded preferences.

    A backup directory from the environment wins over the one stored in
    preferences.
    """
    environ = os.environ if env is None else env
    paths = ConfigPaths.from_environment(environ)
    store = PreferencesStore(paths.preferences_json)
    store.load()
    configured = str(store.get("backups.directory") or "").strip()
    if configured and not str(environ.get(BACKUP_DIR_ENV) or "").strip():
        paths = ConfigPaths(niri_dir=paths.niri_dir, backup_dir=Path(configured))
    return paths, store
