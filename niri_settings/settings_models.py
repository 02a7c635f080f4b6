from __future__ import annotations

import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, TypedDict

MANAGED_DIR_NAME = "niri-settings"
MAIN_CONFIG_NAME = "main.kdl"
NIRI_CONFIG_NAME = "config.kdl"
BACKUP_DIR_NAME = "backups"

BACKUP_DIR_ENV = "NIRI_SETTINGS_BACKUP_DIR"


class LoggingPreferences(TypedDict, total=False):
    level: str


class BackupPreferences(TypedDict, total=False):
    directory: str


class AppPreferences(TypedDict, total=False):
    logging: LoggingPreferences
    backups: BackupPreferences


@dataclass(slots=True, frozen=True)
class ConfigPaths:
    """Every file location the application reads or writes.

    The backup directory lives beside ``config.kdl`` rather than inside the
    managed directory so removing the managed tree never removes backups.
    """

    niri_dir: Path
    backup_dir: Path | None = None
    niri_config: Path = field(init=False)
    managed_dir: Path = field(init=False)
    main_kdl: Path = field(init=False)
    advanced_dir: Path = field(init=False)
    window_rules_kdl: Path = field(init=False)
    layer_rules_kdl: Path = field(init=False)
    preferences_json: Path = field(init=False)

    def __post_init__(self) -> None:
        niri_dir = Path(self.niri_dir).expanduser().resolve()
        object.__setattr__(self, "niri_dir", niri_dir)
        backup_dir = niri_dir / BACKUP_DIR_NAME if self.backup_dir is None else self.backup_dir
        object.__setattr__(self, "backup_dir", Path(backup_dir).expanduser().resolve())
        managed_dir = niri_dir / MANAGED_DIR_NAME
        object.__setattr__(self, "niri_config", niri_dir / NIRI_CONFIG_NAME)
        object.__setattr__(self, "managed_dir", managed_dir)
        object.__setattr__(self, "main_kdl", managed_dir / MAIN_CONFIG_NAME)
        object.__setattr__(self, "advanced_dir", managed_dir / "advanced")
        object.__setattr__(self, "window_rules_kdl", managed_dir / "advanced" / "window-rules.kdl")
        object.__setattr__(self, "layer_rules_kdl", managed_dir / "advanced" / "layer-rules.kdl")
        object.__setattr__(self, "preferences_json", managed_dir / "app-prefs.json")

    @classmethod
    def from_environment(
        cls,
        env: Mapping[str, str] | None = None,
        *,
        backup_dir: str | Path | None = None,
    ) -> ConfigPaths:
        environ = os.environ if env is None else env
        config_home = str(environ.get("XDG_CONFIG_HOME") or "").strip()
        base = Path(config_home) if config_home else Path(environ.get("HOME") or Path.home()) / ".config"
        override = backup_dir or str(environ.get(BACKUP_DIR_ENV) or "").strip() or None
        return cls(niri_dir=base / "niri", backup_dir=Path(override) if override else None)


def default_app_preferences() -> AppPreferences:
    defaults: AppPreferences = {
        "logging": {
            "level": "WARNING",
        },
        "backups": {
            "directory": "",
        },
    }
    return deepcopy(defaults)
