"""List and restore config backups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from niri_settings.config.replace import write_verified_backup
from niri_settings.services import file_io

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class BackupEntry:
    path: Path
    filename: str
    modified: datetime
    size_bytes: int

    @property
    def size_label(self) -> str:
        return format_file_size(self.size_bytes)


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def is_backup_name(filename: str) -> bool:
    if ".tmp." in filename:
        return False
    return ".backup-" in filename or filename.endswith(".bak")


def list_backups(backup_dir: str | Path) -> list[BackupEntry]:
    """Backups in ``backup_dir``, newest first."""
    directory = Path(backup_dir)
    if not directory.is_dir():
        return []
    entries: list[BackupEntry] = []
    for child in directory.iterdir():
        if not child.is_file() or not is_backup_name(child.name):
            continue
        try:
            stat = child.stat()
        except OSError as exc:
            logger.warning("Skipping backup %s: %s", child, exc)
            continue
        entries.append(
            BackupEntry(
                path=child,
                filename=child.name,
                modified=datetime.fromtimestamp(stat.st_mtime),
                size_bytes=stat.st_size,
            )
        )
    entries.sort(key=lambda entry: (entry.modified, entry.filename), reverse=True)
    return entries


def restore_backup(backup_path: str | Path, config_path: str | Path, backup_dir: str | Path) -> Path | None:
    """Put ``backup_path`` back in place of ``config_path``.

    The current config is itself backed up (and verified) first. Returns that
    safety backup's path, or ``None`` if there was no config to save.
    """
    source = Path(backup_path)
    target = Path(config_path)
    content = file_io.read_bytes(source)
    safety_backup: Path | None = None
    if target.exists():
        safety_backup = write_verified_backup(target, file_io.read_bytes(target), backup_dir)
    file_io.atomic_write_bytes(target, content)
    logger.info("Restored %s from %s", target, source)
    return safety_backup
