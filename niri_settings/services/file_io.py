"""Safe file read/write helpers."""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

FILE_MODE = 0o600


class FileIOError(RuntimeError):
    """Raised when a filesystem step fails; carries the offending path."""

    def __init__(self, message: str, *, path: str | Path, kind: str = "io") -> None:
        super().__init__(message)
        self.path = Path(path)
        self.kind = kind


def read_bytes(path: str | Path) -> bytes:
    target = Path(path)
    try:
        return target.read_bytes()
    except OSError as exc:
        raise FileIOError(f"Failed to read '{target}': {exc}", path=target, kind="read") from exc


def read_text(path: str | Path, *, encoding: str = "utf-8", errors: str = "strict") -> str:
    return read_bytes(path).decode(encoding, errors=errors)


def temp_path_for(target: Path) -> Path:
    """Sibling temp name unique per process and call."""
    return target.with_name(f"{target.name}.tmp.{os.getpid()}.{time.time_ns()}")


def reserve_path(path: str | Path) -> bool:
    """Create an empty owner-only file at ``path`` unless one already exists.

    Returns ``False`` when the name is taken.
    """
    target = Path(path)
    try:
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
    except FileExistsError:
        return False
    except OSError as exc:
        raise FileIOError(f"Failed to create '{target}': {exc}", path=target, kind="create") from exc
    os.close(fd)
    return True


def atomic_write_bytes(path: str | Path, data: bytes) -> None:
    """Write ``data`` so that readers see either the old file or the new one.

    The temp file is created exclusively next to the destination, synced to
    disk, then renamed over the destination. If any step fails the temp file
    is left where it is and a :class:`FileIOError` is raised.
    """
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileIOError(
            f"Failed to create directory '{target.parent}': {exc}",
            path=target.parent,
            kind="mkdir",
        ) from exc

    tmp_path = temp_path_for(target)
    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, FILE_MODE)
    except OSError as exc:
        raise FileIOError(
            f"Failed to create temp file '{tmp_path}': {exc}", path=tmp_path, kind="create"
        ) from exc

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
    except OSError as exc:
        raise FileIOError(
            f"Failed to write temp file '{tmp_path}': {exc}", path=tmp_path, kind="write"
        ) from exc

    try:
        os.replace(tmp_path, target)
    except OSError as exc:
        raise FileIOError(
            f"Failed to rename '{tmp_path}' to '{target}': {exc}", path=target, kind="rename"
        ) from exc

    if os.name == "posix":
        try:
            os.chmod(target, FILE_MODE)
        except OSError as exc:
            raise FileIOError(
                f"Failed to set permissions on '{target}': {exc}", path=target, kind="permissions"
            ) from exc

    logger.debug("Wrote %d bytes to %s", len(data), target)


def atomic_write_text(path: str | Path, text: str, *, encoding: str = "utf-8") -> None:
    atomic_write_bytes(path, text.encode(encoding))


def timestamped_backup_name(filename: str, when: datetime | None = None) -> str:
    stamp = (when or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S.%f")
    return f"{filename}.{stamp}.bak"


def save_with_backup(
    path: str | Path,
    text: str,
    backup_dir: str | Path,
    *,
    encoding: str = "utf-8",
) -> Path | None:
    """Copy the current file into ``backup_dir`` then atomically replace it.

    Returns the backup path, or ``None`` when there was no file to back up.
    """
    target = Path(path)
    backup_path: Path | None = None
    if target.exists():
        backup_path = Path(backup_dir) / timestamped_backup_name(target.name)
        atomic_write_bytes(backup_path, read_bytes(target))
        logger.info("Backed up %s to %s", target, backup_path)
    atomic_write_text(target, text, encoding=encoding)
    return backup_path
