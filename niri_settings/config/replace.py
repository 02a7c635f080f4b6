"""Take over ``config.kdl`` while keeping every block the user wrote.

Managed top-level sections are dropped and replaced by a single include of
the generated tree; unmanaged sections and foreign includes are carried over
in their original order. The original file is backed up and the backup is
verified byte for byte before the config is overwritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from niri_settings.config.classifier import ConfigAnalysis, analyze_config_bytes, analyze_document
from niri_settings.config.errors import ConfigError
from niri_settings.kdl import KdlDocument, KdlParseError, parse_kdl
from niri_settings.services import file_io
from niri_settings.settings_models import MAIN_CONFIG_NAME, MANAGED_DIR_NAME

logger = logging.getLogger(__name__)

SELF_INCLUDE_LINE = f'include "{MANAGED_DIR_NAME}/{MAIN_CONFIG_NAME}"'
HEADER_LINE = f"// Configuration managed by {MANAGED_DIR_NAME}"
PRESERVED_NOTE_LINE = f"// Generated settings live in {MANAGED_DIR_NAME}/; the blocks after the include are yours."
ALREADY_SET_UP_WARNING = "Config already set up, no changes needed"

BACKUP_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"


@dataclass(slots=True)
class SmartReplaceResult:
    backup_path: Path | None = None
    replaced_count: int = 0
    preserved_count: int = 0
    include_added: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.include_added or self.replaced_count > 0 or self.backup_path is not None


def generate_minimal_config() -> str:
    return f"{HEADER_LINE}\n{SELF_INCLUDE_LINE}\n"


def generate_replaced_config(analysis: ConfigAnalysis) -> str:
    """Header, the single self-include, then the preserved blocks in order."""
    text = f"{HEADER_LINE}\n{PRESERVED_NOTE_LINE}\n{SELF_INCLUDE_LINE}\n"
    preserved = analysis.preserved_nodes()
    if preserved:
        text += "\n" + KdlDocument(preserved).to_kdl()
    return text


def backup_file_name(config_path: Path, when: datetime | None = None) -> str:
    stamp = (when or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
    return f"{config_path.name}.backup-{stamp}"


def _reserve_backup_path(backup_dir: Path, config_path: Path) -> Path:
    base = backup_file_name(config_path)
    candidate = backup_dir / base
    suffix = 1
    while not file_io.reserve_path(candidate):
        candidate = backup_dir / f"{base}-{suffix}"
        suffix += 1
    return candidate


def write_verified_backup(config_path: str | Path, data: bytes, backup_dir: str | Path) -> Path:
    """Write ``data`` into ``backup_dir`` and read it back to compare.

    Raises :class:`ConfigError` (``kind="backup_verification"``) when the
    bytes on disk differ from ``data``.
    """
    source = Path(config_path)
    directory = Path(backup_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise file_io.FileIOError(
            f"Failed to create backup directory '{directory}': {exc}", path=directory, kind="mkdir"
        ) from exc

    backup_path = _reserve_backup_path(directory, source)
    file_io.atomic_write_bytes(backup_path, data)
    written = file_io.read_bytes(backup_path)
    if written != data:
        raise ConfigError(
            f"Backup verification failed: content mismatch at '{backup_path}' "
            f"({len(written)} bytes on disk, expected {len(data)})",
            kind="backup_verification",
            path=backup_path,
        )
    logger.info("Backed up %s to %s (%d bytes)", source, backup_path, len(data))
    return backup_path


def _validate_generated(text: str, backup_path: Path) -> None:
    try:
        check = analyze_document(parse_kdl(text), original_content=text)
    except KdlParseError as exc:
        raise ConfigError(
            f"Generated config is invalid KDL: {exc}. Original preserved in backup at '{backup_path}'",
            kind="validation",
            path=backup_path,
        ) from exc
    if check.self_include_count != 1 or check.managed_count:
        raise ConfigError(
            f"Generated config has {check.self_include_count} include lines and "
            f"{check.managed_count} managed sections. Original preserved in backup at '{backup_path}'",
            kind="validation",
            path=backup_path,
        )


def smart_replace_config(
    config_path: str | Path,
    backup_dir: str | Path,
    *,
    render: Callable[[ConfigAnalysis], str] = generate_replaced_config,
) -> SmartReplaceResult:
    """Make ``config_path`` contain exactly one include of the managed tree.

    Every I/O failure raises :class:`~niri_settings.services.file_io.FileIOError`;
    a failed backup check or an unparseable rendering raises
    :class:`ConfigError` before the config file is touched.
    """
    path = Path(config_path)

    if not path.exists():
        logger.info("No config at %s, writing a minimal one", path)
        file_io.atomic_write_text(path, generate_minimal_config())
        return SmartReplaceResult(include_added=True)

    original = file_io.read_bytes(path)
    try:
        analysis = analyze_config_bytes(original)
    except (KdlParseError, UnicodeDecodeError) as exc:
        logger.warning("Could not parse %s: %s", path, exc)
        backup_path = write_verified_backup(path, original, backup_dir)
        file_io.atomic_write_text(path, generate_minimal_config())
        return SmartReplaceResult(
            backup_path=backup_path,
            include_added=True,
            warnings=[
                f"Could not parse {path.name}: {exc}",
                f"The unreadable config was replaced; the original is saved at {backup_path}",
            ],
        )

    if analysis.is_fully_set_up:
        logger.info("%s already includes the managed config", path)
        return SmartReplaceResult(
            preserved_count=analysis.unmanaged_count,
            warnings=[ALREADY_SET_UP_WARNING],
        )

    warnings: list[str] = []
    if analysis.self_include_count > 1:
        warnings.append(
            f"Found {analysis.self_include_count} includes of {MANAGED_DIR_NAME}; kept a single one"
        )

    backup_path = write_verified_backup(path, analysis.original_bytes, backup_dir)
    new_text = render(analysis)
    _validate_generated(new_text, backup_path)
    file_io.atomic_write_text(path, new_text)

    logger.info(
        "Replaced %d managed sections in %s (%s), preserved %d",
        analysis.managed_count,
        path,
        ", ".join(analysis.managed_node_names()) or "none",
        analysis.unmanaged_count,
    )
    return SmartReplaceResult(
        backup_path=backup_path,
        replaced_count=analysis.managed_count,
        preserved_count=analysis.unmanaged_count,
        include_added=not analysis.has_self_include,
        warnings=warnings,
    )
