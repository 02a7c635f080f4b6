from __future__ import annotations

from pathlib import Path


class ConfigError(RuntimeError):
    """Raised when a config operation is refused or cannot be verified.

    ``kind`` is one of ``"validation"``, ``"backup_verification"`` or
    ``"consolidation"``.
    """

    def __init__(self, message: str, *, kind: str = "config_error", path: str | Path | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.path = Path(path) if path is not None else None
