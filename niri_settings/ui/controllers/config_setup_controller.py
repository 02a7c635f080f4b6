from __future__ import annotations

import concurrent.futures
import logging
from typing import Callable

from PySide6.QtCore import QObject, QTimer, Signal

from niri_settings.config.backups import list_backups, restore_backup
from niri_settings.config.consolidation import ConsolidationAnalysis, analyze_rules
from niri_settings.config.errors import ConfigError
from niri_settings.config.replace import SmartReplaceResult, smart_replace_config
from niri_settings.config.rule_loader import RuleImportResult, load_rules_from_config
from niri_settings.config.rules import LayerRule, WindowRule
from niri_settings.kdl import KdlParseError
from niri_settings.services.file_io import FileIOError
from niri_settings.settings_models import ConfigPaths

logger = logging.getLogger(__name__)


class ConfigSetupController(QObject):
    """Runs config takeover, rule analysis and backup work off the UI thread.

    Results come back through signals emitted on the thread that owns the
    controller.
    """

    smartReplaceFinished = Signal(object)
    consolidationReady = Signal(object, object)
    backupsListed = Signal(object)
    backupRestored = Signal(object)
    taskFailed = Signal(str, str, str)
    busyChanged = Signal(bool)

    def __init__(self, paths: ConfigPaths, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self.paths = paths
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="niri-settings")
        self._pending: dict[concurrent.futures.Future, str] = {}

        self._result_pump = QTimer(self)
        self._result_pump.setInterval(40)
        self._result_pump.timeout.connect(self._drain_tasks)

    @property
    def result_pump(self) -> QTimer:
        return self._result_pump

    def is_busy(self) -> bool:
        return bool(self._pending)

    def request_smart_replace(self) -> None:
        paths = self.paths
        self._submit_task("smart_replace", lambda: smart_replace_config(paths.niri_config, paths.backup_dir))

    def request_consolidation_analysis(
        self,
        window_rules: list[WindowRule] | None = None,
        layer_rules: list[LayerRule] | None = None,
    ) -> None:
        """Analyze the given rules, or every rule reachable from ``config.kdl``."""
        if window_rules is not None or layer_rules is not None:
            snapshot_window = list(window_rules or [])
            snapshot_layer = list(layer_rules or [])

            def _run() -> tuple[ConsolidationAnalysis, RuleImportResult | None]:
                return analyze_rules(snapshot_window, snapshot_layer), None

        else:
            config_path = self.paths.niri_config

            def _run() -> tuple[ConsolidationAnalysis, RuleImportResult | None]:
                imported = load_rules_from_config(config_path)
                return analyze_rules(imported.window_rules, imported.layer_rules), imported

        self._submit_task("consolidation", _run)

    def request_backup_list(self) -> None:
        backup_dir = self.paths.backup_dir
        self._submit_task("backups", lambda: list_backups(backup_dir))

    def request_restore(self, backup_path) -> None:
        paths = self.paths
        self._submit_task(
            "restore",
            lambda: restore_backup(backup_path, paths.niri_config, paths.backup_dir),
        )

    def shutdown(self, *, wait: bool = True) -> None:
        self._result_pump.stop()
        self._executor.shutdown(wait=wait, cancel_futures=True)
        self._pending.clear()

    def _submit_task(self, kind: str, fn: Callable[[], object]) -> None:
        was_busy = self.is_busy()
        try:
            future = self._executor.submit(fn)
        except RuntimeError as exc:
            self.taskFailed.emit(kind, "executor", f"Task failed to start: {exc}")
            return
        self._pending[future] = kind
        if not was_busy:
            self.busyChanged.emit(True)
        if not self._result_pump.isActive():
            self._result_pump.start()

    def _drain_tasks(self) -> None:
        if not self._pending:
            self._result_pump.stop()
            return

        done: list[concurrent.futures.Future] = []
        for future, kind in list(self._pending.items()):
            if not future.done():
                continue
            done.append(future)
            try:
                result = future.result()
                error = None
            except Exception as exc:
                result = None
                error = exc
            self._handle_task_result(kind, result, error)

        for future in done:
            self._pending.pop(future, None)

        if not self._pending:
            self._result_pump.stop()
            self.busyChanged.emit(False)

    def _handle_task_result(self, kind: str, result: object, error: Exception | None) -> None:
        if error is not None:
            self.taskFailed.emit(kind, _error_kind(error), str(error))
            if not isinstance(error, (ConfigError, FileIOError, KdlParseError)):
                logger.error("%s task failed", kind, exc_info=error)
            return

        if kind == "smart_replace" and isinstance(result, SmartReplaceResult):
            self.smartReplaceFinished.emit(result)
        elif kind == "consolidation" and isinstance(result, tuple):
            analysis, imported = result
            self.consolidationReady.emit(analysis, imported)
        elif kind == "backups" and isinstance(result, list):
            self.backupsListed.emit(result)
        elif kind == "restore":
            self.backupRestored.emit(result)


def _error_kind(error: Exception) -> str:
    if isinstance(error, (ConfigError, FileIOError)):
        return error.kind
    if isinstance(error, KdlParseError):
        return "parse"
    return "unexpected"
