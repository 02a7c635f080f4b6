import sys

from PySide6.QtCore import QCoreApplication, QTimer

from niri_settings.config.backups import BackupEntry
from niri_settings.config.consolidation import ConsolidationAnalysis
from niri_settings.config.replace import SmartReplaceResult
from niri_settings.logging_config import configure_logging
from niri_settings.settings_store import resolve_paths_with_preferences
from niri_settings.ui.controllers import ConfigSetupController

APP_NAME = "niri-settings"
COMMANDS = ("setup", "consolidate", "backups")
USAGE = f"usage: {APP_NAME} [--verbose] {{{','.join(COMMANDS)}}}"


def _split_startup_args(argv: list[str]) -> tuple[list[str], bool]:
    filtered: list[str] = []
    verbose = False
    for arg in argv:
        if arg in ("-v", "--verbose"):
            verbose = True
            continue
        filtered.append(arg)
    return filtered, verbose


def _print_replace_result(result: SmartReplaceResult) -> None:
    if not result.changed:
        print("Config already set up, nothing changed.")
        return
    if result.backup_path is not None:
        print(f"Backup: {result.backup_path}")
    print(f"Replaced {result.replaced_count} managed sections, preserved {result.preserved_count}.")
    if result.include_added:
        print("Added the include of the generated config.")
    for warning in result.warnings:
        print(f"warning: {warning}")


def _print_consolidation(analysis: ConsolidationAnalysis, imported) -> None:
    if imported is not None:
        for warning in imported.warnings:
            print(f"warning: {warning}")
    if not analysis.has_suggestions():
        print("No rules to consolidate.")
        return
    print(
        f"{analysis.total_suggestions()} suggestions covering {analysis.total_affected_rules()} rules:"
    )
    for suggestion in (*analysis.window_suggestions, *analysis.layer_suggestions):
        print(f"  {suggestion.description} ({suggestion.shared_settings})")
        print(f"    {', '.join(suggestion.patterns)} -> {suggestion.merged_pattern}")


def _print_backups(entries: list[BackupEntry]) -> None:
    if not entries:
        print("No backups.")
    for entry in entries:
        print(f"{entry.modified:%Y-%m-%d %H:%M:%S}  {entry.size_label:>9}  {entry.path}")


def run(argv: list[str]) -> int:
    cli_args, verbose = _split_startup_args(argv)
    if len(cli_args) != 1 or cli_args[0] not in COMMANDS:
        print(USAGE, file=sys.stderr)
        return 2
    command = cli_args[0]

    paths, preferences = resolve_paths_with_preferences()
    configure_logging("DEBUG" if verbose else None, default=preferences.get("logging.level"))

    app = QCoreApplication.instance() or QCoreApplication([sys.argv[0]])
    app.setApplicationName(APP_NAME)
    controller = ConfigSetupController(paths)
    exit_code = 0

    def _finish(code: int = 0) -> None:
        nonlocal exit_code
        exit_code = code
        app.quit()

    def _on_failed(kind: str, error_kind: str, message: str) -> None:
        print(f"error ({error_kind}): {message}", file=sys.stderr)
        _finish(1)

    controller.taskFailed.connect(_on_failed)
    controller.smartReplaceFinished.connect(lambda result: (_print_replace_result(result), _finish()))
    controller.consolidationReady.connect(
        lambda analysis, imported: (_print_consolidation(analysis, imported), _finish())
    )
    controller.backupsListed.connect(lambda entries: (_print_backups(entries), _finish()))

    if command == "setup":
        QTimer.singleShot(0, controller.request_smart_replace)
    elif command == "consolidate":
        QTimer.singleShot(0, controller.request_consolidation_analysis)
    else:
        QTimer.singleShot(0, controller.request_backup_list)

    app.exec()
    controller.shutdown()
    return exit_code


def main() -> int:
    return run(sys.argv[1:])


if __name__ == "__main__":
    sys.exit(main())
