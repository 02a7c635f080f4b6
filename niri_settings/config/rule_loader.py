"""Build window/layer rule records from KDL documents."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from niri_settings.config.rules import (
    BlockOutFrom,
    FloatingPosition,
    LayerRule,
    LayerRuleMatch,
    OpenBehavior,
    WindowRule,
    WindowRuleMatch,
)
from niri_settings.kdl import KdlDocument, KdlNode, KdlParseError, KdlScalar, parse_kdl
from niri_settings.services import file_io

logger = logging.getLogger(__name__)

MAX_INCLUDE_DEPTH = 10

_WINDOW_MATCH_FLAGS = {
    "is-floating": "is_floating",
    "is-active": "is_active",
    "is-focused": "is_focused",
    "is-active-in-column": "is_active_in_column",
    "is-window-cast-target": "is_window_cast_target",
    "is-urgent": "is_urgent",
    "at-startup": "at_startup",
}
_OPEN_FLAGS = {
    "open-maximized": OpenBehavior.MAXIMIZED,
    "open-fullscreen": OpenBehavior.FULLSCREEN,
    "open-floating": OpenBehavior.FLOATING,
}
_SIZE_LIMITS = {
    "min-width": "min_width",
    "max-width": "max_width",
    "min-height": "min_height",
    "max-height": "max_height",
}
_WINDOW_BOOL_SETTINGS = {
    "clip-to-geometry": "clip_to_geometry",
    "open-focused": "open_focused",
    "open-maximized-to-edges": "open_maximized_to_edges",
    "draw-border-with-background": "draw_border_with_background",
    "variable-refresh-rate": "variable_refresh_rate",
    "tiled-state": "tiled_state",
    "baba-is-float": "baba_is_float",
}


@dataclass(slots=True)
class RuleImportResult:
    window_rules: list[WindowRule] = field(default_factory=list)
    layer_rules: list[LayerRule] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    includes_processed: int = 0


def validate_regex(pattern: str, context: str, warnings: list[str] | None = None) -> str | None:
    try:
        re.compile(pattern)
    except re.error as exc:
        message = f"Ignoring invalid {context} regex {pattern!r}: {exc}"
        logger.warning(message)
        if warnings is not None:
            warnings.append(message)
        return None
    return pattern


def _as_bool(value: KdlScalar) -> bool | None:
    if isinstance(value, bool):
        return value
    if value in ("on", "true"):
        return True
    if value in ("off", "false"):
        return False
    return None


def _as_int(value: KdlScalar) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def _as_float(value: KdlScalar) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _flag_value(node: KdlNode) -> bool | None:
    """``flag`` and ``flag true`` mean on; ``flag false`` means off."""
    if not node.arguments:
        return True
    return _as_bool(node.first_argument())


def _proportion(node: KdlNode) -> float | None:
    children = node.child_nodes()
    if len(children) != 1 or children[0].name != "proportion":
        return None
    return _as_float(children[0].first_argument())


def _clamp_opacity(value: float, warnings: list[str]) -> float:
    if 0.0 <= value <= 1.0:
        return value
    clamped = min(max(value, 0.0), 1.0)
    message = f"Opacity {value} is out of range, clamped to {clamped}"
    logger.warning(message)
    warnings.append(message)
    return clamped


def _parse_window_match(node: KdlNode, warnings: list[str]) -> WindowRuleMatch:
    clause = WindowRuleMatch()
    for key, value in node.properties.items():
        if key in ("app-id", "title") and isinstance(value, str):
            pattern = validate_regex(value, f"window rule {key}", warnings)
            setattr(clause, key.replace("-", "_"), pattern)
        elif key in _WINDOW_MATCH_FLAGS and isinstance(value, bool):
            setattr(clause, _WINDOW_MATCH_FLAGS[key], value)
    return clause


def parse_window_rule_node(node: KdlNode, rule_id: int, warnings: list[str] | None = None) -> WindowRule:
    warnings = [] if warnings is None else warnings
    rule = WindowRule(id=rule_id, name=f"Rule {rule_id + 1}", matches=[])

    for child in node.child_nodes():
        name = child.name
        first = child.first_argument()
        handled = True
        if name == "match":
            rule.matches.append(_parse_window_match(child, warnings))
        elif name == "exclude":
            rule.excludes.append(_parse_window_match(child, warnings))
        elif name in _OPEN_FLAGS:
            if _flag_value(child):
                rule.open_behavior = _OPEN_FLAGS[name]
        elif name == "opacity" and _as_float(first) is not None:
            rule.opacity = _clamp_opacity(_as_float(first), warnings)
        elif name == "geometry-corner-radius" and _as_int(first) is not None and len(child.arguments) == 1:
            rule.corner_radius = _as_int(first)
        elif name == "block-out-from" and first == "screencast":
            rule.block_out_from_screencast = True
        elif name in ("open-on-output", "open-on-workspace") and isinstance(first, str):
            setattr(rule, name.replace("-", "_"), first)
        elif name in _WINDOW_BOOL_SETTINGS and _flag_value(child) is not None:
            setattr(rule, _WINDOW_BOOL_SETTINGS[name], _flag_value(child))
        elif name == "default-column-width" and _proportion(child) is not None:
            rule.default_column_width = _proportion(child)
        elif name == "default-window-height" and _proportion(child) is not None:
            rule.default_window_height = _proportion(child)
        elif name == "default-column-display" and first in ("normal", "tabbed"):
            rule.default_column_display = first
        elif name == "scroll-factor" and _as_float(first) is not None:
            rule.scroll_factor = _as_float(first)
        elif name in _SIZE_LIMITS and _as_int(first) is not None:
            setattr(rule, _SIZE_LIMITS[name], _as_int(first))
        elif name == "default-floating-position":
            props = child.properties
            x, y = _as_int(props.get("x")), _as_int(props.get("y"))
            relative_to = props.get("relative-to", "top-left")
            if x is None or y is None or not isinstance(relative_to, str):
                handled = False
            else:
                rule.default_floating_position = FloatingPosition(x=x, y=y, relative_to=relative_to)
        else:
            handled = False
        if not handled:
            rule.extra_settings.append(child.to_kdl())

    if not rule.matches:
        rule.matches.append(WindowRuleMatch())
    return rule


def parse_layer_rule_node(node: KdlNode, rule_id: int, warnings: list[str] | None = None) -> LayerRule:
    warnings = [] if warnings is None else warnings
    rule = LayerRule(id=rule_id, name=f"Layer Rule {rule_id + 1}", matches=[])

    for child in node.child_nodes():
        name = child.name
        first = child.first_argument()
        if name == "match":
            clause = LayerRuleMatch()
            props = child.properties
            namespace = props.get("namespace")
            if isinstance(namespace, str):
                clause.namespace = validate_regex(namespace, "layer rule namespace", warnings)
            if isinstance(props.get("at-startup"), bool):
                clause.at_startup = props["at-startup"]
            rule.matches.append(clause)
        elif name == "block-out-from" and first in ("screencast", "screen-capture"):
            rule.block_out_from = BlockOutFrom(first)
        elif name == "opacity" and _as_float(first) is not None:
            rule.opacity = _clamp_opacity(_as_float(first), warnings)
        elif name == "geometry-corner-radius" and _as_int(first) is not None and len(child.arguments) == 1:
            rule.geometry_corner_radius = _as_int(first)
        elif name == "place-within-backdrop" and _flag_value(child) is not None:
            rule.place_within_backdrop = bool(_flag_value(child))
        elif name == "baba-is-float" and _flag_value(child) is not None:
            rule.baba_is_float = bool(_flag_value(child))
        else:
            rule.extra_settings.append(child.to_kdl())

    if not rule.matches:
        rule.matches.append(LayerRuleMatch())
    return rule


def load_window_rules(
    document: KdlDocument, *, first_id: int = 0, warnings: list[str] | None = None
) -> list[WindowRule]:
    nodes = document.nodes_named("window-rule")
    return [parse_window_rule_node(node, first_id + offset, warnings) for offset, node in enumerate(nodes)]


def load_layer_rules(
    document: KdlDocument, *, first_id: int = 0, warnings: list[str] | None = None
) -> list[LayerRule]:
    nodes = document.nodes_named("layer-rule")
    return [parse_layer_rule_node(node, first_id + offset, warnings) for offset, node in enumerate(nodes)]


def resolve_include_path(include_path: str, including_file: Path, allowed_root: Path) -> Path | None:
    """Resolve an include target, refusing anything outside ``allowed_root``."""
    if include_path.startswith("~/"):
        candidate = Path(include_path).expanduser()
    else:
        candidate = including_file.parent / include_path
    try:
        resolved = candidate.resolve(strict=True)
    except (OSError, RuntimeError):
        logger.debug("Include %r cannot be resolved", include_path)
        return None
    root = allowed_root.resolve()
    if resolved != root and root not in resolved.parents:
        logger.warning("Include %r escapes %s, ignoring", include_path, root)
        return None
    return resolved


def load_rules_from_config(
    config_path: str | Path,
    *,
    max_include_depth: int = MAX_INCLUDE_DEPTH,
) -> RuleImportResult:
    """Collect every window and layer rule reachable from ``config_path``.

    Includes are followed depth first in document order, so rule ids follow
    the order niri itself would apply the rules in.
    """
    path = Path(config_path)
    result = RuleImportResult()
    visited: set[Path] = set()
    _load_rules_recursive(path, path.parent.resolve(), 0, max_include_depth, visited, result)
    logger.info(
        "Loaded %d window rules and %d layer rules from %s (%d includes)",
        len(result.window_rules),
        len(result.layer_rules),
        path,
        result.includes_processed,
    )
    return result


def _load_rules_recursive(
    path: Path,
    allowed_root: Path,
    depth: int,
    max_depth: int,
    visited: set[Path],
    result: RuleImportResult,
) -> None:
    if depth > max_depth:
        result.warnings.append(f"Include depth limit ({max_depth}) reached at {path}, not following further")
        return
    key = Path(os.path.realpath(path))
    if key in visited:
        result.warnings.append(f"Skipped include of {path}: already loaded")
        return
    visited.add(key)

    try:
        document = parse_kdl(file_io.read_text(path))
    except file_io.FileIOError as exc:
        if depth == 0:
            raise
        result.warnings.append(f"Could not read included file {path}: {exc}")
        return
    except (KdlParseError, UnicodeDecodeError) as exc:
        if depth == 0:
            raise
        result.warnings.append(f"Could not parse included file {path}: {exc}")
        return

    for node in document.nodes:
        if node.name == "window-rule":
            result.window_rules.append(parse_window_rule_node(node, len(result.window_rules), result.warnings))
        elif node.name == "layer-rule":
            result.layer_rules.append(parse_layer_rule_node(node, len(result.layer_rules), result.warnings))
        elif node.name == "include":
            target = node.first_argument()
            if not isinstance(target, str):
                result.warnings.append("Skipped include without a path")
                continue
            resolved = resolve_include_path(target, path, allowed_root)
            if resolved is None:
                result.warnings.append(f"Skipped include {target!r}: not found or outside {allowed_root}")
                continue
            result.includes_processed += 1
            _load_rules_recursive(resolved, allowed_root, depth + 1, max_depth, visited, result)
