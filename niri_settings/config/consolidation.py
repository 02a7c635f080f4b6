"""Find window/layer rules that could be merged into one rule.

Rules qualify when their only match clause names an app-id (window rules)
or a namespace (layer rules). Qualifying rules that apply identical
settings are grouped, and each group of two or more becomes a suggestion to
replace the group by a single rule whose pattern is the alternation of the
original patterns.
"""

from __future__ import annotations

import logging
import re
import struct
from dataclasses import dataclass, field, replace
from typing import Iterable, Sequence

from niri_settings.config.errors import ConfigError
from niri_settings.config.rules import (
    BlockOutFrom,
    FloatingPosition,
    LayerRule,
    LayerRuleMatch,
    OpenBehavior,
    WindowRule,
    WindowRuleMatch,
)

logger = logging.getLogger(__name__)

REGEX_META_CHARS = ("^", "$", "|", "(")


def float_bits(value: float) -> int:
    return struct.unpack("<Q", struct.pack("<d", value))[0]


def bits_float(bits: int) -> float:
    return struct.unpack("<d", struct.pack("<Q", bits))[0]


def _optional_bits(value: float | None) -> int | None:
    return None if value is None else float_bits(value)


def _match_key(clause: WindowRuleMatch) -> tuple:
    return (
        clause.app_id,
        clause.title,
        clause.is_floating,
        clause.is_active,
        clause.is_focused,
        clause.is_active_in_column,
        clause.is_window_cast_target,
        clause.is_urgent,
        clause.at_startup,
    )


# -- window rules --------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class WindowRuleEffectKey:
    """Everything a window rule does, minus its id, name and match clauses."""

    open_behavior: OpenBehavior = OpenBehavior.NORMAL
    opacity_bits: int | None = None
    block_out_from_screencast: bool = False
    corner_radius: int | None = None
    clip_to_geometry: bool | None = None
    open_focused: bool | None = None
    open_on_output: str | None = None
    open_on_workspace: str | None = None
    default_column_width_bits: int | None = None
    default_window_height_bits: int | None = None
    default_floating_position: FloatingPosition | None = None
    default_column_display: str | None = None
    open_maximized_to_edges: bool | None = None
    scroll_factor_bits: int | None = None
    draw_border_with_background: bool | None = None
    variable_refresh_rate: bool | None = None
    tiled_state: bool | None = None
    baba_is_float: bool | None = None
    min_width: int | None = None
    max_width: int | None = None
    min_height: int | None = None
    max_height: int | None = None
    excludes: tuple[tuple, ...] = ()
    extra_settings: tuple[str, ...] = ()

    @classmethod
    def from_rule(cls, rule: WindowRule) -> WindowRuleEffectKey:
        return cls(
            open_behavior=rule.open_behavior,
            opacity_bits=_optional_bits(rule.opacity),
            block_out_from_screencast=rule.block_out_from_screencast,
            corner_radius=rule.corner_radius,
            clip_to_geometry=rule.clip_to_geometry,
            open_focused=rule.open_focused,
            open_on_output=rule.open_on_output,
            open_on_workspace=rule.open_on_workspace,
            default_column_width_bits=_optional_bits(rule.default_column_width),
            default_window_height_bits=_optional_bits(rule.default_window_height),
            default_floating_position=rule.default_floating_position,
            default_column_display=rule.default_column_display,
            open_maximized_to_edges=rule.open_maximized_to_edges,
            scroll_factor_bits=_optional_bits(rule.scroll_factor),
            draw_border_with_background=rule.draw_border_with_background,
            variable_refresh_rate=rule.variable_refresh_rate,
            tiled_state=rule.tiled_state,
            baba_is_float=rule.baba_is_float,
            min_width=rule.min_width,
            max_width=rule.max_width,
            min_height=rule.min_height,
            max_height=rule.max_height,
            excludes=tuple(_match_key(clause) for clause in rule.excludes),
            extra_settings=tuple(rule.extra_settings),
        )

    def describe(self) -> str:
        parts: list[str] = []
        if self.open_behavior is not OpenBehavior.NORMAL:
            parts.append(self.open_behavior.value)
        if self.opacity_bits is not None:
            parts.append(f"opacity {bits_float(self.opacity_bits):.2f}")
        if self.block_out_from_screencast:
            parts.append("block-out-from")
        if self.corner_radius is not None:
            parts.append(f"corner-radius {self.corner_radius}")
        if self.open_on_output is not None:
            parts.append(f'on output "{self.open_on_output}"')
        if self.open_on_workspace is not None:
            parts.append(f'on workspace "{self.open_on_workspace}"')
        if not parts:
            return "default settings"
        return ", ".join(parts)


# -- layer rules ---------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class LayerRuleEffectKey:
    """Everything a layer rule does, minus its id, name and match clauses."""

    block_out_from: BlockOutFrom | None = None
    opacity_bits: int | None = None
    geometry_corner_radius: int | None = None
    place_within_backdrop: bool = False
    baba_is_float: bool = False
    extra_settings: tuple[str, ...] = ()

    @classmethod
    def from_rule(cls, rule: LayerRule) -> LayerRuleEffectKey:
        return cls(
            block_out_from=rule.block_out_from,
            opacity_bits=_optional_bits(rule.opacity),
            geometry_corner_radius=rule.geometry_corner_radius,
            place_within_backdrop=rule.place_within_backdrop,
            baba_is_float=rule.baba_is_float,
            extra_settings=tuple(rule.extra_settings),
        )

    def describe(self) -> str:
        parts: list[str] = []
        if self.opacity_bits is not None:
            parts.append(f"opacity {bits_float(self.opacity_bits):.2f}")
        if self.block_out_from is not None:
            parts.append("block-out-from")
        if self.geometry_corner_radius is not None:
            parts.append(f"corner-radius {self.geometry_corner_radius}")
        if self.place_within_backdrop:
            parts.append("place-within-backdrop")
        if self.baba_is_float:
            parts.append("baba-is-float")
        if not parts:
            return "default settings"
        return ", ".join(parts)


# -- eligibility & grouping --------------------------------------------------------


def is_window_rule_consolidatable(rule: WindowRule) -> bool:
    return len(rule.matches) == 1 and rule.matches[0].matches_app_id_only()


def is_layer_rule_consolidatable(rule: LayerRule) -> bool:
    return len(rule.matches) == 1 and rule.matches[0].matches_namespace_only()


def group_window_rules(rules: Iterable[WindowRule]) -> list[tuple[WindowRuleEffectKey, list[WindowRule]]]:
    groups: dict[WindowRuleEffectKey, list[WindowRule]] = {}
    for rule in rules:
        if is_window_rule_consolidatable(rule):
            groups.setdefault(WindowRuleEffectKey.from_rule(rule), []).append(rule)
    return [(key, members) for key, members in groups.items() if len(members) >= 2]


def group_layer_rules(rules: Iterable[LayerRule]) -> list[tuple[LayerRuleEffectKey, list[LayerRule]]]:
    groups: dict[LayerRuleEffectKey, list[LayerRule]] = {}
    for rule in rules:
        if is_layer_rule_consolidatable(rule):
            groups.setdefault(LayerRuleEffectKey.from_rule(rule), []).append(rule)
    return [(key, members) for key, members in groups.items() if len(members) >= 2]


# -- regex synthesis -----------------------------------------------------------


def create_merged_regex(patterns: Sequence[str]) -> str:
    """Join identity patterns into one anchored alternation.

    Plain names become ``^(a|b)$``. When any pattern already carries regex
    syntax, each pattern loses its own leading ``^`` and trailing ``$``
    before joining. Patterns with inner alternation are not rewritten, so
    they may widen the match; the result is a suggestion for the user.
    """
    if not patterns:
        return ""
    if not any(meta in pattern for pattern in patterns for meta in REGEX_META_CHARS):
        return f"^({'|'.join(patterns)})$"
    stripped = [pattern.lstrip("^").rstrip("$") for pattern in patterns]
    return f"^({'|'.join(stripped)})$"


# -- analysis ------------------------------------------------------------------


@dataclass(slots=True)
class ConsolidationSuggestion:
    description: str
    rule_ids: list[int]
    patterns: list[str]
    merged_pattern: str
    shared_settings: str


@dataclass(slots=True)
class ConsolidationAnalysis:
    window_suggestions: list[ConsolidationSuggestion] = field(default_factory=list)
    layer_suggestions: list[ConsolidationSuggestion] = field(default_factory=list)

    def has_suggestions(self) -> bool:
        return bool(self.window_suggestions or self.layer_suggestions)

    def total_suggestions(self) -> int:
        return len(self.window_suggestions) + len(self.layer_suggestions)

    def total_affected_rules(self) -> int:
        return sum(
            len(suggestion.rule_ids)
            for suggestion in (*self.window_suggestions, *self.layer_suggestions)
        )


def analyze_window_rules(rules: Sequence[WindowRule]) -> list[ConsolidationSuggestion]:
    suggestions: list[ConsolidationSuggestion] = []
    for key, members in group_window_rules(rules):
        patterns = [rule.matches[0].app_id or "" for rule in members]
        suggestions.append(
            ConsolidationSuggestion(
                description=f"{len(members)} window rules with same settings",
                rule_ids=[rule.id for rule in members],
                patterns=patterns,
                merged_pattern=create_merged_regex(patterns),
                shared_settings=key.describe(),
            )
        )
    return suggestions


def analyze_layer_rules(rules: Sequence[LayerRule]) -> list[ConsolidationSuggestion]:
    suggestions: list[ConsolidationSuggestion] = []
    for key, members in group_layer_rules(rules):
        patterns = [rule.matches[0].namespace or "" for rule in members]
        suggestions.append(
            ConsolidationSuggestion(
                description=f"{len(members)} layer rules with same settings",
                rule_ids=[rule.id for rule in members],
                patterns=patterns,
                merged_pattern=create_merged_regex(patterns),
                shared_settings=key.describe(),
            )
        )
    return suggestions


def analyze_rules(
    window_rules: Sequence[WindowRule],
    layer_rules: Sequence[LayerRule],
) -> ConsolidationAnalysis:
    analysis = ConsolidationAnalysis(
        window_suggestions=analyze_window_rules(window_rules),
        layer_suggestions=analyze_layer_rules(layer_rules),
    )
    logger.debug(
        "Consolidation: %d suggestions covering %d rules",
        analysis.total_suggestions(),
        analysis.total_affected_rules(),
    )
    return analysis


# -- applying a suggestion -----------------------------------------------------


def _check_merged_pattern(suggestion: ConsolidationSuggestion) -> None:
    try:
        re.compile(suggestion.merged_pattern)
    except re.error as exc:
        raise ConfigError(
            f"Merged pattern {suggestion.merged_pattern!r} is not a valid regex: {exc}",
            kind="consolidation",
        ) from exc


def _selected(rules: Sequence, suggestion: ConsolidationSuggestion) -> list:
    by_id = {rule.id: rule for rule in rules}
    missing = [rule_id for rule_id in suggestion.rule_ids if rule_id not in by_id]
    if missing or len(suggestion.rule_ids) < 2:
        raise ConfigError(
            f"Suggestion no longer matches the rule list (missing ids: {missing})",
            kind="consolidation",
        )
    return [by_id[rule_id] for rule_id in suggestion.rule_ids]


def apply_window_consolidation(
    rules: Sequence[WindowRule], suggestion: ConsolidationSuggestion
) -> list[WindowRule]:
    """Return ``rules`` with the suggested group replaced by one merged rule.

    The merged rule keeps the first grouped rule's id, name and settings and
    takes its place in the list.
    """
    members = _selected(rules, suggestion)
    if not all(is_window_rule_consolidatable(rule) for rule in members):
        raise ConfigError("Suggested window rules are no longer app-id only", kind="consolidation")
    if len({WindowRuleEffectKey.from_rule(rule) for rule in members}) != 1:
        raise ConfigError("Suggested window rules no longer share settings", kind="consolidation")
    _check_merged_pattern(suggestion)

    first = members[0]
    merged = replace(
        first,
        matches=[WindowRuleMatch(app_id=suggestion.merged_pattern)],
        excludes=list(first.excludes),
        extra_settings=list(first.extra_settings),
    )
    dropped = set(suggestion.rule_ids) - {first.id}
    result = [merged if rule.id == first.id else rule for rule in rules if rule.id not in dropped]
    logger.info("Merged window rules %s into rule %d", suggestion.rule_ids, first.id)
    return result


def apply_layer_consolidation(
    rules: Sequence[LayerRule], suggestion: ConsolidationSuggestion
) -> list[LayerRule]:
    members = _selected(rules, suggestion)
    if not all(is_layer_rule_consolidatable(rule) for rule in members):
        raise ConfigError("Suggested layer rules are no longer namespace only", kind="consolidation")
    if len({LayerRuleEffectKey.from_rule(rule) for rule in members}) != 1:
        raise ConfigError("Suggested layer rules no longer share settings", kind="consolidation")
    _check_merged_pattern(suggestion)

    first = members[0]
    merged = replace(
        first,
        matches=[LayerRuleMatch(namespace=suggestion.merged_pattern)],
        extra_settings=list(first.extra_settings),
    )
    dropped = set(suggestion.rule_ids) - {first.id}
    result = [merged if rule.id == first.id else rule for rule in rules if rule.id not in dropped]
    logger.info("Merged layer rules %s into rule %d", suggestion.rule_ids, first.id)
    return result
