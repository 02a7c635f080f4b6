"""Tests for building rule records from KDL."""

import pytest

from niri_settings.config.consolidation import analyze_rules
from niri_settings.config.rule_loader import (
    load_layer_rules,
    load_rules_from_config,
    load_window_rules,
)
from niri_settings.config.rules import BlockOutFrom, FloatingPosition, OpenBehavior, WindowRuleMatch
from niri_settings.kdl import KdlParseError, parse_kdl

WINDOW_RULES = """\
window-rule {
    match app-id="steam"
    open-floating true
    opacity 0.9
}
window-rule {
    match app-id=r#"^org\\.gnome\\.Nautilus$"# title="Files"
    match is-floating=true
    exclude app-id="zenity"
    open-maximized
    geometry-corner-radius 8
    clip-to-geometry true
    block-out-from "screencast"
    open-on-output "DP-1"
    open-on-workspace "chat"
    open-focused false
    default-column-width { proportion 0.5; }
    default-window-height { proportion 0.75; }
    default-floating-position x=10 y=20 relative-to="bottom-right"
    scroll-factor 0.5
    min-width 200
    max-height 900
    border {
        width 2
    }
}
window-rule {
    opacity 3
}
"""

LAYER_RULES = """\
layer-rule {
    match namespace="^waybar$"
    match namespace="mako" at-startup=true
    block-out-from "screen-capture"
    opacity 0.8
    geometry-corner-radius 4
    place-within-backdrop true
    baba-is-float
    shadow {
        on
    }
}
"""


class TestWindowRules:
    def test_fields(self):
        warnings = []
        rules = load_window_rules(parse_kdl(WINDOW_RULES), warnings=warnings)
        assert [rule.id for rule in rules] == [0, 1, 2]
        assert [rule.name for rule in rules] == ["Rule 1", "Rule 2", "Rule 3"]

        first, second, third = rules
        assert first.matches == [WindowRuleMatch(app_id="steam")]
        assert first.open_behavior is OpenBehavior.FLOATING
        assert first.opacity == 0.9

        assert second.matches == [
            WindowRuleMatch(app_id=r"^org\.gnome\.Nautilus$", title="Files"),
            WindowRuleMatch(is_floating=True),
        ]
        assert second.excludes == [WindowRuleMatch(app_id="zenity")]
        assert second.open_behavior is OpenBehavior.MAXIMIZED
        assert second.corner_radius == 8
        assert second.clip_to_geometry is True
        assert second.block_out_from_screencast
        assert second.open_on_output == "DP-1"
        assert second.open_on_workspace == "chat"
        assert second.open_focused is False
        assert second.default_column_width == 0.5
        assert second.default_window_height == 0.75
        assert second.default_floating_position == FloatingPosition(x=10, y=20, relative_to="bottom-right")
        assert second.scroll_factor == 0.5
        assert second.min_width == 200
        assert second.max_height == 900
        assert second.extra_settings == ["border {\n    width 2\n}"]

        assert third.opacity == 1.0
        assert third.matches == [WindowRuleMatch()]
        assert any("clamped" in warning for warning in warnings)

    def test_invalid_regex_is_dropped(self):
        warnings = []
        [rule] = load_window_rules(parse_kdl('window-rule { match app-id="(unclosed"; }'), warnings=warnings)
        assert rule.matches == [WindowRuleMatch()]
        assert any("invalid" in warning for warning in warnings)

    def test_first_id(self):
        rules = load_window_rules(parse_kdl("window-rule {}\nwindow-rule {}\n"), first_id=5)
        assert [rule.id for rule in rules] == [5, 6]


class TestLayerRules:
    def test_fields(self):
        [rule] = load_layer_rules(parse_kdl(LAYER_RULES))
        assert rule.name == "Layer Rule 1"
        assert [clause.namespace for clause in rule.matches] == ["^waybar$", "mako"]
        assert rule.matches[1].at_startup is True
        assert rule.block_out_from is BlockOutFrom.SCREEN_CAPTURE
        assert rule.opacity == pytest.approx(0.8)
        assert rule.geometry_corner_radius == 4
        assert rule.place_within_backdrop
        assert rule.baba_is_float
        assert rule.extra_settings == ["shadow {\n    on\n}"]


class TestLoadFromConfig:
    def test_follows_includes(self, tmp_path):
        niri = tmp_path / "niri"
        (niri / "rules").mkdir(parents=True)
        (niri / "config.kdl").write_text(
            'window-rule { match app-id="a"; }\n'
            'include "rules/games.kdl"\n'
            'layer-rule { match namespace="bar"; }\n'
        )
        (niri / "rules" / "games.kdl").write_text(
            'window-rule { match app-id="steam"; open-floating; }\n'
            'window-rule { match app-id="lutris"; open-floating; }\n'
            'include "../config.kdl"\n'
        )

        result = load_rules_from_config(niri / "config.kdl")

        assert [rule.matches[0].app_id for rule in result.window_rules] == ["a", "steam", "lutris"]
        assert [rule.id for rule in result.window_rules] == [0, 1, 2]
        assert [rule.matches[0].namespace for rule in result.layer_rules] == ["bar"]
        assert result.includes_processed == 2
        assert any("already loaded" in warning for warning in result.warnings)

        analysis = analyze_rules(result.window_rules, result.layer_rules)
        [suggestion] = analysis.window_suggestions
        assert suggestion.rule_ids == [1, 2]
        assert suggestion.merged_pattern == "^(steam|lutris)$"

    def test_missing_and_escaping_includes_are_warnings(self, tmp_path):
        niri = tmp_path / "niri"
        niri.mkdir()
        (tmp_path / "outside.kdl").write_text('window-rule { match app-id="x"; }\n')
        (niri / "config.kdl").write_text('include "missing.kdl"\ninclude "../outside.kdl"\n')

        result = load_rules_from_config(niri / "config.kdl")

        assert result.window_rules == []
        assert result.includes_processed == 0
        assert len(result.warnings) == 2

    def test_broken_include_is_a_warning(self, tmp_path):
        niri = tmp_path / "niri"
        niri.mkdir()
        (niri / "broken.kdl").write_text("window-rule {")
        (niri / "config.kdl").write_text('include "broken.kdl"\nwindow-rule {}\n')

        result = load_rules_from_config(niri / "config.kdl")

        assert len(result.window_rules) == 1
        assert any("Could not parse" in warning for warning in result.warnings)

    def test_depth_limit(self, tmp_path):
        niri = tmp_path / "niri"
        niri.mkdir()
        for index in range(4):
            (niri / f"level{index}.kdl").write_text(f'include "level{index + 1}.kdl"\n')
        (niri / "level4.kdl").write_text("window-rule {}\n")

        result = load_rules_from_config(niri / "level0.kdl", max_include_depth=2)

        assert result.window_rules == []
        assert any("depth limit" in warning for warning in result.warnings)

    def test_broken_root_config_raises(self, tmp_path):
        config = tmp_path / "config.kdl"
        config.write_text("layout {")
        with pytest.raises(KdlParseError):
            load_rules_from_config(config)
