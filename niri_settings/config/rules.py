"""Window rule and layer rule records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class OpenBehavior(Enum):
    NORMAL = "normal"
    MAXIMIZED = "open-maximized"
    FULLSCREEN = "open-fullscreen"
    FLOATING = "open-floating"


class BlockOutFrom(Enum):
    SCREENCAST = "screencast"
    SCREEN_CAPTURE = "screen-capture"


@dataclass(slots=True, frozen=True)
class FloatingPosition:
    x: int = 0
    y: int = 0
    relative_to: str = "top-left"


@dataclass(slots=True)
class WindowRuleMatch:
    app_id: str | None = None
    title: str | None = None
    is_floating: bool | None = None
    is_active: bool | None = None
    is_focused: bool | None = None
    is_active_in_column: bool | None = None
    is_window_cast_target: bool | None = None
    is_urgent: bool | None = None
    at_startup: bool | None = None

    def matches_app_id_only(self) -> bool:
        return self.app_id is not None and all(
            value is None
            for value in (
                self.title,
                self.is_floating,
                self.is_active,
                self.is_focused,
                self.is_active_in_column,
                self.is_window_cast_target,
                self.is_urgent,
                self.at_startup,
            )
        )


@dataclass(slots=True)
class WindowRule:
    id: int = 0
    name: str = "New Rule"
    # A window matches the rule when ANY clause matches.
    matches: list[WindowRuleMatch] = field(default_factory=lambda: [WindowRuleMatch()])
    excludes: list[WindowRuleMatch] = field(default_factory=list)
    open_behavior: OpenBehavior = OpenBehavior.NORMAL
    opacity: float | None = None
    block_out_from_screencast: bool = False
    corner_radius: int | None = None
    clip_to_geometry: bool | None = None
    open_focused: bool | None = None
    open_on_output: str | None = None
    open_on_workspace: str | None = None
    default_column_width: float | None = None
    default_window_height: float | None = None
    default_floating_position: FloatingPosition | None = None
    default_column_display: str | None = None
    open_maximized_to_edges: bool | None = None
    scroll_factor: float | None = None
    draw_border_with_background: bool | None = None
    variable_refresh_rate: bool | None = None
    tiled_state: bool | None = None
    baba_is_float: bool | None = None
    min_width: int | None = None
    max_width: int | None = None
    min_height: int | None = None
    max_height: int | None = None
    # Settings without a dedicated field (focus-ring, border, shadow, ...),
    # stored as serialized KDL nodes.
    extra_settings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class LayerRuleMatch:
    namespace: str | None = None
    at_startup: bool | None = None

    def matches_namespace_only(self) -> bool:
        return self.namespace is not None and self.at_startup is None


@dataclass(slots=True)
class LayerRule:
    id: int = 0
    name: str = "New Layer Rule"
    matches: list[LayerRuleMatch] = field(default_factory=lambda: [LayerRuleMatch()])
    block_out_from: BlockOutFrom | None = None
    opacity: float | None = None
    geometry_corner_radius: int | None = None
    place_within_backdrop: bool = False
    baba_is_float: bool = False
    extra_settings: list[str] = field(default_factory=list)
