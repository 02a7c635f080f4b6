"""Classify the top-level nodes of a niri config document."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath

from niri_settings.kdl import KdlDocument, KdlNode, parse_kdl
from niri_settings.services import file_io
from niri_settings.settings_models import MANAGED_DIR_NAME

logger = logging.getLogger(__name__)

# Top-level sections the application generates itself. Anything else is the
# user's and is carried over verbatim.
MANAGED_NODES: frozenset[str] = frozenset(
    {
        "layout",
        "input",
        "animations",
        "cursor",
        "overview",
        "output",
        "workspace",
        "window-rule",
        "layer-rule",
        "spawn-at-startup",
        "environment",
        "debug",
        "switch-events",
        "hotkey-overlay",
        "screenshot-path",
        "prefer-no-csd",
        "focus-follows-mouse",
        "warp-mouse-to-focus",
        "workspace-auto-back-and-forth",
        "binds",
    }
)


class NodeClassification(Enum):
    MANAGED = "managed"
    SELF_INCLUDE = "self_include"
    OTHER_INCLUDE = "other_include"
    UNMANAGED = "unmanaged"


def is_self_include_path(include_path: str) -> bool:
    parts = PurePosixPath(include_path.replace("\\", "/")).parts
    return MANAGED_DIR_NAME in parts


def classify_node(node: KdlNode) -> NodeClassification:
    if node.name == "include":
        target = node.first_argument()
        if isinstance(target, str) and is_self_include_path(target):
            return NodeClassification.SELF_INCLUDE
        return NodeClassification.OTHER_INCLUDE
    if node.name in MANAGED_NODES:
        return NodeClassification.MANAGED
    return NodeClassification.UNMANAGED


@dataclass(slots=True)
class ConfigAnalysis:
    document: KdlDocument
    node_classifications: list[tuple[int, NodeClassification]] = field(default_factory=list)
    has_self_include: bool = False
    self_include_count: int = 0
    managed_count: int = 0
    # Other includes are user content, so they count here.
    unmanaged_count: int = 0
    original_content: str = ""
    original_bytes: bytes = b""

    def nodes_with(self, *classifications: NodeClassification) -> list[KdlNode]:
        wanted = set(classifications)
        return [
            self.document.nodes[index]
            for index, classification in self.node_classifications
            if classification in wanted
        ]

    def preserved_nodes(self) -> list[KdlNode]:
        return self.nodes_with(NodeClassification.UNMANAGED, NodeClassification.OTHER_INCLUDE)

    def managed_node_names(self) -> list[str]:
        return [node.name for node in self.nodes_with(NodeClassification.MANAGED)]

    @property
    def is_fully_set_up(self) -> bool:
        return self.self_include_count == 1 and self.managed_count == 0


def analyze_document(document: KdlDocument, *, original_content: str = "") -> ConfigAnalysis:
    analysis = ConfigAnalysis(document=document, original_content=original_content)
    for index, node in enumerate(document.nodes):
        classification = classify_node(node)
        analysis.node_classifications.append((index, classification))
        if classification is NodeClassification.SELF_INCLUDE:
            analysis.self_include_count += 1
        elif classification is NodeClassification.MANAGED:
            analysis.managed_count += 1
        else:
            analysis.unmanaged_count += 1
    analysis.has_self_include = analysis.self_include_count > 0
    if analysis.self_include_count > 1:
        logger.warning(
            "Config contains %d includes of %s; they will be merged into one",
            analysis.self_include_count,
            MANAGED_DIR_NAME,
        )
    return analysis


def analyze_config_text(text: str) -> ConfigAnalysis:
    """Parse ``text`` and classify every top-level node.

    Raises :class:`~niri_settings.kdl.KdlParseError` if any part of the text
    fails to parse; no partial analysis is returned.
    """
    analysis = analyze_document(parse_kdl(text), original_content=text)
    analysis.original_bytes = text.encode("utf-8")
    return analysis


def analyze_config_bytes(data: bytes) -> ConfigAnalysis:
    """Like :func:`analyze_config_text`; also raises ``UnicodeDecodeError``."""
    text = data.decode("utf-8")
    analysis = analyze_document(parse_kdl(text), original_content=text)
    analysis.original_bytes = data
    return analysis


def analyze_config(path: str | Path) -> ConfigAnalysis:
    return analyze_config_bytes(file_io.read_bytes(path))
