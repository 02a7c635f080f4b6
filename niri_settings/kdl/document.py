"""KDL document model and serializer."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, Union

KdlScalar = Union[str, int, float, bool, None]

INDENT = "    "

IDENTIFIER_STOP_CHARS = frozenset("\\/(){}<>;[]=,\"")
_RESERVED_WORDS = frozenset({"true", "false", "null", "inf", "-inf", "nan"})


def quote_string(text: str) -> str:
    out: list[str] = ['"']
    for char in text:
        if char == '"':
            out.append('\\"')
        elif char == "\\":
            out.append("\\\\")
        elif char == "\n":
            out.append("\\n")
        elif char == "\r":
            out.append("\\r")
        elif char == "\t":
            out.append("\\t")
        elif char == "\b":
            out.append("\\b")
        elif char == "\f":
            out.append("\\f")
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            out.append(f"\\u{{{ord(char):x}}}")
        else:
            out.append(char)
    out.append('"')
    return "".join(out)


def is_bare_identifier(name: str) -> bool:
    if not name or name in _RESERVED_WORDS:
        return False
    if any(char in IDENTIFIER_STOP_CHARS or char == "#" or char.isspace() for char in name):
        return False
    head = name[1:] if name[0] in "+-" else name
    if head[:1].isdigit():
        return False
    if head.startswith(".") and head[1:2].isdigit():
        return False
    return True


def format_identifier(name: str) -> str:
    return name if is_bare_identifier(name) else quote_string(name)


def format_scalar(value: KdlScalar) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "#nan"
        if math.isinf(value):
            return "#inf" if value > 0 else "#-inf"
        return repr(value)
    return quote_string(str(value))


@dataclass(slots=True)
class KdlValue:
    value: KdlScalar
    type_name: str | None = None
    # Source literal, reused on output so numbers and raw strings keep their spelling.
    raw: str | None = None

    def to_kdl(self) -> str:
        text = self.raw if self.raw is not None else format_scalar(self.value)
        if self.type_name is not None:
            return f"({format_identifier(self.type_name)}){text}"
        return text


@dataclass(slots=True)
class KdlEntry:
    """A positional argument (``name is None``) or a ``name=value`` property."""

    value: KdlValue
    name: str | None = None

    @property
    def is_property(self) -> bool:
        return self.name is not None

    def to_kdl(self) -> str:
        if self.name is None:
            return self.value.to_kdl()
        return f"{format_identifier(self.name)}={self.value.to_kdl()}"


@dataclass(slots=True)
class KdlNode:
    name: str
    entries: list[KdlEntry] = field(default_factory=list)
    children: KdlDocument | None = None
    type_name: str | None = None

    @property
    def arguments(self) -> list[KdlScalar]:
        return [entry.value.value for entry in self.entries if entry.name is None]

    @property
    def properties(self) -> dict[str, KdlScalar]:
        # Later duplicates win, as in KDL itself.
        return {entry.name: entry.value.value for entry in self.entries if entry.name is not None}

    def first_argument(self) -> KdlScalar:
        for entry in self.entries:
            if entry.name is None:
                return entry.value.value
        return None

    def get_property(self, key: str, default: KdlScalar = None) -> KdlScalar:
        return self.properties.get(key, default)

    def child_nodes(self) -> list[KdlNode]:
        return list(self.children.nodes) if self.children is not None else []

    def to_kdl(self, depth: int = 0) -> str:
        pad = INDENT * depth
        head = format_identifier(self.name)
        if self.type_name is not None:
            head = f"({format_identifier(self.type_name)}){head}"
        parts = [head, *(entry.to_kdl() for entry in self.entries)]
        line = pad + " ".join(parts)
        if self.children is None:
            return line
        if not self.children.nodes:
            return line + " {\n" + pad + "}"
        body = "".join(child.to_kdl(depth + 1) + "\n" for child in self.children.nodes)
        return line + " {\n" + body + pad + "}"


@dataclass(slots=True)
class KdlDocument:
    nodes: list[KdlNode] = field(default_factory=list)

    def __iter__(self) -> Iterator[KdlNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, name: str) -> KdlNode | None:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def nodes_named(self, name: str) -> list[KdlNode]:
        return [node for node in self.nodes if node.name == name]

    def to_kdl(self) -> str:
        return "".join(node.to_kdl() + "\n" for node in self.nodes)

    def __str__(self) -> str:
        return self.to_kdl()
