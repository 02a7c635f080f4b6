"""Recursive-descent parser for KDL documents."""

from __future__ import annotations

import re

from niri_settings.kdl.document import (
    IDENTIFIER_STOP_CHARS,
    KdlDocument,
    KdlEntry,
    KdlNode,
    KdlScalar,
    KdlValue,
)

NEWLINE_CHARS = frozenset("\n\r\x0b\x0c\x85\u2028\u2029")
WHITESPACE_CHARS = frozenset(
    "\t \ufeff\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006"
    "\u2007\u2008\u2009\u200a\u202f\u205f\u3000"
)

_SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "\\": "\\",
    "/": "/",
    '"': '"',
    "b": "\b",
    "f": "\f",
    "s": " ",
}
_KEYWORDS: dict[str, KdlScalar] = {
    "true": True,
    "false": False,
    "null": None,
    "#true": True,
    "#false": False,
    "#null": None,
    "#inf": float("inf"),
    "#-inf": float("-inf"),
    "#nan": float("nan"),
}

_RADIX_NUMBER_RE = re.compile(r"[+-]?0(?:x[0-9a-fA-F][0-9a-fA-F_]*|o[0-7][0-7_]*|b[01][01_]*)")
_DECIMAL_NUMBER_RE = re.compile(r"[+-]?[0-9][0-9_]*(?:\.[0-9][0-9_]*)?(?:[eE][+-]?[0-9][0-9_]*)?")


class KdlParseError(ValueError):
    """Raised when text is not a valid KDL document."""

    def __init__(self, message: str, *, line: int, column: int) -> None:
        super().__init__(f"{message} (line {line}, column {column})")
        self.reason = message
        self.line = line
        self.column = column


def parse_kdl(text: str) -> KdlDocument:
    return KdlParser(text).parse()


class KdlParser:
    """Single-use parser over one source string."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.length = len(text)

    def parse(self) -> KdlDocument:
        if self.text.startswith("\ufeff"):
            self.pos = 1
        return KdlDocument(self._parse_nodes(nested=False))

    # -- errors / positions ------------------------------------------------

    def _error(self, message: str, pos: int | None = None) -> KdlParseError:
        offset = self.pos if pos is None else pos
        consumed = self.text[:offset]
        line = consumed.count("\n") + 1
        column = offset - (consumed.rfind("\n") + 1) + 1
        return KdlParseError(message, line=line, column=column)

    def _peek(self, ahead: int = 0) -> str:
        index = self.pos + ahead
        return self.text[index] if index < self.length else ""

    def _at_end(self) -> bool:
        return self.pos >= self.length

    # -- whitespace and comments -----------------------------------------------

    def _skip_newline(self) -> bool:
        if self.text.startswith("\r\n", self.pos):
            self.pos += 2
            return True
        if self._peek() in NEWLINE_CHARS and not self._at_end():
            self.pos += 1
            return True
        return False

    def _skip_line_comment(self) -> None:
        while not self._at_end() and self.text[self.pos] not in NEWLINE_CHARS:
            self.pos += 1

    def _skip_block_comment(self) -> None:
        start = self.pos
        self.pos += 2
        depth = 1
        while depth:
            if self._at_end():
                raise self._error("Unterminated block comment", start)
            if self.text.startswith("/*", self.pos):
                depth += 1
                self.pos += 2
            elif self.text.startswith("*/", self.pos):
                depth -= 1
                self.pos += 2
            else:
                self.pos += 1

    def _skip_line_continuation(self) -> bool:
        if self._peek() != "\\":
            return False
        start = self.pos
        self.pos += 1
        while not self._at_end():
            char = self.text[self.pos]
            if char in WHITESPACE_CHARS:
                self.pos += 1
            elif self.text.startswith("/*", self.pos):
                self._skip_block_comment()
            else:
                break
        if self.text.startswith("//", self.pos):
            self._skip_line_comment()
        if self._at_end() or self._skip_newline():
            return True
        raise self._error("Expected newline after line continuation", start)

    def _skip_node_space(self) -> bool:
        """Skip in-line whitespace, block comments and line continuations."""
        start = self.pos
        while not self._at_end():
            char = self.text[self.pos]
            if char in WHITESPACE_CHARS:
                self.pos += 1
            elif self.text.startswith("/*", self.pos):
                self._skip_block_comment()
            elif char == "\\":
                self._skip_line_continuation()
            else:
                break
        return self.pos > start

    def _skip_line_space(self) -> None:
        while not self._at_end():
            if self._skip_newline():
                continue
            char = self.text[self.pos]
            if char in WHITESPACE_CHARS or char == ";":
                self.pos += 1
            elif self.text.startswith("//", self.pos):
                self._skip_line_comment()
            elif self.text.startswith("/*", self.pos):
                self._skip_block_comment()
            elif char == "\\":
                self._skip_line_continuation()
            else:
                break

    # -- structure -----------------------------------------------------------

    def _parse_nodes(self, *, nested: bool) -> list[KdlNode]:
        open_pos = self.pos - 1
        nodes: list[KdlNode] = []
        while True:
            self._skip_line_space()
            if self._at_end():
                if nested:
                    raise self._error("Unterminated children block, expected '}'", open_pos)
                return nodes
            if self._peek() == "}":
                if not nested:
                    raise self._error("Unexpected '}'")
                self.pos += 1
                return nodes
            commented_out = False
            if self.text.startswith("/-", self.pos):
                commented_out = True
                self.pos += 2
                self._skip_line_space()
            node = self._parse_node()
            if not commented_out:
                nodes.append(node)

    def _parse_node(self) -> KdlNode:
        type_name = self._parse_type_annotation()
        if type_name is not None:
            self._skip_node_space()
        name = self._parse_name("node name")
        node = KdlNode(name=name, type_name=type_name)

        while True:
            had_space = self._skip_node_space()
            if self._at_end():
                return node
            char = self.text[self.pos]
            if char in NEWLINE_CHARS:
                self._skip_newline()
                return node
            if char == ";":
                self.pos += 1
                return node
            if char == "}":
                return node
            if self.text.startswith("//", self.pos):
                self._skip_line_comment()
                continue

            commented_out = False
            if self.text.startswith("/-", self.pos):
                commented_out = True
                self.pos += 2
                self._skip_node_space()
                char = self._peek()
            if char == "{":
                self.pos += 1
                children = KdlDocument(self._parse_nodes(nested=True))
                if not commented_out:
                    if node.children is not None:
                        raise self._error("Node has more than one children block")
                    node.children = children
                continue

            if not had_space and not commented_out:
                raise self._error("Expected whitespace before node entry")
            if node.children is not None:
                raise self._error("Node entries are not allowed after a children block")
            entry = self._parse_entry()
            if not commented_out:
                node.entries.append(entry)

    def _parse_entry(self) -> KdlEntry:
        type_name = self._parse_type_annotation()
        if type_name is None:
            key = self._try_parse_property_key()
            if key is not None:
                return KdlEntry(value=self._parse_value(), name=key)
        return KdlEntry(value=self._parse_value(type_name))

    def _try_parse_property_key(self) -> str | None:
        start = self.pos
        char = self._peek()
        if char == '"':
            key = self._parse_quoted_string()
        elif self._at_raw_string():
            key = self._parse_raw_string()
        elif self._at_identifier_start():
            key = self._read_identifier()
        else:
            return None
        if self._peek() == "=":
            self.pos += 1
            return key
        self.pos = start
        return None

    def _parse_type_annotation(self) -> str | None:
        if self._peek() != "(":
            return None
        self.pos += 1
        self._skip_node_space()
        type_name = self._parse_name("type name")
        self._skip_node_space()
        if self._peek() != ")":
            raise self._error("Expected ')' to close type annotation")
        self.pos += 1
        return type_name

    def _parse_name(self, what: str) -> str:
        if self._peek() == '"':
            return self._parse_quoted_string()
        if self._at_raw_string():
            return self._parse_raw_string()
        if self._at_identifier_start():
            return self._read_identifier()
        if self._at_end():
            raise self._error(f"Expected {what}, found end of input")
        raise self._error(f"Expected {what}, found {self._peek()!r}")

    # -- values --------------------------------------------------------------

    def _parse_value(self, type_name: str | None = None) -> KdlValue:
        if type_name is None:
            type_name = self._parse_type_annotation()
        start = self.pos
        char = self._peek()
        if char == '"':
            value: KdlScalar = self._parse_quoted_string()
        elif self._at_raw_string():
            value = self._parse_raw_string()
        elif char == "#":
            word = self._read_identifier(allow_hash=True)
            if word not in _KEYWORDS:
                raise self._error(f"Unknown keyword {word!r}", start)
            value = _KEYWORDS[word]
        elif self._at_number_start():
            value = self._parse_number()
        elif self._at_identifier_start():
            word = self._read_identifier()
            value = _KEYWORDS[word] if word in ("true", "false", "null") else word
        elif self._at_end():
            raise self._error("Expected a value, found end of input")
        else:
            raise self._error(f"Expected a value, found {char!r}")
        return KdlValue(value=value, type_name=type_name, raw=self.text[start:self.pos])

    def _parse_number(self) -> int | float:
        start = self.pos
        match = _RADIX_NUMBER_RE.match(self.text, self.pos)
        if match is not None:
            literal = match.group(0)
            self.pos = match.end()
            self._expect_value_end(start)
            return int(literal.replace("_", ""), 0)
        match = _DECIMAL_NUMBER_RE.match(self.text, self.pos)
        if match is None:
            raise self._error("Invalid number")
        literal = match.group(0)
        self.pos = match.end()
        self._expect_value_end(start)
        cleaned = literal.replace("_", "")
        if any(mark in cleaned for mark in ".eE"):
            return float(cleaned)
        return int(cleaned)

    def _expect_value_end(self, start: int) -> None:
        char = self._peek()
        if not char or char in WHITESPACE_CHARS or char in NEWLINE_CHARS or char in "{;}/\\":
            return
        raise self._error(f"Invalid number {self.text[start:self.pos + 1]!r}", start)

    def _parse_quoted_string(self) -> str:
        start = self.pos
        self.pos += 1
        out: list[str] = []
        while True:
            if self._at_end():
                raise self._error("Unterminated string", start)
            char = self.text[self.pos]
            if char == '"':
                self.pos += 1
                return "".join(out)
            if char != "\\":
                out.append(char)
                self.pos += 1
                continue
            escape = self._peek(1)
            if escape in _SIMPLE_ESCAPES:
                out.append(_SIMPLE_ESCAPES[escape])
                self.pos += 2
            elif escape == "u":
                out.append(self._parse_unicode_escape())
            elif escape and (escape in WHITESPACE_CHARS or escape in NEWLINE_CHARS):
                # Whitespace escape: drop the backslash and all following whitespace.
                self.pos += 1
                while not self._at_end() and (
                    self.text[self.pos] in WHITESPACE_CHARS or self.text[self.pos] in NEWLINE_CHARS
                ):
                    self.pos += 1
            else:
                raise self._error(f"Invalid escape sequence '\\{escape}'")

    def _parse_unicode_escape(self) -> str:
        start = self.pos
        if self._peek(2) != "{":
            raise self._error("Expected '{' in unicode escape", start)
        close = self.text.find("}", self.pos + 3)
        digits = self.text[self.pos + 3 : close] if close >= 0 else ""
        if not (1 <= len(digits) <= 6) or any(c not in "0123456789abcdefABCDEF" for c in digits):
            raise self._error("Invalid unicode escape", start)
        code_point = int(digits, 16)
        if code_point > 0x10FFFF or 0xD800 <= code_point <= 0xDFFF:
            raise self._error("Unicode escape is not a scalar value", start)
        self.pos = close + 1
        return chr(code_point)

    def _at_raw_string(self) -> bool:
        index = self.pos
        if self._peek() == "r":
            index += 1
        if index >= self.length:
            return False
        if self.text[index] == '"':
            return index > self.pos
        hashes = index
        while hashes < self.length and self.text[hashes] == "#":
            hashes += 1
        return hashes > index and hashes < self.length and self.text[hashes] == '"'

    def _parse_raw_string(self) -> str:
        start = self.pos
        if self._peek() == "r":
            self.pos += 1
        hashes = 0
        while self._peek() == "#":
            hashes += 1
            self.pos += 1
        self.pos += 1
        terminator = '"' + "#" * hashes
        end = self.text.find(terminator, self.pos)
        if end < 0:
            raise self._error("Unterminated raw string", start)
        value = self.text[self.pos:end]
        self.pos = end + len(terminator)
        return value

    # -- identifiers ---------------------------------------------------------

    def _at_number_start(self) -> bool:
        char = self._peek()
        if char.isdigit():
            return True
        return char in "+-" and self._peek(1).isdigit()

    def _at_identifier_start(self) -> bool:
        char = self._peek()
        if not char or char == "#" or self._is_stop_char(char):
            return False
        return not self._at_number_start()

    @staticmethod
    def _is_stop_char(char: str) -> bool:
        return char in IDENTIFIER_STOP_CHARS or char in WHITESPACE_CHARS or char in NEWLINE_CHARS

    def _read_identifier(self, *, allow_hash: bool = False) -> str:
        start = self.pos
        if allow_hash and self._peek() == "#":
            self.pos += 1
        while not self._at_end() and not self._is_stop_char(self.text[self.pos]):
            self.pos += 1
        if self.pos == start:
            raise self._error("Expected identifier")
        return self.text[start:self.pos]
