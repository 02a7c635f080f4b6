from .document import (
    KdlDocument,
    KdlEntry,
    KdlNode,
    KdlScalar,
    KdlValue,
    format_identifier,
    quote_string,
)
from .parser import KdlParseError, KdlParser, parse_kdl

__all__ = [
    "KdlDocument",
    "KdlEntry",
    "KdlNode",
    "KdlParseError",
    "KdlParser",
    "KdlScalar",
    "KdlValue",
    "format_identifier",
    "parse_kdl",
    "quote_string",
]
