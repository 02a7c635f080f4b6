"""Tests for the KDL parser and serializer."""

import math

import pytest

from niri_settings.kdl import KdlDocument, KdlNode, KdlParseError, KdlValue, parse_kdl
from niri_settings.kdl.document import KdlEntry, format_identifier, quote_string


class TestParseNodes:
    """Node structure, entries and children."""

    def test_empty_document(self):
        assert parse_kdl("").nodes == []
        assert parse_kdl("\n  // only a comment\n/* block */\n").nodes == []

    def test_arguments_and_properties_keep_order(self):
        doc = parse_kdl('node 1 "two" key=true 3.5 other=null\n')
        node = doc.nodes[0]
        assert node.name == "node"
        assert node.arguments == [1, "two", 3.5]
        assert node.properties == {"key": True, "other": None}
        assert [entry.name for entry in node.entries] == [None, None, "key", None, "other"]

    def test_children_and_semicolons(self):
        doc = parse_kdl("touchpad { tap; natural-scroll; accel-speed 0.2; }")
        touchpad = doc.get("touchpad")
        assert touchpad is not None
        assert [child.name for child in touchpad.child_nodes()] == ["tap", "natural-scroll", "accel-speed"]
        assert touchpad.children.get("accel-speed").first_argument() == 0.2

    def test_nested_children(self, sample_config_text):
        doc = parse_kdl(sample_config_text)
        layout_node = doc.get("input").children.get("keyboard").children.get("xkb").children.get("layout")
        assert layout_node.first_argument() == "us"

    def test_keybind_names_are_identifiers(self):
        doc = parse_kdl('binds {\n    Mod+Shift+E allow-when-locked=true { quit; }\n}\n')
        bind = doc.get("binds").child_nodes()[0]
        assert bind.name == "Mod+Shift+E"
        assert bind.get_property("allow-when-locked") is True
        assert bind.child_nodes()[0].name == "quit"

    def test_quoted_node_name(self):
        doc = parse_kdl('"my node" 1')
        assert doc.nodes[0].name == "my node"

    def test_type_annotations(self):
        doc = parse_kdl("(tag)node (u8)255 size=(px)10")
        node = doc.nodes[0]
        assert node.type_name == "tag"
        assert node.entries[0].value.type_name == "u8"
        assert node.entries[1].value.type_name == "px"
        assert node.properties["size"] == 10

    def test_bare_identifier_values(self):
        doc = parse_kdl("block-out-from screencast")
        assert doc.nodes[0].first_argument() == "screencast"


class TestComments:
    """Comment forms, slash-dash and line continuations."""

    def test_slashdash_node(self):
        doc = parse_kdl('/-skipped "a"\nkept\n/- skipped-too { child; }\n')
        assert [node.name for node in doc.nodes] == ["kept"]

    def test_slashdash_entry_and_children(self):
        doc = parse_kdl("node 1 /-2 3 /-key=4 /-{ child; }")
        node = doc.nodes[0]
        assert node.arguments == [1, 3]
        assert node.properties == {}
        assert node.children is None

    def test_nested_block_comment(self):
        doc = parse_kdl("a /* outer /* inner */ still comment */ 1\nb")
        assert doc.nodes[0].arguments == [1]
        assert doc.nodes[1].name == "b"

    def test_trailing_line_comment(self):
        doc = parse_kdl("gaps 16 // pixels\nstruts")
        assert doc.nodes[0].arguments == [16]
        assert doc.nodes[1].name == "struts"

    def test_line_continuation(self):
        doc = parse_kdl('spawn-at-startup "a" \\\n    "b"\nnext')
        assert doc.nodes[0].arguments == ["a", "b"]
        assert doc.nodes[1].name == "next"


class TestValues:
    """Strings, numbers and keywords."""

    def test_string_escapes(self):
        doc = parse_kdl(r'node "tab\there" "quote\"" "slash\\" "nl\n" "\u{1F600}"')
        assert doc.nodes[0].arguments == ["tab\there", 'quote"', "slash\\", "nl\n", "\U0001F600"]

    def test_raw_strings(self):
        doc = parse_kdl('a r"C:\\path" r#"has "quotes""# #"v2 raw"#')
        assert doc.nodes[0].arguments == ["C:\\path", 'has "quotes"', "v2 raw"]

    def test_multiline_string(self):
        doc = parse_kdl('node "line one\nline two"')
        assert doc.nodes[0].first_argument() == "line one\nline two"

    def test_numbers(self):
        doc = parse_kdl("n 0xff 0o17 0b101 1_000 -5 +3 1.5e3 -0.25")
        assert doc.nodes[0].arguments == [255, 15, 5, 1000, -5, 3, 1500.0, -0.25]

    def test_number_directly_before_children(self):
        doc = parse_kdl('foo 1{ bar }\noutput "eDP-1" { scale 2{ } }\n')
        foo, output = doc.nodes
        assert foo.arguments == [1]
        assert [child.name for child in foo.child_nodes()] == ["bar"]
        scale = output.child_nodes()[0]
        assert scale.arguments == [2]
        assert scale.children is not None

    def test_keywords(self):
        doc = parse_kdl("k true false null #true #false #null #inf #-inf")
        assert doc.nodes[0].arguments == [True, False, None, True, False, None, math.inf, -math.inf]

    def test_nan_keyword(self):
        value = parse_kdl("k #nan").nodes[0].first_argument()
        assert math.isnan(value)


class TestParseErrors:
    """Malformed input fails as a whole, with a position."""

    @pytest.mark.parametrize(
        "text",
        [
            "this { is {{ invalid",
            "node {",
            "}",
            'node "unterminated',
            "node r#\"raw\"",
            "node 123abc",
            "node /* open",
            "node #unknown",
            "node { child } extra",
            "node key=",
            'node "\\q"',
        ],
    )
    def test_invalid_documents(self, text):
        with pytest.raises(KdlParseError):
            parse_kdl(text)

    def test_error_reports_line_and_column(self):
        with pytest.raises(KdlParseError) as excinfo:
            parse_kdl("good 1\nbad {{\n")
        assert excinfo.value.line == 2
        assert excinfo.value.column == 6
        assert "line 2" in str(excinfo.value)

    def test_entry_requires_whitespace(self):
        with pytest.raises(KdlParseError):
            parse_kdl('node"a"')


class TestSerialize:
    """Serialized output re-parses to the same content."""

    def test_round_trip_sample(self, sample_config_text):
        doc = parse_kdl(sample_config_text)
        assert parse_kdl(doc.to_kdl()) == doc

    def test_round_trip_is_stable(self, sample_config_text):
        once = parse_kdl(sample_config_text).to_kdl()
        assert parse_kdl(once).to_kdl() == once

    def test_layout(self):
        doc = parse_kdl("layout { gaps 16; focus-ring { off; }; empty {} }")
        assert doc.to_kdl() == (
            "layout {\n"
            "    gaps 16\n"
            "    focus-ring {\n"
            "        off\n"
            "    }\n"
            "    empty {\n"
            "    }\n"
            "}\n"
        )

    def test_source_literals_are_kept(self):
        doc = parse_kdl('n 0xff 1_000 0.90 r#"a\\.b"#')
        assert doc.to_kdl() == 'n 0xff 1_000 0.90 r#"a\\.b"#\n'

    def test_built_nodes_are_quoted_when_needed(self):
        node = KdlNode(
            name="has space",
            entries=[
                KdlEntry(KdlValue("text \"q\"\n")),
                KdlEntry(KdlValue(True), name="flag"),
                KdlEntry(KdlValue(2.0), name="1st"),
                KdlEntry(KdlValue(None)),
            ],
        )
        text = KdlDocument([node]).to_kdl()
        assert text == '"has space" "text \\"q\\"\\n" flag=true "1st"=2.0 null\n'
        assert parse_kdl(text).nodes[0].arguments == ['text "q"\n', None]

    def test_format_identifier(self):
        assert format_identifier("window-rule") == "window-rule"
        assert format_identifier("Mod+T") == "Mod+T"
        assert format_identifier("true") == '"true"'
        assert format_identifier("-1x") == '"-1x"'
        assert format_identifier("") == '""'
        assert quote_string("a\\b") == '"a\\\\b"'
