"""Tests for the YAML handler."""

from __future__ import annotations

import pytest
import yaml

from hierarchy_sync.dom import ARRAY, OBJECT, VALUE, Node, structurally_equal
from hierarchy_sync.errors import ParseError, SerializationError
from hierarchy_sync.handlers.yaml_handler import YamlHandler


@pytest.fixture
def handler():
    return YamlHandler()


class TestYamlParse:
    def test_mapping_and_sequence_shapes(self, handler):
        root = handler.parse("name: demo\ntags:\n  - a\n  - b\n")
        assert root.type == OBJECT
        name, tags = root.children
        assert (name.name, name.value, name.metadata["value_type"]) == (
            "name",
            "demo",
            "string",
        )
        assert tags.type == ARRAY
        assert [c.value for c in tags.children] == ["a", "b"]
        assert [c.name for c in tags.children] == [None, None]

    def test_scalars_are_typed(self, handler):
        root = handler.parse("i: 3\nf: 1.5\nb: yes\nn: ~\n")
        assert [c.value for c in root.children] == [3, 1.5, True, None]
        assert [c.metadata["value_type"] for c in root.children] == [
            "number",
            "number",
            "boolean",
            "null",
        ]

    def test_non_string_keys_keep_their_type(self, handler):
        root = handler.parse("1: one\n2.5: half\n")
        first, second = root.children
        assert (first.name, first.metadata["key"]) == ("1", 1)
        assert (second.name, second.metadata["key"]) == ("2.5", 2.5)

    def test_empty_document_is_a_null_value(self, handler):
        root = handler.parse("")
        assert root.type == VALUE
        assert root.value is None

    def test_syntax_error_reports_position(self, handler):
        with pytest.raises(ParseError) as excinfo:
            handler.parse("a: [1, 2\nb: 3\n")
        err = excinfo.value
        assert err.format == "yaml"
        assert err.line is not None
        assert err.column is not None

    def test_recursive_alias_is_rejected(self, handler):
        with pytest.raises(ParseError, match="Recursive"):
            handler.parse("a: &x\n  - *x\n")

    def test_unsafe_tags_are_rejected(self, handler):
        with pytest.raises(ParseError):
            handler.parse("a: !!python/object:os.system ls\n")


class TestYamlSerialize:
    def test_block_style_keeps_order(self, handler):
        out = handler.serialize(handler.parse("z: 1\na:\n  - x\n"))
        assert out == "z: 1\na:\n- x\n"

    def test_typed_keys_round_trip(self, handler):
        root = handler.parse("1: one\nnull: nothing\n")
        assert yaml.safe_load(handler.serialize(root)) == {1: "one", None: "nothing"}

    def test_duplicate_keys_fail(self, handler):
        root = Node(type=OBJECT, id="root")
        root.add_child(Node(type=VALUE, name="a", value=1))
        root.add_child(Node(type=VALUE, name="a", value=2))
        with pytest.raises(SerializationError, match="Duplicate"):
            handler.serialize(root)

    def test_cycle_fails(self, handler):
        root = Node(type=ARRAY)
        root.children.append(root)
        with pytest.raises(SerializationError, match="Circular"):
            handler.serialize(root)

    def test_unrepresentable_value_fails(self, handler):
        with pytest.raises(SerializationError):
            handler.serialize(Node(type=VALUE, value=object()))

    @pytest.mark.parametrize(
        "text",
        [
            "a: 1\nb:\n  c: [1, 2]\n  d: 'str'\n",
            "- 1\n- two\n- {k: v}\n",
            "text: |\n  line one\n  line two\n",
            "",
        ],
    )
    def test_round_trip(self, handler, text):
        first = handler.parse(text)
        second = handler.parse(handler.serialize(first))
        assert structurally_equal(first, second)


class TestYamlValidateAndDetect:
    def test_validate_is_syntax_only(self, handler):
        # Two documents parse as events but fail construction
        assert handler.validate("a: 1\n---\nb: 2\n").valid
        with pytest.raises(ParseError):
            handler.parse("a: 1\n---\nb: 2\n")

    def test_validate_reports_syntax_errors(self, handler):
        result = handler.validate("a: [1, 2\n")
        assert not result.valid
        assert result.errors[0].line is not None

    def test_detect_scores(self, handler):
        assert handler.detect("a: 1\n") == 0.6
        assert handler.detect("- a\n- b\n") == 0.6
        assert handler.detect("plain words") == 0.0
        assert handler.detect("") == 0.0
