"""Tests for HierarchyModel.

Covers:
- Loading with explicit and detected formats, atomic failure
- O(1) lookup, parent/path queries, dotted-path lookup
- Value/name updates with no-op idempotence and events
- add/delete/move/duplicate with index maintenance
- Batched notifications
- serialize/sync_source/validate/clear, including trees the handler refuses
"""

from __future__ import annotations

import pytest

from hierarchy_sync.dom import CONTENT, DOCUMENT, OBJECT, TEXT, VALUE, Node, NodeSpec
from hierarchy_sync.errors import (
    HierarchySyncError,
    NotFoundError,
    ParseError,
    SerializationError,
    UnsupportedFormatError,
)
from hierarchy_sync.events import (
    BATCH_COMPLETED,
    CONTENT_LOADED,
    NODE_ADDED,
    NODE_DELETED,
    NODE_MOVED,
    NODE_RENAMED,
    NODE_UPDATED,
    SOURCE_UPDATED,
)
from hierarchy_sync.model import HierarchyModel
from hierarchy_sync.models import ValidationResult


def event_names(recorder):
    return [name for name, _ in recorder]


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadContent:
    def test_load_json_document(self, model, recorder):
        root = model.load_content('{"a":1}', "json")
        assert model.root is root
        assert len(root.children) == 1
        child = root.children[0]
        assert (child.name, child.value) == ("a", 1)
        assert model.format == "json"
        assert model.dirty is False
        assert model.source == '{"a":1}'
        assert event_names(recorder) == [CONTENT_LOADED]
        payload = recorder[0][1]
        assert (payload.format, payload.root) == ("json", root)

    def test_format_is_detected_when_omitted(self, model):
        model.load_content("<a><b/></a>")
        assert model.format == "xml"
        assert model.root.name == "a"

    def test_format_key_is_case_insensitive(self, model):
        model.load_content("a: 1\n", "YAML")
        assert model.format == "yaml"

    def test_unknown_format_raises(self, model):
        with pytest.raises(UnsupportedFormatError, match="toml"):
            model.load_content("a = 1", "toml")

    def test_undetectable_content_raises(self, model):
        with pytest.raises(UnsupportedFormatError) as excinfo:
            model.load_content("")
        assert excinfo.value.format is None

    def test_parse_failure_keeps_previous_document(self, json_model, recorder):
        root, source = json_model.root, json_model.source
        json_model.update_node_value("root/0", "changed")
        recorder.clear()

        with pytest.raises(ParseError) as excinfo:
            json_model.load_content("{bad", "json")

        assert excinfo.value.format == "json"
        assert json_model.root is root
        assert json_model.format == "json"
        assert json_model.source == source
        assert json_model.dirty is True
        assert json_model.find_node("root/0").value == "changed"
        assert recorder == []

    def test_reload_replaces_index(self, json_model):
        json_model.load_content("[1]", "json")
        assert json_model.find_node("root/2") is None
        assert json_model.node_count == 2

    def test_out_of_range_number_keeps_previous_document(self, json_model):
        root = json_model.root
        with pytest.raises(ParseError, match="out of range"):
            json_model.load_content('{"big": 1e400}', "json")
        assert json_model.root is root
        assert json_model.find_node("root/0").value == "demo"


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    def test_find_node(self, json_model):
        node = json_model.find_node("root/1/0")
        assert node.value == "a"
        assert json_model.find_node("nope") is None
        assert "root/1" in json_model

    def test_parent_and_path(self, json_model):
        assert json_model.get_parent("root") is None
        assert json_model.get_parent("root/1/0").name == "tags"
        path = json_model.get_path("root/2/0")
        assert [n.id for n in path] == ["root", "root/2", "root/2/0"]

    def test_unknown_ids_raise_not_found(self, json_model):
        with pytest.raises(NotFoundError):
            json_model.get_parent("nope")
        with pytest.raises(KeyError):
            json_model.get_path("nope")

    def test_iter_nodes_is_document_order(self, json_model):
        ids = [n.id for n in json_model.iter_nodes()]
        assert ids == [
            "root",
            "root/0",
            "root/1",
            "root/1/0",
            "root/1/1",
            "root/2",
            "root/2/0",
        ]
        assert json_model.node_count == 7

    def test_empty_model(self, model):
        assert list(model.iter_nodes()) == []
        assert model.is_loaded is False


class TestFindByPath:
    def test_names_and_indexes(self, json_model):
        assert json_model.find_by_path("name").id == "root/0"
        assert json_model.find_by_path("tags.1").value == "b"
        assert json_model.find_by_path("meta.n").value == 1

    def test_empty_and_dot_are_root(self, json_model):
        assert json_model.find_by_path("") is json_model.root
        assert json_model.find_by_path(".") is json_model.root

    @pytest.mark.parametrize(
        "path", ["nope", "tags.5", "name.x", "tags..0", "meta.n.0", "tags.²"]
    )
    def test_unmatched_paths(self, json_model, path):
        assert json_model.find_by_path(path) is None

    def test_nothing_loaded(self, model):
        assert model.find_by_path("a") is None

    def test_digits_select_by_position_in_objects(self, json_model):
        assert json_model.find_by_path("2").name == "meta"

    def test_first_of_repeated_keys(self, model):
        model.load_content('{"a": 1, "a": 2}', "json")
        assert model.find_by_path("a").value == 1

    def test_follows_edits(self, json_model):
        json_model.rename_node("root/2", "info")
        json_model.add_node("root/1", NodeSpec(type=VALUE, value="c"))
        assert json_model.find_by_path("info.n").value == 1
        assert json_model.find_by_path("meta") is None
        assert json_model.find_by_path("tags.2").value == "c"

    def test_xml_elements_by_tag(self, model):
        model.load_content("<a><b><c>x</c></b><b/></a>", "xml")
        assert model.find_by_path("b.c.0").value == "x"
        assert model.find_by_path("1").name == "b"

    def test_resolve_takes_id_or_path(self, json_model):
        assert json_model.resolve("root/1") is json_model.find_node("root/1")
        assert json_model.resolve("tags.0") is json_model.find_node("root/1/0")
        assert json_model.resolve("missing") is None


# ---------------------------------------------------------------------------
# Value and name updates
# ---------------------------------------------------------------------------


class TestUpdates:
    def test_update_sets_dirty_and_publishes(self, json_model, recorder):
        assert json_model.update_node_value("root/0", "new") is True
        assert json_model.dirty is True
        assert event_names(recorder) == [NODE_UPDATED]
        payload = recorder[0][1]
        assert (payload.old_value, payload.new_value) == ("demo", "new")
        assert payload.node is json_model.find_node("root/0")

    def test_repeating_the_same_value_is_a_no_op(self, json_model, recorder):
        json_model.update_node_value("root/0", "new")
        recorder.clear()
        assert json_model.update_node_value("root/0", "new") is False
        assert recorder == []

    def test_equal_value_leaves_clean_document_clean(self, json_model, recorder):
        assert json_model.update_node_value("root/0", "demo") is False
        assert json_model.dirty is False
        assert recorder == []

    def test_type_change_is_not_a_no_op(self, json_model):
        json_model.update_node_value("root/2/0", True)
        node = json_model.find_node("root/2/0")
        assert node.value is True
        assert node.metadata["value_type"] == "boolean"

    def test_unknown_id_raises(self, json_model):
        with pytest.raises(NotFoundError, match="missing"):
            json_model.update_node_value("missing", 1)

    def test_rename(self, json_model, recorder):
        assert json_model.rename_node("root/0", "title") is True
        assert event_names(recorder) == [NODE_RENAMED]
        assert json_model.rename_node("root/0", "title") is False
        assert '"title": "demo"' in json_model.serialize()

    def test_rename_drops_typed_yaml_key(self, model):
        model.load_content("1: one\n", "yaml")
        model.rename_node("root/0", "first")
        assert model.serialize() == "first: one\n"


# ---------------------------------------------------------------------------
# Structural mutations
# ---------------------------------------------------------------------------


class TestAddNode:
    def test_add_from_node_spec(self, json_model, recorder):
        node = json_model.add_node(
            "root", NodeSpec(type=VALUE, name="extra", value=3)
        )
        assert json_model.find_node(node.id) is node
        assert json_model.get_parent(node.id).id == "root"
        assert json_model.dirty is True
        assert event_names(recorder) == [NODE_ADDED]
        payload = recorder[0][1]
        assert (payload.parent.id, payload.node, payload.index) == ("root", node, 3)
        assert '"extra": 3' in json_model.serialize()

    def test_add_subtree_gets_fresh_unique_ids(self, json_model):
        spec = NodeSpec(
            type=OBJECT,
            name="nested",
            children=[NodeSpec(name="x", value=1), NodeSpec(name="y", value=2)],
        )
        node = json_model.add_node("root", spec, position=0)
        ids = [n.id for n in json_model.iter_nodes()]
        assert len(ids) == len(set(ids))
        assert json_model.root.children[0] is node
        for child in node.children:
            assert json_model.get_parent(child.id) is node

    def test_add_existing_node_inserts_a_copy(self, json_model):
        original = json_model.find_node("root/2")
        copy = json_model.add_node("root/1", original)
        assert copy is not original
        assert copy.id != original.id
        assert json_model.find_node("root/2") is original

    def test_position_is_clamped(self, json_model):
        json_model.add_node("root/1", NodeSpec(value="z"), position=99)
        assert json_model.find_node("root/1").children[-1].value == "z"

    def test_unknown_parent_raises(self, json_model):
        with pytest.raises(NotFoundError):
            json_model.add_node("nope", NodeSpec())

    def test_bad_spec_type(self, json_model):
        with pytest.raises(TypeError):
            json_model.add_node("root", {"type": "value"})

    def test_allocated_ids_skip_existing(self, model):
        class Fixed:
            def parse(self, content):
                root = Node(type=DOCUMENT, id="node-1")
                root.add_child(Node(type=VALUE, id="node-2"))
                return root

            def serialize(self, node):
                return ""

            def validate(self, content):
                return ValidationResult.ok()

        model.register_handler("fixed", Fixed())
        model.load_content("x", "fixed")
        node = model.add_node("node-1", NodeSpec())
        assert node.id == "node-3"


class TestDeleteNode:
    def test_delete_removes_descendants_from_index(self, json_model, recorder):
        descendants = ["root/1/0", "root/1/1"]
        removed = json_model.delete_node("root/1")
        assert removed.name == "tags"
        assert json_model.find_node("root/1") is None
        for node_id in descendants:
            assert json_model.find_node(node_id) is None
        assert json_model.dirty is True
        assert event_names(recorder) == [NODE_DELETED]
        payload = recorder[0][1]
        assert payload.index == 1
        assert payload.parent is json_model.root
        assert payload.removed_ids == {"root/1", *descendants}

    def test_root_cannot_be_deleted(self, json_model):
        with pytest.raises(ValueError):
            json_model.delete_node("root")

    def test_unknown_id_raises(self, json_model):
        with pytest.raises(NotFoundError):
            json_model.delete_node("ghost")

    def test_delete_deep_subtree(self, model):
        depth = 3000
        model.load_content("<a>" * depth + "</a>" * depth, "xml")
        assert model.node_count == depth
        removed = model.delete_node("root/0")
        assert model.node_count == 1
        assert removed.name == "a"


class TestMoveNode:
    def test_move_between_parents_keeps_id(self, json_model, recorder):
        node = json_model.move_node("root/0", "root/2", position=0)
        assert node.id == "root/0"
        assert json_model.get_parent("root/0").id == "root/2"
        assert json_model.find_node("root/2").children[0] is node
        assert event_names(recorder) == [NODE_MOVED]
        payload = recorder[0][1]
        assert (payload.old_parent.id, payload.new_parent.id, payload.position) == (
            "root",
            "root/2",
            0,
        )

    def test_reorder_within_parent(self, json_model):
        json_model.move_node("root/1/0", "root/1")
        values = [c.value for c in json_model.find_node("root/1").children]
        assert values == ["b", "a"]

    def test_move_to_same_place_is_a_no_op(self, json_model, recorder):
        json_model.move_node("root/1", "root", position=1)
        assert recorder == []
        assert json_model.dirty is False

    def test_cannot_move_under_descendant(self, json_model):
        with pytest.raises(ValueError):
            json_model.move_node("root/1", "root/1/0")
        with pytest.raises(ValueError):
            json_model.move_node("root/1", "root/1")

    def test_cannot_move_root(self, json_model):
        with pytest.raises(ValueError):
            json_model.move_node("root", "root/1")


class TestDuplicateNode:
    def test_copy_is_inserted_after_original(self, json_model, recorder):
        copy = json_model.duplicate_node("root/1")
        children = json_model.root.children
        assert children[2] is copy
        assert copy.name == "tags"
        assert [c.value for c in copy.children] == ["a", "b"]
        assert json_model.get_parent(copy.children[0].id) is copy
        assert event_names(recorder) == [NODE_ADDED]

    def test_root_cannot_be_duplicated(self, json_model):
        with pytest.raises(ValueError):
            json_model.duplicate_node("root")


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


class TestBatch:
    def test_events_held_until_exit(self, json_model, recorder):
        with json_model.batch():
            json_model.update_node_value("root/0", "x")
            json_model.add_node("root/1", NodeSpec(type=VALUE, value="c"))
            json_model.delete_node("root/2")
            assert recorder == []
            assert json_model.in_batch

        assert event_names(recorder) == [BATCH_COMPLETED]
        changes = recorder[0][1].changes
        assert [name for name, _ in changes] == [NODE_UPDATED, NODE_ADDED, NODE_DELETED]
        assert changes[0][1].new_value == "x"
        assert json_model.in_batch is False
        assert json_model.dirty is True

    def test_nested_batches_publish_once(self, json_model, recorder):
        with json_model.batch():
            json_model.update_node_value("root/0", "x")
            with json_model.batch():
                json_model.rename_node("root/2", "info")
            assert recorder == []

        assert event_names(recorder) == [BATCH_COMPLETED]
        assert len(recorder[0][1].changes) == 2

    def test_no_changes_publish_nothing(self, json_model, recorder):
        with json_model.batch():
            json_model.update_node_value("root/0", "demo")
        assert recorder == []

    def test_error_publishes_applied_changes_and_propagates(self, json_model, recorder):
        with pytest.raises(NotFoundError):
            with json_model.batch():
                json_model.update_node_value("root/0", "x")
                json_model.delete_node("ghost")

        assert json_model.find_node("root/0").value == "x"
        assert event_names(recorder) == [BATCH_COMPLETED]
        assert [name for name, _ in recorder[0][1].changes] == [NODE_UPDATED]
        assert json_model.in_batch is False

    def test_events_flow_again_after_batch(self, json_model, recorder):
        with json_model.batch():
            json_model.update_node_value("root/0", "x")
        recorder.clear()
        json_model.update_node_value("root/0", "y")
        assert event_names(recorder) == [NODE_UPDATED]

    def test_view_manager_sees_batched_deletes(self, manager, json_model):
        manager.select("root/1/0")
        manager.expansion.expand("root/1")
        with json_model.batch():
            json_model.delete_node("root/1")
        assert manager.selected_id is None
        assert not manager.expansion.is_expanded("root/1")


# ---------------------------------------------------------------------------
# Source
# ---------------------------------------------------------------------------


class TestSource:
    def test_sync_source_publishes_and_clears_dirty(self, json_model, recorder):
        json_model.update_node_value("root/0", "x")
        text = json_model.sync_source()
        assert '"name": "x"' in text
        assert json_model.source == text
        assert json_model.dirty is False
        assert event_names(recorder)[-1] == SOURCE_UPDATED
        assert recorder[-1][1].source == text

    def test_serialize_publishes_nothing(self, json_model, recorder):
        json_model.serialize()
        assert recorder == []

    def test_serialize_without_document(self, model):
        with pytest.raises(HierarchySyncError):
            model.serialize()

    def test_serialization_error_propagates(self, json_model):
        json_model.update_node_value("root/0", object())
        with pytest.raises(SerializationError):
            json_model.sync_source()

    def test_xml_adjacent_text_added_through_model_fails(self, model):
        model.load_content("<p>hi</p>", "xml")
        model.add_node("root", NodeSpec(type=TEXT, value=" there"))
        with pytest.raises(SerializationError, match="Adjacent text nodes"):
            model.sync_source()
        assert model.source == "<p>hi</p>"
        assert model.dirty is True

    def test_markdown_heading_text_in_content_fails(self, model):
        model.load_content("# Title\n\nBody\n", "markdown")
        model.add_node(
            "root/0",
            NodeSpec(type=CONTENT, value="# X", metadata={"kind": "paragraph"}),
        )
        with pytest.raises(SerializationError):
            model.serialize()

    def test_validate_uses_active_handler(self, json_model):
        assert json_model.validate().valid
        assert not json_model.validate("{oops").valid

    def test_replace_root_rebuilds_index(self, json_model):
        new_root = json_model.handler.parse('{"only": true}')
        json_model.replace_root(new_root, source='{"only": true}')
        assert json_model.find_node("root/1") is None
        assert json_model.find_node("root/0").name == "only"
        assert json_model.source == '{"only": true}'
        assert json_model.dirty is False

    def test_clear(self, json_model):
        json_model.clear()
        assert json_model.root is None
        assert json_model.format is None
        assert json_model.find_node("root") is None


class TestHandlers:
    def test_register_replaces_active_handler(self, json_model):
        class Upper:
            def parse(self, content):
                raise AssertionError("not used")

            def serialize(self, node):
                return "UPPER"

            def validate(self, content):
                return ValidationResult.ok()

        json_model.register_handler("json", Upper())
        assert json_model.serialize() == "UPPER"

    def test_register_rejects_non_conforming(self, model):
        with pytest.raises(TypeError):
            model.register_handler("bad", object())

    def test_subscriber_errors_do_not_abort_mutation(self, json_model, caplog):
        def explode(payload):
            raise RuntimeError("subscriber failure")

        json_model.subscribe(NODE_UPDATED, explode)
        assert json_model.update_node_value("root/0", "still works")
        assert json_model.find_node("root/0").value == "still works"
        assert "Subscriber for nodeUpdated failed" in caplog.text
