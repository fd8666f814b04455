"""The single mutable source of truth for a loaded document.

``HierarchyModel`` owns the root node, the format it was parsed from, the
cached source text, the dirty flag and two indexes: ``id -> node`` for
O(1) lookup and ``id -> parent id`` for traversal upwards.  Both indexes
are updated incrementally by every structural mutation; ``load_content``
and ``replace_root`` rebuild them once per call.

Every mutation goes through this class.  Consumers subscribe to events
(see ``hierarchy_sync.events``) and re-render from the payloads.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from .dom import VALUE, Node, NodeSpec, assign_path_ids, value_type_of
from .errors import HierarchySyncError, NotFoundError, UnsupportedFormatError
from .events import (
    BATCH_COMPLETED,
    CLEARED,
    CONTENT_LOADED,
    NODE_ADDED,
    NODE_DELETED,
    NODE_MOVED,
    NODE_RENAMED,
    NODE_UPDATED,
    SOURCE_UPDATED,
    BatchCompleted,
    Cleared,
    ContentLoaded,
    EventBus,
    NodeAdded,
    NodeDeleted,
    NodeMoved,
    NodeRenamed,
    NodeUpdated,
    SourceUpdated,
)
from .handlers.base import HandlerRegistry, create_default_registry
from .models import ValidationResult

logger = logging.getLogger(__name__)


def _same(old: Any, new: Any) -> bool:
    # 1 == True and 1 == 1.0 in Python, but they are different JSON values
    return type(old) is type(new) and old == new


class HierarchyModel:
    """Canonical tree plus load, query and mutation operations."""

    def __init__(
        self,
        registry: HandlerRegistry | None = None,
        events: EventBus | None = None,
    ) -> None:
        self.registry = (
            registry if registry is not None else create_default_registry()
        )
        self.events = events if events is not None else EventBus()
        self.root: Node | None = None
        self.format: str | None = None
        self.handler: Any = None
        self.source: str | None = None
        self.dirty = False
        self._nodes: dict[str, Node] = {}
        self._parents: dict[str, str | None] = {}
        self._next_id = 0
        self._batch_depth = 0
        self._pending: list[tuple[str, Any]] = []

    # ------------------------------------------------------------------
    # Handlers and events
    # ------------------------------------------------------------------

    def register_handler(self, format: str, handler: Any) -> None:
        """Register *handler* for *format*; the last registration wins.

        Raises:
            TypeError: If the handler lacks parse/serialize/validate.
        """
        self.registry.register(format, handler)
        if self.format == format.lower():
            # The loaded document now round-trips through the new handler
            self.handler = handler

    def subscribe(
        self, event: str, callback: Callable[[Any], None]
    ) -> Callable[[], None]:
        return self.events.subscribe(event, callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        self.events.unsubscribe(event, callback)

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group mutations into one notification.

        Events published inside the block are held back and delivered
        once, in order, as a single ``batchCompleted`` event when the
        outermost block exits.  Nested blocks join the outer one.
        Mutations are not rolled back on error: whatever was applied
        before the exception is still published, then the exception
        propagates.
        """
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                changes, self._pending = tuple(self._pending), []
                if changes:
                    logger.debug("Batch completed with %d events", len(changes))
                    self.events.publish(BATCH_COMPLETED, BatchCompleted(changes))

    @property
    def in_batch(self) -> bool:
        return self._batch_depth > 0

    def _notify(self, event: str, payload: Any) -> None:
        if self._batch_depth:
            self._pending.append((event, payload))
        else:
            self.events.publish(event, payload)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @property
    def is_loaded(self) -> bool:
        return self.root is not None

    def load_content(self, text: str, format: str | None = None) -> Node:
        """Parse *text* and make it the current document.

        The format is auto-detected when omitted.  Parsing happens before
        any state changes, so a failure leaves the previous document in
        place.

        Returns:
            The new root node.

        Raises:
            UnsupportedFormatError: No handler for the requested format, or
                nothing detected the content.
            ParseError: The text is malformed (propagated unchanged).
        """
        if format is None:
            match = self.registry.detect(text)
            if match is None:
                raise UnsupportedFormatError(None)
            format, handler = match.format, match.handler
        else:
            handler = self.registry.get(format)
            if handler is None:
                raise UnsupportedFormatError(format)
            format = format.lower()

        root = handler.parse(text)
        nodes, parents = self._index_tree(root)

        self.root = root
        self.format = format
        self.handler = handler
        self.source = text
        self.dirty = False
        self._nodes, self._parents = nodes, parents
        logger.debug(
            "Loaded %s document with %d nodes", format, len(self._nodes)
        )
        self._notify(CONTENT_LOADED, ContentLoaded(format, root))
        return root

    def replace_root(self, root: Node, source: str | None = None) -> None:
        """Swap in a freshly parsed tree for the current format.

        Used after a reparse of the source view.  The indexes are rebuilt
        once.  When *source* is given it becomes the cached source and the
        document is clean again.
        """
        self._require_document()
        nodes, parents = self._index_tree(root)
        self.root = root
        self._nodes, self._parents = nodes, parents
        if source is not None:
            self.source = source
            self.dirty = False
        logger.debug("Replaced root; %d nodes indexed", len(nodes))
        self._notify(CONTENT_LOADED, ContentLoaded(self.format, root))

    def clear(self) -> None:
        """Drop the current document."""
        self.root = None
        self.format = None
        self.handler = None
        self.source = None
        self.dirty = False
        self._nodes = {}
        self._parents = {}
        self._notify(CLEARED, Cleared())

    def _index_tree(
        self, root: Node
    ) -> tuple[dict[str, Node], dict[str, str | None]]:
        if not self._ids_usable(root):
            # Third-party handlers may leave ids blank or repeat them
            logger.debug("Handler ids missing or repeated; assigning path ids")
            assign_path_ids(root)
        nodes: dict[str, Node] = {root.id: root}
        parents: dict[str, str | None] = {root.id: None}
        stack = [root]
        while stack:
            node = stack.pop()
            for child in node.children:
                nodes[child.id] = child
                parents[child.id] = node.id
                stack.append(child)
        return nodes, parents

    @staticmethod
    def _ids_usable(root: Node) -> bool:
        seen_ids: set[str] = set()
        seen_nodes: set[int] = set()
        stack = [root]
        while stack:
            node = stack.pop()
            if id(node) in seen_nodes:
                raise HierarchySyncError(
                    f"Handler produced a cyclic tree at {node!r}"
                )
            seen_nodes.add(id(node))
            if not node.id or node.id in seen_ids:
                return False
            seen_ids.add(node.id)
            stack.extend(node.children)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_node(self, node_id: str) -> Node | None:
        """O(1) lookup; unknown ids return ``None``."""
        return self._nodes.get(node_id)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def get_parent(self, node_id: str) -> Node | None:
        """Parent of *node_id*, or ``None`` for the root.

        Raises:
            NotFoundError: If the id is unknown.
        """
        if node_id not in self._parents:
            raise NotFoundError(node_id)
        parent_id = self._parents[node_id]
        return None if parent_id is None else self._nodes[parent_id]

    def get_path(self, node_id: str) -> list[Node]:
        """Nodes from the root down to *node_id*, inclusive."""
        if node_id not in self._nodes:
            raise NotFoundError(node_id)
        path = []
        current: str | None = node_id
        while current is not None:
            path.append(self._nodes[current])
            current = self._parents[current]
        path.reverse()
        return path

    def find_by_path(self, path: str) -> Node | None:
        """Walk a dotted path of names and child indexes from the root.

        ``"meta.n"`` selects child ``n`` of child ``meta``; an all-digit
        segment such as the ``1`` in ``"tags.1"`` selects by position.
        ``""`` and ``"."`` are the root.  Returns ``None`` when nothing is
        loaded or any segment does not match.
        """
        if self.root is None or path is None:
            return None
        if path in ("", "."):
            return self.root
        current = self.root
        for part in path.split("."):
            if part.isascii() and part.isdigit():
                index = int(part)
                if index >= len(current.children):
                    return None
                current = current.children[index]
                continue
            for child in current.children:
                if child.name == part:
                    current = child
                    break
            else:
                return None
        return current

    def resolve(self, ref: str) -> Node | None:
        """Look *ref* up as a node id first, then as a dotted path."""
        node = self._nodes.get(ref)
        if node is None and isinstance(ref, str):
            node = self.find_by_path(ref)
        return node

    def iter_nodes(self) -> Iterator[Node]:
        """Depth-first, document order."""
        if self.root is None:
            return
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def update_node_value(self, node_id: str, value: Any) -> bool:
        """Set the value of a node.

        Returns:
            False when *value* equals the current value (nothing changes and
            no event is published), True otherwise.
        """
        node = self._require(node_id)
        old_value = node.value
        if _same(old_value, value):
            return False
        node.value = value
        if node.type == VALUE and "value_type" in node.metadata:
            node.metadata["value_type"] = value_type_of(value)
        self.dirty = True
        logger.debug("Updated value of %s", node_id)
        self._notify(NODE_UPDATED, NodeUpdated(node, old_value, value))
        return True

    def rename_node(self, node_id: str, name: str | None) -> bool:
        """Set the name (key, tag or heading text) of a node."""
        node = self._require(node_id)
        old_name = node.name
        if _same(old_name, name):
            return False
        node.name = name
        # A typed YAML key no longer applies once the key is renamed
        node.metadata.pop("key", None)
        self.dirty = True
        logger.debug("Renamed %s from %r to %r", node_id, old_name, name)
        self._notify(NODE_RENAMED, NodeRenamed(node, old_name, name))
        return True

    def add_node(
        self,
        parent_id: str,
        spec: NodeSpec | Node,
        position: int | None = None,
    ) -> Node:
        """Insert a new subtree under *parent_id*.

        *spec* is a ``NodeSpec`` or an existing ``Node`` (which is copied).
        Every node in the inserted subtree gets a fresh id.  *position* is
        clamped to the parent's child list; ``None`` appends.

        Returns:
            The inserted node.
        """
        parent = self._require(parent_id)
        if isinstance(spec, NodeSpec):
            node = spec.build()
        elif isinstance(spec, Node):
            node = spec.clone()
        else:
            raise TypeError(
                f"Expected NodeSpec or Node, got {type(spec).__name__}"
            )
        index = self._insert(parent, node, position)
        self._notify(NODE_ADDED, NodeAdded(parent, node, index))
        return node

    def duplicate_node(self, node_id: str) -> Node:
        """Insert a deep copy of a node right after the original."""
        node = self._require(node_id)
        parent = self.get_parent(node_id)
        if parent is None:
            raise ValueError("The root node cannot be duplicated")
        copy = node.clone()
        index = self._insert(parent, copy, self._child_index(parent, node) + 1)
        self._notify(NODE_ADDED, NodeAdded(parent, copy, index))
        return copy

    def delete_node(self, node_id: str) -> Node:
        """Remove a node and its descendants.

        Returns:
            The detached node.

        Raises:
            NotFoundError: If the id is unknown.
            ValueError: If *node_id* is the root.
        """
        node = self._require(node_id)
        parent = self.get_parent(node_id)
        if parent is None:
            raise ValueError("The root node cannot be deleted")
        index = self._child_index(parent, node)
        del parent.children[index]
        removed = set()
        for child in node.depth_first():
            self._nodes.pop(child.id, None)
            self._parents.pop(child.id, None)
            removed.add(child.id)
        self.dirty = True
        logger.debug("Deleted %s (%d nodes)", node_id, len(removed))
        self._notify(
            NODE_DELETED, NodeDeleted(parent, node, index, frozenset(removed))
        )
        return node

    def move_node(
        self,
        node_id: str,
        new_parent_id: str,
        position: int | None = None,
    ) -> Node:
        """Move a node to *new_parent_id*, keeping its id.

        *position* is the index among the new parent's children once the
        node has been detached; ``None`` appends.

        Raises:
            NotFoundError: If either id is unknown.
            ValueError: Moving the root, or moving a node under itself or
                one of its descendants.
        """
        node = self._require(node_id)
        new_parent = self._require(new_parent_id)
        old_parent = self.get_parent(node_id)
        if old_parent is None:
            raise ValueError("The root node cannot be moved")
        for ancestor in self.get_path(new_parent_id):
            if ancestor is node:
                raise ValueError(
                    f"Cannot move {node_id} under itself or its descendant"
                )

        old_index = self._child_index(old_parent, node)
        del old_parent.children[old_index]
        siblings = new_parent.children
        index = len(siblings) if position is None else position
        index = max(0, min(index, len(siblings)))
        siblings.insert(index, node)
        if new_parent is old_parent and index == old_index:
            return node
        self._parents[node.id] = new_parent.id
        self.dirty = True
        logger.debug("Moved %s to %s[%d]", node_id, new_parent_id, index)
        self._notify(
            NODE_MOVED, NodeMoved(node, old_parent, new_parent, index)
        )
        return node

    def _insert(self, parent: Node, node: Node, position: int | None) -> int:
        siblings = parent.children
        index = len(siblings) if position is None else position
        index = max(0, min(index, len(siblings)))
        siblings.insert(index, node)
        stack = [(node, parent.id)]
        while stack:
            current, parent_id = stack.pop()
            current.id = self._allocate_id()
            self._nodes[current.id] = current
            self._parents[current.id] = parent_id
            stack.extend((child, current.id) for child in current.children)
        self.dirty = True
        logger.debug("Inserted %s under %s[%d]", node.id, parent.id, index)
        return index

    def _allocate_id(self) -> str:
        while True:
            self._next_id += 1
            candidate = f"node-{self._next_id}"
            if candidate not in self._nodes:
                return candidate

    @staticmethod
    def _child_index(parent: Node, node: Node) -> int:
        for index, child in enumerate(parent.children):
            if child is node:
                return index
        raise HierarchySyncError(
            f"Index out of sync: {node.id} is not a child of {parent.id}"
        )

    def _require(self, node_id: str) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NotFoundError(node_id)
        return node

    def _require_document(self) -> None:
        if self.root is None or self.handler is None:
            raise HierarchySyncError("No document is loaded")

    # ------------------------------------------------------------------
    # Source
    # ------------------------------------------------------------------

    def serialize(self) -> str:
        """Serialize the tree with the active handler, publishing nothing.

        Raises:
            SerializationError: If the tree cannot be represented.
        """
        self._require_document()
        return self.handler.serialize(self.root)

    def sync_source(self) -> str:
        """Serialize, cache the text, clear dirty and publish it."""
        text = self.serialize()
        self.source = text
        self.dirty = False
        self._notify(SOURCE_UPDATED, SourceUpdated(text))
        return text

    def validate(self, content: str | None = None) -> ValidationResult:
        """Validate *content* (or the cached source) with the active handler."""
        self._require_document()
        if content is None:
            content = self.source or ""
        return self.handler.validate(content)
