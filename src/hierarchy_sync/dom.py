"""Canonical tree representation shared by every format handler.

A document is a tree of :class:`Node` objects.  Handlers build trees on
parse and walk them on serialize; :class:`~hierarchy_sync.model.HierarchyModel`
owns the live tree and the id/parent index around it.

Nodes do not hold a reference to their parent.  Parent lookup is the
model's job (an ``id -> parent id`` index), so the node graph never
contains back-edges.

Ids assigned during parse are derived from the node's position
(``root``, ``root/0``, ``root/0/2``).  Reparsing an unchanged structure
therefore reproduces the same ids.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

ROOT_ID = "root"

# Node types used across handlers
OBJECT = "object"
ARRAY = "array"
VALUE = "value"
ELEMENT = "element"
TEXT = "text"
CDATA = "cdata"
COMMENT = "comment"
PROCESSING_INSTRUCTION = "processing_instruction"
DOCUMENT = "document"
HEADING = "heading"
CONTENT = "content"


@dataclass
class Node:
    """A node in the canonical tree."""

    type: str
    name: str | None = None
    value: Any = None
    children: list[Node] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str = ""

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def depth_first(self) -> Iterator[Node]:
        """Traverse tree depth-first, yielding self then children."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def add_child(self, child: Node) -> Node:
        """Add a child node and return it for chaining."""
        self.children.append(child)
        return child

    def clone(self) -> Node:
        """Deep copy of the subtree, ids cleared."""
        return Node(
            type=self.type,
            name=self.name,
            value=copy.deepcopy(self.value),
            children=[child.clone() for child in self.children],
            metadata=copy.deepcopy(self.metadata),
        )

    def __repr__(self) -> str:
        return f"Node({self.type}:{self.name!r}:{self.id})"


@dataclass
class NodeSpec:
    """Description of a node to create through ``HierarchyModel.add_node``."""

    type: str = VALUE
    name: str | None = None
    value: Any = None
    metadata: dict[str, Any] = field(default_factory=dict)
    children: list[NodeSpec] = field(default_factory=list)

    def build(self) -> Node:
        return Node(
            type=self.type,
            name=self.name,
            value=copy.deepcopy(self.value),
            children=[child.build() for child in self.children],
            metadata=copy.deepcopy(self.metadata),
        )


def assign_path_ids(root: Node, root_id: str = ROOT_ID) -> Node:
    """Assign position-derived ids to every node under *root*.

    Iterative so deep documents do not hit the recursion limit.
    """
    root.id = root_id
    stack = [root]
    while stack:
        node = stack.pop()
        for index, child in enumerate(node.children):
            child.id = f"{node.id}/{index}"
            stack.append(child)
    return root


def structure_of(node: Node) -> tuple:
    """Return an id-free, hashable-ish fingerprint of the subtree.

    Two trees are structurally equal when their fingerprints compare
    equal: same type, name, value, metadata and child order.
    """
    return (
        node.type,
        node.name,
        node.value,
        _freeze(node.metadata),
        tuple(structure_of(child) for child in node.children),
    )


def structurally_equal(a: Node | None, b: Node | None) -> bool:
    """Compare two trees ignoring node ids."""
    if a is None or b is None:
        return a is b
    return structure_of(a) == structure_of(b)


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return tuple((k, _freeze(v)) for k, v in value.items())
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def value_type_of(value: Any) -> str:
    """Name the scalar kind of *value* for ``metadata['value_type']``."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__
