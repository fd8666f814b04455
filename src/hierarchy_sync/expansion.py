"""Expanded/collapsed state for tree views, keyed by node id.

Ids from a reparse of unchanged structure are the same as before (they
are path-derived), so a snapshot taken before a mode switch can be
restored afterwards; ids that no longer exist are dropped silently.
"""

from __future__ import annotations

import math
from collections.abc import Container, Iterable

from .dom import Node


class ExpansionState:
    """Set of expanded node ids with bulk operations."""

    def __init__(self, initial: Iterable[str] = ()) -> None:
        self._expanded: set[str] = set(initial)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._expanded

    def __len__(self) -> int:
        return len(self._expanded)

    def is_expanded(self, node_id: str) -> bool:
        return node_id in self._expanded

    def expand(self, node_id: str) -> bool:
        """Mark *node_id* expanded; returns False if it already was."""
        if node_id in self._expanded:
            return False
        self._expanded.add(node_id)
        return True

    def collapse(self, node_id: str, node: Node | None = None) -> bool:
        """Mark *node_id* collapsed.

        When the node itself is given, its descendants are collapsed too,
        so re-expanding it shows a folded subtree.
        """
        changed = node_id in self._expanded
        self._expanded.discard(node_id)
        if node is not None:
            for descendant in node.depth_first():
                if descendant.id in self._expanded:
                    self._expanded.discard(descendant.id)
                    changed = True
        return changed

    def toggle(self, node_id: str, node: Node | None = None) -> bool:
        """Flip the state of *node_id*; returns the new state."""
        if node_id in self._expanded:
            self.collapse(node_id, node)
            return False
        self._expanded.add(node_id)
        return True

    def expand_all(self, root: Node, max_depth: float = math.inf) -> None:
        """Expand every node with children, down to *max_depth* levels."""
        stack = [(root, 0)]
        while stack:
            node, depth = stack.pop()
            if depth >= max_depth or not node.children:
                continue
            self._expanded.add(node.id)
            stack.extend((child, depth + 1) for child in node.children)

    def expand_to_depth(self, root: Node, depth: int) -> None:
        """Collapse everything, then expand the top *depth* levels."""
        if depth < 0:
            return
        self._expanded.clear()
        self.expand_all(root, depth)

    def collapse_all(self) -> None:
        self._expanded.clear()

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._expanded)

    def restore(
        self,
        ids: Iterable[str],
        existing: Container[str] | None = None,
    ) -> None:
        """Replace the state with *ids*, keeping only ids in *existing*."""
        if existing is None:
            self._expanded = set(ids)
        else:
            self._expanded = {node_id for node_id in ids if node_id in existing}
