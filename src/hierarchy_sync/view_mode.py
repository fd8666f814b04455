"""Coordinate the tree and source views of one document.

Exactly one view accepts edits at a time.  In tree mode the model is
mutated directly and the source buffer is a frozen snapshot; in source mode
the buffer is edited and the tree is frozen until the text is validated and
reparsed on the way back.

Transitions are coroutines so a streaming serializer can be slotted in
later without changing callers; today they complete without awaiting.
A refused transition leaves the mode, the buffer and the tree untouched
and reports why in the returned ``SwitchResult``.

UI state (expanded ids, selected id, theme) is keyed by node id.  Ids are
path-derived on parse, so state survives a round trip through source
mode as long as the structure around a node did not change.
"""

from __future__ import annotations

import logging
from typing import Any

from .dom import Node, NodeSpec
from .errors import ModeError, NotFoundError, ParseError, UnsupportedFormatError
from .events import (
    BATCH_COMPLETED,
    CLEARED,
    CONTENT_LOADED,
    EDIT_CANCELLED,
    EDIT_STARTED,
    MODE_CHANGE,
    NODE_DELETED,
    PARSE_ERROR,
    SOURCE_CHANGED,
    BatchCompleted,
    EditCancelled,
    EditStarted,
    ModeChange,
    NodeDeleted,
    ParseErrorEvent,
    SourceChanged,
)
from .expansion import ExpansionState
from .model import HierarchyModel
from .models import SwitchResult, ValidationIssue, ViewMode

logger = logging.getLogger(__name__)


class ViewModeManager:
    """Two-state (tree/source) controller over a ``HierarchyModel``."""

    def __init__(
        self,
        model: HierarchyModel,
        initial_mode: ViewMode | str = ViewMode.TREE,
        theme: str = "light",
        default_format: str | None = None,
    ) -> None:
        self.model = model
        self.events = model.events
        self.theme = theme
        self.default_format = default_format
        self.expansion = ExpansionState()
        self._mode = ViewMode(initial_mode)
        self._source_text = model.source or ""
        # Text produced by the last tree -> source switch
        self._snapshot_text: str | None = None
        self._selected_id: str | None = None
        self._editing_id: str | None = None
        self._edit_draft: Any = None
        self._unsubscribers = [
            self.events.subscribe(CONTENT_LOADED, self._on_content_loaded),
            self.events.subscribe(NODE_DELETED, self._on_node_deleted),
            self.events.subscribe(CLEARED, self._on_cleared),
            self.events.subscribe(BATCH_COMPLETED, self._on_batch_completed),
        ]

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ViewMode:
        return self._mode

    @property
    def format(self) -> str | None:
        return self.model.format or self.default_format

    @property
    def source_text(self) -> str:
        """The source buffer (a frozen snapshot while in tree mode)."""
        return self._source_text

    def set_source_text(self, text: str) -> None:
        """Replace the source buffer.

        Raises:
            ModeError: Outside source mode.
        """
        if self._mode is not ViewMode.SOURCE:
            raise ModeError("The source buffer can only be edited in source mode")
        if not isinstance(text, str):
            raise TypeError("Source text must be a string")
        old = self._source_text
        if old == text:
            return
        self._source_text = text
        self.events.publish(SOURCE_CHANGED, SourceChanged(old, text))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def switch_to_source(self) -> SwitchResult:
        """Serialize the tree into the source buffer and enter source mode."""
        if self._mode is ViewMode.SOURCE:
            return SwitchResult(success=True, mode=self._mode)
        self.cancel_edit()
        if self.model.is_loaded:
            try:
                text = self.model.sync_source()
            except Exception as exc:
                # Any handler failure refuses the switch; nothing changed yet
                logger.warning("Cannot switch to source view: %s", exc)
                return SwitchResult(
                    success=False, mode=self._mode, error=str(exc)
                )
        else:
            text = ""
        self._source_text = text
        self._snapshot_text = text
        self._set_mode(ViewMode.SOURCE)
        return SwitchResult(success=True, mode=self._mode)

    async def switch_to_tree(self) -> SwitchResult:
        """Validate and reparse the buffer, then enter tree mode."""
        if self._mode is ViewMode.TREE:
            return SwitchResult(success=True, mode=self._mode)
        text = self._source_text
        expanded = self.expansion.snapshot()
        selected = self._selected_id

        if not self.model.is_loaded:
            if text.strip():
                try:
                    self.model.load_content(text, self.default_format)
                except (ParseError, UnsupportedFormatError) as exc:
                    return self._refuse(text, [_issue_from(exc)])
        elif text != self._snapshot_text:
            result = self.model.validate(text)
            if not result.valid:
                return self._refuse(text, result.errors)
            try:
                root = self.model.handler.parse(text)
            except ParseError as exc:
                return self._refuse(text, [_issue_from(exc)])
            self.model.replace_root(root, source=text)
        # An untouched buffer keeps the current tree and every id in it

        self.expansion.restore(expanded, existing=self.model)
        self._selected_id = selected if selected in self.model else None
        self._snapshot_text = None
        self._set_mode(ViewMode.TREE)
        return SwitchResult(success=True, mode=self._mode)

    async def toggle_mode(self) -> SwitchResult:
        if self._mode is ViewMode.TREE:
            return await self.switch_to_source()
        return await self.switch_to_tree()

    def _refuse(
        self, text: str, errors: list[ValidationIssue]
    ) -> SwitchResult:
        errors = list(errors)
        message = "; ".join(str(issue) for issue in errors) or "Invalid source"
        logger.warning("Cannot switch to tree view: %s", message)
        self.events.publish(
            PARSE_ERROR, ParseErrorEvent(text, errors, self.format)
        )
        return SwitchResult(
            success=False, mode=self._mode, error=message, errors=errors
        )

    def _set_mode(self, mode: ViewMode) -> None:
        old = self._mode
        self._mode = mode
        logger.debug("View mode %s -> %s", old.value, mode.value)
        self.events.publish(MODE_CHANGE, ModeChange(old, mode, self.format))

    # ------------------------------------------------------------------
    # Inline editing
    # ------------------------------------------------------------------

    @property
    def editing_node_id(self) -> str | None:
        return self._editing_id

    def start_edit(self, ref: str) -> None:
        """Begin an inline edit, cancelling any edit already pending.

        *ref* is a node id or a dotted path, as for ``select``.
        """
        self._require_tree()
        node = self._require_node(ref)
        self.cancel_edit()
        self._editing_id = node.id
        self._edit_draft = node.value
        self.events.publish(EDIT_STARTED, EditStarted(node.id))

    def set_edit_draft(self, value: Any) -> None:
        """Record the uncommitted value of the pending edit."""
        if self._editing_id is None:
            raise ModeError("No inline edit in progress")
        self._edit_draft = value

    def commit_edit(self, value: Any) -> bool:
        """Write *value* to the node being edited and end the edit."""
        if self._editing_id is None:
            raise ModeError("No inline edit in progress")
        node_id = self._editing_id
        self._editing_id = None
        self._edit_draft = None
        return self.model.update_node_value(node_id, value)

    def cancel_edit(self) -> bool:
        """Discard the pending edit; returns False when there was none."""
        if self._editing_id is None:
            return False
        node_id, draft = self._editing_id, self._edit_draft
        self._editing_id = None
        self._edit_draft = None
        logger.debug("Cancelled inline edit of %s", node_id)
        self.events.publish(EDIT_CANCELLED, EditCancelled(node_id, draft))
        return True

    # ------------------------------------------------------------------
    # Tree mutations (tree mode only)
    # ------------------------------------------------------------------

    def update_node_value(self, node_id: str, value: Any) -> bool:
        self._require_tree()
        return self.model.update_node_value(node_id, value)

    def rename_node(self, node_id: str, name: str | None) -> bool:
        self._require_tree()
        return self.model.rename_node(node_id, name)

    def add_node(
        self,
        parent_id: str,
        spec: NodeSpec | Node,
        position: int | None = None,
    ) -> Node:
        self._require_tree()
        return self.model.add_node(parent_id, spec, position)

    def delete_node(self, node_id: str) -> Node:
        self._require_tree()
        return self.model.delete_node(node_id)

    def move_node(
        self, node_id: str, new_parent_id: str, position: int | None = None
    ) -> Node:
        self._require_tree()
        return self.model.move_node(node_id, new_parent_id, position)

    def duplicate_node(self, node_id: str) -> Node:
        self._require_tree()
        return self.model.duplicate_node(node_id)

    # ------------------------------------------------------------------
    # Expansion and selection
    # ------------------------------------------------------------------

    @property
    def expanded_ids(self) -> frozenset[str]:
        return self.expansion.snapshot()

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    def expand(self, ref: str) -> bool:
        return self.expansion.expand(self._require_node(ref).id)

    def collapse(self, ref: str) -> bool:
        node = self.model.resolve(ref)
        if node is None:
            return self.expansion.collapse(ref)
        return self.expansion.collapse(node.id, node)

    def toggle(self, ref: str) -> bool:
        node = self._require_node(ref)
        return self.expansion.toggle(node.id, node)

    def expand_all(self, max_depth: float | None = None) -> None:
        if self.model.root is None:
            return
        if max_depth is None:
            self.expansion.expand_all(self.model.root)
        else:
            self.expansion.expand_all(self.model.root, max_depth)

    def collapse_all(self) -> None:
        self.expansion.collapse_all()

    def select(self, ref: str | None) -> None:
        """Select a node by id or by dotted path (``"tags.0"``); ``None`` clears."""
        self._selected_id = None if ref is None else self._require_node(ref).id

    # ------------------------------------------------------------------
    # Model notifications
    # ------------------------------------------------------------------

    def _on_content_loaded(self, event) -> None:
        if self._mode is ViewMode.SOURCE:
            self._source_text = self.model.source or ""
            self._snapshot_text = self._source_text

    def _on_node_deleted(self, event: NodeDeleted) -> None:
        removed = event.removed_ids
        if self._editing_id in removed:
            self.cancel_edit()
        if self._selected_id in removed:
            self._selected_id = None
        for node_id in removed:
            self.expansion.collapse(node_id)

    def _on_cleared(self, event) -> None:
        self.cancel_edit()
        self._selected_id = None
        self.expansion.collapse_all()
        self._source_text = ""
        self._snapshot_text = None

    def _on_batch_completed(self, event: BatchCompleted) -> None:
        handlers = {
            CONTENT_LOADED: self._on_content_loaded,
            NODE_DELETED: self._on_node_deleted,
            CLEARED: self._on_cleared,
        }
        for name, payload in event.changes:
            handler = handlers.get(name)
            if handler is not None:
                handler(payload)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def destroy(self) -> None:
        """Drop UI state and every subscriber on the shared event bus."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._editing_id = None
        self._edit_draft = None
        self._selected_id = None
        self.expansion.collapse_all()
        self._source_text = ""
        self._snapshot_text = None
        self.events.clear()

    def _require_tree(self) -> None:
        if self._mode is not ViewMode.TREE:
            raise ModeError("The tree can only be edited in tree mode")

    def _require_node(self, ref: str) -> Node:
        node = self.model.resolve(ref)
        if node is None:
            raise NotFoundError(ref)
        return node


def _issue_from(exc: Exception) -> ValidationIssue:
    if isinstance(exc, ParseError):
        return ValidationIssue(
            message=exc.reason, line=exc.line, column=exc.column
        )
    return ValidationIssue(message=str(exc))
