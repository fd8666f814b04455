"""Event payloads and the observer channel used by the core.

``EventBus`` is a plain observer list keyed by event name.  Publication is
synchronous and in subscription order.  A failing subscriber is logged and
skipped so one broken consumer cannot stop the others or unwind the
mutation that published the event.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .dom import Node
from .models import ValidationIssue, ViewMode

logger = logging.getLogger(__name__)

# Event names
CONTENT_LOADED = "contentLoaded"
NODE_UPDATED = "nodeUpdated"
NODE_RENAMED = "nodeRenamed"
NODE_ADDED = "nodeAdded"
NODE_DELETED = "nodeDeleted"
NODE_MOVED = "nodeMoved"
SOURCE_UPDATED = "sourceUpdated"
CLEARED = "cleared"
MODE_CHANGE = "modeChange"
PARSE_ERROR = "parseError"
SOURCE_CHANGED = "sourceChanged"
EDIT_STARTED = "editStarted"
EDIT_CANCELLED = "editCancelled"
BATCH_COMPLETED = "batchCompleted"

ALL_EVENTS = frozenset(
    {
        CONTENT_LOADED,
        NODE_UPDATED,
        NODE_RENAMED,
        NODE_ADDED,
        NODE_DELETED,
        NODE_MOVED,
        SOURCE_UPDATED,
        CLEARED,
        MODE_CHANGE,
        PARSE_ERROR,
        SOURCE_CHANGED,
        EDIT_STARTED,
        EDIT_CANCELLED,
        BATCH_COMPLETED,
    }
)


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentLoaded:
    format: str
    root: Node


@dataclass(frozen=True)
class NodeUpdated:
    node: Node
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class NodeRenamed:
    node: Node
    old_name: str | None
    new_name: str | None


@dataclass(frozen=True)
class NodeAdded:
    parent: Node
    node: Node
    index: int


@dataclass(frozen=True)
class NodeDeleted:
    parent: Node
    node: Node
    index: int
    removed_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class NodeMoved:
    node: Node
    old_parent: Node
    new_parent: Node
    position: int


@dataclass(frozen=True)
class SourceUpdated:
    source: str


@dataclass(frozen=True)
class Cleared:
    pass


@dataclass(frozen=True)
class ModeChange:
    from_mode: ViewMode
    to_mode: ViewMode
    format: str | None


@dataclass(frozen=True)
class ParseErrorEvent:
    content: str
    errors: list[ValidationIssue] = field(default_factory=list)
    format: str | None = None


@dataclass(frozen=True)
class SourceChanged:
    old_source: str
    new_source: str


@dataclass(frozen=True)
class EditStarted:
    node_id: str


@dataclass(frozen=True)
class EditCancelled:
    node_id: str
    discarded_value: Any = None


@dataclass(frozen=True)
class BatchCompleted:
    """Events held back during ``HierarchyModel.batch()``, in order."""

    changes: tuple[tuple[str, Any], ...] = ()


# ---------------------------------------------------------------------------
# Observer channel
# ---------------------------------------------------------------------------


Callback = Callable[[Any], None]


class EventBus:
    """Observer list keyed by event name."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callback]] = {}

    def subscribe(self, event: str, callback: Callback) -> Callable[[], None]:
        """Register *callback* for *event*.

        Returns:
            A zero-argument function that removes the subscription.
        """
        if event not in ALL_EVENTS:
            raise ValueError(f"Unknown event: {event}")
        self._subscribers.setdefault(event, []).append(callback)
        return lambda: self.unsubscribe(event, callback)

    def unsubscribe(self, event: str, callback: Callback) -> None:
        callbacks = self._subscribers.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def publish(self, event: str, payload: Any) -> None:
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", event)

    def clear(self) -> None:
        self._subscribers.clear()

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))
