"""JSON format handler.

Objects become ``object`` nodes whose children are named by key, in
document order (duplicate keys are kept, in order).  Arrays become
``array`` nodes with unnamed children.  Scalars become ``value`` nodes
tagged with ``metadata['value_type']``.

Serialization is done by hand rather than through ``json.dumps`` on a
rebuilt dict so duplicate keys and member order survive, and so a cycle
is detected before any output exists.
"""

from __future__ import annotations

import json
import math
from typing import Any

from ..dom import ARRAY, OBJECT, VALUE, Node, assign_path_ids, value_type_of
from ..errors import SerializationError
from .base import BaseHandler, CycleGuard


class _Pairs(list):
    """Marker for decoded JSON objects (list of key/value pairs)."""


class _ConstantError(ValueError):
    pass


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are Python extensions, not JSON
    raise _ConstantError(f"Unsupported constant {name}")


def _parse_float(text: str) -> float:
    value = float(text)
    if math.isinf(value):
        # 1e400 overflows to inf, which cannot be written back
        raise _ConstantError(f"Number {text} is out of range")
    return value


class JsonHandler(BaseHandler):
    """JSON parser and serializer."""

    name = "json"
    extensions = (".json",)
    mime_types = ("application/json", "text/json")

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent
        self._decoder = json.JSONDecoder(
            object_pairs_hook=_Pairs,
            parse_constant=_reject_constant,
            parse_float=_parse_float,
        )

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def parse(self, content: str) -> Node:
        """Parse JSON into tree of nodes."""
        content = self._require_text(content)
        if not content.strip():
            raise self._error("Content is empty")
        try:
            data = self._decoder.decode(content)
            root = self._build(data, None)
        except json.JSONDecodeError as exc:
            raise self._error(exc.msg, exc.lineno, exc.colno) from exc
        except RecursionError as exc:
            raise self._error("Document is nested too deeply") from exc
        except ValueError as exc:
            # Out-of-range numbers and over-long integer literals
            raise self._error(str(exc)) from exc
        return assign_path_ids(root)

    def _build(self, data: Any, name: str | None) -> Node:
        if isinstance(data, _Pairs):
            node = Node(type=OBJECT, name=name)
            for key, value in data:
                node.add_child(self._build(value, key))
            return node
        if isinstance(data, list):
            node = Node(type=ARRAY, name=name)
            for item in data:
                node.add_child(self._build(item, None))
            return node
        return Node(
            type=VALUE,
            name=name,
            value=data,
            metadata={"value_type": value_type_of(data)},
        )

    # ------------------------------------------------------------------
    # Serialize
    # ------------------------------------------------------------------

    def serialize(self, node: Node) -> str:
        """Serialize tree to JSON text."""
        if node is None:
            raise SerializationError("Node is required for serialization")
        parts: list[str] = []
        self._emit(node, 0, parts, CycleGuard())
        return "".join(parts)

    def _emit(
        self, node: Node, depth: int, out: list[str], guard: CycleGuard
    ) -> None:
        if not guard.enter(node):
            raise SerializationError(
                f"Circular reference detected at node {node.id or node.name!r}"
            )
        try:
            if node.type == OBJECT:
                self._emit_container(node, depth, out, guard, "{", "}", True)
            elif node.type == ARRAY:
                self._emit_container(node, depth, out, guard, "[", "]", False)
            elif node.type == VALUE:
                out.append(self._scalar(node))
            else:
                raise SerializationError(
                    f"Cannot serialize node type {node.type!r} as JSON"
                )
        finally:
            guard.leave(node)

    def _emit_container(
        self,
        node: Node,
        depth: int,
        out: list[str],
        guard: CycleGuard,
        open_: str,
        close: str,
        keyed: bool,
    ) -> None:
        if not node.children:
            out.append(open_ + close)
            return
        pad = " " * (self.indent * (depth + 1))
        out.append(open_)
        for index, child in enumerate(node.children):
            out.append("\n" + pad if self.indent else "")
            if keyed:
                if child.name is None:
                    raise SerializationError(
                        f"Object member {child.id!r} has no key"
                    )
                out.append(json.dumps(str(child.name), ensure_ascii=False))
                out.append(": ")
            self._emit(child, depth + 1, out, guard)
            if index < len(node.children) - 1:
                out.append("," if self.indent else ", ")
        if self.indent:
            out.append("\n" + " " * (self.indent * depth))
        out.append(close)

    def _scalar(self, node: Node) -> str:
        value = node.value
        if value is None or isinstance(value, (bool, int, str)):
            return json.dumps(value, ensure_ascii=False)
        if isinstance(value, float):
            if math.isnan(value) or math.isinf(value):
                raise SerializationError(
                    f"Value {value!r} of node {node.id!r} is not valid JSON"
                )
            return json.dumps(value)
        raise SerializationError(
            f"Value of type {type(value).__name__} in node {node.id!r} "
            "is not JSON serializable"
        )

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, content: str) -> float:
        if not isinstance(content, str):
            return 0.0
        trimmed = content.strip()
        if not trimmed:
            return 0.0
        try:
            self._decoder.decode(trimmed)
        except (ValueError, RecursionError):
            return 0.0
        if trimmed[0] in "{[":
            return 1.0
        return 0.3
