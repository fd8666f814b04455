"""YAML format handler.

Produces the same node shapes as the JSON handler (``object``, ``array``,
``value``).  Loading and dumping go through PyYAML's safe loader and
dumper.  Non-string mapping keys keep their original value in
``metadata['key']`` so they serialize back with the same type.

``validate()`` is syntax-only: it walks the parser event stream and does
not construct Python objects, so deeper problems (multiple documents,
unhashable keys, recursive aliases) surface as ``ParseError`` from
``parse()`` instead.
"""

from __future__ import annotations

from typing import Any

import yaml

from ..dom import ARRAY, OBJECT, VALUE, Node, assign_path_ids, value_type_of
from ..errors import SerializationError
from ..models import ValidationResult
from .base import BaseHandler, CycleGuard


def _mark_position(exc: yaml.YAMLError) -> tuple[int | None, int | None]:
    mark = getattr(exc, "problem_mark", None) or getattr(
        exc, "context_mark", None
    )
    if mark is None:
        return None, None
    return mark.line + 1, mark.column + 1


def _reason(exc: yaml.YAMLError) -> str:
    problem = getattr(exc, "problem", None)
    context = getattr(exc, "context", None)
    if problem and context:
        return f"{context}, {problem}"
    return problem or str(exc).splitlines()[0]


class YamlHandler(BaseHandler):
    """YAML parser and serializer."""

    name = "yaml"
    extensions = (".yaml", ".yml")
    mime_types = ("application/yaml", "application/x-yaml", "text/yaml")

    def __init__(self, indent: int = 2) -> None:
        self.indent = indent

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def parse(self, content: str) -> Node:
        """Parse a single YAML document into tree of nodes."""
        content = self._require_text(content)
        try:
            data = yaml.safe_load(content)
            root = self._build(data, None, set())
        except yaml.YAMLError as exc:
            line, column = _mark_position(exc)
            raise self._error(_reason(exc), line, column) from exc
        except RecursionError as exc:
            raise self._error("Document is nested too deeply") from exc
        return assign_path_ids(root)

    def _build(self, data: Any, name: Any, active: set[int]) -> Node:
        if isinstance(data, (dict, list)):
            # Recursive aliases produce self-referencing containers
            if id(data) in active:
                raise self._error("Recursive aliases are not supported")
            active.add(id(data))
            try:
                node = self._container(data, active)
            finally:
                active.discard(id(data))
        else:
            node = Node(
                type=VALUE,
                value=data,
                metadata={"value_type": value_type_of(data)},
            )
        if name is not None and not isinstance(name, str):
            node.metadata["key"] = name
            node.name = str(name)
        else:
            node.name = name
        return node

    def _container(self, data: dict | list, active: set[int]) -> Node:
        if isinstance(data, dict):
            node = Node(type=OBJECT)
            for key, value in data.items():
                # A null key is still a key; keep it typed
                child = self._build(value, key, active)
                if key is None:
                    child.name = "null"
                    child.metadata["key"] = None
                node.add_child(child)
            return node
        node = Node(type=ARRAY)
        for item in data:
            node.add_child(self._build(item, None, active))
        return node

    # ------------------------------------------------------------------
    # Serialize
    # ------------------------------------------------------------------

    def serialize(self, node: Node) -> str:
        """Serialize tree to block-style YAML."""
        if node is None:
            raise SerializationError("Node is required for serialization")
        data = self._to_python(node, CycleGuard())
        try:
            return yaml.safe_dump(
                data,
                sort_keys=False,
                allow_unicode=True,
                default_flow_style=False,
                indent=self.indent,
            )
        except yaml.YAMLError as exc:
            raise SerializationError(f"Cannot represent value: {exc}") from exc

    def _to_python(self, node: Node, guard: CycleGuard) -> Any:
        if not guard.enter(node):
            raise SerializationError(
                f"Circular reference detected at node {node.id or node.name!r}"
            )
        try:
            if node.type == OBJECT:
                mapping: dict[Any, Any] = {}
                for child in node.children:
                    key = self._key(child)
                    if key in mapping:
                        raise SerializationError(
                            f"Duplicate mapping key {key!r} in node {node.id!r}"
                        )
                    mapping[key] = self._to_python(child, guard)
                return mapping
            if node.type == ARRAY:
                return [self._to_python(child, guard) for child in node.children]
            if node.type == VALUE:
                return node.value
            raise SerializationError(
                f"Cannot serialize node type {node.type!r} as YAML"
            )
        finally:
            guard.leave(node)

    @staticmethod
    def _key(child: Node) -> Any:
        metadata = child.metadata or {}
        if "key" in metadata:
            return metadata["key"]
        if child.name is None:
            raise SerializationError(
                f"Mapping entry {child.id!r} has no key"
            )
        return child.name

    # ------------------------------------------------------------------
    # Validation / detection
    # ------------------------------------------------------------------

    def validate(self, content: str) -> ValidationResult:
        """Syntax-only check over the parser event stream."""
        if not isinstance(content, str):
            return ValidationResult.failed("Content must be a string")
        try:
            for _event in yaml.parse(content, Loader=yaml.SafeLoader):
                pass
        except yaml.YAMLError as exc:
            line, column = _mark_position(exc)
            return ValidationResult.failed(_reason(exc), line, column)
        return ValidationResult.ok()

    def detect(self, content: str) -> float:
        if not isinstance(content, str) or not content.strip():
            return 0.0
        try:
            data = yaml.safe_load(content)
        except (yaml.YAMLError, RecursionError):
            return 0.0
        if isinstance(data, (dict, list)):
            return 0.6
        return 0.0
