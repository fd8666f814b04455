"""Plain text handler: one ``text`` node per line under a ``document`` root."""

from __future__ import annotations

from ..dom import DOCUMENT, TEXT, Node, assign_path_ids
from ..errors import SerializationError
from ..models import ValidationResult
from .base import BaseHandler


class TextHandler(BaseHandler):
    """Line-oriented fallback handler."""

    name = "text"
    extensions = (".txt", ".text")
    mime_types = ("text/plain",)

    def parse(self, content: str) -> Node:
        content = self._require_text(content)
        root = Node(type=DOCUMENT)
        if content:
            for line in content.split("\n"):
                root.add_child(Node(type=TEXT, value=line))
        return assign_path_ids(root)

    def serialize(self, node: Node) -> str:
        if node is None:
            raise SerializationError("Node is required for serialization")
        if node.type == TEXT:
            return _line(node)
        lines = []
        for child in node.children:
            # Lines are leaves, so a document cannot nest and cannot cycle
            if child.type != TEXT:
                raise SerializationError(
                    f"Text documents hold only text lines, got {child!r}"
                )
            lines.append(_line(child))
        return "\n".join(lines)

    def validate(self, content: str) -> ValidationResult:
        if not isinstance(content, str):
            return ValidationResult.failed("Content must be a string")
        return ValidationResult.ok()

    def detect(self, content: str) -> float:
        # Catch-all: anything non-empty is at least text
        if isinstance(content, str) and content.strip():
            return 0.05
        return 0.0


def _line(node: Node) -> str:
    value = "" if node.value is None else str(node.value)
    if "\n" in value:
        raise SerializationError(
            f"Line {node.id!r} contains a line break; split it into lines"
        )
    return value
