"""Markdown format handler.

Parsing walks the block-level AST from mistune 3.  Headings build the
outline: a heading of level N becomes a child of the nearest preceding
heading with a lower level, or of the ``document`` root.  Every other
top-level block becomes a ``content`` node under the innermost open
heading, with ``metadata['kind']`` naming the block type.

Block text is regenerated with mistune's ``MarkdownRenderer`` so that the
value of a content node is itself valid Markdown and re-renders to the
same blocks.  Fenced code keeps its info string in
``metadata['language']``.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from typing import Any

import mistune
from mistune.core import BlockState
from mistune.renderers.markdown import MarkdownRenderer

from ..dom import CONTENT, DOCUMENT, HEADING, Node, assign_path_ids
from ..errors import ParseError, SerializationError
from .base import BaseHandler, CycleGuard

logger = logging.getLogger(__name__)

# mistune token type -> content kind
BLOCK_KINDS = {
    "paragraph": "paragraph",
    "list": "list",
    "block_code": "code",
    "block_quote": "blockquote",
    "thematic_break": "rule",
    "block_html": "html",
}

_SKIPPED_TOKENS = {"blank_line"}

_STRONG_FEATURES = re.compile(r"^(#{1,6}\s|```|~~~)", re.MULTILINE)
_WEAK_FEATURES = re.compile(
    r"^\s*([-*+]\s|\d+\.\s|>)|\[[^\]]+\]\([^)]*\)|\*\*[^*]+\*\*|`[^`]+`",
    re.MULTILINE,
)


class MarkdownHandler(BaseHandler):
    """Markdown parser and serializer building a heading outline."""

    name = "markdown"
    extensions = (".md", ".markdown")
    mime_types = ("text/markdown", "text/x-markdown")

    def __init__(self) -> None:
        self._markdown = mistune.create_markdown(renderer="ast")
        self._renderer = MarkdownRenderer()

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def parse(self, content: str) -> Node:
        """Parse Markdown into a document/heading/content tree."""
        content = self._require_text(content)
        try:
            tokens, _state = self._markdown.parse(content)
        except RecursionError as exc:
            raise self._error("Document is nested too deeply") from exc

        root = Node(type=DOCUMENT)
        # (level, node) pairs for the currently open headings
        stack: list[tuple[int, Node]] = [(0, root)]
        for token in tokens:
            kind = token["type"]
            if kind in _SKIPPED_TOKENS:
                continue
            if kind == "heading":
                level = token.get("attrs", {}).get("level", 1)
                heading = Node(
                    type=HEADING,
                    name=self._inline_text(token),
                    metadata={"level": level},
                )
                while stack[-1][0] >= level:
                    stack.pop()
                stack[-1][1].add_child(heading)
                stack.append((level, heading))
            else:
                stack[-1][1].add_child(self._content_node(token))
        return assign_path_ids(root)

    def _inline_text(self, token: dict[str, Any]) -> str:
        return self._renderer.render_children(token, BlockState()).strip()

    def _content_node(self, token: dict[str, Any]) -> Node:
        kind = token["type"]
        if kind == "block_code":
            raw = token.get("raw", "")
            if raw.endswith("\n"):
                raw = raw[:-1]
            info = (token.get("attrs") or {}).get("info") or ""
            return Node(
                type=CONTENT,
                value=raw,
                metadata={"kind": "code", "language": info.strip() or None},
            )
        text = self._renderer([token], BlockState())
        return Node(
            type=CONTENT,
            value=text.strip("\n"),
            metadata={"kind": BLOCK_KINDS.get(kind, kind)},
        )

    # ------------------------------------------------------------------
    # Serialize
    # ------------------------------------------------------------------

    def serialize(self, node: Node) -> str:
        """Serialize tree to Markdown, one blank line between blocks.

        Raises:
            SerializationError: If the tree is not rooted at a document, or
                if the text would reparse into a different outline (a
                content value that reads as a heading or as several blocks,
                content placed after a subheading, sibling headings whose
                levels would nest them, empty content).
        """
        if node is None:
            raise SerializationError("Node is required for serialization")
        if node.type != DOCUMENT:
            raise SerializationError(
                f"Markdown root must be a document, got {node.type!r}"
            )
        blocks: list[str] = []
        self._emit(node, blocks, CycleGuard())
        text = "\n\n".join(blocks) + "\n" if blocks else ""
        self._check_outline(node, text)
        return text

    def _emit(self, node: Node, blocks: list[str], guard: CycleGuard) -> None:
        if not guard.enter(node):
            raise SerializationError(
                f"Circular reference detected at node {node.id or node.name!r}"
            )
        try:
            if node.type == HEADING:
                blocks.append(self._heading(node))
            elif node.type == CONTENT:
                block = self._block(node)
                if block:
                    blocks.append(block)
            elif node.type != DOCUMENT:
                raise SerializationError(
                    f"Cannot serialize node type {node.type!r} as Markdown"
                )
            for child in node.children:
                self._emit(child, blocks, guard)
        finally:
            guard.leave(node)

    def _check_outline(self, root: Node, text: str) -> None:
        # Markdown has no delimiters of its own: the only proof that the
        # blocks keep their boundaries and nesting is to read them back.
        try:
            reparsed = self.parse(text)
        except ParseError as exc:
            raise SerializationError(
                f"Serialized Markdown cannot be read back: {exc.reason}"
            ) from exc
        pending = deque([(root, reparsed)])
        while pending:
            expected, actual = pending.popleft()
            if expected.type != actual.type or len(expected.children) != len(
                actual.children
            ):
                raise SerializationError(
                    f"Node {expected.id or expected.name!r} would change shape "
                    f"when the Markdown is reparsed ({expected.type} with "
                    f"{len(expected.children)} children comes back as "
                    f"{actual.type} with {len(actual.children)})"
                )
            pending.extend(zip(expected.children, actual.children))

    @staticmethod
    def _heading(node: Node) -> str:
        level = heading_level(node)
        text = " ".join((node.name or "").split())
        return ("#" * level + " " + text).rstrip()

    @staticmethod
    def _block(node: Node) -> str:
        metadata = node.metadata or {}
        value = "" if node.value is None else str(node.value)
        if metadata.get("kind") != "code":
            return value.strip("\n")
        fence = "```"
        while fence in value:
            fence += "`"
        language = metadata.get("language") or ""
        if value:
            return f"{fence}{language}\n{value}\n{fence}"
        return f"{fence}{language}\n{fence}"

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, content: str) -> float:
        if not isinstance(content, str) or not content.strip():
            return 0.0
        if _STRONG_FEATURES.search(content):
            return 0.8
        if _WEAK_FEATURES.search(content):
            return 0.4
        return 0.0


def heading_level(node: Node) -> int:
    """Heading level from metadata, defaulting to 1 and clamped to 1-6."""
    level = (node.metadata or {}).get("level")
    try:
        level = int(level)
    except (TypeError, ValueError):
        logger.debug("Heading %s has no usable level; using 1", node.id)
        return 1
    return min(max(level, 1), 6)
