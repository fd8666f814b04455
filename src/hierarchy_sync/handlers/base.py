"""Format handler protocol and registry.

A handler is any object with ``parse``, ``serialize`` and ``validate``
methods; conformance is checked structurally when it is registered, so
handlers do not need to inherit from anything.  ``BaseHandler`` is an
optional mixin with the shared descriptor plumbing used by the built-in
handlers.

The registry resolves handlers by format key, extension or MIME type and
auto-detects formats with confidence scores: every handler scores the
content, the highest score wins, and ties go to the handler registered
first.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..dom import Node
from ..errors import ParseError
from ..models import ValidationResult

logger = logging.getLogger(__name__)

REQUIRED_METHODS = ("parse", "serialize", "validate")


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class FormatHandler(Protocol):
    """Protocol that all format handlers must satisfy."""

    def parse(self, content: str) -> Node:
        """Parse text into a tree.

        Raises:
            ParseError: If the text is malformed.
        """
        ...  # pragma: no cover

    def serialize(self, node: Node) -> str:
        """Serialize a tree to text.

        Raises:
            SerializationError: If the tree cannot be represented.  No
                partial text is ever returned.
        """
        ...  # pragma: no cover

    def validate(self, content: str) -> ValidationResult:
        """Check text without raising."""
        ...  # pragma: no cover


def check_handler(handler: Any) -> None:
    """Verify that *handler* structurally conforms to ``FormatHandler``.

    Raises:
        TypeError: Listing every required method that is missing or not
            callable.
    """
    missing = [
        method
        for method in REQUIRED_METHODS
        if not callable(getattr(handler, method, None))
    ]
    if missing:
        raise TypeError(
            f"{type(handler).__name__} is not a format handler; "
            f"missing: {', '.join(missing)}"
        )


# ---------------------------------------------------------------------------
# Shared base for built-in handlers
# ---------------------------------------------------------------------------


class BaseHandler:
    """Descriptor plumbing and a parse-based ``validate`` for handlers."""

    name: str = "unknown"
    extensions: tuple[str, ...] = ()
    mime_types: tuple[str, ...] = ()

    def parse(self, content: str) -> Node:  # pragma: no cover - overridden
        raise NotImplementedError

    def serialize(self, node: Node) -> str:  # pragma: no cover - overridden
        raise NotImplementedError

    def detect(self, content: str) -> float:
        """Confidence 0.0-1.0 that *content* is in this format."""
        return 0.0

    def validate(self, content: str) -> ValidationResult:
        """Validate by attempting a full parse."""
        if not isinstance(content, str):
            return ValidationResult.failed("Content must be a string")
        try:
            self.parse(content)
        except ParseError as exc:
            return ValidationResult.failed(exc.reason, exc.line, exc.column)
        return ValidationResult.ok()

    def _error(
        self,
        reason: str,
        line: int | None = None,
        column: int | None = None,
    ) -> ParseError:
        return ParseError(reason, line=line, column=column, format=self.name)

    def _require_text(self, content: Any) -> str:
        if not isinstance(content, str):
            raise self._error("Content must be a string")
        return content

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CycleGuard:
    """Track the nodes on the current serialization path.

    A node seen again while it is still on the path means the graph has a
    cycle; serializers raise before any text is returned.
    """

    def __init__(self) -> None:
        self._active: set[int] = set()

    def enter(self, node: Node) -> bool:
        key = id(node)
        if key in self._active:
            return False
        self._active.add(key)
        return True

    def leave(self, node: Node) -> None:
        self._active.discard(id(node))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass
class FormatMatch:
    """Result of format detection."""

    format: str
    handler: Any
    confidence: float  # 0.0 to 1.0


class HandlerRegistry:
    """Registry of format handlers with detection and lookup."""

    def __init__(self) -> None:
        # dict keeps first-insertion order, which is the tie-break order
        self._handlers: dict[str, Any] = {}

    def register(self, format: str, handler: Any) -> None:
        """Register *handler* under *format*; the last registration wins."""
        check_handler(handler)
        key = format.lower()
        if key in self._handlers:
            logger.debug("Replacing handler for format %s", key)
        self._handlers[key] = handler

    def unregister(self, format: str) -> None:
        self._handlers.pop(format.lower(), None)

    def get(self, format: str | None) -> Any | None:
        if not format:
            return None
        return self._handlers.get(format.lower())

    def __contains__(self, format: str) -> bool:
        return format.lower() in self._handlers

    @property
    def formats(self) -> list[str]:
        """Registered format keys in registration order."""
        return list(self._handlers)

    def get_by_extension(self, ext: str) -> str | None:
        """Return the first format whose handler claims *ext*."""
        if not ext.startswith("."):
            ext = "." + ext
        ext = ext.lower()
        for key, handler in self._handlers.items():
            if ext in getattr(handler, "extensions", ()):
                return key
        return None

    def get_by_mime_type(self, mime_type: str) -> str | None:
        mime_type = mime_type.lower()
        for key, handler in self._handlers.items():
            if mime_type in getattr(handler, "mime_types", ()):
                return key
        return None

    def detect(self, content: str) -> FormatMatch | None:
        """Detect the best format for content.

        Every handler with a ``detect`` method scores the content; the
        highest positive score wins, ties broken by registration order.
        Returns ``None`` when nothing scores above zero.
        """
        best: FormatMatch | None = None
        for key, handler in self._handlers.items():
            detect = getattr(handler, "detect", None)
            if not callable(detect):
                continue
            try:
                score = float(detect(content))
            except Exception:
                logger.exception("Format detection failed for %s", key)
                continue
            if score <= 0.0:
                continue
            # Strict comparison keeps the earliest registration on ties
            if best is None or score > best.confidence:
                best = FormatMatch(
                    format=key, handler=handler, confidence=min(score, 1.0)
                )
        if best is not None:
            logger.debug(
                "Detected format %s (confidence %.2f)",
                best.format,
                best.confidence,
            )
        return best


def create_default_registry(**options: Any) -> HandlerRegistry:
    """Build a registry holding the built-in handlers.

    Keyword options are forwarded to handler constructors that accept
    them: ``json_indent``, ``yaml_indent``, ``xml_declaration``.
    """
    from .json_handler import JsonHandler
    from .markdown_handler import MarkdownHandler
    from .text_handler import TextHandler
    from .xml_handler import XmlHandler
    from .yaml_handler import YamlHandler

    registry = HandlerRegistry()
    registry.register("json", JsonHandler(indent=options.get("json_indent", 2)))
    registry.register(
        "xml",
        XmlHandler(declaration=options.get("xml_declaration", False)),
    )
    registry.register("yaml", YamlHandler(indent=options.get("yaml_indent", 2)))
    registry.register("markdown", MarkdownHandler())
    registry.register("text", TextHandler())
    return registry
