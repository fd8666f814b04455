"""XML format handler.

The tree root is the document element.  Mixed content is preserved as
ordered ``text``, ``element``, ``cdata``, ``comment`` and
``processing_instruction`` children; whitespace-only text between
elements is kept as ordinary text nodes, and the serializer never adds
whitespace of its own, so a parse/serialize/parse cycle is structurally
exact.  Trees edited into shapes a parser cannot reproduce (two
neighbouring text nodes, an empty text node) are refused on serialize.

Parsing uses ``xml.dom.minidom`` (expat) because it reports CDATA sections
as separate nodes and decodes entities for us.  Attributes are stored in
``metadata['attributes']`` in document order.  Comments, processing
instructions and the doctype outside the document element are kept in
root metadata (``prolog``, ``epilog``, ``doctype``).
"""

from __future__ import annotations

import logging
import re
from xml.dom import Node as DomNode
from xml.dom import minidom
from xml.parsers import expat

from ..dom import (
    CDATA,
    COMMENT,
    ELEMENT,
    PROCESSING_INSTRUCTION,
    TEXT,
    Node,
    assign_path_ids,
)
from ..errors import SerializationError
from .base import BaseHandler, CycleGuard

logger = logging.getLogger(__name__)

# Letters (any script) or underscore/colon first, then name characters
_XML_NAME = re.compile(r"^[^\W\d][\w.\-:]*$|^:[\w.\-:]*$")

_TEXT_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    "\r": "&#13;",
}

_ATTR_ESCAPES = {
    **_TEXT_ESCAPES,
    '"': "&quot;",
    "\n": "&#10;",
    "\t": "&#9;",
}

_TEXT_PATTERN = re.compile("|".join(map(re.escape, _TEXT_ESCAPES)))
_ATTR_PATTERN = re.compile("|".join(map(re.escape, _ATTR_ESCAPES)))


def escape_text(text: str) -> str:
    """Encode character data for element content."""
    return _TEXT_PATTERN.sub(lambda m: _TEXT_ESCAPES[m.group(0)], text)


def escape_attribute(value: str) -> str:
    """Encode an attribute value for use inside double quotes."""
    return _ATTR_PATTERN.sub(lambda m: _ATTR_ESCAPES[m.group(0)], value)


def is_valid_name(name: str | None) -> bool:
    return bool(name) and _XML_NAME.match(name) is not None


class XmlHandler(BaseHandler):
    """XML parser and serializer preserving mixed content."""

    name = "xml"
    extensions = (".xml", ".xsd", ".xsl", ".svg")
    mime_types = ("application/xml", "text/xml")

    def __init__(self, declaration: bool = False) -> None:
        self.declaration = declaration

    # ------------------------------------------------------------------
    # Parse
    # ------------------------------------------------------------------

    def parse(self, content: str) -> Node:
        """Parse XML into a tree rooted at the document element."""
        content = self._require_text(content)
        if not content.strip():
            raise self._error("Content is empty")
        # The DOM is left to the garbage collector: Document.unlink()
        # recurses once per nesting level.
        try:
            doc = minidom.parseString(content)
            root = self._convert(doc.documentElement)
        except expat.ExpatError as exc:
            raise self._error(
                expat.ErrorString(exc.code),
                exc.lineno,
                exc.offset + 1,
            ) from exc
        except RecursionError as exc:
            raise self._error("Document is nested too deeply") from exc

        metadata = root.metadata
        prolog, epilog = self._outside_nodes(doc)
        if prolog:
            metadata["prolog"] = prolog
        if epilog:
            metadata["epilog"] = epilog
        if doc.doctype is not None:
            metadata["doctype"] = self._doctype(doc.doctype)
        if content.lstrip().startswith("<?xml"):
            metadata["declaration"] = True
        return assign_path_ids(root)

    def _convert(self, dom_node) -> Node:
        # Iterative walk; deep documents should not hit the recursion limit
        root = self._convert_one(dom_node)
        stack = [(dom_node, root)]
        while stack:
            source, target = stack.pop()
            for child in source.childNodes:
                converted = self._convert_one(child)
                if converted is None:
                    continue
                target.add_child(converted)
                if child.nodeType == DomNode.ELEMENT_NODE:
                    stack.append((child, converted))
        return root

    def _convert_one(self, dom_node) -> Node | None:
        kind = dom_node.nodeType
        if kind == DomNode.ELEMENT_NODE:
            return Node(
                type=ELEMENT,
                name=dom_node.tagName,
                metadata={"attributes": dict(dom_node.attributes.items())},
            )
        if kind == DomNode.TEXT_NODE:
            return Node(type=TEXT, value=dom_node.data)
        if kind == DomNode.CDATA_SECTION_NODE:
            return Node(type=CDATA, value=dom_node.data)
        if kind == DomNode.COMMENT_NODE:
            return Node(type=COMMENT, value=dom_node.data)
        if kind == DomNode.PROCESSING_INSTRUCTION_NODE:
            return Node(
                type=PROCESSING_INSTRUCTION,
                name=dom_node.target,
                value=dom_node.data,
            )
        logger.debug("Skipping unsupported DOM node type %s", kind)
        return None

    def _outside_nodes(self, doc) -> tuple[list[dict], list[dict]]:
        prolog: list[dict] = []
        epilog: list[dict] = []
        target = prolog
        for child in doc.childNodes:
            if child is doc.documentElement:
                target = epilog
            elif child.nodeType == DomNode.COMMENT_NODE:
                target.append({"type": COMMENT, "value": child.data})
            elif child.nodeType == DomNode.PROCESSING_INSTRUCTION_NODE:
                target.append(
                    {
                        "type": PROCESSING_INSTRUCTION,
                        "name": child.target,
                        "value": child.data,
                    }
                )
        return prolog, epilog

    @staticmethod
    def _doctype(doctype) -> dict:
        return {
            "name": doctype.name,
            "public_id": doctype.publicId,
            "system_id": doctype.systemId,
            "internal_subset": doctype.internalSubset,
        }

    # ------------------------------------------------------------------
    # Serialize
    # ------------------------------------------------------------------

    def serialize(self, node: Node) -> str:
        """Serialize a tree rooted at an element back to XML text."""
        if node is None:
            raise SerializationError("Node is required for serialization")
        if node.type != ELEMENT:
            raise SerializationError(
                f"XML root must be an element, got {node.type!r}"
            )
        out: list[str] = []
        metadata = node.metadata or {}
        if self.declaration or metadata.get("declaration"):
            out.append('<?xml version="1.0" encoding="UTF-8"?>\n')
        doctype = metadata.get("doctype")
        if doctype:
            out.append(self._serialize_doctype(doctype))
        for item in metadata.get("prolog", []):
            out.append(self._serialize_misc(item))
        self._emit(node, out, CycleGuard())
        for item in metadata.get("epilog", []):
            out.append(self._serialize_misc(item))
        return "".join(out)

    def _emit(self, node: Node, out: list[str], guard: CycleGuard) -> None:
        if not guard.enter(node):
            raise SerializationError(
                f"Circular reference detected at node {node.id or node.name!r}"
            )
        try:
            kind = node.type
            if kind == ELEMENT:
                self._emit_element(node, out, guard)
            elif kind == TEXT:
                out.append(escape_text(_as_text(node.value)))
            elif kind == CDATA:
                data = _as_text(node.value)
                out.append(
                    "<![CDATA["
                    + data.replace("]]>", "]]]]><![CDATA[>")
                    + "]]>"
                )
            elif kind == COMMENT:
                out.append(self._comment(_as_text(node.value)))
            elif kind == PROCESSING_INSTRUCTION:
                out.append(self._pi(node.name, _as_text(node.value)))
            else:
                raise SerializationError(
                    f"Cannot serialize node type {kind!r} as XML"
                )
        finally:
            guard.leave(node)

    def _emit_element(
        self, node: Node, out: list[str], guard: CycleGuard
    ) -> None:
        if not is_valid_name(node.name):
            raise SerializationError(f"Invalid element name: {node.name!r}")
        out.append(f"<{node.name}")
        attributes = (node.metadata or {}).get("attributes") or {}
        for key, value in attributes.items():
            if not is_valid_name(key):
                raise SerializationError(
                    f"Invalid attribute name {key!r} on <{node.name}>"
                )
            out.append(f' {key}="{escape_attribute(_as_text(value))}"')
        if not node.children:
            out.append("/>")
            return
        out.append(">")
        previous = None
        for child in node.children:
            self._check_text(child, previous, node)
            self._emit(child, out, guard)
            previous = child
        out.append(f"</{node.name}>")

    @staticmethod
    def _check_text(child: Node, previous: Node | None, parent: Node) -> None:
        # A parser merges neighbouring character data and drops empty text,
        # so either shape would come back different on reparse.
        if child.type != TEXT:
            return
        if _as_text(child.value) == "":
            raise SerializationError(
                f"Empty text node {child.id!r} in <{parent.name}>"
            )
        if previous is not None and previous.type == TEXT:
            raise SerializationError(
                f"Adjacent text nodes {previous.id!r} and {child.id!r} in "
                f"<{parent.name}> would merge into one; combine their values"
            )

    def _comment(self, data: str) -> str:
        if "--" in data or data.endswith("-"):
            raise SerializationError(
                "XML comments cannot contain '--' or end with '-'"
            )
        return f"<!--{data}-->"

    def _pi(self, target: str | None, data: str) -> str:
        if not is_valid_name(target) or target.lower() == "xml":
            raise SerializationError(
                f"Invalid processing instruction target: {target!r}"
            )
        if "?>" in data:
            raise SerializationError(
                "Processing instruction data cannot contain '?>'"
            )
        return f"<?{target} {data}?>" if data else f"<?{target}?>"

    def _serialize_misc(self, item: dict) -> str:
        if item.get("type") == COMMENT:
            return self._comment(_as_text(item.get("value")))
        return self._pi(item.get("name"), _as_text(item.get("value")))

    @staticmethod
    def _serialize_doctype(doctype: dict) -> str:
        parts = [f"<!DOCTYPE {doctype['name']}"]
        public_id = doctype.get("public_id")
        system_id = doctype.get("system_id")
        if public_id:
            parts.append(f' PUBLIC "{public_id}" "{system_id or ""}"')
        elif system_id:
            parts.append(f' SYSTEM "{system_id}"')
        subset = doctype.get("internal_subset")
        if subset:
            parts.append(f" [{subset}]")
        parts.append(">")
        return "".join(parts)

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(self, content: str) -> float:
        if not isinstance(content, str):
            return 0.0
        trimmed = content.strip()
        if trimmed.startswith("<?xml"):
            return 1.0
        if not trimmed.startswith("<"):
            return 0.0
        if self.validate(trimmed).valid:
            return 0.9
        return 0.2


def _as_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
