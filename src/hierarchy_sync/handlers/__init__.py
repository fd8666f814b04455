"""Format handlers.

Modules:

- ``base``             -- ``FormatHandler`` protocol, ``BaseHandler``,
  ``HandlerRegistry`` and ``create_default_registry``.
- ``json_handler``     -- ``JsonHandler`` (stdlib ``json``).
- ``xml_handler``      -- ``XmlHandler`` (``xml.dom.minidom``).
- ``yaml_handler``     -- ``YamlHandler`` (PyYAML).
- ``markdown_handler`` -- ``MarkdownHandler`` (mistune 3).
- ``text_handler``     -- ``TextHandler``, line-per-node fallback.
"""

from .base import (
    BaseHandler,
    FormatHandler,
    FormatMatch,
    HandlerRegistry,
    check_handler,
    create_default_registry,
)
from .json_handler import JsonHandler
from .markdown_handler import MarkdownHandler
from .text_handler import TextHandler
from .xml_handler import XmlHandler
from .yaml_handler import YamlHandler

__all__ = [
    "BaseHandler",
    "FormatHandler",
    "FormatMatch",
    "HandlerRegistry",
    "JsonHandler",
    "MarkdownHandler",
    "TextHandler",
    "XmlHandler",
    "YamlHandler",
    "check_handler",
    "create_default_registry",
]
