"""Bidirectional document sync between a structural tree and its source text.

Text in JSON, XML, YAML, Markdown or plain text is parsed into one
canonical tree, edited through ``HierarchyModel`` and serialized back,
while ``ViewModeManager`` keeps a tree view and a source view of the same
document consistent.

Modules:

- ``dom``           -- ``Node``, ``NodeSpec`` and structural helpers.
- ``errors``        -- ``ParseError``, ``SerializationError``, ``ConfigError``,
  ``UnsupportedFormatError``, ``NotFoundError``, ``ModeError``.
- ``models``        -- ``ValidationResult``, ``SwitchResult``, ``ViewMode``.
- ``events``        -- event names, payloads and ``EventBus``.
- ``handlers``      -- format handlers and ``HandlerRegistry``.
- ``model``         -- ``HierarchyModel``.
- ``expansion``     -- ``ExpansionState``.
- ``view_mode``     -- ``ViewModeManager``.
- ``editor``        -- ``HierarchyEditor`` / ``create_editor``.
- ``config_schema`` / ``config_loader`` -- configuration.
- ``logger``        -- ``setup_logging`` for embedding applications.
"""

__version__ = "0.1.0"

from .dom import Node, NodeSpec, structurally_equal
from .editor import HierarchyEditor, create_editor
from .errors import (
    ConfigError,
    HierarchySyncError,
    ModeError,
    NotFoundError,
    ParseError,
    SerializationError,
    UnsupportedFormatError,
)
from .events import EventBus
from .expansion import ExpansionState
from .handlers import HandlerRegistry, create_default_registry
from .model import HierarchyModel
from .models import SwitchResult, ValidationIssue, ValidationResult, ViewMode
from .view_mode import ViewModeManager

__all__ = [
    "ConfigError",
    "EventBus",
    "ExpansionState",
    "HandlerRegistry",
    "HierarchyEditor",
    "HierarchyModel",
    "HierarchySyncError",
    "ModeError",
    "Node",
    "NodeSpec",
    "NotFoundError",
    "ParseError",
    "SerializationError",
    "SwitchResult",
    "UnsupportedFormatError",
    "ValidationIssue",
    "ValidationResult",
    "ViewMode",
    "ViewModeManager",
    "__version__",
    "create_default_registry",
    "create_editor",
]
