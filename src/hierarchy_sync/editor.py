"""Ready-made editor wiring: registry, model and view manager from config.

Usage::

    from hierarchy_sync import create_editor

    editor = create_editor(json_indent=4)
    editor.load('{"a": 1}')
    editor.update_node_value("root/0", 2)
    text = editor.get_content()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .config_loader import load_config
from .config_schema import EditorConfig, UnifiedConfig
from .dom import Node, NodeSpec
from .handlers.base import HandlerRegistry, create_default_registry
from .logger import setup_logging
from .model import HierarchyModel
from .models import SwitchResult, ValidationResult, ViewMode
from .view_mode import ViewModeManager

logger = logging.getLogger(__name__)


class HierarchyEditor:
    """Facade over one document's model and view manager."""

    def __init__(
        self,
        config: EditorConfig | None = None,
        registry: HandlerRegistry | None = None,
    ) -> None:
        self.config = config if config is not None else EditorConfig()
        if registry is None:
            registry = create_default_registry(
                json_indent=self.config.json_indent,
                yaml_indent=self.config.yaml_indent,
                xml_declaration=self.config.xml_declaration,
            )
        self.model = HierarchyModel(registry)
        self.view = ViewModeManager(
            self.model,
            initial_mode=self.config.initial_mode,
            theme=self.config.theme,
            default_format=self.config.default_format,
        )

    # ------------------------------------------------------------------
    # Document
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ViewMode:
        return self.view.mode

    @property
    def format(self) -> str | None:
        return self.model.format

    @property
    def root(self) -> Node | None:
        return self.model.root

    @property
    def dirty(self) -> bool:
        return self.model.dirty

    def load(self, text: str, format: str | None = None) -> Node:
        """Load *text*; falls back to the configured format, then detection."""
        return self.model.load_content(text, format or self.config.default_format)

    def get_content(self) -> str:
        """Text of the live view: serialized tree, or the source buffer."""
        if self.view.mode is ViewMode.SOURCE:
            return self.view.source_text
        if not self.model.is_loaded:
            return ""
        return self.model.serialize()

    def validate(self, content: str | None = None) -> ValidationResult:
        return self.model.validate(content)

    def register_handler(self, format: str, handler: Any) -> None:
        self.model.register_handler(format, handler)

    def subscribe(
        self, event: str, callback: Callable[[Any], None]
    ) -> Callable[[], None]:
        return self.model.subscribe(event, callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        self.model.unsubscribe(event, callback)

    # ------------------------------------------------------------------
    # Modes
    # ------------------------------------------------------------------

    async def switch_to_source(self) -> SwitchResult:
        return await self.view.switch_to_source()

    async def switch_to_tree(self) -> SwitchResult:
        return await self.view.switch_to_tree()

    async def toggle_mode(self) -> SwitchResult:
        return await self.view.toggle_mode()

    def set_source_text(self, text: str) -> None:
        self.view.set_source_text(text)

    # ------------------------------------------------------------------
    # Tree operations
    # ------------------------------------------------------------------

    def find_node(self, node_id: str) -> Node | None:
        return self.model.find_node(node_id)

    def find_by_path(self, path: str) -> Node | None:
        return self.model.find_by_path(path)

    def batch(self):
        """See ``HierarchyModel.batch``."""
        return self.model.batch()

    def update_node_value(self, node_id: str, value: Any) -> bool:
        return self.view.update_node_value(node_id, value)

    def rename_node(self, node_id: str, name: str | None) -> bool:
        return self.view.rename_node(node_id, name)

    def add_node(
        self,
        parent_id: str,
        spec: NodeSpec | Node,
        position: int | None = None,
    ) -> Node:
        return self.view.add_node(parent_id, spec, position)

    def delete_node(self, node_id: str) -> Node:
        return self.view.delete_node(node_id)

    def move_node(
        self, node_id: str, new_parent_id: str, position: int | None = None
    ) -> Node:
        return self.view.move_node(node_id, new_parent_id, position)

    def duplicate_node(self, node_id: str) -> Node:
        return self.view.duplicate_node(node_id)

    def destroy(self) -> None:
        self.view.destroy()
        self.model.clear()


def create_editor(
    config: EditorConfig | UnifiedConfig | None = None, **overrides: Any
) -> HierarchyEditor:
    """Build a ``HierarchyEditor``; keyword overrides replace config fields.

    Without *config* the settings come from ``load_config()`` (config files
    plus ``.env``).  Whenever a full ``UnifiedConfig`` is in play, loaded or
    passed in, its ``logging`` section is handed to ``setup_logging``,
    which leaves an already configured root logger alone.

    Raises:
        ConfigError: A discovered config file is broken.
        pydantic.ValidationError: If an override is invalid.
    """
    if config is None:
        config = load_config()
    if isinstance(config, UnifiedConfig):
        setup_logging(level=config.logging.level, log_file=config.logging.file)
        config = config.editor
    if overrides:
        config = EditorConfig(**{**config.model_dump(), **overrides})
    logger.debug("Creating editor with %s", config)
    return HierarchyEditor(config)
