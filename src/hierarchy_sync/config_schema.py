"""Configuration schema for hierarchy_sync.

Defines Pydantic models for the config structure with dedicated sections
for the editor and logging.

Usage:
    from hierarchy_sync.config_loader import load_raw_config
    from hierarchy_sync.config_schema import build_config

    raw = load_raw_config()
    config = build_config(raw)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field, field_validator

from .models import ViewMode

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class EditorConfig(BaseModel):
    """Editor defaults.

    Every field has a default so ``EditorConfig()`` is always valid.
    """

    initial_mode: ViewMode = Field(
        default=ViewMode.TREE, description="View mode on startup"
    )
    default_format: str | None = Field(
        default=None,
        description="Format used when loading without one (None = detect)",
    )
    theme: str = Field(default="light", description="UI theme name")
    json_indent: int = Field(
        default=2, ge=0, le=8, description="JSON indent width (0-8)"
    )
    yaml_indent: int = Field(
        default=2, ge=2, le=9, description="YAML indent width (2-9)"
    )
    xml_declaration: bool = Field(
        default=False,
        description="Always emit <?xml ...?> when serializing XML",
    )

    model_config = {"frozen": True}

    @field_validator("default_format")
    @classmethod
    def _lower_format(cls, value: str | None) -> str | None:
        return value.lower() if value else None


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    editor: EditorConfig = Field(default_factory=EditorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``config_loader.load_raw_config()``.

    Handles missing sections gracefully: anything absent gets defaults.
    Unknown top-level sections are ignored with a warning.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    known = set(UnifiedConfig.model_fields)
    unknown = sorted(set(raw_data) - known)
    if unknown:
        logger.warning("Ignoring unknown config sections: %s", ", ".join(unknown))

    return UnifiedConfig(**{k: v for k, v in raw_data.items() if k in known})
