"""Exception taxonomy for hierarchy_sync.

Validation problems are never raised: ``validate()`` returns a
:class:`~hierarchy_sync.models.ValidationResult` so callers can show them
inline.  Everything else that aborts an operation is one of the classes
below.
"""

from __future__ import annotations


class HierarchySyncError(Exception):
    """Base class for all errors raised by hierarchy_sync."""


class ParseError(HierarchySyncError):
    """Malformed input text.

    Attributes:
        reason: Human-readable description of the problem.
        line: 1-based line number, when the parser reports one.
        column: 1-based column number, when the parser reports one.
        format: Format identifier of the handler that failed.
    """

    def __init__(
        self,
        reason: str,
        line: int | None = None,
        column: int | None = None,
        format: str | None = None,
    ) -> None:
        self.reason = reason
        self.line = line
        self.column = column
        self.format = format
        super().__init__(self._render())

    def _render(self) -> str:
        prefix = f"Invalid {self.format.upper()}: " if self.format else ""
        if self.line is not None and self.column is not None:
            return f"{prefix}{self.reason} (line {self.line}, column {self.column})"
        if self.line is not None:
            return f"{prefix}{self.reason} (line {self.line})"
        return f"{prefix}{self.reason}"


class SerializationError(HierarchySyncError):
    """The tree cannot be turned into text (cycle, bad name, unknown type)."""


class UnsupportedFormatError(HierarchySyncError):
    """No handler is registered for the requested or detected format."""

    def __init__(self, format: str | None) -> None:
        self.format = format
        if format is None:
            message = "Could not detect a registered format for the content"
        else:
            message = f"No handler registered for format: {format}"
        super().__init__(message)


class NotFoundError(HierarchySyncError, KeyError):
    """An operation referenced a node id that is not in the document."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")

    def __str__(self) -> str:
        return self.args[0]


class ModeError(HierarchySyncError):
    """An operation was requested in the wrong view mode."""


class ConfigError(HierarchySyncError):
    """A config file is unreadable or holds invalid settings."""

    def __init__(self, reason: str, path=None) -> None:
        self.reason = reason
        self.path = path
        super().__init__(f"{path}: {reason}" if path is not None else reason)
