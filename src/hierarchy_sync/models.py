"""Pydantic models for validation and view-mode results.

Defines the data contracts returned to callers:

- ``ValidationIssue`` / ``ValidationResult``: output of ``validate()``.
- ``ViewMode``: the two live representations.
- ``SwitchResult``: outcome of a view-mode transition.

All models are frozen (immutable) for safety.  Event payloads live in
``hierarchy_sync.events`` because they carry live ``Node`` references.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class ValidationIssue(BaseModel):
    """A single problem found by ``validate()``.

    Attributes:
        message: Human-readable description.
        line: 1-based line number, if known.
        column: 1-based column number, if known.
    """

    message: str
    line: int | None = None
    column: int | None = None

    model_config = {"frozen": True}

    def __str__(self) -> str:
        if self.line is not None:
            return f"line {self.line}: {self.message}"
        return self.message


class ValidationResult(BaseModel):
    """Outcome of validating source text.

    Attributes:
        valid: True when the text can be parsed.
        errors: Problems found; empty when valid.
    """

    valid: bool
    errors: list[ValidationIssue] = []

    model_config = {"frozen": True}

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def failed(
        cls,
        message: str,
        line: int | None = None,
        column: int | None = None,
    ) -> ValidationResult:
        return cls(
            valid=False,
            errors=[
                ValidationIssue(message=message, line=line, column=column)
            ],
        )

    @property
    def messages(self) -> list[str]:
        return [str(issue) for issue in self.errors]


class ViewMode(str, Enum):
    """Live representations coordinated by the view manager."""

    TREE = "tree"
    SOURCE = "source"


class SwitchResult(BaseModel):
    """Result of a mode transition.

    Attributes:
        success: Whether the transition happened.
        mode: Mode after the call (unchanged on failure).
        error: Reason the transition was refused.
        errors: Validation problems, when the refusal came from validation.
    """

    success: bool
    mode: ViewMode
    error: str | None = None
    errors: list[ValidationIssue] = []

    model_config = {"frozen": True}
