"""
Error types for revision tracking.

This module defines the exceptions raised by the tracking core:
- RevisionError: Base exception
- SchemaDerivationError: Source model cannot be turned into a shadow model
- ReadOnlyViolation: A write was attempted against a shadow model
- NotAHistoryModelError: A history query was given a plain model

Failures of the underlying store (integrity errors, closed transactions)
are not wrapped; they propagate from revtrack.store.errors unchanged.

Invariants:
    - All core errors inherit from RevisionError
    - Errors include context for debugging
"""

from __future__ import annotations

from typing import Any


class RevisionError(Exception):
    """Base exception for all revision tracking errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "REVISION_ERROR"
        self.details = details or {}


class SchemaDerivationError(RevisionError):
    """The source model definition could not be derived into a shadow schema.

    Raised when:
    - The source is not a ModelDef
    - The source has no primary key to archive against
    - A derived field fails its own validation
    """

    def __init__(self, message: str, model: str | None = None) -> None:
        super().__init__(
            message,
            code="SCHEMA_DERIVATION_ERROR",
            details={"model": model},
        )
        self.model = model


class ReadOnlyViolation(RevisionError):
    """A write was attempted against a read-only shadow model."""

    def __init__(self, model: str, operation: str) -> None:
        super().__init__(
            f"'{model}' is a read-only history model; {operation} is not permitted",
            code="READ_ONLY_VIOLATION",
            details={"model": model, "operation": operation},
        )
        self.model = model
        self.operation = operation


class NotAHistoryModelError(RevisionError):
    """A history query was given a model that is not tracking another."""

    def __init__(self, model: str) -> None:
        super().__init__(
            f"Model '{model}' is not a history model",
            code="NOT_A_HISTORY_MODEL",
            details={"model": model},
        )
        self.model = model
