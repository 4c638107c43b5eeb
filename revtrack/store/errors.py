"""
Error types for the revtrack store layer.

Invariants:
    - All store errors inherit from StoreError
    - sqlite3 integrity failures surface as IntegrityError (chained)
"""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for store failures."""

    pass


class ModelNotFoundError(StoreError):
    """No model with the requested name is defined."""

    pass


class DuplicateModelError(StoreError):
    """A model with the same name is already defined."""

    pass


class UnknownFieldError(StoreError):
    """A field name does not exist on the model."""

    def __init__(self, model: str, fields: list[str]) -> None:
        super().__init__(f"Unknown fields for model '{model}': {sorted(fields)}")
        self.model = model
        self.fields = sorted(fields)


class ValidationError(StoreError):
    """Record values failed field validation."""

    def __init__(self, model: str, errors: list[str]) -> None:
        super().__init__(f"Validation failed for '{model}': {'; '.join(errors)}")
        self.model = model
        self.errors = errors


class IntegrityError(StoreError):
    """A constraint (UNIQUE, NOT NULL, FOREIGN KEY) rejected a write."""

    pass


class TransactionClosedError(StoreError):
    """The transaction was already committed or rolled back."""

    pass


class AssociationNotFoundError(StoreError):
    """No association with the requested name exists on the model."""

    pass
