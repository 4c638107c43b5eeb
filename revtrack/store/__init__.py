"""
Store module for revtrack.

A small async model layer over SQLite:
- Store: database file, model definitions, transactions
- Model: create/read/update/destroy (single-row and bulk) with lifecycle hooks
- Record: one row with change tracking

Invariants:
    - Every statement runs on the caller's transaction connection when one is given
    - BEFORE_* hooks finish before the operation's statement executes
"""

from .errors import (
    AssociationNotFoundError,
    DuplicateModelError,
    IntegrityError,
    ModelNotFoundError,
    StoreError,
    TransactionClosedError,
    UnknownFieldError,
    ValidationError,
)
from .hooks import HookContext, HookKind
from .model import Association, AssociationKind, Model
from .record import Record
from .store import Store, Transaction

__all__ = [
    "Store",
    "Transaction",
    "Model",
    "Record",
    "Association",
    "AssociationKind",
    "HookKind",
    "HookContext",
    # Errors
    "StoreError",
    "ModelNotFoundError",
    "DuplicateModelError",
    "UnknownFieldError",
    "ValidationError",
    "IntegrityError",
    "TransactionClosedError",
    "AssociationNotFoundError",
]
