"""
Schema module for revtrack.

This module provides the model descriptors and the history schema derivation:
- Type definitions (FieldDef, ModelDef, FieldKind)
- Constraint enumerations (FieldProperty, ModelOption)
- SchemaDeriver for history model definitions

Invariants:
    - Descriptors are immutable
    - A derived history schema never carries a uniqueness or foreign-key constraint
"""

from .derive import (
    DEFAULT_EXCLUDED_NAMES,
    DEFAULT_EXCLUDED_PROPERTIES,
    SchemaDeriver,
)
from .types import (
    FieldDef,
    FieldKind,
    FieldProperty,
    ModelDef,
    ModelOption,
    field,
    now_ms,
    snake_case,
)

__all__ = [
    # Types
    "FieldDef",
    "FieldKind",
    "FieldProperty",
    "ModelDef",
    "ModelOption",
    "field",
    "now_ms",
    "snake_case",
    # Derivation
    "SchemaDeriver",
    "DEFAULT_EXCLUDED_PROPERTIES",
    "DEFAULT_EXCLUDED_NAMES",
]
