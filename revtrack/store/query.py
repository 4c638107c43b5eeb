"""
SQL building helpers for the store layer.

Column values cross the sqlite3 boundary through encode_value/decode_value:
JSON fields are stored as TEXT, booleans as 0/1, everything else as-is.
"""

from __future__ import annotations

import json
from typing import Any

from ..schema.types import FieldDef, FieldKind, ModelDef
from .errors import UnknownFieldError


def quote(name: str) -> str:
    return f'"{name}"'


def encode_value(field: FieldDef, value: Any) -> Any:
    if value is None:
        return None
    if field.kind == FieldKind.JSON:
        return json.dumps(value)
    if field.kind == FieldKind.BOOLEAN:
        return int(bool(value))
    return value


def decode_value(field: FieldDef, value: Any) -> Any:
    if value is None:
        return None
    if field.kind == FieldKind.JSON:
        return json.loads(value)
    if field.kind == FieldKind.BOOLEAN:
        return bool(value)
    return value


def check_fields(definition: ModelDef, names: list[str] | set[str]) -> None:
    """Raise UnknownFieldError if any name is not a field of the model."""
    known = set(definition.get_field_names())
    unknown = [n for n in names if n not in known]
    if unknown:
        raise UnknownFieldError(definition.name, unknown)


def build_where(definition: ModelDef, where: dict[str, Any] | None) -> tuple[str, list[Any]]:
    """Build a WHERE clause from a filter mapping.

    Supports equality (``{"name": "foo"}``), IS NULL (``{"name": None}``)
    and IN (``{"id": [1, 2]}``). An empty IN list matches nothing.

    Returns:
        Tuple of (sql_fragment, params); the fragment is empty for no filter
    """
    if not where:
        return "", []

    check_fields(definition, list(where))

    clauses: list[str] = []
    params: list[Any] = []
    for name, value in where.items():
        f = definition.get_field(name)
        assert f is not None
        if value is None:
            clauses.append(f"{quote(name)} IS NULL")
        elif isinstance(value, (list, tuple, set, frozenset)):
            items = list(value)
            if not items:
                clauses.append("0")
                continue
            placeholders = ", ".join("?" for _ in items)
            clauses.append(f"{quote(name)} IN ({placeholders})")
            params.extend(encode_value(f, v) for v in items)
        else:
            clauses.append(f"{quote(name)} = ?")
            params.append(encode_value(f, value))

    return " WHERE " + " AND ".join(clauses), params


def build_order_by(definition: ModelDef, order_by: str | list[str] | None) -> str:
    """Build an ORDER BY clause; a leading '-' sorts descending."""
    if not order_by:
        return ""
    items = [order_by] if isinstance(order_by, str) else list(order_by)
    names = [i.lstrip("-") for i in items]
    check_fields(definition, names)
    parts = [f"{quote(i.lstrip('-'))} {'DESC' if i.startswith('-') else 'ASC'}" for i in items]
    return " ORDER BY " + ", ".join(parts)
