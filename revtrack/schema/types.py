"""
Core type definitions for the revtrack schema system.

This module defines the descriptors models are declared with:
- FieldDef: Individual column of a model, with tagged constraint properties
- ModelDef: Definition of a model (ordered fields plus model-level options)
- FieldProperty / ModelOption: Enumerations naming what a derivation may strip

Invariants:
    - Field names are unique within a model
    - A model has at most one primary key field
    - Descriptors are immutable; derivations build new instances with replace()
    - Timestamps are stored as Unix milliseconds

How to change safely:
    - Add new FieldProperty members together with a reset value in _PROPERTY_RESETS
    - Keep to_dict()/from_dict() symmetric; schema files depend on them
    - Never mutate a FieldDef in place (they are shared between source and shadow)

Example:
    >>> from revtrack.schema.types import ModelDef, field
    >>> User = ModelDef(
    ...     name="User",
    ...     fields=(
    ...         field("email", "str", unique=True, allow_null=False),
    ...         field("name", "str"),
    ...     ),
    ... )
"""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any


def now_ms() -> int:
    """Current time as Unix milliseconds."""
    return int(time.time() * 1000)


def snake_case(name: str) -> str:
    """Convert a PascalCase model name to snake_case (``UserProfile`` -> ``user_profile``)."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class FieldKind(Enum):
    """Supported field types.

    These map to SQLite storage classes and validation rules.
    """

    STRING = "str"
    INTEGER = "int"
    FLOAT = "float"
    BOOLEAN = "bool"
    TIMESTAMP = "timestamp"  # Unix milliseconds
    JSON = "json"  # Stored as TEXT
    BYTES = "bytes"

    @classmethod
    def from_str(cls, value: str) -> FieldKind:
        """Convert string representation to FieldKind.

        Raises:
            ValueError: If value is not a valid field kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid field kind '{value}'. Valid kinds: {valid}")

    @property
    def sql_type(self) -> str:
        return _SQL_TYPES[self]


_SQL_TYPES = {
    FieldKind.STRING: "TEXT",
    FieldKind.INTEGER: "INTEGER",
    FieldKind.FLOAT: "REAL",
    FieldKind.BOOLEAN: "INTEGER",
    FieldKind.TIMESTAMP: "INTEGER",
    FieldKind.JSON: "TEXT",
    FieldKind.BYTES: "BLOB",
}


class FieldProperty(Enum):
    """Constraint-only properties of a field.

    Each member names one attribute of FieldDef that a schema derivation
    can reset to its neutral value.
    """

    UNIQUE = "unique"
    PRIMARY_KEY = "primary_key"
    AUTO_INCREMENT = "auto_increment"
    REFERENCES = "references"
    ON_DELETE = "on_delete"
    ON_UPDATE = "on_update"
    GETTER = "getter"
    SETTER = "setter"
    MODEL = "model"
    DEFAULT = "default"
    VALIDATE = "validate"


_PROPERTY_RESETS: dict[FieldProperty, Any] = {
    FieldProperty.UNIQUE: False,
    FieldProperty.PRIMARY_KEY: False,
    FieldProperty.AUTO_INCREMENT: False,
    FieldProperty.REFERENCES: None,
    FieldProperty.ON_DELETE: None,
    FieldProperty.ON_UPDATE: None,
    FieldProperty.GETTER: None,
    FieldProperty.SETTER: None,
    FieldProperty.MODEL: None,
    FieldProperty.DEFAULT: None,
    FieldProperty.VALIDATE: None,
}


class ModelOption(Enum):
    """Model-level options a derived model may or may not inherit."""

    TABLE_NAME = "table_name"
    UNIQUE_KEYS = "unique_keys"
    INDEXES = "indexes"
    DESCRIPTION = "description"


_OPTION_RESETS: dict[ModelOption, Any] = {
    ModelOption.TABLE_NAME: None,
    ModelOption.UNIQUE_KEYS: (),
    ModelOption.INDEXES: (),
    ModelOption.DESCRIPTION: "",
}


@dataclass(frozen=True)
class FieldDef:
    """Definition of a single column.

    Attributes:
        name: Column name
        kind: Data type of the column
        allow_null: Whether NULL is accepted
        default: Default value, or a zero-argument callable producing one
        unique: UNIQUE constraint
        primary_key: Whether this is the model's identity field
        auto_increment: INTEGER PRIMARY KEY AUTOINCREMENT
        references: Foreign key target as "Model.field"
        on_delete: Referential action (CASCADE, SET NULL, ...)
        on_update: Referential action on key update
        getter: Callable applied to the stored value on attribute read
        setter: Callable applied to the assigned value on attribute write
        model: Name of the owning model (back-reference set on define)
        validate: Callable returning an error string or None
        description: Human-readable description

    Invariants:
        - auto_increment implies primary_key and kind INTEGER
        - references must have the form "Model.field"
    """

    name: str
    kind: FieldKind
    allow_null: bool = True
    default: Any = None
    unique: bool = False
    primary_key: bool = False
    auto_increment: bool = False
    references: str | None = None
    on_delete: str | None = None
    on_update: str | None = None
    getter: Callable[[Any], Any] | None = None
    setter: Callable[[Any], Any] | None = None
    model: str | None = None
    validate: Callable[[Any], str | None] | None = None
    description: str = ""

    def __post_init__(self) -> None:
        """Validate field definition."""
        if not self.name:
            raise ValueError("Field name cannot be empty")
        if not isinstance(self.kind, FieldKind):
            raise ValueError(f"Field '{self.name}' has invalid kind {self.kind!r}")
        if self.auto_increment and not self.primary_key:
            raise ValueError(f"auto_increment field '{self.name}' must be the primary key")
        if self.auto_increment and self.kind != FieldKind.INTEGER:
            raise ValueError(f"auto_increment field '{self.name}' must be an integer")
        if self.references is not None and self.references.count(".") != 1:
            raise ValueError(
                f"Field '{self.name}' references must be 'Model.field', got '{self.references}'"
            )

    @property
    def references_model(self) -> str | None:
        if self.references is None:
            return None
        return self.references.split(".", 1)[0]

    @property
    def references_field(self) -> str | None:
        if self.references is None:
            return None
        return self.references.split(".", 1)[1]

    def has_property(self, prop: FieldProperty) -> bool:
        """Whether the given property is set to a non-neutral value."""
        return getattr(self, prop.value) != _PROPERTY_RESETS[prop]

    def without(self, props: frozenset[FieldProperty] | set[FieldProperty]) -> FieldDef:
        """Return a copy with every property in ``props`` reset to its neutral value."""
        changes = {p.value: _PROPERTY_RESETS[p] for p in props if self.has_property(p)}
        if not changes:
            return self
        return replace(self, **changes)

    def default_value(self) -> Any:
        """Evaluate the default (calling it when it is a generator)."""
        if callable(self.default):
            return self.default()
        return self.default

    def validate_value(self, value: Any) -> tuple[bool, str | None]:
        """Validate a value against this field definition.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if value is None:
            if not self.allow_null and not self.auto_increment:
                return False, f"Field '{self.name}' cannot be null"
            return True, None

        validators = {
            FieldKind.STRING: lambda v: isinstance(v, str),
            FieldKind.INTEGER: lambda v: isinstance(v, int) and not isinstance(v, bool),
            FieldKind.FLOAT: lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
            FieldKind.BOOLEAN: lambda v: isinstance(v, bool),
            FieldKind.TIMESTAMP: lambda v: isinstance(v, int) and v >= 0,
            FieldKind.JSON: lambda _: True,
            FieldKind.BYTES: lambda v: isinstance(v, (bytes, bytearray)),
        }
        if not validators[self.kind](value):
            return False, f"Field '{self.name}' has invalid type for kind {self.kind.value}"

        if self.validate is not None:
            error = self.validate(value)
            if error:
                return False, error

        return True, None

    def column_sql(self) -> str:
        """Render the column clause of CREATE TABLE.

        The REFERENCES clause is added by the store, which knows the
        target model's table name.
        """
        parts = [f'"{self.name}"', self.kind.sql_type]
        if self.primary_key:
            parts.append("PRIMARY KEY")
            if self.auto_increment:
                parts.append("AUTOINCREMENT")
        elif not self.allow_null:
            parts.append("NOT NULL")
        if self.unique and not self.primary_key:
            parts.append("UNIQUE")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation.

        Callables (getter, setter, validate, generated defaults) are not
        serializable and are left out; a generated default is written as
        ``"default": "now"`` when it is ``now_ms``.
        """
        result: dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if not self.allow_null:
            result["allow_null"] = False
        if self.default is now_ms:
            result["default"] = "now"
        elif self.default is not None and not callable(self.default):
            result["default"] = self.default
        for flag in ("unique", "primary_key", "auto_increment"):
            if getattr(self, flag):
                result[flag] = True
        for opt in ("references", "on_delete", "on_update", "model"):
            if getattr(self, opt) is not None:
                result[opt] = getattr(self, opt)
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldDef:
        """Create from dictionary representation."""
        default = data.get("default")
        if default == "now":
            default = now_ms
        return cls(
            name=data["name"],
            kind=FieldKind.from_str(data["kind"]),
            allow_null=data.get("allow_null", True),
            default=default,
            unique=data.get("unique", False),
            primary_key=data.get("primary_key", False),
            auto_increment=data.get("auto_increment", False),
            references=data.get("references"),
            on_delete=data.get("on_delete"),
            on_update=data.get("on_update"),
            model=data.get("model"),
            description=data.get("description", ""),
        )


def field(
    name: str,
    kind: str | FieldKind,
    **kwargs: Any,
) -> FieldDef:
    """Convenience function to create a FieldDef.

    Example:
        >>> email = field("email", "str", unique=True, allow_null=False)
        >>> owner = field("owner_id", "int", references="User.id", on_delete="CASCADE")
    """
    if isinstance(kind, str):
        kind = FieldKind.from_str(kind)
    return FieldDef(name=name, kind=kind, **kwargs)


# Timestamp columns maintained by the store when ModelDef.timestamps is set.
CREATED_AT = "created_at"
UPDATED_AT = "updated_at"
TIMESTAMP_FIELDS = (CREATED_AT, UPDATED_AT)


@dataclass(frozen=True)
class ModelDef:
    """Definition of a model (one table).

    Attributes:
        name: Model name (PascalCase by convention)
        fields: Ordered tuple of field definitions
        table_name: Table name; defaults to the snake_case model name
        timestamps: Whether the store maintains created_at/updated_at
        unique_keys: Composite UNIQUE constraints (tuples of field names)
        indexes: Plain indexes (tuples of field names)
        description: Human-readable description

    Invariants:
        - Field names are unique
        - At most one field is the primary key

    Example:
        >>> Post = ModelDef(
        ...     name="Post",
        ...     fields=(field("title", "str"), field("author_id", "int", references="User.id")),
        ...     indexes=(("author_id",),),
        ... )
    """

    name: str
    fields: tuple[FieldDef, ...] = dataclass_field(default_factory=tuple)
    table_name: str | None = None
    timestamps: bool = True
    unique_keys: tuple[tuple[str, ...], ...] = ()
    indexes: tuple[tuple[str, ...], ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        """Validate model definition."""
        if not self.name:
            raise ValueError("Model name cannot be empty")

        names = [f.name for f in self.fields]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate field name in model '{self.name}'")

        pks = [f.name for f in self.fields if f.primary_key]
        if len(pks) > 1:
            raise ValueError(f"Model '{self.name}' declares more than one primary key: {pks}")

        known = set(names)
        for group in (*self.unique_keys, *self.indexes):
            unknown = set(group) - known
            if unknown:
                raise ValueError(
                    f"Model '{self.name}' constraint references unknown fields: {sorted(unknown)}"
                )

    @property
    def resolved_table_name(self) -> str:
        return self.table_name or snake_case(self.name)

    @property
    def primary_key(self) -> FieldDef | None:
        for f in self.fields:
            if f.primary_key:
                return f
        return None

    def get_field(self, name: str) -> FieldDef | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def get_field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_option(self, option: ModelOption) -> Any:
        return getattr(self, option.value)

    def without_options(self, options: frozenset[ModelOption] | set[ModelOption]) -> ModelDef:
        """Return a copy with the given model-level options reset."""
        return replace(self, **{o.value: _OPTION_RESETS[o] for o in options})

    def with_defaults(self) -> ModelDef:
        """Complete the definition the way the store declares it.

        Adds an ``id`` INTEGER autoincrement primary key when none is
        declared, appends created_at/updated_at when ``timestamps`` is set,
        and stamps every field with the owning model name.
        """
        fields = list(self.fields)
        if self.primary_key is None:
            fields.insert(
                0,
                FieldDef(
                    name="id",
                    kind=FieldKind.INTEGER,
                    primary_key=True,
                    auto_increment=True,
                    allow_null=False,
                ),
            )
        if self.timestamps:
            present = {f.name for f in fields}
            for ts in TIMESTAMP_FIELDS:
                if ts not in present:
                    fields.append(
                        FieldDef(name=ts, kind=FieldKind.TIMESTAMP, allow_null=False, default=now_ms)
                    )
        fields = [f if f.model == self.name else replace(f, model=self.name) for f in fields]
        return replace(self, fields=tuple(fields))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        result: dict[str, Any] = {
            "name": self.name,
            "fields": [f.to_dict() for f in self.fields],
        }
        if self.table_name:
            result["table_name"] = self.table_name
        if not self.timestamps:
            result["timestamps"] = False
        if self.unique_keys:
            result["unique_keys"] = [list(k) for k in self.unique_keys]
        if self.indexes:
            result["indexes"] = [list(i) for i in self.indexes]
        if self.description:
            result["description"] = self.description
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelDef:
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            fields=tuple(FieldDef.from_dict(f) for f in data.get("fields", [])),
            table_name=data.get("table_name"),
            timestamps=data.get("timestamps", True),
            unique_keys=tuple(tuple(k) for k in data.get("unique_keys", [])),
            indexes=tuple(tuple(i) for i in data.get("indexes", [])),
            description=data.get("description", ""),
        )
