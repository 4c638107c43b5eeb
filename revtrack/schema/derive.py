"""
Shadow schema derivation.

Turns a source ModelDef into the definition of its history model. The
derived schema keeps every archivable column of the source but none of the
constraints that would make sense only for live rows: a history table holds
many rows per source record, rows for records that no longer exist, and
literal archived timestamps.

Invariants:
    - The source identity field is never copied; its value lands in the
      source key field instead
    - Every copied field is nullable and carries none of the excluded properties
    - Shadow-only fields (revision id, archived at, source key, author) are
      declared last and replace any copied field of the same name
    - created_at/updated_at keep no default, so archived values are stored verbatim

How to change safely:
    - Extending DEFAULT_EXCLUDED_PROPERTIES is backward compatible
    - Removing a member from it can put UNIQUE/REFERENCES clauses on history
      tables; only do so with a migration plan for existing shadow tables
"""

from __future__ import annotations

import logging
from dataclasses import replace

from ..errors import SchemaDerivationError
from .types import (
    TIMESTAMP_FIELDS,
    FieldDef,
    FieldKind,
    FieldProperty,
    ModelDef,
    ModelOption,
    now_ms,
    snake_case,
)

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDED_PROPERTIES: frozenset[FieldProperty] = frozenset(
    {
        FieldProperty.UNIQUE,
        FieldProperty.PRIMARY_KEY,
        FieldProperty.AUTO_INCREMENT,
        FieldProperty.REFERENCES,
        FieldProperty.ON_DELETE,
        FieldProperty.ON_UPDATE,
        FieldProperty.GETTER,
        FieldProperty.SETTER,
        FieldProperty.MODEL,
    }
)

DEFAULT_EXCLUDED_NAMES: frozenset[ModelOption] = frozenset(
    {
        ModelOption.TABLE_NAME,
        ModelOption.UNIQUE_KEYS,
    }
)

DEFAULT_REVISION_ID_FIELD = "revision_id"
DEFAULT_ARCHIVED_AT_FIELD = "archived_at"


class SchemaDeriver:
    """Derives shadow (history) model definitions from source definitions.

    Attributes:
        excluded_fields: Source field names never copied
        excluded_properties: Field properties reset on every copied field
        excluded_names: Model-level options the shadow model does not inherit
        author_field_name: Name of the nullable author column, or None
        revision_id_field: Name of the surrogate primary key
        archived_at_field: Name of the archival timestamp
        source_key_field: Name of the column holding the source identity;
            derived per model when None

    Example:
        >>> deriver = SchemaDeriver(author_field_name="author_id")
        >>> shadow = deriver.derive_model(User.with_defaults(), "UserHistory")
        >>> [f.name for f in shadow.fields]
        ['email', 'name', 'created_at', 'updated_at', 'revision_id', 'archived_at', 'user_id', 'author_id']
    """

    def __init__(
        self,
        excluded_fields: frozenset[str] | set[str] = frozenset(),
        excluded_properties: frozenset[FieldProperty] = DEFAULT_EXCLUDED_PROPERTIES,
        excluded_names: frozenset[ModelOption] = DEFAULT_EXCLUDED_NAMES,
        author_field_name: str | None = None,
        revision_id_field: str = DEFAULT_REVISION_ID_FIELD,
        archived_at_field: str = DEFAULT_ARCHIVED_AT_FIELD,
        source_key_field: str | None = None,
    ) -> None:
        self.excluded_fields = frozenset(excluded_fields)
        self.excluded_properties = frozenset(excluded_properties)
        self.excluded_names = frozenset(excluded_names)
        self.author_field_name = author_field_name
        self.revision_id_field = revision_id_field
        self.archived_at_field = archived_at_field
        self.source_key_field = source_key_field

    def source_key_for(self, source: ModelDef) -> str:
        """Name of the shadow column that stores the source identity."""
        if self.source_key_field:
            return self.source_key_field
        pk = source.primary_key
        pk_name = pk.name if pk is not None else "id"
        return f"{snake_case(source.name)}_{pk_name}"

    def derive(self, source: ModelDef) -> tuple[FieldDef, ...]:
        """Derive the shadow field list from a source model.

        Args:
            source: Complete source definition (as declared by the store)

        Returns:
            Ordered tuple of shadow fields

        Raises:
            SchemaDerivationError: If the source is malformed
        """
        if not isinstance(source, ModelDef):
            raise SchemaDerivationError(
                f"Expected a ModelDef, got {type(source).__name__}",
            )

        identity = source.primary_key
        if identity is None:
            raise SchemaDerivationError(
                f"Model '{source.name}' has no primary key to archive against",
                model=source.name,
            )

        copied: dict[str, FieldDef] = {}
        try:
            for f in source.fields:
                if f.name == identity.name or f.name in self.excluded_fields:
                    continue

                shadow_field = f.without(self.excluded_properties)
                changes: dict[str, object] = {}
                if not shadow_field.allow_null:
                    changes["allow_null"] = True
                if f.name in TIMESTAMP_FIELDS and shadow_field.default is not None:
                    changes["default"] = None
                if changes:
                    shadow_field = replace(shadow_field, **changes)
                copied[f.name] = shadow_field

            for f in self._shadow_fields(source, identity):
                # Shadow-only fields win over copied fields of the same name.
                copied.pop(f.name, None)
                copied[f.name] = f
        except (TypeError, ValueError) as e:
            raise SchemaDerivationError(
                f"Cannot derive history schema for '{source.name}': {e}",
                model=source.name,
            ) from e

        return tuple(copied.values())

    def derive_model(self, source: ModelDef, name: str) -> ModelDef:
        """Derive the complete shadow ModelDef.

        Model-level options named in ``excluded_names`` are reset; indexes
        that mention a column the shadow does not have are dropped. The
        shadow model never has store-managed timestamps.
        """
        fields = self.derive(source)
        present = {f.name for f in fields}

        base = source.without_options(self.excluded_names)
        indexes = tuple(i for i in base.indexes if set(i) <= present)
        unique_keys = tuple(k for k in base.unique_keys if set(k) <= present)

        try:
            shadow = ModelDef(
                name=name,
                fields=fields,
                table_name=base.table_name and f"{base.table_name}_history",
                timestamps=False,
                unique_keys=unique_keys,
                indexes=(*indexes, (self.source_key_for(source),)),
                description=base.description or f"Revision history of {source.name}",
            )
        except ValueError as e:
            raise SchemaDerivationError(
                f"Cannot derive history schema for '{source.name}': {e}",
                model=source.name,
            ) from e

        logger.debug(
            "Derived history schema",
            extra={
                "model": source.name,
                "history_model": name,
                "fields": [f.name for f in fields],
            },
        )
        return shadow

    def _shadow_fields(self, source: ModelDef, identity: FieldDef) -> list[FieldDef]:
        shadow_fields = [
            FieldDef(
                name=self.revision_id_field,
                kind=FieldKind.INTEGER,
                primary_key=True,
                auto_increment=True,
                allow_null=False,
            ),
            FieldDef(
                name=self.archived_at_field,
                kind=FieldKind.TIMESTAMP,
                default=now_ms,
                allow_null=False,
            ),
            FieldDef(
                name=self.source_key_for(source),
                kind=identity.kind,
                description=f"{source.name}.{identity.name} of the archived row",
            ),
        ]
        if self.author_field_name:
            shadow_fields.append(
                FieldDef(
                    name=self.author_field_name,
                    kind=FieldKind.JSON,
                    description="Author attributed to the archiving mutation",
                )
            )
        return shadow_fields
