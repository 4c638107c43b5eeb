"""
Model handles for the revtrack store.

A Model is the runtime handle for one ModelDef inside a Store. It offers
create/read/update/destroy operations (single-row and bulk), each optionally
running inside a caller-supplied Transaction, plus lifecycle hooks and
traversal-only associations.

Invariants:
    - BEFORE_* hooks complete before the operation's own statement executes
    - Hooks receive the caller's transaction (or None) untouched
    - With a transaction, every statement runs on transaction.connection;
      without one, each operation commits on its own connection
    - Bulk operations always fire their bulk hook; with individual_hooks the
      per-row hooks fire as well, once per matching row

How to change safely:
    - New operations must run their hooks before opening a write session;
      opening it first would deadlock hooks that write without a transaction
    - Keep hook order stable; callers depend on registration order
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..schema.types import CREATED_AT, UPDATED_AT, FieldDef, ModelDef, now_ms, snake_case
from .errors import AssociationNotFoundError, ValidationError
from .hooks import Hook, HookContext, HookKind, run_hooks
from .query import (
    build_order_by,
    build_where,
    check_fields,
    decode_value,
    encode_value,
    quote,
)
from .record import Record

if TYPE_CHECKING:
    import sqlite3

    from .store import Store, Transaction

logger = logging.getLogger(__name__)


class AssociationKind(Enum):
    HAS_MANY = "has_many"
    BELONGS_TO = "belongs_to"


@dataclass(frozen=True)
class Association:
    """A named, traversal-only link between two models.

    Attributes:
        name: Accessor name used with Record.get_related()
        kind: HAS_MANY or BELONGS_TO
        source: Model the association is declared on
        target: Model the association points to
        foreign_key: Column holding the link (on target for HAS_MANY,
            on source for BELONGS_TO)
        constraints: Whether the store emits a REFERENCES clause for it
    """

    name: str
    kind: AssociationKind
    source: Model
    target: Model
    foreign_key: str
    constraints: bool = False


class Model:
    """Runtime handle for a model definition.

    Attributes:
        store: Owning store
        definition: Complete definition (implicit id and timestamps added)
        name: Model name
        table_name: SQLite table name
        primary_key: Identity field
        associations: Declared associations by name
        shadow_of: Name of the source model when this is a history model
        source_key: History column holding the source identity, if a history model

    Example:
        >>> User = store.define_model(ModelDef(name="User", fields=(field("name", "str"),)))
        >>> await store.sync()
        >>> user = await User.create({"name": "foo"})
        >>> await User.update({"name": "bar"}, where={"id": user.id})
        1
    """

    def __init__(self, store: Store, definition: ModelDef) -> None:
        self.store = store
        self.definition = definition
        self.name = definition.name
        self.table_name = definition.resolved_table_name
        pk = definition.primary_key
        assert pk is not None, "definition must be completed with with_defaults()"
        self.primary_key: FieldDef = pk
        self.associations: dict[str, Association] = {}
        self.shadow_of: str | None = None
        self.source_key: str | None = None
        self._hooks: dict[HookKind, list[Hook]] = {kind: [] for kind in HookKind}

    def __repr__(self) -> str:
        return f"<Model {self.name} table={self.table_name!r}>"

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def add_hook(self, kind: HookKind, hook: Hook) -> None:
        """Register a hook; hooks of one kind run in registration order."""
        self._hooks[kind].append(hook)

    def remove_hook(self, kind: HookKind, hook: Hook) -> bool:
        try:
            self._hooks[kind].remove(hook)
        except ValueError:
            return False
        return True

    def hooks(self, kind: HookKind) -> list[Hook]:
        return list(self._hooks[kind])

    async def _fire(self, kind: HookKind, **kwargs: Any) -> None:
        await run_hooks(self._hooks[kind], HookContext(kind=kind, model=self, **kwargs))

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    def has_many(
        self,
        target: Model,
        foreign_key: str,
        name: str | None = None,
        constraints: bool = False,
    ) -> Association:
        """Declare that ``target`` rows point at this model via ``foreign_key``."""
        check_fields(target.definition, [foreign_key])
        assoc = Association(
            name=name or snake_case(target.name),
            kind=AssociationKind.HAS_MANY,
            source=self,
            target=target,
            foreign_key=foreign_key,
            constraints=constraints,
        )
        self.associations[assoc.name] = assoc
        return assoc

    def belongs_to(
        self,
        target: Model,
        foreign_key: str,
        name: str | None = None,
        constraints: bool = False,
    ) -> Association:
        """Declare that this model's ``foreign_key`` points at ``target``."""
        check_fields(self.definition, [foreign_key])
        assoc = Association(
            name=name or snake_case(target.name),
            kind=AssociationKind.BELONGS_TO,
            source=self,
            target=target,
            foreign_key=foreign_key,
            constraints=constraints,
        )
        self.associations[assoc.name] = assoc
        return assoc

    async def get_related(
        self,
        record: Record,
        name: str,
        transaction: Transaction | None = None,
    ) -> Any:
        assoc = self.associations.get(name)
        if assoc is None:
            raise AssociationNotFoundError(f"Model '{self.name}' has no association '{name}'")
        if assoc.kind == AssociationKind.HAS_MANY:
            return await assoc.target.find_all(
                where={assoc.foreign_key: record.identity},
                order_by=assoc.target.primary_key.name,
                transaction=transaction,
            )
        key = record.get(assoc.foreign_key, raw=True)
        if key is None:
            return None
        return await assoc.target.find_by_pk(key, transaction=transaction)

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    def _references_for(self, f: FieldDef) -> tuple[str | None, str | None, str | None, str | None]:
        """Resolve (table, column, on_delete, on_update) for a foreign key column."""
        if f.references is not None:
            target = self.store.models.get(f.references_model or "")
            table = target.table_name if target is not None else snake_case(f.references_model or "")
            return table, f.references_field, f.on_delete, f.on_update
        for assoc in self.associations.values():
            if (
                assoc.constraints
                and assoc.kind == AssociationKind.BELONGS_TO
                and assoc.foreign_key == f.name
            ):
                return assoc.target.table_name, assoc.target.primary_key.name, None, None
        for model in self.store.models.values():
            for assoc in model.associations.values():
                if (
                    assoc.constraints
                    and assoc.kind == AssociationKind.HAS_MANY
                    and assoc.target is self
                    and assoc.foreign_key == f.name
                ):
                    return model.table_name, model.primary_key.name, None, None
        return None, None, None, None

    def create_table_sql(self) -> list[str]:
        """CREATE TABLE and CREATE INDEX statements for this model."""
        columns: list[str] = []
        for f in self.definition.fields:
            clause = f.column_sql()
            table, column, on_delete, on_update = self._references_for(f)
            if table is not None:
                clause += f" REFERENCES {quote(table)}({quote(column or 'id')})"
                if on_delete:
                    clause += f" ON DELETE {on_delete}"
                if on_update:
                    clause += f" ON UPDATE {on_update}"
            columns.append(clause)
        for group in self.definition.unique_keys:
            columns.append(f"UNIQUE ({', '.join(quote(c) for c in group)})")

        statements = [
            f"CREATE TABLE IF NOT EXISTS {quote(self.table_name)} (\n    "
            + ",\n    ".join(columns)
            + "\n)"
        ]
        for group in self.definition.indexes:
            index_name = f"idx_{self.table_name}_{'_'.join(group)}"
            statements.append(
                f"CREATE INDEX IF NOT EXISTS {quote(index_name)} "
                f"ON {quote(self.table_name)}({', '.join(quote(c) for c in group)})"
            )
        return statements

    async def sync(self, force: bool = False) -> None:
        await self.store.sync(models=[self], force=force)

    # ------------------------------------------------------------------
    # Row helpers
    # ------------------------------------------------------------------

    def build(self, values: dict[str, Any] | None = None) -> Record:
        """Build an unsaved record, applying defaults and field setters."""
        values = values or {}
        check_fields(self.definition, list(values))
        record = Record(self, {})
        for f in self.definition.fields:
            if f.name in values:
                record.set(f.name, values[f.name])
            else:
                record.set(f.name, f.default_value(), raw=True)
        return record

    def _from_row(self, row: sqlite3.Row) -> Record:
        keys = row.keys()
        values = {
            f.name: decode_value(f, row[f.name]) for f in self.definition.fields if f.name in keys
        }
        return Record(self, values, is_new_record=False)

    def _validate(self, record: Record) -> None:
        errors: list[str] = []
        for f in self.definition.fields:
            if f.auto_increment and record.get(f.name, raw=True) is None:
                continue
            ok, error = f.validate_value(record.get(f.name, raw=True))
            if not ok and error:
                errors.append(error)
        if errors:
            raise ValidationError(self.name, errors)

    def _insert(self, conn: sqlite3.Connection, record: Record) -> None:
        if self.definition.timestamps:
            now = now_ms()
            for ts in (CREATED_AT, UPDATED_AT):
                if record.get(ts, raw=True) is None:
                    record.set(ts, now, raw=True)
        self._validate(record)

        pk = self.primary_key.name
        fields = [
            f
            for f in self.definition.fields
            if not (f.name == pk and record.get(pk, raw=True) is None)
        ]
        sql = (
            f"INSERT INTO {quote(self.table_name)} "
            f"({', '.join(quote(f.name) for f in fields)}) "
            f"VALUES ({', '.join('?' for _ in fields)})"
        )
        cursor = conn.execute(sql, [encode_value(f, record.get(f.name, raw=True)) for f in fields])
        if record.get(pk, raw=True) is None:
            record.set(pk, cursor.lastrowid, raw=True)
        record._mark_persisted()

    def _write_update(self, conn: sqlite3.Connection, record: Record) -> int:
        changed = record.changed()
        if self.definition.timestamps and UPDATED_AT not in changed:
            record.set(UPDATED_AT, now_ms(), raw=True)
            changed.append(UPDATED_AT)
        self._validate(record)

        fields = [f for f in self.definition.fields if f.name in changed]
        if not fields:
            record._mark_persisted()
            return 0
        assignments = ", ".join(f"{quote(f.name)} = ?" for f in fields)
        params = [encode_value(f, record.get(f.name, raw=True)) for f in fields]
        params.append(encode_value(self.primary_key, record.identity))
        cursor = conn.execute(
            f"UPDATE {quote(self.table_name)} SET {assignments} "
            f"WHERE {quote(self.primary_key.name)} = ?",
            params,
        )
        record._mark_persisted()
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Single-row operations
    # ------------------------------------------------------------------

    async def create(
        self,
        values: dict[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> Record:
        record = self.build(values)
        return await self.save_record(record, transaction=transaction)

    async def save_record(
        self,
        record: Record,
        transaction: Transaction | None = None,
        force: bool = False,
        shared: dict[str, Any] | None = None,
    ) -> Record:
        """Insert a new record or write the changed fields of a persisted one.

        A persisted record with no changes is returned untouched: no hooks
        fire and no statement executes. With ``force`` the update hooks fire
        anyway, as they do for every row matched by a bulk update with
        individual hooks.
        """
        if record.is_new_record:
            await self._fire(HookKind.BEFORE_CREATE, record=record, transaction=transaction)
            with self.store.write_session(transaction) as conn:
                self._insert(conn, record)
            await self._fire(HookKind.AFTER_CREATE, record=record, transaction=transaction)
            logger.debug("Created record", extra={"model": self.name, "id": record.identity})
            return record

        changed = record.changed()
        if not changed and not force:
            return record

        await self._fire(
            HookKind.BEFORE_UPDATE,
            record=record,
            transaction=transaction,
            values={name: record.get(name, raw=True) for name in changed},
            shared=shared,
        )
        with self.store.write_session(transaction) as conn:
            self._write_update(conn, record)
        await self._fire(
            HookKind.AFTER_UPDATE, record=record, transaction=transaction, shared=shared
        )
        logger.debug(
            "Updated record",
            extra={"model": self.name, "id": record.identity, "fields": changed},
        )
        return record

    async def destroy_record(
        self,
        record: Record,
        transaction: Transaction | None = None,
        shared: dict[str, Any] | None = None,
    ) -> None:
        await self._fire(
            HookKind.BEFORE_DESTROY, record=record, transaction=transaction, shared=shared
        )
        with self.store.write_session(transaction) as conn:
            conn.execute(
                f"DELETE FROM {quote(self.table_name)} WHERE {quote(self.primary_key.name)} = ?",
                (encode_value(self.primary_key, record.identity),),
            )
        await self._fire(
            HookKind.AFTER_DESTROY, record=record, transaction=transaction, shared=shared
        )
        logger.debug("Destroyed record", extra={"model": self.name, "id": record.identity})
        record._mark_destroyed()

    async def upsert(
        self,
        values: dict[str, Any],
        transaction: Transaction | None = None,
    ) -> Record:
        """Insert a record, or update it when its primary key already exists.

        Only BEFORE_UPSERT fires; the create/update hooks do not. For the
        insert path the record passed to hooks is new (``is_new_record``).
        """
        check_fields(self.definition, list(values))
        pk = self.primary_key.name
        record: Record | None = None
        if values.get(pk) is not None:
            record = await self.find_by_pk(values[pk], transaction=transaction)
        if record is None:
            record = self.build(values)
        else:
            for name, value in values.items():
                if name != pk:
                    record.set(name, value)

        await self._fire(
            HookKind.BEFORE_UPSERT,
            record=record,
            transaction=transaction,
            values=dict(values),
        )
        with self.store.write_session(transaction) as conn:
            if record.is_new_record:
                self._insert(conn, record)
            else:
                self._write_update(conn, record)
        logger.debug("Upserted record", extra={"model": self.name, "id": record.identity})
        return record

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_all(
        self,
        where: dict[str, Any] | None = None,
        transaction: Transaction | None = None,
        order_by: str | list[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        clause, params = build_where(self.definition, where)
        sql = f"SELECT * FROM {quote(self.table_name)}{clause}"
        sql += build_order_by(self.definition, order_by)
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        with self.store.read_session(transaction) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [self._from_row(row) for row in rows]

    async def find_one(
        self,
        where: dict[str, Any] | None = None,
        transaction: Transaction | None = None,
        order_by: str | list[str] | None = None,
    ) -> Record | None:
        records = await self.find_all(
            where=where, transaction=transaction, order_by=order_by, limit=1
        )
        return records[0] if records else None

    async def find_by_pk(self, pk: Any, transaction: Transaction | None = None) -> Record | None:
        return await self.find_one({self.primary_key.name: pk}, transaction=transaction)

    async def count(
        self,
        where: dict[str, Any] | None = None,
        transaction: Transaction | None = None,
    ) -> int:
        clause, params = build_where(self.definition, where)
        with self.store.read_session(transaction) as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM {quote(self.table_name)}{clause}", params)
            return row.fetchone()[0]

    # ------------------------------------------------------------------
    # Bulk operations
    # ------------------------------------------------------------------

    async def bulk_create(
        self,
        rows: list[dict[str, Any]],
        transaction: Transaction | None = None,
    ) -> list[Record]:
        """Insert many rows in one write session. Create hooks do not fire."""
        records = [self.build(values) for values in rows]
        if not records:
            return []
        with self.store.write_session(transaction) as conn:
            for record in records:
                self._insert(conn, record)
        logger.debug("Bulk created records", extra={"model": self.name, "count": len(records)})
        return records

    async def update(
        self,
        values: dict[str, Any],
        where: dict[str, Any] | None = None,
        transaction: Transaction | None = None,
        individual_hooks: bool = False,
    ) -> int:
        """Update every row matching ``where``.

        Returns:
            Number of rows updated
        """
        if not values:
            raise ValueError(f"update() on '{self.name}' needs at least one value")
        check_fields(self.definition, list(values))
        shared: dict[str, Any] = {}
        await self._fire(
            HookKind.BEFORE_BULK_UPDATE,
            transaction=transaction,
            where=dict(where or {}),
            values=dict(values),
            individual_hooks=individual_hooks,
            shared=shared,
        )

        if individual_hooks:
            # Every matched row counts as updated, so its hooks fire even
            # when the new values equal the stored ones.
            records = await self.find_all(where=where, transaction=transaction)
            for record in records:
                for name, value in values.items():
                    record.set(name, value)
                await self.save_record(record, transaction=transaction, force=True, shared=shared)
            return len(records)

        assigned = dict(values)
        if self.definition.timestamps and UPDATED_AT not in assigned:
            assigned[UPDATED_AT] = now_ms()
        fields = [f for f in self.definition.fields if f.name in assigned]
        assignments = ", ".join(f"{quote(f.name)} = ?" for f in fields)
        params = [encode_value(f, assigned[f.name]) for f in fields]
        clause, where_params = build_where(self.definition, where)

        with self.store.write_session(transaction) as conn:
            cursor = conn.execute(
                f"UPDATE {quote(self.table_name)} SET {assignments}{clause}",
                params + where_params,
            )
            affected = cursor.rowcount
        logger.debug("Bulk updated records", extra={"model": self.name, "count": affected})
        return affected

    async def destroy(
        self,
        where: dict[str, Any] | None = None,
        transaction: Transaction | None = None,
        individual_hooks: bool = False,
    ) -> int:
        """Delete every row matching ``where``.

        Returns:
            Number of rows deleted
        """
        shared: dict[str, Any] = {}
        await self._fire(
            HookKind.BEFORE_BULK_DESTROY,
            transaction=transaction,
            where=dict(where or {}),
            individual_hooks=individual_hooks,
            shared=shared,
        )

        if individual_hooks:
            records = await self.find_all(where=where, transaction=transaction)
            for record in records:
                await self.destroy_record(record, transaction=transaction, shared=shared)
            return len(records)

        clause, params = build_where(self.definition, where)
        with self.store.write_session(transaction) as conn:
            cursor = conn.execute(f"DELETE FROM {quote(self.table_name)}{clause}", params)
            affected = cursor.rowcount
        logger.debug("Bulk destroyed records", extra={"model": self.name, "count": affected})
        return affected
