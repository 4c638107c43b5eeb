"""
Revision writer: persists snapshots as history rows.

Invariants:
    - Revision rows are inserted with the caller's transaction when one is
      given, so they commit or roll back together with the mutation
    - Without a transaction each insert commits on its own
    - The author slot is consumed once per write() call, whatever the batch
      size, unless the caller passes the author in
    - Store errors propagate unchanged; nothing is retried or swallowed
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union, overload

from .author import AuthorContext, get_author_context

if TYPE_CHECKING:
    from ..store.model import Model
    from ..store.record import Record
    from ..store.store import Transaction

logger = logging.getLogger(__name__)

# Default for write(author=...): take the author from the author slot.
CONSUME_AUTHOR = object()


@dataclass(frozen=True)
class Snapshot:
    """Complete column values of one source row as they were before a mutation.

    Attributes:
        model_name: Source model name
        identity_field: Name of the source primary key
        values: Raw (decoded) column values
    """

    model_name: str
    identity_field: str
    values: dict[str, Any]

    @property
    def identity(self) -> Any:
        return self.values.get(self.identity_field)

    @classmethod
    def from_values(cls, model: Model, values: dict[str, Any]) -> Snapshot:
        return cls(
            model_name=model.name,
            identity_field=model.primary_key.name,
            values=dict(values),
        )


class RevisionWriter:
    """Writes snapshots of a source model into its history model.

    Attributes:
        source: Tracked source model
        shadow: History model rows are inserted into
        source_key_field: History column receiving the source identity
        author_field_name: History column receiving the author, or None

    Example:
        >>> writer = RevisionWriter(User, UserHistory, "user_id")
        >>> await writer.write(Snapshot.from_values(User, user.previous_values), transaction=tx)
    """

    def __init__(
        self,
        source: Model,
        shadow: Model,
        source_key_field: str,
        author_field_name: str | None = None,
        author_context: AuthorContext | None = None,
    ) -> None:
        self.source = source
        self.shadow = shadow
        self.source_key_field = source_key_field
        self.author_field_name = author_field_name
        self._author_context = author_context
        self._columns = frozenset(shadow.definition.get_field_names())

    @property
    def author_context(self) -> AuthorContext:
        return self._author_context or get_author_context()

    def consume_author(self) -> Any:
        """Take the pending author of the source model, clearing its slot."""
        if not self.author_field_name:
            return None
        return self.author_context.consume(self.source.name)

    def _row(self, snapshot: Snapshot, author: Any) -> dict[str, Any]:
        row = {
            name: value
            for name, value in snapshot.values.items()
            if name != snapshot.identity_field and name in self._columns
        }
        # Shadow-only columns are never taken from the snapshot.
        row.pop(self.shadow.primary_key.name, None)
        row[self.source_key_field] = snapshot.identity
        if self.author_field_name:
            row[self.author_field_name] = author
        return row

    @overload
    async def write(
        self,
        snapshots: Snapshot,
        transaction: Transaction | None = None,
        author: Any = CONSUME_AUTHOR,
    ) -> Record | None: ...

    @overload
    async def write(
        self,
        snapshots: Sequence[Snapshot],
        transaction: Transaction | None = None,
        author: Any = CONSUME_AUTHOR,
    ) -> list[Record]: ...

    async def write(
        self,
        snapshots: Union[Snapshot, Sequence[Snapshot]],
        transaction: Transaction | None = None,
        author: Any = CONSUME_AUTHOR,
    ) -> Union[Record, None, list[Record]]:
        """Insert one revision row per snapshot.

        Args:
            snapshots: A single snapshot or a batch from a bulk operation
            transaction: Caller's transaction, or None to commit independently
            author: Author for these rows. By default the author slot is
                consumed, once for the whole call

        Returns:
            The created history record, None for a snapshot without identity,
            or the list of created records for a batch
        """
        if isinstance(snapshots, Snapshot):
            if snapshots.identity is None:
                logger.debug("Skipped snapshot without identity", extra={"model": self.source.name})
                return None
            if author is CONSUME_AUTHOR:
                author = self.consume_author()
            row = self._row(snapshots, author)
            revision = await self.shadow.create(row, transaction=transaction)
            logger.debug(
                "Archived revision",
                extra={
                    "model": self.source.name,
                    "id": snapshots.identity,
                    "revision_id": revision.identity,
                },
            )
            return revision

        if author is CONSUME_AUTHOR:
            author = self.consume_author()
        rows = [self._row(s, author) for s in snapshots if s.identity is not None]
        revisions = await self.shadow.bulk_create(rows, transaction=transaction)
        logger.debug(
            "Archived revision batch",
            extra={"model": self.source.name, "count": len(revisions)},
        )
        return revisions
