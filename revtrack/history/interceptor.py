"""
Mutation interception for tracked models.

Attaches before-hooks to a source model so every update, destroy and upsert
(single-row or bulk) archives the pre-mutation state first, and guards the
history model against any write other than inserts.

Invariants:
    - Snapshot capture happens before the revision insert, which happens
      before the store executes the mutation
    - The bulk re-query and the revision insert use the caller's transaction
    - A bulk operation with individual_hooks archives through the single-row
      hooks only, never twice
    - Every revision written for one mutation event carries the same author,
      including the per-row revisions of a bulk operation with individual_hooks
    - An upsert of a record that is not persisted yet archives nothing

Known limitation:
    Bulk snapshots come from re-querying the filter just before the bulk
    statement. Without a transaction, a concurrent writer can change those
    rows between the re-query and the statement, and the archived state will
    not match what the statement overwrote. Run bulk mutations inside a
    transaction (BEGIN IMMEDIATE holds the write lock) to close that window.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import ReadOnlyViolation
from ..store.hooks import HookContext, HookKind
from .writer import CONSUME_AUTHOR, RevisionWriter, Snapshot

if TYPE_CHECKING:
    from ..store.model import Model

logger = logging.getLogger(__name__)

SINGLE_ROW_HOOKS = (HookKind.BEFORE_UPDATE, HookKind.BEFORE_DESTROY, HookKind.BEFORE_UPSERT)
BULK_HOOKS = (HookKind.BEFORE_BULK_UPDATE, HookKind.BEFORE_BULK_DESTROY)
GUARDED_HOOKS = SINGLE_ROW_HOOKS + BULK_HOOKS

# Key in HookContext.shared holding the author of a bulk operation.
BULK_AUTHOR_KEY = "revision_author"


class MutationInterceptor:
    """Wires a RevisionWriter into the lifecycle hooks of a source model.

    Example:
        >>> interceptor = MutationInterceptor(User, UserHistory, writer)
        >>> interceptor.attach()
    """

    def __init__(self, source: Model, shadow: Model, writer: RevisionWriter) -> None:
        self.source = source
        self.shadow = shadow
        self.writer = writer
        self._attached = False

    def attach(self) -> None:
        """Register the archiving hooks on the source and the guard on the shadow."""
        if self._attached:
            return
        for kind in SINGLE_ROW_HOOKS:
            self.source.add_hook(kind, self.before_single)
        for kind in BULK_HOOKS:
            self.source.add_hook(kind, self.before_bulk)
        for kind in GUARDED_HOOKS:
            self.shadow.add_hook(kind, self.read_only)
        self._attached = True

    async def before_single(self, ctx: HookContext) -> None:
        record = ctx.record
        if record is None or record.is_new_record or record.identity is None:
            # Insert path of an upsert: there is no prior state to archive.
            logger.debug(
                "No prior state to archive",
                extra={"model": self.source.name, "operation": ctx.kind.value},
            )
            return

        author = CONSUME_AUTHOR
        if ctx.shared is not None and BULK_AUTHOR_KEY in ctx.shared:
            author = ctx.shared[BULK_AUTHOR_KEY]

        snapshot = Snapshot.from_values(self.source, record.previous_values)
        await self.writer.write(snapshot, transaction=ctx.transaction, author=author)

    async def before_bulk(self, ctx: HookContext) -> None:
        if ctx.individual_hooks:
            # The per-row hooks archive each row. They all carry the author
            # taken here, once for the whole operation.
            if ctx.shared is not None:
                ctx.shared[BULK_AUTHOR_KEY] = self.writer.consume_author()
            return

        hits = await self.source.find_all(where=ctx.where, transaction=ctx.transaction)
        snapshots = [Snapshot.from_values(self.source, hit.data_values) for hit in hits]
        await self.writer.write(snapshots, transaction=ctx.transaction)

    def read_only(self, ctx: HookContext) -> None:
        raise ReadOnlyViolation(self.shadow.name, ctx.kind.value)
