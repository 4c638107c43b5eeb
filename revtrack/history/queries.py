"""
Read helpers for history models.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..errors import NotAHistoryModelError

if TYPE_CHECKING:
    from ..store.model import Model
    from ..store.record import Record
    from ..store.store import Transaction


def _source_key(shadow: Model) -> str:
    if shadow.shadow_of is None or shadow.source_key is None:
        raise NotAHistoryModelError(shadow.name)
    return shadow.source_key


async def get_revisions(
    shadow: Model,
    identity: Any,
    transaction: Transaction | None = None,
) -> list[Record]:
    """All revisions of one source row, oldest first."""
    return await shadow.find_all(
        where={_source_key(shadow): identity},
        transaction=transaction,
        order_by=shadow.primary_key.name,
    )


async def get_latest_revision(
    shadow: Model,
    identity: Any,
    transaction: Transaction | None = None,
) -> Record | None:
    """Most recent revision of one source row, or None if it was never archived."""
    return await shadow.find_one(
        where={_source_key(shadow): identity},
        transaction=transaction,
        order_by=f"-{shadow.primary_key.name}",
    )


async def revision_count(
    shadow: Model,
    identity: Any | None = None,
    transaction: Transaction | None = None,
) -> int:
    """Number of revisions of one source row, or of the whole history model."""
    where = None if identity is None else {_source_key(shadow): identity}
    return await shadow.count(where=where, transaction=transaction)
