"""
Lifecycle hooks for store models.

A hook is a callable taking a HookContext; it may be a coroutine function.
Hooks registered for a BEFORE_* kind run, in registration order, before the
store writes anything for that operation. An exception raised by a hook
aborts the operation and propagates to the caller unchanged.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from .model import Model
    from .record import Record
    from .store import Transaction


class HookKind(Enum):
    """Operations a hook can be attached to."""

    BEFORE_CREATE = "before_create"
    AFTER_CREATE = "after_create"
    BEFORE_UPDATE = "before_update"
    AFTER_UPDATE = "after_update"
    BEFORE_DESTROY = "before_destroy"
    AFTER_DESTROY = "after_destroy"
    BEFORE_UPSERT = "before_upsert"
    BEFORE_BULK_UPDATE = "before_bulk_update"
    BEFORE_BULK_DESTROY = "before_bulk_destroy"


@dataclass
class HookContext:
    """Everything a hook knows about the operation it intercepts.

    Attributes:
        kind: Which hook is firing
        model: Model the operation targets
        record: Loaded record (single-row operations only)
        transaction: Caller's transaction, or None
        where: Filter criteria (bulk operations only)
        values: Values being written (updates and upserts)
        individual_hooks: Whether a bulk operation will also run per-row hooks
        shared: State one bulk operation shares with the per-row hooks it runs
    """

    kind: HookKind
    model: Model
    record: Record | None = None
    transaction: Transaction | None = None
    where: dict[str, Any] | None = None
    values: dict[str, Any] | None = None
    individual_hooks: bool = False
    shared: dict[str, Any] | None = None


Hook = Callable[[HookContext], Union[Awaitable[None], None]]


async def run_hooks(hooks: list[Hook], ctx: HookContext) -> None:
    """Run hooks in order, awaiting coroutine results one at a time."""
    for hook in list(hooks):
        result = hook(ctx)
        if inspect.isawaitable(result):
            await result
