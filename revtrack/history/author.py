"""
Author attribution for revisions.

The AuthorContext holds one slot per tracked model name. A caller sets the
slot right before a mutation (``Model.set_revising_author``); the
RevisionWriter consumes it when it archives that mutation, so the value
applies to exactly one mutation event.

Invariants:
    - Only RevisionWriter consumes and clears a slot
    - One consume per mutation event: one per single-row write, one per bulk batch
    - Concurrent setters on the same model are last-write-wins; the slot does
      not isolate overlapping mutations from different callers
"""

from __future__ import annotations

import threading
from typing import Any, Optional

_global_context: Optional[AuthorContext] = None
_context_lock = threading.Lock()


class AuthorContext:
    """Process-wide author slots keyed by source model name.

    Example:
        >>> ctx = AuthorContext()
        >>> ctx.set("User", "user:42")
        >>> ctx.consume("User")
        'user:42'
        >>> ctx.consume("User") is None
        True
    """

    def __init__(self) -> None:
        self._slots: dict[str, Any] = {}
        self._lock = threading.Lock()

    def set(self, model_name: str, value: Any) -> None:
        with self._lock:
            self._slots[model_name] = value

    def peek(self, model_name: str) -> Any:
        return self._slots.get(model_name)

    def consume(self, model_name: str) -> Any:
        """Return the slot's value and reset it to None."""
        with self._lock:
            return self._slots.pop(model_name, None)

    def clear(self, model_name: str | None = None) -> None:
        with self._lock:
            if model_name is None:
                self._slots.clear()
            else:
                self._slots.pop(model_name, None)


def get_author_context() -> AuthorContext:
    """Get the global author context, creating it on first use."""
    global _global_context
    with _context_lock:
        if _global_context is None:
            _global_context = AuthorContext()
        return _global_context


def reset_author_context() -> None:
    """Reset the global author context (for testing only)."""
    global _global_context
    with _context_lock:
        _global_context = None
