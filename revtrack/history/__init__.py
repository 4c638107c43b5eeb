"""
History module for revtrack.

This module archives the prior state of tracked rows:
- track / track_all: enable tracking on source models
- MutationInterceptor: hooks that snapshot rows before they change
- RevisionWriter: inserts snapshots into the history model
- AuthorContext: per-model author slot consumed by the writer
- Queries: revisions of one source row

Invariants:
    - Snapshot, then revision insert, then the mutation itself
    - History models are insert-only
"""

from .author import AuthorContext, get_author_context, reset_author_context
from .interceptor import MutationInterceptor
from .queries import get_latest_revision, get_revisions, revision_count
from .registrar import ShadowStoreRegistrar
from .tracker import RevisionTracker, track, track_all
from .writer import RevisionWriter, Snapshot

__all__ = [
    "track",
    "track_all",
    "RevisionTracker",
    "MutationInterceptor",
    "RevisionWriter",
    "Snapshot",
    "ShadowStoreRegistrar",
    "AuthorContext",
    "get_author_context",
    "reset_author_context",
    "get_revisions",
    "get_latest_revision",
    "revision_count",
]
