"""
revtrack - Revision history for SQLite-backed models.

Every update, upsert or destroy of a tracked model first archives the
row's prior state into a derived, read-only history model:
- Schema derivation (SchemaDeriver) builds the history model from the source
- Mutation hooks (MutationInterceptor) snapshot rows before they change
- RevisionWriter inserts the snapshots in the caller's transaction
- AuthorContext attributes a mutation to an author

Example:
    >>> from revtrack import ModelDef, Store, field, track
    >>>
    >>> store = Store("/tmp/app.db")
    >>> User = store.define_model(ModelDef(name="User", fields=(field("name", "str"),)))
    >>> UserHistory = track(User, store)
    >>> await store.sync()
    >>>
    >>> user = await User.create({"name": "foo"})
    >>> await user.update({"name": "bar"})
    >>> await UserHistory.count()
    1

Invariants:
    - A revision row holds the state of a source row before one mutation
    - Revision rows commit or roll back with the mutation's transaction
    - History models accept inserts only

Version: see revtrack/_version.py.
"""

from ._version import __version__
from .config import ObservabilityConfig, Settings, StoreConfig, TrackOptions, setup_logging
from .errors import (
    NotAHistoryModelError,
    ReadOnlyViolation,
    RevisionError,
    SchemaDerivationError,
)
from .history import (
    AuthorContext,
    MutationInterceptor,
    RevisionTracker,
    RevisionWriter,
    ShadowStoreRegistrar,
    Snapshot,
    get_author_context,
    get_latest_revision,
    get_revisions,
    reset_author_context,
    revision_count,
    track,
    track_all,
)
from .schema import (
    FieldDef,
    FieldKind,
    FieldProperty,
    ModelDef,
    ModelOption,
    SchemaDeriver,
    field,
)
from .store import HookContext, HookKind, Model, Record, Store, Transaction

__all__ = [
    # Version
    "__version__",
    # Schema types
    "FieldDef",
    "FieldKind",
    "FieldProperty",
    "ModelDef",
    "ModelOption",
    "SchemaDeriver",
    "field",
    # Store
    "Store",
    "Model",
    "Record",
    "Transaction",
    "HookKind",
    "HookContext",
    # Tracking
    "track",
    "track_all",
    "RevisionTracker",
    "RevisionWriter",
    "MutationInterceptor",
    "ShadowStoreRegistrar",
    "Snapshot",
    "AuthorContext",
    "get_author_context",
    "reset_author_context",
    "get_revisions",
    "get_latest_revision",
    "revision_count",
    # Config
    "Settings",
    "StoreConfig",
    "TrackOptions",
    "ObservabilityConfig",
    "setup_logging",
    # Errors
    "RevisionError",
    "SchemaDerivationError",
    "ReadOnlyViolation",
    "NotAHistoryModelError",
]
