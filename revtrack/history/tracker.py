"""
Revision tracking entry points.

``track()`` wires one source model for history: it derives the history
schema, defines the history model in the same store, attaches the mutation
hooks and, in author mode, exposes ``set_revising_author`` on the source.
``track_all()`` does the same for every model already defined in a store.

Invariants:
    - Tracking adds hooks and (in author mode) associations and one method
      on the source model; it changes nothing else about it
    - History models are never tracked themselves
    - Tables are not created here; call ``store.sync()`` after tracking

How to change safely:
    - Keep derivation before registration: a derivation error must leave the
      store without a half-registered history model
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..config import TrackOptions
from ..schema.derive import SchemaDeriver
from .author import AuthorContext, get_author_context
from .interceptor import MutationInterceptor
from .registrar import ShadowStoreRegistrar
from .writer import RevisionWriter

if TYPE_CHECKING:
    from ..store.model import Model
    from ..store.store import Store

logger = logging.getLogger(__name__)


class RevisionTracker:
    """Tracking state for one source model.

    Attributes:
        model: Source model
        store: Store both models live in
        options: Effective tracking options
        shadow: History model (set by enable())
        writer: RevisionWriter (set by enable())
        interceptor: MutationInterceptor (set by enable())

    Example:
        >>> tracker = RevisionTracker(User, store, TrackOptions(author_field_name="author_id"))
        >>> UserHistory = tracker.enable()
        >>> await store.sync()
    """

    def __init__(
        self,
        model: Model,
        store: Store,
        options: TrackOptions | None = None,
        author_context: AuthorContext | None = None,
    ) -> None:
        self.model = model
        self.store = store
        self.options = options or TrackOptions()
        self.author_context = author_context
        self.deriver = SchemaDeriver(
            excluded_fields=self.options.excluded_attributes,
            excluded_properties=self.options.excluded_attribute_properties,
            excluded_names=self.options.excluded_names,
            author_field_name=self.options.author_field_name,
            revision_id_field=self.options.revision_id_field,
            archived_at_field=self.options.archived_at_field,
            source_key_field=self.options.source_key_field,
        )
        self.shadow: Model | None = None
        self.writer: RevisionWriter | None = None
        self.interceptor: MutationInterceptor | None = None

    @property
    def shadow_name(self) -> str:
        return f"{self.model.name}{self.options.model_suffix}"

    def enable(self) -> Model:
        """Derive, register and hook up the history model.

        Returns:
            The history model

        Raises:
            SchemaDerivationError: If the source definition cannot be archived
            DuplicateModelError: If the history model name or table is taken
        """
        if self.shadow is not None:
            return self.shadow

        source_def = self.model.definition
        shadow_def = self.deriver.derive_model(source_def, self.shadow_name)
        source_key = self.deriver.source_key_for(source_def)

        skipped = self.options.excluded_attributes | {self.model.primary_key.name}
        if all(f.name in skipped for f in source_def.fields):
            logger.warning(
                f"Model {self.model.name} has no fields to archive besides its primary key"
            )

        registrar = ShadowStoreRegistrar(self.store)
        shadow = registrar.register(
            shadow_def,
            self.model,
            self.options.author_enabled,
            source_key,
        )

        writer = RevisionWriter(
            self.model,
            shadow,
            source_key,
            author_field_name=self.options.author_field_name,
            author_context=self.author_context,
        )
        interceptor = MutationInterceptor(self.model, shadow, writer)
        interceptor.attach()

        if self.options.author_enabled:
            self.model.set_revising_author = self._author_setter()

        self.shadow = shadow
        self.writer = writer
        self.interceptor = interceptor
        logger.info(
            f"Tracking enabled for {self.model.name} -> {shadow.name} "
            f"(author={'on' if self.options.author_enabled else 'off'})"
        )
        return shadow

    def _author_setter(self) -> Callable[[Any], None]:
        model_name = self.model.name
        explicit = self.author_context

        def set_revising_author(value: Any) -> None:
            """Attribute the next mutation of this model to ``value``."""
            (explicit or get_author_context()).set(model_name, value)

        return set_revising_author


def track(
    model: Model,
    store: Store,
    options: TrackOptions | None = None,
    **overrides: Any,
) -> Model:
    """Enable revision tracking on one model.

    Args:
        model: Source model defined in ``store``
        store: Store the history model is defined in
        options: Tracking options (defaults to TrackOptions())
        **overrides: Individual TrackOptions fields to replace

    Returns:
        The history model

    Example:
        >>> UserHistory = track(User, store, author_field_name="author_id")
        >>> User.set_revising_author(42)
    """
    effective = (options or TrackOptions()).merge(**overrides)
    return RevisionTracker(model, store, effective).enable()


def track_all(
    store: Store,
    options: TrackOptions | None = None,
    **overrides: Any,
) -> dict[str, Model]:
    """Enable revision tracking on every model defined in ``store``.

    History models are skipped, so calling this twice does not create
    history-of-history models; models tracked already fail on their
    duplicate history model name.

    Returns:
        History models keyed by their name
    """
    effective = (options or TrackOptions()).merge(**overrides)
    sources = [model for model in store.models.values() if model.shadow_of is None]
    shadows: dict[str, Model] = {}
    for model in sources:
        shadow = RevisionTracker(model, store, effective).enable()
        shadows[shadow.name] = shadow
    return shadows
