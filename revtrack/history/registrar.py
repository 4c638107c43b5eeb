"""
Registration of history models in a store.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..schema.types import ModelDef, snake_case

if TYPE_CHECKING:
    from ..store.model import Model
    from ..store.store import Store

logger = logging.getLogger(__name__)

REVISIONS_ASSOCIATION = "revisions"


class ShadowStoreRegistrar:
    """Defines history models next to their source models.

    The associations added in author mode are traversal-only: they never
    put a FOREIGN KEY on the history table, so revisions of deleted source
    rows stay valid.
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    def register(
        self,
        shadow_def: ModelDef,
        source: Model,
        author_enabled: bool,
        source_key_field: str,
    ) -> Model:
        shadow = self.store.define_model(shadow_def)
        shadow.shadow_of = source.name
        shadow.source_key = source_key_field

        if author_enabled:
            source.has_many(
                shadow,
                foreign_key=source_key_field,
                name=REVISIONS_ASSOCIATION,
                constraints=False,
            )
            shadow.belongs_to(
                source,
                foreign_key=source_key_field,
                name=snake_case(source.name),
                constraints=False,
            )

        logger.info(f"Registered history model {shadow.name} for {source.name}")
        return shadow
