"""
History CLI tool for revtrack.

Commands:
- derive: Print the history schema derived from a schema file
- log: Print the archived revisions of one record

Usage:
    revtrack derive models.yaml --model User --author-field author_id
    revtrack log --db app.db --schema models.yaml --model User --id 42

Schema files are YAML or JSON documents of the form::

    models:
      - name: User
        fields:
          - {name: email, kind: str, unique: true, allow_null: false}
          - {name: name, kind: str}

Invariants:
    - derive never touches a database
    - log only reads; it never syncs or writes tables
    - Output is deterministic JSON (sorted keys)

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output format stable for scripts parsing it
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from ..config import Settings, TrackOptions, setup_logging
from ..history.queries import get_revisions
from ..history.tracker import track
from ..schema.derive import SchemaDeriver
from ..schema.types import FieldKind, ModelDef
from ..store.store import Store

logger = logging.getLogger(__name__)


# =============================================================================
# Schema file models
# =============================================================================


class FieldSpec(BaseModel):
    """One field of a model in a schema file."""

    name: str
    kind: str
    allow_null: bool = True
    default: Any = None
    unique: bool = False
    primary_key: bool = False
    auto_increment: bool = False
    references: str | None = None
    on_delete: str | None = None
    on_update: str | None = None
    description: str = ""


class ModelSpec(BaseModel):
    """One model in a schema file."""

    name: str
    fields: list[FieldSpec] = Field(default_factory=list)
    table_name: str | None = None
    timestamps: bool = True
    unique_keys: list[list[str]] = Field(default_factory=list)
    indexes: list[list[str]] = Field(default_factory=list)
    description: str = ""


class SchemaFile(BaseModel):
    """Top-level schema document."""

    models: list[ModelSpec]


class SchemaFileError(Exception):
    """A schema file could not be read or is malformed."""

    pass


def load_schema_file(path: str | Path) -> list[ModelDef]:
    """Load model definitions from a YAML or JSON schema file.

    JSON is a subset of YAML, so both go through yaml.safe_load.

    Raises:
        SchemaFileError: If the file is missing, unparsable or invalid
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise SchemaFileError(f"Cannot read schema file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise SchemaFileError(f"Cannot parse schema file {path}: {e}") from e

    try:
        document = SchemaFile.model_validate(data)
    except ValidationError as e:
        raise SchemaFileError(f"Invalid schema file {path}: {e}") from e

    try:
        return [
            ModelDef.from_dict(entry.model_dump(exclude_none=True)) for entry in document.models
        ]
    except ValueError as e:
        raise SchemaFileError(f"Invalid schema file {path}: {e}") from e


def _coerce_identity(kind: FieldKind, raw: str) -> Any:
    if kind in (FieldKind.INTEGER, FieldKind.TIMESTAMP):
        return int(raw)
    if kind == FieldKind.FLOAT:
        return float(raw)
    return raw


class HistoryCLI:
    """CLI tool for history inspection.

    Example:
        >>> cli = HistoryCLI()
        >>> cli.derive(load_schema_file("models.yaml"), author_field="author_id")
        >>> await cli.log("app.db", load_schema_file("models.yaml"), "User", "42")
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()

    def _options(self, author_field: str | None, suffix: str | None) -> TrackOptions:
        overrides: dict[str, Any] = {}
        if author_field is not None:
            overrides["author_field_name"] = author_field or None
        if suffix is not None:
            overrides["model_suffix"] = suffix
        return self.settings.track_options(**overrides)

    def derive(
        self,
        models: list[ModelDef],
        model_name: str | None = None,
        author_field: str | None = None,
        suffix: str | None = None,
    ) -> list[dict[str, Any]]:
        """Derive history schemas.

        Args:
            models: Source model definitions
            model_name: Only derive this model (default: all)
            author_field: Author column name (default: from settings)
            suffix: History model name suffix (default: from settings)

        Returns:
            History model definitions as dictionaries

        Raises:
            SchemaFileError: If model_name is not in the schema
        """
        if model_name is not None:
            models = [m for m in models if m.name == model_name]
            if not models:
                raise SchemaFileError(f"Model '{model_name}' is not defined in the schema file")

        options = self._options(author_field, suffix)
        deriver = SchemaDeriver(
            excluded_fields=options.excluded_attributes,
            excluded_properties=options.excluded_attribute_properties,
            excluded_names=options.excluded_names,
            author_field_name=options.author_field_name,
            revision_id_field=options.revision_id_field,
            archived_at_field=options.archived_at_field,
            source_key_field=options.source_key_field,
        )
        return [
            deriver.derive_model(m.with_defaults(), f"{m.name}{options.model_suffix}").to_dict()
            for m in models
        ]

    async def log(
        self,
        db_path: str,
        models: list[ModelDef],
        model_name: str,
        identity: str,
        author_field: str | None = None,
        suffix: str | None = None,
    ) -> list[dict[str, Any]]:
        """Read the revisions of one record.

        Returns:
            Revision rows, oldest first
        """
        if not Path(db_path).exists():
            raise SchemaFileError(f"Database file {db_path} does not exist")

        store = Store.from_config(self.settings.store_config(db_path))
        try:
            for definition in models:
                store.define_model(definition)
            source = store.get_model(model_name)
            shadow = track(source, store, self._options(author_field, suffix))
            revisions = await get_revisions(
                shadow, _coerce_identity(source.primary_key.kind, identity)
            )
        finally:
            store.close()
        return [r.to_dict() for r in revisions]


def main() -> None:
    """CLI entry point for the history tool."""
    settings = Settings()

    parser = argparse.ArgumentParser(description="revtrack history tool")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # derive command
    derive_parser = subparsers.add_parser("derive", help="Print derived history schema")
    derive_parser.add_argument("schema_file", help="YAML or JSON schema file")
    derive_parser.add_argument("--model", help="Only derive this model")
    derive_parser.add_argument("--author-field", default=settings.author_field)
    derive_parser.add_argument("--suffix", default=settings.model_suffix)

    # log command
    log_parser = subparsers.add_parser("log", help="Print revisions of one record")
    log_parser.add_argument("--db", default=settings.db_path, help="SQLite database file")
    log_parser.add_argument("--schema", required=True, help="YAML or JSON schema file")
    log_parser.add_argument("--model", required=True, help="Source model name")
    log_parser.add_argument("--id", required=True, help="Primary key of the record")
    log_parser.add_argument("--author-field", default=settings.author_field)
    log_parser.add_argument("--suffix", default=settings.model_suffix)

    args = parser.parse_args()
    setup_logging(settings.observability(log_level=args.log_level))
    cli = HistoryCLI(settings)

    try:
        if args.command == "derive":
            models = load_schema_file(args.schema_file)
            output: Any = cli.derive(
                models,
                model_name=args.model,
                author_field=args.author_field,
                suffix=args.suffix,
            )
        else:
            models = load_schema_file(args.schema)
            output = asyncio.run(
                cli.log(
                    args.db,
                    models,
                    args.model,
                    args.id,
                    author_field=args.author_field,
                    suffix=args.suffix,
                )
            )
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(output, indent=2, sort_keys=True, default=str))


if __name__ == "__main__":
    main()
