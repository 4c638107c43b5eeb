"""
Configuration management for revtrack.

Each component takes a frozen dataclass (StoreConfig, TrackOptions,
ObservabilityConfig). Settings loads all of them from REVTRACK_* environment
variables; every setting has a default that works for local development and
tests.

Invariants:
    - Config objects are immutable once built
    - Option sets are frozensets of enum members, never raw strings
    - Settings is the only place environment variables are read

How to change safely:
    - Add new settings with defaults that keep existing behavior
    - Keep environment variable names prefixed with REVTRACK_
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Literal

import json_log_formatter
from pydantic import Field
from pydantic_settings import BaseSettings

from .schema.derive import (
    DEFAULT_ARCHIVED_AT_FIELD,
    DEFAULT_EXCLUDED_NAMES,
    DEFAULT_EXCLUDED_PROPERTIES,
    DEFAULT_REVISION_ID_FIELD,
)
from .schema.types import FieldProperty, ModelOption

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    """SQLite store configuration.

    Attributes:
        db_path: Path of the SQLite database file
        wal_mode: Enable SQLite WAL journal mode
        busy_timeout_ms: How long a connection waits on a locked database
        foreign_keys: Enforce FOREIGN KEY constraints
    """

    db_path: str = "revtrack.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    foreign_keys: bool = True


@dataclass(frozen=True)
class TrackOptions:
    """Options for tracking one model (or every model with track_all).

    Attributes:
        author_field_name: Enables author attribution and names its column
        model_suffix: Appended to the source model name to name the history model
        excluded_attributes: Source field names left out of the history model
        excluded_attribute_properties: Field properties stripped from copied fields
        excluded_names: Model-level options the history model does not inherit
        revision_id_field: Name of the history surrogate key
        archived_at_field: Name of the archival timestamp
        source_key_field: Column holding the source identity; derived when None
    """

    author_field_name: str | None = None
    model_suffix: str = "History"
    excluded_attributes: frozenset[str] = frozenset()
    excluded_attribute_properties: frozenset[FieldProperty] = DEFAULT_EXCLUDED_PROPERTIES
    excluded_names: frozenset[ModelOption] = DEFAULT_EXCLUDED_NAMES
    revision_id_field: str = DEFAULT_REVISION_ID_FIELD
    archived_at_field: str = DEFAULT_ARCHIVED_AT_FIELD
    source_key_field: str | None = None

    def __post_init__(self) -> None:
        if not self.model_suffix:
            raise ValueError("model_suffix cannot be empty")
        # Accept plain iterables and strings for the option sets.
        object.__setattr__(self, "excluded_attributes", frozenset(self.excluded_attributes))
        object.__setattr__(
            self,
            "excluded_attribute_properties",
            frozenset(
                p if isinstance(p, FieldProperty) else FieldProperty(p)
                for p in self.excluded_attribute_properties
            ),
        )
        object.__setattr__(
            self,
            "excluded_names",
            frozenset(
                o if isinstance(o, ModelOption) else ModelOption(o) for o in self.excluded_names
            ),
        )

    @property
    def author_enabled(self) -> bool:
        return bool(self.author_field_name)

    def merge(self, **overrides: Any) -> TrackOptions:
        """Return a copy with the given options replaced."""
        if not overrides:
            return self
        return replace(self, **overrides)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"


class Settings(BaseSettings):
    """revtrack configuration loaded from environment."""

    # Store
    db_path: str = Field(default="revtrack.db", description="SQLite database file")
    sqlite_wal_mode: bool = Field(default=True, description="Enable WAL journal mode")
    sqlite_busy_timeout_ms: int = Field(default=5000, ge=0, description="Lock wait in ms")
    sqlite_foreign_keys: bool = Field(default=True, description="Enforce FOREIGN KEYs")

    # Tracking
    model_suffix: str = Field(default="History", min_length=1, description="History model suffix")
    author_field: str | None = Field(default=None, description="Author column name")
    excluded_attributes: str = Field(default="", description="Comma-separated field names")

    # Observability
    log_level: str = Field(default="WARNING", description="Logging level")
    log_format: Literal["text", "json"] = Field(default="text", description="Log format")

    model_config = {"env_prefix": "REVTRACK_", "protected_namespaces": ()}

    def store_config(self, db_path: str | None = None) -> StoreConfig:
        """Store configuration, optionally for another database file."""
        return StoreConfig(
            db_path=db_path or self.db_path,
            wal_mode=self.sqlite_wal_mode,
            busy_timeout_ms=self.sqlite_busy_timeout_ms,
            foreign_keys=self.sqlite_foreign_keys,
        )

    def track_options(self, **overrides: Any) -> TrackOptions:
        """Default tracking options with the given options replaced."""
        options = TrackOptions(
            author_field_name=self.author_field or None,
            model_suffix=self.model_suffix,
            excluded_attributes=frozenset(
                name.strip() for name in self.excluded_attributes.split(",") if name.strip()
            ),
        )
        return options.merge(**overrides)

    def observability(self, log_level: str | None = None) -> ObservabilityConfig:
        return ObservabilityConfig(
            log_level=log_level or self.log_level,
            log_format=self.log_format,
        )


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure the root logger based on configuration."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
