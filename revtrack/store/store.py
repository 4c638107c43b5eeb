"""
SQLite-backed store context for revtrack.

The Store owns one SQLite database file and the models defined in it. It
hands out Transactions and the connection sessions models run their
statements in.

Invariants:
    - Without a transaction, every write runs in its own BEGIN IMMEDIATE ...
      COMMIT on a fresh connection and is rolled back on any exception
    - With a transaction, statements run on transaction.connection and are
      committed or rolled back only by the transaction's owner
    - A finished transaction refuses further use (TransactionClosedError)
    - sqlite3.IntegrityError is re-raised as store IntegrityError

How to change safely:
    - Keep isolation_level=None; transactions are managed explicitly
    - Connection PRAGMAs must be applied before BEGIN (they are no-ops inside
      a transaction)

Thread safety:
    Each session opens its own connection. A Transaction's connection must
    only be used from the task that opened it.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType

from ..config import StoreConfig
from ..schema.types import ModelDef
from .errors import (
    DuplicateModelError,
    IntegrityError,
    ModelNotFoundError,
    StoreError,
    TransactionClosedError,
)
from .model import Model
from .query import quote

logger = logging.getLogger(__name__)


class Transaction:
    """An explicit transaction on its own connection.

    Use as an async context manager (commit on success, rollback on error)
    or call commit()/rollback() directly.

    Example:
        >>> async with store.transaction() as tx:
        ...     user = await User.create({"name": "foo"}, transaction=tx)
        ...     await user.update({"name": "bar"}, transaction=tx)
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn: sqlite3.Connection | None = conn
        self._state = "active"

    @property
    def state(self) -> str:
        """One of 'active', 'committed', 'rolled_back'."""
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == "active"

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise TransactionClosedError(f"Transaction already {self._state}")
        return self._conn

    async def commit(self) -> None:
        conn = self.connection
        try:
            conn.execute("COMMIT")
        finally:
            self._finish("committed")

    async def rollback(self) -> None:
        conn = self.connection
        try:
            conn.execute("ROLLBACK")
        finally:
            self._finish("rolled_back")

    def _finish(self, state: str) -> None:
        if self._conn is not None:
            self._conn.close()
        self._conn = None
        self._state = state

    async def __aenter__(self) -> Transaction:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if not self.is_active:
            return
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()


class Store:
    """Store context: one SQLite database and the models defined in it.

    Attributes:
        path: Database file path
        config: Store configuration
        models: Defined models by name

    Example:
        >>> store = Store("/tmp/app.db")
        >>> User = store.define_model(ModelDef(name="User", fields=(field("name", "str"),)))
        >>> await store.sync()
    """

    def __init__(self, path: str | Path | None = None, config: StoreConfig | None = None) -> None:
        self.config = config or StoreConfig()
        self.path = Path(path if path is not None else self.config.db_path)
        if str(self.path) == ":memory:":
            raise ValueError("Store requires a database file; ':memory:' is not shared between connections")
        self.models: dict[str, Model] = {}

    @classmethod
    def from_config(cls, config: StoreConfig) -> Store:
        return cls(config.db_path, config=config)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.config.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA busy_timeout = {self.config.busy_timeout_ms}")
        if self.config.wal_mode:
            conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        conn.execute(f"PRAGMA foreign_keys = {'ON' if self.config.foreign_keys else 'OFF'}")
        return conn

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def transaction(self) -> Transaction:
        """Open a new transaction (BEGIN IMMEDIATE) on a dedicated connection."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
        except Exception:
            conn.close()
            raise
        return Transaction(conn)

    @contextmanager
    def write_session(self, transaction: Transaction | None = None) -> Iterator[sqlite3.Connection]:
        """Connection for a write.

        With a transaction the caller's connection is yielded as-is;
        otherwise a fresh connection runs the block in its own transaction.
        """
        if transaction is not None:
            try:
                yield transaction.connection
            except sqlite3.IntegrityError as e:
                raise IntegrityError(str(e)) from e
            return

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
                conn.execute("COMMIT")
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise IntegrityError(str(e)) from e
            except Exception:
                conn.execute("ROLLBACK")
                raise

    @contextmanager
    def read_session(self, transaction: Transaction | None = None) -> Iterator[sqlite3.Connection]:
        if transaction is not None:
            yield transaction.connection
            return
        with self._get_connection() as conn:
            yield conn

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    def define_model(self, definition: ModelDef) -> Model:
        """Declare a model in this store.

        The definition is completed with an implicit ``id`` primary key and
        timestamps where applicable. Tables are created by sync().

        Raises:
            DuplicateModelError: If a model of that name is already defined
        """
        if definition.name in self.models:
            raise DuplicateModelError(f"Model '{definition.name}' is already defined")
        model = Model(self, definition.with_defaults())
        for existing in self.models.values():
            if existing.table_name == model.table_name:
                raise DuplicateModelError(
                    f"Table '{model.table_name}' is already used by model '{existing.name}'"
                )
        self.models[definition.name] = model
        logger.info(f"Defined model: {model.name} (table={model.table_name})")
        return model

    def get_model(self, name: str) -> Model:
        model = self.models.get(name)
        if model is None:
            raise ModelNotFoundError(f"Model '{name}' is not defined")
        return model

    async def sync(self, models: list[Model] | None = None, force: bool = False) -> None:
        """Create tables for the given models (default: all defined models).

        Args:
            models: Models to sync
            force: Drop existing tables first
        """
        targets = list(self.models.values()) if models is None else models
        with self._get_connection() as conn:
            # Dropping referenced tables must not trip FOREIGN KEY checks.
            conn.execute("PRAGMA foreign_keys = OFF")
            conn.execute("BEGIN IMMEDIATE")
            try:
                if force:
                    for model in reversed(targets):
                        conn.execute(f"DROP TABLE IF EXISTS {quote(model.table_name)}")
                for model in targets:
                    for statement in model.create_table_sql():
                        conn.execute(statement)
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                conn.execute("ROLLBACK")
                raise StoreError(f"Failed to sync tables: {e}") from e
        logger.info(f"Synced {len(targets)} table(s) in {self.path}")

    async def table_columns(self, model: Model) -> list[str]:
        """Column names of the model's table as created in the database."""
        with self._get_connection() as conn:
            rows = conn.execute(f"PRAGMA table_info({quote(model.table_name)})").fetchall()
        return [row["name"] for row in rows]

    def close(self) -> None:
        """Forget all models. Connections are per-operation; nothing stays open."""
        self.models.clear()
